"""Error taxonomy shared by the ledger engines.

Every engine operation fails closed: when one of these is raised, nothing was
committed. The HTTP layer maps them to status codes in
``orderledger.core.exception_handlers``.
"""
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for the order ledger and inventory engines."""

    code = "ledger_error"
    status_code = 500
    retryable = False

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or "An error occurred in the order ledger"
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        error_dict: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            error_dict["details"] = self.details
        if self.retryable:
            error_dict["retryable"] = True
        return error_dict


class NotFound(LedgerError):
    """A referenced entity does not exist."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any, details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found.",
            {"entity": entity, "id": str(entity_id), **(details or {})},
        )


class ValidationError(LedgerError, ValueError):
    """Malformed input, rejected before any transaction is attempted."""

    code = "validation_error"
    status_code = 422


class InsufficientStock(LedgerError):
    """An exit would drive an inventory item below zero."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, item_id: Any, item_name: str, available, requested):
        self.item_id = item_id
        self.item_name = item_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for '{item_name}': requested {requested}, available {available}. "
            "Stock cannot go negative; register an entry or an adjustment first.",
            {
                "item_id": str(item_id),
                "item_name": item_name,
                "available": str(available),
                "requested": str(requested),
            },
        )


class SubAccountNotEmpty(LedgerError):
    """A sub-account still has lines assigned to it."""

    code = "sub_account_not_empty"
    status_code = 409

    def __init__(self, order_id: Any, sub_account_id: str, line_count: int):
        self.order_id = order_id
        self.sub_account_id = sub_account_id
        self.line_count = line_count
        super().__init__(
            f"Sub-account '{sub_account_id}' on order {order_id} still has {line_count} item(s). "
            "Remove or move its items before deleting it.",
            {"order_id": str(order_id), "sub_account_id": sub_account_id, "line_count": line_count},
        )


class InvalidTransition(LedgerError):
    """The order's current status does not allow the requested operation."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, order_id: Any, status: str, action: str):
        self.order_id = order_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} order {order_id} while it is '{status}'.",
            {"order_id": str(order_id), "status": status, "action": action},
        )


class Unavailable(LedgerError):
    """Transaction retries were exhausted; the caller may retry."""

    code = "unavailable"
    status_code = 503
    retryable = True

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or "The ledger is busy. Please retry the operation.", details)
