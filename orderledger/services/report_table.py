"""Client-side presentation of report rows: sort and filter without touching the data."""
from dataclasses import dataclass
from enum import Enum
from typing import Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

from orderledger.core.errors import ValidationError

Row = TypeVar("Row", bound=BaseModel)

FILTER_FIELDS = ("name", "category")


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortState:
    column: Optional[str] = None
    direction: SortDirection = SortDirection.ASC

    def toggle(self, column: str) -> "SortState":
        """Same column flips the direction; a new column starts ascending."""
        if column == self.column:
            flipped = SortDirection.DESC if self.direction == SortDirection.ASC else SortDirection.ASC
            return SortState(column, flipped)
        return SortState(column, SortDirection.ASC)


def _sort_key(column: str):
    def key(row):
        value = getattr(row, column)
        return value.casefold() if isinstance(value, str) else value
    return key


def sort_rows(rows: Sequence[Row], row_type: Type[Row], column: str, direction=SortDirection.ASC) -> List[Row]:
    """Stable sort on any field of ``row_type``; returns a new list."""
    if column not in row_type.model_fields:
        raise ValidationError(
            f"Cannot sort by '{column}'. Valid columns: {', '.join(row_type.model_fields)}.",
            {"field": "sort_by", "value": column},
        )
    return sorted(rows, key=_sort_key(column), reverse=SortDirection(direction) == SortDirection.DESC)


def filter_rows(rows: Sequence[Row], text: Optional[str], fields: Tuple[str, ...] = FILTER_FIELDS) -> List[Row]:
    """Case-insensitive substring match on name or category; returns a new list."""
    needle = (text or "").strip().casefold()
    if not needle:
        return list(rows)
    return [
        row for row in rows
        if any(needle in str(getattr(row, f, "")).casefold() for f in fields)
    ]


class ReportTable(Generic[Row]):
    """Holds one report's rows plus the current view state. The rows themselves are never reordered."""

    def __init__(self, rows: Sequence[Row], row_type: Type[Row]):
        self._rows: Tuple[Row, ...] = tuple(rows)
        self.row_type = row_type
        self.sort_state = SortState()
        self.filter_text = ""

    @property
    def data(self) -> Tuple[Row, ...]:
        return self._rows

    def sort_by(self, column: str) -> List[Row]:
        """A click on a column header: same column flips the direction."""
        # Validate before changing state
        sort_rows((), self.row_type, column)
        self.sort_state = self.sort_state.toggle(column)
        return self.view()

    def sort(self, column: str, direction=SortDirection.ASC) -> List[Row]:
        """Explicit column and direction, as a query string asks for them."""
        sort_rows((), self.row_type, column)
        self.sort_state = SortState(column, SortDirection(direction))
        return self.view()

    def filter(self, text: Optional[str]) -> List[Row]:
        self.filter_text = text or ""
        return self.view()

    def view(self) -> List[Row]:
        rows = filter_rows(self._rows, self.filter_text)
        if self.sort_state.column:
            rows = sort_rows(rows, self.row_type, self.sort_state.column, self.sort_state.direction)
        return rows
