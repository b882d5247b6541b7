from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from orderledger.core.dependencies import (
    get_catalog_service,
    get_inventory_service,
    get_order_service,
    get_report_service,
    get_supplier_service,
)
from orderledger.core.errors import InsufficientStock, NotFound, SubAccountNotEmpty, Unavailable
from orderledger.main import app
from orderledger.models.order import OrderStatus
from orderledger.schemas.catalog import MenuItemRecord
from orderledger.schemas.inventory import SupplierRecord
from orderledger.schemas.order import OrderDocument
from orderledger.schemas.report import ProfitabilityRow, RangeReport, ReportTotals

RID = uuid4()
NOW = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)


def _doc(**overrides):
    data = dict(id=uuid4(), restaurant_id=RID, status=OrderStatus.OPEN, created_at=NOW)
    data.update(overrides)
    return OrderDocument(**data)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def order_service():
    service = AsyncMock()
    app.dependency_overrides[get_order_service] = lambda: service
    return service


@pytest.fixture
def inventory_service():
    service = AsyncMock()
    app.dependency_overrides[get_inventory_service] = lambda: service
    return service


@pytest.fixture
def report_service():
    service = AsyncMock()
    app.dependency_overrides[get_report_service] = lambda: service
    return service


@pytest.fixture
def catalog_service():
    service = AsyncMock()
    app.dependency_overrides[get_catalog_service] = lambda: service
    return service


@pytest.fixture
def supplier_service():
    service = AsyncMock()
    app.dependency_overrides[get_supplier_service] = lambda: service
    return service


class TestOrderRoutes:
    def test_create_order(self, client, order_service):
        order_service.create_order.return_value = _doc(table_name="T2")

        response = client.post(f"/api/v1/restaurants/{RID}/orders/", json={"table_name": "T2"})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["table_name"] == "T2"
        order_service.create_order.assert_awaited_once_with(RID, table_name="T2", takeout=False)

    def test_missing_order_is_404(self, client, order_service):
        oid = uuid4()
        order_service.get_order.side_effect = NotFound("Order", oid)

        response = client.get(f"/api/v1/restaurants/{RID}/orders/{oid}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"
        assert response.json()["success"] is False

    def test_non_empty_sub_account_is_409(self, client, order_service):
        oid = uuid4()
        order_service.remove_sub_account.side_effect = SubAccountNotEmpty(oid, "sub_1", 2)

        response = client.delete(f"/api/v1/restaurants/{RID}/orders/{oid}/subaccounts/sub_1")

        assert response.status_code == 409
        assert response.json()["error"]["details"]["line_count"] == 2

    def test_busy_ledger_is_503_and_retryable(self, client, order_service):
        order_service.add_item.side_effect = Unavailable()

        response = client.post(
            f"/api/v1/restaurants/{RID}/orders/{uuid4()}/items", json={"menu_item_id": str(uuid4())}
        )

        assert response.status_code == 503
        assert response.json()["error"]["retryable"] is True

    def test_bad_body_is_422(self, client, order_service):
        response = client.post(f"/api/v1/restaurants/{RID}/orders/{uuid4()}/items", json={"menu_item_id": "nope"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"


class TestInventoryRoutes:
    def test_oversold_exit_is_409(self, client, inventory_service):
        item_id = uuid4()
        inventory_service.apply_movement.side_effect = InsufficientStock(item_id, "Tomato", Decimal("1"), Decimal("5"))

        response = client.post(
            f"/api/v1/restaurants/{RID}/inventory/items/{item_id}/movements",
            json={"type": "exit", "quantity": "5"},
            headers={"X-Actor-Id": "u-9", "X-Actor-Email": "cook@example.com"},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "insufficient_stock"
        actor = inventory_service.apply_movement.await_args.kwargs["actor"]
        assert actor.email == "cook@example.com"

    def test_zero_quantity_never_reaches_the_service(self, client, inventory_service):
        response = client.post(
            f"/api/v1/restaurants/{RID}/inventory/items/{uuid4()}/movements",
            json={"type": "entry", "quantity": "0"},
        )
        assert response.status_code == 422
        inventory_service.apply_movement.assert_not_awaited()


    def test_delete_supplier(self, client, supplier_service):
        sid = uuid4()
        supplier_service.delete_supplier.return_value = SupplierRecord(
            id=sid, name="Produce Co", contact_name="", phone="", email="", address="", payment_terms=""
        )

        response = client.delete(f"/api/v1/restaurants/{RID}/inventory/suppliers/{sid}")

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Produce Co"
        supplier_service.delete_supplier.assert_awaited_once_with(RID, sid)


class TestCatalogRoutes:
    def test_price_change(self, client, catalog_service):
        mid = uuid4()
        catalog_service.update_menu_item.return_value = MenuItemRecord(
            id=mid, name="Burger", price=Decimal("120.00"), status="active"
        )

        response = client.patch(f"/api/v1/restaurants/{RID}/catalog/menu-items/{mid}", json={"price": "120.00"})

        assert response.status_code == 200
        assert response.json()["data"]["price"] == "120.00"
        update = catalog_service.update_menu_item.await_args.args[2]
        assert update.model_fields_set == {"price"}

    def test_two_cost_sources_are_422(self, client, catalog_service):
        response = client.patch(
            f"/api/v1/restaurants/{RID}/catalog/menu-items/{uuid4()}",
            json={"recipe_id": str(uuid4()), "inventory_item_id": str(uuid4())},
        )
        assert response.status_code == 422
        catalog_service.update_menu_item.assert_not_awaited()

class TestReportRoutes:
    def _report(self):
        rows = [
            ProfitabilityRow(menu_item_id=uuid4(), name="Taco", category="Mains", total_revenue=Decimal("90")),
            ProfitabilityRow(menu_item_id=uuid4(), name="Agua", category="Drinks", total_revenue=Decimal("40")),
            ProfitabilityRow(menu_item_id=uuid4(), name="Burrito", category="Mains", total_revenue=Decimal("120")),
        ]
        return RangeReport(
            restaurant_id=RID,
            start=NOW,
            end=NOW,
            totals=ReportTotals(
                orders_included=3, total_revenue=Decimal("250"), total_cost=Decimal("0"), net_profit=Decimal("250")
            ),
            profitability=rows,
            consumption=[],
        )

    def test_sort_and_filter(self, client, report_service):
        report_service.generate.return_value = self._report()

        response = client.get(
            f"/api/v1/restaurants/{RID}/reports/",
            params={"date_from": "2024-05-01", "sort_by": "total_revenue", "direction": "desc", "q": "mains"},
        )

        assert response.status_code == 200
        names = [row["name"] for row in response.json()["data"]["profitability"]]
        assert names == ["Burrito", "Taco"]

    def test_unknown_sort_column_is_422(self, client, report_service):
        report_service.generate.return_value = self._report()

        response = client.get(
            f"/api/v1/restaurants/{RID}/reports/", params={"date_from": "2024-05-01", "sort_by": "colour"}
        )
        assert response.status_code == 422


def test_health_endpoint():
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
