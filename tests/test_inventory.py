# tests/test_inventory.py
"""
Inventory Tests
===============

Stock levels per product and location through the wired application:
adjustments, reservations, transfers between locations, the transaction
and movement ledgers, stock queries and the REST routes.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from fastapi import status

from stockerp.core import ErrorCode
from stockerp.models import TransactionType

from . import DEFAULT_CREATED_BY
from .conftest import product_payload


@pytest_asyncio.fixture
async def site(application):
    widget = (await application.products.create(product_payload(sku="W-1", min_stock_level=5))).data
    main = (await application.locations.create({"name": "Main", "location_type": "warehouse"})).data
    shop = (await application.locations.create({"name": "Shop", "location_type": "store"})).data
    stock = (await application.inventory.create(
        {"product_id": widget.id, "location_id": main.id, "current_stock": 10}
    )).data
    return widget, main, shop, stock


class TestInventoryRecords:
    @pytest.mark.asyncio
    async def test_created_inventory_is_cached(self, application, site):
        widget, main, _, stock = site

        assert stock.id > 0
        assert stock.last_updated is not None
        assert application.inventory_cache.get_by_product_and_location(widget.id, main.id) == stock
        assert (await application.inventory.get_by_product_and_location(widget.id, main.id)).data.id == stock.id

    @pytest.mark.asyncio
    async def test_one_record_per_product_and_location(self, application, site):
        widget, main, _, _ = site

        result = await application.inventory.create({"product_id": widget.id, "location_id": main.id})

        assert result.error_code == ErrorCode.DUPLICATE_KEY
        assert result.error_message == "Inventory already exists for this product at this location."

    @pytest.mark.asyncio
    async def test_duplicate_is_found_in_store_after_cache_reset(self, application, site):
        widget, main, _, _ = site
        application.inventory_cache.clear()

        result = await application.inventory.create({"product_id": widget.id, "location_id": main.id})

        assert result.error_code == ErrorCode.DUPLICATE_KEY

    @pytest.mark.asyncio
    async def test_unknown_location_is_not_found(self, application, site):
        widget, _, _, _ = site

        result = await application.inventory.create({"product_id": widget.id, "location_id": 999})

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_pair_is_not_found(self, application, site):
        widget, _, shop, _ = site

        result = await application.inventory.get_by_product_and_location(widget.id, shop.id)

        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == f"No inventory for product {widget.id} at location {shop.id}."

    @pytest.mark.asyncio
    async def test_inventory_has_no_soft_delete(self, application, site):
        _, _, _, stock = site

        result = await application.inventory.soft_delete(stock.id)

        assert result.error_code == ErrorCode.INVALID_INPUT


class TestStockChanges:
    @pytest.mark.asyncio
    async def test_adjustment_changes_stock_and_records_transaction(self, application, site):
        widget, main, _, stock = site

        result = await application.inventory.adjust_stock(
            {"inventory_id": stock.id, "quantity_change": -3, "notes": "breakage", "created_by": DEFAULT_CREATED_BY}
        )

        assert result.data.current_stock == 7
        assert application.inventory_cache.get_by_id(stock.id).current_stock == 7
        entries = (await application.inventory.get_transactions(product_id=widget.id, location_id=main.id)).data
        assert [(t.transaction_type, t.quantity, t.notes) for t in entries] == [
            (TransactionType.ADJUSTMENT, 3, "breakage")
        ]

    @pytest.mark.asyncio
    async def test_adjustment_cannot_remove_reserved_stock(self, application, site):
        _, _, _, stock = site
        await application.inventory.reserve_stock({"inventory_id": stock.id, "quantity": 8})

        result = await application.inventory.adjust_stock(
            {"inventory_id": stock.id, "quantity_change": -3, "created_by": DEFAULT_CREATED_BY}
        )

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert result.error_message == "Insufficient available stock. Available: 2, Required: 3"
        assert (await application.inventory.get_by_id(stock.id)).data.current_stock == 10

    @pytest.mark.asyncio
    async def test_zero_adjustment_is_invalid_input(self, application, site):
        _, _, _, stock = site

        result = await application.inventory.adjust_stock(
            {"inventory_id": stock.id, "quantity_change": 0, "created_by": DEFAULT_CREATED_BY}
        )

        assert result.error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_reserve_and_release(self, application, site):
        _, _, _, stock = site

        reserved = await application.inventory.reserve_stock({"inventory_id": stock.id, "quantity": 4})
        released = await application.inventory.release_reserved_stock({"inventory_id": stock.id, "quantity": 1})

        assert (reserved.data.reserved_stock, reserved.data.available_stock) == (4, 6)
        assert (released.data.reserved_stock, released.data.available_stock) == (3, 7)
        assert application.inventory_cache.has_reserved_stock(stock.id)

    @pytest.mark.asyncio
    async def test_reservation_is_limited_to_available_stock(self, application, site):
        _, _, _, stock = site

        result = await application.inventory.reserve_stock({"inventory_id": stock.id, "quantity": 11})

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert result.error_message == "Insufficient available stock. Available: 10, Required: 11"

    @pytest.mark.asyncio
    async def test_release_is_limited_to_reserved_stock(self, application, site):
        _, _, _, stock = site
        await application.inventory.reserve_stock({"inventory_id": stock.id, "quantity": 2})

        result = await application.inventory.release_reserved_stock({"inventory_id": stock.id, "quantity": 3})

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert result.error_message == "Insufficient reserved stock. Reserved: 2, Requested: 3"

    @pytest.mark.asyncio
    async def test_unknown_inventory_is_not_found(self, application):
        result = await application.inventory.reserve_stock({"inventory_id": 404, "quantity": 1})

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_stock_changes_dispatch_update_events(self, application, site, recorded_events):
        _, _, _, stock = site

        await application.inventory.reserve_stock({"inventory_id": stock.id, "quantity": 1})

        assert recorded_events.types() == ["EntityUpdatedEvent"]


class TestTransfers:
    @pytest.mark.asyncio
    async def test_transfer_creates_destination_inventory(self, application, site):
        widget, main, shop, stock = site

        result = await application.inventory.transfer_stock({
            "product_id": widget.id, "from_location_id": main.id, "to_location_id": shop.id,
            "quantity": 4, "notes": "restock shop", "created_by": DEFAULT_CREATED_BY,
        })

        movement = result.data
        assert (movement.from_location_id, movement.to_location_id, movement.quantity) == (main.id, shop.id, 4)
        assert application.inventory_cache.get_by_id(stock.id).current_stock == 6
        assert application.inventory_cache.get_by_product_and_location(widget.id, shop.id).current_stock == 4
        assert (await application.inventory.get_total_stock_for_product(widget.id)).data == 10

        movements = (await application.inventory.get_movements(location_id=shop.id)).data
        assert [m.id for m in movements] == [movement.id]
        transfers = (await application.inventory.get_transactions(transaction_type="transfer")).data
        assert sorted(t.location_id for t in transfers) == sorted([main.id, shop.id])

    @pytest.mark.asyncio
    async def test_transfer_needs_available_stock(self, application, site):
        widget, main, shop, _ = site

        result = await application.inventory.transfer_stock({
            "product_id": widget.id, "from_location_id": main.id, "to_location_id": shop.id,
            "quantity": 11, "created_by": DEFAULT_CREATED_BY,
        })

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert application.inventory_cache.get_by_product_and_location(widget.id, shop.id) is None

    @pytest.mark.asyncio
    async def test_transfer_to_same_location_is_invalid_input(self, application, site):
        widget, main, _, _ = site

        result = await application.inventory.transfer_stock({
            "product_id": widget.id, "from_location_id": main.id, "to_location_id": main.id,
            "quantity": 1, "created_by": DEFAULT_CREATED_BY,
        })

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert "Cannot transfer stock to the same location" in result.error_message

    @pytest.mark.asyncio
    async def test_transfer_from_empty_location_is_not_found(self, application, site):
        widget, main, shop, _ = site

        result = await application.inventory.transfer_stock({
            "product_id": widget.id, "from_location_id": shop.id, "to_location_id": main.id,
            "quantity": 1, "created_by": DEFAULT_CREATED_BY,
        })

        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == f"No inventory for product {widget.id} at location {shop.id}."


class TestLedger:
    @pytest.mark.asyncio
    async def test_recorded_transaction_leaves_stock_alone(self, application, site):
        widget, main, _, stock = site

        result = await application.inventory.record_transaction({
            "product_id": widget.id, "location_id": main.id, "transaction_type": "damaged",
            "quantity": 2, "unit_cost": "1.25", "reference": "audit", "created_by": DEFAULT_CREATED_BY,
        })

        assert result.data.id > 0
        assert result.data.unit_cost == Decimal("1.25")
        assert application.inventory_cache.get_by_id(stock.id).current_stock == 10
        damaged = (await application.inventory.get_transactions(transaction_type=TransactionType.DAMAGED)).data
        assert [t.reference for t in damaged] == ["audit"]

    @pytest.mark.asyncio
    async def test_unknown_transaction_type_is_invalid_input(self, application):
        result = await application.inventory.get_transactions(transaction_type="misplaced")

        assert result.error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_transactions_by_date_range(self, application, site):
        _, _, _, stock = site
        await application.inventory.adjust_stock(
            {"inventory_id": stock.id, "quantity_change": 5, "created_by": DEFAULT_CREATED_BY}
        )
        now = datetime.now(timezone.utc)

        recent = await application.inventory.reader.get_transactions_by_date_range(now - timedelta(hours=1), now)
        reversed_range = await application.inventory.reader.get_transactions_by_date_range(now, now - timedelta(hours=1))

        assert len(recent.data) == 1
        assert reversed_range.error_code == ErrorCode.INVALID_INPUT


class TestStockQueries:
    @pytest.mark.asyncio
    async def test_low_and_out_of_stock(self, application, site):
        widget, _, shop, stock = site
        empty = (await application.inventory.create({"product_id": widget.id, "location_id": shop.id})).data

        assert [i.id for i in (await application.inventory.get_low_stock(10)).data] == [stock.id]
        assert (await application.inventory.get_low_stock(9)).data == []
        assert [i.id for i in (await application.inventory.get_out_of_stock()).data] == [empty.id]
        assert (await application.inventory.get_low_stock(-1)).error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_products_below_minimum_level(self, application, site):
        widget, _, _, stock = site
        gadget = (await application.products.create(product_payload(name="Gadget", sku="G-1", min_stock_level=1))).data

        assert [p["product_id"] for p in (await application.inventory.get_low_stock_products()).data] == [gadget.id]

        await application.inventory.adjust_stock(
            {"inventory_id": stock.id, "quantity_change": -6, "created_by": DEFAULT_CREATED_BY}
        )

        low = (await application.inventory.get_low_stock_products()).data
        assert sorted(p["product_id"] for p in low) == sorted([widget.id, gadget.id])
        assert next(p for p in low if p["product_id"] == widget.id)["current_stock"] == 4

    @pytest.mark.asyncio
    async def test_by_product_and_location(self, application, site):
        widget, main, _, stock = site

        assert [i.id for i in (await application.inventory.get_by_product(widget.id)).data] == [stock.id]
        assert [i.id for i in (await application.inventory.get_by_location(main.id)).data] == [stock.id]
        assert (await application.inventory.get_by_location(0)).error_code == ErrorCode.INVALID_INPUT


class TestInventoryRules:
    @pytest.mark.asyncio
    async def test_location_holding_inventory_cannot_be_deleted(self, application, site):
        _, main, shop, _ = site

        result = await application.locations.soft_delete(main.id)

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert result.error_message == f"Cannot delete location with ID {main.id} because it holds inventory."
        assert (await application.locations.soft_delete(shop.id)).is_success()

    @pytest.mark.asyncio
    async def test_reserved_inventory_cannot_be_purged(self, application, site):
        _, _, _, stock = site
        await application.inventory.reserve_stock({"inventory_id": stock.id, "quantity": 1})

        blocked = await application.inventory.hard_delete(stock.id)
        await application.inventory.release_reserved_stock({"inventory_id": stock.id, "quantity": 1})
        allowed = await application.inventory.hard_delete(stock.id)

        assert blocked.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert blocked.error_message == (
            f"Cannot delete inventory with ID {stock.id} while stock is reserved for orders."
        )
        assert allowed.is_success()
        assert application.inventory_cache.get_by_id(stock.id) is None

    @pytest.mark.asyncio
    async def test_stocked_product_cannot_be_purged(self, application, site):
        widget, _, _, _ = site

        result = await application.products.hard_delete(widget.id)

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION


class TestInventoryAPI:
    def setup_site(self, client):
        product = client.post("/api/products", json=product_payload(sku="W-1")).json()["data"]
        main = client.post("/api/locations", json={"name": "Main"}).json()["data"]
        shop = client.post("/api/locations", json={"name": "Shop"}).json()["data"]
        response = client.post(
            "/api/inventory", json={"product_id": product["id"], "location_id": main["id"], "current_stock": 10}
        )
        assert response.status_code == status.HTTP_201_CREATED
        return product, main, shop, response.json()["data"]

    def test_inventory_body_includes_available_stock(self, client):
        _, _, _, stock = self.setup_site(client)

        response = client.get(f"/api/inventory/{stock['id']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["available_stock"] == 10

    def test_reserve_and_adjust_routes(self, client):
        _, _, _, stock = self.setup_site(client)

        reserved = client.post(f"/api/inventory/{stock['id']}/reserve", json={"quantity": 4})
        adjusted = client.post(
            f"/api/inventory/{stock['id']}/adjust", json={"quantity_change": -7, "created_by": DEFAULT_CREATED_BY}
        )
        released = client.post(f"/api/inventory/{stock['id']}/release", json={"quantity": 4})

        assert reserved.json()["data"]["available_stock"] == 6
        assert adjusted.status_code == status.HTTP_409_CONFLICT
        assert adjusted.json()["error_code"] == "constraint_violation"
        assert released.json()["data"]["reserved_stock"] == 0

    def test_transfer_route(self, client):
        product, main, shop, _ = self.setup_site(client)

        response = client.post("/api/inventory/transfer", json={
            "product_id": product["id"], "from_location_id": main["id"], "to_location_id": shop["id"],
            "quantity": 3, "created_by": DEFAULT_CREATED_BY,
        })

        assert response.status_code == status.HTTP_201_CREATED
        by_product = client.get(f"/api/inventory/by-product/{product['id']}").json()["data"]
        assert sorted(i["current_stock"] for i in by_product) == [3, 7]
        movements = client.get("/api/inventory/movements", params={"product_id": product["id"]}).json()["data"]
        assert [m["quantity"] for m in movements] == [3]

    def test_same_location_transfer_is_unprocessable(self, client):
        product, main, _, _ = self.setup_site(client)

        response = client.post("/api/inventory/transfer", json={
            "product_id": product["id"], "from_location_id": main["id"], "to_location_id": main["id"],
            "quantity": 3, "created_by": DEFAULT_CREATED_BY,
        })

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error_code"] == "invalid_input"

    def test_stock_query_routes(self, client):
        _, _, _, stock = self.setup_site(client)

        low = client.get("/api/inventory/low-stock", params={"threshold": 10})
        out = client.get("/api/inventory/out-of-stock")
        ledger = client.get("/api/inventory/transactions", params={"transaction_type": "stock_in"})

        assert [i["id"] for i in low.json()["data"]] == [stock["id"]]
        assert out.json()["data"] == []
        assert ledger.json()["data"] == []

    def test_record_transaction_route(self, client):
        product, main, _, _ = self.setup_site(client)

        response = client.post("/api/inventory/transactions", json={
            "product_id": product["id"], "location_id": main["id"], "transaction_type": "return",
            "quantity": 1, "created_by": DEFAULT_CREATED_BY,
        })

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["data"]["transaction_type"] == "return"
