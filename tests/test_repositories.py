# tests/test_repositories.py
"""
Repository Tests
================

SQLAlchemy repositories against an in-memory SQLite database: mapping to
domain records, the soft-delete lifecycle, key checks, paging, search and
the entity-specific queries.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from stockerp.core import PaginationParams
from stockerp.models import (
    Category, Inventory, InventoryMovement, InventoryTransaction, LocationType, Location, OrderStatus, OrderType,
    TransactionType
)
from stockerp.repositories import (
    CategoryRepository, CustomerRepository, IEntityRepository, InventoryMovementRepository,
    InventoryRepository, InventoryTransactionRepository, LocationRepository, OrderItemRepository,
    OrderRepository, ProductRepository, SupplierRepository
)

from . import DEFAULT_CREATED_BY
from .conftest import make_customer, make_item, make_order, make_product, make_supplier


@pytest.fixture
def products(session_manager) -> ProductRepository:
    return ProductRepository(session_manager)


@pytest.fixture
def categories(session_manager) -> CategoryRepository:
    return CategoryRepository(session_manager)


@pytest.fixture
def customers(session_manager) -> CustomerRepository:
    return CustomerRepository(session_manager)


@pytest.fixture
def suppliers(session_manager) -> SupplierRepository:
    return SupplierRepository(session_manager)


@pytest.fixture
def orders(session_manager) -> OrderRepository:
    return OrderRepository(session_manager)


@pytest.fixture
def items(session_manager) -> OrderItemRepository:
    return OrderItemRepository(session_manager)


class TestMapping:
    def test_repositories_satisfy_the_protocol(self, products, orders):
        assert isinstance(products, IEntityRepository)
        assert isinstance(orders, IEntityRepository)

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_round_trips_fields(self, products):
        created_date = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)

        created = await products.create(make_product(price=Decimal("9.99"), created_date=created_date))
        loaded = await products.get_by_id(created.id)

        assert created.id > 0
        assert loaded == created
        assert loaded.price == Decimal("9.99")
        assert loaded.created_date == created_date
        assert loaded.is_deleted is False

    @pytest.mark.asyncio
    async def test_enum_columns_are_mapped_back(self, session_manager):
        locations = LocationRepository(session_manager)

        created = await locations.create(Location(name="Main", location_type=LocationType.WAREHOUSE))

        assert (await locations.get_by_id(created.id)).location_type == LocationType.WAREHOUSE

    @pytest.mark.asyncio
    async def test_naive_datetimes_are_read_as_utc(self, products):
        created = await products.create(make_product(created_date=datetime(2024, 3, 1, 8, 0)))

        assert created.created_date.tzinfo is not None
        assert created.created_date == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


class TestLifecycle:
    """Update, soft delete, restore and hard delete."""

    @pytest.mark.asyncio
    async def test_update_writes_mutable_fields_only(self, products):
        created = await products.create(make_product())

        updated = await products.update(created.with_changes(name="Gizmo", created_by=99))

        assert updated.name == "Gizmo"
        assert updated.created_by == 7

    @pytest.mark.asyncio
    async def test_update_of_missing_or_deleted_record_returns_none(self, products):
        created = await products.create(make_product())
        await products.soft_delete(created.id)

        assert await products.update(created.with_changes(name="Gizmo")) is None
        assert await products.update(make_product(999)) is None

    @pytest.mark.asyncio
    async def test_soft_delete_and_restore(self, products):
        created = await products.create(make_product())

        assert await products.soft_delete(created.id) is True
        assert await products.get_by_id(created.id) is None
        deleted = await products.get_by_id(created.id, include_deleted=True)
        assert deleted.is_deleted is True
        assert deleted.deleted_at is not None
        assert await products.soft_delete(created.id) is False

        assert await products.restore(created.id) is True
        restored = await products.get_by_id(created.id)
        assert restored.is_deleted is False
        assert restored.deleted_at is None
        assert await products.restore(created.id) is False

    @pytest.mark.asyncio
    async def test_hard_delete_removes_row(self, products):
        created = await products.create(make_product())
        await products.soft_delete(created.id)

        assert await products.hard_delete(created.id) is True
        assert await products.exists(created.id, include_deleted=True) is False
        assert await products.hard_delete(created.id) is False

    @pytest.mark.asyncio
    async def test_orders_have_no_soft_delete(self, orders):
        with pytest.raises(NotImplementedError):
            await orders.soft_delete(1)
        with pytest.raises(NotImplementedError):
            await orders.restore(1)


class TestCollections:
    @pytest_asyncio.fixture
    async def stocked(self, products):
        await products.create(make_product(name="Charlie", sku="C"))
        bravo = await products.create(make_product(name="Bravo", sku="B", category_id=None))
        await products.create(make_product(name="Alpha", sku="A", description="blue paint"))
        await products.soft_delete(bravo.id)
        return products

    @pytest.mark.asyncio
    async def test_collections_split_by_deletion_state(self, stocked):
        assert [p.name for p in await stocked.get_all_active()] == ["Alpha", "Charlie"]
        assert [p.name for p in await stocked.get_all()] == ["Alpha", "Bravo", "Charlie"]
        assert [p.name for p in await stocked.get_all_deleted()] == ["Bravo"]

    @pytest.mark.asyncio
    async def test_counts(self, stocked):
        assert await stocked.count() == 2
        assert await stocked.count(include_deleted=True) == 3
        assert await stocked.count_deleted() == 1

    @pytest.mark.asyncio
    async def test_paging(self, stocked):
        page = await stocked.get_paged(PaginationParams(page=1, page_size=1))

        assert [p.name for p in page.items] == ["Alpha"]
        assert page.total_count == 2
        assert page.total_pages == 2
        assert page.has_next

        everything = await stocked.get_paged(PaginationParams(page=2, page_size=2), include_deleted=True)
        assert [p.name for p in everything.items] == ["Charlie"]
        assert everything.total_count == 3

    @pytest.mark.asyncio
    async def test_search_by_term_and_filters(self, stocked):
        assert [p.name for p in await stocked.search("BLUE")] == ["Alpha"]
        assert [p.name for p in await stocked.search("b", include_deleted=True)] == ["Alpha", "Bravo"]
        assert [p.name for p in await stocked.search(sku="C")] == ["Charlie"]

    @pytest.mark.asyncio
    async def test_unknown_filter_raises(self, stocked):
        with pytest.raises(ValueError):
            await stocked.search(colour="red")


class TestKeys:
    @pytest.mark.asyncio
    async def test_key_exists_ignores_case_and_whitespace(self, products):
        await products.create(make_product(sku="Ab-1"))

        assert await products.key_exists("sku", "  aB-1 ")
        assert not await products.key_exists("sku", "AB-2")

    @pytest.mark.asyncio
    async def test_key_exists_casefolds_non_ascii_keys(self, products):
        await products.create(make_product(sku="ÄRM-1"))

        assert await products.key_exists("sku", "ärm-1")
        assert (await products.find_by_key("sku", "Ärm-1")).sku == "ÄRM-1"

    @pytest.mark.asyncio
    async def test_key_exists_casefolds_beyond_lowercase(self, products):
        await products.create(make_product(sku="STRASSE-1"))

        assert await products.key_exists("sku", "straße-1")

    @pytest.mark.asyncio
    async def test_key_exists_excludes_own_record(self, products):
        created = await products.create(make_product(sku="X1"))

        assert not await products.key_exists("sku", "X1", exclude_id=created.id)

    @pytest.mark.asyncio
    async def test_deleted_records_do_not_hold_keys_by_default(self, products):
        created = await products.create(make_product(sku="X1"))
        await products.soft_delete(created.id)

        assert not await products.key_exists("sku", "X1")
        assert await products.key_exists("sku", "X1", include_deleted=True)

    @pytest.mark.asyncio
    async def test_find_by_key(self, customers):
        created = await customers.create(make_customer(email="Buyer@Acme.test"))

        assert (await customers.find_by_key("email", "buyer@acme.test")).id == created.id
        assert await customers.find_by_key("email", "other@acme.test") is None

    @pytest.mark.asyncio
    async def test_non_key_field_is_rejected(self, products):
        with pytest.raises(ValueError):
            await products.key_exists("name", "Widget")


class TestEntityQueries:
    @pytest.mark.asyncio
    async def test_category_tree(self, categories):
        root = await categories.create(Category(name="Hardware"))
        child = await categories.create(Category(name="Screws", parent_category_id=root.id))

        assert [c.id for c in await categories.get_root_categories()] == [root.id]
        assert [c.id for c in await categories.get_children(root.id)] == [child.id]
        assert await categories.has_children(root.id)
        assert not await categories.has_children(child.id)

    @pytest.mark.asyncio
    async def test_product_references(self, products, categories, suppliers):
        category = await categories.create(Category(name="Hardware"))
        supplier = await suppliers.create(make_supplier())
        await products.create(make_product(category_id=category.id, supplier_id=supplier.id))

        assert await products.has_products_in_category(category.id)
        assert await products.has_products_from_supplier(supplier.id)
        assert not await products.has_products_in_category(category.id + 1)

    @pytest.mark.asyncio
    async def test_party_order_checks(self, customers, orders):
        customer = await customers.create(make_customer())
        order = await orders.create(make_order(customer_id=customer.id, order_date=datetime.now(timezone.utc)))

        assert await orders.customer_has_orders(customer.id)

        await orders.update_status(order.id, OrderStatus.COMPLETED)

        assert not await orders.customer_has_orders(customer.id)
        assert await orders.customer_has_orders(customer.id, active_only=False)

    @pytest.mark.asyncio
    async def test_overdue_and_counts(self, customers, suppliers, orders):
        customer = await customers.create(make_customer())
        supplier = await suppliers.create(make_supplier())
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        late = await orders.create(make_order(customer_id=customer.id, order_date=now - timedelta(days=5),
                                              delivery_date=now - timedelta(days=1)))
        await orders.create(make_order(customer_id=customer.id, order_date=now - timedelta(days=4),
                                       delivery_date=now + timedelta(days=1)))
        await orders.create(make_order(order_type=OrderType.PURCHASE, customer_id=None, supplier_id=supplier.id,
                                       order_date=now - timedelta(days=3), status=OrderStatus.COMPLETED,
                                       delivery_date=now - timedelta(days=2)))

        assert [o.id for o in await orders.get_overdue(now)] == [late.id]
        assert await orders.count_by_type(OrderType.SALE) == 2
        assert await orders.count_by_status(OrderStatus.COMPLETED) == 1
        assert [o.order_type for o in await orders.get_by_type(OrderType.PURCHASE)] == [OrderType.PURCHASE]

    @pytest.mark.asyncio
    async def test_orders_list_newest_first(self, customers, orders):
        customer = await customers.create(make_customer())
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        older = await orders.create(make_order(customer_id=customer.id, order_date=now - timedelta(days=1)))
        newer = await orders.create(make_order(customer_id=customer.id, order_date=now))

        assert [o.id for o in await orders.get_all_active()] == [newer.id, older.id]


class TestOrderItems:
    @pytest_asyncio.fixture
    async def order_with_items(self, customers, products, orders, items):
        customer = await customers.create(make_customer())
        first = await products.create(make_product(sku="P1"))
        second = await products.create(make_product(sku="P2"))
        order = await orders.create(make_order(customer_id=customer.id))
        await items.create(make_item(order_id=order.id, product_id=first.id, quantity=2,
                                     unit_price=Decimal("1.50"), total_price=Decimal("3.00")))
        await items.create(make_item(order_id=order.id, product_id=second.id, quantity=1,
                                     unit_price=Decimal("4.00"), total_price=Decimal("4.00")))
        return order, first, second

    @pytest.mark.asyncio
    async def test_items_by_order_and_product(self, order_with_items, items):
        order, first, _ = order_with_items

        assert len(await items.get_by_order(order.id)) == 2
        assert [i.quantity for i in await items.get_by_product(first.id)] == [2]

    @pytest.mark.asyncio
    async def test_hard_deleting_order_cascades_to_items(self, order_with_items, orders, items):
        order, _, _ = order_with_items

        assert await orders.hard_delete(order.id) is True

        assert await items.get_by_order(order.id) == []

    @pytest.mark.asyncio
    async def test_delete_by_order(self, order_with_items, items):
        order, _, _ = order_with_items

        assert await items.delete_by_order(order.id) == 2
        assert await items.count() == 0

    @pytest.mark.asyncio
    async def test_referenced_product_cannot_be_hard_deleted(self, order_with_items, products):
        _, first, _ = order_with_items

        with pytest.raises(IntegrityError):
            await products.hard_delete(first.id)


class TestInventory:
    @pytest_asyncio.fixture
    async def stocked(self, session_manager, products):
        locations = LocationRepository(session_manager)
        product = await products.create(make_product(sku="P1"))
        main = await locations.create(Location(name="Main", location_type=LocationType.WAREHOUSE))
        shop = await locations.create(Location(name="Shop", location_type=LocationType.STORE))
        inventory = InventoryRepository(session_manager)
        record = await inventory.create(Inventory(product_id=product.id, location_id=main.id, current_stock=10))
        return inventory, record, product, main, shop

    @pytest.mark.asyncio
    async def test_second_row_for_a_pair_violates_the_constraint(self, stocked):
        inventory, record, _, _, _ = stocked

        with pytest.raises(IntegrityError):
            await inventory.create(Inventory(product_id=record.product_id, location_id=record.location_id))

    @pytest.mark.asyncio
    async def test_change_stock_writes_levels_and_ledger_together(self, stocked, session_manager):
        inventory, record, product, main, _ = stocked
        ledger = InventoryTransactionRepository(session_manager)
        entry = InventoryTransaction(product_id=product.id, location_id=main.id, quantity=-4,
                                     transaction_type=TransactionType.ADJUSTMENT, created_by=DEFAULT_CREATED_BY,
                                     created_date=datetime.now(timezone.utc))

        changed = await inventory.change_stock(record.id, stock_change=-4, reserved_change=2, transactions=[entry])

        assert (changed.current_stock, changed.reserved_stock, changed.available_stock) == (6, 2, 4)
        assert changed.last_updated is not None
        assert [t.transaction_type for t in await ledger.get_by_product(product.id)] == [TransactionType.ADJUSTMENT]

    @pytest.mark.asyncio
    async def test_change_stock_refuses_invalid_levels(self, stocked, session_manager):
        inventory, record, product, main, _ = stocked
        ledger = InventoryTransactionRepository(session_manager)
        entry = InventoryTransaction(product_id=product.id, location_id=main.id, quantity=-11,
                                     created_by=DEFAULT_CREATED_BY)

        assert await inventory.change_stock(record.id, stock_change=-11, transactions=[entry]) is None
        assert await inventory.change_stock(record.id, reserved_change=11) is None
        assert await inventory.change_stock(record.id + 100, stock_change=1) is None
        assert (await inventory.get_by_id(record.id)).current_stock == 10
        assert await ledger.count() == 0

    @pytest.mark.asyncio
    async def test_transfer_creates_destination_and_records_movement(self, stocked, session_manager):
        inventory, _, product, main, shop = stocked
        ledger = InventoryTransactionRepository(session_manager)
        movements = InventoryMovementRepository(session_manager)

        source, target, movement = await inventory.transfer(InventoryMovement(
            product_id=product.id, from_location_id=main.id, to_location_id=shop.id, quantity=3,
            created_by=DEFAULT_CREATED_BY, created_date=datetime.now(timezone.utc)
        ))

        assert (source.current_stock, target.current_stock) == (7, 3)
        assert target.location_id == shop.id
        assert movement.id > 0
        assert [m.id for m in await movements.get_by_location(shop.id)] == [movement.id]
        transfers = await ledger.get_by_type(TransactionType.TRANSFER)
        assert sorted(t.location_id for t in transfers) == sorted([main.id, shop.id])
        assert {t.reference for t in transfers} == {f"Transfer {main.id} -> {shop.id}"}
        assert await inventory.get_total_stock_for_product(product.id) == 10

    @pytest.mark.asyncio
    async def test_transfer_beyond_available_stock_changes_nothing(self, stocked):
        inventory, record, product, main, shop = stocked
        await inventory.change_stock(record.id, reserved_change=8)

        result = await inventory.transfer(InventoryMovement(
            product_id=product.id, from_location_id=main.id, to_location_id=shop.id, quantity=3,
            created_by=DEFAULT_CREATED_BY
        ))

        assert result is None
        assert await inventory.get_by_product_and_location(product.id, shop.id) is None

    @pytest.mark.asyncio
    async def test_stock_level_queries(self, stocked):
        inventory, record, product, main, shop = stocked
        empty = await inventory.create(Inventory(product_id=product.id, location_id=shop.id))

        assert [i.id for i in await inventory.get_low_stock(threshold=10)] == [record.id]
        assert await inventory.get_low_stock(threshold=9) == []
        assert [i.id for i in await inventory.get_out_of_stock()] == [empty.id]
        assert await inventory.location_has_inventory(shop.id)
        assert await inventory.product_has_inventory(product.id)
