"""
StockERP Entity Stores
======================

Per-entity caches built on the generic EntityCache engine. Each store adds
the typed lookups its entity needs; OrderCache additionally maintains the
denormalised sales and purchase list projections and keeps them in step
with order items, customers and suppliers through cache observers.
InventoryCache holds one stock record per product and location.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .cache import CacheObserver, EntityCache
from .core import CacheIntegrityError
from .models import (
    Category, Customer, Inventory, Location, LocationType, Order, OrderItem, OrderListEntry,
    OrderStatus, OrderType, Product, Record, Supplier, User, UserRole, utc_now
)

logger = logging.getLogger(__name__)

UNKNOWN_PARTY_NAME = "Unknown"


class ProductCache(EntityCache[Product]):
    """Active products indexed by SKU."""

    def __init__(self):
        super().__init__(Product)

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return self.get_by_key(sku, "sku")

    def get_by_category(self, category_id: int) -> List[Product]:
        return self.search(category_id=category_id).to_list()

    def get_by_supplier(self, supplier_id: int) -> List[Product]:
        return self.search(supplier_id=supplier_id).to_list()

    def has_products_in_category(self, category_id: int) -> bool:
        return self.search(category_id=category_id).first() is not None

    def has_products_from_supplier(self, supplier_id: int) -> bool:
        return self.search(supplier_id=supplier_id).first() is not None


class CategoryCache(EntityCache[Category]):
    """Active categories indexed by name."""

    def __init__(self):
        super().__init__(Category)

    def get_by_name(self, name: str) -> Optional[Category]:
        return self.get_by_key(name, "name")

    def get_children(self, parent_category_id: int) -> List[Category]:
        return self.search(parent_category_id=parent_category_id).to_list()

    def get_root_categories(self) -> List[Category]:
        return self.search(predicate=lambda c: c.parent_category_id is None).to_list()

    def has_children(self, category_id: int) -> bool:
        return self.search(parent_category_id=category_id).first() is not None


class CustomerCache(EntityCache[Customer]):
    """Active customers indexed by email and phone."""

    def __init__(self):
        super().__init__(Customer)

    def get_by_email(self, email: str) -> Optional[Customer]:
        return self.get_by_key(email, "email")

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        return self.get_by_key(phone, "phone")


class SupplierCache(EntityCache[Supplier]):
    """Active suppliers indexed by email and phone."""

    def __init__(self):
        super().__init__(Supplier)

    def get_by_email(self, email: str) -> Optional[Supplier]:
        return self.get_by_key(email, "email")

    def get_by_phone(self, phone: str) -> Optional[Supplier]:
        return self.get_by_key(phone, "phone")


class LocationCache(EntityCache[Location]):
    def __init__(self):
        super().__init__(Location)

    def get_by_name(self, name: str) -> Optional[Location]:
        return self.get_by_key(name, "name")

    def get_by_type(self, location_type: LocationType) -> List[Location]:
        return self.search(location_type=location_type).to_list()


class UserCache(EntityCache[User]):
    def __init__(self):
        super().__init__(User)

    def get_by_username(self, username: str) -> Optional[User]:
        return self.get_by_key(username, "username")

    def get_enabled_users(self) -> List[User]:
        return self.search(enabled=True).to_list()

    def count_by_role(self, role: UserRole) -> int:
        return self.count_by(lambda user: user.role == role)


class OrderItemCache(EntityCache[OrderItem]):
    """Order items with non-unique lookups by order and by product."""

    def __init__(self):
        self._by_order: Dict[int, Set[int]] = defaultdict(set)
        self._by_product: Dict[int, Set[int]] = defaultdict(set)
        super().__init__(OrderItem)

    def _store_derived(self, record: OrderItem, prepared: object) -> None:
        self._by_order[record.order_id].add(record.id)
        self._by_product[record.product_id].add(record.id)

    def _drop_derived(self, record: OrderItem) -> None:
        for index, key in ((self._by_order, record.order_id), (self._by_product, record.product_id)):
            bucket = index.get(key)
            if bucket is not None:
                bucket.discard(record.id)
                if not bucket:
                    del index[key]

    def _rebuild_derived(self) -> None:
        self._by_order = defaultdict(set)
        self._by_product = defaultdict(set)
        for record in self._records.values():
            self._store_derived(record, None)

    def get_by_order(self, order_id: int) -> List[OrderItem]:
        with self._lock:
            return [self._records[item_id] for item_id in sorted(self._by_order.get(order_id, ()))]

    def get_by_product(self, product_id: int) -> List[OrderItem]:
        with self._lock:
            return [self._records[item_id] for item_id in sorted(self._by_product.get(product_id, ()))]

    def order_total_value(self, order_id: int) -> Decimal:
        return sum((item.total_price for item in self.get_by_order(order_id)), Decimal("0"))

    def order_total_quantity(self, order_id: int) -> int:
        return sum(item.quantity for item in self.get_by_order(order_id))


class InventoryCache(EntityCache[Inventory]):
    """
    Stock levels keyed by (product, location).

    At most one record exists per pair; a create for a pair that is already
    cached is rejected like a secondary-key collision.
    """

    def __init__(self):
        self._by_pair: Dict[Tuple[int, int], int] = {}
        self._by_product: Dict[int, Set[int]] = defaultdict(set)
        self._by_location: Dict[int, Set[int]] = defaultdict(set)
        super().__init__(Inventory)

    def create(self, entity_id: int, candidate: Inventory) -> Optional[Inventory]:
        with self._lock:
            owner = self._by_pair.get((candidate.product_id, candidate.location_id))
            if owner is not None and owner != entity_id:
                logger.debug(
                    f"Rejected Inventory {entity_id}: product {candidate.product_id} "
                    f"already stocked at location {candidate.location_id}"
                )
                return None
            return super().create(entity_id, candidate)

    def _store_derived(self, record: Inventory, prepared: object) -> None:
        self._by_pair[(record.product_id, record.location_id)] = record.id
        self._by_product[record.product_id].add(record.id)
        self._by_location[record.location_id].add(record.id)

    def _drop_derived(self, record: Inventory) -> None:
        if self._by_pair.get((record.product_id, record.location_id)) == record.id:
            del self._by_pair[(record.product_id, record.location_id)]
        for index, key in ((self._by_product, record.product_id), (self._by_location, record.location_id)):
            bucket = index.get(key)
            if bucket is not None:
                bucket.discard(record.id)
                if not bucket:
                    del index[key]

    def _rebuild_derived(self) -> None:
        self._by_pair = {}
        self._by_product = defaultdict(set)
        self._by_location = defaultdict(set)
        for record in self._records.values():
            self._store_derived(record, None)

    def get_by_product_and_location(self, product_id: int, location_id: int) -> Optional[Inventory]:
        with self._lock:
            inventory_id = self._by_pair.get((product_id, location_id))
            return self._records.get(inventory_id) if inventory_id is not None else None

    def get_by_product(self, product_id: int) -> List[Inventory]:
        with self._lock:
            return [self._records[i] for i in sorted(self._by_product.get(product_id, ()))]

    def get_by_location(self, location_id: int) -> List[Inventory]:
        with self._lock:
            return [self._records[i] for i in sorted(self._by_location.get(location_id, ()))]

    def get_total_stock_for_product(self, product_id: int) -> int:
        return sum(inventory.current_stock for inventory in self.get_by_product(product_id))

    def get_available_stock_for_product(self, product_id: int) -> int:
        return sum(inventory.available_stock for inventory in self.get_by_product(product_id))

    def has_reserved_stock(self, inventory_id: int) -> bool:
        inventory = self.get_by_id(inventory_id)
        return inventory is not None and inventory.reserved_stock > 0


# ==================== ORDERS ====================

class _ItemTotalsObserver(CacheObserver):
    """Recomputes order totals when items change."""

    def __init__(self, orders: 'OrderCache'):
        self._orders = orders

    def on_added(self, record: Record) -> None:
        self._orders.refresh_projection(record.order_id)

    def on_updated(self, old: Record, new: Record) -> None:
        self._orders.refresh_projection(new.order_id)
        if old.order_id != new.order_id:
            self._orders.refresh_projection(old.order_id)

    def on_removed(self, record: Record) -> None:
        self._orders.refresh_projection(record.order_id)

    def on_reset(self, records: Sequence[Record]) -> None:
        self._orders.refresh_all_projections()


class _PartyNameObserver(CacheObserver):
    """Refreshes counterparty names on the orders of one order type."""

    def __init__(self, orders: 'OrderCache', order_type: OrderType):
        self._orders = orders
        self._order_type = order_type

    def on_added(self, record: Record) -> None:
        self._orders.refresh_counterparty(self._order_type, record.id)

    def on_updated(self, old: Record, new: Record) -> None:
        if old.name != new.name:
            self._orders.refresh_counterparty(self._order_type, new.id)

    def on_reset(self, records: Sequence[Record]) -> None:
        self._orders.refresh_all_projections()


class OrderCache(EntityCache[Order]):
    """
    Orders plus their denormalised list projections.

    Every cached order has exactly one OrderListEntry, kept in the sales or
    the purchase projection map according to its order type. Totals come
    from the order item cache and counterparty names from the customer or
    supplier cache. When a party disappears from its cache (for example
    after a soft delete) the last known name is kept.
    """

    def __init__(
        self,
        customers: Optional[CustomerCache] = None,
        suppliers: Optional[SupplierCache] = None,
        items: Optional[OrderItemCache] = None
    ):
        self._sales: Dict[int, OrderListEntry] = {}
        self._purchases: Dict[int, OrderListEntry] = {}
        self._customers = customers
        self._suppliers = suppliers
        self._items = items
        super().__init__(Order)

        if items is not None:
            items.add_observer(_ItemTotalsObserver(self))
        if customers is not None:
            customers.add_observer(_PartyNameObserver(self, OrderType.SALE))
        if suppliers is not None:
            suppliers.add_observer(_PartyNameObserver(self, OrderType.PURCHASE))

    def initialize(self, records):
        records = list(records)
        for order in records:
            self._projection_map(order.order_type)
        return super().initialize(records)

    # ---------- projection maintenance ----------

    def _projection_map(self, order_type: object) -> Dict[int, OrderListEntry]:
        if order_type == OrderType.SALE:
            return self._sales
        if order_type == OrderType.PURCHASE:
            return self._purchases
        raise CacheIntegrityError(f"Unrecognized order type: {order_type!r}")

    def _resolve_name(self, order: Order, previous: Optional[OrderListEntry]) -> str:
        party_cache = self._customers if order.order_type == OrderType.SALE else self._suppliers
        party_id = order.counterparty_id
        if party_cache is not None and party_id:
            party = party_cache.get_by_id(party_id)
            if party is not None:
                return party.name
        if previous is not None and previous.counterparty_id == party_id:
            return previous.counterparty_name
        return UNKNOWN_PARTY_NAME

    def _build_projection(self, order: Order) -> OrderListEntry:
        target = self._projection_map(order.order_type)
        total = self._items.order_total_value(order.id) if self._items is not None else Decimal("0")
        return OrderListEntry(
            order_id=order.id,
            order_type=order.order_type,
            counterparty_id=order.counterparty_id,
            counterparty_name=self._resolve_name(order, target.get(order.id)),
            order_date=order.order_date,
            status=order.status,
            total_amount=total,
            delivery_date=order.delivery_date,
            notes=order.notes,
            created_by=order.created_by
        )

    def _prepare(self, record: Order) -> OrderListEntry:
        return self._build_projection(record)

    def _store_derived(self, record: Order, prepared: OrderListEntry) -> None:
        self._projection_map(record.order_type)[record.id] = prepared

    def _drop_derived(self, record: Order) -> None:
        self._sales.pop(record.id, None)
        self._purchases.pop(record.id, None)

    def _rebuild_derived(self) -> None:
        projections = [(order, self._build_projection(order)) for order in self._records.values()]
        self._sales = {}
        self._purchases = {}
        for order, projection in projections:
            self._store_derived(order, projection)

    def refresh_projection(self, order_id: int) -> Optional[OrderListEntry]:
        with self._lock:
            order = self._records.get(order_id)
            if order is None:
                return None
            projection = self._build_projection(order)
            self._store_derived(order, projection)
            return projection

    def refresh_counterparty(self, order_type: OrderType, party_id: int) -> int:
        """Rebuild the projections of every order referencing ``party_id``."""
        with self._lock:
            affected = [
                order for order in self._records.values()
                if order.order_type == order_type and order.counterparty_id == party_id
            ]
            for order in affected:
                self._store_derived(order, self._build_projection(order))
        if affected:
            logger.debug(f"Refreshed {len(affected)} {order_type.value} order projection(s) for party {party_id}")
        return len(affected)

    def refresh_all_projections(self) -> None:
        with self._lock:
            self._rebuild_derived()

    # ---------- projection lookups ----------

    def get_list_entry(self, order_id: int) -> Optional[OrderListEntry]:
        with self._lock:
            return self._sales.get(order_id) or self._purchases.get(order_id)

    def get_sales_list(self) -> List[OrderListEntry]:
        with self._lock:
            entries = list(self._sales.values())
        return sorted(entries, key=_list_sort_key)

    def get_purchase_list(self) -> List[OrderListEntry]:
        with self._lock:
            entries = list(self._purchases.values())
        return sorted(entries, key=_list_sort_key)

    # ---------- order lookups ----------

    def get_by_status(self, status: OrderStatus) -> List[Order]:
        return self.search(status=status).to_list()

    def get_by_customer(self, customer_id: int) -> List[Order]:
        return self.search(order_type=OrderType.SALE, customer_id=customer_id).to_list()

    def get_by_supplier(self, supplier_id: int) -> List[Order]:
        return self.search(order_type=OrderType.PURCHASE, supplier_id=supplier_id).to_list()

    def get_overdue(self, now: Optional[datetime] = None) -> List[Order]:
        now = now or utc_now()
        return self.search(predicate=lambda order: order.is_overdue(now)).to_list()

    def customer_has_open_orders(self, customer_id: int) -> bool:
        return self.search(
            order_type=OrderType.SALE, customer_id=customer_id,
            predicate=lambda order: order.status.is_open
        ).first() is not None

    def supplier_has_open_orders(self, supplier_id: int) -> bool:
        return self.search(
            order_type=OrderType.PURCHASE, supplier_id=supplier_id,
            predicate=lambda order: order.status.is_open
        ).first() is not None

    def count_by_type(self, order_type: OrderType) -> int:
        return self.count_by(lambda order: order.order_type == order_type)

    def count_by_status(self, status: OrderStatus) -> int:
        return self.count_by(lambda order: order.status == status)


def _list_sort_key(entry: OrderListEntry):
    # Newest first; undated orders last
    timestamp = entry.order_date.timestamp() if entry.order_date else float("-inf")
    return (-timestamp, -entry.order_id)
