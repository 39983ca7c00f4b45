"""
StockERP Read Services
======================

Cache-first reads. Point lookups are answered by the cache and fall
through to the backing store with the same active-only filter on a miss.
Loading "all active" records always goes to the store and re-initialises
the cache with the result. Every other collection query is served by the
store and leaves the cache alone.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import logging
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from .cache import EntityCache
from .core import ErrorCode, PaginatedResult, PaginationParams, ServiceResult
from .errors import DatabaseErrorHandler
from .models import (
    Category, Inventory, InventoryMovement, InventoryTransaction, Order, OrderItem,
    OrderListEntry, OrderStatus, Product, Record, TransactionType, User
)
from .repositories import (
    CategoryRepository, InventoryMovementRepository, InventoryRepository,
    InventoryTransactionRepository, OrderItemRepository, OrderRepository, ProductRepository,
    SqlAlchemyRepository
)
from .stores import InventoryCache, OrderCache
from .validation import describe_key, invalid_id_result

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)


class EntityReadService(Generic[R]):
    """Read side of one entity type."""

    def __init__(
        self,
        cache: EntityCache[R],
        repository: SqlAlchemyRepository[R],
        error_handler: DatabaseErrorHandler
    ):
        self.cache = cache
        self.repository = repository
        self.error_handler = error_handler
        self.entity_name = cache.entity_name

    async def _query(self, operation, description: str) -> ServiceResult:
        return await self.error_handler.handle(operation, description, enable_retry=False)

    # ---------- point lookups ----------

    async def get_by_id(self, entity_id: int) -> ServiceResult[R]:
        if entity_id <= 0:
            return invalid_id_result(self.entity_name)

        cached = self.cache.get_by_id(entity_id)
        if cached is not None:
            return ServiceResult.success_result(cached)

        fetched = await self._query(
            lambda: self.repository.get_by_id(entity_id), f"Get {self.entity_name} {entity_id}"
        )
        if fetched.is_error():
            return ServiceResult.from_error(fetched)
        if fetched.data is None:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found.", ErrorCode.NOT_FOUND
            )
        logger.debug(f"{self.entity_name} {entity_id} served from the database after a cache miss")
        return ServiceResult.success_result(fetched.data)

    async def get_by_key(self, value: str, key_name: Optional[str] = None) -> ServiceResult[R]:
        """Look up an active record by a secondary key (the first declared key by default)."""
        if not self.cache.unique_keys:
            return ServiceResult.error_result(
                f"{self.entity_name} has no secondary keys.", ErrorCode.INVALID_INPUT
            )
        key_name = key_name or self.cache.unique_keys[0]
        if key_name not in self.cache.unique_keys:
            return ServiceResult.error_result(
                f"{self.entity_name} has no unique key '{key_name}'.", ErrorCode.INVALID_INPUT
            )
        if value is None or not str(value).strip():
            return ServiceResult.error_result(
                f"{self.entity_name} {key_name} cannot be empty.", ErrorCode.INVALID_INPUT
            )

        cached = self.cache.get_by_key(value, key_name)
        if cached is not None:
            return ServiceResult.success_result(cached)

        fetched = await self._query(
            lambda: self.repository.find_by_key(key_name, value),
            f"Get {self.entity_name} by {key_name}"
        )
        if fetched.is_error():
            return ServiceResult.from_error(fetched)
        if fetched.data is None:
            return ServiceResult.error_result(
                f"{self.entity_name} with {describe_key(key_name)} '{value}' not found.",
                ErrorCode.NOT_FOUND
            )
        return ServiceResult.success_result(fetched.data)

    # ---------- collections ----------

    async def get_all_active(self) -> ServiceResult[List[R]]:
        """Load every active record from the store and re-warm the cache with it."""
        fetched = await self._query(self.repository.get_all_active, f"Get all active {self.entity_name} records")
        if fetched.is_error():
            return ServiceResult.from_error(fetched)

        admitted = self.cache.initialize(fetched.data)
        logger.debug(f"{self.entity_name} cache re-warmed with {admitted} record(s)")
        return ServiceResult.success_result(fetched.data)

    async def get_all(self) -> ServiceResult[List[R]]:
        return await self._query(self.repository.get_all, f"Get all {self.entity_name} records")

    async def get_all_deleted(self) -> ServiceResult[List[R]]:
        return await self._query(self.repository.get_all_deleted, f"Get deleted {self.entity_name} records")

    async def get_paged(self, page: int, page_size: int, include_deleted: bool = False) -> ServiceResult[PaginatedResult[R]]:
        pagination = PaginationParams(page, page_size)
        if not pagination.is_valid():
            return ServiceResult.error_result(
                "Page number and page size must be positive integers.", ErrorCode.INVALID_INPUT
            )
        return await self._query(
            lambda: self.repository.get_paged(pagination, include_deleted),
            f"Get {self.entity_name} page {page}"
        )

    async def search(self, term: Optional[str] = None, include_deleted: bool = False, **filters: Any) -> ServiceResult[List[R]]:
        unknown = sorted(set(filters) - set(self.repository.record_type.field_names()))
        if unknown:
            return ServiceResult.error_result(
                f"Unknown {self.entity_name} filter field(s): {', '.join(unknown)}", ErrorCode.INVALID_INPUT
            )
        return await self._query(
            lambda: self.repository.search(term, include_deleted, **filters),
            f"Search {self.entity_name} records"
        )

    # ---------- counts ----------

    async def get_total_count(self) -> ServiceResult[int]:
        """Number of records in the store, soft-deleted ones included."""
        return await self._query(
            lambda: self.repository.count(include_deleted=True), f"Count {self.entity_name} records"
        )

    async def get_active_count(self) -> ServiceResult[int]:
        if self.cache.is_warm:
            return ServiceResult.success_result(self.cache.count())
        return await self._query(self.repository.count, f"Count active {self.entity_name} records")

    async def get_deleted_count(self) -> ServiceResult[int]:
        return await self._query(self.repository.count_deleted, f"Count deleted {self.entity_name} records")


class ProductReadService(EntityReadService[Product]):
    repository: ProductRepository

    async def get_by_sku(self, sku: str) -> ServiceResult[Product]:
        return await self.get_by_key(sku, "sku")

    async def get_by_category(self, category_id: int) -> ServiceResult[List[Product]]:
        if category_id <= 0:
            return invalid_id_result("Category")
        return await self._query(
            lambda: self.repository.get_by_category(category_id), f"Get products in category {category_id}"
        )

    async def get_by_supplier(self, supplier_id: int) -> ServiceResult[List[Product]]:
        if supplier_id <= 0:
            return invalid_id_result("Supplier")
        return await self._query(
            lambda: self.repository.get_by_supplier(supplier_id), f"Get products from supplier {supplier_id}"
        )


class CategoryReadService(EntityReadService[Category]):
    repository: CategoryRepository

    async def get_children(self, category_id: int) -> ServiceResult[List[Category]]:
        if category_id <= 0:
            return invalid_id_result(self.entity_name)
        return await self._query(
            lambda: self.repository.get_children(category_id), f"Get subcategories of {category_id}"
        )

    async def get_root_categories(self) -> ServiceResult[List[Category]]:
        return await self._query(self.repository.get_root_categories, "Get root categories")


class UserReadService(EntityReadService[User]):
    async def get_by_username(self, username: str) -> ServiceResult[User]:
        return await self.get_by_key(username, "username")


class OrderReadService(EntityReadService[Order]):
    """Order reads, including the denormalised sales and purchase lists."""

    cache: OrderCache
    repository: OrderRepository

    async def _ensure_warm(self) -> ServiceResult[None]:
        if self.cache.is_warm:
            return ServiceResult.success_result()
        loaded = await self.get_all_active()
        if loaded.is_error():
            return ServiceResult.from_error(loaded)
        return ServiceResult.success_result()

    async def get_sales_list(self) -> ServiceResult[List[OrderListEntry]]:
        warm = await self._ensure_warm()
        if warm.is_error():
            return ServiceResult.from_error(warm)
        return ServiceResult.success_result(self.cache.get_sales_list())

    async def get_purchase_list(self) -> ServiceResult[List[OrderListEntry]]:
        warm = await self._ensure_warm()
        if warm.is_error():
            return ServiceResult.from_error(warm)
        return ServiceResult.success_result(self.cache.get_purchase_list())

    async def get_list_entry(self, order_id: int) -> ServiceResult[OrderListEntry]:
        if order_id <= 0:
            return invalid_id_result(self.entity_name)
        warm = await self._ensure_warm()
        if warm.is_error():
            return ServiceResult.from_error(warm)
        entry = self.cache.get_list_entry(order_id)
        if entry is None:
            return ServiceResult.error_result(f"Order with ID {order_id} not found.", ErrorCode.NOT_FOUND)
        return ServiceResult.success_result(entry)

    async def get_by_status(self, status: Union[OrderStatus, str]) -> ServiceResult[List[Order]]:
        try:
            status = OrderStatus(status)
        except ValueError:
            return ServiceResult.error_result(f"Unknown order status: {status}", ErrorCode.INVALID_INPUT)
        return await self._query(
            lambda: self.repository.get_by_status(status), f"Get {status.value} orders"
        )

    async def get_overdue(self, now: Optional[datetime] = None) -> ServiceResult[List[Order]]:
        return await self._query(lambda: self.repository.get_overdue(now), "Get overdue orders")

    async def get_by_customer(self, customer_id: int) -> ServiceResult[List[Order]]:
        if customer_id <= 0:
            return invalid_id_result("Customer")
        return await self._query(
            lambda: self.repository.search(customer_id=customer_id), f"Get orders of customer {customer_id}"
        )

    async def get_by_supplier(self, supplier_id: int) -> ServiceResult[List[Order]]:
        if supplier_id <= 0:
            return invalid_id_result("Supplier")
        return await self._query(
            lambda: self.repository.search(supplier_id=supplier_id), f"Get orders of supplier {supplier_id}"
        )


class OrderItemReadService(EntityReadService[OrderItem]):
    repository: OrderItemRepository

    async def get_by_order(self, order_id: int) -> ServiceResult[List[OrderItem]]:
        if order_id <= 0:
            return invalid_id_result("Order")
        return await self._query(
            lambda: self.repository.get_by_order(order_id), f"Get items of order {order_id}"
        )


class InventoryReadService(EntityReadService[Inventory]):
    """Stock levels plus the transaction and movement ledgers."""

    cache: InventoryCache
    repository: InventoryRepository

    def __init__(
        self,
        cache: InventoryCache,
        repository: InventoryRepository,
        error_handler: DatabaseErrorHandler,
        transactions: Optional[InventoryTransactionRepository] = None,
        movements: Optional[InventoryMovementRepository] = None,
        products: Optional[ProductRepository] = None
    ):
        super().__init__(cache, repository, error_handler)
        self.transactions = transactions
        self.movements = movements
        self.products = products

    async def get_by_product_and_location(self, product_id: int, location_id: int) -> ServiceResult[Inventory]:
        if product_id <= 0:
            return invalid_id_result("Product")
        if location_id <= 0:
            return invalid_id_result("Location")

        cached = self.cache.get_by_product_and_location(product_id, location_id)
        if cached is not None:
            return ServiceResult.success_result(cached)

        fetched = await self._query(
            lambda: self.repository.get_by_product_and_location(product_id, location_id),
            f"Get inventory for product {product_id} at location {location_id}"
        )
        if fetched.is_error():
            return ServiceResult.from_error(fetched)
        if fetched.data is None:
            return ServiceResult.error_result(
                f"No inventory for product {product_id} at location {location_id}.", ErrorCode.NOT_FOUND
            )
        return ServiceResult.success_result(fetched.data)

    async def get_by_product(self, product_id: int) -> ServiceResult[List[Inventory]]:
        if product_id <= 0:
            return invalid_id_result("Product")
        return await self._query(
            lambda: self.repository.get_by_product(product_id), f"Get inventory of product {product_id}"
        )

    async def get_by_location(self, location_id: int) -> ServiceResult[List[Inventory]]:
        if location_id <= 0:
            return invalid_id_result("Location")
        return await self._query(
            lambda: self.repository.get_by_location(location_id), f"Get inventory at location {location_id}"
        )

    async def get_low_stock(self, threshold: int = 10) -> ServiceResult[List[Inventory]]:
        if threshold < 0:
            return ServiceResult.error_result("Threshold cannot be negative.", ErrorCode.INVALID_INPUT)
        return await self._query(lambda: self.repository.get_low_stock(threshold), "Get low stock inventory")

    async def get_out_of_stock(self) -> ServiceResult[List[Inventory]]:
        return await self._query(self.repository.get_out_of_stock, "Get out of stock inventory")

    async def get_total_stock_for_product(self, product_id: int) -> ServiceResult[int]:
        if product_id <= 0:
            return invalid_id_result("Product")
        return await self._query(
            lambda: self.repository.get_total_stock_for_product(product_id),
            f"Total stock of product {product_id}"
        )

    async def get_low_stock_products(self) -> ServiceResult[List[Dict[str, Any]]]:
        """Active products whose stock across all locations is at or below their minimum level."""
        if self.products is None:
            return ServiceResult.success_result([])

        products = await self._query(self.products.get_all_active, "Get products for stock levels")
        if products.is_error():
            return ServiceResult.from_error(products)
        levels = await self._query(self.repository.get_all_active, "Get inventory for stock levels")
        if levels.is_error():
            return ServiceResult.from_error(levels)

        totals: Dict[int, int] = {}
        for inventory in levels.data:
            totals[inventory.product_id] = totals.get(inventory.product_id, 0) + inventory.current_stock

        low = []
        for product in products.data:
            stock = totals.get(product.id, 0)
            if product.is_low_stock(stock):
                low.append({
                    "product_id": product.id,
                    "sku": product.sku,
                    "name": product.name,
                    "current_stock": stock,
                    "min_stock_level": product.min_stock_level,
                })
        return ServiceResult.success_result(low)

    # ---------- ledgers ----------

    async def get_transactions(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
        transaction_type: Optional[Union[TransactionType, str]] = None
    ) -> ServiceResult[List[InventoryTransaction]]:
        if self.transactions is None:
            return ServiceResult.success_result([])
        if transaction_type is not None:
            try:
                transaction_type = TransactionType(transaction_type)
            except ValueError:
                return ServiceResult.error_result(
                    f"Unknown transaction type: {transaction_type}", ErrorCode.INVALID_INPUT
                )
        return await self._query(
            lambda: self.transactions.search(
                product_id=product_id, location_id=location_id, transaction_type=transaction_type
            ),
            "Get inventory transactions"
        )

    async def get_transactions_by_date_range(self, start: datetime, end: datetime) -> ServiceResult[List[InventoryTransaction]]:
        if self.transactions is None:
            return ServiceResult.success_result([])
        if start > end:
            return ServiceResult.error_result("Start date must be before end date.", ErrorCode.INVALID_INPUT)
        return await self._query(
            lambda: self.transactions.get_by_date_range(start, end), "Get inventory transactions by date"
        )

    async def get_movements(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None
    ) -> ServiceResult[List[InventoryMovement]]:
        if self.movements is None:
            return ServiceResult.success_result([])
        if location_id is not None:
            movements = await self._query(
                lambda: self.movements.get_by_location(location_id), f"Get movements at location {location_id}"
            )
            if movements.is_error() or product_id is None:
                return movements
            return ServiceResult.success_result([m for m in movements.data if m.product_id == product_id])
        return await self._query(lambda: self.movements.search(product_id=product_id), "Get inventory movements")

    async def get_movements_by_date_range(self, start: datetime, end: datetime) -> ServiceResult[List[InventoryMovement]]:
        if self.movements is None:
            return ServiceResult.success_result([])
        if start > end:
            return ServiceResult.error_result("Start date must be before end date.", ErrorCode.INVALID_INPUT)
        return await self._query(
            lambda: self.movements.get_by_date_range(start, end), "Get inventory movements by date"
        )
