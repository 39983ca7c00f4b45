"""
StockERP Entity Facades
=======================

One facade per entity type composing its read, write and validation
services behind a single interface, plus bulk operations and background
cache refreshes.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, List, Optional, TypeVar, Union

from .core import ErrorCode, PaginatedResult, ServiceResult
from .models import (
    ChangePassword, InputModel, Inventory, InventoryMovement, InventoryTransaction, Order,
    OrderItem, OrderListEntry, OrderStatus, Product, Record, StockAdjustment, StockReservation,
    StockTransfer, TransactionCreate, TransactionType, User
)
from .readers import (
    EntityReadService, InventoryReadService, OrderItemReadService, OrderReadService,
    ProductReadService, UserReadService
)
from .validation import EntityValidationService
from .writers import EntityWriteService, InventoryWriteService, OrderWriteService, UserWriteService

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)


class EntityService(Generic[R]):
    """Facade over the read, write and validation services of one entity."""

    def __init__(
        self,
        read_service: EntityReadService[R],
        write_service: EntityWriteService[R],
        validation_service: EntityValidationService[R]
    ):
        self.reader = read_service
        self.writer = write_service
        self.validation = validation_service
        self.cache = read_service.cache
        self.entity_name = read_service.entity_name
        self._refresh_task: Optional[asyncio.Task] = None

    # ---------- writes ----------

    async def create(self, data: Union[InputModel, Dict[str, Any]]) -> ServiceResult[R]:
        return await self.writer.create(data)

    async def update(self, data: Union[InputModel, Dict[str, Any]]) -> ServiceResult[R]:
        return await self.writer.update(data)

    async def soft_delete(self, entity_id: int) -> ServiceResult[bool]:
        return await self.writer.soft_delete(entity_id)

    async def restore(self, entity_id: int) -> ServiceResult[Optional[R]]:
        return await self.writer.restore(entity_id)

    async def hard_delete(self, entity_id: int) -> ServiceResult[bool]:
        return await self.writer.hard_delete(entity_id)

    # ---------- reads ----------

    async def get_by_id(self, entity_id: int) -> ServiceResult[R]:
        return await self.reader.get_by_id(entity_id)

    async def get_by_key(self, value: str, key_name: Optional[str] = None) -> ServiceResult[R]:
        return await self.reader.get_by_key(value, key_name)

    async def get_all_active(self) -> ServiceResult[List[R]]:
        return await self.reader.get_all_active()

    async def get_all(self) -> ServiceResult[List[R]]:
        return await self.reader.get_all()

    async def get_all_deleted(self) -> ServiceResult[List[R]]:
        return await self.reader.get_all_deleted()

    async def get_paged(self, page: int, page_size: int, include_deleted: bool = False) -> ServiceResult[PaginatedResult[R]]:
        return await self.reader.get_paged(page, page_size, include_deleted)

    async def search(self, term: Optional[str] = None, **filters: Any) -> ServiceResult[List[R]]:
        """Search the active records held in the cache, warming it first if needed."""
        if not self.cache.is_warm:
            warmed = await self.reader.get_all_active()
            if warmed.is_error():
                return ServiceResult.from_error(warmed)
        try:
            return ServiceResult.success_result(self.cache.search(term, **filters).to_list())
        except ValueError as e:
            return ServiceResult.error_result(str(e), ErrorCode.INVALID_INPUT)

    async def search_store(self, term: Optional[str] = None, include_deleted: bool = False,
                           **filters: Any) -> ServiceResult[List[R]]:
        return await self.reader.search(term, include_deleted, **filters)

    async def get_total_count(self) -> ServiceResult[int]:
        return await self.reader.get_total_count()

    async def get_active_count(self) -> ServiceResult[int]:
        return await self.reader.get_active_count()

    async def get_deleted_count(self) -> ServiceResult[int]:
        return await self.reader.get_deleted_count()

    async def exists(self, entity_id: int, include_deleted: bool = False) -> ServiceResult[bool]:
        return await self.validation.check_exists(entity_id, include_deleted)

    async def is_key_available(self, key_name: str, value: str, exclude_id: Optional[int] = None) -> ServiceResult[bool]:
        return await self.validation.error_handler.handle(
            lambda: self.validation.is_key_available(key_name, value, exclude_id),
            f"Check {self.entity_name} {key_name} availability",
            enable_retry=False
        )

    # ---------- bulk operations ----------

    async def _bulk(
        self,
        entity_ids: Iterable[int],
        operation: Callable[[int], Awaitable[ServiceResult[Any]]],
        label: str
    ) -> ServiceResult[int]:
        succeeded: List[int] = []
        errors: List[str] = []

        for entity_id in entity_ids:
            result = await operation(entity_id)
            if result.is_success():
                succeeded.append(entity_id)
            else:
                errors.append(f"{self.entity_name} {entity_id}: {result.error_message}")

        if errors:
            logger.warning(f"{label} of {self.entity_name} records finished with {len(errors)} failure(s)")
            return ServiceResult.error_result(
                f"{label} completed with errors: {'; '.join(errors)}",
                ErrorCode.PARTIAL_FAILURE,
                metadata={'succeeded': succeeded, 'failed_count': len(errors)}
            )
        return ServiceResult.success_result(len(succeeded), metadata={'succeeded': succeeded})

    async def bulk_soft_delete(self, entity_ids: Iterable[int]) -> ServiceResult[int]:
        """
        Soft delete each id independently.

        Returns:
            ServiceResult: Number of deleted records, or PARTIAL_FAILURE listing
            every id that failed. Failures never undo the successful deletes.
        """
        return await self._bulk(entity_ids, self.writer.soft_delete, "Bulk soft delete")

    async def bulk_restore(self, entity_ids: Iterable[int]) -> ServiceResult[int]:
        return await self._bulk(entity_ids, self.writer.restore, "Bulk restore")

    # ---------- cache maintenance ----------

    def refresh_cache(self) -> asyncio.Task:
        """Reload the active records in the background. Readers keep the old state until the swap."""
        self._refresh_task = asyncio.create_task(self._refresh())
        return self._refresh_task

    async def _refresh(self) -> None:
        try:
            result = await self.reader.get_all_active()
            if result.is_success():
                logger.info(f"{self.entity_name} cache refreshed with {self.cache.count()} record(s)")
            else:
                logger.warning(f"{self.entity_name} cache refresh failed: {result.error_message}")
        except Exception:
            logger.exception(f"{self.entity_name} cache refresh crashed")

    def get_cache_statistics(self) -> Dict[str, Any]:
        return self.cache.get_statistics()


class ProductService(EntityService[Product]):
    reader: ProductReadService

    async def get_by_sku(self, sku: str) -> ServiceResult[Product]:
        return await self.reader.get_by_sku(sku)

    async def get_by_category(self, category_id: int) -> ServiceResult[List[Product]]:
        return await self.reader.get_by_category(category_id)


class UserService(EntityService[User]):
    reader: UserReadService
    writer: UserWriteService

    async def get_by_username(self, username: str) -> ServiceResult[User]:
        return await self.reader.get_by_username(username)

    async def change_password(self, data: Union[ChangePassword, Dict[str, Any]]) -> ServiceResult[bool]:
        return await self.writer.change_password(data)


class OrderService(EntityService[Order]):
    reader: OrderReadService
    writer: OrderWriteService

    async def update_status(self, order_id: int, status: Union[OrderStatus, str]) -> ServiceResult[Order]:
        return await self.writer.update_status(order_id, status)

    async def get_sales_list(self) -> ServiceResult[List[OrderListEntry]]:
        return await self.reader.get_sales_list()

    async def get_purchase_list(self) -> ServiceResult[List[OrderListEntry]]:
        return await self.reader.get_purchase_list()

    async def get_list_entry(self, order_id: int) -> ServiceResult[OrderListEntry]:
        return await self.reader.get_list_entry(order_id)

    async def get_by_status(self, status: Union[OrderStatus, str]) -> ServiceResult[List[Order]]:
        return await self.reader.get_by_status(status)

    async def get_overdue(self, now: Optional[datetime] = None) -> ServiceResult[List[Order]]:
        return await self.reader.get_overdue(now)


class OrderItemService(EntityService[OrderItem]):
    reader: OrderItemReadService

    async def get_by_order(self, order_id: int) -> ServiceResult[List[OrderItem]]:
        return await self.reader.get_by_order(order_id)


class InventoryService(EntityService[Inventory]):
    reader: InventoryReadService
    writer: InventoryWriteService

    async def get_by_product_and_location(self, product_id: int, location_id: int) -> ServiceResult[Inventory]:
        return await self.reader.get_by_product_and_location(product_id, location_id)

    async def get_by_product(self, product_id: int) -> ServiceResult[List[Inventory]]:
        return await self.reader.get_by_product(product_id)

    async def get_by_location(self, location_id: int) -> ServiceResult[List[Inventory]]:
        return await self.reader.get_by_location(location_id)

    async def get_low_stock(self, threshold: int = 10) -> ServiceResult[List[Inventory]]:
        return await self.reader.get_low_stock(threshold)

    async def get_out_of_stock(self) -> ServiceResult[List[Inventory]]:
        return await self.reader.get_out_of_stock()

    async def get_total_stock_for_product(self, product_id: int) -> ServiceResult[int]:
        return await self.reader.get_total_stock_for_product(product_id)

    async def get_low_stock_products(self) -> ServiceResult[List[Dict[str, Any]]]:
        return await self.reader.get_low_stock_products()

    async def adjust_stock(self, data: Union[StockAdjustment, Dict[str, Any]]) -> ServiceResult[Inventory]:
        return await self.writer.adjust_stock(data)

    async def reserve_stock(self, data: Union[StockReservation, Dict[str, Any]]) -> ServiceResult[Inventory]:
        return await self.writer.reserve_stock(data)

    async def release_reserved_stock(self, data: Union[StockReservation, Dict[str, Any]]) -> ServiceResult[Inventory]:
        return await self.writer.release_reserved_stock(data)

    async def transfer_stock(self, data: Union[StockTransfer, Dict[str, Any]]) -> ServiceResult[InventoryMovement]:
        return await self.writer.transfer_stock(data)

    async def record_transaction(self, data: Union[TransactionCreate, Dict[str, Any]]) -> ServiceResult[InventoryTransaction]:
        return await self.writer.record_transaction(data)

    async def get_transactions(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
        transaction_type: Optional[Union[TransactionType, str]] = None
    ) -> ServiceResult[List[InventoryTransaction]]:
        return await self.reader.get_transactions(product_id, location_id, transaction_type)

    async def get_movements(self, product_id: Optional[int] = None,
                            location_id: Optional[int] = None) -> ServiceResult[List[InventoryMovement]]:
        return await self.reader.get_movements(product_id, location_id)
