"""
StockERP Write Services
=======================

Write services are the only components that mutate both the backing store
and the entity caches. Every operation follows the same order:

1. input validation (pydantic models, positive ids)
2. business validation (existence, uniqueness, pluggable rules)
3. the backing-store mutation, through DatabaseErrorHandler
4. cache synchronisation, which only logs a warning when it fails

The cache is never touched when step 3 fails.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from .cache import EntityCache
from .core import (
    EntityCreatedEvent, EntityDeletedEvent, EntityRestoredEvent, EntityUpdatedEvent,
    ErrorCode, EventDispatcher, DomainEvent, ServiceResult
)
from .errors import DatabaseErrorHandler
from .models import (
    Category, CategoryCreate, CategoryUpdate, ChangePassword, Customer, CustomerCreate,
    CustomerUpdate, InputModel, Inventory, InventoryCreate, InventoryMovement,
    InventoryTransaction, InventoryUpdate, Location, LocationCreate, LocationUpdate, Order,
    OrderCreate, OrderItem, OrderItemCreate, OrderItemUpdate, OrderStatus, OrderType,
    OrderUpdate, Product, ProductCreate, ProductUpdate, Record, StockAdjustment,
    StockReservation, StockTransfer, Supplier, SupplierCreate, SupplierUpdate,
    TransactionCreate, TransactionType, User, UserCreate, UserUpdate, utc_now
)
from .repositories import (
    InventoryTransactionRepository, OrderItemRepository, OrderRepository, SqlAlchemyRepository
)
from .security import PasswordManager
from .stores import OrderItemCache
from .validation import EntityValidationService, invalid_id_result

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)
M = TypeVar('M', bound=InputModel)


def format_validation_errors(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into ``"Validation failed: e1; e2"``."""
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        message = detail.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return f"Validation failed: {'; '.join(messages)}"


def parse_input(model_type: Type[M], data: Union[M, Dict[str, Any]]) -> ServiceResult[M]:
    if isinstance(data, model_type):
        return ServiceResult.success_result(data)
    try:
        return ServiceResult.success_result(model_type.model_validate(data))
    except PydanticValidationError as e:
        return ServiceResult.error_result(format_validation_errors(e), ErrorCode.INVALID_INPUT)


class EntityWriteService(Generic[R]):
    """
    Generic create/update/soft-delete/restore/hard-delete orchestration for
    one entity type.

    Subclasses declare their pydantic input models and may override the
    ``_build_record`` and ``_validate_*`` hooks. ``references`` maps a
    foreign-key field of the record to the validation service of the entity
    it points at; non-null references must exist and be active.
    """

    create_model: Type[InputModel]
    update_model: Type[InputModel]

    def __init__(
        self,
        cache: EntityCache[R],
        repository: SqlAlchemyRepository[R],
        validation: EntityValidationService[R],
        error_handler: DatabaseErrorHandler,
        event_dispatcher: Optional[EventDispatcher] = None,
        references: Optional[Dict[str, EntityValidationService]] = None
    ):
        self.cache = cache
        self.repository = repository
        self.validation = validation
        self.error_handler = error_handler
        self.event_dispatcher = event_dispatcher
        self.references: Dict[str, EntityValidationService] = dict(references or {})
        self.entity_name = cache.entity_name

    # ---------- hooks ----------

    async def _build_record(self, payload: InputModel) -> ServiceResult[R]:
        return ServiceResult.success_result(payload.to_record())

    async def _validate_create(self, record: R) -> ServiceResult[None]:
        references = await self._validate_references(record)
        if references.is_error():
            return references
        return await self.validation.validate_unique_keys(record)

    async def _validate_update(self, candidate: R, existing: R) -> ServiceResult[None]:
        references = await self._validate_references(candidate, existing)
        if references.is_error():
            return references
        return await self.validation.validate_unique_keys(candidate, exclude_id=existing.id)

    async def _validate_hard_delete(self, entity_id: int) -> ServiceResult[None]:
        return ServiceResult.success_result()

    async def _after_update(self, existing: R, updated: R) -> None:
        """Runs once the update is stored and cached."""

    async def _validate_references(self, record: R, existing: Optional[R] = None) -> ServiceResult[None]:
        for field_name, target in self.references.items():
            value = getattr(record, field_name)
            if not value:
                continue
            if existing is not None and getattr(existing, field_name) == value:
                continue

            found = await target.check_exists(value)
            if found.is_error():
                return ServiceResult.from_error(found)
            if not found.data:
                return ServiceResult.error_result(
                    f"{target.entity_name} with ID {value} not found.", ErrorCode.NOT_FOUND
                )
        return ServiceResult.success_result()

    # ---------- helpers ----------

    async def _dispatch(self, event: DomainEvent) -> None:
        if self.event_dispatcher:
            await self.event_dispatcher.dispatch(event)

    async def _get_active(self, entity_id: int) -> ServiceResult[Optional[R]]:
        cached = self.cache.get_by_id(entity_id)
        if cached is not None:
            return ServiceResult.success_result(cached)
        return await self.error_handler.handle(
            lambda: self.repository.get_by_id(entity_id),
            f"Get {self.entity_name} {entity_id}",
            enable_retry=False
        )

    def _not_active(self, entity_id: int) -> ServiceResult:
        return ServiceResult.error_result(
            f"{self.entity_name} with ID {entity_id} not found or is deleted. "
            f"Restore the {self.entity_name.lower()} first if it was deleted.",
            ErrorCode.NOT_FOUND
        )

    def _unsupported(self, operation: str) -> ServiceResult:
        return ServiceResult.error_result(
            f"{self.entity_name} does not support {operation}.", ErrorCode.INVALID_INPUT
        )

    @staticmethod
    def _changes(old: R, new: R) -> Dict[str, Tuple[Any, Any]]:
        return {
            name: (getattr(old, name), getattr(new, name))
            for name in type(new).MUTABLE_FIELDS
            if getattr(old, name) != getattr(new, name)
        }

    # ---------- operations ----------

    async def create(self, data: Union[InputModel, Dict[str, Any]]) -> ServiceResult[R]:
        """Validate, persist and cache a new record."""
        parsed = parse_input(self.create_model, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)

        built = await self._build_record(parsed.data)
        if built.is_error():
            return ServiceResult.from_error(built)
        record = built.data

        valid = await self._validate_create(record)
        if valid.is_error():
            return ServiceResult.from_error(valid)

        stored = await self.error_handler.handle(
            lambda: self.repository.create(record), f"Create {self.entity_name}"
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        created = stored.data

        if self.cache.create(created.id, created) is None:
            logger.warning(
                f"{self.entity_name} created in database (ID: {created.id}) but failed to add to cache"
            )

        logger.info(f"{self.entity_name} {created.id} created")
        await self._dispatch(EntityCreatedEvent(self.entity_name, created))
        return ServiceResult.success_result(created)

    async def update(self, data: Union[InputModel, Dict[str, Any]]) -> ServiceResult[R]:
        """Apply an update to an active record and keep the cache in step."""
        parsed = parse_input(self.update_model, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        payload = parsed.data

        if payload.id <= 0:
            return invalid_id_result(self.entity_name)

        current = await self._get_active(payload.id)
        if current.is_error():
            return ServiceResult.from_error(current)
        existing = current.data
        if existing is None:
            return self._not_active(payload.id)

        return await self._update_record(payload.apply_to(existing), existing)

    async def _update_record(self, candidate: R, existing: R) -> ServiceResult[R]:
        valid = await self._validate_update(candidate, existing)
        if valid.is_error():
            return ServiceResult.from_error(valid)

        stored = await self.error_handler.handle(
            lambda: self.repository.update(candidate), f"Update {self.entity_name} {existing.id}"
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        updated = stored.data
        if updated is None:
            return self._not_active(existing.id)

        if self.cache.update(updated) is None:
            logger.warning(
                f"{self.entity_name} updated in database (ID: {updated.id}) but failed to update cache"
            )

        await self._after_update(existing, updated)

        logger.info(f"{self.entity_name} {updated.id} updated")
        await self._dispatch(EntityUpdatedEvent(self.entity_name, updated, self._changes(existing, updated)))
        return ServiceResult.success_result(updated)

    async def soft_delete(self, entity_id: int) -> ServiceResult[bool]:
        """Move an active record to the deleted state and out of the cache."""
        if not self.repository.soft_delete_enabled:
            return self._unsupported("soft delete")

        valid = await self.validation.validate_for_deletion(entity_id)
        if valid.is_error():
            return ServiceResult.from_error(valid)

        stored = await self.error_handler.handle(
            lambda: self.repository.soft_delete(entity_id),
            f"Soft delete {self.entity_name} {entity_id}",
            enable_retry=False
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        if not stored.data:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found or already deleted.",
                ErrorCode.NOT_FOUND
            )

        if not self.cache.delete(entity_id):
            logger.warning(
                f"{self.entity_name} soft deleted in database (ID: {entity_id}) "
                f"but wasn't found in active cache"
            )

        logger.info(f"{self.entity_name} {entity_id} soft deleted")
        await self._dispatch(EntityDeletedEvent(self.entity_name, entity_id))
        return ServiceResult.success_result(True)

    async def restore(self, entity_id: int) -> ServiceResult[Optional[R]]:
        """
        Bring a soft-deleted record back to the active state.

        The restored record is re-read from the backing store before it is
        added to the cache. The returned data is None only if that re-read
        failed, in which case the cache catches up on the next reload.
        """
        if not self.repository.soft_delete_enabled:
            return self._unsupported("restore")

        valid = await self.validation.validate_for_restore(entity_id)
        if valid.is_error():
            return ServiceResult.from_error(valid)

        stored = await self.error_handler.handle(
            lambda: self.repository.restore(entity_id),
            f"Restore {self.entity_name} {entity_id}",
            enable_retry=False
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        if not stored.data:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found or not deleted.",
                ErrorCode.NOT_FOUND
            )

        fetched = await self.error_handler.handle(
            lambda: self.repository.get_by_id(entity_id),
            f"Reload restored {self.entity_name} {entity_id}",
            enable_retry=False
        )
        restored = fetched.get_data_or_none()
        if restored is None or self._sync_restored(restored) is None:
            logger.warning(
                f"{self.entity_name} restored in database (ID: {entity_id}) but failed to add to cache"
            )

        logger.info(f"{self.entity_name} {entity_id} restored")
        await self._dispatch(EntityRestoredEvent(self.entity_name, entity_id))
        return ServiceResult.success_result(restored)

    def _sync_restored(self, restored: R) -> Optional[R]:
        if self.cache.exists(restored.id):
            return self.cache.update(restored)
        return self.cache.create(restored.id, restored)

    async def hard_delete(self, entity_id: int) -> ServiceResult[bool]:
        """Permanently remove a record, whether it is active or soft-deleted."""
        valid = await self.validation.validate_for_hard_deletion(entity_id)
        if valid.is_error():
            return ServiceResult.from_error(valid)

        allowed = await self._validate_hard_delete(entity_id)
        if allowed.is_error():
            return ServiceResult.from_error(allowed)

        stored = await self.error_handler.handle(
            lambda: self.repository.hard_delete(entity_id),
            f"Hard delete {self.entity_name} {entity_id}",
            enable_retry=False
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        if not stored.data:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found.", ErrorCode.NOT_FOUND
            )

        if not self.cache.delete(entity_id):
            logger.debug(f"{self.entity_name} {entity_id} was not cached when hard deleted")

        self._after_hard_delete(entity_id)
        logger.info(f"{self.entity_name} {entity_id} permanently deleted")
        await self._dispatch(EntityDeletedEvent(self.entity_name, entity_id, hard=True))
        return ServiceResult.success_result(True)

    def _after_hard_delete(self, entity_id: int) -> None:
        pass


# ==================== ENTITY WRITE SERVICES ====================

class ProductWriteService(EntityWriteService[Product]):
    create_model = ProductCreate
    update_model = ProductUpdate


class CategoryWriteService(EntityWriteService[Category]):
    create_model = CategoryCreate
    update_model = CategoryUpdate

    async def _validate_update(self, candidate: Category, existing: Category) -> ServiceResult[None]:
        valid = await super()._validate_update(candidate, existing)
        if valid.is_error():
            return valid
        if candidate.parent_category_id == existing.parent_category_id:
            return valid
        return await self._validate_parent_chain(candidate)

    async def _validate_parent_chain(self, category: Category) -> ServiceResult[None]:
        """Walk the ancestors of the new parent; reaching ``category`` would close a cycle."""
        seen = set()
        parent_id = category.parent_category_id
        while parent_id and parent_id not in seen:
            if parent_id == category.id:
                logger.warning(f"Rejected moving category {category.id}: parent chain loops back to it")
                return ServiceResult.error_result(
                    "A category cannot be moved under itself or one of its own subcategories.",
                    ErrorCode.INVALID_INPUT
                )
            seen.add(parent_id)

            parent = self.cache.get_by_id(parent_id)
            if parent is None:
                fetched = await self.error_handler.handle(
                    lambda parent_id=parent_id: self.repository.get_by_id(parent_id, include_deleted=True),
                    f"Get parent {self.entity_name} {parent_id}",
                    enable_retry=False
                )
                if fetched.is_error():
                    return ServiceResult.from_error(fetched)
                parent = fetched.data
            parent_id = parent.parent_category_id if parent is not None else None
        return ServiceResult.success_result()


class CustomerWriteService(EntityWriteService[Customer]):
    create_model = CustomerCreate
    update_model = CustomerUpdate


class SupplierWriteService(EntityWriteService[Supplier]):
    create_model = SupplierCreate
    update_model = SupplierUpdate


class LocationWriteService(EntityWriteService[Location]):
    create_model = LocationCreate
    update_model = LocationUpdate


class UserWriteService(EntityWriteService[User]):
    """User writes: plain passwords are hashed before they reach the store."""

    create_model = UserCreate
    update_model = UserUpdate

    def __init__(self, *args, password_manager: Optional[PasswordManager] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.password_manager = password_manager or PasswordManager()

    def _check_strength(self, password: str) -> ServiceResult[None]:
        is_valid, errors = self.password_manager.validate_password_strength(password)
        if not is_valid:
            return ServiceResult.error_result(
                f"Validation failed: {'; '.join(errors)}", ErrorCode.INVALID_INPUT
            )
        return ServiceResult.success_result()

    async def _build_record(self, payload: UserCreate) -> ServiceResult[User]:
        strength = self._check_strength(payload.password)
        if strength.is_error():
            return ServiceResult.from_error(strength)
        return ServiceResult.success_result(
            payload.to_record(self.password_manager.hash_password(payload.password))
        )

    async def change_password(self, data: Union[ChangePassword, Dict[str, Any]]) -> ServiceResult[bool]:
        """Replace a user's password after verifying the current one."""
        parsed = parse_input(ChangePassword, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        payload = parsed.data

        if payload.user_id <= 0:
            return invalid_id_result(self.entity_name)

        current = await self._get_active(payload.user_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        user = current.data
        if user is None:
            return self._not_active(payload.user_id)

        if not self.password_manager.verify_password(payload.current_password, user.password_hash):
            logger.warning(f"Password change rejected for user {user.id}: current password mismatch")
            return ServiceResult.error_result("Current password is incorrect.", ErrorCode.INVALID_INPUT)

        strength = self._check_strength(payload.new_password)
        if strength.is_error():
            return ServiceResult.from_error(strength)

        candidate = user.with_changes(password_hash=self.password_manager.hash_password(payload.new_password))
        updated = await self._update_record(candidate, user)
        if updated.is_error():
            return ServiceResult.from_error(updated)
        return ServiceResult.success_result(True)


class InventoryWriteService(EntityWriteService[Inventory]):
    """
    Stock levels per (product, location) and the ledger behind them.

    Every change to a stock level goes through ``change_stock``, which
    writes the new levels and their transaction rows together.
    """

    create_model = InventoryCreate
    update_model = InventoryUpdate

    def __init__(self, *args, transaction_repository: Optional[InventoryTransactionRepository] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.transaction_repository = transaction_repository

    # ---------- lookups ----------

    async def find(self, product_id: int, location_id: int) -> ServiceResult[Optional[Inventory]]:
        cached = self.cache.get_by_product_and_location(product_id, location_id)
        if cached is not None:
            return ServiceResult.success_result(cached)
        return await self.error_handler.handle(
            lambda: self.repository.get_by_product_and_location(product_id, location_id),
            f"Get {self.entity_name} for product {product_id} at location {location_id}",
            enable_retry=False
        )

    async def _get_for_change(self, inventory_id: int) -> ServiceResult[Inventory]:
        if inventory_id <= 0:
            return invalid_id_result(self.entity_name)
        current = await self._get_active(inventory_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        if current.data is None:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {inventory_id} not found.", ErrorCode.NOT_FOUND
            )
        return current

    # ---------- validation hooks ----------

    async def _validate_create(self, record: Inventory) -> ServiceResult[None]:
        references = await self._validate_references(record)
        if references.is_error():
            return references

        existing = await self.find(record.product_id, record.location_id)
        if existing.is_error():
            return ServiceResult.from_error(existing)
        if existing.data is not None:
            return ServiceResult.error_result(
                "Inventory already exists for this product at this location.", ErrorCode.DUPLICATE_KEY
            )
        return ServiceResult.success_result()

    # ---------- stock operations ----------

    async def change_stock(
        self,
        inventory: Inventory,
        stock_change: int = 0,
        reserved_change: int = 0,
        transactions: Sequence[InventoryTransaction] = ()
    ) -> ServiceResult[Inventory]:
        """Persist level deltas with their ledger rows, then sync the cache."""
        stored = await self.error_handler.handle(
            lambda: self.repository.change_stock(inventory.id, stock_change, reserved_change, transactions),
            f"Change stock of {self.entity_name} {inventory.id}"
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        updated = stored.data
        if updated is None:
            return ServiceResult.error_result(
                f"Stock of {self.entity_name.lower()} {inventory.id} cannot change by {stock_change} "
                f"(reserved {reserved_change}) without going out of range.",
                ErrorCode.CONSTRAINT_VIOLATION
            )

        if self._sync(updated) is None:
            logger.warning(
                f"{self.entity_name} stock changed in database (ID: {updated.id}) but failed to update cache"
            )

        logger.info(
            f"{self.entity_name} {updated.id} now holds {updated.current_stock} "
            f"({updated.reserved_stock} reserved)"
        )
        await self._dispatch(EntityUpdatedEvent(self.entity_name, updated, self._changes(inventory, updated)))
        return ServiceResult.success_result(updated)

    def _sync(self, record: Inventory) -> Optional[Inventory]:
        if self.cache.exists(record.id):
            return self.cache.update(record)
        return self.cache.create(record.id, record)

    async def adjust_stock(self, data: Union[StockAdjustment, Dict[str, Any]]) -> ServiceResult[Inventory]:
        """Add or remove stock outside of orders, recording an adjustment."""
        parsed = parse_input(StockAdjustment, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        payload = parsed.data

        current = await self._get_for_change(payload.inventory_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        inventory = current.data

        if payload.quantity_change < 0 and inventory.available_stock < -payload.quantity_change:
            return insufficient_stock(inventory.available_stock, -payload.quantity_change)

        transaction = InventoryTransaction(
            product_id=inventory.product_id,
            location_id=inventory.location_id,
            transaction_type=TransactionType.ADJUSTMENT,
            quantity=abs(payload.quantity_change),
            reference="Stock adjustment",
            notes=payload.notes,
            created_by=payload.created_by,
            created_date=utc_now()
        )
        return await self.change_stock(inventory, stock_change=payload.quantity_change, transactions=[transaction])

    async def reserve_stock(self, data: Union[StockReservation, Dict[str, Any]]) -> ServiceResult[Inventory]:
        parsed = parse_input(StockReservation, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        payload = parsed.data

        current = await self._get_for_change(payload.inventory_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        inventory = current.data

        if inventory.available_stock < payload.quantity:
            return insufficient_stock(inventory.available_stock, payload.quantity)
        return await self.change_stock(inventory, reserved_change=payload.quantity)

    async def release_reserved_stock(self, data: Union[StockReservation, Dict[str, Any]]) -> ServiceResult[Inventory]:
        parsed = parse_input(StockReservation, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        payload = parsed.data

        current = await self._get_for_change(payload.inventory_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        inventory = current.data

        if inventory.reserved_stock < payload.quantity:
            return ServiceResult.error_result(
                f"Insufficient reserved stock. Reserved: {inventory.reserved_stock}, "
                f"Requested: {payload.quantity}",
                ErrorCode.CONSTRAINT_VIOLATION
            )
        return await self.change_stock(inventory, reserved_change=-payload.quantity)

    async def transfer_stock(self, data: Union[StockTransfer, Dict[str, Any]]) -> ServiceResult[InventoryMovement]:
        """
        Move available stock from one location to another.

        The destination inventory is created when missing. One movement and
        two transfer transactions are recorded.
        """
        parsed = parse_input(StockTransfer, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        payload = parsed.data

        target = InventoryCreate(product_id=payload.product_id, location_id=payload.to_location_id).to_record()
        references = await self._validate_references(target)
        if references.is_error():
            return ServiceResult.from_error(references)

        source = await self.find(payload.product_id, payload.from_location_id)
        if source.is_error():
            return ServiceResult.from_error(source)
        if source.data is None:
            return ServiceResult.error_result(
                f"No inventory for product {payload.product_id} at location {payload.from_location_id}.",
                ErrorCode.NOT_FOUND
            )
        if source.data.available_stock < payload.quantity:
            return insufficient_stock(source.data.available_stock, payload.quantity)

        movement = InventoryMovement(created_date=utc_now(), **payload.model_dump())
        stored = await self.error_handler.handle(
            lambda: self.repository.transfer(movement),
            f"Transfer product {payload.product_id} from location {payload.from_location_id} "
            f"to {payload.to_location_id}"
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)
        if stored.data is None:
            return ServiceResult.error_result(
                f"Stock of product {payload.product_id} at location {payload.from_location_id} "
                f"changed before the transfer could run.",
                ErrorCode.CONSTRAINT_VIOLATION
            )

        moved_from, moved_to, recorded = stored.data
        for record in (moved_from, moved_to):
            if self._sync(record) is None:
                logger.warning(
                    f"{self.entity_name} transferred in database (ID: {record.id}) but failed to update cache"
                )

        logger.info(
            f"Transferred {recorded.quantity} of product {recorded.product_id} "
            f"from location {recorded.from_location_id} to {recorded.to_location_id}"
        )
        await self._dispatch(EntityCreatedEvent(InventoryMovement.ENTITY_NAME, recorded))
        return ServiceResult.success_result(recorded)

    async def record_transaction(self, data: Union[TransactionCreate, Dict[str, Any]]) -> ServiceResult[InventoryTransaction]:
        """Append a ledger entry without touching stock levels."""
        if self.transaction_repository is None:
            return self._unsupported("transaction recording")

        parsed = parse_input(TransactionCreate, data)
        if parsed.is_error():
            return ServiceResult.from_error(parsed)
        transaction = parsed.data.to_record()

        references = await self._validate_references(transaction)
        if references.is_error():
            return ServiceResult.from_error(references)

        stored = await self.error_handler.handle(
            lambda: self.transaction_repository.create(transaction),
            f"Create {InventoryTransaction.ENTITY_NAME}"
        )
        if stored.is_error():
            return ServiceResult.from_error(stored)

        logger.info(f"{InventoryTransaction.ENTITY_NAME} {stored.data.id} recorded")
        await self._dispatch(EntityCreatedEvent(InventoryTransaction.ENTITY_NAME, stored.data))
        return stored


def insufficient_stock(available: int, required: int) -> ServiceResult:
    return ServiceResult.error_result(
        f"Insufficient available stock. Available: {available}, Required: {required}",
        ErrorCode.CONSTRAINT_VIOLATION
    )


TRANSITION_ERRORS = {
    OrderStatus.ACTIVE: "Only Draft orders can be activated.",
    OrderStatus.COMPLETED: "Only Active orders can be completed.",
    OrderStatus.CANCELLED: "Only Active and Draft orders can be cancelled.",
    OrderStatus.DRAFT: "Orders cannot return to Draft.",
}


class OrderWriteService(EntityWriteService[Order]):
    """
    Orders have no soft-delete lifecycle. Hard deleting an order cascades to
    its items in the database, so the item cache is pruned to match.

    Status follows ``ORDER_TRANSITIONS``. When an order has a location its
    transitions move stock: activating a sale reserves its items, cancelling
    an active sale releases them, completing a sale ships them and
    completing a purchase receives them.
    """

    create_model = OrderCreate
    update_model = OrderUpdate

    def __init__(
        self,
        *args,
        item_cache: Optional[OrderItemCache] = None,
        item_repository: Optional[OrderItemRepository] = None,
        inventory: Optional[InventoryWriteService] = None,
        **kwargs
    ):
        super().__init__(*args, **kwargs)
        self.item_cache = item_cache
        self.item_repository = item_repository
        self.inventory = inventory

    async def update_status(self, order_id: int, status: Union[OrderStatus, str]) -> ServiceResult[Order]:
        if order_id <= 0:
            return invalid_id_result(self.entity_name)

        try:
            status = OrderStatus(status)
        except ValueError:
            return ServiceResult.error_result(f"Unknown order status: {status}", ErrorCode.INVALID_INPUT)

        current = await self._get_active(order_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        existing = current.data
        if existing is None:
            return ServiceResult.error_result(f"Order with ID {order_id} not found.", ErrorCode.NOT_FOUND)

        if existing.status == status:
            return ServiceResult.success_result(existing)
        return await self._update_record(existing.with_changes(status=status), existing)

    # ---------- lifecycle ----------

    async def _validate_update(self, candidate: Order, existing: Order) -> ServiceResult[None]:
        if candidate.status != existing.status:
            if not existing.status.can_transition_to(candidate.status):
                logger.warning(
                    f"Rejected order {existing.id} status change "
                    f"{existing.status.value} -> {candidate.status.value}"
                )
                return ServiceResult.error_result(TRANSITION_ERRORS[candidate.status], ErrorCode.INVALID_INPUT)

            if self._reserves_stock(existing, candidate):
                available = await self._check_available_stock(candidate)
                if available.is_error():
                    return available

        return await super()._validate_update(candidate, existing)

    def _moves_stock(self, order: Order) -> bool:
        return self.inventory is not None and order.location_id is not None

    def _reserves_stock(self, existing: Order, candidate: Order) -> bool:
        return (
            self._moves_stock(candidate)
            and candidate.order_type == OrderType.SALE
            and existing.status == OrderStatus.DRAFT
            and candidate.status == OrderStatus.ACTIVE
        )

    async def _order_items(self, order_id: int) -> ServiceResult[List[OrderItem]]:
        if self.item_repository is None:
            items = self.item_cache.get_by_order(order_id) if self.item_cache is not None else []
            return ServiceResult.success_result(items)
        return await self.error_handler.handle(
            lambda: self.item_repository.get_by_order(order_id),
            f"Get items of order {order_id}",
            enable_retry=False
        )

    async def _check_available_stock(self, order: Order) -> ServiceResult[None]:
        items = await self._order_items(order.id)
        if items.is_error():
            return ServiceResult.from_error(items)

        for item in items.data:
            found = await self.inventory.find(item.product_id, order.location_id)
            if found.is_error():
                return ServiceResult.from_error(found)
            available = found.data.available_stock if found.data is not None else 0
            if available < item.quantity:
                return ServiceResult.error_result(
                    f"Insufficient available stock for product {item.product_id} at location "
                    f"{order.location_id}. Available: {available}, Required: {item.quantity}",
                    ErrorCode.CONSTRAINT_VIOLATION
                )
        return ServiceResult.success_result()

    async def _after_update(self, existing: Order, updated: Order) -> None:
        if existing.status == updated.status or not self._moves_stock(updated):
            return

        items = await self._order_items(updated.id)
        if items.is_error():
            logger.warning(f"Cannot move stock for order {updated.id}: {items.error_message}")
            return

        for item in items.data:
            moved = await self._move_item_stock(updated, existing.status, item)
            if moved.is_error():
                logger.warning(
                    f"Stock for product {item.product_id} of order {updated.id} "
                    f"was not moved: {moved.error_message}"
                )

    async def _move_item_stock(self, order: Order, previous: OrderStatus, item: OrderItem) -> ServiceResult:
        if order.order_type == OrderType.PURCHASE:
            if order.status != OrderStatus.COMPLETED:
                return ServiceResult.success_result()
            return await self._receive(order, item)

        found = await self.inventory.find(item.product_id, order.location_id)
        if found.is_error():
            return found
        inventory = found.data
        if inventory is None:
            return ServiceResult.error_result(
                f"Product {item.product_id} has no inventory at location {order.location_id}.",
                ErrorCode.NOT_FOUND
            )

        if order.status == OrderStatus.ACTIVE:
            return await self.inventory.change_stock(inventory, reserved_change=item.quantity)
        if previous != OrderStatus.ACTIVE:
            return ServiceResult.success_result()
        if order.status == OrderStatus.CANCELLED:
            return await self.inventory.change_stock(inventory, reserved_change=-item.quantity)

        shipment = self._transaction(order, item, TransactionType.STOCK_OUT)
        return await self.inventory.change_stock(
            inventory, stock_change=-item.quantity, reserved_change=-item.quantity, transactions=[shipment]
        )

    async def _receive(self, order: Order, item: OrderItem) -> ServiceResult:
        found = await self.inventory.find(item.product_id, order.location_id)
        if found.is_error():
            return found
        inventory = found.data
        if inventory is None:
            created = await self.inventory.create(
                InventoryCreate(product_id=item.product_id, location_id=order.location_id)
            )
            if created.is_error():
                return created
            inventory = created.data

        receipt = self._transaction(order, item, TransactionType.STOCK_IN)
        return await self.inventory.change_stock(inventory, stock_change=item.quantity, transactions=[receipt])

    @staticmethod
    def _transaction(order: Order, item: OrderItem, transaction_type: TransactionType) -> InventoryTransaction:
        return InventoryTransaction(
            product_id=item.product_id,
            location_id=order.location_id,
            transaction_type=transaction_type,
            quantity=item.quantity,
            unit_cost=item.unit_price,
            reference=f"Order {order.id}",
            created_by=order.created_by,
            created_date=utc_now()
        )

    def _after_hard_delete(self, entity_id: int) -> None:
        if self.item_cache is None:
            return
        for item in self.item_cache.get_by_order(entity_id):
            self.item_cache.delete(item.id)


class OrderItemWriteService(EntityWriteService[OrderItem]):
    """Items belong to draft orders only; later states freeze them."""

    create_model = OrderItemCreate
    update_model = OrderItemUpdate

    def __init__(self, *args, order_cache: Optional[EntityCache[Order]] = None,
                 order_repository: Optional[OrderRepository] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.order_cache = order_cache
        self.order_repository = order_repository

    async def _require_draft_order(self, order_id: int, message: str) -> ServiceResult[None]:
        order = self.order_cache.get_by_id(order_id) if self.order_cache is not None else None
        if order is None and self.order_repository is not None:
            fetched = await self.error_handler.handle(
                lambda: self.order_repository.get_by_id(order_id),
                f"Get order {order_id}",
                enable_retry=False
            )
            if fetched.is_error():
                return ServiceResult.from_error(fetched)
            order = fetched.data

        if order is not None and order.status != OrderStatus.DRAFT:
            logger.warning(f"Rejected item change on order {order_id} in status {order.status.value}")
            return ServiceResult.error_result(message, ErrorCode.INVALID_INPUT)
        return ServiceResult.success_result()

    async def _validate_create(self, record: OrderItem) -> ServiceResult[None]:
        references = await self._validate_references(record)
        if references.is_error():
            return references

        draft = await self._require_draft_order(record.order_id, "Items can only be added to Draft orders.")
        if draft.is_error():
            return draft

        cached = any(item.product_id == record.product_id for item in self.cache.get_by_order(record.order_id))
        if cached:
            return self._already_in_order()

        existing = await self.error_handler.handle(
            lambda: self.repository.search(order_id=record.order_id, product_id=record.product_id),
            f"Check {self.entity_name} product in order {record.order_id}",
            enable_retry=False
        )
        if existing.is_error():
            return ServiceResult.from_error(existing)
        if existing.data:
            return self._already_in_order()
        return ServiceResult.success_result()

    async def _validate_update(self, candidate: OrderItem, existing: OrderItem) -> ServiceResult[None]:
        draft = await self._require_draft_order(existing.order_id, "Items can only be updated in Draft orders.")
        if draft.is_error():
            return draft
        return await super()._validate_update(candidate, existing)

    async def _validate_hard_delete(self, entity_id: int) -> ServiceResult[None]:
        current = await self._get_active(entity_id)
        if current.is_error():
            return ServiceResult.from_error(current)
        if current.data is None:
            return ServiceResult.success_result()
        return await self._require_draft_order(current.data.order_id, "Items can only be removed from Draft orders.")

    @staticmethod
    def _already_in_order() -> ServiceResult[None]:
        return ServiceResult.error_result(
            "This product is already in the order. Update the existing item instead.",
            ErrorCode.DUPLICATE_KEY
        )
