"""
StockERP Repositories
=====================

Backing-store adapters for every entity type. Each repository maps its
SQLAlchemy table to the immutable domain record and exposes the async
persistence contract consumed by the services. Exceptions raised by the
database are propagated unchanged; classification and retries are the
job of ``DatabaseErrorHandler``.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import enum
import logging
from datetime import datetime, timezone
from typing import (
    Any, Callable, Dict, Generic, List, Optional, Protocol, Sequence, Tuple, Type,
    TypeVar, runtime_checkable
)

from sqlalchemy import false, func, or_, select
from sqlalchemy.orm import Session

from .core import PaginatedResult, PaginationParams
from .database import (
    CategoryRow, CustomerRow, DatabaseModel, InventoryMovementRow, InventoryRow,
    InventoryTransactionRow, LocationRow, OrderItemRow, OrderRow, ProductRow,
    SessionManager, SupplierRow, UserRow
)
from .models import (
    Category, Customer, Inventory, InventoryMovement, InventoryTransaction, Location,
    LocationType, Order, OrderItem, OrderStatus, OrderType, Product, Record, Supplier,
    TransactionType, User, UserRole, normalize_key, utc_now
)

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)
T = TypeVar('T')


@runtime_checkable
class IEntityRepository(Protocol[R]):
    """Persistence contract the services rely on."""

    async def exists(self, entity_id: int, include_deleted: bool = False) -> bool:
        ...

    async def get_by_id(self, entity_id: int, include_deleted: bool = False) -> Optional[R]:
        ...

    async def create(self, record: R) -> R:
        ...

    async def update(self, record: R) -> Optional[R]:
        ...

    async def soft_delete(self, entity_id: int) -> bool:
        ...

    async def restore(self, entity_id: int) -> bool:
        ...

    async def hard_delete(self, entity_id: int) -> bool:
        ...

    async def get_all_active(self) -> List[R]:
        ...

    async def key_exists(self, key_name: str, value: str, exclude_id: Optional[int] = None,
                         include_deleted: bool = False) -> bool:
        ...


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _key_column(key_name: str) -> str:
    return f"{key_name}_key"


def _column_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return _to_utc(value)
    return value


class SqlAlchemyRepository(Generic[R]):
    """Generic SQLAlchemy-backed repository for one entity type."""

    record_type: Type[R]
    row_type: Type[DatabaseModel]
    enum_fields: Dict[str, Type[enum.Enum]] = {}
    default_order: str = "id"

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.entity_name = self.record_type.ENTITY_NAME
        self.soft_delete_enabled = self.record_type.SOFT_DELETE

    # ---------- mapping ----------

    def _to_record(self, row: DatabaseModel) -> R:
        values: Dict[str, Any] = {}
        for name in self.record_type.field_names():
            value = getattr(row, name)
            if name in self.enum_fields and value is not None:
                value = self.enum_fields[name](value)
            elif isinstance(value, datetime):
                value = _to_utc(value)
            values[name] = value
        return self.record_type(**values)

    def _apply(self, row: DatabaseModel, record: R, field_names) -> None:
        for name in field_names:
            if name == "id" or not hasattr(row, name):
                continue
            setattr(row, name, _column_value(getattr(record, name)))
            if name in self.record_type.UNIQUE_KEYS:
                setattr(row, _key_column(name), record.key_value(name))

    # ---------- session helpers ----------

    def _run(self, work: Callable[[Session], T]) -> T:
        with self.session_manager.session_scope() as session:
            return work(session)

    def _select(self, include_deleted: bool = False):
        statement = select(self.row_type)
        if self.soft_delete_enabled and not include_deleted:
            statement = statement.where(self.row_type.is_deleted.is_(False))
        return statement

    def _ordered(self, statement):
        return statement.order_by(getattr(self.row_type, self.default_order), self.row_type.id)

    def _list(self, statement) -> List[R]:
        return self._run(lambda session: [self._to_record(row) for row in session.scalars(statement)])

    def _get_row(self, session: Session, entity_id: int, include_deleted: bool) -> Optional[DatabaseModel]:
        row = session.get(self.row_type, entity_id)
        if row is None:
            return None
        if self.soft_delete_enabled and not include_deleted and row.is_deleted:
            return None
        return row

    # ---------- point operations ----------

    async def exists(self, entity_id: int, include_deleted: bool = False) -> bool:
        return self._run(lambda session: self._get_row(session, entity_id, include_deleted) is not None)

    async def get_by_id(self, entity_id: int, include_deleted: bool = False) -> Optional[R]:
        def work(session: Session) -> Optional[R]:
            row = self._get_row(session, entity_id, include_deleted)
            return self._to_record(row) if row is not None else None
        return self._run(work)

    async def create(self, record: R) -> R:
        """Insert ``record`` and return it with the id assigned by the database."""
        def work(session: Session) -> R:
            row = self.row_type()
            self._apply(row, record, self.record_type.field_names())
            if self.soft_delete_enabled:
                row.is_deleted = False
                row.deleted_at = None
            session.add(row)
            session.flush()
            session.refresh(row)
            return self._to_record(row)

        created = self._run(work)
        logger.debug(f"{self.entity_name} {created.id} inserted")
        return created

    async def update(self, record: R) -> Optional[R]:
        """Persist the mutable fields of ``record``. Returns None if it is absent or deleted."""
        def work(session: Session) -> Optional[R]:
            row = self._get_row(session, record.id, include_deleted=False)
            if row is None:
                return None
            self._apply(row, record, self.record_type.MUTABLE_FIELDS)
            session.flush()
            session.refresh(row)
            return self._to_record(row)
        return self._run(work)

    async def soft_delete(self, entity_id: int) -> bool:
        if not self.soft_delete_enabled:
            raise NotImplementedError(f"{self.entity_name} does not support soft delete")

        def work(session: Session) -> bool:
            row = self._get_row(session, entity_id, include_deleted=False)
            if row is None:
                return False
            row.is_deleted = True
            row.deleted_at = utc_now()
            return True
        return self._run(work)

    async def restore(self, entity_id: int) -> bool:
        if not self.soft_delete_enabled:
            raise NotImplementedError(f"{self.entity_name} does not support restore")

        def work(session: Session) -> bool:
            row = session.get(self.row_type, entity_id)
            if row is None or not row.is_deleted:
                return False
            row.is_deleted = False
            row.deleted_at = None
            return True
        return self._run(work)

    async def hard_delete(self, entity_id: int) -> bool:
        def work(session: Session) -> bool:
            row = session.get(self.row_type, entity_id)
            if row is None:
                return False
            session.delete(row)
            return True
        return self._run(work)

    # ---------- collections ----------

    async def get_all_active(self) -> List[R]:
        return self._list(self._ordered(self._select(include_deleted=False)))

    async def get_all(self) -> List[R]:
        """All records including soft-deleted ones."""
        return self._list(self._ordered(self._select(include_deleted=True)))

    async def get_all_deleted(self) -> List[R]:
        if not self.soft_delete_enabled:
            return []
        statement = select(self.row_type).where(self.row_type.is_deleted.is_(True))
        return self._list(self._ordered(statement))

    async def get_paged(self, pagination: PaginationParams, include_deleted: bool = False) -> PaginatedResult[R]:
        def work(session: Session) -> PaginatedResult[R]:
            base = self._select(include_deleted)
            total = session.scalar(select(func.count()).select_from(base.subquery()))
            rows = session.scalars(
                self._ordered(base).offset(pagination.offset).limit(pagination.page_size)
            )
            return PaginatedResult([self._to_record(row) for row in rows], total or 0, pagination)
        return self._run(work)

    async def search(self, term: Optional[str] = None, include_deleted: bool = False, **filters: Any) -> List[R]:
        """
        Case-insensitive substring search over the entity's searchable fields.

        Args:
            term: Text to look for; blank terms match everything
            include_deleted: Whether soft-deleted records are candidates
            **filters: Column equality filters; None values are ignored
        """
        statement = self._select(include_deleted)

        if term and term.strip():
            pattern = f"%{term.strip().lower()}%"
            columns = [getattr(self.row_type, name) for name in self.record_type.SEARCH_FIELDS]
            statement = statement.where(or_(*[func.lower(column).like(pattern) for column in columns]))

        for name, value in filters.items():
            if value is None:
                continue
            if not hasattr(self.row_type, name):
                raise ValueError(f"Unknown {self.entity_name} filter field: {name}")
            statement = statement.where(getattr(self.row_type, name) == _column_value(value))

        return self._list(self._ordered(statement))

    async def find_by_key(self, key_name: str, value: str, include_deleted: bool = False) -> Optional[R]:
        statement = self._key_statement(key_name, value, None, include_deleted)
        matches = self._list(statement.order_by(self.row_type.id).limit(1))
        return matches[0] if matches else None

    async def key_exists(self, key_name: str, value: str, exclude_id: Optional[int] = None,
                         include_deleted: bool = False) -> bool:
        """
        Check whether another record already uses ``value`` for ``key_name``.

        Comparison uses the stored casefolded key column, so it agrees with
        the cache indexes for non-ASCII values too. ``exclude_id`` lets a
        record re-assert its own key during an update.
        """
        statement = self._key_statement(key_name, value, exclude_id, include_deleted)
        return self._run(
            lambda session: session.scalar(select(func.count()).select_from(statement.subquery())) > 0
        )

    def _key_statement(self, key_name: str, value: str, exclude_id: Optional[int], include_deleted: bool):
        if key_name not in self.record_type.UNIQUE_KEYS:
            raise ValueError(f"{self.entity_name} has no unique key '{key_name}'")
        normalized = normalize_key(value)
        if normalized is None:
            return self._select(include_deleted).where(false())
        statement = self._select(include_deleted).where(
            getattr(self.row_type, _key_column(key_name)) == normalized
        )
        if exclude_id is not None:
            statement = statement.where(self.row_type.id != exclude_id)
        return statement

    # ---------- counts ----------

    async def count(self, include_deleted: bool = False) -> int:
        base = self._select(include_deleted)
        return self._run(lambda session: session.scalar(select(func.count()).select_from(base.subquery())) or 0)

    async def count_deleted(self) -> int:
        if not self.soft_delete_enabled:
            return 0
        statement = select(func.count()).select_from(self.row_type).where(self.row_type.is_deleted.is_(True))
        return self._run(lambda session: session.scalar(statement) or 0)


# ==================== ENTITY REPOSITORIES ====================

class ProductRepository(SqlAlchemyRepository[Product]):
    record_type = Product
    row_type = ProductRow
    default_order = "name"

    async def get_by_category(self, category_id: int) -> List[Product]:
        return await self.search(category_id=category_id)

    async def get_by_supplier(self, supplier_id: int) -> List[Product]:
        return await self.search(supplier_id=supplier_id)

    async def has_products_in_category(self, category_id: int) -> bool:
        return bool(await self.get_by_category(category_id))

    async def has_products_from_supplier(self, supplier_id: int) -> bool:
        return bool(await self.get_by_supplier(supplier_id))


class CategoryRepository(SqlAlchemyRepository[Category]):
    record_type = Category
    row_type = CategoryRow
    default_order = "name"

    async def get_children(self, parent_category_id: int) -> List[Category]:
        return await self.search(parent_category_id=parent_category_id)

    async def get_root_categories(self) -> List[Category]:
        statement = self._select().where(CategoryRow.parent_category_id.is_(None))
        return self._list(self._ordered(statement))

    async def has_children(self, category_id: int) -> bool:
        return bool(await self.get_children(category_id))


class CustomerRepository(SqlAlchemyRepository[Customer]):
    record_type = Customer
    row_type = CustomerRow
    default_order = "name"


class SupplierRepository(SqlAlchemyRepository[Supplier]):
    record_type = Supplier
    row_type = SupplierRow
    default_order = "name"


class LocationRepository(SqlAlchemyRepository[Location]):
    record_type = Location
    row_type = LocationRow
    enum_fields = {"location_type": LocationType}
    default_order = "name"


class UserRepository(SqlAlchemyRepository[User]):
    record_type = User
    row_type = UserRow
    enum_fields = {"role": UserRole}
    default_order = "username"

    async def get_by_username(self, username: str, include_deleted: bool = False) -> Optional[User]:
        return await self.find_by_key("username", username, include_deleted)


class OrderRepository(SqlAlchemyRepository[Order]):
    record_type = Order
    row_type = OrderRow
    enum_fields = {"order_type": OrderType, "status": OrderStatus}

    OPEN_STATUSES = (OrderStatus.DRAFT.value, OrderStatus.ACTIVE.value)

    def _ordered(self, statement):
        return statement.order_by(OrderRow.order_date.desc(), OrderRow.id.desc())

    async def get_by_status(self, status: OrderStatus) -> List[Order]:
        return await self.search(status=status)

    async def get_by_type(self, order_type: OrderType) -> List[Order]:
        return await self.search(order_type=order_type)

    async def get_overdue(self, now: Optional[datetime] = None) -> List[Order]:
        now = _to_utc(now or utc_now())
        statement = self._select().where(
            OrderRow.delivery_date.is_not(None),
            OrderRow.delivery_date < now,
            OrderRow.status.in_(self.OPEN_STATUSES),
        )
        return self._list(self._ordered(statement))

    async def customer_has_orders(self, customer_id: int, active_only: bool = True) -> bool:
        return await self._party_has_orders(OrderRow.customer_id, customer_id, active_only)

    async def supplier_has_orders(self, supplier_id: int, active_only: bool = True) -> bool:
        return await self._party_has_orders(OrderRow.supplier_id, supplier_id, active_only)

    async def _party_has_orders(self, column, party_id: int, active_only: bool) -> bool:
        statement = select(func.count()).select_from(OrderRow).where(column == party_id)
        if active_only:
            statement = statement.where(OrderRow.status.in_(self.OPEN_STATUSES))
        return self._run(lambda session: (session.scalar(statement) or 0) > 0)

    async def update_status(self, order_id: int, status: OrderStatus) -> Optional[Order]:
        existing = await self.get_by_id(order_id)
        if existing is None:
            return None
        return await self.update(existing.with_changes(status=status))

    async def count_by_type(self, order_type: OrderType) -> int:
        return await self._count_where(OrderRow.order_type == order_type.value)

    async def count_by_status(self, status: OrderStatus) -> int:
        return await self._count_where(OrderRow.status == status.value)

    async def _count_where(self, condition) -> int:
        statement = select(func.count()).select_from(OrderRow).where(condition)
        return self._run(lambda session: session.scalar(statement) or 0)


class OrderItemRepository(SqlAlchemyRepository[OrderItem]):
    record_type = OrderItem
    row_type = OrderItemRow

    async def get_by_order(self, order_id: int) -> List[OrderItem]:
        return await self.search(order_id=order_id)

    async def get_by_product(self, product_id: int) -> List[OrderItem]:
        return await self.search(product_id=product_id)

    async def delete_by_order(self, order_id: int) -> int:
        def work(session: Session) -> int:
            rows = list(session.scalars(select(OrderItemRow).where(OrderItemRow.order_id == order_id)))
            for row in rows:
                session.delete(row)
            return len(rows)
        return self._run(work)


class InventoryRepository(SqlAlchemyRepository[Inventory]):
    """
    Stock levels per (product, location).

    The stock-changing operations run in a single session together with the
    ledger rows they produce, so a level never changes without its
    transaction being recorded.
    """

    record_type = Inventory
    row_type = InventoryRow

    async def get_by_product_and_location(self, product_id: int, location_id: int) -> Optional[Inventory]:
        matches = await self.search(product_id=product_id, location_id=location_id)
        return matches[0] if matches else None

    async def get_by_product(self, product_id: int) -> List[Inventory]:
        return await self.search(product_id=product_id)

    async def get_by_location(self, location_id: int) -> List[Inventory]:
        return await self.search(location_id=location_id)

    async def get_low_stock(self, threshold: int = 10) -> List[Inventory]:
        available = InventoryRow.current_stock - InventoryRow.reserved_stock
        statement = self._select().where(available > 0, available <= threshold)
        return self._list(self._ordered(statement))

    async def get_out_of_stock(self) -> List[Inventory]:
        statement = self._select().where(InventoryRow.current_stock - InventoryRow.reserved_stock <= 0)
        return self._list(self._ordered(statement))

    async def get_total_stock_for_product(self, product_id: int) -> int:
        statement = select(func.coalesce(func.sum(InventoryRow.current_stock), 0)).where(
            InventoryRow.product_id == product_id
        )
        return self._run(lambda session: session.scalar(statement) or 0)

    async def product_has_inventory(self, product_id: int) -> bool:
        return bool(await self.get_by_product(product_id))

    async def location_has_inventory(self, location_id: int) -> bool:
        return bool(await self.get_by_location(location_id))

    async def change_stock(
        self,
        inventory_id: int,
        stock_change: int = 0,
        reserved_change: int = 0,
        transactions: Sequence[InventoryTransaction] = ()
    ) -> Optional[Inventory]:
        """
        Apply deltas to one inventory row and append ``transactions``.

        Returns None, without writing anything, if the row is missing or
        the new levels would break ``0 <= reserved <= current``.
        """
        def work(session: Session) -> Optional[Inventory]:
            row = session.get(InventoryRow, inventory_id)
            if row is None or not _levels_valid(row, stock_change, reserved_change):
                return None
            row.current_stock += stock_change
            row.reserved_stock += reserved_change
            row.last_updated = utc_now()
            for transaction in transactions:
                session.add(_transaction_row(transaction))
            session.flush()
            session.refresh(row)
            return self._to_record(row)
        return self._run(work)

    async def transfer(self, movement: InventoryMovement) -> Optional[Tuple[Inventory, Inventory, InventoryMovement]]:
        """
        Move stock between two locations in one transaction.

        The destination row is created when the product has no inventory
        there yet. Returns None if the source row is missing or lacks the
        available stock.
        """
        def work(session: Session) -> Optional[Tuple[Inventory, Inventory, InventoryMovement]]:
            source = session.scalar(select(InventoryRow).where(
                InventoryRow.product_id == movement.product_id,
                InventoryRow.location_id == movement.from_location_id,
            ))
            if source is None or not _levels_valid(source, -movement.quantity, 0):
                return None

            target = session.scalar(select(InventoryRow).where(
                InventoryRow.product_id == movement.product_id,
                InventoryRow.location_id == movement.to_location_id,
            ))
            if target is None:
                target = InventoryRow(
                    product_id=movement.product_id, location_id=movement.to_location_id,
                    current_stock=0, reserved_stock=0
                )
                session.add(target)

            now = utc_now()
            source.current_stock -= movement.quantity
            source.last_updated = now
            target.current_stock += movement.quantity
            target.last_updated = now

            movement_row = InventoryMovementRow()
            self._apply(movement_row, movement, InventoryMovement.field_names())
            session.add(movement_row)

            reference = f"Transfer {movement.from_location_id} -> {movement.to_location_id}"
            for location_id in (movement.from_location_id, movement.to_location_id):
                session.add(_transaction_row(InventoryTransaction(
                    product_id=movement.product_id,
                    location_id=location_id,
                    transaction_type=TransactionType.TRANSFER,
                    quantity=movement.quantity,
                    reference=reference,
                    notes=movement.notes,
                    created_by=movement.created_by,
                    created_date=movement.created_date,
                )))

            session.flush()
            for row in (source, target, movement_row):
                session.refresh(row)
            return (
                self._to_record(source),
                self._to_record(target),
                _movement_record(movement_row),
            )
        return self._run(work)


def _levels_valid(row: InventoryRow, stock_change: int, reserved_change: int) -> bool:
    current = row.current_stock + stock_change
    reserved = row.reserved_stock + reserved_change
    return current >= 0 and 0 <= reserved <= current


def _transaction_row(transaction: InventoryTransaction) -> InventoryTransactionRow:
    row = InventoryTransactionRow()
    for name in InventoryTransaction.field_names():
        if name != "id":
            setattr(row, name, _column_value(getattr(transaction, name)))
    return row


def _movement_record(row: InventoryMovementRow) -> InventoryMovement:
    values = {}
    for name in InventoryMovement.field_names():
        value = getattr(row, name)
        values[name] = _to_utc(value) if isinstance(value, datetime) else value
    return InventoryMovement(**values)


class InventoryTransactionRepository(SqlAlchemyRepository[InventoryTransaction]):
    record_type = InventoryTransaction
    row_type = InventoryTransactionRow
    enum_fields = {"transaction_type": TransactionType}

    def _ordered(self, statement):
        return statement.order_by(InventoryTransactionRow.created_date.desc(), InventoryTransactionRow.id.desc())

    async def get_by_product(self, product_id: int) -> List[InventoryTransaction]:
        return await self.search(product_id=product_id)

    async def get_by_location(self, location_id: int) -> List[InventoryTransaction]:
        return await self.search(location_id=location_id)

    async def get_by_type(self, transaction_type: TransactionType) -> List[InventoryTransaction]:
        return await self.search(transaction_type=transaction_type)

    async def get_by_date_range(self, start: datetime, end: datetime) -> List[InventoryTransaction]:
        statement = self._select().where(
            InventoryTransactionRow.created_date >= _to_utc(start),
            InventoryTransactionRow.created_date <= _to_utc(end),
        )
        return self._list(self._ordered(statement))


class InventoryMovementRepository(SqlAlchemyRepository[InventoryMovement]):
    record_type = InventoryMovement
    row_type = InventoryMovementRow

    def _ordered(self, statement):
        return statement.order_by(InventoryMovementRow.created_date.desc(), InventoryMovementRow.id.desc())

    async def get_by_product(self, product_id: int) -> List[InventoryMovement]:
        return await self.search(product_id=product_id)

    async def get_by_location(self, location_id: int) -> List[InventoryMovement]:
        statement = self._select().where(or_(
            InventoryMovementRow.from_location_id == location_id,
            InventoryMovementRow.to_location_id == location_id,
        ))
        return self._list(self._ordered(statement))

    async def get_by_date_range(self, start: datetime, end: datetime) -> List[InventoryMovement]:
        statement = self._select().where(
            InventoryMovementRow.created_date >= _to_utc(start),
            InventoryMovementRow.created_date <= _to_utc(end),
        )
        return self._list(self._ordered(statement))
