"""
StockERP Domain Models
======================

Immutable domain records held by the entity caches and returned by the
services, plus the pydantic input models accepted by the write services.

Records are frozen dataclasses. Updates never mutate a record in place; a new
record is produced with ``with_changes`` (a thin wrapper over
``dataclasses.replace``) and swapped into the cache wholesale.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import enum
import re
from dataclasses import dataclass, asdict, replace, fields
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_key(value: Any) -> Optional[str]:
    """
    Normalise a secondary-key value for index storage and comparison.

    Every secondary index (SKU included) is case-insensitive and ignores
    surrounding whitespace. Blank values are not indexed.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.casefold()


# ==================== ENUMS ====================

class OrderType(str, enum.Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class OrderStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        """Draft and active orders still block deletion of their counterparty."""
        return self in (OrderStatus.DRAFT, OrderStatus.ACTIVE)

    @property
    def allowed_transitions(self) -> Tuple['OrderStatus', ...]:
        return ORDER_TRANSITIONS[self]

    def can_transition_to(self, target: 'OrderStatus') -> bool:
        return target in ORDER_TRANSITIONS[self]


# Completed and cancelled orders are final
ORDER_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    OrderStatus.DRAFT: (OrderStatus.ACTIVE, OrderStatus.CANCELLED),
    OrderStatus.ACTIVE: (OrderStatus.COMPLETED, OrderStatus.CANCELLED),
    OrderStatus.COMPLETED: (),
    OrderStatus.CANCELLED: (),
}


class LocationType(str, enum.Enum):
    UNKNOWN = "unknown"
    WAREHOUSE = "warehouse"
    STORE = "store"
    TRANSIT = "transit"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class TransactionType(str, enum.Enum):
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    RETURN = "return"
    DAMAGED = "damaged"
    LOST = "lost"


# ==================== RECORD BASES ====================

@dataclass(frozen=True)
class Record:
    """
    Base for all cached domain records.

    Class-level metadata drives the generic cache engine:

    - ENTITY_NAME: display name used in messages ("Product")
    - UNIQUE_KEYS: fields backed by a case-insensitive unique index
    - MUTABLE_FIELDS: fields an update may change
    - SEARCH_FIELDS: text fields scanned by term searches
    """

    ENTITY_NAME: ClassVar[str] = "Record"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ()
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ()
    SOFT_DELETE: ClassVar[bool] = False

    id: int = 0

    def with_changes(self, **changes: Any) -> 'Record':
        return replace(self, **changes)

    def is_complete(self) -> bool:
        """Integrity rule checked by the cache before a record is admitted."""
        return True

    def key_value(self, key_name: str) -> Optional[str]:
        return normalize_key(getattr(self, key_name))

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SoftDeletableRecord(Record):
    """Record carrying the soft-delete lifecycle fields."""

    SOFT_DELETE: ClassVar[bool] = True

    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return not self.is_deleted


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


# ==================== ENTITY RECORDS ====================

@dataclass(frozen=True)
class Product(SoftDeletableRecord):
    ENTITY_NAME: ClassVar[str] = "Product"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ("sku",)
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name", "sku", "description", "barcode", "price", "cost",
        "min_stock_level", "max_stock_level", "supplier_id", "category_id", "updated_date",
    )
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "sku", "description", "barcode")

    name: str = ""
    sku: str = ""
    description: str = ""
    barcode: Optional[str] = None
    price: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    min_stock_level: int = 0
    max_stock_level: int = 0
    supplier_id: Optional[int] = None
    category_id: Optional[int] = None
    created_by: int = 0
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    def is_complete(self) -> bool:
        return _present(self.name) and _present(self.sku) and self.created_by > 0

    @property
    def profit_margin(self) -> Decimal:
        return self.price - self.cost

    def is_low_stock(self, current_stock: int) -> bool:
        return current_stock <= self.min_stock_level


@dataclass(frozen=True)
class Category(SoftDeletableRecord):
    ENTITY_NAME: ClassVar[str] = "Category"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ("name",)
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "description", "parent_category_id", "image_url")
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "description")

    name: str = ""
    description: Optional[str] = None
    parent_category_id: Optional[int] = None
    image_url: Optional[str] = None

    def is_complete(self) -> bool:
        return _present(self.name)


@dataclass(frozen=True)
class Customer(SoftDeletableRecord):
    ENTITY_NAME: ClassVar[str] = "Customer"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ("email", "phone")
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "email", "phone", "address")
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "email", "phone", "address")

    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def is_complete(self) -> bool:
        return _present(self.name)


@dataclass(frozen=True)
class Supplier(SoftDeletableRecord):
    ENTITY_NAME: ClassVar[str] = "Supplier"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ("email", "phone")
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "email", "phone", "address")
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "email", "phone", "address")

    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def is_complete(self) -> bool:
        return _present(self.name)


@dataclass(frozen=True)
class Location(SoftDeletableRecord):
    ENTITY_NAME: ClassVar[str] = "Location"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ("name",)
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "description", "location_type", "address")
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "description", "address")

    name: str = ""
    description: Optional[str] = None
    location_type: LocationType = LocationType.UNKNOWN
    address: Optional[str] = None

    def is_complete(self) -> bool:
        return _present(self.name)


@dataclass(frozen=True)
class User(SoftDeletableRecord):
    ENTITY_NAME: ClassVar[str] = "User"
    UNIQUE_KEYS: ClassVar[Tuple[str, ...]] = ("username",)
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "username", "password_hash", "role", "full_name", "email", "enabled",
    )
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("username", "full_name", "email")

    username: str = ""
    password_hash: str = ""
    role: UserRole = UserRole.EMPLOYEE
    full_name: Optional[str] = None
    email: Optional[str] = None
    enabled: bool = True

    def is_complete(self) -> bool:
        return _present(self.username) and _present(self.password_hash)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("password_hash", None)
        return data


@dataclass(frozen=True)
class Order(Record):
    ENTITY_NAME: ClassVar[str] = "Order"
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("status", "delivery_date", "notes")
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("notes",)

    order_type: OrderType = OrderType.SALE
    status: OrderStatus = OrderStatus.DRAFT
    supplier_id: Optional[int] = None
    customer_id: Optional[int] = None
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: int = 0
    location_id: Optional[int] = None

    def is_complete(self) -> bool:
        if self.created_by <= 0:
            return False
        if self.order_type == OrderType.SALE and not self.customer_id:
            return False
        if self.order_type == OrderType.PURCHASE and not self.supplier_id:
            return False
        return True

    @property
    def counterparty_id(self) -> Optional[int]:
        return self.customer_id if self.order_type == OrderType.SALE else self.supplier_id

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.delivery_date is None or not self.status.is_open:
            return False
        return self.delivery_date < (now or utc_now())


@dataclass(frozen=True)
class OrderItem(Record):
    ENTITY_NAME: ClassVar[str] = "OrderItem"
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("quantity", "unit_price", "total_price")

    order_id: int = 0
    product_id: int = 0
    quantity: int = 0
    unit_price: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")

    def is_complete(self) -> bool:
        return self.order_id > 0 and self.product_id > 0 and self.quantity > 0

    @property
    def has_valid_total(self) -> bool:
        return self.total_price == self.quantity * self.unit_price


@dataclass(frozen=True)
class Inventory(Record):
    """
    Stock of one product at one location.

    ``reserved_stock`` is held for activated sales orders and is part of
    ``current_stock``; only the remainder is available for new commitments.
    """

    ENTITY_NAME: ClassVar[str] = "Inventory"
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("current_stock", "reserved_stock", "last_updated")

    product_id: int = 0
    location_id: int = 0
    current_stock: int = 0
    reserved_stock: int = 0
    last_updated: Optional[datetime] = None

    def is_complete(self) -> bool:
        return (
            self.product_id > 0 and self.location_id > 0
            and self.current_stock >= 0 and 0 <= self.reserved_stock <= self.current_stock
        )

    @property
    def available_stock(self) -> int:
        return self.current_stock - self.reserved_stock

    @property
    def is_in_stock(self) -> bool:
        return self.available_stock > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["available_stock"] = self.available_stock
        return data


@dataclass(frozen=True)
class InventoryTransaction(Record):
    """Append-only ledger entry for one stock change at one location."""

    ENTITY_NAME: ClassVar[str] = "InventoryTransaction"
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("reference", "notes")

    product_id: int = 0
    location_id: int = 0
    transaction_type: TransactionType = TransactionType.ADJUSTMENT
    quantity: int = 0
    unit_cost: Optional[Decimal] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by: int = 0
    created_date: Optional[datetime] = None


@dataclass(frozen=True)
class InventoryMovement(Record):
    """A transfer of stock between two locations."""

    ENTITY_NAME: ClassVar[str] = "InventoryMovement"
    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ("notes",)

    product_id: int = 0
    from_location_id: int = 0
    to_location_id: int = 0
    quantity: int = 0
    notes: Optional[str] = None
    created_by: int = 0
    created_date: Optional[datetime] = None


@dataclass(frozen=True)
class OrderListEntry:
    """Denormalised order row for list screens, kept in step by OrderCache."""

    order_id: int
    order_type: OrderType
    counterparty_id: Optional[int]
    counterparty_name: str
    order_date: Optional[datetime]
    status: OrderStatus
    total_amount: Decimal
    delivery_date: Optional[datetime]
    notes: Optional[str]
    created_by: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ==================== INPUT MODELS ====================

class InputModel(BaseModel):
    """Base for all write-side input models."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ProductCreate(InputModel):
    name: str = Field(..., min_length=1, max_length=200)
    sku: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=2000)
    barcode: Optional[str] = Field(None, max_length=50)
    price: Decimal = Field(Decimal("0"), ge=0)
    cost: Decimal = Field(Decimal("0"), ge=0)
    min_stock_level: int = Field(0, ge=0)
    max_stock_level: int = Field(0, ge=0)
    supplier_id: Optional[int] = Field(None, gt=0)
    category_id: Optional[int] = Field(None, gt=0)
    created_by: int = Field(..., gt=0)

    @field_validator("barcode")
    @classmethod
    def normalize_barcode(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @model_validator(mode="after")
    def check_stock_levels(self) -> 'ProductCreate':
        if self.max_stock_level and self.max_stock_level < self.min_stock_level:
            raise ValueError("Maximum stock level cannot be below the minimum stock level")
        return self

    def to_record(self) -> Product:
        now = utc_now()
        return Product(created_date=now, **self.model_dump())


class ProductUpdate(InputModel):
    id: int
    name: str = Field(..., min_length=1, max_length=200)
    sku: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=2000)
    barcode: Optional[str] = Field(None, max_length=50)
    price: Decimal = Field(Decimal("0"), ge=0)
    cost: Decimal = Field(Decimal("0"), ge=0)
    min_stock_level: int = Field(0, ge=0)
    max_stock_level: int = Field(0, ge=0)
    supplier_id: Optional[int] = Field(None, gt=0)
    category_id: Optional[int] = Field(None, gt=0)

    @field_validator("barcode")
    @classmethod
    def normalize_barcode(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @model_validator(mode="after")
    def check_stock_levels(self) -> 'ProductUpdate':
        if self.max_stock_level and self.max_stock_level < self.min_stock_level:
            raise ValueError("Maximum stock level cannot be below the minimum stock level")
        return self

    def apply_to(self, existing: Product) -> Product:
        return existing.with_changes(updated_date=utc_now(), **self.model_dump(exclude={"id"}))


class CategoryCreate(InputModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    parent_category_id: Optional[int] = Field(None, gt=0)
    image_url: Optional[str] = Field(None, max_length=500)

    def to_record(self) -> Category:
        return Category(**self.model_dump())


class CategoryUpdate(CategoryCreate):
    id: int

    @model_validator(mode="after")
    def check_not_own_parent(self) -> 'CategoryUpdate':
        if self.parent_category_id is not None and self.parent_category_id == self.id:
            raise ValueError("A category cannot be its own parent")
        return self

    def apply_to(self, existing: Category) -> Category:
        return existing.with_changes(**self.model_dump(exclude={"id"}))


class PartyCreate(InputModel):
    """Shared shape of customers and suppliers."""

    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=254)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("email", "phone", "address", mode="before")
    @classmethod
    def normalize_optional(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value) if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not re.match(EMAIL_PATTERN, value):
            raise ValueError("Email address is not valid")
        return value


class CustomerCreate(PartyCreate):
    def to_record(self) -> Customer:
        return Customer(**self.model_dump())


class CustomerUpdate(CustomerCreate):
    id: int

    def apply_to(self, existing: Customer) -> Customer:
        return existing.with_changes(**self.model_dump(exclude={"id"}))


class SupplierCreate(PartyCreate):
    def to_record(self) -> Supplier:
        return Supplier(**self.model_dump())


class SupplierUpdate(SupplierCreate):
    id: int

    def apply_to(self, existing: Supplier) -> Supplier:
        return existing.with_changes(**self.model_dump(exclude={"id"}))


class LocationCreate(InputModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    location_type: LocationType = LocationType.UNKNOWN
    address: Optional[str] = Field(None, max_length=500)

    def to_record(self) -> Location:
        return Location(**self.model_dump())


class LocationUpdate(LocationCreate):
    id: int

    def apply_to(self, existing: Location) -> Location:
        return existing.with_changes(**self.model_dump(exclude={"id"}))


USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class UserCreate(InputModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.EMPLOYEE
    full_name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=254, pattern=EMAIL_PATTERN)
    enabled: bool = True

    def to_record(self, password_hash: str) -> User:
        return User(password_hash=password_hash, **self.model_dump(exclude={"password"}))


class UserUpdate(InputModel):
    id: int
    username: str = Field(..., min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    role: UserRole = UserRole.EMPLOYEE
    full_name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=254, pattern=EMAIL_PATTERN)
    enabled: bool = True

    def apply_to(self, existing: User) -> User:
        return existing.with_changes(**self.model_dump(exclude={"id"}))


class ChangePassword(InputModel):
    user_id: int
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @model_validator(mode="after")
    def check_passwords_differ(self) -> 'ChangePassword':
        if self.current_password == self.new_password:
            raise ValueError("New password must differ from the current password")
        return self


class OrderCreate(InputModel):
    order_type: OrderType
    status: OrderStatus = OrderStatus.DRAFT
    supplier_id: Optional[int] = Field(None, gt=0)
    customer_id: Optional[int] = Field(None, gt=0)
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)
    created_by: int = Field(..., gt=0)
    location_id: Optional[int] = Field(None, gt=0)

    @field_validator("status")
    @classmethod
    def check_initial_status(cls, value: OrderStatus) -> OrderStatus:
        if value != OrderStatus.DRAFT:
            raise ValueError("New orders must start as draft")
        return value

    @model_validator(mode="after")
    def check_counterparty(self) -> 'OrderCreate':
        if self.order_type == OrderType.SALE and self.customer_id is None:
            raise ValueError("Sales orders require a customer")
        if self.order_type == OrderType.PURCHASE and self.supplier_id is None:
            raise ValueError("Purchase orders require a supplier")
        return self

    def to_record(self) -> Order:
        data = self.model_dump()
        data["order_date"] = data["order_date"] or utc_now()
        return Order(**data)


class OrderUpdate(InputModel):
    id: int
    status: OrderStatus
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)

    def apply_to(self, existing: Order) -> Order:
        return existing.with_changes(**self.model_dump(exclude={"id"}))


class OrderItemCreate(InputModel):
    order_id: int = Field(..., gt=0)
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)

    def to_record(self) -> OrderItem:
        return OrderItem(total_price=self.quantity * self.unit_price, **self.model_dump())


class OrderItemUpdate(InputModel):
    id: int
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)

    def apply_to(self, existing: OrderItem) -> OrderItem:
        return existing.with_changes(
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.quantity * self.unit_price
        )


class InventoryCreate(InputModel):
    product_id: int = Field(..., gt=0)
    location_id: int = Field(..., gt=0)
    current_stock: int = Field(0, ge=0)

    def to_record(self) -> Inventory:
        return Inventory(last_updated=utc_now(), **self.model_dump())


class InventoryUpdate(InputModel):
    id: int
    current_stock: int = Field(..., ge=0)
    reserved_stock: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_reserved(self) -> 'InventoryUpdate':
        if self.reserved_stock > self.current_stock:
            raise ValueError("Reserved stock cannot exceed current stock")
        return self

    def apply_to(self, existing: Inventory) -> Inventory:
        return existing.with_changes(last_updated=utc_now(), **self.model_dump(exclude={"id"}))


class StockAdjustment(InputModel):
    inventory_id: int
    quantity_change: int
    notes: Optional[str] = Field(None, max_length=2000)
    created_by: int = Field(..., gt=0)

    @field_validator("quantity_change")
    @classmethod
    def check_change(cls, value: int) -> int:
        if value == 0:
            raise ValueError("Quantity change cannot be zero")
        return value


class StockReservation(InputModel):
    inventory_id: int
    quantity: int = Field(..., gt=0)


class StockTransfer(InputModel):
    product_id: int = Field(..., gt=0)
    from_location_id: int = Field(..., gt=0)
    to_location_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=2000)
    created_by: int = Field(..., gt=0)

    @model_validator(mode="after")
    def check_locations(self) -> 'StockTransfer':
        if self.from_location_id == self.to_location_id:
            raise ValueError("Cannot transfer stock to the same location")
        return self


class TransactionCreate(InputModel):
    product_id: int = Field(..., gt=0)
    location_id: int = Field(..., gt=0)
    transaction_type: TransactionType
    quantity: int = Field(..., gt=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    reference: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=2000)
    created_by: int = Field(..., gt=0)

    def to_record(self) -> InventoryTransaction:
        return InventoryTransaction(created_date=utc_now(), **self.model_dump())


__all__ = [
    'utc_now', 'normalize_key',
    'OrderType', 'OrderStatus', 'ORDER_TRANSITIONS', 'LocationType', 'UserRole', 'TransactionType',
    'Record', 'SoftDeletableRecord', 'Product', 'Category', 'Customer', 'Supplier',
    'Location', 'User', 'Order', 'OrderItem', 'OrderListEntry',
    'Inventory', 'InventoryTransaction', 'InventoryMovement',
    'InputModel', 'ProductCreate', 'ProductUpdate', 'CategoryCreate', 'CategoryUpdate',
    'CustomerCreate', 'CustomerUpdate', 'SupplierCreate', 'SupplierUpdate',
    'LocationCreate', 'LocationUpdate', 'UserCreate', 'UserUpdate', 'ChangePassword',
    'OrderCreate', 'OrderUpdate', 'OrderItemCreate', 'OrderItemUpdate',
    'InventoryCreate', 'InventoryUpdate', 'StockAdjustment', 'StockReservation',
    'StockTransfer', 'TransactionCreate',
]
