"""
StockERP Core Module - Shared Service Kernel
Version: 1.0.0
Author: StockERP Development Team
License: MIT

This module holds the building blocks shared by every layer of StockERP:
the error taxonomy, the ServiceResult wrapper returned by all public service
operations, domain events and their dispatcher, and pagination helpers.
"""

import asyncio
import enum
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


# ==================== ERROR TAXONOMY ====================

class ErrorCode(str, enum.Enum):
    """Classification attached to every failed ServiceResult."""
    NONE = "none"
    PERMISSION_DENIED = "permission_denied"
    CONNECTION_FAILURE = "connection_failure"
    TIMEOUT = "timeout"
    DUPLICATE_KEY = "duplicate_key"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    UNEXPECTED_ERROR = "unexpected_error"
    VALIDATION_FAILURE = "validation_failure"
    INVALID_INPUT = "invalid_input"
    PARTIAL_FAILURE = "partial_failure"
    CONSTRAINT_VIOLATION = "constraint_violation"
    NOT_FOUND = "not_found"


class ServiceError(Exception):
    """Base exception for service layer operations."""
    pass


class CacheIntegrityError(ServiceError):
    """
    Raised when cached data violates an assumption the cache relies on,
    such as an order type tag outside the known variants.

    This signals a bug upstream and is never converted into a ServiceResult.
    """
    pass


# ==================== SERVICE RESULT ====================

class ServiceResult(Generic[T]):
    """Result wrapper for service operations."""

    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error_message: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.NONE,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.success = success
        self.data = data
        self.error_message = error_message
        self.error_code = error_code
        self.metadata = metadata or {}

    @classmethod
    def success_result(cls, data: T = None, metadata: Optional[Dict[str, Any]] = None) -> 'ServiceResult[T]':
        """Create a successful result."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def error_result(
        cls,
        error_message: str,
        error_code: ErrorCode = ErrorCode.UNEXPECTED_ERROR,
        metadata: Optional[Dict[str, Any]] = None
    ) -> 'ServiceResult[T]':
        """Create an error result."""
        return cls(success=False, error_message=error_message, error_code=error_code, metadata=metadata)

    @classmethod
    def from_error(cls, other: 'ServiceResult[Any]') -> 'ServiceResult[T]':
        """Re-type a failed result so it can be returned from another operation."""
        return cls(
            success=False,
            error_message=other.error_message,
            error_code=other.error_code,
            metadata=other.metadata
        )

    def is_success(self) -> bool:
        """Check if the result is successful."""
        return self.success

    def is_error(self) -> bool:
        """Check if the result is an error."""
        return not self.success

    def get_data(self) -> T:
        """Get the data, raising an exception if this is an error result."""
        if self.is_error():
            raise ServiceError(self.error_message or "Operation failed")
        return self.data

    def get_data_or_none(self) -> Optional[T]:
        """Get the data or None if this is an error result."""
        return self.data if self.is_success() else None

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        if self.success:
            return f"ServiceResult(success=True, data={self.data!r})"
        return f"ServiceResult(success=False, error_code={self.error_code.value}, error_message={self.error_message!r})"


# ==================== DOMAIN EVENTS ====================

def _record_to_dict(record: Any) -> Dict[str, Any]:
    if hasattr(record, 'to_dict'):
        return record.to_dict()
    if is_dataclass(record):
        return asdict(record)
    return {'value': record}


class DomainEvent:
    """Base class for domain events."""

    def __init__(self, event_id: str = None, occurred_at: datetime = None):
        self.event_id = event_id or str(uuid.uuid4())
        self.occurred_at = occurred_at or datetime.now(timezone.utc)
        self.event_type = self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return {
            'event_id': self.event_id,
            'event_type': self.event_type,
            'occurred_at': self.occurred_at.isoformat(),
            'data': self.get_event_data()
        }

    def get_event_data(self) -> Dict[str, Any]:
        """Override in subclasses to provide event-specific data."""
        return {}


class EntityCreatedEvent(DomainEvent):
    """Event raised when an entity is created."""

    def __init__(self, entity_type: str, entity: Any, **kwargs):
        super().__init__(**kwargs)
        self.entity_type = entity_type
        self.entity = entity

    def get_event_data(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'entity_id': self.entity.id,
            'entity_data': _record_to_dict(self.entity)
        }


class EntityUpdatedEvent(DomainEvent):
    """Event raised when an entity is updated."""

    def __init__(self, entity_type: str, entity: Any, changes: Dict[str, Tuple[Any, Any]], **kwargs):
        super().__init__(**kwargs)
        self.entity_type = entity_type
        self.entity = entity
        self.changes = changes

    def get_event_data(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'entity_id': self.entity.id,
            'changes': {
                field: {'old': old_val, 'new': new_val}
                for field, (old_val, new_val) in self.changes.items()
            }
        }


class EntityDeletedEvent(DomainEvent):
    """Event raised when an entity is soft or hard deleted."""

    def __init__(self, entity_type: str, entity_id: int, hard: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.hard = hard

    def get_event_data(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'hard': self.hard
        }


class EntityRestoredEvent(DomainEvent):
    """Event raised when a soft-deleted entity is restored."""

    def __init__(self, entity_type: str, entity_id: int, **kwargs):
        super().__init__(**kwargs)
        self.entity_type = entity_type
        self.entity_id = entity_id

    def get_event_data(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'entity_id': self.entity_id
        }


class EventHandler(ABC):
    """Base class for event handlers."""

    @abstractmethod
    async def handle(self, event: DomainEvent) -> None:
        """Handle the domain event."""
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        """Check if this handler can handle the event."""
        return True


class EventDispatcher:
    """Event dispatcher for domain events."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to a specific event type."""
        self._handlers[event_type].append(handler)

    def subscribe_global(self, handler: EventHandler) -> None:
        """Subscribe a handler to all events."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

    def unsubscribe_global(self, handler: EventHandler) -> None:
        try:
            self._global_handlers.remove(handler)
        except ValueError:
            pass

    async def dispatch(self, event: DomainEvent) -> None:
        """Dispatch an event to all registered handlers."""
        handlers_to_notify = list(self._handlers.get(event.event_type, []))
        handlers_to_notify.extend(self._global_handlers)

        applicable_handlers = [h for h in handlers_to_notify if h.can_handle(event)]
        tasks = [handler.handle(event) for handler in applicable_handlers]

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for handler, result in zip(applicable_handlers, results):
                if isinstance(result, Exception):
                    logger.warning(
                        f"Event handler {type(handler).__name__} failed for {event.event_type}: {result}"
                    )


# ==================== PAGINATION ====================

class PaginationParams:
    """Pagination parameters."""

    def __init__(
        self,
        page: int = 1,
        page_size: int = 50,
        max_page_size: int = 1000
    ):
        self.page = page
        self.page_size = min(page_size, max_page_size)
        self.offset = (self.page - 1) * self.page_size

    def is_valid(self) -> bool:
        return self.page > 0 and self.page_size > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page': self.page,
            'page_size': self.page_size,
            'offset': self.offset
        }


class PaginatedResult(Generic[T]):
    """Result with pagination information."""

    def __init__(
        self,
        items: List[T],
        total_count: int,
        pagination: PaginationParams
    ):
        self.items = items
        self.total_count = total_count
        self.pagination = pagination

    @property
    def total_pages(self) -> int:
        if self.pagination.page_size == 0:
            return 0
        return (self.total_count + self.pagination.page_size - 1) // self.pagination.page_size

    @property
    def has_next(self) -> bool:
        return self.pagination.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.pagination.page > 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'items': [_record_to_dict(item) for item in self.items],
            'pagination': {
                'page': self.pagination.page,
                'page_size': self.pagination.page_size,
                'total_count': self.total_count,
                'total_pages': self.total_pages,
                'has_next': self.has_next,
                'has_previous': self.has_previous
            }
        }


__all__ = [
    'ErrorCode', 'ServiceError', 'CacheIntegrityError', 'ServiceResult',
    'DomainEvent', 'EntityCreatedEvent', 'EntityUpdatedEvent', 'EntityDeletedEvent',
    'EntityRestoredEvent', 'EventHandler', 'EventDispatcher',
    'PaginationParams', 'PaginatedResult',
]
