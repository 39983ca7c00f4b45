"""
StockERP Entity Cache Engine
============================

A generic, in-memory, write-through cache holding the active records of one
entity type. Records are keyed by id and by any number of case-insensitive
unique secondary keys declared on the record class (``UNIQUE_KEYS``).

All mutations and enumerations of one cache instance run under a single
re-entrant lock, so the primary map and every secondary index change together
and ``initialize`` swaps the whole working set in one step. Observers are
notified after the lock is released.

The cache never raises for "not found" or rejected candidates; it answers
with ``None`` or ``False``. It only raises ``CacheIntegrityError`` when a
subclass detects data it cannot represent.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import logging
import threading
from abc import ABC
from datetime import datetime, timezone
from typing import (
    Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, Sequence,
    Tuple, Type, TypeVar
)

from .core import CacheIntegrityError
from .models import Record, normalize_key

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)


# ==================== OBSERVERS ====================

class CacheObserver(ABC):
    """
    Receives notifications about cache mutations.

    Override only the callbacks you need; the defaults do nothing.
    """

    def on_added(self, record: Record) -> None:
        pass

    def on_updated(self, old: Record, new: Record) -> None:
        pass

    def on_removed(self, record: Record) -> None:
        pass

    def on_reset(self, records: Sequence[Record]) -> None:
        """Called after ``initialize`` or ``clear`` replaced the contents."""
        pass


class CallbackObserver(CacheObserver):
    """Adapts plain callables to the observer interface."""

    def __init__(
        self,
        on_added: Optional[Callable[[Record], None]] = None,
        on_updated: Optional[Callable[[Record, Record], None]] = None,
        on_removed: Optional[Callable[[Record], None]] = None,
        on_reset: Optional[Callable[[Sequence[Record]], None]] = None
    ):
        self._on_added = on_added
        self._on_updated = on_updated
        self._on_removed = on_removed
        self._on_reset = on_reset

    def on_added(self, record: Record) -> None:
        if self._on_added:
            self._on_added(record)

    def on_updated(self, old: Record, new: Record) -> None:
        if self._on_updated:
            self._on_updated(old, new)

    def on_removed(self, record: Record) -> None:
        if self._on_removed:
            self._on_removed(record)

    def on_reset(self, records: Sequence[Record]) -> None:
        if self._on_reset:
            self._on_reset(records)


# ==================== QUERIES ====================

class CacheQuery(Generic[R]):
    """
    Lazy, restartable view over a cache.

    Each iteration takes a fresh snapshot of the cache under its lock and
    then filters it lazily, so a query object can be iterated any number of
    times and always reflects the cache at the time iteration starts.
    """

    def __init__(self, cache: 'EntityCache[R]', predicates: List[Callable[[R], bool]]):
        self._cache = cache
        self._predicates = predicates

    def __iter__(self) -> Iterator[R]:
        for record in self._cache.get_all():
            if all(predicate(record) for predicate in self._predicates):
                yield record

    def where(self, predicate: Callable[[R], bool]) -> 'CacheQuery[R]':
        return CacheQuery(self._cache, self._predicates + [predicate])

    def to_list(self) -> List[R]:
        return list(self)

    def first(self) -> Optional[R]:
        return next(iter(self), None)

    def count(self) -> int:
        return sum(1 for _ in self)


# ==================== ENGINE ====================

class EntityCache(Generic[R]):
    """Generic active-record cache for one entity type."""

    def __init__(self, record_type: Type[R], unique_keys: Optional[Sequence[str]] = None):
        self.record_type = record_type
        self.entity_name = record_type.ENTITY_NAME
        self.unique_keys: Tuple[str, ...] = tuple(
            unique_keys if unique_keys is not None else record_type.UNIQUE_KEYS
        )

        known_fields = set(record_type.field_names())
        for key_name in self.unique_keys:
            if key_name not in known_fields:
                raise ValueError(f"{self.entity_name} has no field '{key_name}' to index")

        self._records: Dict[int, R] = {}
        self._indexes: Dict[str, Dict[str, int]] = {key_name: {} for key_name in self.unique_keys}
        self._lock = threading.RLock()
        self._observers: List[CacheObserver] = []
        self._warm = False
        self._last_initialized: Optional[datetime] = None

    # ---------- observers ----------

    def add_observer(self, observer: CacheObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: CacheObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, callback: str, *args: Any) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, callback)(*args)
            except CacheIntegrityError:
                raise
            except Exception as e:
                logger.warning(f"{self.entity_name} cache observer notification failed: {e}")

    # ---------- subclass hooks (called with the lock held) ----------

    def _prepare(self, record: R) -> Any:
        """Validate and precompute derived data before ``record`` is stored."""
        return None

    def _store_derived(self, record: R, prepared: Any) -> None:
        pass

    def _drop_derived(self, record: R) -> None:
        pass

    def _rebuild_derived(self) -> None:
        pass

    # ---------- lifecycle ----------

    @property
    def is_warm(self) -> bool:
        """True once ``initialize`` has loaded the cache from the store."""
        return self._warm

    @property
    def last_initialized(self) -> Optional[datetime]:
        return self._last_initialized

    def initialize(self, records: Iterable[R]) -> int:
        """
        Replace the entire cache contents with ``records``.

        Soft-deleted records are excluded. A record whose secondary key is
        already claimed by an earlier record in the sequence is skipped with a
        warning, so every indexed key keeps pointing at exactly one record.

        Returns:
            int: Number of records admitted
        """
        new_records: Dict[int, R] = {}
        new_indexes: Dict[str, Dict[str, int]] = {key_name: {} for key_name in self.unique_keys}

        for record in records:
            if getattr(record, 'is_deleted', False):
                continue

            keys = [(key_name, record.key_value(key_name)) for key_name in self.unique_keys]
            conflict = next(
                (key_name for key_name, key in keys
                 if key is not None and new_indexes[key_name].get(key, record.id) != record.id),
                None
            )
            if conflict is not None:
                logger.warning(
                    f"Skipping {self.entity_name} {record.id} during cache initialization: "
                    f"duplicate {conflict} '{getattr(record, conflict)}'"
                )
                continue

            previous = new_records.get(record.id)
            if previous is not None:
                for key_name in self.unique_keys:
                    old_key = previous.key_value(key_name)
                    if old_key is not None:
                        new_indexes[key_name].pop(old_key, None)

            new_records[record.id] = record
            for key_name, key in keys:
                if key is not None:
                    new_indexes[key_name][key] = record.id

        with self._lock:
            self._records = new_records
            self._indexes = new_indexes
            self._rebuild_derived()
            self._warm = True
            self._last_initialized = datetime.now(timezone.utc)
            snapshot = list(self._records.values())

        logger.debug(f"{self.entity_name} cache initialized with {len(snapshot)} record(s)")
        self._notify('on_reset', snapshot)
        return len(snapshot)

    def clear(self) -> None:
        with self._lock:
            self._records = {}
            self._indexes = {key_name: {} for key_name in self.unique_keys}
            self._rebuild_derived()
            self._warm = False

        self._notify('on_reset', [])

    # ---------- mutations ----------

    def create(self, entity_id: int, candidate: R) -> Optional[R]:
        """
        Insert ``candidate`` under the store-assigned ``entity_id``.

        Returns:
            The stored record, or None when the candidate is incomplete,
            soft-deleted, already cached or collides on a secondary key
        """
        if entity_id <= 0:
            return None

        record = candidate.with_changes(id=entity_id)
        if not record.is_complete() or getattr(record, 'is_deleted', False):
            logger.debug(f"Rejected {self.entity_name} {entity_id}: integrity rule not met")
            return None

        with self._lock:
            if entity_id in self._records:
                return None

            keys = {key_name: record.key_value(key_name) for key_name in self.unique_keys}
            for key_name, key in keys.items():
                if key is not None and key in self._indexes[key_name]:
                    logger.debug(f"Rejected {self.entity_name} {entity_id}: {key_name} '{key}' already cached")
                    return None

            prepared = self._prepare(record)

            self._records[entity_id] = record
            for key_name, key in keys.items():
                if key is not None:
                    self._indexes[key_name][key] = entity_id
            self._store_derived(record, prepared)

        self._notify('on_added', record)
        return record

    def update(self, candidate: R) -> Optional[R]:
        """
        Merge the mutable fields of ``candidate`` onto the cached record.

        Soft-delete bookkeeping is never taken from the candidate. Secondary
        index entries follow key changes.

        Returns:
            The new record, or None when the id is not cached or the merged
            record is incomplete or collides on a secondary key
        """
        with self._lock:
            existing = self._records.get(candidate.id)
            if existing is None:
                return None

            changes = {name: getattr(candidate, name) for name in self.record_type.MUTABLE_FIELDS}
            merged = existing.with_changes(**changes)
            if not merged.is_complete():
                return None

            new_keys = {key_name: merged.key_value(key_name) for key_name in self.unique_keys}
            for key_name, key in new_keys.items():
                owner = self._indexes[key_name].get(key) if key is not None else None
                if owner is not None and owner != merged.id:
                    return None

            prepared = self._prepare(merged)

            for key_name, new_key in new_keys.items():
                old_key = existing.key_value(key_name)
                if old_key == new_key:
                    continue
                index = self._indexes[key_name]
                if old_key is not None and index.get(old_key) == merged.id:
                    del index[old_key]
                if new_key is not None:
                    index[new_key] = merged.id

            self._drop_derived(existing)
            self._records[merged.id] = merged
            self._store_derived(merged, prepared)

        self._notify('on_updated', existing, merged)
        return merged

    def delete(self, entity_id: int) -> bool:
        """Remove a record and its index entries. Returns whether it was cached."""
        with self._lock:
            record = self._records.pop(entity_id, None)
            if record is None:
                return False

            for key_name in self.unique_keys:
                key = record.key_value(key_name)
                index = self._indexes[key_name]
                if key is not None and index.get(key) == entity_id:
                    del index[key]
            self._drop_derived(record)

        self._notify('on_removed', record)
        return True

    # ---------- lookups ----------

    def get_by_id(self, entity_id: int) -> Optional[R]:
        with self._lock:
            return self._records.get(entity_id)

    def get_by_key(self, value: Any, key_name: Optional[str] = None) -> Optional[R]:
        """Look up a record by a secondary key (the first declared key by default)."""
        key_name = key_name or self._default_key()
        if key_name not in self._indexes:
            raise ValueError(f"{self.entity_name} cache has no '{key_name}' index")

        key = normalize_key(value)
        if key is None:
            return None

        with self._lock:
            entity_id = self._indexes[key_name].get(key)
            return self._records.get(entity_id) if entity_id is not None else None

    def _default_key(self) -> str:
        if not self.unique_keys:
            raise ValueError(f"{self.entity_name} cache has no secondary keys")
        return self.unique_keys[0]

    def exists(self, entity_id: int) -> bool:
        with self._lock:
            return entity_id in self._records

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def count_by(self, predicate: Callable[[R], bool]) -> int:
        return sum(1 for record in self.get_all() if predicate(record))

    def get_all(self) -> List[R]:
        """Snapshot of all cached records ordered by id."""
        with self._lock:
            return [self._records[entity_id] for entity_id in sorted(self._records)]

    def ids(self) -> List[int]:
        with self._lock:
            return sorted(self._records)

    def index_snapshot(self) -> Dict[str, Dict[str, int]]:
        """Copy of the secondary indexes, for diagnostics and tests."""
        with self._lock:
            return {key_name: dict(index) for key_name, index in self._indexes.items()}

    def search(
        self,
        term: Optional[str] = None,
        predicate: Optional[Callable[[R], bool]] = None,
        **filters: Any
    ) -> CacheQuery[R]:
        """
        Build a lazy query over the cache.

        Args:
            term: Case-insensitive substring matched against the record's
                SEARCH_FIELDS; blank terms match everything
            predicate: Extra arbitrary filter
            **filters: Field equality filters, e.g. ``category_id=3``

        All conditions are ANDed together.
        """
        known_fields = set(self.record_type.field_names())
        unknown = sorted(set(filters) - known_fields)
        if unknown:
            raise ValueError(f"Unknown {self.entity_name} filter field(s): {', '.join(unknown)}")

        predicates: List[Callable[[R], bool]] = []

        needle = term.strip().casefold() if term and term.strip() else None
        if needle is not None:
            search_fields = self.record_type.SEARCH_FIELDS

            def matches_term(record: R) -> bool:
                for name in search_fields:
                    value = getattr(record, name, None)
                    if value is not None and needle in str(value).casefold():
                        return True
                return False

            predicates.append(matches_term)

        for name, expected in filters.items():
            if expected is None:
                continue
            predicates.append(lambda record, name=name, expected=expected: getattr(record, name) == expected)

        if predicate is not None:
            predicates.append(predicate)

        return CacheQuery(self, predicates)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'entity': self.entity_name,
                'count': len(self._records),
                'warm': self._warm,
                'last_initialized': self._last_initialized.isoformat() if self._last_initialized else None,
                'indexes': {key_name: len(index) for key_name, index in self._indexes.items()},
            }

    def __contains__(self, entity_id: object) -> bool:
        return isinstance(entity_id, int) and self.exists(entity_id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(entity={self.entity_name!r}, count={self.count()})"
