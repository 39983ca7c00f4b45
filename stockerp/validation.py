"""
StockERP Validation Services
============================

Existence and uniqueness checks shared by the write and read services.
Point existence consults the cache first and the backing store second;
uniqueness always asks the backing store. Composite validations for
deletion, restore and hard deletion run pluggable business rules.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from .cache import EntityCache
from .core import ErrorCode, ServiceResult
from .errors import DatabaseErrorHandler
from .models import Record
from .repositories import SqlAlchemyRepository

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)

KEY_LABELS: Dict[str, str] = {
    "sku": "SKU",
}


def describe_key(key_name: str) -> str:
    """Human label for a secondary key, as used in duplicate-key messages."""
    return KEY_LABELS.get(key_name, f"the {key_name.replace('_', ' ')}")


def invalid_id_result(entity_name: str) -> ServiceResult:
    return ServiceResult.error_result(
        f"{entity_name} ID must be a positive integer.", ErrorCode.INVALID_INPUT
    )


@dataclass(frozen=True)
class ValidationRule:
    """
    A named business rule run before a lifecycle transition.

    ``check`` receives the entity id and returns a violation message, or
    None when the transition is allowed.
    """

    name: str
    check: Callable[[int], Awaitable[Optional[str]]]


class EntityValidationService(Generic[R]):
    """Answers existence and uniqueness questions for one entity type."""

    def __init__(
        self,
        cache: EntityCache[R],
        repository: SqlAlchemyRepository[R],
        error_handler: DatabaseErrorHandler,
        deletion_rules: Optional[List[ValidationRule]] = None,
        restore_rules: Optional[List[ValidationRule]] = None,
        hard_deletion_rules: Optional[List[ValidationRule]] = None
    ):
        self.cache = cache
        self.repository = repository
        self.error_handler = error_handler
        self.entity_name = cache.entity_name
        self.deletion_rules: List[ValidationRule] = list(deletion_rules or [])
        self.restore_rules: List[ValidationRule] = list(restore_rules or [])
        self.hard_deletion_rules: List[ValidationRule] = list(hard_deletion_rules or [])

    # ---------- rule registration ----------

    def add_deletion_rule(self, rule: ValidationRule) -> None:
        self.deletion_rules.append(rule)

    def add_restore_rule(self, rule: ValidationRule) -> None:
        self.restore_rules.append(rule)

    def add_hard_deletion_rule(self, rule: ValidationRule) -> None:
        self.hard_deletion_rules.append(rule)

    # ---------- primitive checks ----------

    async def exists(self, entity_id: int, include_deleted: bool = False) -> bool:
        """
        Check whether a record exists.

        A cache hit answers immediately since the cache only holds active
        records. On a miss the backing store decides.
        """
        if self.cache.exists(entity_id):
            return True
        return await self.repository.exists(entity_id, include_deleted)

    async def is_key_available(self, key_name: str, value: str, exclude_id: Optional[int] = None,
                               include_deleted: bool = False) -> bool:
        """Availability of a secondary key value, checked against the backing store."""
        taken = await self.repository.key_exists(key_name, value, exclude_id, include_deleted)
        return not taken

    # ---------- result-returning checks ----------

    async def check_exists(self, entity_id: int, include_deleted: bool = False) -> ServiceResult[bool]:
        return await self.error_handler.handle(
            lambda: self.exists(entity_id, include_deleted),
            f"Check {self.entity_name} {entity_id} exists",
            enable_retry=False
        )

    async def validate_unique_keys(self, record: R, exclude_id: Optional[int] = None) -> ServiceResult[None]:
        """
        Verify that none of the record's secondary keys is used by another
        active record. The cache is consulted first, then the backing store.
        """
        for key_name in self.cache.unique_keys:
            value = getattr(record, key_name)
            if record.key_value(key_name) is None:
                continue

            owner = self.cache.get_by_key(value, key_name)
            if owner is not None and owner.id != exclude_id:
                return self._duplicate(key_name, value)

            available = await self.error_handler.handle(
                lambda key_name=key_name, value=value: self.is_key_available(key_name, value, exclude_id),
                f"Check {self.entity_name} {key_name} availability",
                enable_retry=False
            )
            if available.is_error():
                return ServiceResult.from_error(available)
            if not available.data:
                return self._duplicate(key_name, value)

        return ServiceResult.success_result()

    def _duplicate(self, key_name: str, value: str) -> ServiceResult[None]:
        return ServiceResult.error_result(
            f"A {self.entity_name.lower()} with {describe_key(key_name)} '{value}' already exists.",
            ErrorCode.DUPLICATE_KEY
        )

    async def _run_rules(self, rules: List[ValidationRule], entity_id: int) -> ServiceResult[None]:
        for rule in rules:
            outcome = await self.error_handler.handle(
                lambda rule=rule: rule.check(entity_id),
                f"Run {self.entity_name} rule '{rule.name}'",
                enable_retry=False
            )
            if outcome.is_error():
                return ServiceResult.from_error(outcome)
            if outcome.data:
                logger.info(f"{self.entity_name} {entity_id} blocked by rule '{rule.name}': {outcome.data}")
                return ServiceResult.error_result(outcome.data, ErrorCode.CONSTRAINT_VIOLATION)
        return ServiceResult.success_result()

    # ---------- composite validations ----------

    async def validate_for_deletion(self, entity_id: int) -> ServiceResult[None]:
        """The record must be active and every deletion rule must pass."""
        if entity_id <= 0:
            return invalid_id_result(self.entity_name)

        found = await self.check_exists(entity_id)
        if found.is_error():
            return ServiceResult.from_error(found)
        if not found.data:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found or already deleted.",
                ErrorCode.NOT_FOUND
            )

        return await self._run_rules(self.deletion_rules, entity_id)

    async def validate_for_restore(self, entity_id: int) -> ServiceResult[R]:
        """
        The record must exist and be soft-deleted, its keys must not have been
        claimed meanwhile, and every restore rule must pass.

        Returns:
            ServiceResult: The deleted record on success
        """
        if entity_id <= 0:
            return invalid_id_result(self.entity_name)

        fetched = await self.error_handler.handle(
            lambda: self.repository.get_by_id(entity_id, include_deleted=True),
            f"Get {self.entity_name} {entity_id} for restore",
            enable_retry=False
        )
        if fetched.is_error():
            return ServiceResult.from_error(fetched)

        record = fetched.data
        if record is None:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found.", ErrorCode.NOT_FOUND
            )
        if not getattr(record, 'is_deleted', False):
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} is not deleted and cannot be restored.",
                ErrorCode.INVALID_INPUT
            )

        keys = await self.validate_unique_keys(record, exclude_id=entity_id)
        if keys.is_error():
            return ServiceResult.error_result(
                f"Cannot restore {self.entity_name.lower()} with ID {entity_id}: {keys.error_message}",
                keys.error_code
            )

        rules = await self._run_rules(self.restore_rules, entity_id)
        if rules.is_error():
            return ServiceResult.from_error(rules)

        return ServiceResult.success_result(record)

    async def validate_for_hard_deletion(self, entity_id: int) -> ServiceResult[None]:
        """The record may be active or soft-deleted; hard-deletion rules must pass."""
        if entity_id <= 0:
            return invalid_id_result(self.entity_name)

        found = await self.check_exists(entity_id, include_deleted=True)
        if found.is_error():
            return ServiceResult.from_error(found)
        if not found.data:
            return ServiceResult.error_result(
                f"{self.entity_name} with ID {entity_id} not found.", ErrorCode.NOT_FOUND
            )

        return await self._run_rules(self.hard_deletion_rules, entity_id)
