"""
StockERP Database Error Handling
================================

Runs backing-store calls, classifies the exceptions they raise into
ErrorCode values, retries transient failures with exponential backoff and
turns the final outcome into a ServiceResult carrying a user-friendly message.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)

from .config import RetrySettings
from .core import CacheIntegrityError, ErrorCode, ServiceResult

logger = logging.getLogger(__name__)

T = TypeVar('T')


USER_FRIENDLY_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.PERMISSION_DENIED: "You do not have permission to perform this action. Please contact your administrator.",
    ErrorCode.CONNECTION_FAILURE: "Unable to connect to the database. Please check your network connection or contact support.",
    ErrorCode.TIMEOUT: "The operation took too long to complete. Please try again or contact support if the problem persists.",
    ErrorCode.DUPLICATE_KEY: "This record already exists. Please check your data and try again.",
    ErrorCode.FOREIGN_KEY_VIOLATION: "Cannot complete this operation because it would violate data integrity rules.",
    ErrorCode.UNEXPECTED_ERROR: "An unexpected error occurred. Please try again or contact support.",
    ErrorCode.VALIDATION_FAILURE: "The data provided is invalid. Please review and correct any errors.",
    ErrorCode.INVALID_INPUT: "The input provided is not valid. Please check and try again.",
    ErrorCode.PARTIAL_FAILURE: "The operation was only partially successful. Please review the results and try again if necessary.",
    ErrorCode.CONSTRAINT_VIOLATION: "The operation could not be completed due to a constraint violation. Please check your data and try again.",
    ErrorCode.NOT_FOUND: "The requested record was not found. Please verify the information and try again.",
}


def get_user_friendly_message(error_code: ErrorCode) -> str:
    return USER_FRIENDLY_MESSAGES.get(error_code, USER_FRIENDLY_MESSAGES[ErrorCode.UNEXPECTED_ERROR])


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for transient failures."""

    max_retries: int = 3
    initial_delay: float = 0.5
    backoff_multiplier: float = 2.0
    enable_retry_for_timeouts: bool = True
    enable_retry_for_connection_failures: bool = True

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")
        if self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be positive")

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> 'RetryConfig':
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.initial_delay,
            backoff_multiplier=settings.backoff_multiplier,
            enable_retry_for_timeouts=settings.retry_on_timeouts,
            enable_retry_for_connection_failures=settings.retry_on_connection_failures,
        )

    def delay_for_attempt(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (1-based)."""
        return self.initial_delay * (self.backoff_multiplier ** (attempt - 1))


class DatabaseErrorHandler:
    """Executes backing-store operations and classifies their failures."""

    def __init__(self, retry_config: Optional[RetryConfig] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep

    def classify_exception(self, error: BaseException) -> ErrorCode:
        """Map an exception raised by the backing store to an ErrorCode."""
        if isinstance(error, IntegrityError):
            message = str(error.orig if error.orig is not None else error).upper()
            if "UNIQUE" in message or "DUPLICATE" in message:
                return ErrorCode.DUPLICATE_KEY
            if "FOREIGN KEY" in message:
                return ErrorCode.FOREIGN_KEY_VIOLATION
            return ErrorCode.CONSTRAINT_VIOLATION

        if isinstance(error, (PoolTimeoutError, asyncio.TimeoutError, TimeoutError)):
            return ErrorCode.TIMEOUT

        if isinstance(error, (OperationalError, DisconnectionError, ConnectionError)):
            return ErrorCode.CONNECTION_FAILURE

        if isinstance(error, PermissionError):
            return ErrorCode.PERMISSION_DENIED

        return ErrorCode.UNEXPECTED_ERROR

    def is_retryable(self, error_code: ErrorCode) -> bool:
        if error_code == ErrorCode.TIMEOUT:
            return self.retry_config.enable_retry_for_timeouts
        if error_code == ErrorCode.CONNECTION_FAILURE:
            return self.retry_config.enable_retry_for_connection_failures
        return False

    async def handle(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str,
        enable_retry: bool = True
    ) -> ServiceResult[T]:
        """
        Run ``operation`` and wrap its outcome in a ServiceResult.

        Args:
            operation: Zero-argument coroutine factory performing one store call
            description: Human readable name of the operation, used in logs
            enable_retry: Whether transient failures may be retried

        Returns:
            ServiceResult: Success with the operation's value, or failure with
            the classified error code and a user-friendly message
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                value = await operation()
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}")
                return ServiceResult.success_result(value)

            except CacheIntegrityError:
                raise

            except Exception as e:
                error_code = self.classify_exception(e)
                can_retry = (
                    enable_retry
                    and attempt <= self.retry_config.max_retries
                    and self.is_retryable(error_code)
                )

                if not can_retry:
                    logger.error(
                        f"{description} failed after {attempt} attempt(s) "
                        f"[{error_code.value}]: {e}"
                    )
                    return ServiceResult.error_result(
                        get_user_friendly_message(error_code),
                        error_code,
                        metadata={'operation': description, 'attempts': attempt, 'detail': str(e)}
                    )

                delay = self.retry_config.delay_for_attempt(attempt)
                logger.warning(
                    f"{description} failed on attempt {attempt} [{error_code.value}]: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
