"""Async access to a synchronous pool repository."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from src.core.exceptions import StoreUnavailableException
from src.core.logger import logger
from src.utils.timeout import AsyncTimeoutError, run_sync_with_timeout

T = TypeVar("T")


class StoreBoundService:
    """Base for async pool facades.

    Repository calls run in a worker thread with a bounded wait. SQLAlchemy
    failures and timeouts surface as ``StoreUnavailableException``; domain
    errors (not found, duplicate) pass through unchanged.
    """

    store_label = "pool"

    def __init__(self, store_timeout_seconds: float) -> None:
        self.store_timeout_seconds = store_timeout_seconds

    async def _store(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await run_sync_with_timeout(
                func,
                *args,
                timeout=self.store_timeout_seconds,
                operation_name=f"{self.store_label}.{operation}",
                **kwargs,
            )
        except AsyncTimeoutError as exc:
            raise StoreUnavailableException(operation, "timeout") from exc
        except SQLAlchemyError as exc:
            logger.warning(
                "{}: store error during {}: {}", self.store_label, operation, type(exc).__name__
            )
            raise StoreUnavailableException(operation, type(exc).__name__) from exc
