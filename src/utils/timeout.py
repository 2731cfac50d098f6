"""
Timeout protection for async operations.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from src.core.logger import logger


T = TypeVar("T")


class AsyncTimeoutError(TimeoutError):
    """An awaited operation exceeded its time budget"""

    def __init__(self, message: str, operation: str, timeout: float):
        super().__init__(message)
        self.operation = operation
        self.timeout = timeout


async def run_with_timeout(coro: Awaitable[T], timeout: float, operation_name: str = "operation") -> T:
    """
    Await *coro* for at most *timeout* seconds.

    Raises:
        AsyncTimeoutError: the budget ran out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Operation timed out: {} (timeout={}s)", operation_name, timeout)
        raise AsyncTimeoutError(
            f"{operation_name} timed out after {timeout}s",
            operation=operation_name,
            timeout=timeout,
        )


async def run_sync_with_timeout(
    func: Callable[..., T],
    *args: Any,
    timeout: float,
    operation_name: Optional[str] = None,
    **kwargs: Any,
) -> T:
    """Run a blocking callable in a worker thread under a time budget.

    On timeout the worker thread is left to finish on its own; the caller is
    released immediately.
    """
    return await run_with_timeout(
        asyncio.to_thread(func, *args, **kwargs),
        timeout=timeout,
        operation_name=operation_name or getattr(func, "__name__", "operation"),
    )
