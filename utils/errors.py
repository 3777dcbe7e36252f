"""
Crawler error taxonomy and call time bounds.

Every external call (profile fetch, state get/set, bulk write) is raced against
its own timer through `bounded()`, so a hung dependency surfaces as
RequestTimeoutError instead of hanging the crawl.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CrawlerError(Exception):
    """Base class for crawl failures."""


class RequestTimeoutError(CrawlerError, TimeoutError):
    """An external call exceeded its time bound."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout}s")


class UpstreamError(CrawlerError):
    """The profile API answered with a non-success status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(message or f"Response failed with status: {status_code}")

    @property
    def transient(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class StorageWriteError(CrawlerError):
    """A bulk write of one or more write groups failed."""

    def __init__(self, failed_count: int, message: str = "") -> None:
        self.failed_count = failed_count
        super().__init__(message or f"Failed to write {failed_count} records")


class StorageStateError(CrawlerError):
    """A scalar state read or write failed; progress cannot be recorded safely."""

    def __init__(self, key: str, message: str = "") -> None:
        self.key = key
        super().__init__(message or f"State operation failed for key: {key}")


async def bounded(awaitable: Awaitable[T], timeout: float, name: str) -> T:
    """Await `awaitable`, raising RequestTimeoutError if it takes longer than `timeout`.

    Args:
        awaitable: Coroutine or future to await
        timeout: Seconds to wait
        name: Operation name used in logs and the raised error

    Raises:
        RequestTimeoutError: If the timer fires first
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning("%s timeout!", name, extra={"operation": name, "timeout": timeout})
        raise RequestTimeoutError(name, timeout) from e
