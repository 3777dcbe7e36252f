"""
Crawl state stores.

Small named integers (cursor, row counter, credential slot) that must survive
between invocations. Two interchangeable backends:

- RedisStateStore: GET / SET / INCRBY on prefixed keys
- SqliteStateStore: rows in the `parameters` table next to the record store

Every call is bounded by a timeout; any failure surfaces as StorageStateError,
since progress cannot be recorded safely without the state store.
"""

import asyncio
import logging
import sqlite3
from typing import Optional, Protocol

import redis.asyncio as redis

from utils.config import Settings, settings
from utils.db import get_conn, init_schema
from utils.errors import CrawlerError, StorageStateError, bounded

logger = logging.getLogger(__name__)

CURSOR_KEY = "currentAccountId"
ROW_COUNTER_KEY = "localAccountId"
CREDENTIAL_SLOT_KEY = "credentialSlot"


class StateStore(Protocol):
    """Durable named integers. Keys never set read as 0."""

    async def get(self, key: str) -> int: ...

    async def set(self, key: str, value: int) -> None: ...

    async def incr(self, key: str, amount: int) -> int: ...

    async def close(self) -> None: ...


class RedisStateStore:
    """State store backed by Redis."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[redis.Redis] = None,
        max_connections: Optional[int] = None,
    ) -> None:
        """Initialize Redis state store.

        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
            key_prefix: Prefix for every key, defaults to settings.REDIS_KEY_PREFIX
            timeout: Seconds per call, defaults to settings.STATE_TIMEOUT
            client: Optional pre-built client
            max_connections: Pool size, defaults to settings.REDIS_MAX_CONNECTIONS
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.key_prefix = key_prefix if key_prefix is not None else settings.REDIS_KEY_PREFIX
        self.timeout = timeout if timeout is not None else settings.STATE_TIMEOUT
        self.client: Optional[redis.Redis] = client
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS

    async def connect(self) -> None:
        """Establish Redis connection with connection pooling."""
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                decode_responses=True,
            )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    async def _call(self, operation: str, key: str, command):
        if self.client is None:
            await self.connect()
        try:
            return await bounded(command(self.client), self.timeout, f"{operation} {key}")
        except (redis.RedisError, CrawlerError) as e:
            logger.error("%s failed for %s: %s", operation, key, str(e))
            raise StorageStateError(key, f"{operation} {key} failed: {e}") from e

    async def get(self, key: str) -> int:
        value = await self._call("getParameter", key, lambda c: c.get(self._key(key)))
        result = int(value or 0)
        logger.debug("getParameter success %s=%d", key, result)
        return result

    async def set(self, key: str, value: int) -> None:
        await self._call("setParameter", key, lambda c: c.set(self._key(key), int(value)))
        logger.debug("setParameter success %s=%d", key, value)

    async def incr(self, key: str, amount: int) -> int:
        value = await self._call("incrParameter", key, lambda c: c.incrby(self._key(key), int(amount)))
        return int(value)

    async def close(self) -> None:
        """Close Redis connection and cleanup resources."""
        if self.client:
            await self.client.aclose()
            self.client = None


class SqliteStateStore:
    """State store backed by the `parameters` table."""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.db_path = db_path or settings.SQLITE_PATH
        self.timeout = timeout if timeout is not None else settings.STATE_TIMEOUT
        init_schema(self.db_path)

    async def _call(self, operation: str, key: str, func, *args):
        try:
            return await bounded(asyncio.to_thread(func, *args), self.timeout, f"{operation} {key}")
        except (sqlite3.Error, CrawlerError) as e:
            logger.error("%s failed for %s: %s", operation, key, str(e))
            raise StorageStateError(key, f"{operation} {key} failed: {e}") from e

    def _get(self, key: str) -> int:
        with get_conn(self.db_path) as conn:
            row = conn.execute(
                "SELECT parameter_value FROM parameters WHERE parameter_name = ?", (key,)
            ).fetchone()
        return int(row["parameter_value"]) if row else 0

    def _set(self, key: str, value: int) -> None:
        with get_conn(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO parameters (parameter_name, parameter_value) VALUES (?, ?)",
                (key, int(value)),
            )
            conn.commit()

    def _incr(self, key: str, amount: int) -> int:
        with get_conn(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO parameters (parameter_name, parameter_value) VALUES (?, ?)
                ON CONFLICT(parameter_name) DO UPDATE SET parameter_value = parameter_value + excluded.parameter_value
                """,
                (key, int(amount)),
            )
            row = conn.execute(
                "SELECT parameter_value FROM parameters WHERE parameter_name = ?", (key,)
            ).fetchone()
            conn.commit()
        return int(row["parameter_value"])

    async def get(self, key: str) -> int:
        return await self._call("getParameter", key, self._get, key)

    async def set(self, key: str, value: int) -> None:
        await self._call("setParameter", key, self._set, key, value)

    async def incr(self, key: str, amount: int) -> int:
        return await self._call("incrParameter", key, self._incr, key, amount)

    async def close(self) -> None:
        return None


def build_state_store(config: Settings = settings) -> StateStore:
    """Create the state store selected by STATE_BACKEND."""
    if config.STATE_BACKEND == "sqlite":
        return SqliteStateStore(config.SQLITE_PATH, config.STATE_TIMEOUT)
    return RedisStateStore(
        config.REDIS_URL,
        config.REDIS_KEY_PREFIX,
        config.STATE_TIMEOUT,
        max_connections=config.REDIS_MAX_CONNECTIONS,
    )
