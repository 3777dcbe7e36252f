"""
Database utilities for SQLite operations.

Provides connection management, schema initialization and the bulk profile
writer used by the crawler. Profiles are written in write groups of at most 25
records; each group is one transaction.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

import orjson

from utils.config import settings
from utils.errors import RequestTimeoutError, StorageWriteError, bounded
from utils.schemas import ProfileRecord

logger = logging.getLogger(__name__)

MAX_WRITE_GROUP = 25

_UPSERT = """
    INSERT OR REPLACE INTO steam_users (
        steam_id, local_account_id, last_modified, country, state, city, data
    ) VALUES (?, ?, ?, ?, ?, ?, ?)
"""


def get_conn(db_path: Optional[str] = None, timeout: float = 5.0) -> sqlite3.Connection:
    """
    Get SQLite database connection with dict-friendly row factory.

    Args:
        db_path: Database file, defaults to settings.SQLITE_PATH
        timeout: Seconds to wait on a locked database

    Returns:
        SQLite connection with row_factory set to sqlite3.Row

    Raises:
        sqlite3.Error: If connection fails
    """
    path = Path(db_path or settings.SQLITE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(db_path: Optional[str] = None) -> None:
    """
    Initialize database schema by creating required tables if they don't exist.

    Creates:
    - steam_users: one row per SteamID, latest write wins
    - parameters: named integer crawl state (used by the sqlite state backend)

    Raises:
        sqlite3.Error: If schema creation fails
    """
    with get_conn(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS steam_users (
                steam_id TEXT PRIMARY KEY,
                local_account_id INTEGER NOT NULL CHECK (local_account_id >= 0),
                last_modified INTEGER NOT NULL,
                country TEXT,
                state TEXT,
                city TEXT,
                data BLOB NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_steam_users_local_account_id "
            "ON steam_users (local_account_id)"
        )

        conn.execute("""
            CREATE TABLE IF NOT EXISTS parameters (
                parameter_name TEXT PRIMARY KEY,
                parameter_value INTEGER NOT NULL
            )
        """)

        conn.commit()

    logger.info("DB schema ready")


def partition(records: Sequence[Any], size: int = MAX_WRITE_GROUP) -> Iterator[Sequence[Any]]:
    """Split an ordered sequence into consecutive groups of at most `size`."""
    for start in range(0, len(records), size):
        yield records[start:start + size]


@dataclass
class WriteGroupResult:
    """Outcome of one write group."""

    written: int = 0
    unprocessed: list[dict[str, Any]] = field(default_factory=list)


class ProfileStore:
    """Bulk writer for normalized profiles."""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.db_path = db_path or settings.SQLITE_PATH
        self.timeout = timeout if timeout is not None else settings.WRITE_TIMEOUT

    def init_schema(self) -> None:
        init_schema(self.db_path)

    async def write_group(self, records: Sequence[ProfileRecord]) -> WriteGroupResult:
        """
        Write one group of at most 25 records in a single transaction.

        Records rejected individually by the database are returned as
        unprocessed and logged; they do not fail the group.

        Args:
            records: Records to write

        Returns:
            WriteGroupResult with written count and unprocessed items

        Raises:
            ValueError: If the group is larger than 25 records
            StorageWriteError: If the transaction fails or times out
        """
        if len(records) > MAX_WRITE_GROUP:
            raise ValueError(f"Write groups hold at most {MAX_WRITE_GROUP} records, got {len(records)}")
        if not records:
            return WriteGroupResult()

        items = [record.to_item() for record in records]

        try:
            result = await bounded(
                asyncio.to_thread(self._write_items, items),
                self.timeout,
                "batchWrite",
            )
        except RequestTimeoutError as e:
            raise StorageWriteError(len(records), f"Batch write timed out for {len(records)} records") from e
        except sqlite3.Error as e:
            logger.error("Error batch writing: %s", str(e), extra={"records": len(records)})
            raise StorageWriteError(len(records), f"Batch write failed: {e}") from e

        if result.unprocessed:
            logger.warning(
                "batchWrite left unprocessed items",
                extra={
                    "unprocessed": len(result.unprocessed),
                    "steam_ids": [item.get("steam_id") for item in result.unprocessed],
                },
            )

        return result

    def _write_items(self, items: list[dict[str, Any]]) -> WriteGroupResult:
        result = WriteGroupResult()

        with get_conn(self.db_path) as conn:
            for item in items:
                try:
                    conn.execute(
                        _UPSERT,
                        (
                            item["steam_id"],
                            item["local_account_id"],
                            item["last_modified"],
                            item.get("country"),
                            item.get("state"),
                            item.get("city"),
                            orjson.dumps(item),
                        ),
                    )
                    result.written += 1
                except sqlite3.IntegrityError as e:
                    logger.debug("Rejected item steam_id=%s: %s", item.get("steam_id"), str(e))
                    result.unprocessed.append(item)

            conn.commit()

        return result

    def count(self) -> int:
        """Number of stored profiles."""
        with get_conn(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM steam_users").fetchone()[0]

    def get(self, steam_id: str) -> Optional[dict[str, Any]]:
        """Stored item for `steam_id`, or None."""
        with get_conn(self.db_path) as conn:
            row = conn.execute("SELECT data FROM steam_users WHERE steam_id = ?", (steam_id,)).fetchone()
        return orjson.loads(row["data"]) if row else None
