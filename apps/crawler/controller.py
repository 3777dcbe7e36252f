"""
Crawl Controller - Resumable Batched Crawl

Walks the account-id space in batches of 100, from the persisted cursor up to
the configured ceiling, and stops once the per-run batch quota is used.

Per batch:
1. Encode the window [cursor, cursor + 100) into SteamIDs
2. Fetch player summaries with the run's bound API key
3. Allocate one row-counter ordinal per returned player
4. Normalize and write the players in concurrent write groups of 25;
   a failed group gives its ordinals back to the row counter
5. Advance and commit the cursor

A failed batch never advances the cursor, so the next run re-fetches it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Optional, Sequence

from apps.crawler.client import MAX_STEAM_IDS, ProfileBatchClient
from apps.crawler.credentials import CredentialSlot
from apps.crawler.normalizer import normalize
from utils.db import ProfileStore, WriteGroupResult, partition
from utils.errors import StorageStateError, StorageWriteError
from utils.lookup import LocationTable
from utils.schemas import ProfileRecord
from utils.state import CURSOR_KEY, ROW_COUNTER_KEY, StateStore
from utils.steamid import MAX_ACCOUNT_ID, account_ids_to_steam_ids

logger = logging.getLogger(__name__)

BATCH_SIZE = MAX_STEAM_IDS

CursorCommit = Literal["batch", "run"]


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"  # quota used or stop requested
    COMPLETED = "completed"  # ceiling reached
    FAILED = "failed"


@dataclass
class RunContext:
    """Mutable state of a single run."""

    credential: CredentialSlot
    quota: int
    batches_processed: int = 0
    records_written: int = 0
    start_cursor: Optional[int] = None
    cursor: Optional[int] = None
    state: CrawlState = CrawlState.IDLE


@dataclass(frozen=True)
class RunResult:
    state: CrawlState
    credential_index: int
    start_cursor: Optional[int]
    end_cursor: Optional[int]
    batches_processed: int
    records_written: int

    @property
    def done(self) -> bool:
        """True once the crawl has reached its ceiling."""
        return self.state == CrawlState.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "done" if self.done else "ok",
            "state": self.state.value,
            "credential_index": self.credential_index,
            "start_cursor": self.start_cursor,
            "end_cursor": self.end_cursor,
            "batches_processed": self.batches_processed,
            "records_written": self.records_written,
        }

    @classmethod
    def from_context(cls, ctx: RunContext) -> "RunResult":
        return cls(
            state=ctx.state,
            credential_index=ctx.credential.index,
            start_cursor=ctx.start_cursor,
            end_cursor=ctx.cursor,
            batches_processed=ctx.batches_processed,
            records_written=ctx.records_written,
        )


class CrawlController:
    """
    Drives one run of the crawl.

    The controller owns no cross-run state: everything a run mutates lives in
    its RunContext, and the cursor and row counter live in the state store.
    """

    def __init__(
        self,
        client: ProfileBatchClient,
        store: ProfileStore,
        state: StateStore,
        locations: LocationTable,
        *,
        end_account_id: int,
        batch_delay: float = 0.0,
        cursor_commit: CursorCommit = "batch",
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            client: Profile client bound to the run's API key
            store: Record store
            state: Cursor / row counter store
            locations: Location table for normalization
            end_account_id: Ceiling; the crawl is complete once the cursor reaches it.
                Capped at 2^32, the end of the account id space
            batch_delay: Seconds to pause between batches
            cursor_commit: Commit the cursor after every batch or once per run
            stop_event: Set to stop the run at the next batch boundary
        """
        self.client = client
        self.store = store
        self.state = state
        self.locations = locations
        self.end_account_id = min(end_account_id, MAX_ACCOUNT_ID + 1)
        self.batch_delay = batch_delay
        self.cursor_commit = cursor_commit
        self.stop_event = stop_event or asyncio.Event()

    async def run(self, ctx: RunContext) -> RunResult:
        """
        Run batches until the quota is used, the ceiling is reached or a stop is requested.

        Args:
            ctx: Fresh context carrying the bound credential and batch quota

        Returns:
            RunResult; `done` is True when the ceiling has been reached

        Raises:
            CrawlerError: Any batch failure; committed state is left untouched
        """
        ctx.state = CrawlState.RUNNING

        try:
            ctx.start_cursor = ctx.cursor = await self.state.get(CURSOR_KEY)
            logger.info(
                "Launching crawler with API key %d at %d",
                ctx.credential.index,
                ctx.cursor,
                extra={"quota": ctx.quota, "end_account_id": self.end_account_id},
            )

            if ctx.cursor >= self.end_account_id:
                logger.warning("Crawler has reached AccountId limit!", extra={"cursor": ctx.cursor})
                ctx.state = CrawlState.COMPLETED
                return RunResult.from_context(ctx)

            while True:
                if self.stop_event.is_set():
                    logger.info("Stop requested, ending run", extra={"cursor": ctx.cursor})
                    ctx.state = CrawlState.STOPPED
                    break

                await self._run_batch(ctx)
                ctx.batches_processed += 1

                if ctx.cursor >= self.end_account_id:
                    logger.warning("Crawler has reached AccountId limit!", extra={"cursor": ctx.cursor})
                    ctx.state = CrawlState.COMPLETED
                    break

                if ctx.batches_processed >= ctx.quota:
                    ctx.state = CrawlState.STOPPED
                    break

                await self._pace()

            if self.cursor_commit == "run" and ctx.cursor != ctx.start_cursor:
                await self._commit_cursor(ctx.cursor)

        except (Exception, asyncio.CancelledError) as e:
            ctx.state = CrawlState.FAILED
            logger.error(
                "Crawl run failed",
                extra={
                    "credential_index": ctx.credential.index,
                    "cursor": ctx.cursor,
                    "batches_processed": ctx.batches_processed,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        logger.info(
            "Finished at currentAccountId: %d",
            ctx.cursor,
            extra={
                "state": ctx.state.value,
                "batches_processed": ctx.batches_processed,
                "records_written": ctx.records_written,
            },
        )
        return RunResult.from_context(ctx)

    async def _run_batch(self, ctx: RunContext) -> None:
        start = ctx.cursor
        steam_ids = account_ids_to_steam_ids(start, BATCH_SIZE)
        batch_start = time.time()

        logger.info("Batch started", extra={"cursor": start, "size": len(steam_ids)})

        players = await self.client.fetch(steam_ids)

        usable = [player for player in players if player.get("steamid")]
        if len(usable) != len(players):
            logger.warning("Dropping %d players without a steamid", len(players) - len(usable))

        written = await self._store_players(usable) if usable else 0

        next_cursor = start + len(steam_ids)
        if self.cursor_commit == "batch":
            await self._commit_cursor(next_cursor)

        ctx.cursor = next_cursor
        ctx.records_written += written

        logger.info(
            "Batch committed",
            extra={
                "cursor": next_cursor,
                "players": len(players),
                "written": written,
                "elapsed": round(time.time() - batch_start, 3),
            },
        )

    async def _store_players(self, players: Sequence[dict[str, Any]]) -> int:
        count = len(players)
        first = await self.state.incr(ROW_COUNTER_KEY, count) - count

        try:
            now = int(time.time())
            records = [
                normalize(raw, local_account_id=first + offset, locations=self.locations, now=now)
                for offset, raw in enumerate(players)
            ]
        except Exception:
            await self._release(count)
            raise

        groups = list(partition(records))
        results = await asyncio.gather(
            *(self._write_group(group) for group in groups),
            return_exceptions=True,
        )

        written = 0
        failed = 0
        errors: list[BaseException] = []
        for group, result in zip(groups, results):
            if isinstance(result, BaseException):
                failed += len(group)
                errors.append(result)
            else:
                written += result.written

        for error in errors:
            if isinstance(error, (StorageStateError, asyncio.CancelledError)):
                raise error
        if errors:
            raise StorageWriteError(failed, f"{failed} of {count} records failed to write") from errors[0]

        return written

    async def _write_group(self, group: Sequence[ProfileRecord]) -> WriteGroupResult:
        try:
            return await self.store.write_group(group)
        except (Exception, asyncio.CancelledError):
            await self._release(len(group))
            raise

    async def _release(self, count: int) -> None:
        logger.warning("Rolling back localAccountId by %d", count, extra={"released": count})
        await self.state.incr(ROW_COUNTER_KEY, -count)

    async def _commit_cursor(self, cursor: int) -> None:
        await self.state.set(CURSOR_KEY, cursor)

    async def _pace(self) -> None:
        if self.batch_delay <= 0:
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=self.batch_delay)
        except asyncio.TimeoutError:
            pass
