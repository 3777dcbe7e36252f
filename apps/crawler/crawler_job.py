"""
Crawl Job - One Invocation

Wires the state store, key rotation, profile client, record store and
controller together for a single run, and releases every resource afterwards.

Usage:
    from apps.crawler.crawler_job import run_crawl

    result = await run_crawl()
    if result.done:
        ...
"""

import asyncio
import logging
from typing import Optional

from apps.crawler.client import ProfileBatchClient
from apps.crawler.controller import CrawlController, RunContext, RunResult
from apps.crawler.credentials import CredentialRotator
from utils.config import Settings, settings
from utils.db import ProfileStore
from utils.lookup import get_locations
from utils.state import StateStore, build_state_store

logger = logging.getLogger(__name__)


async def run_crawl(
    stop_event: Optional[asyncio.Event] = None,
    config: Settings = settings,
    state: Optional[StateStore] = None,
) -> RunResult:
    """
    Execute one crawl run with the next API key in rotation.

    Args:
        stop_event: Set to end the run at the next batch boundary
        config: Settings to run with
        state: State store to use instead of the configured backend (not closed here)

    Returns:
        RunResult of the run

    Raises:
        CrawlerError: If the run fails
    """
    owns_state = state is None
    state = state or build_state_store(config)

    try:
        rotator = CredentialRotator(config.api_keys, state, policy=config.KEY_ROTATION)
        slot = await rotator.next_slot()

        store = ProfileStore(config.SQLITE_PATH, config.WRITE_TIMEOUT)
        store.init_schema()

        async with ProfileBatchClient(
            api_key=slot.api_key,
            base_url=config.STEAM_API_URL,
            timeout=config.STEAM_REQUEST_TIMEOUT,
            max_attempts=config.STEAM_MAX_ATTEMPTS,
        ) as client:
            controller = CrawlController(
                client,
                store,
                state,
                get_locations(config.LOCATION_TABLE_PATH),
                end_account_id=config.END_ACCOUNT_ID,
                batch_delay=config.BATCH_DELAY_SECONDS,
                cursor_commit=config.CURSOR_COMMIT,
                stop_event=stop_event,
            )
            return await controller.run(RunContext(credential=slot, quota=config.REQUESTS_PER_INVOCATION))

    finally:
        if owns_state:
            await state.close()
