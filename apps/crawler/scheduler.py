"""
Crawl Scheduler - Interval and On-Demand Execution

Manages scheduled and single crawl runs using APScheduler.

Features:
- Interval scheduling (SCHEDULE_INTERVAL_SECONDS, default daily)
- One run per configured API key each cycle, keys rotating, with a random
  delay between runs
- RUN_ON_START to fire the first cycle immediately
- RUN_ONCE mode for a single run (cron or container jobs)
- Stops scheduling once the crawl reaches END_ACCOUNT_ID
- Graceful shutdown handling; an in-flight batch always finishes

Usage:
    # Scheduled mode (default)
    python -m apps.crawler

    # Run once and exit
    RUN_ONCE=true python -m apps.crawler
"""

import asyncio
import logging
import random
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from apps.crawler.controller import RunResult
from apps.crawler.crawler_job import run_crawl
from utils.config import Settings, settings
from utils.logging import setup_logging

logger = logging.getLogger(__name__)

JOB_ID = "crawl_cycle"


class CrawlScheduler:
    """
    Scheduler for periodic or on-demand crawl runs.

    Handles:
    - APScheduler setup and management
    - Per-cycle key rotation
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(self, config: Settings = settings, run_once: Optional[bool] = None) -> None:
        """
        Initialize scheduler.

        Args:
            config: Settings to run with
            run_once: If True, run once and exit (defaults to config.RUN_ONCE)
        """
        self.config = config
        self.run_once = config.RUN_ONCE if run_once is None else run_once
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self.finished = False
        self._cycle: Optional[asyncio.Task] = None

        logger.info(
            "CrawlScheduler initialized",
            extra={
                "run_once": self.run_once,
                "interval_seconds": config.SCHEDULE_INTERVAL_SECONDS,
                "api_keys": len(config.api_keys),
            },
        )

    async def execute_run(self) -> RunResult:
        """Execute one crawl run. Errors are logged and re-raised."""
        logger.info("Starting crawl run")

        try:
            result = await run_crawl(stop_event=self.shutdown_event, config=self.config)
        except Exception as e:
            logger.error("Crawl run failed", extra={"error": str(e)}, exc_info=True)
            raise

        logger.info("Crawl run completed", extra=result.to_dict())
        return result

    async def execute_cycle(self) -> None:
        """
        Run once per configured API key.

        A failing run does not stop the rest of the cycle. Once a run
        reports the ceiling reached, the recurring job is removed.
        """
        runs = max(len(self.config.api_keys), 1)

        for run in range(runs):
            if self.shutdown_event.is_set() or self.finished:
                break

            if run > 0:
                await self._jitter()

            try:
                result = await self.execute_run()
            except Exception:
                continue

            if result.done:
                self._finish()

    async def _scheduled_cycle(self) -> None:
        # Scheduler shutdown must not cancel a batch mid-write.
        self._cycle = asyncio.ensure_future(self.execute_cycle())
        await asyncio.shield(self._cycle)

    async def _drain(self) -> None:
        if self._cycle is not None and not self._cycle.done():
            logger.info("Waiting for the running crawl to reach a batch boundary")
            await self._cycle

    async def _jitter(self) -> None:
        delay = random.uniform(0, self.config.CYCLE_JITTER_SECONDS)
        logger.info("Delaying next run for %.1fs", delay)
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _finish(self) -> None:
        self.finished = True
        if self.scheduler and self.scheduler.get_job(JOB_ID):
            self.scheduler.remove_job(JOB_ID)
            logger.warning("Crawl complete, recurring job removed")
        self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> Optional[RunResult]:
        """
        Start scheduler or execute once.

        In scheduled mode, runs until shutdown signal.
        In RUN_ONCE mode, executes one run and returns its result.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            return await self.execute_run()

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()
        trigger = IntervalTrigger(seconds=self.config.SCHEDULE_INTERVAL_SECONDS)
        job_kwargs = {}
        if self.config.RUN_ON_START:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._scheduled_cycle,
            trigger=trigger,
            id=JOB_ID,
            name="Periodic SteamID Crawl",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_kwargs,
        )

        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job(JOB_ID)
        next_run = getattr(job, "next_run_time", None)
        logger.info(
            "Scheduled crawl job",
            extra={
                "interval_seconds": self.config.SCHEDULE_INTERVAL_SECONDS,
                "next_run": str(next_run) if next_run is not None else None,
            },
        )
        logger.info("Waiting for jobs...")

        await self.shutdown_event.wait()
        await self._drain()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")
        return None


async def main() -> None:
    """Main entry point for scheduler."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    scheduler = CrawlScheduler()

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    asyncio.run(main())
