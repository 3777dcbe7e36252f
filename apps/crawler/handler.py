"""
Serverless entrypoint.

Each invocation performs one crawl run. Reaching END_ACCOUNT_ID is reported
as {"status": "done"}; any failure is raised so the platform marks the
invocation failed.
"""

import asyncio
import logging
from typing import Any, Optional

from apps.crawler.crawler_job import run_crawl
from utils.config import settings
from utils.logging import setup_logging

logger = logging.getLogger(__name__)


def handler(event: Optional[dict[str, Any]] = None, context: Any = None) -> dict[str, Any]:
    """Run one crawl invocation and return its outcome."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info("Crawler invoked")

    result = asyncio.run(run_crawl())

    if result.done:
        logger.warning("Crawler has reached AccountId limit!")
    return result.to_dict()
