"""
Steam profile batch client.

Fetches player summaries for up to 100 SteamIDs per call from
ISteamUser/GetPlayerSummaries. Accounts the API cannot resolve (private,
deleted, never created) are omitted from the response, so callers must not
expect one player per requested id.
"""

import logging
from typing import Any, Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from utils.config import settings
from utils.errors import RequestTimeoutError, UpstreamError, bounded

logger = logging.getLogger(__name__)

# Hard limit of the GetPlayerSummaries endpoint.
MAX_STEAM_IDS = 100


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, UpstreamError):
        return exc.transient
    return isinstance(exc, (RequestTimeoutError, httpx.TransportError))


class ProfileBatchClient:
    """Async client for batched profile lookups with per-call timeout and retries."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: Steam Web API key bound for this client
            base_url: Endpoint URL, defaults to settings.STEAM_API_URL
            timeout: Seconds per call, defaults to settings.STEAM_REQUEST_TIMEOUT
            max_attempts: Attempts per batch, defaults to settings.STEAM_MAX_ATTEMPTS
            client: Optional pre-built httpx client (not closed by this instance)
            retry_wait: tenacity wait strategy between attempts
        """
        self.api_key = api_key
        self.base_url = base_url or settings.STEAM_API_URL
        self.timeout = timeout if timeout is not None else settings.STEAM_REQUEST_TIMEOUT
        self.max_attempts = max_attempts or settings.STEAM_MAX_ATTEMPTS
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))

    async def __aenter__(self) -> "ProfileBatchClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch(self, steam_ids: Sequence[str]) -> list[dict[str, Any]]:
        """
        Fetch player summaries for a batch of SteamIDs.

        Args:
            steam_ids: Up to 100 SteamID64 strings

        Returns:
            Player objects in response order

        Raises:
            ValueError: If more than 100 ids are requested
            RequestTimeoutError: If the call does not complete within the timeout
            UpstreamError: If the API answers with a non-200 status
        """
        if len(steam_ids) > MAX_STEAM_IDS:
            raise ValueError(f"At most {MAX_STEAM_IDS} SteamIDs per request, got {len(steam_ids)}")
        if not steam_ids:
            return []

        logger.info("Processing steamIds from %s to %s", steam_ids[0], steam_ids[-1])

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                players = await self._fetch_once(steam_ids)

        logger.info("Steam API Response: %d players", len(players), extra={"requested": len(steam_ids)})
        return players

    async def _fetch_once(self, steam_ids: Sequence[str]) -> list[dict[str, Any]]:
        params = {"key": self.api_key, "steamids": ",".join(steam_ids)}

        try:
            response = await bounded(
                self._client.get(self.base_url, params=params),
                self.timeout,
                "getSteamIds",
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError("getSteamIds", self.timeout) from e

        if response.status_code != 200:
            logger.warning("Steam request failed with status: %d", response.status_code)
            raise UpstreamError(response.status_code)

        body = response.json()
        return list((body.get("response") or {}).get("players") or [])
