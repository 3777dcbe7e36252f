"""Tests for the profile batch client against a mocked GetPlayerSummaries endpoint."""

import asyncio

import httpx
import pytest
from tenacity import wait_none

from apps.crawler.client import MAX_STEAM_IDS, ProfileBatchClient
from utils.errors import RequestTimeoutError, UpstreamError
from utils.steamid import account_ids_to_steam_ids

URL = "https://api.test/ISteamUser/GetPlayerSummaries/v0002/"


def players_response(request: httpx.Request) -> httpx.Response:
    ids = request.url.params["steamids"].split(",")
    # Only every other account resolves, like private or deleted profiles.
    players = [{"steamid": steam_id, "personastate": 1} for steam_id in ids[::2]]
    return httpx.Response(200, json={"response": {"players": players}})


def make_client(handler, **kwargs) -> tuple[ProfileBatchClient, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ProfileBatchClient(
        api_key="test-key",
        base_url=URL,
        client=http,
        retry_wait=wait_none(),
        **kwargs,
    )
    return client, http


@pytest.mark.asyncio
async def test_fetch_sends_key_and_joined_ids():
    requests = []

    def handler(request):
        requests.append(request)
        return players_response(request)

    client, http = make_client(handler, timeout=1.0, max_attempts=1)
    steam_ids = account_ids_to_steam_ids(1000, 4)

    async with http:
        players = await client.fetch(steam_ids)

    assert len(requests) == 1
    assert requests[0].url.params["key"] == "test-key"
    assert requests[0].url.params["steamids"] == ",".join(steam_ids)
    assert [p["steamid"] for p in players] == [steam_ids[0], steam_ids[2]]


@pytest.mark.asyncio
async def test_fetch_rejects_more_than_100_ids():
    client, http = make_client(players_response, timeout=1.0, max_attempts=1)

    async with http:
        with pytest.raises(ValueError):
            await client.fetch(account_ids_to_steam_ids(0, MAX_STEAM_IDS + 1))


@pytest.mark.asyncio
async def test_fetch_empty_batch_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return players_response(request)

    client, http = make_client(handler, timeout=1.0, max_attempts=1)

    async with http:
        assert await client.fetch([]) == []

    assert calls == []


@pytest.mark.asyncio
async def test_missing_players_key_yields_empty_list():
    client, http = make_client(
        lambda request: httpx.Response(200, json={"response": {}}), timeout=1.0, max_attempts=1
    )

    async with http:
        assert await client.fetch(account_ids_to_steam_ids(0, 3)) == []


@pytest.mark.asyncio
async def test_non_200_raises_upstream_error_without_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(403, text="Forbidden")

    client, http = make_client(handler, timeout=1.0, max_attempts=3)

    async with http:
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch(account_ids_to_steam_ids(0, 3))

    assert exc_info.value.status_code == 403
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return players_response(request)

    client, http = make_client(handler, timeout=1.0, max_attempts=3)

    async with http:
        players = await client.fetch(account_ids_to_steam_ids(0, 2))

    assert len(calls) == 2
    assert len(players) == 1


@pytest.mark.asyncio
async def test_retries_stop_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client, http = make_client(handler, timeout=1.0, max_attempts=2)

    async with http:
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch(account_ids_to_steam_ids(0, 2))

    assert exc_info.value.status_code == 500
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_stalled_request_times_out():
    async def handler(request):
        await asyncio.sleep(5)
        return players_response(request)

    client, http = make_client(handler, timeout=0.05, max_attempts=1)

    async with http:
        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.fetch(account_ids_to_steam_ids(0, 2))

    assert isinstance(exc_info.value, TimeoutError)
    assert exc_info.value.operation == "getSteamIds"


@pytest.mark.asyncio
async def test_transport_timeout_maps_to_request_timeout():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    client, http = make_client(handler, timeout=1.0, max_attempts=1)

    async with http:
        with pytest.raises(RequestTimeoutError):
            await client.fetch(account_ids_to_steam_ids(0, 2))


@pytest.mark.asyncio
async def test_owned_client_is_closed():
    client = ProfileBatchClient(api_key="test-key", base_url=URL, timeout=1.0, max_attempts=1)

    async with client:
        pass

    assert client._client.is_closed
