"""End-to-end runs through run_crawl with SQLite state and record stores."""

import pytest

from apps.crawler import crawler_job
from apps.crawler.controller import CrawlState
from utils.config import Settings
from utils.db import ProfileStore
from utils.errors import UpstreamError
from utils.state import CREDENTIAL_SLOT_KEY, CURSOR_KEY, ROW_COUNTER_KEY, SqliteStateStore
from tests.conftest import FakeProfileClient, every_nth


class RecordingClientFactory:
    """Stands in for ProfileBatchClient; remembers which key each run was bound to."""

    def __init__(self, players_for=None, error=None):
        self.players_for = players_for
        self.error = error
        self.keys: list[str] = []
        self.fetches = 0

    def __call__(self, api_key, **kwargs):
        self.keys.append(api_key)
        factory = self

        class Client(FakeProfileClient):
            async def fetch(self, steam_ids):
                factory.fetches += 1
                if factory.error:
                    raise factory.error
                return await super().fetch(steam_ids)

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                return None

        return Client(self.players_for)


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(
        STEAM_API_KEYS="key-a,key-b",
        STATE_BACKEND="sqlite",
        SQLITE_PATH=str(tmp_path / "crawler.db"),
        END_ACCOUNT_ID=1100,
        REQUESTS_PER_INVOCATION=2,
        BATCH_DELAY_SECONDS=0,
    )


@pytest.mark.asyncio
async def test_run_reaches_ceiling_then_reports_done(config, monkeypatch):
    factory = RecordingClientFactory(every_nth(5))
    monkeypatch.setattr(crawler_job, "ProfileBatchClient", factory)
    state = SqliteStateStore(config.SQLITE_PATH)
    await state.set(CURSOR_KEY, 1000)

    first = await crawler_job.run_crawl(config=config)
    second = await crawler_job.run_crawl(config=config)

    assert first.state == CrawlState.COMPLETED
    assert first.batches_processed == 1
    assert await state.get(CURSOR_KEY) == 1100
    assert await state.get(ROW_COUNTER_KEY) == 20
    assert ProfileStore(config.SQLITE_PATH).count() == 20

    assert second.done
    assert second.batches_processed == 0
    assert factory.fetches == 1


@pytest.mark.asyncio
async def test_runs_rotate_keys_even_after_failure(config, monkeypatch):
    factory = RecordingClientFactory(error=UpstreamError(403))
    monkeypatch.setattr(crawler_job, "ProfileBatchClient", factory)

    for _ in range(3):
        with pytest.raises(UpstreamError):
            await crawler_job.run_crawl(config=config)

    assert factory.keys == ["key-a", "key-b", "key-a"]
    assert await SqliteStateStore(config.SQLITE_PATH).get(CREDENTIAL_SLOT_KEY) == 3
    assert await SqliteStateStore(config.SQLITE_PATH).get(CURSOR_KEY) == 0


@pytest.mark.asyncio
async def test_injected_state_store_is_not_closed(config, monkeypatch, state):
    monkeypatch.setattr(crawler_job, "ProfileBatchClient", RecordingClientFactory(every_nth(50)))

    result = await crawler_job.run_crawl(config=config, state=state)

    assert result.to_dict()["status"] == "ok"
    assert ("close",) not in state.calls
