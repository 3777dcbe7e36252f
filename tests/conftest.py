"""Shared fixtures and fakes for crawler tests."""

from typing import Any, Callable, Optional, Sequence

import pytest

from apps.crawler.credentials import CredentialSlot
from utils.db import WriteGroupResult
from utils.errors import StorageStateError, StorageWriteError
from utils.lookup import LocationTable, get_locations
from utils.schemas import ProfileRecord
from utils.steamid import decode


class FakeStateStore:
    """In-memory StateStore that records every call."""

    def __init__(self, values: Optional[dict[str, int]] = None) -> None:
        self.values = dict(values or {})
        self.calls: list[tuple] = []
        self.fail_on: set[tuple[str, str]] = set()

    def _check(self, operation: str, key: str) -> None:
        if (operation, key) in self.fail_on:
            raise StorageStateError(key)

    async def get(self, key: str) -> int:
        self.calls.append(("get", key))
        self._check("get", key)
        return self.values.get(key, 0)

    async def set(self, key: str, value: int) -> None:
        self.calls.append(("set", key, value))
        self._check("set", key)
        self.values[key] = value

    async def incr(self, key: str, amount: int) -> int:
        self.calls.append(("incr", key, amount))
        self._check("incr", key)
        self.values[key] = self.values.get(key, 0) + amount
        return self.values[key]

    async def close(self) -> None:
        self.calls.append(("close",))


class FakeProfileClient:
    """Profile client answering with one player per requested id, unless told otherwise."""

    def __init__(self, players_for: Optional[Callable[[Sequence[str]], list[dict[str, Any]]]] = None) -> None:
        self.players_for = players_for or (lambda ids: [player(steam_id) for steam_id in ids])
        self.calls: list[list[str]] = []

    async def fetch(self, steam_ids: Sequence[str]) -> list[dict[str, Any]]:
        self.calls.append(list(steam_ids))
        return self.players_for(steam_ids)


class FakeProfileStore:
    """Record store keeping written records in memory; `fail` picks groups to reject."""

    def __init__(self, fail: Optional[Callable[[Sequence[ProfileRecord]], bool]] = None) -> None:
        self.fail = fail or (lambda group: False)
        self.records: list[ProfileRecord] = []
        self.groups: list[int] = []

    async def write_group(self, records: Sequence[ProfileRecord]) -> WriteGroupResult:
        self.groups.append(len(records))
        if self.fail(records):
            raise StorageWriteError(len(records))
        self.records.extend(records)
        return WriteGroupResult(written=len(records))


def player(steam_id: str, **fields: Any) -> dict[str, Any]:
    """A raw player object as GetPlayerSummaries returns it."""
    raw = {
        "steamid": steam_id,
        "communityvisibilitystate": 3,
        "profilestate": 1,
        "personastate": 1,
        "timecreated": 1063407589,
    }
    raw.update(fields)
    return raw


def every_nth(n: int) -> Callable[[Sequence[str]], list[dict[str, Any]]]:
    """Answer only for account ids divisible by n."""
    return lambda ids: [player(steam_id) for steam_id in ids if decode(steam_id) % n == 0]


@pytest.fixture
def state() -> FakeStateStore:
    return FakeStateStore()


@pytest.fixture
def locations() -> LocationTable:
    return get_locations()


@pytest.fixture
def credential() -> CredentialSlot:
    return CredentialSlot(0, "test-key")
