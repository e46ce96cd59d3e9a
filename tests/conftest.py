"""Shared fixtures: in-memory collaborators and an optional real Postgres."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from beastwatch.care.schemas import OwnershipRecord, TokenRecord, VitalsSnapshot
from beastwatch.config import Settings
from beastwatch.errors import DispatchFailed
from beastwatch.storage.database import Database

T0 = 1_700_000_000_000  # epoch ms used as "now" across tests
MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


def make_snapshot(**overrides) -> VitalsSnapshot:
    data = {
        "pet_id": 1,
        "hunger": 80,
        "energy": 80,
        "happiness": 80,
        "hygiene": 80,
        "is_alive": True,
        "last_timestamp": T0,
    }
    data.update(overrides)
    return VitalsSnapshot(**data)


def make_owner(pet_id: int, owner_id: str) -> OwnershipRecord:
    return OwnershipRecord(pet_id=pet_id, owner_id=owner_id)


def make_token(owner_id: str, device_token: str) -> TokenRecord:
    return TokenRecord(owner_id=owner_id, device_token=device_token)


def mock_settings(**overrides) -> MagicMock:
    """MagicMock Settings to avoid pydantic-settings env/.env lookups."""
    s = MagicMock()
    s.test_mode = False
    s.test_token = ""
    s.dispatch_concurrency = 4
    s.vital_threshold = 50
    s.cooldown_window_ms = HOUR_MS
    s.schedule_interval = 60
    s.schedule_cron = None
    for k, v in overrides.items():
        setattr(s, k, v)
    return s


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class InMemoryCooldownStore:
    """Dict-backed cooldown store with switchable failures."""

    def __init__(self) -> None:
        self.records: dict[str, int] = {}
        self.fail_get = False
        self.fail_set = False

    async def get(self, owner_id: str) -> int | None:
        if self.fail_get:
            raise ConnectionError("cooldown store unavailable")
        return self.records.get(owner_id)

    async def set(self, owner_id: str, timestamp: int) -> None:
        if self.fail_set:
            raise ConnectionError("cooldown store unavailable")
        self.records[owner_id] = timestamp


class RecordingPush:
    """Push sender that records sends and fails for configured tokens/titles."""

    def __init__(self, failures: dict[str, DispatchFailed] | None = None) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.failures = failures or {}

    async def send(self, token: str, title: str, body: str) -> str:
        failure = self.failures.get(token) or self.failures.get(title)
        if failure is not None:
            raise failure
        self.sent.append((token, title, body))
        return f"projects/test/messages/{len(self.sent)}"


@pytest.fixture
def cooldown_store() -> InMemoryCooldownStore:
    return InMemoryCooldownStore()


@pytest.fixture
def push() -> RecordingPush:
    return RecordingPush()


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db():
    """Real Postgres from docker-compose; skips when it is not reachable."""
    database = Database(Settings(_env_file=None))
    try:
        await database.connect()
    except Exception as e:
        await database.disconnect()
        pytest.skip(f"Postgres not available: {e}")
    yield database
    await database.disconnect()
