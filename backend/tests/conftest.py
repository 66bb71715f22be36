from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gymkana.db import init_models
from gymkana.notifier import ChangeNotifier
from gymkana.schemas.records import RecordKind
from gymkana.store import DataStore, StoreError

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gymkana.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def store(engine, notifier) -> DataStore:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return DataStore(factory, notifier)


class Seeder:
    """Inserts fixture rows through the real store."""

    def __init__(self, store: DataStore, event_id: str = "evt-1"):
        self.store = store
        self.event_id = event_id

    async def team(self, name: str, color: str = "#EF4444", event_id: str | None = None):
        return await self.store.insert(
            RecordKind.TEAM, {"event_id": event_id or self.event_id, "name": name, "color": color}
        )

    async def challenge(self, title: str, points: int = 10, type: str = "image", order: int = 0, event_id: str | None = None):
        return await self.store.insert(
            RecordKind.CHALLENGE,
            {"event_id": event_id or self.event_id, "title": title, "points": points, "type": type, "order": order},
        )

    async def response(self, challenge, team_id: str, minutes: int = 0, content: str = "https://cdn.example/p.jpg"):
        return await self.store.insert(
            RecordKind.RESPONSE,
            {
                "challenge_id": challenge.id,
                "team_id": team_id,
                "user_name": "Ana",
                "content": content,
                "type": challenge.type.value,
                "submitted_at": T0 + timedelta(minutes=minutes),
            },
        )


@pytest.fixture
def seed(store) -> Seeder:
    return Seeder(store)


class CountingStore:
    """Test double recording every call; optionally failing reads of some kinds."""

    def __init__(self, inner: DataStore | None = None, fail_kinds: set[RecordKind] | None = None):
        self.inner = inner
        self.fail_kinds = fail_kinds or set()
        self.calls: list[tuple[str, RecordKind]] = []

    async def insert(self, kind, record):
        self.calls.append(("insert", kind))
        if kind in self.fail_kinds or self.inner is None:
            raise StoreError(f"{kind.value} insert unavailable")
        return await self.inner.insert(kind, record)

    async def query(self, kind, filters=None, order=()):
        self.calls.append(("query", kind))
        if kind in self.fail_kinds or self.inner is None:
            raise StoreError(f"{kind.value} query unavailable")
        return await self.inner.query(kind, filters, order)


@pytest.fixture
def counting_store(store):
    """Factory: `counting_store()` wraps the real store, `counting_store(wrap=False)` fails every call."""

    def make(fail_kinds: set[RecordKind] | None = None, wrap: bool = True) -> CountingStore:
        return CountingStore(store if wrap else None, fail_kinds)

    return make
