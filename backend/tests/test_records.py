from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from gymkana.models import Challenge
from gymkana.models.challenge import ResponseType
from gymkana.schemas.records import ChallengeRecord, RecordKind
from gymkana.seeds.seed_demo import DEMO_CHALLENGES, DEMO_TEAMS, seed_demo
from gymkana.store import StoreError

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_record_validates_from_orm_row() -> None:
    row = Challenge(id="c1", event_id="evt-1", title="riddle", description="", type="text", points=10, order=2, created_at=T0)
    record = ChallengeRecord.model_validate(row)
    assert record.type is ResponseType.TEXT
    assert record.order == 2


@pytest.mark.parametrize(
    "overrides",
    [{"points": -1}, {"type": "hologram"}, {"title": ""}],
)
def test_malformed_challenge_is_rejected(overrides) -> None:
    data = {"id": "c1", "event_id": "evt-1", "title": "riddle", "type": "text", "points": 10, "created_at": T0}
    data.update(overrides)
    with pytest.raises(ValidationError):
        ChallengeRecord(**data)


@pytest.mark.asyncio
async def test_malformed_stored_row_surfaces_as_store_error(store, seed) -> None:
    with pytest.raises(StoreError):
        await seed.challenge("broken", points=-5)
    with pytest.raises(StoreError):
        await store.query(RecordKind.CHALLENGE, {"event_id": "evt-1"})


@pytest.mark.asyncio
async def test_unknown_filter_column_is_a_programming_error(store) -> None:
    with pytest.raises(ValueError):
        await store.query(RecordKind.TEAM, {"colour": "red"})


@pytest.mark.asyncio
async def test_demo_seed_is_idempotent(store) -> None:
    first = await seed_demo(store, event_id="demo")
    second = await seed_demo(store, event_id="demo")

    assert first.as_dict() == {
        "teams_created": len(DEMO_TEAMS),
        "challenges_created": len(DEMO_CHALLENGES),
        "skipped": 0,
    }
    assert second.teams_created == 0
    assert second.challenges_created == 0
    challenges = await store.query(RecordKind.CHALLENGE, {"event_id": "demo"}, order=("order",))
    assert [c.title for c in challenges] == [c["title"] for c in DEMO_CHALLENGES]
