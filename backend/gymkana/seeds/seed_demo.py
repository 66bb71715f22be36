"""Seed the demo event (teams + challenges) used by the live displays.

Idempotent: teams and challenges already present for the event (matched by
name / title) are left alone.

    python -m gymkana.seeds.seed_demo
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from gymkana.db import init_models
from gymkana.schemas.records import RecordKind
from gymkana.store import DataStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_EVENT_ID = "demo-event-001"

DEMO_TEAMS = [
    {"name": "Red Foxes", "color": "#EF4444"},
    {"name": "Blue Owls", "color": "#3B82F6"},
    {"name": "Green Geckos", "color": "#10B981"},
    {"name": "Golden Bees", "color": "#F59E0B"},
]

DEMO_CHALLENGES = [
    {"title": "Team riddle", "description": "Solve the riddle at the fountain.", "type": "text", "points": 10},
    {"title": "Human pyramid", "description": "Photo of the whole team in a pyramid.", "type": "image", "points": 20},
    {"title": "Team anthem", "description": "Record 15 seconds of your team anthem.", "type": "video", "points": 30},
    {
        "title": "Find the statue",
        "description": "Photo next to the old town statue.",
        "type": "image",
        "points": 15,
        "location_lat": 40.4168,
        "location_lng": -3.7038,
    },
]


@dataclass
class SeedStats:
    teams_created: int = 0
    challenges_created: int = 0
    skipped: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "teams_created": self.teams_created,
            "challenges_created": self.challenges_created,
            "skipped": len(self.skipped),
        }


async def seed_demo(store: DataStore | None = None, event_id: str = DEMO_EVENT_ID) -> SeedStats:
    store = store or DataStore()
    stats = SeedStats()

    existing_teams = {t.name for t in await store.query(RecordKind.TEAM, {"event_id": event_id})}
    for team in DEMO_TEAMS:
        if team["name"] in existing_teams:
            stats.skipped.append(team["name"])
            continue
        await store.insert(RecordKind.TEAM, {"event_id": event_id, **team})
        stats.teams_created += 1

    existing_challenges = {
        c.title for c in await store.query(RecordKind.CHALLENGE, {"event_id": event_id})
    }
    for order, challenge in enumerate(DEMO_CHALLENGES, start=1):
        if challenge["title"] in existing_challenges:
            stats.skipped.append(challenge["title"])
            continue
        await store.insert(RecordKind.CHALLENGE, {"event_id": event_id, "order": order, **challenge})
        stats.challenges_created += 1

    return stats


async def _main() -> SeedStats:
    await init_models()
    return await seed_demo()


if __name__ == "__main__":
    stats = asyncio.run(_main())
    logger.info("Seed stats: %s", stats.as_dict())
