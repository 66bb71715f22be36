"""Response feed projection and challenge listing (read-only, no caching)."""
from __future__ import annotations

import logging

from gymkana.metrics import FEED_PROJECTIONS_TOTAL
from gymkana.models.team import DEFAULT_TEAM_COLOR
from gymkana.schemas.records import RecordKind
from gymkana.schemas.views import ChallengeListResult, FeedResult, FetchStatus, ResponseView
from gymkana.store import DataStore, StoreError

logger = logging.getLogger(__name__)

UNKNOWN_TEAM_LABEL = "Unknown team"
UNKNOWN_TEAM_COLOR = DEFAULT_TEAM_COLOR


async def project_feed(store: DataStore, challenge_id: str) -> FeedResult:
    """Responses to `challenge_id`, newest first, with team name/color attached.

    A failed team lookup only costs the display attributes; a failed response
    read makes the whole feed DEGRADED.
    """
    try:
        responses = await store.query(
            RecordKind.RESPONSE,
            {"challenge_id": challenge_id},
            order=("-submitted_at", "-id"),
        )
    except StoreError as exc:
        logger.warning(f"Feed degraded for challenge {challenge_id}: {exc}")
        FEED_PROJECTIONS_TOTAL.labels(status=FetchStatus.DEGRADED.value).inc()
        return FeedResult(challenge_id=challenge_id, status=FetchStatus.DEGRADED, error=str(exc))

    if not responses:
        FEED_PROJECTIONS_TOTAL.labels(status=FetchStatus.EMPTY.value).inc()
        return FeedResult(challenge_id=challenge_id, status=FetchStatus.EMPTY)

    teams = {}
    try:
        rows = await store.query(RecordKind.TEAM, {"id": sorted({r.team_id for r in responses})})
        teams = {t.id: t for t in rows}
    except StoreError as exc:
        logger.warning(f"Team lookup failed for feed {challenge_id}, using fallback labels: {exc}")

    views = []
    for r in responses:
        team = teams.get(r.team_id)
        views.append(
            ResponseView(
                **r.model_dump(),
                team_name=team.name if team else UNKNOWN_TEAM_LABEL,
                team_color=team.color if team else UNKNOWN_TEAM_COLOR,
            )
        )
    FEED_PROJECTIONS_TOTAL.labels(status=FetchStatus.OK.value).inc()
    return FeedResult(challenge_id=challenge_id, status=FetchStatus.OK, responses=views)


async def list_challenges(store: DataStore, event_id: str) -> ChallengeListResult:
    """Challenges of an event in display order."""
    try:
        challenges = await store.query(
            RecordKind.CHALLENGE, {"event_id": event_id}, order=("order", "id")
        )
    except StoreError as exc:
        logger.warning(f"Challenge list degraded for event {event_id}: {exc}")
        return ChallengeListResult(event_id=event_id, status=FetchStatus.DEGRADED, error=str(exc))
    status = FetchStatus.OK if challenges else FetchStatus.EMPTY
    return ChallengeListResult(event_id=event_id, status=status, challenges=challenges)
