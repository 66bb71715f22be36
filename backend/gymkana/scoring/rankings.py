"""Team rankings: derived on every call from teams, responses and challenge points.

Scores are never stored. A team earns, per credited response, the challenge's
base points plus VOTE_BONUS per vote received.
"""
from __future__ import annotations

import enum
import logging
from typing import Iterable, Mapping

from gymkana.metrics import RANKINGS_COMPUTED_TOTAL
from gymkana.schemas.records import RecordKind, ResponseRecord, TeamRecord
from gymkana.schemas.views import FetchStatus, RankingResult, TeamScore
from gymkana.store import DataStore, StoreError

logger = logging.getLogger(__name__)

VOTE_BONUS = 2


class ResubmissionPolicy(str, enum.Enum):
    """How repeated responses by one team to one challenge are credited."""

    MULTIPLE_ALLOWED = "MULTIPLE_ALLOWED"
    ONE_PER_CHALLENGE = "ONE_PER_CHALLENGE"


RESUBMISSION_POLICY = ResubmissionPolicy.MULTIPLE_ALLOWED


def credited_responses(
    responses: Iterable[ResponseRecord],
    policy: ResubmissionPolicy = RESUBMISSION_POLICY,
) -> list[ResponseRecord]:
    """Responses that earn credit under `policy`.

    ONE_PER_CHALLENGE keeps the earliest response per (team, challenge).
    """
    responses = list(responses)
    if policy is ResubmissionPolicy.MULTIPLE_ALLOWED:
        return responses

    first: dict[tuple[str, str], ResponseRecord] = {}
    for r in sorted(responses, key=lambda r: (r.submitted_at, r.id)):
        first.setdefault((r.team_id, r.challenge_id), r)
    return list(first.values())


def aggregate_team_scores(
    teams: Iterable[TeamRecord],
    responses: Iterable[ResponseRecord],
    challenge_points: Mapping[str, int],
    policy: ResubmissionPolicy = RESUBMISSION_POLICY,
) -> list[TeamScore]:
    """Pure scoring: one TeamScore per team, highest points first, ties by team id."""
    scores = {
        team.id: TeamScore(team_id=team.id, team_name=team.name, team_color=team.color)
        for team in teams
    }
    for r in credited_responses(responses, policy):
        score = scores.get(r.team_id)
        if score is None:
            continue
        # A response whose challenge is gone still counts, worth 0 base points.
        base = challenge_points.get(r.challenge_id, 0)
        score.total_points += base + VOTE_BONUS * r.votes_count
        score.total_votes += r.votes_count
        score.completed_challenges += 1

    return sorted(scores.values(), key=lambda s: (-s.total_points, s.team_id))


async def compute_rankings(
    store: DataStore,
    event_id: str,
    policy: ResubmissionPolicy = RESUBMISSION_POLICY,
) -> RankingResult:
    """Read the event snapshot and rank its teams.

    A failed read yields DEGRADED with no rankings, never a silent empty list.
    """
    try:
        teams = await store.query(RecordKind.TEAM, {"event_id": event_id})
        if not teams:
            RANKINGS_COMPUTED_TOTAL.labels(status=FetchStatus.EMPTY.value).inc()
            return RankingResult(event_id=event_id, status=FetchStatus.EMPTY)

        responses = await store.query(
            RecordKind.RESPONSE, {"team_id": [team.id for team in teams]}
        )
        challenge_ids = sorted({r.challenge_id for r in responses})
        challenges = (
            await store.query(RecordKind.CHALLENGE, {"id": challenge_ids}) if challenge_ids else []
        )
    except StoreError as exc:
        logger.warning(f"Rankings degraded for event {event_id}: {exc}")
        RANKINGS_COMPUTED_TOTAL.labels(status=FetchStatus.DEGRADED.value).inc()
        return RankingResult(event_id=event_id, status=FetchStatus.DEGRADED, error=str(exc))

    points = {c.id: c.points for c in challenges}
    rankings = aggregate_team_scores(teams, responses, points, policy)
    RANKINGS_COMPUTED_TOTAL.labels(status=FetchStatus.OK.value).inc()
    return RankingResult(event_id=event_id, status=FetchStatus.OK, rankings=rankings)
