"""Vote recorder: one vote per (response, voter), enforced by the store constraint.

The recorder never checks for an existing vote before inserting; it always
attempts the insert and interprets the constraint outcome, so two concurrent
voters cannot race past a read.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from gymkana.metrics import VOTES_CAST_TOTAL
from gymkana.models.vote import VOTE_UNIQUE_CONSTRAINT
from gymkana.schemas.records import RecordKind, VoteRecord
from gymkana.store import VOTE_RESPONSE_FK, VOTE_TEAM_FK, ConstraintError, DataStore, StoreError

logger = logging.getLogger(__name__)


class VoteError(str, enum.Enum):
    INVALID_INPUT = "INVALID_INPUT"
    ALREADY_VOTED = "ALREADY_VOTED"
    RESPONSE_NOT_FOUND = "RESPONSE_NOT_FOUND"
    UNKNOWN_TEAM = "UNKNOWN_TEAM"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"


VOTE_ERROR_MESSAGES = {
    VoteError.INVALID_INPUT: "Please enter your name",
    VoteError.ALREADY_VOTED: "You already voted for this response",
    VoteError.RESPONSE_NOT_FOUND: "Response not found",
    VoteError.UNKNOWN_TEAM: "Unknown team, pick your team again",
    VoteError.SUBMISSION_FAILED: "Could not submit the vote, please try again",
}


@dataclass(slots=True)
class VoteOutcome:
    vote: VoteRecord | None = None
    error: VoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str | None:
        return VOTE_ERROR_MESSAGES.get(self.error) if self.error else None


def _fail(error: VoteError) -> VoteOutcome:
    VOTES_CAST_TOTAL.labels(outcome=error.value).inc()
    return VoteOutcome(error=error)


async def cast_vote(
    store: DataStore,
    response_id: str,
    voter_name: str | None,
    voter_team_id: str | None = None,
) -> VoteOutcome:
    """Record one vote. Idempotent per (response_id, trimmed voter_name)."""
    name = (voter_name or "").strip()
    if not name or not response_id:
        return _fail(VoteError.INVALID_INPUT)

    record = {"response_id": response_id, "voter_name": name}
    if voter_team_id:
        record["voter_team_id"] = voter_team_id

    try:
        vote = await store.insert(RecordKind.VOTE, record)
    except ConstraintError as exc:
        if exc.constraint == VOTE_UNIQUE_CONSTRAINT:
            logger.info(f"Duplicate vote by {name!r} on response {response_id}")
            return _fail(VoteError.ALREADY_VOTED)
        if exc.constraint == VOTE_RESPONSE_FK:
            return _fail(VoteError.RESPONSE_NOT_FOUND)
        if exc.constraint == VOTE_TEAM_FK:
            return _fail(VoteError.UNKNOWN_TEAM)
        logger.warning(f"Vote on response {response_id} rejected: {exc}")
        return _fail(VoteError.SUBMISSION_FAILED)
    except StoreError as exc:
        logger.error(f"Vote on response {response_id} failed: {exc}")
        return _fail(VoteError.SUBMISSION_FAILED)

    VOTES_CAST_TOTAL.labels(outcome="SUCCESS").inc()
    logger.info(f"Vote recorded for response {response_id} by {name!r}")
    return VoteOutcome(vote=vote)
