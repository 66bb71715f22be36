"""Response submission: validates a team's answer against its challenge."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from gymkana.metrics import RESPONSES_SUBMITTED_TOTAL
from gymkana.models.challenge import ResponseType
from gymkana.schemas.records import RecordKind, ResponseRecord
from gymkana.scoring.rankings import RESUBMISSION_POLICY, ResubmissionPolicy
from gymkana.store import DataStore, StoreError

logger = logging.getLogger(__name__)


class SubmissionError(str, enum.Enum):
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_CHALLENGE = "UNKNOWN_CHALLENGE"
    UNKNOWN_TEAM = "UNKNOWN_TEAM"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"


@dataclass(slots=True)
class SubmissionOutcome:
    response: ResponseRecord | None = None
    error: SubmissionError | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def submit_response(
    store: DataStore,
    *,
    challenge_id: str,
    team_id: str,
    user_name: str | None,
    content: str | None,
    response_type: ResponseType | str,
    policy: ResubmissionPolicy = RESUBMISSION_POLICY,
) -> SubmissionOutcome:
    """Insert a response after checking challenge, team and type consistency."""
    rtype_label = str(getattr(response_type, "value", response_type))

    def fail(error: SubmissionError, detail: str | None = None) -> SubmissionOutcome:
        RESPONSES_SUBMITTED_TOTAL.labels(outcome=error.value, response_type=rtype_label).inc()
        return SubmissionOutcome(error=error, detail=detail)

    user_name = (user_name or "").strip()
    content = (content or "").strip()
    if not user_name or not content:
        return fail(SubmissionError.INVALID_INPUT, "user_name and content are required")
    try:
        rtype = ResponseType(response_type)
    except ValueError:
        return fail(SubmissionError.INVALID_INPUT, f"unknown response type {response_type!r}")

    try:
        challenges = await store.query(RecordKind.CHALLENGE, {"id": challenge_id})
        if not challenges:
            return fail(SubmissionError.UNKNOWN_CHALLENGE)
        challenge = challenges[0]

        teams = await store.query(RecordKind.TEAM, {"id": team_id, "event_id": challenge.event_id})
        if not teams:
            return fail(SubmissionError.UNKNOWN_TEAM)

        if rtype != challenge.type:
            return fail(
                SubmissionError.TYPE_MISMATCH,
                f"challenge expects {challenge.type.value}, got {rtype.value}",
            )

        if policy is ResubmissionPolicy.ONE_PER_CHALLENGE:
            existing = await store.query(
                RecordKind.RESPONSE, {"challenge_id": challenge_id, "team_id": team_id}
            )
            if existing:
                return fail(SubmissionError.ALREADY_SUBMITTED)

        response = await store.insert(
            RecordKind.RESPONSE,
            {
                "challenge_id": challenge_id,
                "team_id": team_id,
                "user_name": user_name,
                "content": content,
                "type": rtype.value,
            },
        )
    except StoreError as exc:
        logger.error(f"Response submission to challenge {challenge_id} failed: {exc}")
        return fail(SubmissionError.SUBMISSION_FAILED)

    RESPONSES_SUBMITTED_TOTAL.labels(outcome="SUCCESS", response_type=rtype.value).inc()
    logger.info(f"Response {response.id} submitted by team {team_id} to challenge {challenge_id}")
    return SubmissionOutcome(response=response)
