"""Voting and response submission API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gymkana.api.deps import get_store
from gymkana.schemas.records import ResponseRecord, VoteRecord
from gymkana.store import DataStore
from gymkana.submissions import SubmissionError, submit_response
from gymkana.votes import VoteError, cast_vote

router = APIRouter(prefix="/api", tags=["voting"])
logger = logging.getLogger(__name__)

VOTE_ERROR_STATUS = {
    VoteError.INVALID_INPUT: 400,
    VoteError.RESPONSE_NOT_FOUND: 404,
    VoteError.UNKNOWN_TEAM: 404,
    VoteError.ALREADY_VOTED: 409,
    VoteError.SUBMISSION_FAILED: 503,
}

SUBMISSION_ERROR_STATUS = {
    SubmissionError.INVALID_INPUT: 400,
    SubmissionError.UNKNOWN_CHALLENGE: 404,
    SubmissionError.UNKNOWN_TEAM: 404,
    SubmissionError.ALREADY_SUBMITTED: 409,
    SubmissionError.TYPE_MISMATCH: 422,
    SubmissionError.SUBMISSION_FAILED: 503,
}


class VotePayload(BaseModel):
    voter_name: str
    voter_team_id: str | None = None


class VoteAccepted(BaseModel):
    status: str
    vote: VoteRecord


class ResponsePayload(BaseModel):
    team_id: str
    user_name: str
    content: str
    type: str


class ResponseAccepted(BaseModel):
    status: str
    response: ResponseRecord


@router.post("/responses/{response_id}/votes", status_code=201)
async def post_vote(
    response_id: str,
    payload: VotePayload,
    store: DataStore = Depends(get_store),
) -> VoteAccepted:
    """Cast one vote. Repeating the same voter name on the same response is a 409."""
    outcome = await cast_vote(store, response_id, payload.voter_name, payload.voter_team_id)
    if not outcome.ok:
        raise HTTPException(
            status_code=VOTE_ERROR_STATUS[outcome.error],
            detail={"error": outcome.error.value, "message": outcome.message},
        )
    return VoteAccepted(status="recorded", vote=outcome.vote)


@router.post("/challenges/{challenge_id}/responses", status_code=201)
async def post_response(
    challenge_id: str,
    payload: ResponsePayload,
    store: DataStore = Depends(get_store),
) -> ResponseAccepted:
    """Submit a team response; `content` is the text body or a media URL."""
    outcome = await submit_response(
        store,
        challenge_id=challenge_id,
        team_id=payload.team_id,
        user_name=payload.user_name,
        content=payload.content,
        response_type=payload.type,
    )
    if not outcome.ok:
        raise HTTPException(
            status_code=SUBMISSION_ERROR_STATUS[outcome.error],
            detail={"error": outcome.error.value, "message": outcome.detail},
        )
    return ResponseAccepted(status="submitted", response=outcome.response)
