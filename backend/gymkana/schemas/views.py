"""Derived read models: rankings, feed items and the result envelopes around them."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from gymkana.models.challenge import ResponseType
from gymkana.schemas.records import ChallengeRecord


class FetchStatus(str, enum.Enum):
    """Outcome of a read used for aggregation or projection.

    EMPTY is a confirmed empty result; DEGRADED means a read failed and the
    data must not be shown as authoritative.
    """

    OK = "OK"
    EMPTY = "EMPTY"
    DEGRADED = "DEGRADED"


class TeamScore(BaseModel):
    team_id: str
    team_name: str
    team_color: str
    total_points: int = 0
    completed_challenges: int = 0
    total_votes: int = 0


class ResponseView(BaseModel):
    id: str
    challenge_id: str
    team_id: str
    user_name: str
    content: str
    type: ResponseType
    votes_count: int
    submitted_at: datetime
    team_name: str
    team_color: str


class RankingResult(BaseModel):
    event_id: str
    status: FetchStatus
    rankings: list[TeamScore] = Field(default_factory=list)
    error: Optional[str] = None


class FeedResult(BaseModel):
    challenge_id: str
    status: FetchStatus
    responses: list[ResponseView] = Field(default_factory=list)
    error: Optional[str] = None


class ChallengeListResult(BaseModel):
    event_id: str
    status: FetchStatus
    challenges: list[ChallengeRecord] = Field(default_factory=list)
    error: Optional[str] = None
