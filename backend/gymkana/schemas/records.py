"""Typed records crossing the data-store boundary.

Rows read from the store are validated into these models at construction, so
scoring and projection code never deals with loosely shaped rows.
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gymkana.models.challenge import ResponseType


class RecordKind(str, enum.Enum):
    TEAM = "teams"
    CHALLENGE = "challenges"
    RESPONSE = "responses"
    VOTE = "votes"


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(min_length=1)


class TeamRecord(_Record):
    event_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    color: str = Field(min_length=1)
    created_at: datetime


class ChallengeRecord(_Record):
    event_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    type: ResponseType
    points: int = Field(ge=0)
    order: int = 0
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    created_at: datetime


class ResponseRecord(_Record):
    challenge_id: str = Field(min_length=1)
    team_id: str = Field(min_length=1)
    user_name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    type: ResponseType
    votes_count: int = Field(ge=0)
    submitted_at: datetime


class VoteRecord(_Record):
    response_id: str = Field(min_length=1)
    voter_name: str = Field(min_length=1)
    voter_team_id: Optional[str] = None
    created_at: datetime


RECORD_TYPES: dict[RecordKind, type[_Record]] = {
    RecordKind.TEAM: TeamRecord,
    RecordKind.CHALLENGE: ChallengeRecord,
    RecordKind.RESPONSE: ResponseRecord,
    RecordKind.VOTE: VoteRecord,
}
