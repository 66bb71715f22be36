"""Vote model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from gymkana.db import Base
from gymkana.models._common import new_id, utcnow

VOTE_UNIQUE_CONSTRAINT = "uq_votes_response_voter"


class Vote(Base):
    """A single voter's endorsement of one response. One per (response, voter)."""

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("response_id", "voter_name", name=VOTE_UNIQUE_CONSTRAINT),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    response_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("responses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    voter_name: Mapped[str] = mapped_column(String(128), nullable=False)
    voter_team_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Vote id={self.id} response={self.response_id} voter={self.voter_name!r}>"
