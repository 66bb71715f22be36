"""Team model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from gymkana.db import Base
from gymkana.models._common import new_id, utcnow

DEFAULT_TEAM_COLOR = "#3B82F6"


class Team(Base):
    """A competing team. Belongs to exactly one event; immutable for the scoring core."""

    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_TEAM_COLOR)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Team id={self.id} name={self.name!r} event={self.event_id}>"
