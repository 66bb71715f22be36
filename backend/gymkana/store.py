"""Data store boundary: typed inserts and queries over async SQLAlchemy.

Every SQLAlchemy failure is translated here into `ConstraintError` or
`StoreError`; callers above this module never see driver exceptions.
Successful writes publish change notifications after commit.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gymkana.db import async_session_factory
from gymkana.models import Challenge, Response, Team, Vote
from gymkana.models.vote import VOTE_UNIQUE_CONSTRAINT
from gymkana.notifier import ChangeNotification, ChangeNotifier
from gymkana.schemas.records import RECORD_TYPES, RecordKind, VoteRecord

logger = logging.getLogger(__name__)

VOTE_RESPONSE_FK = "fk_votes_response_id"
VOTE_TEAM_FK = "fk_votes_voter_team_id"
INTEGRITY = "integrity"

MODELS = {
    RecordKind.TEAM: Team,
    RecordKind.CHALLENGE: Challenge,
    RecordKind.RESPONSE: Response,
    RecordKind.VOTE: Vote,
}

UNIQUE_CONSTRAINTS = {
    RecordKind.VOTE: VOTE_UNIQUE_CONSTRAINT,
}


class StoreError(Exception):
    """Read or write against the data store failed."""


class ConstraintError(StoreError):
    """A write was rejected by a uniqueness or referential constraint."""

    def __init__(self, message: str, *, constraint: str = INTEGRITY):
        super().__init__(message)
        self.constraint = constraint


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return str(code) == "23505"
    text = str(orig).lower()
    return "unique" in text or "duplicate key" in text


def _constraint_error(kind: RecordKind, exc: IntegrityError) -> ConstraintError:
    if _is_unique_violation(exc):
        constraint = UNIQUE_CONSTRAINTS.get(kind, f"uq_{kind.value}")
    else:
        constraint = INTEGRITY
    return ConstraintError(f"{kind.value} insert rejected: {exc.orig}", constraint=constraint)


def _column(model, name: str):
    if name not in model.__table__.columns:
        raise ValueError(f"{model.__tablename__} has no column {name!r}")
    return getattr(model, name)


def _scope_for(kind: RecordKind, record: Any) -> dict[str, str]:
    if kind is RecordKind.TEAM:
        return {"event_id": record.event_id, "team_id": record.id}
    if kind is RecordKind.CHALLENGE:
        return {"event_id": record.event_id, "challenge_id": record.id}
    if kind is RecordKind.RESPONSE:
        return {"challenge_id": record.challenge_id, "team_id": record.team_id, "response_id": record.id}
    return {"response_id": record.response_id}


class DataStore:
    """`insert(kind, record)` / `query(kind, filters, order)` over the ORM models."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        notifier: ChangeNotifier | None = None,
    ):
        self._session_factory = session_factory or async_session_factory
        self._notifier = notifier

    async def insert(self, kind: RecordKind, record: Mapping[str, Any]):
        """Persist one record and return it as its typed record model."""
        model = MODELS[kind]
        for name in record:
            _column(model, name)
        if kind is RecordKind.VOTE:
            return await self._insert_vote(record)

        try:
            async with self._session_factory() as session:
                row = model(**record)
                session.add(row)
                await session.commit()
                stored = RECORD_TYPES[kind].model_validate(row)
        except IntegrityError as exc:
            raise _constraint_error(kind, exc) from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"{kind.value} insert failed: {exc}") from exc
        except ValidationError as exc:
            raise StoreError(f"{kind.value} insert produced a malformed row: {exc}") from exc

        await self._publish(ChangeNotification(kind, "INSERT", _scope_for(kind, stored)))
        return stored

    async def _insert_vote(self, record: Mapping[str, Any]) -> VoteRecord:
        """Insert a vote and bump the parent counter in one transaction.

        This is the only place `responses.votes_count` is written. The parent
        response and the voter team are checked in the same transaction.
        """
        response_id = record.get("response_id")
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    challenge_id = (
                        await session.execute(
                            select(Response.challenge_id).where(Response.id == response_id)
                        )
                    ).scalar()
                    if challenge_id is None:
                        raise ConstraintError(
                            f"response {response_id} does not exist", constraint=VOTE_RESPONSE_FK
                        )
                    voter_team_id = record.get("voter_team_id")
                    if voter_team_id is not None:
                        team = (
                            await session.execute(select(Team.id).where(Team.id == voter_team_id))
                        ).scalar()
                        if team is None:
                            raise ConstraintError(
                                f"voter team {voter_team_id} does not exist", constraint=VOTE_TEAM_FK
                            )
                    row = Vote(**record)
                    session.add(row)
                    await session.flush()
                    await session.execute(
                        update(Response)
                        .where(Response.id == response_id)
                        .values(votes_count=Response.votes_count + 1)
                    )
                stored = VoteRecord.model_validate(row)
        except IntegrityError as exc:
            raise _constraint_error(RecordKind.VOTE, exc) from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"votes insert failed: {exc}") from exc
        except ValidationError as exc:
            raise StoreError(f"votes insert produced a malformed row: {exc}") from exc

        scope = {"response_id": stored.response_id, "challenge_id": challenge_id}
        await self._publish(ChangeNotification(RecordKind.VOTE, "INSERT", scope))
        await self._publish(ChangeNotification(RecordKind.RESPONSE, "UPDATE", scope))
        return stored

    async def query(
        self,
        kind: RecordKind,
        filters: Mapping[str, Any] | None = None,
        order: Iterable[str] = (),
    ) -> list:
        """Select typed records.

        `filters` maps column -> value (a list/tuple/set value means membership).
        `order` lists column names, `-` prefixed for descending.
        """
        model = MODELS[kind]
        stmt = select(model)
        for name, value in (filters or {}).items():
            column = _column(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        for term in order:
            column = _column(model, term.lstrip("-"))
            stmt = stmt.order_by(column.desc() if term.startswith("-") else column.asc())

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"{kind.value} query failed: {exc}") from exc

        record_type = RECORD_TYPES[kind]
        try:
            return [record_type.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise StoreError(f"malformed {kind.value} row: {exc}") from exc

    async def _publish(self, notification: ChangeNotification) -> None:
        if self._notifier is None:
            return
        await self._notifier.publish(notification)
