"""Live view controllers: leaderboard and per-challenge response feed.

Each view owns one `Subscription`. A change signal is only a hint: the view
re-reads the store through the aggregator/projector and never patches its
numbers locally. Switching scope releases the old subscription (and cancels
its in-flight refresh) before the new one is opened; results computed for a
scope that is no longer current are dropped. Refreshes of one view run one at a
time, so the state on screen always comes from the latest read.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from gymkana.feed import list_challenges, project_feed
from gymkana.metrics import VIEW_REFRESH_SECONDS
from gymkana.notifier import ChangeNotifier, Subscription
from gymkana.schemas.records import ChallengeRecord, RecordKind
from gymkana.schemas.views import FetchStatus, ResponseView, TeamScore
from gymkana.scoring.rankings import RESUBMISSION_POLICY, ResubmissionPolicy, compute_rankings
from gymkana.store import DataStore

logger = logging.getLogger(__name__)


class ViewState(str, enum.Enum):
    LOADING = "LOADING"
    READY = "READY"
    EMPTY = "EMPTY"
    STALE = "STALE"
    CLOSED = "CLOSED"


class RankingSnapshot(BaseModel):
    event_id: str
    state: ViewState
    rankings: list[TeamScore] = Field(default_factory=list)
    error: Optional[str] = None
    empty_message: Optional[str] = None
    refreshed_at: Optional[datetime] = None


class FeedSnapshot(BaseModel):
    event_id: str
    challenge_id: Optional[str] = None
    state: ViewState
    challenges: list[ChallengeRecord] = Field(default_factory=list)
    responses: list[ResponseView] = Field(default_factory=list)
    error: Optional[str] = None
    empty_message: Optional[str] = None
    refreshed_at: Optional[datetime] = None


UpdateCallback = Callable[[BaseModel], Awaitable[None]]


class LiveView:
    """Subscription + refresh plumbing shared by the concrete views."""

    view_name = "live"

    def __init__(
        self,
        store: DataStore,
        notifier: ChangeNotifier,
        *,
        on_update: UpdateCallback | None = None,
    ):
        self._store = store
        self._notifier = notifier
        self._on_update = on_update
        self._subscription: Subscription | None = None
        self._listener: asyncio.Task | None = None
        self._generation = 0
        self._closed = False
        # One store read at a time per view; a later refresh always applies last.
        self._refresh_lock = asyncio.Lock()
        self.state = ViewState.LOADING
        self.error: str | None = None
        self.refreshed_at: datetime | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _bind(self, kinds: Iterable[RecordKind], scope_filter: Mapping[str, str] | None = None) -> None:
        """Swap to a new subscription scope; the previous one is released first."""
        self._release()
        self._generation += 1
        self._subscription = self._notifier.subscribe(kinds, scope_filter)
        self._listener = asyncio.create_task(
            self._listen(self._subscription, self._generation),
            name=f"gymkana-{self.view_name}-listener",
        )

    def _release(self) -> None:
        if self._listener is not None:
            # Called from an update callback the listener is the running task;
            # it stops on its own once its subscription is closed.
            if self._listener is not asyncio.current_task():
                self._listener.cancel()
            self._listener = None
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    async def _listen(self, subscription: Subscription, generation: int) -> None:
        async for notification in subscription:
            if not self._is_current(generation):
                break
            logger.debug(
                f"{self.view_name} view refresh on {notification.kind.value} {notification.operation}"
            )
            await self.refresh()

    async def refresh(self) -> None:
        """Re-read the store for the current scope and publish a snapshot."""
        generation = self._generation
        async with self._refresh_lock:
            with VIEW_REFRESH_SECONDS.labels(view=self.view_name).time():
                applied = await self._load(generation)
        if applied:
            self.refreshed_at = datetime.now(timezone.utc)
            await self._emit()

    async def _load(self, generation: int) -> bool:
        raise NotImplementedError

    async def _emit(self) -> None:
        if self._on_update is None:
            return
        try:
            await self._on_update(self.snapshot())
        except Exception:
            logger.exception(f"{self.view_name} view update callback failed")

    def snapshot(self) -> BaseModel:
        raise NotImplementedError

    async def close(self) -> None:
        """Release the subscription; no refresh result is applied afterwards."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        listener = self._listener
        self._release()
        if listener is not None and listener is not asyncio.current_task():
            await asyncio.gather(listener, return_exceptions=True)
        self.state = ViewState.CLOSED


class RankingView(LiveView):
    """Leaderboard of one event."""

    view_name = "ranking"
    EMPTY_MESSAGE = "No teams yet"

    def __init__(
        self,
        store: DataStore,
        notifier: ChangeNotifier,
        event_id: str,
        *,
        policy: ResubmissionPolicy = RESUBMISSION_POLICY,
        on_update: UpdateCallback | None = None,
    ):
        super().__init__(store, notifier, on_update=on_update)
        self.event_id = event_id
        self.policy = policy
        self.rankings: list[TeamScore] = []

    async def start(self) -> None:
        # Subscribed before the first read; a change in between still triggers a refresh.
        self._bind(
            {RecordKind.TEAM, RecordKind.RESPONSE, RecordKind.VOTE},
            {"event_id": self.event_id},
        )
        await self.refresh()

    async def _load(self, generation: int) -> bool:
        result = await compute_rankings(self._store, self.event_id, self.policy)
        if not self._is_current(generation):
            return False
        if result.status is FetchStatus.DEGRADED:
            # Keep the last good rankings on screen, flagged as stale.
            self.state = ViewState.STALE
            self.error = result.error
            return True
        self.rankings = result.rankings
        self.state = ViewState.READY if result.status is FetchStatus.OK else ViewState.EMPTY
        self.error = None
        return True

    def snapshot(self) -> RankingSnapshot:
        return RankingSnapshot(
            event_id=self.event_id,
            state=self.state,
            rankings=list(self.rankings),
            error=self.error,
            empty_message=self.EMPTY_MESSAGE if self.state is ViewState.EMPTY else None,
            refreshed_at=self.refreshed_at,
        )


class ResponseFeedView(LiveView):
    """Live response feed of the selected challenge of one event."""

    view_name = "feed"
    EMPTY_MESSAGE = "No responses yet for this challenge"
    NO_CHALLENGES_MESSAGE = "No challenges yet"

    def __init__(
        self,
        store: DataStore,
        notifier: ChangeNotifier,
        event_id: str,
        *,
        on_update: UpdateCallback | None = None,
    ):
        super().__init__(store, notifier, on_update=on_update)
        self.event_id = event_id
        self.challenges: list[ChallengeRecord] = []
        self.selected_challenge_id: str | None = None
        self.responses: list[ResponseView] = []

    async def start(self, challenge_id: str | None = None) -> None:
        """Load the challenge list and select `challenge_id` (default: the first one)."""
        listing = await list_challenges(self._store, self.event_id)
        if self._closed:
            return
        if listing.status is FetchStatus.DEGRADED:
            self.state = ViewState.STALE
            self.error = listing.error
            await self._emit()
            return
        self.challenges = listing.challenges
        target = challenge_id or (self.challenges[0].id if self.challenges else None)
        if target is None:
            self.state = ViewState.EMPTY
            await self._emit()
            return
        await self.select_challenge(target)

    async def select_challenge(self, challenge_id: str) -> None:
        if self._closed:
            raise RuntimeError("view is closed")
        self.selected_challenge_id = challenge_id
        self.responses = []
        self.state = ViewState.LOADING
        self.error = None
        self._bind({RecordKind.RESPONSE, RecordKind.VOTE}, {"challenge_id": challenge_id})
        await self.refresh()

    async def _load(self, generation: int) -> bool:
        if self.selected_challenge_id is None:
            return False
        result = await project_feed(self._store, self.selected_challenge_id)
        if not self._is_current(generation):
            return False
        if result.status is FetchStatus.DEGRADED:
            self.state = ViewState.STALE
            self.error = result.error
            return True
        self.responses = result.responses
        self.state = ViewState.READY if result.status is FetchStatus.OK else ViewState.EMPTY
        self.error = None
        return True

    def snapshot(self) -> FeedSnapshot:
        empty_message = None
        if self.state is ViewState.EMPTY:
            empty_message = self.EMPTY_MESSAGE if self.selected_challenge_id else self.NO_CHALLENGES_MESSAGE
        return FeedSnapshot(
            event_id=self.event_id,
            challenge_id=self.selected_challenge_id,
            state=self.state,
            challenges=list(self.challenges),
            responses=list(self.responses),
            error=self.error,
            empty_message=empty_message,
            refreshed_at=self.refreshed_at,
        )
