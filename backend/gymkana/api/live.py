"""Leaderboard, response feed and challenge list: pull endpoints plus SSE streams.

Streams run one live view per connection and push a full snapshot after every
refresh, with a `ping` frame when nothing changed for a while.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from starlette.responses import StreamingResponse

from gymkana.api.deps import get_notifier, get_store
from gymkana.config import settings
from gymkana.feed import list_challenges, project_feed
from gymkana.live.views import LiveView, RankingView, ResponseFeedView
from gymkana.metrics import SSE_EVENTS_SENT_TOTAL
from gymkana.notifier import ChangeNotifier
from gymkana.schemas.views import ChallengeListResult, FeedResult, FetchStatus, RankingResult
from gymkana.scoring.rankings import compute_rankings
from gymkana.store import DataStore

router = APIRouter(prefix="/api", tags=["live"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _json_dumps(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _sse_frame(event_type: str, payload: dict) -> str:
    return f"event: {event_type}\ndata: {_json_dumps(payload)}\n\n"


def _raise_if_degraded(result: RankingResult | FeedResult | ChallengeListResult) -> None:
    if result.status is FetchStatus.DEGRADED:
        raise HTTPException(status_code=503, detail={"status": result.status.value, "error": result.error})


class SnapshotSlot:
    """Single-item mailbox: a newer snapshot replaces one not yet sent."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[BaseModel] = asyncio.Queue(maxsize=1)

    async def put(self, snapshot: BaseModel) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(snapshot)

    async def get(self, timeout: float) -> BaseModel:
        return await asyncio.wait_for(self._queue.get(), timeout)


async def snapshot_events(
    request: Request,
    view: LiveView,
    slot: SnapshotSlot,
    start: Callable[[], Awaitable[None]],
    event_type: str,
    ping_interval: float | None = None,
) -> AsyncGenerator[str, None]:
    """SSE frames for one live view; the view is closed when the client goes away."""
    interval = ping_interval or settings.SSE_PING_INTERVAL_S
    try:
        await start()
        while True:
            if await request.is_disconnected():
                break
            try:
                snapshot = await slot.get(timeout=interval)
            except asyncio.TimeoutError:
                SSE_EVENTS_SENT_TOTAL.labels(event_type="ping").inc()
                yield _sse_frame("ping", {})
                continue
            SSE_EVENTS_SENT_TOTAL.labels(event_type=event_type).inc()
            yield _sse_frame(event_type, snapshot.model_dump(mode="json"))
    finally:
        await view.close()


@router.get("/events/{event_id}/rankings")
async def get_rankings(event_id: str, store: DataStore = Depends(get_store)) -> RankingResult:
    """Current leaderboard; 503 when the underlying read failed."""
    result = await compute_rankings(store, event_id)
    _raise_if_degraded(result)
    return result


@router.get("/events/{event_id}/challenges")
async def get_challenges(event_id: str, store: DataStore = Depends(get_store)) -> ChallengeListResult:
    result = await list_challenges(store, event_id)
    _raise_if_degraded(result)
    return result


@router.get("/challenges/{challenge_id}/feed")
async def get_feed(challenge_id: str, store: DataStore = Depends(get_store)) -> FeedResult:
    result = await project_feed(store, challenge_id)
    _raise_if_degraded(result)
    return result


@router.get("/events/{event_id}/rankings/stream", tags=["sse"])
async def rankings_stream(
    event_id: str,
    request: Request,
    store: DataStore = Depends(get_store),
    notifier: ChangeNotifier = Depends(get_notifier),
) -> StreamingResponse:
    slot = SnapshotSlot()
    view = RankingView(store, notifier, event_id, on_update=slot.put)
    return StreamingResponse(
        snapshot_events(request, view, slot, view.start, "RANKINGS"),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/events/{event_id}/feed/stream", tags=["sse"])
async def feed_stream(
    event_id: str,
    request: Request,
    challenge_id: str | None = None,
    store: DataStore = Depends(get_store),
    notifier: ChangeNotifier = Depends(get_notifier),
) -> StreamingResponse:
    """Feed of `challenge_id`, or of the event's first challenge when omitted."""
    slot = SnapshotSlot()
    view = ResponseFeedView(store, notifier, event_id, on_update=slot.put)

    async def start() -> None:
        await view.start(challenge_id)

    return StreamingResponse(
        snapshot_events(request, view, slot, start, "FEED"),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
