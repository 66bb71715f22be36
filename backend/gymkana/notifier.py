"""Change notifier: at-least-once "something changed" fan-out per record kind.

A notification carries the record kind, the operation and a small scope dict
(e.g. `challenge_id`) used only for subscription filtering. Listeners must
treat it as a bare signal and re-read the store.

Signals are coalesced per subscription: several changes arriving while a
listener is busy wake it up once.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from gymkana.config import Settings
from gymkana.metrics import ACTIVE_SUBSCRIPTIONS, CHANGE_NOTIFICATIONS_PUBLISHED_TOTAL
from gymkana.schemas.records import RecordKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeNotification:
    kind: RecordKind
    operation: str = "INSERT"
    scope: Mapping[str, str] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {"kind": self.kind.value, "operation": self.operation, "scope": dict(self.scope)},
            ensure_ascii=True,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ChangeNotification":
        data = json.loads(raw)
        return cls(
            kind=RecordKind(data["kind"]),
            operation=str(data.get("operation") or "INSERT"),
            scope={str(k): str(v) for k, v in (data.get("scope") or {}).items()},
        )


class Subscription:
    """Handle for one listener. Iterate it to receive signals; `close()` releases it."""

    def __init__(
        self,
        notifier: "ChangeNotifier",
        kinds: Iterable[RecordKind],
        scope_filter: Mapping[str, str] | None = None,
    ):
        self.kinds = frozenset(kinds)
        self.scope_filter = dict(scope_filter or {})
        self._notifier = notifier
        self._signal = asyncio.Event()
        self._latest: ChangeNotification | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, notification: ChangeNotification) -> bool:
        """Kind must be subscribed; scope keys are only compared when the notification carries them."""
        if notification.kind not in self.kinds:
            return False
        for key, expected in self.scope_filter.items():
            actual = notification.scope.get(key)
            if actual is not None and actual != expected:
                return False
        return True

    def deliver(self, notification: ChangeNotification) -> None:
        if self._closed:
            return
        self._latest = notification
        self._signal.set()

    async def wait(self) -> ChangeNotification | None:
        """Wait for the next (coalesced) signal. Returns None once closed."""
        if self._closed:
            return None
        await self._signal.wait()
        self._signal.clear()
        if self._closed:
            return None
        return self._latest

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeNotification:
        notification = await self.wait()
        if notification is None:
            raise StopAsyncIteration
        return notification

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._notifier._discard(self)
        # Wake any waiter so its loop can exit.
        self._signal.set()


class ChangeNotifier:
    """In-process notifier. Fan-out is synchronous with `publish`."""

    def __init__(self) -> None:
        self._subscriptions: set[Subscription] = set()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        kinds: Iterable[RecordKind],
        scope_filter: Mapping[str, str] | None = None,
    ) -> Subscription:
        sub = Subscription(self, kinds, scope_filter)
        self._subscriptions.add(sub)
        ACTIVE_SUBSCRIPTIONS.inc()
        return sub

    async def publish(self, notification: ChangeNotification) -> None:
        CHANGE_NOTIFICATIONS_PUBLISHED_TOTAL.labels(
            kind=notification.kind.value, operation=notification.operation
        ).inc()
        self._fan_out(notification)

    def _fan_out(self, notification: ChangeNotification) -> None:
        for sub in list(self._subscriptions):
            if sub.matches(notification):
                sub.deliver(notification)

    def _discard(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.discard(sub)
            ACTIVE_SUBSCRIPTIONS.dec()

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.close()


class RedisChangeNotifier(ChangeNotifier):
    """Notifier shared by every API process through one Redis pub/sub channel.

    Local subscribers are only fed from the channel, so a publisher sees its
    own change exactly like any other process does.
    """

    CHANNEL = "gymkana:changes"

    def __init__(self, url: str, *, client: aioredis.Redis | None = None) -> None:
        super().__init__()
        self._redis = client or aioredis.Redis.from_url(url, decode_responses=True)
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.CHANNEL)
        self._listener = asyncio.create_task(self._listen(), name="gymkana-notifier-listener")
        logger.info("Redis change notifier listening", extra={"channel": self.CHANNEL})

    async def publish(self, notification: ChangeNotification) -> None:
        CHANGE_NOTIFICATIONS_PUBLISHED_TOTAL.labels(
            kind=notification.kind.value, operation=notification.operation
        ).inc()
        try:
            await self._redis.publish(self.CHANNEL, notification.to_json())
        except RedisError as exc:
            # Other processes miss this one; local views still refresh.
            logger.warning(f"Redis publish failed, delivering locally only: {exc}")
            self._fan_out(notification)

    async def _listen(self) -> None:
        while True:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    try:
                        notification = ChangeNotification.from_json(message["data"])
                    except (ValueError, KeyError, TypeError) as exc:
                        logger.warning(f"Dropping malformed change notification: {exc}")
                        continue
                    self._fan_out(notification)
            except RedisError as exc:
                logger.warning(f"Redis listener error, retrying in 1s: {exc}")
                await asyncio.sleep(1.0)

    async def close(self) -> None:
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.CHANNEL)
            await self._pubsub.aclose()
            self._pubsub = None
        await self._redis.aclose()


def build_notifier(settings: Settings) -> ChangeNotifier:
    backend = (settings.NOTIFIER_BACKEND or "memory").lower()
    if backend == "redis":
        return RedisChangeNotifier(settings.REDIS_URL)
    if backend != "memory":
        raise ValueError(f"Unknown NOTIFIER_BACKEND: {settings.NOTIFIER_BACKEND}")
    return ChangeNotifier()
