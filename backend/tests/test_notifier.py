from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gymkana.notifier import ChangeNotification, ChangeNotifier, RedisChangeNotifier, build_notifier
from gymkana.config import Settings
from gymkana.schemas.records import RecordKind
from gymkana.votes import cast_vote


def test_scope_filter_only_checks_keys_the_notification_carries() -> None:
    notifier = ChangeNotifier()
    sub = notifier.subscribe({RecordKind.RESPONSE, RecordKind.VOTE}, {"challenge_id": "c1"})

    assert sub.matches(ChangeNotification(RecordKind.RESPONSE, "INSERT", {"challenge_id": "c1"}))
    assert not sub.matches(ChangeNotification(RecordKind.RESPONSE, "INSERT", {"challenge_id": "c2"}))
    assert sub.matches(ChangeNotification(RecordKind.VOTE, "INSERT", {"response_id": "r9"}))
    assert not sub.matches(ChangeNotification(RecordKind.TEAM, "INSERT", {}))


def test_notification_json_round_trip() -> None:
    n = ChangeNotification(RecordKind.VOTE, "INSERT", {"response_id": "r1", "challenge_id": "c1"})
    assert ChangeNotification.from_json(n.to_json()) == n


@pytest.mark.asyncio
async def test_duplicate_signals_coalesce_into_one_wakeup() -> None:
    notifier = ChangeNotifier()
    sub = notifier.subscribe({RecordKind.VOTE})
    for _ in range(3):
        await notifier.publish(ChangeNotification(RecordKind.VOTE))

    assert (await asyncio.wait_for(sub.wait(), 1)).kind is RecordKind.VOTE
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sub.wait(), 0.05)


@pytest.mark.asyncio
async def test_close_releases_and_ends_iteration() -> None:
    notifier = ChangeNotifier()
    sub = notifier.subscribe({RecordKind.RESPONSE})
    assert notifier.subscription_count == 1

    received = []

    async def consume() -> None:
        async for n in sub:
            received.append(n)

    task = asyncio.create_task(consume())
    await notifier.publish(ChangeNotification(RecordKind.RESPONSE))
    await asyncio.sleep(0.01)
    sub.close()
    await asyncio.wait_for(task, 1)

    assert notifier.subscription_count == 0
    assert sub.closed
    assert len(received) == 1
    await notifier.publish(ChangeNotification(RecordKind.RESPONSE))
    assert await sub.wait() is None


@pytest.mark.asyncio
async def test_vote_publishes_vote_and_counter_update(store, seed, notifier) -> None:
    team = await seed.team("A")
    challenge = await seed.challenge("photo")
    response = await seed.response(challenge, team.id)
    votes = notifier.subscribe({RecordKind.VOTE}, {"challenge_id": challenge.id})
    counters = notifier.subscribe({RecordKind.RESPONSE}, {"challenge_id": challenge.id})
    elsewhere = notifier.subscribe({RecordKind.VOTE}, {"challenge_id": "another"})

    await cast_vote(store, response.id, "Ana")

    vote_signal = await asyncio.wait_for(votes.wait(), 1)
    counter_signal = await asyncio.wait_for(counters.wait(), 1)
    assert vote_signal.scope["response_id"] == response.id
    assert counter_signal.operation == "UPDATE"
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(elsewhere.wait(), 0.05)


@pytest.mark.asyncio
async def test_rejected_vote_publishes_nothing(store, seed, notifier) -> None:
    team = await seed.team("A")
    challenge = await seed.challenge("photo")
    response = await seed.response(challenge, team.id)
    await cast_vote(store, response.id, "Ana")
    sub = notifier.subscribe({RecordKind.VOTE, RecordKind.RESPONSE})

    await cast_vote(store, response.id, "Ana")

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sub.wait(), 0.05)


def test_build_notifier_selects_backend() -> None:
    assert type(build_notifier(Settings(NOTIFIER_BACKEND="memory"))) is ChangeNotifier
    with pytest.raises(ValueError):
        build_notifier(Settings(NOTIFIER_BACKEND="carrier-pigeon"))


class FakePubSub:
    def __init__(self) -> None:
        self.channels: set[str] = set()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        self.channels.update(channels)
        for channel in channels:
            self.queue.put_nowait({"type": "subscribe", "channel": channel, "data": 1})

    async def unsubscribe(self, *channels: str) -> None:
        self.channels.difference_update(channels)

    async def listen(self):
        while True:
            yield await self.queue.get()

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    """In-memory stand-in for `redis.asyncio.Redis` pub/sub."""

    def __init__(self) -> None:
        self.pubsubs: list[FakePubSub] = []
        self.published: list[tuple[str, str]] = []
        self.fail_publish = False
        self.closed = False

    def pubsub(self) -> FakePubSub:
        ps = FakePubSub()
        self.pubsubs.append(ps)
        return ps

    async def publish(self, channel: str, data: str) -> int:
        if self.fail_publish:
            raise RedisConnectionError("connection refused")
        self.published.append((channel, data))
        receivers = [ps for ps in self.pubsubs if channel in ps.channels]
        for ps in receivers:
            ps.queue.put_nowait({"type": "message", "channel": channel, "data": data})
        return len(receivers)

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_redis_notifier_reaches_subscribers_of_other_processes() -> None:
    broker = FakeRedis()
    writer = RedisChangeNotifier("redis://unused", client=broker)
    reader = RedisChangeNotifier("redis://unused", client=broker)
    await writer.start()
    await reader.start()
    sub = reader.subscribe({RecordKind.VOTE}, {"challenge_id": "c1"})
    notification = ChangeNotification(RecordKind.VOTE, "INSERT", {"response_id": "r1", "challenge_id": "c1"})

    await writer.publish(notification)

    assert broker.published == [(RedisChangeNotifier.CHANNEL, notification.to_json())]
    assert await asyncio.wait_for(sub.wait(), 1) == notification
    await writer.close()
    await reader.close()


@pytest.mark.asyncio
async def test_redis_notifier_drops_malformed_messages() -> None:
    broker = FakeRedis()
    notifier = RedisChangeNotifier("redis://unused", client=broker)
    await notifier.start()
    sub = notifier.subscribe({RecordKind.RESPONSE})
    (pubsub,) = broker.pubsubs
    pubsub.queue.put_nowait({"type": "message", "data": "not json"})
    pubsub.queue.put_nowait({"type": "message", "data": '{"kind": "bogus"}'})

    await notifier.publish(ChangeNotification(RecordKind.RESPONSE, "INSERT", {"challenge_id": "c1"}))

    received = await asyncio.wait_for(sub.wait(), 1)
    assert received.scope == {"challenge_id": "c1"}
    await notifier.close()


@pytest.mark.asyncio
async def test_redis_publish_failure_still_delivers_locally() -> None:
    broker = FakeRedis()
    notifier = RedisChangeNotifier("redis://unused", client=broker)
    await notifier.start()
    sub = notifier.subscribe({RecordKind.VOTE})
    broker.fail_publish = True

    await notifier.publish(ChangeNotification(RecordKind.VOTE))

    assert (await asyncio.wait_for(sub.wait(), 1)).kind is RecordKind.VOTE
    assert broker.published == []
    await notifier.close()


@pytest.mark.asyncio
async def test_redis_notifier_close_unsubscribes_and_releases() -> None:
    broker = FakeRedis()
    notifier = RedisChangeNotifier("redis://unused", client=broker)
    await notifier.start()
    sub = notifier.subscribe({RecordKind.TEAM})
    (pubsub,) = broker.pubsubs

    await notifier.close()

    assert pubsub.channels == set()
    assert pubsub.closed
    assert broker.closed
    assert sub.closed
    assert notifier.subscription_count == 0
