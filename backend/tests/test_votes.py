from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from gymkana.schemas.records import RecordKind
from gymkana.votes import VoteError, cast_vote


async def _votes_count(store, response_id: str) -> int:
    (response,) = await store.query(RecordKind.RESPONSE, {"id": response_id})
    return response.votes_count


async def _vote_rows(store, response_id: str) -> int:
    return len(await store.query(RecordKind.VOTE, {"response_id": response_id}))


@pytest_asyncio.fixture
async def response(seed):
    team = await seed.team("A")
    challenge = await seed.challenge("photo", points=10)
    return await seed.response(challenge, team.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", "\t\n", None])
async def test_blank_voter_name_is_rejected_without_store_call(counting_store, name) -> None:
    fake = counting_store(wrap=False)
    outcome = await cast_vote(fake, "resp-1", name)
    assert outcome.error is VoteError.INVALID_INPUT
    assert outcome.message == "Please enter your name"
    assert fake.calls == []


@pytest.mark.asyncio
async def test_same_voter_twice_succeeds_once(store, response) -> None:
    first = await cast_vote(store, response.id, "Ana")
    second = await cast_vote(store, response.id, "Ana")
    third = await cast_vote(store, response.id, "Ana")

    assert first.ok and first.vote.voter_name == "Ana"
    assert second.error is VoteError.ALREADY_VOTED
    assert third.error is VoteError.ALREADY_VOTED
    assert second.message == "You already voted for this response"
    assert await _votes_count(store, response.id) == 1


@pytest.mark.asyncio
async def test_voter_name_is_trimmed_before_uniqueness(store, response) -> None:
    assert (await cast_vote(store, response.id, "  Ana ")).ok
    assert (await cast_vote(store, response.id, "Ana")).error is VoteError.ALREADY_VOTED


@pytest.mark.asyncio
async def test_two_voters_both_count(store, response) -> None:
    assert (await cast_vote(store, response.id, "Ana")).ok
    assert (await cast_vote(store, response.id, "Bea")).ok
    assert await _votes_count(store, response.id) == 2


@pytest.mark.asyncio
async def test_counter_matches_vote_rows_after_mixed_casts(store, seed) -> None:
    team = await seed.team("A")
    challenge = await seed.challenge("photo")
    r1 = await seed.response(challenge, team.id, minutes=1)
    r2 = await seed.response(challenge, team.id, minutes=2)
    attempts = [(r1, "Ana"), (r2, "Ana"), (r1, "Bea"), (r1, "Ana"), (r2, "Cai"), (r2, "Cai"), (r1, "  ")]
    for resp, voter in attempts:
        await cast_vote(store, resp.id, voter)

    for resp in (r1, r2):
        assert await _votes_count(store, resp.id) == await _vote_rows(store, resp.id)
    assert await _votes_count(store, r1.id) == 2
    assert await _votes_count(store, r2.id) == 2


@pytest.mark.asyncio
async def test_concurrent_duplicate_votes_persist_once(store, response) -> None:
    outcomes = await asyncio.gather(*(cast_vote(store, response.id, "Ana") for _ in range(5)))
    assert sum(1 for o in outcomes if o.ok) == 1
    assert await _vote_rows(store, response.id) == 1
    assert await _votes_count(store, response.id) == 1


@pytest.mark.asyncio
async def test_unknown_response(store) -> None:
    outcome = await cast_vote(store, "does-not-exist", "Ana")
    assert outcome.error is VoteError.RESPONSE_NOT_FOUND


@pytest.mark.asyncio
async def test_store_failure_is_generic_submission_failure(counting_store) -> None:
    fake = counting_store({RecordKind.VOTE})
    outcome = await cast_vote(fake, "resp-1", "Ana")
    assert outcome.error is VoteError.SUBMISSION_FAILED
    assert fake.calls == [("insert", RecordKind.VOTE)]


@pytest.mark.asyncio
async def test_voter_team_is_recorded(store, seed, response) -> None:
    voter_team = await seed.team("B")
    outcome = await cast_vote(store, response.id, "Bea", voter_team_id=voter_team.id)
    assert outcome.vote.voter_team_id == voter_team.id


@pytest.mark.asyncio
async def test_unknown_voter_team_is_not_retryable(store, response) -> None:
    outcome = await cast_vote(store, response.id, "Bea", voter_team_id="team-that-never-existed")

    assert outcome.error is VoteError.UNKNOWN_TEAM
    assert outcome.message != "Could not submit the vote, please try again"
    assert await _vote_rows(store, response.id) == 0
    assert await _votes_count(store, response.id) == 0
