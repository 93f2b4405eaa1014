"""
Vote ledger tests.

Service-level tests drive ``apply_vote`` directly against the SQLite
session; endpoint tests go through the HTTP routes.
"""
import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from forum.errors import InvalidDirection, NoSuchItem, UpdateFailed
from forum.models import Post, Vote
from forum.services import user_service
from forum.services.post_service import load_post
from forum.services.vote_service import (
    DOWNVOTE,
    UNVOTE,
    UPVOTE,
    apply_vote,
    upvote_percentage,
)

TEXT_POST = {"category": "programming", "type": "text", "title": "Hello", "text": "world"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def voters(db_session):
    """Three users and an unvoted post owned by the first of them."""
    users = []
    for name in ("anna", "ben", "cleo"):
        user = await user_service.insert(db_session, name, "secret")
        users.append(user_service.identity_of(user))

    post = Post(
        title="Ledger",
        type="text",
        category="news",
        text="votes go here",
        score=0,
        views=0,
        upvote_percentage=0,
        author_id=users[0].id,
    )
    db_session.add(post)
    await db_session.commit()
    return users, post.id


async def _vote_rows(db_session, post_id: int) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(Vote).where(Vote.post_id == post_id)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Percentage formula
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "score,count,expected",
    [
        (0, 0, 0),
        (1, 1, 100),
        (2, 2, 100),
        (0, 2, 0),
        (1, 3, 0),
        (3, 3, 100),
        (4, 2, 200),
        (-1, 1, 0),
        (-3, 5, 0),
    ],
)
def test_upvote_percentage(score, count, expected):
    assert upvote_percentage(score, count) == expected


# ---------------------------------------------------------------------------
# apply_vote — service level
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_vote_sequence(db_session, voters):
    """Upvote, a second user's downvote, then the first user's unvote."""
    (anna, ben, _), post_id = voters

    post = await apply_vote(db_session, anna, post_id, UPVOTE)
    assert (post["score"], post["upvotePercentage"]) == (1, 100)
    assert post["votes"] == [{"user": str(anna.id), "vote": 1}]

    post = await apply_vote(db_session, ben, post_id, DOWNVOTE)
    assert (post["score"], post["upvotePercentage"]) == (0, 0)
    assert len(post["votes"]) == 2

    post = await apply_vote(db_session, anna, post_id, UNVOTE)
    assert (post["score"], post["upvotePercentage"]) == (-1, 0)
    assert post["votes"] == [{"user": str(ben.id), "vote": -1}]


@pytest.mark.asyncio
async def test_repeated_upvote_is_idempotent(db_session, voters):
    (anna, _, _), post_id = voters

    first = await apply_vote(db_session, anna, post_id, UPVOTE)
    second = await apply_vote(db_session, anna, post_id, UPVOTE)

    assert second["score"] == first["score"] == 1
    assert second["upvotePercentage"] == 100
    assert len(second["votes"]) == 1
    assert await _vote_rows(db_session, post_id) == 1


@pytest.mark.asyncio
async def test_upvote_then_unvote_restores_post(db_session, voters):
    (anna, ben, _), post_id = voters
    baseline = await apply_vote(db_session, ben, post_id, DOWNVOTE)

    await apply_vote(db_session, anna, post_id, UPVOTE)
    restored = await apply_vote(db_session, anna, post_id, UNVOTE)

    assert restored["score"] == baseline["score"]
    assert restored["upvotePercentage"] == baseline["upvotePercentage"]
    assert restored["votes"] == baseline["votes"]


@pytest.mark.asyncio
async def test_switching_direction_moves_vote_to_end(db_session, voters):
    (anna, ben, _), post_id = voters
    await apply_vote(db_session, anna, post_id, UPVOTE)
    await apply_vote(db_session, ben, post_id, UPVOTE)

    post = await apply_vote(db_session, anna, post_id, DOWNVOTE)

    assert post["score"] == 0
    assert post["votes"] == [
        {"user": str(ben.id), "vote": 1},
        {"user": str(anna.id), "vote": -1},
    ]


@pytest.mark.asyncio
async def test_unvote_without_vote_changes_nothing(db_session, voters):
    (anna, _, cleo), post_id = voters
    await apply_vote(db_session, anna, post_id, UPVOTE)

    post = await apply_vote(db_session, cleo, post_id, UNVOTE)
    assert post["score"] == 1
    assert post["upvotePercentage"] == 100
    assert len(post["votes"]) == 1


@pytest.mark.asyncio
async def test_score_matches_vote_sum(db_session, voters):
    (anna, ben, cleo), post_id = voters
    steps = [
        (anna, UPVOTE),
        (ben, UPVOTE),
        (cleo, DOWNVOTE),
        (ben, DOWNVOTE),
        (anna, UNVOTE),
        (cleo, UPVOTE),
        (anna, DOWNVOTE),
    ]
    for voter, direction in steps:
        post = await apply_vote(db_session, voter, post_id, direction)
        assert post["score"] == sum(v["vote"] for v in post["votes"])
        assert len({v["user"] for v in post["votes"]}) == len(post["votes"])
        assert post["upvotePercentage"] == upvote_percentage(post["score"], len(post["votes"]))


@pytest.mark.asyncio
@pytest.mark.parametrize("direction", [2, -2, 10, True, False])
async def test_invalid_direction(db_session, voters, direction):
    (anna, _, _), post_id = voters

    with pytest.raises(InvalidDirection):
        await apply_vote(db_session, anna, post_id, direction)


@pytest.mark.asyncio
async def test_vote_on_missing_post(db_session, voters):
    (anna, _, _), _ = voters

    with pytest.raises(NoSuchItem):
        await apply_vote(db_session, anna, 9999, UPVOTE)


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_storage_error_rolls_back_and_raises_update_failed(db_session, voters, monkeypatch):
    (anna, ben, _), post_id = voters
    await apply_vote(db_session, anna, post_id, UPVOTE)

    async def failing_commit():
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(UpdateFailed):
        await apply_vote(db_session, ben, post_id, DOWNVOTE)
    monkeypatch.undo()

    post = await load_post(db_session, post_id)
    assert post.score == 1
    assert post.upvote_percentage == 100
    assert [(v.user_id, v.vote) for v in post.votes] == [(anna.id, 1)]


@pytest.mark.asyncio
async def test_post_vanishing_mid_write_is_no_such_item(db_session, voters, monkeypatch):
    (anna, _, _), post_id = voters

    async def stale_flush():
        raise StaleDataError("UPDATE statement on table 'posts' expected to update 1 row(s); 0 were matched.")

    monkeypatch.setattr(db_session, "flush", stale_flush)
    with pytest.raises(NoSuchItem):
        await apply_vote(db_session, anna, post_id, UPVOTE)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_votes_on_one_post(file_sessions):
    """Parallel voters, each in its own session, never lose or duplicate a vote."""
    async with file_sessions() as session:
        voters = []
        for i in range(8):
            user = await user_service.insert(session, f"voter{i}", "secret")
            voters.append(user_service.identity_of(user))
        post = Post(
            title="Busy",
            type="text",
            category="news",
            text="everyone votes",
            score=0,
            views=0,
            upvote_percentage=0,
            author_id=voters[0].id,
        )
        session.add(post)
        await session.commit()
        post_id = post.id

    async def vote(voter, direction):
        async with file_sessions() as session:
            return await apply_vote(session, voter, post_id, direction)

    directions = [UPVOTE] * 5 + [DOWNVOTE] * 3
    await asyncio.gather(*(vote(v, d) for v, d in zip(voters, directions)))
    # One voter changing their mind repeatedly, all at once.
    await asyncio.gather(*(vote(voters[0], d) for d in [DOWNVOTE, UPVOTE] * 3))

    async with file_sessions() as session:
        post = await load_post(session, post_id)

    assert len(post.votes) == 8
    assert len({v.user_id for v in post.votes}) == 8
    assert post.score == sum(v.vote for v in post.votes)
    assert post.score in (0, 2)
    assert post.upvote_percentage == upvote_percentage(post.score, 8)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_new_post_carries_author_upvote(async_client, register_user):
    alice = await register_user("alice")

    resp = await async_client.post("/api/posts", json=TEXT_POST, headers=alice["headers"])
    post = resp.json()

    assert post["score"] == 1
    assert post["upvotePercentage"] == 100
    assert post["votes"] == [{"user": post["author"]["id"], "vote": 1}]


@pytest.mark.asyncio
async def test_vote_endpoints(async_client, register_user):
    alice = await register_user("alice")
    bob = await register_user("bob")
    created = (
        await async_client.post("/api/posts", json=TEXT_POST, headers=alice["headers"])
    ).json()
    url = f"/api/post/{created['id']}"

    resp = await async_client.get(f"{url}/downvote", headers=bob["headers"])
    assert resp.status_code == 200
    assert (resp.json()["score"], resp.json()["upvotePercentage"]) == (0, 0)

    resp = await async_client.get(f"{url}/upvote", headers=bob["headers"])
    assert (resp.json()["score"], resp.json()["upvotePercentage"]) == (2, 100)

    resp = await async_client.get(f"{url}/unvote", headers=alice["headers"])
    assert (resp.json()["score"], resp.json()["upvotePercentage"]) == (1, 100)
    assert len(resp.json()["votes"]) == 1


@pytest.mark.asyncio
async def test_vote_requires_authentication(async_client, register_user):
    alice = await register_user("alice")
    created = (
        await async_client.post("/api/posts", json=TEXT_POST, headers=alice["headers"])
    ).json()

    resp = await async_client.get(f"/api/post/{created['id']}/upvote")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_vote_on_missing_post_endpoint(async_client, register_user):
    alice = await register_user("alice")

    resp = await async_client.get("/api/post/424242/upvote", headers=alice["headers"])
    assert resp.status_code == 404
    assert resp.json() == {"status": 404, "error": "cant find such post"}


@pytest.mark.asyncio
async def test_vote_persists_across_requests(async_client, register_user):
    alice = await register_user("alice")
    bob = await register_user("bob")
    created = (
        await async_client.post("/api/posts", json=TEXT_POST, headers=alice["headers"])
    ).json()

    await async_client.get(f"/api/post/{created['id']}/downvote", headers=bob["headers"])
    detail = (await async_client.get(f"/api/post/{created['id']}")).json()

    assert detail["score"] == 0
    assert {v["user"]: v["vote"] for v in detail["votes"]} == {
        created["author"]["id"]: 1,
        "2": -1,
    }
