"""
Vote service — the vote ledger for posts.

A post holds at most one vote per user.  ``apply_vote`` is the only way
votes change, and every call recomputes ``score`` and
``upvote_percentage`` from the resulting vote list:

- any existing vote by the voter is taken back first (score adjusted,
  record removed);
- a non-zero direction then adds a new record at the end of the list;
- direction 0 therefore just withdraws the vote, and repeating the same
  direction rewrites the record without changing the score.

The percentage divides before multiplying (``score // votes * 100``):
a score of 1 over three votes gives 0, not 33.

Concurrency
-----------
Read, mutation and commit for one post happen under a per-post lock, and
the row is selected ``FOR UPDATE`` so that separate processes sharing a
Postgres database serialise as well.  Unlike the other services this one
commits its own transaction: releasing the lock before the commit would
let the next voter read a stale score.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from forum.errors import ForumError, InvalidDirection, NoSuchItem, UpdateFailed
from forum.locks import KeyedLock
from forum.models import Vote
from forum.services.post_service import load_post, post_to_dict
from forum.tokens import Identity

logger = logging.getLogger(__name__)

UPVOTE = 1
UNVOTE = 0
DOWNVOTE = -1
VALID_DIRECTIONS: frozenset[int] = frozenset({DOWNVOTE, UNVOTE, UPVOTE})

_post_locks = KeyedLock()


def upvote_percentage(score: int, vote_count: int) -> int:
    """Approval percentage exactly as clients expect it (truncating)."""
    if score < 0 or vote_count == 0:
        return 0
    return score // vote_count * 100


async def apply_vote(db: AsyncSession, voter: Identity, post_id: int, direction: int) -> dict:
    """
    Record *voter*'s *direction* (-1, 0 or +1) on *post_id* and return the
    updated post.

    Raises:
        InvalidDirection: *direction* is not -1, 0 or +1.
        NoSuchItem: the post does not exist, or vanished before the write.
        UpdateFailed: any other storage error; the transaction is rolled
            back and the caller must not retry blindly.
    """
    if isinstance(direction, bool) or direction not in VALID_DIRECTIONS:
        raise InvalidDirection()

    async with _post_locks.hold(post_id):
        try:
            post = await load_post(db, post_id, for_update=True)

            existing = next((v for v in post.votes if v.user_id == voter.id), None)
            if existing is not None:
                post.score -= existing.vote
                post.votes.remove(existing)
                # The old row must be gone before the replacement is
                # inserted: (post_id, user_id) is unique.
                await db.flush()

            if direction != UNVOTE:
                post.votes.append(Vote(user_id=voter.id, vote=direction))
                post.score += direction

            post.upvote_percentage = upvote_percentage(post.score, len(post.votes))

            await db.flush()
            await db.commit()
        except ForumError:
            await db.rollback()
            raise
        except StaleDataError as exc:
            await db.rollback()
            raise NoSuchItem() from exc
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Vote update failed",
                extra={"user_id": voter.id, "post_id": post_id, "operation": "apply_vote"},
                exc_info=True,
            )
            raise UpdateFailed() from exc

    logger.debug(
        "Vote applied: direction=%s score=%s upvotePercentage=%s",
        direction,
        post.score,
        post.upvote_percentage,
        extra={"user_id": voter.id, "post_id": post_id},
    )
    return post_to_dict(post)
