"""
Post service — listing, detail, creation and deletion of posts.

Design notes
------------
- Relationships are ``lazy="noload"``; every query states what it needs
  via ``joinedload`` (author) and ``selectinload`` (votes, comments and
  comment authors) so serialisation never triggers implicit IO.
- ``load_post`` uses ``populate_existing`` so a post already present in
  the session's identity map is re-read rather than served stale.  The
  vote ledger relies on this when it re-reads a post under its lock.
- The JSON shape is the one the web client reads: ids are strings,
  ``upvotePercentage`` is camel-cased and ``text`` / ``url`` are omitted
  when empty.
"""
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from forum.errors import InvalidCategory, NoSuchItem, PermissionDenied
from forum.models import Comment, Post, User, Vote
from forum.schemas import CATEGORIES, PostCreate
from forum.tokens import Identity

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_user(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"username": user.username, "id": str(user.id)}


def serialize_comment(comment: Comment) -> dict:
    return {
        "id": str(comment.id),
        "author": serialize_user(comment.author),
        "body": comment.body,
        "created": _isoformat(comment.created_at),
    }


def post_to_dict(post: Post) -> dict:
    """Serialise a Post with its author, votes and comments loaded."""
    data = {
        "id": str(post.id),
        "title": post.title,
        "type": post.type,
        "category": post.category,
        "author": serialize_user(post.author),
        "score": post.score,
        "views": post.views,
        "upvotePercentage": post.upvote_percentage,
        "votes": [{"user": str(v.user_id), "vote": v.vote} for v in post.votes],
        "comments": [serialize_comment(c) for c in post.comments],
        "created": _isoformat(post.created_at),
    }
    if post.text:
        data["text"] = post.text
    if post.url:
        data["url"] = post.url
    return data


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _post_query():
    return select(Post).options(
        joinedload(Post.author),
        selectinload(Post.votes),
        selectinload(Post.comments).joinedload(Comment.author),
    )


async def load_post(db: AsyncSession, post_id: int, for_update: bool = False) -> Post:
    """
    Return the Post ORM instance for *post_id* with all relationships
    loaded, or raise ``NoSuchItem``.

    ``for_update`` locks the post row until the transaction ends on
    databases that support row locks (it is a no-op on SQLite).
    """
    q = _post_query().where(Post.id == post_id).execution_options(populate_existing=True)
    if for_update:
        q = q.with_for_update(of=Post)
    result = await db.execute(q)
    post = result.unique().scalar_one_or_none()
    if post is None:
        raise NoSuchItem()
    return post


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_posts(
    db: AsyncSession,
    category: str | None = None,
    username: str | None = None,
) -> list[dict]:
    """
    Return posts newest first, optionally narrowed to one *category* or
    to the posts of one author (*username*).  Category wins when both are
    given.
    """
    q = _post_query()
    if category is not None:
        if category not in CATEGORIES:
            raise InvalidCategory()
        q = q.where(Post.category == category)
    elif username is not None:
        q = q.join(Post.author).where(User.username == username)

    q = q.order_by(Post.created_at.desc(), Post.id.desc())
    result = await db.execute(q)
    return [post_to_dict(p) for p in result.unique().scalars().all()]


async def get_post(db: AsyncSession, post_id: int) -> dict:
    """
    Return the detail dict for *post_id*, counting the read as a view.

    The counter is bumped in SQL (``views = views + 1``) so concurrent
    readers never overwrite each other's increment.
    """
    result = await db.execute(
        update(Post)
        .where(Post.id == post_id)
        .values(views=Post.views + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NoSuchItem()
    return post_to_dict(await load_post(db, post_id))


async def create_post(db: AsyncSession, author: Identity, data: PostCreate) -> dict:
    """
    Create a post on behalf of *author*.

    Every new post carries its author's upvote, so it starts at
    ``score=1`` and ``upvotePercentage=100`` with one vote on record.
    """
    post = Post(
        title=data.title,
        type=data.type,
        category=data.category,
        text=data.text if data.type == "text" else None,
        url=data.url if data.type == "link" else None,
        score=1,
        views=1,
        upvote_percentage=100,
        author_id=author.id,
    )
    post.votes.append(Vote(user_id=author.id, vote=1))
    db.add(post)
    await db.flush()

    logger.info("Post created", extra={"user_id": author.id, "post_id": post.id})
    return post_to_dict(await load_post(db, post.id))


async def delete_post(db: AsyncSession, actor: Identity, post_id: int) -> None:
    """
    Delete *post_id* together with its comments and votes.

    Only the author may delete a post.
    """
    post = await load_post(db, post_id)
    if post.author_id != actor.id:
        raise PermissionDenied("you are not allowed to delete this post")

    await db.delete(post)
    await db.flush()
    logger.info("Post deleted", extra={"user_id": actor.id, "post_id": post_id})
