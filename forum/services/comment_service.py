"""
Comment service — adding and removing comments on a post.

Both operations answer with the updated post, which is what the client
re-renders after a comment change.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from forum.errors import NoSuchComment, PermissionDenied
from forum.models import Comment
from forum.services.post_service import load_post, post_to_dict
from forum.tokens import Identity

logger = logging.getLogger(__name__)


async def add_comment(db: AsyncSession, author: Identity, post_id: int, body: str) -> dict:
    """
    Append a comment by *author* to *post_id* and return the updated post.

    Raises ``NoSuchItem`` when the post does not exist.
    """
    await load_post(db, post_id)

    db.add(Comment(body=body, post_id=post_id, author_id=author.id))
    await db.flush()

    logger.info("Comment added", extra={"user_id": author.id, "post_id": post_id})
    return post_to_dict(await load_post(db, post_id))


async def delete_comment(
    db: AsyncSession, actor: Identity, post_id: int, comment_id: int
) -> dict:
    """
    Remove *comment_id* from *post_id* and return the updated post.

    Only the comment's author may delete it.  A comment id that exists
    but belongs to another post is reported as missing.
    """
    await load_post(db, post_id)

    result = await db.execute(
        select(Comment).where(Comment.id == comment_id, Comment.post_id == post_id)
    )
    comment = result.scalar_one_or_none()
    if comment is None:
        raise NoSuchComment()
    if comment.author_id != actor.id:
        raise PermissionDenied("you are not allowed to delete this comment")

    await db.delete(comment)
    await db.flush()

    logger.info("Comment deleted", extra={"user_id": actor.id, "post_id": post_id})
    return post_to_dict(await load_post(db, post_id))
