from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from forum.database import get_db
from forum.dependencies import CurrentUser, require_json
from forum.schemas import CommentCreate, MessageResponse, PostCreate
from forum.services import comment_service, post_service, vote_service
from forum.services.vote_service import DOWNVOTE, UNVOTE, UPVOTE

router = APIRouter(prefix="/api", tags=["posts"])


# ---------------------------------------------------------------------------
# Listing and detail
# ---------------------------------------------------------------------------

@router.get("/posts/")
async def list_posts(db: AsyncSession = Depends(get_db)):
    return await post_service.list_posts(db)


@router.get("/posts/{category}")
async def list_posts_by_category(category: str, db: AsyncSession = Depends(get_db)):
    return await post_service.list_posts(db, category=category)


@router.get("/post/{post_id}")
async def get_post(post_id: int, db: AsyncSession = Depends(get_db)):
    return await post_service.get_post(db, post_id)


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------

@router.post("/posts", status_code=201, dependencies=[Depends(require_json)])
async def create_post(data: PostCreate, current_user: CurrentUser, db: AsyncSession = Depends(get_db)):
    return await post_service.create_post(db, current_user, data)


@router.delete("/post/{post_id}", response_model=MessageResponse)
async def delete_post(post_id: int, current_user: CurrentUser, db: AsyncSession = Depends(get_db)):
    await post_service.delete_post(db, current_user, post_id)
    return MessageResponse()


@router.post("/post/{post_id}", status_code=201, dependencies=[Depends(require_json)])
async def add_comment(
    post_id: int,
    data: CommentCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(db, current_user, post_id, data.comment)


@router.delete("/post/{post_id}/{comment_id}")
async def delete_comment(
    post_id: int,
    comment_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.delete_comment(db, current_user, post_id, comment_id)


# ---------------------------------------------------------------------------
# Voting
# ---------------------------------------------------------------------------

@router.get("/post/{post_id}/upvote")
async def upvote(post_id: int, current_user: CurrentUser, db: AsyncSession = Depends(get_db)):
    return await vote_service.apply_vote(db, current_user, post_id, UPVOTE)


@router.get("/post/{post_id}/downvote")
async def downvote(post_id: int, current_user: CurrentUser, db: AsyncSession = Depends(get_db)):
    return await vote_service.apply_vote(db, current_user, post_id, DOWNVOTE)


@router.get("/post/{post_id}/unvote")
async def unvote(post_id: int, current_user: CurrentUser, db: AsyncSession = Depends(get_db)):
    return await vote_service.apply_vote(db, current_user, post_id, UNVOTE)
