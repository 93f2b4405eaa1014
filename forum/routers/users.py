from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from forum.database import get_db
from forum.services import post_service

router = APIRouter(prefix="/api/user", tags=["users"])


@router.get("/{username}")
async def list_user_posts(username: str, db: AsyncSession = Depends(get_db)):
    return await post_service.list_posts(db, username=username)
