from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from forum.auth import Authenticator
from forum.database import get_db
from forum.dependencies import CurrentUser, get_authenticator, require_json
from forum.schemas import AuthForm, MessageResponse, TokenResponse
from forum.services import user_service

router = APIRouter(prefix="/api", tags=["auth"])

AuthDep = Annotated[Authenticator, Depends(get_authenticator)]


@router.post(
    "/register",
    status_code=201,
    response_model=TokenResponse,
    dependencies=[Depends(require_json)],
)
async def register(form: AuthForm, auth: AuthDep, db: AsyncSession = Depends(get_db)):
    user = await user_service.insert(db, form.username, form.password)
    token = await auth.issue_session(user_service.identity_of(user))
    return TokenResponse(token=token)


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(require_json)])
async def login(form: AuthForm, auth: AuthDep, db: AsyncSession = Depends(get_db)):
    user = await user_service.check_credentials(db, form.username, form.password)
    token = await auth.ensure_session(user_service.identity_of(user))
    return TokenResponse(token=token)


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: CurrentUser, auth: AuthDep):
    await auth.revoke_session(current_user)
    return MessageResponse()
