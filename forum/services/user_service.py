"""
User service — the credential store.

Passwords are stored as bcrypt hashes; the plain password never leaves
this module.  Lookups raise domain errors instead of returning None so
the auth router can hand them straight to the exception handlers, and
database failures are reported as ``StoreUnavailable``.
"""
import logging

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from forum.config import settings
from forum.errors import StoreUnavailable, UserAlreadyExists, UserNotFound, WrongCredentials
from forum.models import User
from forum.tokens import Identity

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))


def identity_of(user: User) -> Identity:
    return Identity(id=user.id, username=user.username)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def lookup_by_login(db: AsyncSession, username: str) -> User:
    try:
        result = await db.execute(select(User).where(User.username == username))
    except SQLAlchemyError as exc:
        logger.error("User lookup failed", extra={"operation": "lookup_by_login"})
        raise StoreUnavailable() from exc
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound()
    return user


async def lookup_by_id(db: AsyncSession, user_id: int) -> User:
    try:
        user = await db.get(User, user_id)
    except SQLAlchemyError as exc:
        logger.error("User lookup failed", extra={"operation": "lookup_by_id", "user_id": user_id})
        raise StoreUnavailable() from exc
    if user is None:
        raise UserNotFound()
    return user


async def insert(db: AsyncSession, username: str, password: str) -> User:
    """
    Create a user with a freshly hashed password.

    The explicit existence check gives a clean error for the common case;
    the unique constraint on ``username`` still catches two signups racing
    for the same login.
    """
    try:
        existing = await lookup_by_login(db, username)
    except UserNotFound:
        existing = None
    if existing is not None:
        raise UserAlreadyExists()

    user = User(username=username, password_hash=hash_password(password))
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise UserAlreadyExists() from exc
    except SQLAlchemyError as exc:
        logger.error("User insert failed", extra={"operation": "insert"})
        raise StoreUnavailable() from exc

    logger.info("User created", extra={"user_id": user.id, "operation": "signup"})
    return user


async def check_credentials(db: AsyncSession, username: str, password: str) -> User:
    """Return the user if *password* matches, else raise ``WrongCredentials``."""
    user = await lookup_by_login(db, username)
    if not verify_password(password, user.password_hash):
        raise WrongCredentials()
    return user
