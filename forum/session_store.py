import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from forum.config import settings
from forum.errors import NoSession, StoreUnavailable
from forum.locks import KeyedLock

logger = logging.getLogger(__name__)


class Session(BaseModel):
    """Server-side record asserting that *user_id* is logged in."""

    user_id: int
    token: str
    expires: datetime


class SessionStore:
    """
    One session slot per user, backed by Redis.

    Records live under ``sessions:<user_id>`` with a TTL equal to the token
    lifetime, so an abandoned session expires together with the token it
    was created for.  Redis' own expiry is the only expiry check: whatever
    ``GET`` returns is live.

    Unlike a cache, this store never degrades silently: any Redis failure
    is reported as ``StoreUnavailable``.

    Operations on the same user are serialised through a per-user lock;
    different users never wait on each other.
    """

    KEY_PREFIX = "sessions:"

    def __init__(
        self,
        url: str | None = None,
        ttl_seconds: int | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        self._url = url or settings.REDIS_URL
        self.ttl_seconds = ttl_seconds or settings.TOKEN_TTL_SECONDS
        self._redis: redis.Redis | None = client
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Ping to surface mis-configuration early; requests will still fail
        # with StoreUnavailable until Redis comes up.
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", self._url)
        except RedisError as exc:
            logger.warning("Redis ping failed, sessions unavailable: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def ping(self) -> bool:
        """Return True if Redis answers; never raises."""
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise StoreUnavailable("session store is not connected")
        return self._redis

    @classmethod
    def key(cls, user_id: int) -> str:
        return f"{cls.KEY_PREFIX}{user_id}"

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    async def create(self, user_id: int, token: str, now: datetime | None = None) -> Session:
        """Store a fresh session for *user_id*, replacing any previous one."""
        now = now or datetime.now(timezone.utc)
        session = Session(
            user_id=user_id,
            token=token,
            expires=now + timedelta(seconds=self.ttl_seconds),
        )
        async with self._locks.hold(user_id):
            try:
                ok = await self.client.set(
                    self.key(user_id), session.model_dump_json(), ex=self.ttl_seconds
                )
            except RedisError as exc:
                logger.error(
                    "Session SET failed", extra={"user_id": user_id, "operation": "create"}
                )
                raise StoreUnavailable() from exc
        if not ok:
            raise StoreUnavailable("session was not stored")
        logger.debug("Session created for user_id=%s", user_id)
        return session

    async def get(self, user_id: int) -> Session:
        """Return the live session for *user_id* or raise ``NoSession``."""
        async with self._locks.hold(user_id):
            try:
                data = await self.client.get(self.key(user_id))
            except RedisError as exc:
                logger.error(
                    "Session GET failed", extra={"user_id": user_id, "operation": "get"}
                )
                raise StoreUnavailable() from exc
        if data is None:
            raise NoSession()
        try:
            return Session.model_validate_json(data)
        except ValidationError as exc:
            logger.error("Corrupted session record for user_id=%s", user_id)
            raise StoreUnavailable("corrupted session record") from exc

    async def delete(self, user_id: int) -> None:
        """Remove the session for *user_id*; ``NoSession`` if there was none."""
        async with self._locks.hold(user_id):
            try:
                removed = await self.client.delete(self.key(user_id))
            except RedisError as exc:
                logger.error(
                    "Session DEL failed", extra={"user_id": user_id, "operation": "delete"}
                )
                raise StoreUnavailable() from exc
        if not removed:
            raise NoSession()
        logger.debug("Session deleted for user_id=%s", user_id)


# Module-level singleton shared across all request handlers.
session_store = SessionStore()
