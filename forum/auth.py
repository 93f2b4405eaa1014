"""
Authenticator — gatekeeper for every authenticated request.

A request moves from *unauthenticated* to *authenticated(identity)* only
when all three checks pass, in order:

1. the ``Authorization`` header is exactly ``Bearer <token>``;
2. the token verifies (signature, pinned algorithm, payload, expiry);
3. a live session exists for the identity embedded in the token.

The third check is what makes logout work: a revoked or expired session
rejects a token whose signature and ``exp`` are still perfectly valid.

Session establishment is asymmetric.  Signup always writes a
new session; login only writes one when none is live, so a second login
gets a fresh token while the stored session (and its TTL) stays as it was.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from forum.config import settings
from forum.errors import MissingCredential, NoActiveSession, NoSession
from forum.locks import KeyedLock
from forum.session_store import SessionStore, session_store
from forum.tokens import Identity, TokenCodec

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization`` header value.

    Raises:
        MissingCredential: header absent or not exactly ``Bearer <token>``.
    """
    if not authorization:
        raise MissingCredential("missing token")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise MissingCredential("bad token format")
    return parts[1]


class Authenticator:
    def __init__(
        self,
        codec: TokenCodec,
        sessions: SessionStore,
        clock: Clock = _utcnow,
    ) -> None:
        self.codec = codec
        self.sessions = sessions
        self.clock = clock
        # Session establishment and removal, per identity.  Separate from
        # the store's own per-call lock, which is not reentrant.
        self._locks = KeyedLock()

    async def authenticate(self, authorization: Optional[str]) -> Identity:
        """Resolve the identity behind an ``Authorization`` header.

        Raises:
            MissingCredential: no usable bearer token.
            InvalidToken: token failed verification.
            NoActiveSession: token is valid but its session is gone.
            StoreUnavailable: the session store could not be reached.
        """
        token = extract_bearer_token(authorization)
        claims = self.codec.verify(token, now=self.clock())

        try:
            await self.sessions.get(claims.user_id)
        except NoSession as exc:
            logger.info(
                "Valid token without live session", extra={"user_id": claims.user_id}
            )
            raise NoActiveSession() from exc

        return claims.identity

    async def issue_session(self, identity: Identity) -> str:
        """Signup flow: issue a token and always (re)create the session."""
        async with self._locks.hold(identity.id):
            now = self.clock()
            token = self.codec.issue(identity, now=now)
            await self.sessions.create(identity.id, token, now=now)
        logger.info("Session issued", extra={"user_id": identity.id, "operation": "signup"})
        return token

    async def ensure_session(self, identity: Identity) -> str:
        """
        Login flow: issue a token, create a session only if none is live.

        The lookup and the create run under the identity's lock, so a
        signup for the same user cannot land between them and be
        overwritten by this login.
        """
        async with self._locks.hold(identity.id):
            now = self.clock()
            token = self.codec.issue(identity, now=now)
            try:
                await self.sessions.get(identity.id)
            except NoSession:
                await self.sessions.create(identity.id, token, now=now)
                logger.info("Session created", extra={"user_id": identity.id, "operation": "login"})
        return token

    async def revoke_session(self, identity: Identity) -> None:
        """Logout: drop the session so every outstanding token stops working."""
        async with self._locks.hold(identity.id):
            try:
                await self.sessions.delete(identity.id)
            except NoSession as exc:
                raise NoActiveSession() from exc
        logger.info("Session revoked", extra={"user_id": identity.id, "operation": "logout"})


# Module-level singleton; the signing secret is read once from settings here
# and handed to the codec.
authenticator = Authenticator(
    codec=TokenCodec(
        settings.SECRET_KEY,
        ttl=timedelta(seconds=settings.TOKEN_TTL_SECONDS),
    ),
    sessions=session_store,
)
