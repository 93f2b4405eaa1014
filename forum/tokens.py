"""Token codec — issues and verifies the signed bearer credential.

Tokens are HS256 JWTs carrying::

    {"user": {"username": "...", "id": "42"}, "iat": <unix>, "exp": <unix>}

Verification is pure: it needs only the signing secret and the current
time, both supplied by the caller.  Liveness of the login is a separate
question answered by the session store.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, NamedTuple, Optional

from jose import JWTError, jwt

from forum.errors import InvalidToken

logger = logging.getLogger(__name__)

PINNED_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = timedelta(days=4)


class Identity(NamedTuple):
    """Authenticated user as seen by handlers."""
    id: int
    username: str


class TokenClaims(NamedTuple):
    user_id: int
    username: str
    issued_at: int
    expires_at: int

    @property
    def identity(self) -> Identity:
        return Identity(id=self.user_id, username=self.username)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Create and verify credential tokens with one pinned algorithm."""

    def __init__(
        self,
        secret: str,
        algorithm: str = PINNED_ALGORITHM,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def issue(self, identity: Identity, now: Optional[datetime] = None) -> str:
        """Return a signed token for *identity* valid for ``self.ttl``."""
        issued_at = int((now or _utcnow()).timestamp())
        payload: Dict[str, Any] = {
            "user": {
                "username": identity.username,
                "id": str(identity.id),
            },
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str, now: Optional[datetime] = None) -> TokenClaims:
        """Check signature, algorithm, payload shape and expiry.

        Expiry is evaluated against *now* rather than the library's own
        clock so callers (and tests) control time.

        Raises:
            InvalidToken: on any verification failure.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug("JWT decode failed: %s", exc)
            raise InvalidToken("bad token") from exc

        claims = self._parse_claims(payload)

        current = int((now or _utcnow()).timestamp())
        if current > claims.expires_at:
            raise InvalidToken("token expired")
        return claims

    @staticmethod
    def _parse_claims(payload: Dict[str, Any]) -> TokenClaims:
        user = payload.get("user")
        if not isinstance(user, dict):
            raise InvalidToken("no payload")

        username = user.get("username")
        raw_id = user.get("id")
        if not isinstance(username, str) or not isinstance(raw_id, str):
            raise InvalidToken("no payload")
        try:
            user_id = int(raw_id)
        except ValueError as exc:
            raise InvalidToken("bad user id in token") from exc

        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        # bool is an int subclass; a literal true/false is not a timestamp
        for value in (issued_at, expires_at):
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidToken("bad token timestamps")

        return TokenClaims(
            user_id=user_id,
            username=username,
            issued_at=issued_at,
            expires_at=expires_at,
        )
