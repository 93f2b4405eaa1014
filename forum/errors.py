"""
Domain exceptions for the forum service.

Every failure that crosses a component boundary is one of the classes
below.  Each carries the HTTP status the exception handlers in
``forum.main`` answer with, so routers never translate errors by hand.
Raw driver exceptions (Redis, SQLAlchemy) are classified at the
component that caught them and chained via ``raise ... from``.
"""


class ForumError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    message: str = "internal error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class CredentialError(ForumError):
    """Missing, malformed, expired or forged bearer token."""

    status_code = 401
    message = "bad token"


class MissingCredential(CredentialError):
    message = "missing token"


class InvalidToken(CredentialError):
    message = "invalid token"


class SessionError(ForumError):
    """The token is fine but no live server-side session backs it."""

    status_code = 401
    message = "no session"


class NoActiveSession(SessionError):
    pass


class NoSession(ForumError):
    """Raised by the session store when no record exists for a user."""

    status_code = 401
    message = "cant find such session"


class StoreUnavailable(ForumError):
    status_code = 503
    message = "storage unavailable"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserNotFound(ForumError):
    status_code = 400
    message = "no user found"


class WrongCredentials(ForumError):
    status_code = 400
    message = "wrong login or password"


class UserAlreadyExists(ForumError):
    status_code = 409
    message = "already created"


class PermissionDenied(ForumError):
    status_code = 403
    message = "you are not allowed to do this"


# ---------------------------------------------------------------------------
# Posts, comments and votes
# ---------------------------------------------------------------------------

class NoSuchItem(ForumError):
    status_code = 404
    message = "cant find such post"


class NoSuchComment(ForumError):
    status_code = 404
    message = "cant find such comment"


class InvalidCategory(ForumError):
    status_code = 400
    message = "incorrect post category"


class VoteError(ForumError):
    """Base class for vote ledger failures."""


class InvalidDirection(VoteError):
    status_code = 400
    message = "unrecognized rate"


class UpdateFailed(VoteError):
    status_code = 500
    message = "cant update post"


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------

class UnsupportedPayload(ForumError):
    status_code = 400
    message = "unknown payload content type"
