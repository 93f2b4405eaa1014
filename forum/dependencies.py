from typing import Annotated

from fastapi import Depends, Header

from forum.auth import Authenticator, authenticator
from forum.errors import UnsupportedPayload
from forum.tokens import Identity


def get_authenticator() -> Authenticator:
    """Return the process-wide authenticator (overridable in tests)."""
    return authenticator


async def get_current_user(
    auth: Annotated[Authenticator, Depends(get_authenticator)],
    authorization: Annotated[str | None, Header()] = None,
) -> Identity:
    """
    FastAPI dependency that gates a route behind authentication.

    The raw ``Authorization`` header is handed to the authenticator
    untouched: it must read exactly ``Bearer <token>``, so FastAPI's
    ``HTTPBearer`` (case-insensitive, whitespace tolerant) is not used.

    The resolved :class:`~forum.tokens.Identity` is the request's user for
    the rest of its handling.  Failures raise ``CredentialError`` or
    ``SessionError`` subclasses, rendered as 401 by the handlers in
    ``forum.main``.
    """
    return await auth.authenticate(authorization)


def require_json(content_type: Annotated[str | None, Header()] = None) -> None:
    """Reject request bodies that are not declared as JSON."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type != "application/json":
        raise UnsupportedPayload()


CurrentUser = Annotated[Identity, Depends(get_current_user)]
