"""Shared API dependencies for storage access and actor resolution."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sentence_stash.core.errors import AuthenticationRequired
from sentence_stash.core.security import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_ADMIN,
    TOKEN_TYPE_SESSION,
    decode_token,
    subject_as_user_id,
)
from sentence_stash.core.settings import settings
from sentence_stash.models import User
from sentence_stash.storage import Storage, get_storage

# Missing or malformed headers fall through to the session cookie.
bearer_scheme = HTTPBearer(auto_error=False)

StorageDep = Annotated[Storage, Depends(get_storage)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def resolve_actor(
    storage: Storage,
    bearer_token: str | None,
    session_token: str | None,
) -> User | None:
    """Identify the user behind a request.

    The bearer token is tried first; when it is absent, invalid, expired or
    names a user that no longer exists, the session cookie is tried next.

    Args:
        storage: Backend used to load the user record.
        bearer_token: Raw ``Authorization: Bearer`` credential, if any.
        session_token: Raw session cookie value, if any.

    Returns:
        The user, or None when neither credential identifies one.
    """
    for token, token_type in (
        (bearer_token, TOKEN_TYPE_ACCESS),
        (session_token, TOKEN_TYPE_SESSION),
    ):
        if not token:
            continue
        user_id = subject_as_user_id(decode_token(token, token_type))
        if user_id is None:
            continue
        user = storage.get_user(user_id)
        if user is not None:
            return user
    return None


def get_optional_user(
    request: Request,
    storage: StorageDep,
    credentials: BearerDep,
) -> User | None:
    """Current user, or None for anonymous requests."""
    return resolve_actor(
        storage,
        credentials.credentials if credentials else None,
        request.cookies.get(settings.session_cookie_name),
    )


def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    """Current user; raises AuthenticationRequired for anonymous requests."""
    if user is None:
        raise AuthenticationRequired()
    return user


def require_admin(credentials: BearerDep) -> None:
    """Accept only a valid admin token as the bearer credential."""
    if credentials is None or decode_token(credentials.credentials, TOKEN_TYPE_ADMIN) is None:
        raise AuthenticationRequired("Admin authentication required")


OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]
CurrentUserDep = Annotated[User, Depends(get_current_user)]
AdminDep = Annotated[None, Depends(require_admin)]
