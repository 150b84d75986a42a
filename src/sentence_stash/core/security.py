"""Password hashing and signed-token helpers.

Bearer tokens, session cookies, OAuth ``state`` values and admin tokens are
all HS256 JWTs signed with ``SECRET_KEY``; the ``typ`` claim keeps one kind
from being replayed as another.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from sentence_stash.core.settings import settings

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_SESSION = "session"
TOKEN_TYPE_OAUTH_STATE = "oauth_state"
TOKEN_TYPE_ADMIN = "admin"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    """Return a bcrypt hash of ``password``."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check ``plain_password`` against a stored bcrypt hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Stored value is not a recognised hash (e.g. legacy plaintext rows).
        return False


def generate_random_password() -> str:
    """Return an unusable random password for accounts created via OAuth."""
    return secrets.token_hex(32)


def generate_reset_token() -> str:
    """Return a single-use password reset token."""
    return secrets.token_hex(32)


def _encode(claims: dict[str, Any], typ: str, expires_in: timedelta) -> str:
    to_encode: dict[str, Any] = dict(claims)
    to_encode["typ"] = typ
    to_encode["exp"] = datetime.now(UTC) + expires_in
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_token(token: str, typ: str) -> dict[str, Any] | None:
    """Decode a signed token of the given type.

    Returns:
        The claims, or None when the signature, expiry or type do not match.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
    if payload.get("typ") != typ:
        return None
    return payload


def create_access_token(user_id: int, email: str, nickname: str) -> str:
    """Create the stateless bearer token handed out on register/login."""
    return _encode(
        {"sub": str(user_id), "email": email, "nickname": nickname},
        TOKEN_TYPE_ACCESS,
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_session_token(user_id: int) -> str:
    """Create the signed value stored in the session cookie."""
    return _encode(
        {"sub": str(user_id)},
        TOKEN_TYPE_SESSION,
        timedelta(seconds=settings.session_max_age_seconds),
    )


def create_oauth_state() -> str:
    """Create a short-lived anti-CSRF ``state`` value for the Google redirect."""
    return _encode(
        {"nonce": secrets.token_urlsafe(16)},
        TOKEN_TYPE_OAUTH_STATE,
        timedelta(minutes=10),
    )


def create_admin_token() -> str:
    """Create a short-lived token granting access to the admin endpoints."""
    return _encode(
        {"sub": "admin", "scope": "admin"},
        TOKEN_TYPE_ADMIN,
        timedelta(minutes=settings.admin_token_expire_minutes),
    )


def subject_as_user_id(payload: dict[str, Any] | None) -> int | None:
    """Extract an integer user id from the ``sub`` claim, if present."""
    if not payload:
        return None
    subject = payload.get("sub")
    if subject is None:
        return None
    try:
        return int(subject)
    except (TypeError, ValueError):
        return None


def check_admin_password(candidate: str | None) -> bool:
    """Constant-time comparison against ``ADMIN_PASSWORD``."""
    if not settings.admin_password or not candidate:
        return False
    return secrets.compare_digest(candidate, settings.admin_password)
