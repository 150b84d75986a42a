# src/sentence_stash/api/endpoints/auth.py
"""Authentication endpoints: password accounts, sessions, Google sign-in and resets."""

from __future__ import annotations

import logging
from datetime import timedelta

import httpx
from fastapi import APIRouter, Request, Response, status
from fastapi.responses import RedirectResponse

from sentence_stash.api.dependencies import CurrentUserDep, OptionalUserDep, StorageDep
from sentence_stash.core.errors import (
    BusinessRuleViolation,
    NotFound,
    ValidationFailed,
)
from sentence_stash.core.security import (
    TOKEN_TYPE_OAUTH_STATE,
    create_access_token,
    create_oauth_state,
    create_session_token,
    decode_token,
    generate_reset_token,
    hash_password,
    verify_password,
)
from sentence_stash.core.settings import settings
from sentence_stash.db.time import utcnow
from sentence_stash.models import User
from sentence_stash.schemas.common import MessageResponse
from sentence_stash.schemas.user import (
    AuthResponse,
    FindEmailRequest,
    FindEmailResponse,
    GoogleAuthStatus,
    LoginRequest,
    MeResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordResetRequested,
    ProfileUpdateRequest,
    RegisterRequest,
    UserOut,
)
from sentence_stash.services.email import send_password_reset_email
from sentence_stash.services.google_oauth import (
    GoogleOAuthError,
    authorization_url,
    fetch_profile,
    is_google_oauth_allowed,
    upsert_google_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

OAUTH_STATE_COOKIE = "oauth_state"
RESET_REQUESTED_MESSAGE = "If that e-mail is registered, a password reset link has been sent."
INVALID_CREDENTIALS = "Incorrect email or password"
MASKED_CHARS_MAX = 5


def set_session_cookie(response: Response, user_id: int) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user_id),
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def mask_email(email: str) -> str:
    """Keep the first two characters of the local part, star up to five more."""
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        return email
    hidden = min(len(local) - 2, MASKED_CHARS_MAX)
    return f"{local[:2]}{'*' * hidden}@{domain}"


def _auth_response(user: User, response: Response, message: str) -> AuthResponse:
    set_session_cookie(response, user.id)
    return AuthResponse(
        user=UserOut.model_validate(user),
        token=create_access_token(user.id, user.email, user.nickname),
        message=message,
    )


@router.post("/register", response_model=AuthResponse)
async def register(
    payload: RegisterRequest,
    response: Response,
    storage: StorageDep,
) -> AuthResponse:
    """Create a password account and sign it in."""
    if storage.get_user_by_email(payload.email) is not None:
        raise BusinessRuleViolation("This email is already used")
    if storage.get_user_by_nickname(payload.nickname) is not None:
        raise BusinessRuleViolation("This nickname is already used")

    user = storage.create_user(
        email=payload.email,
        password_hash=hash_password(payload.password),
        nickname=payload.nickname,
        bio=payload.bio,
    )
    logger.info("Registered user %s", user.id)
    return _auth_response(user, response, "Registration complete")


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    storage: StorageDep,
) -> AuthResponse:
    """Password login; sets the session cookie and returns a bearer token."""
    user = storage.get_user_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password):
        logger.warning("Failed login for %s", payload.email)
        raise BusinessRuleViolation(INVALID_CREDENTIALS)
    logger.info("User %s logged in", user.id)
    return _auth_response(user, response, "Logged in")


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    clear_session_cookie(response)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=MeResponse)
async def me(current_user: CurrentUserDep) -> MeResponse:
    return MeResponse(user=UserOut.model_validate(current_user))


@router.put("/profile", response_model=MeResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> MeResponse:
    """Change nickname, bio or profile image URL."""
    changes = payload.model_dump(exclude_unset=True)
    nickname = changes.get("nickname")
    if nickname and nickname != current_user.nickname:
        existing = storage.get_user_by_nickname(nickname)
        if existing is not None and existing.id != current_user.id:
            raise BusinessRuleViolation("This nickname is already used")
    elif "nickname" in changes and not nickname:
        changes.pop("nickname")

    user = storage.update_user(current_user.id, changes)
    if user is None:
        raise NotFound("User not found")
    return MeResponse(user=UserOut.model_validate(user))


@router.post("/password-reset/request", response_model=PasswordResetRequested)
async def request_password_reset(
    payload: PasswordResetRequest,
    storage: StorageDep,
) -> PasswordResetRequested:
    """Issue a reset token; the reply never reveals whether the e-mail exists."""
    user = storage.get_user_by_email(payload.email)
    if user is None:
        return PasswordResetRequested(message=RESET_REQUESTED_MESSAGE)

    token = generate_reset_token()
    expires_at = utcnow() + timedelta(minutes=settings.password_reset_token_ttl_minutes)
    storage.create_password_reset_token(user.id, token, expires_at)
    await send_password_reset_email(user.email, token, user.nickname)
    logger.info("Password reset requested for user %s", user.id)

    return PasswordResetRequested(
        message=RESET_REQUESTED_MESSAGE,
        token=None if settings.is_production else token,
    )


@router.post("/password-reset", response_model=MessageResponse)
async def reset_password(
    payload: PasswordResetConfirm,
    storage: StorageDep,
) -> MessageResponse:
    """Consume a reset token and set the new password."""
    reset = storage.get_password_reset_token(payload.token)
    user_id = reset.user_id if reset is not None else None
    if not storage.consume_password_reset_token(
        payload.token, hash_password(payload.new_password), utcnow()
    ):
        raise ValidationFailed("Invalid or expired token")
    logger.info("Password changed for user %s", user_id)
    return MessageResponse(message="Your password has been changed")


@router.post("/find-email", response_model=FindEmailResponse)
async def find_email(payload: FindEmailRequest, storage: StorageDep) -> FindEmailResponse:
    user = storage.get_user_by_nickname(payload.nickname)
    if user is None:
        raise NotFound("No user is registered with that nickname")
    return FindEmailResponse(email=mask_email(user.email))


@router.get("/google")
async def google_login(request: Request) -> RedirectResponse:
    """Redirect to Google's consent screen with a signed ``state``."""
    if not is_google_oauth_allowed(request.headers.get("host")):
        return RedirectResponse("/?error=google_auth_failed", status_code=status.HTTP_302_FOUND)
    state = create_oauth_state()
    redirect = RedirectResponse(authorization_url(state), status_code=status.HTTP_302_FOUND)
    redirect.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state,
        max_age=600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
    return redirect


@router.get("/google/callback")
async def google_callback(
    request: Request,
    storage: StorageDep,
    code: str | None = None,
    state: str | None = None,
) -> RedirectResponse:
    """Finish Google sign-in and start a session."""
    failure = RedirectResponse("/?error=google_auth_failed", status_code=status.HTTP_302_FOUND)
    failure.delete_cookie(OAUTH_STATE_COOKIE, path="/")

    expected = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not state or state != expected:
        logger.warning("Google callback with missing or mismatched state")
        return failure
    if decode_token(state, TOKEN_TYPE_OAUTH_STATE) is None:
        logger.warning("Google callback with an invalid or expired state")
        return failure

    try:
        profile = await fetch_profile(code)
    except (httpx.HTTPError, GoogleOAuthError) as exc:
        logger.warning("Google sign-in failed: %s", exc)
        return failure

    user = upsert_google_user(storage, profile)
    logger.info("User %s signed in with Google", user.id)
    success = RedirectResponse("/?success=google_login", status_code=status.HTTP_302_FOUND)
    success.delete_cookie(OAUTH_STATE_COOKIE, path="/")
    set_session_cookie(success, user.id)
    return success


@router.get("/google/status", response_model=GoogleAuthStatus)
async def google_status(request: Request, user: OptionalUserDep) -> GoogleAuthStatus:
    host = request.headers.get("host", "")
    allowed = is_google_oauth_allowed(host)
    return GoogleAuthStatus(
        user=UserOut.model_validate(user) if user is not None else None,
        is_google_oauth_enabled=allowed,
        current_host=host,
        message=None if allowed else "Google OAuth is not available on this host",
    )
