"""Google sign-in using the OAuth 2.0 authorization-code flow."""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from sentence_stash.core.security import generate_random_password, hash_password
from sentence_stash.core.settings import settings
from sentence_stash.models import User
from sentence_stash.storage.base import Storage

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = "openid email profile"
OAUTH_TIMEOUT_SECONDS = 10.0

_NICKNAME_DISALLOWED = re.compile(r"[^a-zA-Z0-9가-힣_]")
_NICKNAME_MAX = 50
FALLBACK_NICKNAME = "reader"


class GoogleOAuthError(RuntimeError):
    """Raised when Google rejects the code exchange or returns no e-mail."""


@dataclass(frozen=True)
class GoogleProfile:
    email: str
    name: str | None = None
    picture: str | None = None


def is_google_oauth_allowed(host: str | None) -> bool:
    """OAuth needs credentials and a host whose redirect URI Google knows about.

    Preview deployments (matched by ``GOOGLE_OAUTH_BLOCKED_HOSTS``) are refused.
    """
    if not settings.google_oauth_configured:
        return False
    host = (host or "").lower()
    return not any(marker in host for marker in settings.google_oauth_blocked_hosts)


def authorization_url(state: str) -> str:
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": GOOGLE_SCOPES,
        "state": state,
        "access_type": "online",
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def fetch_profile(code: str) -> GoogleProfile:
    """Exchange an authorization code and read the signed-in user's profile."""
    async with httpx.AsyncClient(timeout=httpx.Timeout(OAUTH_TIMEOUT_SECONDS)) as client:
        token_response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "redirect_uri": settings.google_redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        token_response.raise_for_status()
        access_token = token_response.json().get("access_token")
        if not access_token:
            raise GoogleOAuthError("Google did not return an access token")

        info_response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        info_response.raise_for_status()
        data = info_response.json()

    email = data.get("email")
    if not email:
        raise GoogleOAuthError("No email from Google")
    return GoogleProfile(
        email=email.strip().lower(),
        name=data.get("name"),
        picture=data.get("picture"),
    )


def _available_nickname(storage: Storage, wanted: str) -> str:
    base = _NICKNAME_DISALLOWED.sub("", wanted)[: _NICKNAME_MAX - 5]
    if len(base) < 2:
        base = FALLBACK_NICKNAME
    candidate = base
    while storage.get_user_by_nickname(candidate) is not None:
        candidate = f"{base}_{secrets.token_hex(2)}"
    return candidate


def upsert_google_user(storage: Storage, profile: GoogleProfile) -> User:
    """Return the local account for a Google profile, creating it on first sign-in.

    New accounts get a random password that is never used for login; existing
    accounts only have a missing profile image filled in.
    """
    user = storage.get_user_by_email(profile.email)
    if user is None:
        nickname = _available_nickname(storage, profile.name or profile.email.split("@")[0])
        user = storage.create_user(
            email=profile.email,
            password_hash=hash_password(generate_random_password()),
            nickname=nickname,
            profile_image=profile.picture,
        )
        logger.info("Created user %s from Google sign-in", user.id)
        return user

    if profile.picture and not user.profile_image:
        updated = storage.update_user(user.id, {"profile_image": profile.picture})
        if updated is not None:
            user = updated
    return user
