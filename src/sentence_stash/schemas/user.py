"""User and authentication Pydantic schemas."""

import re
from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from .common import CamelModel

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
NICKNAME_PATTERN = re.compile(r"^[a-zA-Z0-9가-힣_]+$")


def _normalize_email(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain an uppercase letter, a lowercase letter and a number"
        )
    return value


def _check_nickname(value: str) -> str:
    if not NICKNAME_PATTERN.match(value):
        raise ValueError("Nickname may only contain letters, numbers, Hangul and underscores")
    return value


class RegisterRequest(CamelModel):
    """Schema for password-based sign-up."""

    email: EmailStr = Field(..., description="Login e-mail address")
    password: str = Field(..., min_length=8, max_length=128, description="Plain password")
    nickname: str = Field(..., min_length=2, max_length=50, description="Unique display name")
    bio: str | None = Field(None, max_length=200, description="Optional short bio")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: object) -> object:
        """Lower-case the address before EmailStr checks it."""
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require mixed case and a digit."""
        return _check_password_strength(v)

    @field_validator("nickname")
    @classmethod
    def validate_nickname(cls, v: str) -> str:
        """Restrict nicknames to a safe character set."""
        return _check_nickname(v)


class LoginRequest(CamelModel):
    """Schema for password login."""

    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: object) -> object:
        """Normalise the address the same way registration does."""
        return _normalize_email(v)


class ProfileUpdateRequest(CamelModel):
    """Partial profile update; profile images are plain URLs."""

    nickname: str | None = Field(None, min_length=2, max_length=50)
    bio: str | None = Field(None, max_length=200)
    profile_image: str | None = Field(None, max_length=2048)

    @field_validator("nickname")
    @classmethod
    def validate_nickname(cls, v: str | None) -> str | None:
        """Apply the registration nickname rule to changed nicknames."""
        if v is None:
            return v
        return _check_nickname(v)


class PasswordResetRequest(CamelModel):
    """Request a reset link for an e-mail address."""

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: object) -> object:
        """Normalise the address before lookup."""
        return _normalize_email(v)


class PasswordResetConfirm(CamelModel):
    """Complete a reset with the mailed token."""

    token: str = Field(..., min_length=1, max_length=255)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        """Hold new passwords to the registration rule."""
        return _check_password_strength(v)


class FindEmailRequest(CamelModel):
    """Look up the (masked) e-mail registered for a nickname."""

    nickname: str = Field(..., min_length=1, max_length=50)


class FindEmailResponse(CamelModel):
    """Masked e-mail for a nickname."""

    email: str


class UserOut(CamelModel):
    """Public-facing account representation (never includes the hash)."""

    id: int
    email: str
    nickname: str
    profile_image: str | None = None
    bio: str | None = None
    created_at: datetime | None = None


class AuthResponse(CamelModel):
    """Returned by register and login."""

    user: UserOut
    token: str
    message: str | None = None


class MeResponse(CamelModel):
    """Wrapper used by /auth/me and profile updates."""

    user: UserOut


class PasswordResetRequested(CamelModel):
    """Generic acknowledgement; ``token`` is only populated outside production."""

    message: str
    token: str | None = None


class GoogleAuthStatus(CamelModel):
    """Whether Google sign-in can be offered on the requesting host."""

    user: UserOut | None = None
    is_google_oauth_enabled: bool
    current_host: str
    message: str | None = None


class AdminAuthRequest(CamelModel):
    """Admin password exchange."""

    password: str = Field(..., min_length=1)


class AdminTokenResponse(CamelModel):
    """Short-lived admin bearer token."""

    token: str
    expires_in: int = Field(..., description="Lifetime in seconds")


class AdminUserRow(CamelModel):
    """Row of the admin user listing."""

    id: int
    email: str
    nickname: str
    created_at: datetime | None = None
    sentence_count: int = 0
