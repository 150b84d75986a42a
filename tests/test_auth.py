# mypy: ignore-errors
# tests/test_auth.py
"""Tests for registration, login, sessions and password recovery."""

from fastapi import status

from sentence_stash.api.endpoints.auth import mask_email
from sentence_stash.core.settings import settings

from tests.conftest import TEST_PASSWORD


def _register(client, email="new@example.com", nickname="newreader", password="Password123"):
    return client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "nickname": nickname},
    )


def test_register_returns_token_and_session(client) -> None:
    """Registration signs the user in."""
    response = _register(client)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["nickname"] == "newreader"
    assert "password" not in data["user"]
    assert data["token"]
    assert response.cookies.get(settings.session_cookie_name)


def test_register_normalises_email(client) -> None:
    """E-mail addresses are stored lower-cased and trimmed."""
    response = _register(client, email="  Mixed@Example.COM ")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["user"]["email"] == "mixed@example.com"


def test_register_duplicate_email(client, test_user) -> None:
    """An e-mail can only be registered once."""
    response = _register(client, email=test_user.email)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "This email is already used"}


def test_register_duplicate_nickname(client, test_user) -> None:
    """Nicknames are unique."""
    response = _register(client, nickname=test_user.nickname)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "This nickname is already used"}


def test_register_weak_password(client) -> None:
    """Passwords need mixed case and a digit."""
    response = _register(client, password="alllowercase")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"].startswith("Password must contain")


def test_register_rejects_malformed_email(client) -> None:
    """Domains with labels starting with a hyphen are not valid addresses."""
    response = _register(client, email="reader@-bad-.com")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "email" in response.json()["error"]


def test_login_success_and_me(client, test_user) -> None:
    """Bearer tokens from login identify the user on /me."""
    response = client.post(
        "/api/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD}
    )
    assert response.status_code == status.HTTP_200_OK
    token = response.json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["user"]["id"] == test_user.id


def test_session_cookie_authenticates(client, test_user) -> None:
    """The session cookie alone is enough to reach protected routes."""
    response = client.post(
        "/api/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD}
    )
    session = response.cookies.get(settings.session_cookie_name)
    client.cookies.clear()

    me = client.get(
        "/api/auth/me", headers={"Cookie": f"{settings.session_cookie_name}={session}"}
    )
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["user"]["nickname"] == test_user.nickname


def test_login_wrong_password(client, test_user) -> None:
    """Bad credentials are a 400 with a generic message."""
    response = client.post(
        "/api/auth/login", json={"email": test_user.email, "password": "Wrong12345"}
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Incorrect email or password"}


def test_me_requires_authentication(client) -> None:
    """Anonymous callers get a 401."""
    client.cookies.clear()
    response = client.get("/api/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]


def test_logout_clears_cookie(client, test_user) -> None:
    """Logout expires the session cookie."""
    response = client.post("/api/auth/logout")
    assert response.status_code == status.HTTP_200_OK
    assert settings.session_cookie_name in response.headers.get("set-cookie", "")


def test_update_profile(client, test_user, other_user, auth_headers) -> None:
    """Profile updates reject a nickname that someone else holds."""
    response = client.put(
        "/api/auth/profile", json={"bio": "Reads at night"}, headers=auth_headers
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["user"]["bio"] == "Reads at night"

    clash = client.put(
        "/api/auth/profile", json={"nickname": other_user.nickname}, headers=auth_headers
    )
    assert clash.status_code == status.HTTP_400_BAD_REQUEST


def test_password_reset_flow(client, test_user) -> None:
    """Request a token, use it once, then log in with the new password."""
    requested = client.post(
        "/api/auth/password-reset/request", json={"email": test_user.email}
    )
    assert requested.status_code == status.HTTP_200_OK
    token = requested.json()["token"]
    assert token

    reset = client.post(
        "/api/auth/password-reset", json={"token": token, "newPassword": "NewPassword9"}
    )
    assert reset.status_code == status.HTTP_200_OK

    reused = client.post(
        "/api/auth/password-reset", json={"token": token, "newPassword": "NewPassword9"}
    )
    assert reused.status_code == status.HTTP_400_BAD_REQUEST
    assert reused.json() == {"error": "Invalid or expired token"}

    login = client.post(
        "/api/auth/login", json={"email": test_user.email, "password": "NewPassword9"}
    )
    assert login.status_code == status.HTTP_200_OK


def test_password_reset_request_unknown_email(client) -> None:
    """Unknown addresses get the same acknowledgement and no token."""
    response = client.post(
        "/api/auth/password-reset/request", json={"email": "nobody@example.com"}
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["token"] is None


def test_find_email(client, test_user) -> None:
    """The registered address comes back masked."""
    response = client.post("/api/auth/find-email", json={"nickname": test_user.nickname})
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"email": "re****@example.com"}

    missing = client.post("/api/auth/find-email", json={"nickname": "ghost"})
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_mask_email() -> None:
    """Two characters stay visible and at most five are starred."""
    assert mask_email("ab@example.com") == "ab@example.com"
    assert mask_email("abc@example.com") == "ab*@example.com"
    assert mask_email("averylongname@example.com") == "av*****@example.com"


def test_google_status_without_credentials(client) -> None:
    """Google sign-in is off when no client credentials are configured."""
    response = client.get("/api/auth/google/status")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["isGoogleOauthEnabled"] is False


def test_google_callback_rejects_bad_state(client) -> None:
    """A callback without the matching state cookie redirects with an error."""
    response = client.get(
        "/api/auth/google/callback?code=abc&state=forged", follow_redirects=False
    )
    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "/?error=google_auth_failed"
