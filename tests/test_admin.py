# mypy: ignore-errors
# tests/test_admin.py
"""Tests for the admin token exchange and moderation endpoints."""

from fastapi import status

from sentence_stash.core.security import create_access_token

from tests.conftest import make_sentence


def _admin_headers(client) -> dict[str, str]:
    response = client.post("/api/admin/auth", json={"password": "admin-pass"})
    assert response.status_code == status.HTTP_200_OK
    return {"Authorization": f"Bearer {response.json()['token']}"}


def test_admin_auth_rejects_wrong_password(client) -> None:
    """A wrong password is a 403."""
    response = client.post("/api/admin/auth", json={"password": "guess"})
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_admin_token_lifetime(client) -> None:
    """The token response reports its lifetime in seconds."""
    response = client.post("/api/admin/auth", json={"password": "admin-pass"})
    assert response.json()["expiresIn"] == 3600


def test_admin_routes_require_admin_token(client, test_user) -> None:
    """User tokens do not open the admin endpoints."""
    user_token = create_access_token(test_user.id, test_user.email, test_user.nickname)
    response = client.get("/api/admin/users", headers={"Authorization": f"Bearer {user_token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert client.get("/api/admin/users").status_code == status.HTTP_401_UNAUTHORIZED


def test_admin_lists_users(client, storage, test_user) -> None:
    """The listing includes sentence counts."""
    make_sentence(storage, test_user)
    response = client.get("/api/admin/users", headers=_admin_headers(client))
    assert response.status_code == status.HTTP_200_OK
    rows = response.json()
    assert rows[0]["nickname"] == test_user.nickname
    assert rows[0]["sentenceCount"] == 1


def test_admin_deletes_user_and_sentence(client, storage, test_user, other_user) -> None:
    """Admins remove users and sentences; missing ids are a 404."""
    headers = _admin_headers(client)
    sentence = make_sentence(storage, other_user)

    removed = client.delete(f"/api/admin/sentences/{sentence.id}", headers=headers)
    assert removed.status_code == status.HTTP_200_OK
    again = client.delete(f"/api/admin/sentences/{sentence.id}", headers=headers)
    assert again.status_code == status.HTTP_404_NOT_FOUND

    gone = client.delete(f"/api/admin/users/{other_user.id}", headers=headers)
    assert gone.status_code == status.HTTP_200_OK
    assert storage.get_user(other_user.id) is None
    assert client.delete(f"/api/admin/users/{other_user.id}", headers=headers).status_code == 404
