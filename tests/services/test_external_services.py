# mypy: ignore-errors
# tests/services/test_external_services.py
"""Tests for the book catalog, e-mail and Google sign-in helpers."""

from unittest.mock import patch

import httpx
import pytest

from sentence_stash.core.settings import settings
from sentence_stash.services import books as books_service
from sentence_stash.services import email as email_service
from sentence_stash.services.google_oauth import (
    GoogleProfile,
    is_google_oauth_allowed,
    upsert_google_user,
)
from sentence_stash.schemas.book import BookCreate

from tests.conftest import make_user

_RealAsyncClient = httpx.AsyncClient


def _mock_client(handler):
    """AsyncClient factory that routes every request through ``handler``."""

    def factory(*args, **kwargs):
        return _RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)

    return factory


class TestBookSearch:
    """Cache-first book lookup."""

    @pytest.mark.asyncio
    async def test_catalog_skipped_without_key(self):
        """No TTB key means no outbound call and no results."""
        with patch.object(settings, "aladin_ttb_key", None):
            assert await books_service.search_catalog("prince") == []

    @pytest.mark.asyncio
    async def test_catalog_results_are_cached(self, storage):
        """Catalog hits are stored so the next search is served from the cache."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["Query"] == "prince"
            return httpx.Response(
                200,
                json={
                    "item": [
                        {
                            "title": "The Little Prince",
                            "author": "Antoine de Saint-Exupery",
                            "publisher": "Reynal",
                            "isbn13": "9780156012195",
                            "cover": "http://img.example/cover.jpg",
                        },
                        {"title": ""},
                    ]
                },
            )

        with patch.object(settings, "aladin_ttb_key", "ttb-key"), patch(
            "sentence_stash.services.books.httpx.AsyncClient", _mock_client(handler)
        ):
            first = await books_service.search_books(storage, "prince")

        assert len(first) == 1
        assert first[0].title == "The Little Prince"
        assert first[0].cached is False

        with patch.object(settings, "aladin_ttb_key", None):
            second = await books_service.search_books(storage, "little")
        assert [item.title for item in second] == ["The Little Prince"]
        assert second[0].cached is True

    @pytest.mark.asyncio
    async def test_catalog_failure_returns_empty(self):
        """Upstream errors are logged and swallowed into an empty list."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        with patch.object(settings, "aladin_ttb_key", "ttb-key"), patch(
            "sentence_stash.services.books.httpx.AsyncClient", _mock_client(handler)
        ):
            assert await books_service.search_catalog("anything") == []

    def test_get_or_create_book_bumps_search_count(self, storage):
        """Seeing the same ISBN twice increments its search count."""
        data = BookCreate(isbn="9781234567897", title="Dune", author="Herbert")
        first = storage.get_or_create_book(data)
        second = storage.get_or_create_book(data)
        assert first.id == second.id
        assert second.search_count == 2


class TestPasswordResetEmail:
    """SendGrid delivery and the log-only fallback."""

    @pytest.mark.asyncio
    async def test_without_api_key_logs_link(self, caplog):
        """The reset link is logged instead of sent."""
        with patch.object(settings, "sendgrid_api_key", None):
            with caplog.at_level("INFO", logger="sentence_stash.services.email"):
                sent = await email_service.send_password_reset_email("a@example.com", "tok123")
        assert sent is True
        assert "reset-password?token=tok123" in caplog.text

    @pytest.mark.asyncio
    async def test_sendgrid_request(self):
        """The provider receives the recipient and a bearer key."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["url"] = str(request.url)
            return httpx.Response(202)

        with patch.object(settings, "sendgrid_api_key", "sg-key"), patch(
            "sentence_stash.services.email.httpx.AsyncClient", _mock_client(handler)
        ):
            sent = await email_service.send_password_reset_email("a@example.com", "tok", "Ann")
        assert sent is True
        assert seen["auth"] == "Bearer sg-key"
        assert seen["url"] == email_service.SENDGRID_SEND_URL

    @pytest.mark.asyncio
    async def test_sendgrid_failure_returns_false(self):
        """A rejected request is reported, not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        with patch.object(settings, "sendgrid_api_key", "sg-key"), patch(
            "sentence_stash.services.email.httpx.AsyncClient", _mock_client(handler)
        ):
            assert await email_service.send_password_reset_email("a@example.com", "tok") is False


class TestGoogleSignIn:
    """Host gating and local account creation for Google profiles."""

    def test_oauth_requires_credentials_and_allowed_host(self):
        """Preview hosts and missing credentials disable Google sign-in."""
        with patch.object(settings, "google_client_id", None):
            assert is_google_oauth_allowed("sentencestash.app") is False
        with patch.object(settings, "google_client_id", "id"), patch.object(
            settings, "google_client_secret", "secret"
        ):
            assert is_google_oauth_allowed("sentencestash.app") is True
            assert is_google_oauth_allowed("stash-git-feature.vercel.app") is False

    def test_upsert_creates_then_reuses_account(self, storage):
        """First sign-in creates the user; the second returns the same row."""
        profile = GoogleProfile(email="gina@example.com", name="Gina Reads", picture="http://p/1.png")
        created = upsert_google_user(storage, profile)
        assert created.nickname == "GinaReads"
        assert created.profile_image == "http://p/1.png"

        again = upsert_google_user(storage, profile)
        assert again.id == created.id

    def test_upsert_avoids_nickname_collision(self, storage):
        """A taken nickname gets a random suffix."""
        make_user(storage, "GinaReads", email="someone@example.com")
        user = upsert_google_user(storage, GoogleProfile(email="gina@example.com", name="Gina Reads"))
        assert user.nickname.startswith("GinaReads_")
