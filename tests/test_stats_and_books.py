# mypy: ignore-errors
# tests/test_stats_and_books.py
"""Tests for per-user views, site statistics and book aggregates."""

from fastapi import status

from sentence_stash.schemas.book import BookCreate

from tests.conftest import make_sentence


def test_user_sentences_include_private(client, storage, test_user, auth_headers) -> None:
    """The caller's own collection includes private sentences and notes."""
    make_sentence(storage, test_user, "public one")
    make_sentence(storage, test_user, "private one", is_public=0, private_note="why")

    response = client.get("/api/user/sentences", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    contents = {s["content"] for s in response.json()}
    assert contents == {"public one", "private one"}

    searched = client.get("/api/user/sentences?search=private", headers=auth_headers).json()
    assert [s["privateNote"] for s in searched] == ["why"]


def test_user_stats(client, storage, test_user, other_user, auth_headers) -> None:
    """Totals and average likes for the caller."""
    first = make_sentence(storage, test_user, "a")
    make_sentence(storage, test_user, "b")
    storage.toggle_like(first.id, other_user.id)

    data = client.get("/api/user/stats", headers=auth_headers).json()
    assert data["totalSentences"] == 2
    assert data["totalLikes"] == 1
    assert data["averageLikes"] == 0.5
    assert len(data["recentSentences"]) == 2


def test_overall_stats_and_feeds(client, storage, test_user) -> None:
    """Site-wide totals, recent activity and contributors."""
    make_sentence(storage, test_user, "visible", book_title="Dune")
    make_sentence(storage, test_user, "hidden", is_public=0)

    stats = client.get("/api/stats").json()
    assert stats["totalSentences"] == 2
    assert stats["totalUsers"] == 1

    activity = client.get("/api/recent-activity").json()
    assert [entry["content"] for entry in activity] == ["visible"]
    assert activity[0]["userNickname"] == test_user.nickname
    assert activity[0]["type"] == "sentence_added"

    contributors = client.get("/api/contributors?limit=5").json()
    assert contributors[0]["sentenceCount"] == 1


def test_popular_and_recent_books(client, storage, test_user) -> None:
    """Books are ranked by public sentence count."""
    make_sentence(storage, test_user, "one", book_title="Dune", author="Herbert")
    make_sentence(storage, test_user, "two", book_title="Dune", author="Herbert")
    make_sentence(storage, test_user, "three", book_title="Emma", author="Austen")

    popular = client.get("/api/books/popular").json()
    assert [b["title"] for b in popular] == ["Dune", "Emma"]
    assert popular[0]["totalSentences"] == 2

    recent = client.get("/api/books/recent?limit=1").json()
    assert [b["title"] for b in recent] == ["Emma"]

    authors = client.get("/api/books/authors").json()
    assert authors[0] == {
        "author": "Herbert",
        "sentenceCount": 2,
        "totalLikes": 0,
        "books": ["Dune"],
    }

    summary = client.get("/api/books/stats").json()
    assert set(summary) == {"popularBooks", "recentBooks", "topAuthors"}


def test_book_sentences(client, storage, test_user, auth_headers) -> None:
    """Per-book listing respects visibility."""
    make_sentence(storage, test_user, "open", book_title="Dune")
    make_sentence(storage, test_user, "closed", book_title="Dune", is_public=0)

    anonymous = client.get("/api/books/Dune/sentences").json()
    assert [s["content"] for s in anonymous] == ["open"]
    owner = client.get("/api/books/Dune/sentences", headers=auth_headers).json()
    assert len(owner) == 2


def test_book_search_uses_cache(client, storage) -> None:
    """Cached books are returned without calling the catalog."""
    storage.get_or_create_book(BookCreate(title="Norwegian Wood", author="Murakami"))
    response = client.get("/api/books/search?query=norwegian")
    assert response.status_code == status.HTTP_200_OK
    items = response.json()["items"]
    assert items[0]["title"] == "Norwegian Wood"
    assert items[0]["cached"] is True


def test_book_search_requires_query(client) -> None:
    """The query parameter is mandatory."""
    assert client.get("/api/books/search").status_code == status.HTTP_400_BAD_REQUEST
