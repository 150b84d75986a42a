# mypy: ignore-errors
# tests/test_export_api.py
"""Tests for the collection download endpoints."""

import json

from fastapi import status

from tests.conftest import make_sentence


def test_export_requires_login(client) -> None:
    """Downloads are for signed-in users only."""
    assert client.get("/api/export").status_code == status.HTTP_401_UNAUTHORIZED


def test_export_default_is_text(client, storage, test_user, auth_headers) -> None:
    """Without parameters the whole collection is served as plain text."""
    make_sentence(storage, test_user, "Words to remember", book_title="Dune")
    response = client.get("/api/export", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"] == "text/plain; charset=utf-8"
    assert response.headers["content-disposition"] == 'attachment; filename="sentences.txt"'
    assert response.headers["cache-control"] == "no-cache"
    assert "Words to remember" in response.text


def test_export_csv(client, storage, test_user, auth_headers) -> None:
    """CSV downloads start with a byte order mark and quote text columns."""
    make_sentence(storage, test_user, 'He said "wait"', book_title="Dune", page_number=3)
    response = client.get("/api/export?format=csv", headers=auth_headers)
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"].endswith('filename="sentences.csv"')
    body = response.content.decode("utf-8")
    assert body.startswith("\ufeff")
    assert '"He said ""wait"""' in body


def test_export_json_for_one_book(client, storage, test_user, auth_headers) -> None:
    """``type=book`` narrows the export and names the file after the book."""
    make_sentence(storage, test_user, "from dune", book_title="Dune")
    make_sentence(storage, test_user, "from emma", book_title="Emma")
    response = client.get(
        "/api/export?format=json&type=book&bookTitle=Dune", headers=auth_headers
    )
    assert response.headers["content-disposition"] == 'attachment; filename="Dune_sentences.json"'
    data = json.loads(response.content)
    assert data["metadata"]["totalSentences"] == 1
    assert data["sentences"][0]["content"] == "from dune"


def test_export_markdown_by_date(client, storage, test_user, auth_headers) -> None:
    """``type=date`` names the file after the range."""
    make_sentence(storage, test_user, "today's line")
    response = client.get(
        "/api/export?format=markdown&type=date&startDate=2000-01-01&endDate=2000-12-31",
        headers=auth_headers,
    )
    assert response.headers["content-disposition"] == (
        'attachment; filename="sentences_2000-01-01_to_2000-12-31.md"'
    )
    assert "today's line" not in response.text
    assert "> 📚 0 sentences" in response.text


def test_export_only_own_sentences(client, storage, test_user, other_user, auth_headers) -> None:
    """Other users' public sentences are not part of the caller's export."""
    make_sentence(storage, other_user, "someone else's")
    response = client.get("/api/export?format=json", headers=auth_headers)
    assert json.loads(response.content)["sentences"] == []


def test_export_invalid_format(client, auth_headers) -> None:
    """Unknown formats are rejected."""
    response = client.get("/api/export?format=pdf", headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_export_stats(client, storage, test_user, auth_headers) -> None:
    """The preview summarises the collection."""
    make_sentence(storage, test_user, "abcd", book_title="Dune")
    make_sentence(storage, test_user, "ab", book_title="Dune", is_public=0)
    response = client.get("/api/export/stats", headers=auth_headers)
    data = response.json()
    assert data["totalSentences"] == 2
    assert data["totalBooks"] == 1
    assert data["averageLength"] == 3
    assert data["bookList"] == [{"title": "Dune", "count": 2, "author": None}]
