"""Book lookup: the local cache first, then the Aladin catalog API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sentence_stash.core.settings import settings
from sentence_stash.schemas.book import BookCreate, BookSearchItem
from sentence_stash.storage.base import Storage

logger = logging.getLogger(__name__)

CATALOG_MAX_RESULTS = 20


def _catalog_params(query: str) -> dict[str, Any]:
    return {
        "ttbkey": settings.aladin_ttb_key,
        "Query": query,
        "QueryType": "Title",
        "MaxResults": CATALOG_MAX_RESULTS,
        "start": 1,
        "SearchTarget": "Book",
        "output": "js",
        "Version": "20131101",
    }


def _to_book(item: dict[str, Any]) -> BookCreate | None:
    title = (item.get("title") or "").strip()
    if not title:
        return None
    isbn = item.get("isbn13") or item.get("isbn") or None
    return BookCreate(
        isbn=isbn[:20] if isbn else None,
        title=title[:255],
        author=(item.get("author") or None),
        publisher=(item.get("publisher") or None),
        cover=item.get("cover") or None,
    )


async def search_catalog(query: str) -> list[BookCreate]:
    """Query Aladin; an unconfigured key or a failed call yields no results."""
    if not settings.aladin_ttb_key:
        return []
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.book_api_timeout_seconds)
        ) as client:
            response = await client.get(settings.aladin_search_url, params=_catalog_params(query))
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Book catalog search for %r failed: %s", query, exc)
        return []

    books = []
    for item in data.get("item") or []:
        book = _to_book(item)
        if book is not None:
            books.append(book)
    return books


async def search_books(storage: Storage, query: str) -> list[BookSearchItem]:
    """Cached matches when there are any, otherwise catalog results (cached as a side effect)."""
    cached = storage.search_cached_books(query)
    if cached:
        return [
            BookSearchItem(
                title=book.title,
                author=book.author,
                publisher=book.publisher,
                isbn=book.isbn,
                cover=book.cover,
                cached=True,
            )
            for book in cached
        ]

    results = []
    for book in await search_catalog(query):
        storage.get_or_create_book(book)
        results.append(BookSearchItem(**book.model_dump(), cached=False))
    return results
