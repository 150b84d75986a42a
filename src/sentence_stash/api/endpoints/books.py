# src/sentence_stash/api/endpoints/books.py
"""Book search and per-book/per-author statistics."""

from __future__ import annotations

from fastapi import APIRouter, Query

from sentence_stash.api.dependencies import OptionalUserDep, StorageDep
from sentence_stash.schemas.book import (
    AuthorStats,
    BookSearchResponse,
    BookStatsResponse,
    BookWithStats,
)
from sentence_stash.schemas.sentence import SentenceWithUser
from sentence_stash.services.books import search_books

from .sentences import for_viewer

router = APIRouter(prefix="/books", tags=["books"])

DEFAULT_BOOK_LIMIT = 10
MAX_BOOK_LIMIT = 50
STATS_BOOK_LIMIT = 5
STATS_AUTHOR_LIMIT = 10


@router.get("/search", response_model=BookSearchResponse)
async def search(
    storage: StorageDep,
    query: str = Query(..., min_length=1, max_length=100),
) -> BookSearchResponse:
    """Autocomplete from the local cache, falling back to the catalog API."""
    return BookSearchResponse(items=await search_books(storage, query.strip()))


@router.get("/popular", response_model=list[BookWithStats])
async def popular_books(
    storage: StorageDep,
    limit: int = Query(DEFAULT_BOOK_LIMIT, ge=1, le=MAX_BOOK_LIMIT),
) -> list[BookWithStats]:
    return storage.popular_books(limit)


@router.get("/recent", response_model=list[BookWithStats])
async def recent_books(
    storage: StorageDep,
    limit: int = Query(DEFAULT_BOOK_LIMIT, ge=1, le=MAX_BOOK_LIMIT),
) -> list[BookWithStats]:
    return storage.recent_books(limit)


@router.get("/authors", response_model=list[AuthorStats])
async def authors(storage: StorageDep) -> list[AuthorStats]:
    return storage.author_stats()


@router.get("/stats", response_model=BookStatsResponse)
async def book_stats(storage: StorageDep) -> BookStatsResponse:
    """Dashboard summary of quoted books and authors."""
    return BookStatsResponse(
        popular_books=storage.popular_books(STATS_BOOK_LIMIT),
        recent_books=storage.recent_books(STATS_BOOK_LIMIT),
        top_authors=storage.author_stats()[:STATS_AUTHOR_LIMIT],
    )


@router.get("/{title}/sentences", response_model=list[SentenceWithUser])
async def book_sentences(
    title: str,
    storage: StorageDep,
    viewer: OptionalUserDep,
) -> list[SentenceWithUser]:
    viewer_id = viewer.id if viewer is not None else None
    return for_viewer(storage.list_book_sentences(title, viewer_id), viewer_id)
