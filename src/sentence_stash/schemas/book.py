"""Book catalog schemas."""

from datetime import datetime

from pydantic import Field

from .common import CamelModel


class BookCreate(CamelModel):
    """Book metadata as returned by a catalog search."""

    isbn: str | None = Field(None, max_length=20)
    title: str = Field(..., min_length=1, max_length=255)
    author: str | None = Field(None, max_length=255)
    publisher: str | None = Field(None, max_length=255)
    cover: str | None = None


class BookOut(CamelModel):
    """Cached book row."""

    id: int
    isbn: str | None = None
    title: str
    author: str | None = None
    publisher: str | None = None
    cover: str | None = None
    search_count: int = 1
    sentence_count: int = 0


class BookSearchItem(CamelModel):
    """Autocomplete result."""

    title: str
    author: str | None = None
    publisher: str | None = None
    isbn: str | None = None
    cover: str | None = None
    cached: bool


class BookSearchResponse(CamelModel):
    items: list[BookSearchItem]


class BookWithStats(CamelModel):
    """A book title aggregated over public sentences."""

    title: str
    author: str | None = None
    publisher: str | None = None
    isbn: str | None = None
    cover: str | None = None
    total_sentences: int
    total_likes: int
    last_added_at: datetime | None = None


class AuthorStats(CamelModel):
    """An author aggregated over public sentences."""

    author: str
    sentence_count: int
    total_likes: int
    books: list[str]


class BookStatsResponse(CamelModel):
    popular_books: list[BookWithStats]
    recent_books: list[BookWithStats]
    top_authors: list[AuthorStats]
