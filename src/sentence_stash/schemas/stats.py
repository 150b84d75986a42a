"""Aggregate statistics schemas."""

from datetime import datetime

from .common import CamelModel
from .sentence import SentenceWithUser


class UserStats(CamelModel):
    """Totals for the authenticated user's own collection."""

    total_sentences: int
    total_likes: int
    average_likes: float
    recent_sentences: list[SentenceWithUser]


class OverallStats(CamelModel):
    """Site-wide totals."""

    total_sentences: int
    total_users: int
    total_likes: int
    popular_sentences: list[SentenceWithUser]


class Contributor(CamelModel):
    """A user ranked by their public contributions."""

    user_id: int
    nickname: str
    profile_image: str | None = None
    sentence_count: int
    total_likes: int


class PublicFeedStats(CamelModel):
    """Summary shown above the community sentence feed."""

    top_sentences: list[SentenceWithUser]
    top_contributors: list[Contributor]
    total_sentences: int
    total_users: int


class RecentActivity(CamelModel):
    """Entry in the recent activity stream."""

    type: str = "sentence_added"
    content: str
    book_title: str | None = None
    user_nickname: str
    created_at: datetime


class DateRange(CamelModel):
    earliest: datetime | None = None
    latest: datetime | None = None


class ExportBookEntry(CamelModel):
    title: str
    count: int
    author: str | None = None


class ExportStats(CamelModel):
    """Preview shown before exporting a collection."""

    total_sentences: int
    total_books: int
    total_likes: int
    average_length: int
    date_range: DateRange
    book_list: list[ExportBookEntry]
