"""Storage capability interface.

Route handlers depend on :class:`Storage` only. The concrete backend is
picked once from ``settings.storage_backend``:

- ``database``: :class:`~sentence_stash.storage.database.DatabaseStorage`,
  SQLAlchemy over PostgreSQL or SQLite.
- ``memory``: :class:`~sentence_stash.storage.memory.MemoryStorage`, a
  single-process, non-durable store for local development and demos.

Lookups return ``None`` (or ``False``) for missing entities; callers decide
which error to raise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sentence_stash.models import Book, Community, CommunityMember, PasswordResetToken, User
from sentence_stash.schemas.book import AuthorStats, BookCreate, BookWithStats
from sentence_stash.schemas.community import (
    CommunityCreate,
    CommunityQuery,
    CommunityWithStats,
)
from sentence_stash.schemas.sentence import (
    LikeResponse,
    SentenceCreate,
    SentenceQuery,
    SentenceSort,
    SentenceWithUser,
)
from sentence_stash.schemas.stats import (
    Contributor,
    OverallStats,
    PublicFeedStats,
    RecentActivity,
    UserStats,
)
from sentence_stash.schemas.user import AdminUserRow

USER_MUTABLE_FIELDS = frozenset({"nickname", "bio", "profile_image"})
SENTENCE_MUTABLE_FIELDS = frozenset(
    {
        "content",
        "book_title",
        "author",
        "publisher",
        "page_number",
        "is_public",
        "private_note",
        "is_bookmarked",
    }
)
COMMUNITY_MUTABLE_FIELDS = frozenset(
    {"name", "description", "category", "related_book", "cover_image", "is_public"}
)

TOP_SENTENCE_COUNT = 3
TOP_CONTRIBUTOR_COUNT = 3
RECENT_SENTENCE_COUNT = 5
POPULAR_SENTENCE_COUNT = 5
BOOK_SEARCH_LIMIT = 10


def pick_fields(changes: Mapping[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    """Keep only the keys a caller is allowed to change."""
    return {key: value for key, value in changes.items() if key in allowed}


class Storage(ABC):
    """Every persistence operation the API needs."""

    # Users ---------------------------------------------------------------

    @abstractmethod
    def get_user(self, user_id: int) -> User | None:
        """Return a user by primary key."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> User | None:
        """Return a user by (normalised) e-mail."""

    @abstractmethod
    def get_user_by_nickname(self, nickname: str) -> User | None:
        """Return a user by nickname."""

    @abstractmethod
    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        nickname: str,
        bio: str | None = None,
        profile_image: str | None = None,
    ) -> User:
        """Insert a user; raises ``BusinessRuleViolation`` on a uniqueness clash."""

    @abstractmethod
    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> User | None:
        """Apply profile changes (nickname, bio, profile image)."""

    @abstractmethod
    def update_password(self, user_id: int, password_hash: str) -> bool:
        """Replace a user's password hash."""

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        """Remove a user along with their sentences, likes and memberships."""

    @abstractmethod
    def list_users(self) -> list[AdminUserRow]:
        """All users with their sentence counts, newest first."""

    # Sentences -----------------------------------------------------------

    @abstractmethod
    def get_sentence(
        self, sentence_id: int, viewer_id: int | None = None
    ) -> SentenceWithUser | None:
        """Return a sentence view; visibility is checked by the caller."""

    @abstractmethod
    def list_visible_sentences(
        self,
        query: SentenceQuery,
        viewer_id: int | None,
        *,
        liked_only: bool = False,
    ) -> list[SentenceWithUser]:
        """Public sentences plus the viewer's own, filtered and sorted."""

    @abstractmethod
    def list_public_sentences(
        self, query: SentenceQuery, viewer_id: int | None = None
    ) -> list[SentenceWithUser]:
        """The community feed: ``is_public == 1`` only."""

    @abstractmethod
    def list_user_sentences(
        self,
        user_id: int,
        *,
        search: str | None = None,
        sort: SentenceSort = "latest",
    ) -> list[SentenceWithUser]:
        """A user's own collection."""

    @abstractmethod
    def search_sentences(self, q: str, viewer_id: int | None) -> list[SentenceWithUser]:
        """Match content, book, author, nickname or legacy nickname."""

    @abstractmethod
    def list_book_sentences(
        self, book_title: str, viewer_id: int | None
    ) -> list[SentenceWithUser]:
        """Visible sentences quoted from one book title."""

    @abstractmethod
    def create_sentence(self, user_id: int, data: SentenceCreate) -> SentenceWithUser:
        """Insert a sentence owned by ``user_id``."""

    @abstractmethod
    def update_sentence(
        self, sentence_id: int, changes: Mapping[str, Any]
    ) -> SentenceWithUser | None:
        """Apply changes to a sentence; ownership is checked by the caller."""

    @abstractmethod
    def delete_sentence(self, sentence_id: int) -> bool:
        """Delete a sentence, its likes and community links, fixing counters."""

    # Likes ---------------------------------------------------------------

    @abstractmethod
    def liked_sentence_ids(self, user_id: int) -> set[int]:
        """Ids of every sentence the user likes."""

    @abstractmethod
    def toggle_like(self, sentence_id: int, user_id: int) -> LikeResponse | None:
        """Flip the like state; ``None`` when the sentence does not exist."""

    @abstractmethod
    def remove_like(self, sentence_id: int, user_id: int) -> LikeResponse | None:
        """Unlike; a no-op when not liked. ``None`` when the sentence is missing."""

    # Communities ---------------------------------------------------------

    @abstractmethod
    def list_communities(self, query: CommunityQuery) -> list[CommunityWithStats]:
        """One page of the discovery feed (public or viewer-member communities)."""

    @abstractmethod
    def list_user_communities(self, user_id: int) -> list[CommunityWithStats]:
        """Communities the user belongs to, most recently joined first."""

    @abstractmethod
    def get_community(
        self, community_id: int, viewer_id: int | None = None
    ) -> CommunityWithStats | None:
        """Return a community view including the viewer's membership."""

    @abstractmethod
    def get_community_by_name(self, name: str) -> Community | None:
        """Exact-name lookup used to reject duplicates."""

    @abstractmethod
    def create_community(self, creator_id: int, data: CommunityCreate) -> CommunityWithStats:
        """Insert a community with its creator as the sole (owner) member."""

    @abstractmethod
    def update_community(
        self, community_id: int, changes: Mapping[str, Any], viewer_id: int | None = None
    ) -> CommunityWithStats | None:
        """Apply metadata changes."""

    @abstractmethod
    def delete_community(self, community_id: int) -> bool:
        """Delete a community with its memberships and sentence links."""

    @abstractmethod
    def get_membership(self, community_id: int, user_id: int) -> CommunityMember | None:
        """Membership row, if any."""

    @abstractmethod
    def join_community(self, community_id: int, user_id: int) -> bool:
        """Add a ``member`` row; ``False`` when already a member."""

    @abstractmethod
    def leave_community(self, community_id: int, user_id: int) -> bool:
        """Remove a membership; ``False`` when not a member."""

    @abstractmethod
    def add_sentence_to_community(self, community_id: int, sentence_id: int) -> bool:
        """Link a sentence; ``False`` when it was already linked."""

    @abstractmethod
    def list_community_sentences(
        self,
        community_id: int,
        sort: SentenceSort = "latest",
        viewer_id: int | None = None,
    ) -> list[SentenceWithUser]:
        """Sentences linked into a community."""

    # Statistics ----------------------------------------------------------

    @abstractmethod
    def user_stats(self, user_id: int) -> UserStats:
        """Totals for one user's collection."""

    @abstractmethod
    def overall_stats(self) -> OverallStats:
        """Site-wide totals."""

    @abstractmethod
    def public_feed_stats(self) -> PublicFeedStats:
        """Top public sentences and contributors."""

    @abstractmethod
    def recent_activity(self, limit: int) -> list[RecentActivity]:
        """Most recently added public sentences."""

    @abstractmethod
    def top_contributors(self, limit: int) -> list[Contributor]:
        """Users ranked by public sentence count, then likes."""

    # Books ---------------------------------------------------------------

    @abstractmethod
    def search_cached_books(self, q: str) -> list[Book]:
        """Cached books matching title, author or publisher."""

    @abstractmethod
    def get_or_create_book(self, data: BookCreate) -> Book:
        """Find a cached book (bumping its search count) or insert it."""

    @abstractmethod
    def popular_books(self, limit: int) -> list[BookWithStats]:
        """Book titles with the most public sentences."""

    @abstractmethod
    def recent_books(self, limit: int) -> list[BookWithStats]:
        """Book titles most recently quoted in public sentences."""

    @abstractmethod
    def author_stats(self) -> list[AuthorStats]:
        """Authors ranked by public sentence count."""

    # Password reset ------------------------------------------------------

    @abstractmethod
    def create_password_reset_token(
        self, user_id: int, token: str, expires_at: datetime
    ) -> PasswordResetToken:
        """Store a token, deleting any earlier ones for the user."""

    @abstractmethod
    def get_password_reset_token(self, token: str) -> PasswordResetToken | None:
        """Look up a token regardless of expiry."""

    @abstractmethod
    def consume_password_reset_token(
        self, token: str, password_hash: str, now: datetime
    ) -> bool:
        """Set the new password and delete the token; ``False`` if invalid or expired."""
