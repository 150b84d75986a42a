"""Sentence-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from .common import CamelModel

ANONYMOUS_NICKNAME = "Anonymous"

SentenceSort = Literal["latest", "oldest", "likes"]


class SentenceCreate(CamelModel):
    """Schema for saving a new sentence."""

    content: str = Field(..., min_length=1, max_length=500, description="Quoted text")
    book_title: str | None = Field(None, max_length=255)
    author: str | None = Field(None, max_length=255)
    publisher: str | None = Field(None, max_length=255)
    page_number: int | None = Field(None, ge=1, le=9999)
    is_public: Literal[0, 1] = Field(0, description="0 = private, 1 = community feed")
    community_id: int | None = Field(None, description="Community to link the sentence to")
    private_note: str | None = Field(None, max_length=1000)
    is_bookmarked: Literal[0, 1] = 0

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, v: object) -> object:
        """Trim surrounding whitespace before length checks."""
        if isinstance(v, str):
            return v.strip()
        return v


class SentenceUpdate(CamelModel):
    """Partial sentence update."""

    content: str | None = Field(None, min_length=1, max_length=500)
    book_title: str | None = Field(None, max_length=255)
    author: str | None = Field(None, max_length=255)
    publisher: str | None = Field(None, max_length=255)
    page_number: int | None = Field(None, ge=1, le=9999)
    is_public: Literal[0, 1] | None = None
    private_note: str | None = Field(None, max_length=1000)
    is_bookmarked: Literal[0, 1] | None = None

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, v: object) -> object:
        """Trim surrounding whitespace before length checks."""
        if isinstance(v, str):
            return v.strip()
        return v


class NoteUpdate(CamelModel):
    """Replace the owner's private reading note."""

    private_note: str | None = Field(None, max_length=1000)


class SentenceQuery(CamelModel):
    """Filters for sentence listings."""

    q: str | None = None
    sort: SentenceSort = "latest"
    author: str | None = None
    book: str | None = None


class SentenceAuthor(CamelModel):
    """Display identity attached to a sentence."""

    nickname: str = ANONYMOUS_NICKNAME
    profile_image: str | None = None


class SentenceWithUser(CamelModel):
    """Sentence joined with its author's display identity."""

    id: int
    user_id: int | None = None
    content: str
    book_title: str | None = None
    author: str | None = None
    publisher: str | None = None
    page_number: int | None = None
    likes: int = 0
    is_public: int = 0
    private_note: str | None = None
    is_bookmarked: int = 0
    created_at: datetime
    updated_at: datetime | None = None
    legacy_nickname: str | None = None
    user: SentenceAuthor = Field(default_factory=SentenceAuthor)
    is_liked: bool = False

    def visible_to(self, viewer_id: int | None) -> bool:
        """Private sentences are visible to their owner only."""
        return self.is_public == 1 or (viewer_id is not None and self.user_id == viewer_id)

    def for_viewer(self, viewer_id: int | None) -> "SentenceWithUser":
        """Drop the private note unless the viewer owns the sentence."""
        if viewer_id is not None and self.user_id == viewer_id:
            return self
        return self.model_copy(update={"private_note": None})


class LikeResponse(CamelModel):
    """Like state after a toggle or unlike."""

    is_liked: bool
    likes: int


class DailySentenceResponse(CamelModel):
    """Sentence of the day (None when nothing is available)."""

    sentence: SentenceWithUser | None = None
    date: str


class AdminDeleteRequest(CamelModel):
    """Body for the password-gated admin delete route."""

    admin_password: str = Field(..., min_length=1)
