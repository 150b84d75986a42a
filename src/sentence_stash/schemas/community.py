"""Community-related Pydantic schemas."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import Field

from .common import CamelModel
from .sentence import SentenceWithUser

DEFAULT_PAGE_SIZE = 9
MAX_PAGE_SIZE = 50


class CommunitySort(StrEnum):
    """Ordering of the community discovery feed."""

    ACTIVITY = "activity"
    MEMBERS = "members"
    RECENT = "recent"


class CommunityQuery(CamelModel):
    """Everything needed to produce one page of the discovery feed."""

    sort: CommunitySort = CommunitySort.ACTIVITY
    search: str = ""
    offset: int = Field(0, ge=0)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    include_top_sentences: bool = False
    viewer_id: int | None = None


class CommunityCreate(CamelModel):
    """Schema for creating a new community."""

    name: str = Field(..., min_length=2, max_length=100)
    description: str | None = Field(None, max_length=500)
    category: str | None = Field(None, max_length=50)
    related_book: str | None = Field(None, max_length=255)
    cover_image: str | None = Field(None, max_length=2048)
    is_public: Literal[0, 1] = 1


class CommunityUpdate(CamelModel):
    """Partial community update."""

    name: str | None = Field(None, min_length=2, max_length=100)
    description: str | None = Field(None, max_length=500)
    category: str | None = Field(None, max_length=50)
    related_book: str | None = Field(None, max_length=255)
    cover_image: str | None = Field(None, max_length=2048)
    is_public: Literal[0, 1] | None = None


class CommunityCreator(CamelModel):
    """Display identity of the community creator."""

    nickname: str
    profile_image: str | None = None


class CommunityWithStats(CamelModel):
    """Community with counters, ranking score and the viewer's membership."""

    id: int
    name: str
    description: str | None = None
    cover_image: str | None = None
    category: str | None = None
    related_book: str | None = None
    creator_id: int | None = None
    member_count: int = 0
    is_public: int = 1
    last_activity_at: datetime | None = None
    sentence_count: int = 0
    total_likes: int = 0
    total_comments: int = 0
    activity_score: int = 0
    created_at: datetime
    updated_at: datetime | None = None
    creator: CommunityCreator | None = None
    is_member: bool = False
    member_role: str | None = None
    top_sentences: list[SentenceWithUser] | None = None


class AddSentenceRequest(CamelModel):
    """Link an existing sentence into a community."""

    sentence_id: int
