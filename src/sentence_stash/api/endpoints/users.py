# src/sentence_stash/api/endpoints/users.py
"""Per-user collection views and site-wide statistics."""

from __future__ import annotations

from fastapi import APIRouter, Query

from sentence_stash.api.dependencies import CurrentUserDep, StorageDep
from sentence_stash.schemas.community import CommunityWithStats
from sentence_stash.schemas.sentence import SentenceSort, SentenceWithUser
from sentence_stash.schemas.stats import Contributor, OverallStats, RecentActivity, UserStats

router = APIRouter(tags=["users"])

DEFAULT_FEED_LIMIT = 10
MAX_FEED_LIMIT = 100


@router.get("/user/sentences", response_model=list[SentenceWithUser])
async def list_my_sentences(
    current_user: CurrentUserDep,
    storage: StorageDep,
    search: str | None = None,
    sort: SentenceSort = "latest",
) -> list[SentenceWithUser]:
    """The caller's own collection, private notes included."""
    return storage.list_user_sentences(current_user.id, search=search, sort=sort)


@router.get("/user/stats", response_model=UserStats)
async def my_stats(current_user: CurrentUserDep, storage: StorageDep) -> UserStats:
    return storage.user_stats(current_user.id)


@router.get("/user/communities", response_model=list[CommunityWithStats])
async def my_communities(
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> list[CommunityWithStats]:
    return storage.list_user_communities(current_user.id)


@router.get("/stats", response_model=OverallStats)
async def overall_stats(storage: StorageDep) -> OverallStats:
    return storage.overall_stats()


@router.get("/recent-activity", response_model=list[RecentActivity])
async def recent_activity(
    storage: StorageDep,
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=MAX_FEED_LIMIT),
) -> list[RecentActivity]:
    """Most recently shared public sentences."""
    return storage.recent_activity(limit)


@router.get("/contributors", response_model=list[Contributor])
async def top_contributors(
    storage: StorageDep,
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=MAX_FEED_LIMIT),
) -> list[Contributor]:
    """Users ranked by public sentences, then by likes received."""
    return storage.top_contributors(limit)
