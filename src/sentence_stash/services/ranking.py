"""Ranking, filtering and pagination rules shared by both storage backends.

The database backend pushes what it can into SQL but defers to these
functions wherever a result depends on the wall clock, so that the same
inputs always rank identically whichever backend is configured.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol, TypeVar

from sentence_stash.db.time import as_utc
from sentence_stash.schemas.community import CommunitySort
from sentence_stash.schemas.sentence import SentenceSort, SentenceWithUser

RECENCY_WINDOW_DAYS = 30
LIKE_WEIGHT = 1
COMMENT_WEIGHT = 2
SENTENCE_WEIGHT = 3
MEMBER_WEIGHT = 5

T = TypeVar("T")


class RankableCommunity(Protocol):
    """Attributes the ranking rules read from a community record."""

    id: int
    name: str
    description: str | None
    member_count: int
    sentence_count: int
    total_likes: int
    total_comments: int
    activity_score: int | None
    created_at: datetime
    last_activity_at: datetime | None


C = TypeVar("C", bound=RankableCommunity)


def days_since_creation(created_at: datetime, now: datetime) -> int:
    """Whole days elapsed since creation, never less than one."""
    elapsed = as_utc(now) - as_utc(created_at)
    return max(1, math.floor(elapsed.total_seconds() / 86400))


def compute_activity_score(
    *,
    total_likes: int,
    total_comments: int,
    sentence_count: int,
    member_count: int,
    created_at: datetime,
    now: datetime,
) -> int:
    """Composite popularity/freshness score for the discovery feed.

    ``likes + comments*2 + sentences*3 + members*5 + max(0, 30 - days)``
    where ``days`` is the floored age in days, at least 1.
    """
    recency_bonus = max(0, RECENCY_WINDOW_DAYS - days_since_creation(created_at, now))
    return (
        (total_likes or 0) * LIKE_WEIGHT
        + (total_comments or 0) * COMMENT_WEIGHT
        + (sentence_count or 0) * SENTENCE_WEIGHT
        + (member_count or 0) * MEMBER_WEIGHT
        + recency_bonus
    )


def effective_activity_score(community: RankableCommunity, now: datetime) -> int:
    """Stored score when one was precomputed, otherwise the live formula."""
    if community.activity_score is not None:
        return community.activity_score
    return compute_activity_score(
        total_likes=community.total_likes,
        total_comments=community.total_comments,
        sentence_count=community.sentence_count,
        member_count=community.member_count,
        created_at=community.created_at,
        now=now,
    )


def last_activity(community: RankableCommunity) -> datetime:
    """Timestamp used by the ``recent`` sort."""
    return as_utc(community.last_activity_at or community.created_at)


def community_matches(community: RankableCommunity, search: str | None) -> bool:
    """Case-insensitive substring match on name or description."""
    needle = (search or "").strip().lower()
    if not needle:
        return True
    if needle in community.name.lower():
        return True
    return needle in (community.description or "").lower()


def sort_communities(
    communities: Iterable[C],
    sort: CommunitySort,
    now: datetime,
) -> list[C]:
    """Order communities for the requested sort key.

    Ties fall back to ascending primary key.
    """
    items = sorted(communities, key=lambda c: c.id)
    if sort is CommunitySort.MEMBERS:
        items.sort(key=lambda c: c.member_count, reverse=True)
    elif sort is CommunitySort.RECENT:
        items.sort(key=last_activity, reverse=True)
    else:
        items.sort(key=lambda c: effective_activity_score(c, now), reverse=True)
    return items


def paginate(items: Sequence[T], offset: int, limit: int) -> list[T]:
    """Slice ``[offset, offset + limit)``."""
    return list(items[offset:offset + limit])


def sort_sentences(
    sentences: Iterable[SentenceWithUser],
    sort: SentenceSort,
) -> list[SentenceWithUser]:
    """Order sentence views; ``likes`` breaks ties by recency."""
    items = list(sentences)
    if sort == "oldest":
        items.sort(key=lambda s: (as_utc(s.created_at), s.id))
    elif sort == "likes":
        items.sort(key=lambda s: (s.likes, as_utc(s.created_at), s.id), reverse=True)
    else:
        items.sort(key=lambda s: (as_utc(s.created_at), s.id), reverse=True)
    return items


def text_contains(haystack: str | None, needle: str | None) -> bool:
    """Case-insensitive containment used by sentence filters."""
    if not needle:
        return True
    return needle.lower() in (haystack or "").lower()
