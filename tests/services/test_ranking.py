# mypy: ignore-errors
# tests/services/test_ranking.py
"""Tests for community ranking, pagination and sentence ordering."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

from sentence_stash.schemas.community import CommunitySort
from sentence_stash.schemas.sentence import SentenceWithUser
from sentence_stash.services.ranking import (
    community_matches,
    compute_activity_score,
    days_since_creation,
    effective_activity_score,
    paginate,
    sort_communities,
    sort_sentences,
    text_contains,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _community(community_id, **overrides):
    values = {
        "id": community_id,
        "name": f"Circle {community_id}",
        "description": None,
        "member_count": 1,
        "sentence_count": 0,
        "total_likes": 0,
        "total_comments": 0,
        "activity_score": None,
        "created_at": NOW - timedelta(days=60),
        "last_activity_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _sentence(sentence_id, likes=0, age_days=0):
    return SentenceWithUser(
        id=sentence_id,
        content=f"sentence {sentence_id}",
        likes=likes,
        created_at=NOW - timedelta(days=age_days),
    )


def test_activity_score_formula() -> None:
    """Likes, comments, sentences and members are weighted and a recency bonus added."""
    score = compute_activity_score(
        total_likes=10,
        total_comments=2,
        sentence_count=5,
        member_count=3,
        created_at=NOW - timedelta(days=20),
        now=NOW,
    )
    assert score == 54


def test_recency_bonus_never_negative() -> None:
    """Communities older than the window get no bonus at all."""
    score = compute_activity_score(
        total_likes=0,
        total_comments=0,
        sentence_count=0,
        member_count=1,
        created_at=NOW - timedelta(days=400),
        now=NOW,
    )
    assert score == 5


def test_days_since_creation_is_at_least_one() -> None:
    """A community created moments ago counts as one day old."""
    assert days_since_creation(NOW - timedelta(minutes=5), NOW) == 1
    assert days_since_creation(NOW - timedelta(days=3, hours=23), NOW) == 3


def test_stored_score_takes_precedence() -> None:
    """A precomputed score wins over the live formula."""
    community = _community(1, activity_score=7, total_likes=100)
    assert effective_activity_score(community, NOW) == 7

    live = _community(2, activity_score=None, total_likes=100)
    assert effective_activity_score(live, NOW) == 105


def test_sort_by_activity_breaks_ties_by_id() -> None:
    """Equal scores keep ascending id order."""
    communities = [
        _community(3, total_likes=5),
        _community(1, total_likes=5),
        _community(2, total_likes=50),
    ]
    ranked = sort_communities(communities, CommunitySort.ACTIVITY, NOW)
    assert [c.id for c in ranked] == [2, 1, 3]


def test_sort_by_members_and_recent() -> None:
    """Member count and last activity sorts are descending."""
    communities = [
        _community(1, member_count=2, last_activity_at=NOW - timedelta(days=1)),
        _community(2, member_count=9, last_activity_at=None),
        _community(3, member_count=4, last_activity_at=NOW - timedelta(hours=1)),
    ]
    by_members = sort_communities(communities, CommunitySort.MEMBERS, NOW)
    assert [c.id for c in by_members] == [2, 3, 1]

    by_recent = sort_communities(communities, CommunitySort.RECENT, NOW)
    assert [c.id for c in by_recent] == [3, 1, 2]


def test_paginate_returns_disjoint_pages() -> None:
    """Consecutive pages never repeat an item."""
    items = list(range(20))
    first = paginate(items, 0, 9)
    second = paginate(items, 9, 9)
    third = paginate(items, 18, 9)
    assert first == list(range(9))
    assert second == list(range(9, 18))
    assert third == [18, 19]
    assert not set(first) & set(second)


def test_community_matches_name_or_description() -> None:
    """Search is a case-insensitive substring match."""
    community = _community(1, name="Poetry Lovers", description="Verses and haiku")
    assert community_matches(community, "poetry")
    assert community_matches(community, "HAIKU")
    assert community_matches(community, "  ")
    assert not community_matches(community, "novel")


def test_sort_sentences_orders() -> None:
    """Latest, oldest and likes orders."""
    sentences = [_sentence(1, likes=3, age_days=2), _sentence(2, likes=3, age_days=1), _sentence(3)]
    assert [s.id for s in sort_sentences(sentences, "latest")] == [3, 2, 1]
    assert [s.id for s in sort_sentences(sentences, "oldest")] == [1, 2, 3]
    assert [s.id for s in sort_sentences(sentences, "likes")] == [2, 1, 3]


def test_text_contains() -> None:
    """Empty needles match everything."""
    assert text_contains("The Little Prince", "little")
    assert text_contains(None, None)
    assert not text_contains(None, "prince")
