"""Builders turning entity records into the view models both backends return."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sentence_stash.models import Community, CommunityMember, Sentence, User
from sentence_stash.schemas.community import CommunityCreator, CommunityWithStats
from sentence_stash.schemas.sentence import (
    ANONYMOUS_NICKNAME,
    SentenceAuthor,
    SentenceWithUser,
)
from sentence_stash.services.ranking import effective_activity_score


def display_nickname(user: User | None, legacy_nickname: str | None) -> str:
    """Account nickname, then the imported legacy name, then anonymous."""
    if user is not None and user.nickname:
        return user.nickname
    return legacy_nickname or ANONYMOUS_NICKNAME


def sentence_view(
    sentence: Sentence,
    user: User | None,
    *,
    is_liked: bool = False,
) -> SentenceWithUser:
    """Join a sentence with its author's display identity."""
    return SentenceWithUser(
        id=sentence.id,
        user_id=sentence.user_id,
        content=sentence.content,
        book_title=sentence.book_title,
        author=sentence.author,
        publisher=sentence.publisher,
        page_number=sentence.page_number,
        likes=sentence.likes or 0,
        is_public=sentence.is_public or 0,
        private_note=sentence.private_note,
        is_bookmarked=sentence.is_bookmarked or 0,
        created_at=sentence.created_at,
        updated_at=sentence.updated_at,
        legacy_nickname=sentence.legacy_nickname,
        user=SentenceAuthor(
            nickname=display_nickname(user, sentence.legacy_nickname),
            profile_image=user.profile_image if user is not None else None,
        ),
        is_liked=is_liked,
    )


def community_view(
    community: Community,
    *,
    creator: User | None,
    membership: CommunityMember | None,
    now: datetime,
    top_sentences: Sequence[SentenceWithUser] | None = None,
) -> CommunityWithStats:
    """Attach ranking score, creator identity and the viewer's membership."""
    return CommunityWithStats(
        id=community.id,
        name=community.name,
        description=community.description,
        cover_image=community.cover_image,
        category=community.category,
        related_book=community.related_book,
        creator_id=community.creator_id,
        member_count=community.member_count,
        is_public=community.is_public,
        last_activity_at=community.last_activity_at,
        sentence_count=community.sentence_count,
        total_likes=community.total_likes,
        total_comments=community.total_comments,
        activity_score=effective_activity_score(community, now),
        created_at=community.created_at,
        updated_at=community.updated_at,
        creator=(
            CommunityCreator(nickname=creator.nickname, profile_image=creator.profile_image)
            if creator is not None
            else None
        ),
        is_member=membership is not None,
        member_role=membership.role if membership is not None else None,
        top_sentences=list(top_sentences) if top_sentences is not None else None,
    )
