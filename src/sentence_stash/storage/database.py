"""SQLAlchemy-backed storage.

Counters (``Sentence.likes``, ``Community.member_count`` and friends) are only
ever changed with relative ``UPDATE ... SET x = x + n`` statements issued in
the same transaction as the join-table insert/delete they mirror, so
concurrent requests cannot lose updates.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import InstrumentedAttribute, Session

from sentence_stash.core.errors import BusinessRuleViolation
from sentence_stash.db.time import as_utc, utcnow
from sentence_stash.models import (
    COMMUNITY_ROLE_MEMBER,
    COMMUNITY_ROLE_OWNER,
    Book,
    Community,
    CommunityMember,
    CommunitySentence,
    PasswordResetToken,
    Sentence,
    SentenceLike,
    User,
)
from sentence_stash.schemas.book import AuthorStats, BookCreate, BookWithStats
from sentence_stash.schemas.community import (
    CommunityCreate,
    CommunityQuery,
    CommunitySort,
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
from sentence_stash.services.ranking import paginate, sort_communities

from .base import (
    BOOK_SEARCH_LIMIT,
    COMMUNITY_MUTABLE_FIELDS,
    POPULAR_SENTENCE_COUNT,
    RECENT_SENTENCE_COUNT,
    SENTENCE_MUTABLE_FIELDS,
    TOP_CONTRIBUTOR_COUNT,
    TOP_SENTENCE_COUNT,
    USER_MUTABLE_FIELDS,
    Storage,
    pick_fields,
)
from .views import community_view, display_nickname, sentence_view

logger = logging.getLogger(__name__)

_SENTENCE_ORDER = {
    "latest": (Sentence.created_at.desc(), Sentence.id.desc()),
    "oldest": (Sentence.created_at.asc(), Sentence.id.asc()),
    "likes": (Sentence.likes.desc(), Sentence.created_at.desc(), Sentence.id.desc()),
}

# The activity sort depends on "now" and is ranked in Python instead.
_COMMUNITY_ORDER = {
    CommunitySort.MEMBERS: (Community.member_count.desc(), Community.id.asc()),
    CommunitySort.RECENT: (
        func.coalesce(Community.last_activity_at, Community.created_at).desc(),
        Community.id.asc(),
    ),
}


def _contains(column: Any, needle: str) -> ColumnElement[bool]:
    return func.lower(column).contains(needle.lower(), autoescape=True)


def _increment(column: InstrumentedAttribute[int], amount: Any) -> Any:
    return column + amount


def _decrement(column: InstrumentedAttribute[int], amount: Any) -> Any:
    """``column - amount`` clamped at zero."""
    return case((column >= amount, column - amount), else_=0)


def _sentence_visible(viewer_id: int | None) -> ColumnElement[bool]:
    if viewer_id is None:
        return Sentence.is_public == 1
    return or_(Sentence.is_public == 1, Sentence.user_id == viewer_id)


def _sentence_filters(query: SentenceQuery) -> list[ColumnElement[bool]]:
    criteria: list[ColumnElement[bool]] = []
    if query.q:
        criteria.append(
            or_(
                _contains(Sentence.content, query.q),
                _contains(Sentence.book_title, query.q),
                _contains(Sentence.author, query.q),
            )
        )
    if query.author:
        criteria.append(_contains(Sentence.author, query.author))
    if query.book:
        criteria.append(_contains(Sentence.book_title, query.book))
    return criteria


def _community_visible(viewer_id: int | None) -> ColumnElement[bool]:
    if viewer_id is None:
        return Community.is_public == 1
    member_of = select(CommunityMember.community_id).where(CommunityMember.user_id == viewer_id)
    return or_(Community.is_public == 1, Community.id.in_(member_of))


def _community_search(search: str | None) -> ColumnElement[bool] | None:
    needle = (search or "").strip()
    if not needle:
        return None
    return or_(
        _contains(Community.name, needle),
        _contains(func.coalesce(Community.description, ""), needle),
    )


class DatabaseStorage(Storage):
    """Implementation of :class:`Storage` over a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # Users ---------------------------------------------------------------

    def get_user(self, user_id: int) -> User | None:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email).first()

    def get_user_by_nickname(self, nickname: str) -> User | None:
        return self.db.query(User).filter(User.nickname == nickname).first()

    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        nickname: str,
        bio: str | None = None,
        profile_image: str | None = None,
    ) -> User:
        now = utcnow()
        user = User(
            email=email,
            password=password_hash,
            nickname=nickname,
            bio=bio,
            profile_image=profile_image,
            created_at=now,
            updated_at=now,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            raise BusinessRuleViolation("Email or nickname is already in use") from err
        self.db.refresh(user)
        return user

    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> User | None:
        user = self.db.get(User, user_id)
        if user is None:
            return None
        for key, value in pick_fields(changes, USER_MUTABLE_FIELDS).items():
            setattr(user, key, value)
        user.updated_at = utcnow()
        try:
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            raise BusinessRuleViolation("Nickname is already in use") from err
        self.db.refresh(user)
        return user

    def update_password(self, user_id: int, password_hash: str) -> bool:
        user = self.db.get(User, user_id)
        if user is None:
            return False
        user.password = password_hash
        user.updated_at = utcnow()
        self.db.commit()
        return True

    def delete_user(self, user_id: int) -> bool:
        user = self.db.get(User, user_id)
        if user is None:
            return False
        owned = self.db.query(Sentence).filter(Sentence.user_id == user_id).all()
        for sentence in owned:
            self._remove_sentence(sentence)

        liked_ids = [
            row.sentence_id
            for row in self.db.query(SentenceLike.sentence_id)
            .filter(SentenceLike.user_id == user_id)
            .all()
        ]
        for sentence_id in liked_ids:
            self._adjust_likes(sentence_id, -1)
        self.db.query(SentenceLike).filter(SentenceLike.user_id == user_id).delete(
            synchronize_session=False
        )

        member_of = [
            row.community_id
            for row in self.db.query(CommunityMember.community_id)
            .filter(CommunityMember.user_id == user_id)
            .all()
        ]
        if member_of:
            self.db.execute(
                update(Community)
                .where(Community.id.in_(member_of))
                .values(member_count=_decrement(Community.member_count, 1))
            )
        self.db.query(CommunityMember).filter(CommunityMember.user_id == user_id).delete(
            synchronize_session=False
        )
        self.db.execute(
            update(Community).where(Community.creator_id == user_id).values(creator_id=None)
        )
        self.db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user_id
        ).delete(synchronize_session=False)
        self.db.delete(user)
        self.db.commit()
        return True

    def list_users(self) -> list[AdminUserRow]:
        count_col = func.count(Sentence.id)
        rows = (
            self.db.query(User, count_col)
            .outerjoin(Sentence, Sentence.user_id == User.id)
            .group_by(User.id)
            .order_by(User.created_at.desc(), User.id.desc())
            .all()
        )
        return [
            AdminUserRow(
                id=user.id,
                email=user.email,
                nickname=user.nickname,
                created_at=user.created_at,
                sentence_count=int(count or 0),
            )
            for user, count in rows
        ]

    # Sentences -----------------------------------------------------------

    def _sentence_rows(
        self,
        *criteria: ColumnElement[bool],
        sort: SentenceSort = "latest",
        limit: int | None = None,
    ) -> list[tuple[Sentence, User | None]]:
        query = (
            self.db.query(Sentence, User)
            .outerjoin(User, Sentence.user_id == User.id)
            .filter(*criteria)
            .order_by(*_SENTENCE_ORDER[sort])
        )
        if limit is not None:
            query = query.limit(limit)
        return [(sentence, user) for sentence, user in query.all()]

    def _views(
        self,
        rows: Sequence[tuple[Sentence, User | None]],
        viewer_id: int | None,
    ) -> list[SentenceWithUser]:
        liked: set[int] = set()
        if viewer_id is not None and rows:
            ids = [sentence.id for sentence, _ in rows]
            liked = set(
                self.db.scalars(
                    select(SentenceLike.sentence_id).where(
                        SentenceLike.user_id == viewer_id,
                        SentenceLike.sentence_id.in_(ids),
                    )
                )
            )
        return [
            sentence_view(sentence, user, is_liked=sentence.id in liked)
            for sentence, user in rows
        ]

    def get_sentence(
        self, sentence_id: int, viewer_id: int | None = None
    ) -> SentenceWithUser | None:
        rows = self._sentence_rows(Sentence.id == sentence_id)
        if not rows:
            return None
        return self._views(rows, viewer_id)[0]

    def list_visible_sentences(
        self,
        query: SentenceQuery,
        viewer_id: int | None,
        *,
        liked_only: bool = False,
    ) -> list[SentenceWithUser]:
        if liked_only and viewer_id is None:
            return []
        criteria = [_sentence_visible(viewer_id), *_sentence_filters(query)]
        if liked_only:
            criteria.append(
                Sentence.id.in_(
                    select(SentenceLike.sentence_id).where(SentenceLike.user_id == viewer_id)
                )
            )
        return self._views(self._sentence_rows(*criteria, sort=query.sort), viewer_id)

    def list_public_sentences(
        self, query: SentenceQuery, viewer_id: int | None = None
    ) -> list[SentenceWithUser]:
        rows = self._sentence_rows(
            Sentence.is_public == 1, *_sentence_filters(query), sort=query.sort
        )
        return self._views(rows, viewer_id)

    def list_user_sentences(
        self,
        user_id: int,
        *,
        search: str | None = None,
        sort: SentenceSort = "latest",
    ) -> list[SentenceWithUser]:
        criteria = _sentence_filters(SentenceQuery(q=search, sort=sort))
        rows = self._sentence_rows(Sentence.user_id == user_id, *criteria, sort=sort)
        return self._views(rows, user_id)

    def search_sentences(self, q: str, viewer_id: int | None) -> list[SentenceWithUser]:
        match = or_(
            _contains(Sentence.content, q),
            _contains(Sentence.book_title, q),
            _contains(Sentence.author, q),
            and_(Sentence.user_id.is_not(None), _contains(User.nickname, q)),
            _contains(Sentence.legacy_nickname, q),
        )
        rows = self._sentence_rows(_sentence_visible(viewer_id), match)
        return self._views(rows, viewer_id)

    def list_book_sentences(
        self, book_title: str, viewer_id: int | None
    ) -> list[SentenceWithUser]:
        rows = self._sentence_rows(
            Sentence.book_title == book_title, _sentence_visible(viewer_id)
        )
        return self._views(rows, viewer_id)

    def create_sentence(self, user_id: int, data: SentenceCreate) -> SentenceWithUser:
        now = utcnow()
        sentence = Sentence(
            user_id=user_id,
            content=data.content,
            book_title=data.book_title,
            author=data.author,
            publisher=data.publisher,
            page_number=data.page_number,
            likes=0,
            is_public=data.is_public,
            private_note=data.private_note,
            is_bookmarked=data.is_bookmarked,
            created_at=now,
            updated_at=now,
        )
        self.db.add(sentence)
        self._adjust_book_sentence_count(data.book_title, 1)
        self.db.commit()
        self.db.refresh(sentence)
        return sentence_view(sentence, self.db.get(User, user_id))

    def update_sentence(
        self, sentence_id: int, changes: Mapping[str, Any]
    ) -> SentenceWithUser | None:
        sentence = self.db.get(Sentence, sentence_id)
        if sentence is None:
            return None
        old_title = sentence.book_title
        for key, value in pick_fields(changes, SENTENCE_MUTABLE_FIELDS).items():
            setattr(sentence, key, value)
        if sentence.book_title != old_title:
            self._adjust_book_sentence_count(old_title, -1)
            self._adjust_book_sentence_count(sentence.book_title, 1)
        sentence.updated_at = utcnow()
        self.db.commit()
        return self.get_sentence(sentence_id, sentence.user_id)

    def delete_sentence(self, sentence_id: int) -> bool:
        sentence = self.db.get(Sentence, sentence_id)
        if sentence is None:
            return False
        self._remove_sentence(sentence)
        self.db.commit()
        return True

    def _remove_sentence(self, sentence: Sentence) -> None:
        likes = self.db.scalar(select(Sentence.likes).where(Sentence.id == sentence.id)) or 0
        linked = list(
            self.db.scalars(
                select(CommunitySentence.community_id).where(
                    CommunitySentence.sentence_id == sentence.id
                )
            )
        )
        if linked:
            self.db.execute(
                update(Community)
                .where(Community.id.in_(linked))
                .values(
                    sentence_count=_decrement(Community.sentence_count, 1),
                    total_likes=_decrement(Community.total_likes, likes),
                )
            )
        self.db.query(CommunitySentence).filter(
            CommunitySentence.sentence_id == sentence.id
        ).delete(synchronize_session=False)
        self.db.query(SentenceLike).filter(SentenceLike.sentence_id == sentence.id).delete(
            synchronize_session=False
        )
        self._adjust_book_sentence_count(sentence.book_title, -1)
        self.db.delete(sentence)

    def _adjust_book_sentence_count(self, title: str | None, delta: int) -> None:
        if not title:
            return
        value = (
            _increment(Book.sentence_count, delta)
            if delta > 0
            else _decrement(Book.sentence_count, -delta)
        )
        self.db.execute(update(Book).where(Book.title == title).values(sentence_count=value))

    # Likes ---------------------------------------------------------------

    def liked_sentence_ids(self, user_id: int) -> set[int]:
        return set(
            self.db.scalars(
                select(SentenceLike.sentence_id).where(SentenceLike.user_id == user_id)
            )
        )

    def _adjust_likes(self, sentence_id: int, delta: int) -> None:
        """Move the sentence counter and its communities' totals by ``delta``."""
        if delta > 0:
            sentence_value = _increment(Sentence.likes, delta)
            community_value = _increment(Community.total_likes, delta)
        else:
            sentence_value = _decrement(Sentence.likes, -delta)
            community_value = _decrement(Community.total_likes, -delta)
        self.db.execute(
            update(Sentence).where(Sentence.id == sentence_id).values(likes=sentence_value)
        )
        linked = select(CommunitySentence.community_id).where(
            CommunitySentence.sentence_id == sentence_id
        )
        self.db.execute(
            update(Community)
            .where(Community.id.in_(linked))
            .values(total_likes=community_value)
        )

    def _current_likes(self, sentence_id: int) -> int:
        return self.db.scalar(select(Sentence.likes).where(Sentence.id == sentence_id)) or 0

    def _find_like(self, sentence_id: int, user_id: int) -> SentenceLike | None:
        return (
            self.db.query(SentenceLike)
            .filter(SentenceLike.sentence_id == sentence_id, SentenceLike.user_id == user_id)
            .first()
        )

    def toggle_like(self, sentence_id: int, user_id: int) -> LikeResponse | None:
        if self.db.get(Sentence, sentence_id) is None:
            return None
        existing = self._find_like(sentence_id, user_id)
        if existing is not None:
            self.db.delete(existing)
            self._adjust_likes(sentence_id, -1)
            is_liked = False
        else:
            self.db.add(SentenceLike(sentence_id=sentence_id, user_id=user_id, created_at=utcnow()))
            self._adjust_likes(sentence_id, 1)
            is_liked = True
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the same like first.
            self.db.rollback()
            logger.info("Concurrent like on sentence %s by user %s", sentence_id, user_id)
            is_liked = True
        return LikeResponse(is_liked=is_liked, likes=self._current_likes(sentence_id))

    def remove_like(self, sentence_id: int, user_id: int) -> LikeResponse | None:
        if self.db.get(Sentence, sentence_id) is None:
            return None
        existing = self._find_like(sentence_id, user_id)
        if existing is not None:
            self.db.delete(existing)
            self._adjust_likes(sentence_id, -1)
            self.db.commit()
        return LikeResponse(is_liked=False, likes=self._current_likes(sentence_id))

    # Communities ---------------------------------------------------------

    def _top_sentences(self, community_id: int, viewer_id: int | None) -> list[SentenceWithUser]:
        rows = (
            self.db.query(Sentence, User)
            .join(CommunitySentence, CommunitySentence.sentence_id == Sentence.id)
            .outerjoin(User, Sentence.user_id == User.id)
            .filter(CommunitySentence.community_id == community_id)
            .order_by(Sentence.likes.desc(), Sentence.id.asc())
            .limit(TOP_SENTENCE_COUNT)
            .all()
        )
        views = self._views([(s, u) for s, u in rows], viewer_id)
        return [view.for_viewer(viewer_id) for view in views]

    def _community_views(
        self,
        communities: Sequence[Community],
        viewer_id: int | None,
        now: datetime,
        *,
        include_top_sentences: bool = False,
    ) -> list[CommunityWithStats]:
        if not communities:
            return []
        ids = [c.id for c in communities]
        creator_ids = {c.creator_id for c in communities if c.creator_id is not None}
        creators = (
            {u.id: u for u in self.db.query(User).filter(User.id.in_(creator_ids)).all()}
            if creator_ids
            else {}
        )
        memberships: dict[int, CommunityMember] = {}
        if viewer_id is not None:
            memberships = {
                m.community_id: m
                for m in self.db.query(CommunityMember)
                .filter(
                    CommunityMember.user_id == viewer_id,
                    CommunityMember.community_id.in_(ids),
                )
                .all()
            }
        return [
            community_view(
                c,
                creator=creators.get(c.creator_id) if c.creator_id is not None else None,
                membership=memberships.get(c.id),
                now=now,
                top_sentences=(
                    self._top_sentences(c.id, viewer_id) if include_top_sentences else None
                ),
            )
            for c in communities
        ]

    def list_communities(self, query: CommunityQuery) -> list[CommunityWithStats]:
        now = utcnow()
        base = self.db.query(Community).filter(_community_visible(query.viewer_id))
        search = _community_search(query.search)
        if search is not None:
            base = base.filter(search)

        if query.sort is CommunitySort.ACTIVITY:
            ranked = sort_communities(base.all(), query.sort, now)
            page = paginate(ranked, query.offset, query.limit)
        else:
            page = (
                base.order_by(*_COMMUNITY_ORDER[query.sort])
                .offset(query.offset)
                .limit(query.limit)
                .all()
            )
        return self._community_views(
            page,
            query.viewer_id,
            now,
            include_top_sentences=query.include_top_sentences,
        )

    def list_user_communities(self, user_id: int) -> list[CommunityWithStats]:
        communities = (
            self.db.query(Community)
            .join(CommunityMember, CommunityMember.community_id == Community.id)
            .filter(CommunityMember.user_id == user_id)
            .order_by(CommunityMember.joined_at.desc(), CommunityMember.id.desc())
            .all()
        )
        return self._community_views(communities, user_id, utcnow())

    def get_community(
        self, community_id: int, viewer_id: int | None = None
    ) -> CommunityWithStats | None:
        community = self.db.get(Community, community_id)
        if community is None:
            return None
        self.db.refresh(community)
        return self._community_views([community], viewer_id, utcnow())[0]

    def get_community_by_name(self, name: str) -> Community | None:
        return self.db.query(Community).filter(Community.name == name).first()

    def create_community(self, creator_id: int, data: CommunityCreate) -> CommunityWithStats:
        now = utcnow()
        community = Community(
            name=data.name,
            description=data.description,
            cover_image=data.cover_image,
            category=data.category,
            related_book=data.related_book,
            creator_id=creator_id,
            member_count=1,
            is_public=data.is_public,
            last_activity_at=now,
            sentence_count=0,
            total_likes=0,
            total_comments=0,
            activity_score=None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(community)
        try:
            self.db.flush()
            self.db.add(
                CommunityMember(
                    community_id=community.id,
                    user_id=creator_id,
                    role=COMMUNITY_ROLE_OWNER,
                    joined_at=now,
                )
            )
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            raise BusinessRuleViolation("A community with this name already exists") from err
        self.db.refresh(community)
        return self._community_views([community], creator_id, now)[0]

    def update_community(
        self, community_id: int, changes: Mapping[str, Any], viewer_id: int | None = None
    ) -> CommunityWithStats | None:
        community = self.db.get(Community, community_id)
        if community is None:
            return None
        for key, value in pick_fields(changes, COMMUNITY_MUTABLE_FIELDS).items():
            setattr(community, key, value)
        community.updated_at = utcnow()
        try:
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            raise BusinessRuleViolation("A community with this name already exists") from err
        return self.get_community(community_id, viewer_id)

    def delete_community(self, community_id: int) -> bool:
        community = self.db.get(Community, community_id)
        if community is None:
            return False
        self.db.query(CommunityMember).filter(
            CommunityMember.community_id == community_id
        ).delete(synchronize_session=False)
        self.db.query(CommunitySentence).filter(
            CommunitySentence.community_id == community_id
        ).delete(synchronize_session=False)
        self.db.delete(community)
        self.db.commit()
        return True

    def get_membership(self, community_id: int, user_id: int) -> CommunityMember | None:
        return (
            self.db.query(CommunityMember)
            .filter(
                CommunityMember.community_id == community_id,
                CommunityMember.user_id == user_id,
            )
            .first()
        )

    def join_community(self, community_id: int, user_id: int) -> bool:
        if self.db.get(Community, community_id) is None:
            return False
        if self.get_membership(community_id, user_id) is not None:
            return False
        self.db.add(
            CommunityMember(
                community_id=community_id,
                user_id=user_id,
                role=COMMUNITY_ROLE_MEMBER,
                joined_at=utcnow(),
            )
        )
        self.db.execute(
            update(Community)
            .where(Community.id == community_id)
            .values(member_count=_increment(Community.member_count, 1))
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def leave_community(self, community_id: int, user_id: int) -> bool:
        removed = (
            self.db.query(CommunityMember)
            .filter(
                CommunityMember.community_id == community_id,
                CommunityMember.user_id == user_id,
            )
            .delete(synchronize_session=False)
        )
        if not removed:
            self.db.rollback()
            return False
        self.db.execute(
            update(Community)
            .where(Community.id == community_id)
            .values(member_count=_decrement(Community.member_count, 1))
        )
        self.db.commit()
        return True

    def add_sentence_to_community(self, community_id: int, sentence_id: int) -> bool:
        if self.db.get(Community, community_id) is None:
            return False
        if self.db.get(Sentence, sentence_id) is None:
            return False
        linked = (
            self.db.query(CommunitySentence)
            .filter(
                CommunitySentence.community_id == community_id,
                CommunitySentence.sentence_id == sentence_id,
            )
            .first()
        )
        if linked is not None:
            return False
        now = utcnow()
        self.db.add(
            CommunitySentence(community_id=community_id, sentence_id=sentence_id, added_at=now)
        )
        sentence_likes = (
            select(Sentence.likes).where(Sentence.id == sentence_id).scalar_subquery()
        )
        self.db.execute(
            update(Community)
            .where(Community.id == community_id)
            .values(
                sentence_count=_increment(Community.sentence_count, 1),
                total_likes=_increment(Community.total_likes, sentence_likes),
                last_activity_at=now,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def list_community_sentences(
        self,
        community_id: int,
        sort: SentenceSort = "latest",
        viewer_id: int | None = None,
    ) -> list[SentenceWithUser]:
        linked = select(CommunitySentence.sentence_id).where(
            CommunitySentence.community_id == community_id
        )
        rows = self._sentence_rows(Sentence.id.in_(linked), sort=sort)
        return self._views(rows, viewer_id)

    # Statistics ----------------------------------------------------------

    def user_stats(self, user_id: int) -> UserStats:
        sentences = self.list_user_sentences(user_id)
        total_likes = sum(s.likes for s in sentences)
        return UserStats(
            total_sentences=len(sentences),
            total_likes=total_likes,
            average_likes=total_likes / len(sentences) if sentences else 0.0,
            recent_sentences=sentences[:RECENT_SENTENCE_COUNT],
        )

    def overall_stats(self) -> OverallStats:
        total_sentences = self.db.scalar(select(func.count(Sentence.id))) or 0
        total_users = self.db.scalar(select(func.count(User.id))) or 0
        total_likes = self.db.scalar(select(func.coalesce(func.sum(Sentence.likes), 0))) or 0
        popular = self._sentence_rows(
            Sentence.is_public == 1, sort="likes", limit=POPULAR_SENTENCE_COUNT
        )
        return OverallStats(
            total_sentences=int(total_sentences),
            total_users=int(total_users),
            total_likes=int(total_likes),
            popular_sentences=[v.for_viewer(None) for v in self._views(popular, None)],
        )

    def _contributors(self, *, by_likes: bool, limit: int) -> list[Contributor]:
        count_col = func.count(Sentence.id).label("sentence_count")
        likes_col = func.coalesce(func.sum(Sentence.likes), 0).label("total_likes")
        ordering = (
            (likes_col.desc(), count_col.desc(), User.id.asc())
            if by_likes
            else (count_col.desc(), likes_col.desc(), User.id.asc())
        )
        rows = (
            self.db.query(User.id, User.nickname, User.profile_image, count_col, likes_col)
            .join(Sentence, Sentence.user_id == User.id)
            .filter(Sentence.is_public == 1)
            .group_by(User.id, User.nickname, User.profile_image)
            .order_by(*ordering)
            .limit(limit)
            .all()
        )
        return [
            Contributor(
                user_id=row.id,
                nickname=row.nickname,
                profile_image=row.profile_image,
                sentence_count=int(row.sentence_count),
                total_likes=int(row.total_likes),
            )
            for row in rows
        ]

    def public_feed_stats(self) -> PublicFeedStats:
        top = self._sentence_rows(Sentence.is_public == 1, sort="likes", limit=TOP_SENTENCE_COUNT)
        total_sentences = self.db.scalar(
            select(func.count(Sentence.id)).where(Sentence.is_public == 1)
        )
        total_users = self.db.scalar(
            select(func.count(func.distinct(Sentence.user_id))).where(Sentence.is_public == 1)
        )
        return PublicFeedStats(
            top_sentences=[v.for_viewer(None) for v in self._views(top, None)],
            top_contributors=self._contributors(by_likes=True, limit=TOP_CONTRIBUTOR_COUNT),
            total_sentences=int(total_sentences or 0),
            total_users=int(total_users or 0),
        )

    def recent_activity(self, limit: int) -> list[RecentActivity]:
        rows = self._sentence_rows(Sentence.is_public == 1, sort="latest", limit=limit)
        return [
            RecentActivity(
                content=sentence.content,
                book_title=sentence.book_title,
                user_nickname=display_nickname(user, sentence.legacy_nickname),
                created_at=sentence.created_at,
            )
            for sentence, user in rows
        ]

    def top_contributors(self, limit: int) -> list[Contributor]:
        return self._contributors(by_likes=False, limit=limit)

    # Books ---------------------------------------------------------------

    def search_cached_books(self, q: str) -> list[Book]:
        return (
            self.db.query(Book)
            .filter(
                or_(
                    _contains(Book.title, q),
                    _contains(Book.author, q),
                    _contains(Book.publisher, q),
                )
            )
            .order_by(Book.search_count.desc(), Book.id.asc())
            .limit(BOOK_SEARCH_LIMIT)
            .all()
        )

    def get_or_create_book(self, data: BookCreate) -> Book:
        existing: Book | None = None
        if data.isbn:
            existing = self.db.query(Book).filter(Book.isbn == data.isbn).first()
        if existing is None:
            author_match = Book.author.is_(None) if data.author is None else Book.author == data.author
            existing = (
                self.db.query(Book)
                .filter(Book.title == data.title, author_match)
                .order_by(Book.id.asc())
                .first()
            )
        now = utcnow()
        if existing is not None:
            self.db.execute(
                update(Book)
                .where(Book.id == existing.id)
                .values(search_count=_increment(Book.search_count, 1), updated_at=now)
            )
            self.db.commit()
            self.db.refresh(existing)
            return existing

        quoted = self.db.scalar(
            select(func.count(Sentence.id)).where(Sentence.book_title == data.title)
        )
        book = Book(
            isbn=data.isbn or None,
            title=data.title,
            author=data.author,
            publisher=data.publisher,
            cover=data.cover,
            search_count=1,
            sentence_count=int(quoted or 0),
            created_at=now,
            updated_at=now,
        )
        self.db.add(book)
        self.db.commit()
        self.db.refresh(book)
        return book

    def _book_groups(self, *, by_recency: bool, limit: int) -> list[BookWithStats]:
        count_col = func.count(Sentence.id).label("total_sentences")
        likes_col = func.coalesce(func.sum(Sentence.likes), 0).label("total_likes")
        last_col = func.max(Sentence.created_at).label("last_added_at")
        rows = (
            self.db.query(
                Sentence.book_title,
                Sentence.author,
                func.max(Sentence.publisher).label("publisher"),
                count_col,
                likes_col,
                last_col,
            )
            .filter(
                Sentence.is_public == 1,
                Sentence.book_title.is_not(None),
                Sentence.book_title != "",
            )
            .group_by(Sentence.book_title, Sentence.author)
            .order_by(
                *((last_col.desc(),) if by_recency else (count_col.desc(), likes_col.desc())),
                Sentence.book_title.asc(),
                func.coalesce(Sentence.author, "").asc(),
            )
            .limit(limit)
            .all()
        )
        titles = {row.book_title for row in rows}
        cached: dict[str, Book] = {}
        if titles:
            for book in (
                self.db.query(Book).filter(Book.title.in_(titles)).order_by(Book.id.asc()).all()
            ):
                cached.setdefault(book.title, book)
        results = []
        for row in rows:
            book = cached.get(row.book_title)
            results.append(
                BookWithStats(
                    title=row.book_title,
                    author=row.author,
                    publisher=row.publisher,
                    isbn=book.isbn if book is not None else None,
                    cover=book.cover if book is not None else None,
                    total_sentences=int(row.total_sentences),
                    total_likes=int(row.total_likes),
                    last_added_at=as_utc(row.last_added_at) if row.last_added_at else None,
                )
            )
        return results

    def popular_books(self, limit: int) -> list[BookWithStats]:
        return self._book_groups(by_recency=False, limit=limit)

    def recent_books(self, limit: int) -> list[BookWithStats]:
        return self._book_groups(by_recency=True, limit=limit)

    def author_stats(self) -> list[AuthorStats]:
        count_col = func.count(Sentence.id).label("sentence_count")
        rows = (
            self.db.query(
                Sentence.author,
                count_col,
                func.coalesce(func.sum(Sentence.likes), 0).label("total_likes"),
            )
            .filter(
                Sentence.is_public == 1,
                Sentence.author.is_not(None),
                Sentence.author != "",
            )
            .group_by(Sentence.author)
            .order_by(count_col.desc(), Sentence.author.asc())
            .all()
        )
        titles: dict[str, set[str]] = {}
        for author, title in (
            self.db.query(Sentence.author, Sentence.book_title)
            .filter(
                Sentence.is_public == 1,
                Sentence.author.is_not(None),
                Sentence.book_title.is_not(None),
                Sentence.book_title != "",
            )
            .distinct()
            .all()
        ):
            titles.setdefault(author, set()).add(title)
        return [
            AuthorStats(
                author=row.author,
                sentence_count=int(row.sentence_count),
                total_likes=int(row.total_likes),
                books=sorted(titles.get(row.author, set())),
            )
            for row in rows
        ]

    # Password reset ------------------------------------------------------

    def create_password_reset_token(
        self, user_id: int, token: str, expires_at: datetime
    ) -> PasswordResetToken:
        self.db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user_id
        ).delete(synchronize_session=False)
        row = PasswordResetToken(
            user_id=user_id, token=token, expires_at=expires_at, created_at=utcnow()
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def get_password_reset_token(self, token: str) -> PasswordResetToken | None:
        return (
            self.db.query(PasswordResetToken).filter(PasswordResetToken.token == token).first()
        )

    def consume_password_reset_token(
        self, token: str, password_hash: str, now: datetime
    ) -> bool:
        row = self.get_password_reset_token(token)
        if row is None or as_utc(row.expires_at) <= as_utc(now):
            return False
        user = self.db.get(User, row.user_id)
        if user is None:
            return False
        user.password = password_hash
        user.updated_at = now
        self.db.delete(row)
        self.db.commit()
        return True
