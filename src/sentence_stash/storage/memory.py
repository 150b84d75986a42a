"""In-memory storage backend.

Mirrors the relational schema with plain dictionaries of (transient) ORM
instances. Everything lives in one process and disappears on restart, so it
is only suitable for local development, demos and tests.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterator, Mapping
from datetime import datetime
from typing import Any

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
    User,
)
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
from sentence_stash.services.ranking import (
    community_matches,
    paginate,
    sort_communities,
    sort_sentences,
    text_contains,
)

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
from .views import community_view, sentence_view

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    """Dictionary-backed implementation of :class:`Storage`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sequences: defaultdict[str, Iterator[int]] = defaultdict(
            lambda: itertools.count(1)
        )
        self.users: dict[int, User] = {}
        self.sentences: dict[int, Sentence] = {}
        # (sentence_id, user_id) pairs
        self.likes: set[tuple[int, int]] = set()
        self.books: dict[int, Book] = {}
        self.communities: dict[int, Community] = {}
        # keyed by (community_id, user_id)
        self.members: dict[tuple[int, int], CommunityMember] = {}
        # keyed by (community_id, sentence_id)
        self.community_sentences: dict[tuple[int, int], CommunitySentence] = {}
        self.reset_tokens: dict[str, PasswordResetToken] = {}

    def _next_id(self, kind: str) -> int:
        return next(self._sequences[kind])

    # Users ---------------------------------------------------------------

    def get_user(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return next((u for u in self.users.values() if u.email == email), None)

    def get_user_by_nickname(self, nickname: str) -> User | None:
        return next((u for u in self.users.values() if u.nickname == nickname), None)

    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        nickname: str,
        bio: str | None = None,
        profile_image: str | None = None,
    ) -> User:
        with self._lock:
            if self.get_user_by_email(email) or self.get_user_by_nickname(nickname):
                raise BusinessRuleViolation("Email or nickname is already in use")
            now = utcnow()
            user = User(
                id=self._next_id("users"),
                email=email,
                password=password_hash,
                nickname=nickname,
                bio=bio,
                profile_image=profile_image,
                created_at=now,
                updated_at=now,
            )
            self.users[user.id] = user
            return user

    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> User | None:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            values = pick_fields(changes, USER_MUTABLE_FIELDS)
            nickname = values.get("nickname")
            if nickname is not None:
                holder = self.get_user_by_nickname(nickname)
                if holder is not None and holder.id != user_id:
                    raise BusinessRuleViolation("Nickname is already in use")
            for key, value in values.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            return user

    def update_password(self, user_id: int, password_hash: str) -> bool:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return False
            user.password = password_hash
            user.updated_at = utcnow()
            return True

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if user_id not in self.users:
                return False
            for sentence_id in [s.id for s in self.sentences.values() if s.user_id == user_id]:
                self._delete_sentence(sentence_id)
            for sentence_id, liker_id in list(self.likes):
                if liker_id == user_id:
                    self._unlike(sentence_id, user_id)
            for key in [k for k in self.members if k[1] == user_id]:
                del self.members[key]
                community = self.communities.get(key[0])
                if community is not None:
                    community.member_count = max(0, community.member_count - 1)
            for community in self.communities.values():
                if community.creator_id == user_id:
                    community.creator_id = None
            for token in [t for t, row in self.reset_tokens.items() if row.user_id == user_id]:
                del self.reset_tokens[token]
            del self.users[user_id]
            return True

    def list_users(self) -> list[AdminUserRow]:
        counts: dict[int, int] = defaultdict(int)
        for sentence in self.sentences.values():
            if sentence.user_id is not None:
                counts[sentence.user_id] += 1
        users = sorted(
            self.users.values(), key=lambda u: (as_utc(u.created_at), u.id), reverse=True
        )
        return [
            AdminUserRow(
                id=u.id,
                email=u.email,
                nickname=u.nickname,
                created_at=u.created_at,
                sentence_count=counts[u.id],
            )
            for u in users
        ]

    # Sentences -----------------------------------------------------------

    def _view(self, sentence: Sentence, viewer_id: int | None) -> SentenceWithUser:
        user = self.users.get(sentence.user_id) if sentence.user_id is not None else None
        liked = viewer_id is not None and (sentence.id, viewer_id) in self.likes
        return sentence_view(sentence, user, is_liked=liked)

    def _views(
        self,
        predicate: Callable[[Sentence], bool],
        viewer_id: int | None,
    ) -> list[SentenceWithUser]:
        return [self._view(s, viewer_id) for s in self.sentences.values() if predicate(s)]

    @staticmethod
    def _is_visible(sentence: Sentence, viewer_id: int | None) -> bool:
        return sentence.is_public == 1 or (
            viewer_id is not None and sentence.user_id == viewer_id
        )

    @staticmethod
    def _apply_query(
        views: list[SentenceWithUser], query: SentenceQuery
    ) -> list[SentenceWithUser]:
        matched = [
            v
            for v in views
            if (
                not query.q
                or text_contains(v.content, query.q)
                or text_contains(v.book_title, query.q)
                or text_contains(v.author, query.q)
            )
            and text_contains(v.author, query.author)
            and text_contains(v.book_title, query.book)
        ]
        return sort_sentences(matched, query.sort)

    def get_sentence(
        self, sentence_id: int, viewer_id: int | None = None
    ) -> SentenceWithUser | None:
        sentence = self.sentences.get(sentence_id)
        if sentence is None:
            return None
        return self._view(sentence, viewer_id)

    def list_visible_sentences(
        self,
        query: SentenceQuery,
        viewer_id: int | None,
        *,
        liked_only: bool = False,
    ) -> list[SentenceWithUser]:
        if liked_only and viewer_id is None:
            return []

        def predicate(s: Sentence) -> bool:
            if not self._is_visible(s, viewer_id):
                return False
            return not liked_only or (s.id, viewer_id) in self.likes

        return self._apply_query(self._views(predicate, viewer_id), query)

    def list_public_sentences(
        self, query: SentenceQuery, viewer_id: int | None = None
    ) -> list[SentenceWithUser]:
        return self._apply_query(self._views(lambda s: s.is_public == 1, viewer_id), query)

    def list_user_sentences(
        self,
        user_id: int,
        *,
        search: str | None = None,
        sort: SentenceSort = "latest",
    ) -> list[SentenceWithUser]:
        views = self._views(lambda s: s.user_id == user_id, user_id)
        return self._apply_query(views, SentenceQuery(q=search, sort=sort))

    def search_sentences(self, q: str, viewer_id: int | None) -> list[SentenceWithUser]:
        views = self._views(lambda s: self._is_visible(s, viewer_id), viewer_id)
        matched = [
            v
            for v in views
            if text_contains(v.content, q)
            or text_contains(v.book_title, q)
            or text_contains(v.author, q)
            or (v.user_id is not None and text_contains(v.user.nickname, q))
            or text_contains(v.legacy_nickname, q)
        ]
        return sort_sentences(matched, "latest")

    def list_book_sentences(
        self, book_title: str, viewer_id: int | None
    ) -> list[SentenceWithUser]:
        views = self._views(
            lambda s: s.book_title == book_title and self._is_visible(s, viewer_id),
            viewer_id,
        )
        return sort_sentences(views, "latest")

    def create_sentence(self, user_id: int, data: SentenceCreate) -> SentenceWithUser:
        with self._lock:
            now = utcnow()
            sentence = Sentence(
                id=self._next_id("sentences"),
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
                legacy_nickname=None,
            )
            self.sentences[sentence.id] = sentence
            self._adjust_book_sentence_count(sentence.book_title, 1)
            return self._view(sentence, user_id)

    def update_sentence(
        self, sentence_id: int, changes: Mapping[str, Any]
    ) -> SentenceWithUser | None:
        with self._lock:
            sentence = self.sentences.get(sentence_id)
            if sentence is None:
                return None
            old_title = sentence.book_title
            for key, value in pick_fields(changes, SENTENCE_MUTABLE_FIELDS).items():
                setattr(sentence, key, value)
            if sentence.book_title != old_title:
                self._adjust_book_sentence_count(old_title, -1)
                self._adjust_book_sentence_count(sentence.book_title, 1)
            sentence.updated_at = utcnow()
            return self._view(sentence, sentence.user_id)

    def delete_sentence(self, sentence_id: int) -> bool:
        with self._lock:
            return self._delete_sentence(sentence_id)

    def _delete_sentence(self, sentence_id: int) -> bool:
        sentence = self.sentences.get(sentence_id)
        if sentence is None:
            return False
        self.likes = {pair for pair in self.likes if pair[0] != sentence_id}
        for key in [k for k in self.community_sentences if k[1] == sentence_id]:
            del self.community_sentences[key]
            community = self.communities.get(key[0])
            if community is not None:
                community.sentence_count = max(0, community.sentence_count - 1)
                community.total_likes = max(0, community.total_likes - sentence.likes)
        self._adjust_book_sentence_count(sentence.book_title, -1)
        del self.sentences[sentence_id]
        return True

    def _adjust_book_sentence_count(self, title: str | None, delta: int) -> None:
        if not title:
            return
        for book in self.books.values():
            if book.title == title:
                book.sentence_count = max(0, book.sentence_count + delta)

    # Likes ---------------------------------------------------------------

    def liked_sentence_ids(self, user_id: int) -> set[int]:
        return {sentence_id for sentence_id, uid in self.likes if uid == user_id}

    def _adjust_community_likes(self, sentence_id: int, delta: int) -> None:
        for community_id, linked_id in self.community_sentences:
            if linked_id == sentence_id and community_id in self.communities:
                community = self.communities[community_id]
                community.total_likes = max(0, community.total_likes + delta)

    def _unlike(self, sentence_id: int, user_id: int) -> None:
        self.likes.discard((sentence_id, user_id))
        sentence = self.sentences[sentence_id]
        sentence.likes = max(0, sentence.likes - 1)
        self._adjust_community_likes(sentence_id, -1)

    def toggle_like(self, sentence_id: int, user_id: int) -> LikeResponse | None:
        with self._lock:
            sentence = self.sentences.get(sentence_id)
            if sentence is None:
                return None
            if (sentence_id, user_id) in self.likes:
                self._unlike(sentence_id, user_id)
                return LikeResponse(is_liked=False, likes=sentence.likes)
            self.likes.add((sentence_id, user_id))
            sentence.likes += 1
            self._adjust_community_likes(sentence_id, 1)
            return LikeResponse(is_liked=True, likes=sentence.likes)

    def remove_like(self, sentence_id: int, user_id: int) -> LikeResponse | None:
        with self._lock:
            sentence = self.sentences.get(sentence_id)
            if sentence is None:
                return None
            if (sentence_id, user_id) in self.likes:
                self._unlike(sentence_id, user_id)
            return LikeResponse(is_liked=False, likes=sentence.likes)

    # Communities ---------------------------------------------------------

    def _top_sentences(self, community_id: int, viewer_id: int | None) -> list[SentenceWithUser]:
        linked = [
            self.sentences[sid]
            for cid, sid in self.community_sentences
            if cid == community_id and sid in self.sentences
        ]
        linked.sort(key=lambda s: (-s.likes, s.id))
        return [
            self._view(s, viewer_id).for_viewer(viewer_id)
            for s in linked[:TOP_SENTENCE_COUNT]
        ]

    def _community_view(
        self,
        community: Community,
        viewer_id: int | None,
        now: datetime,
        *,
        include_top_sentences: bool = False,
    ) -> CommunityWithStats:
        creator = (
            self.users.get(community.creator_id) if community.creator_id is not None else None
        )
        membership = (
            self.members.get((community.id, viewer_id)) if viewer_id is not None else None
        )
        top = self._top_sentences(community.id, viewer_id) if include_top_sentences else None
        return community_view(
            community, creator=creator, membership=membership, now=now, top_sentences=top
        )

    def list_communities(self, query: CommunityQuery) -> list[CommunityWithStats]:
        now = utcnow()
        candidates = [
            c
            for c in self.communities.values()
            if (
                c.is_public == 1
                or (query.viewer_id is not None and (c.id, query.viewer_id) in self.members)
            )
            and community_matches(c, query.search)
        ]
        ranked = sort_communities(candidates, query.sort, now)
        page = paginate(ranked, query.offset, query.limit)
        return [
            self._community_view(
                c,
                query.viewer_id,
                now,
                include_top_sentences=query.include_top_sentences,
            )
            for c in page
        ]

    def list_user_communities(self, user_id: int) -> list[CommunityWithStats]:
        now = utcnow()
        memberships = [m for (_, uid), m in self.members.items() if uid == user_id]
        memberships.sort(key=lambda m: (as_utc(m.joined_at), m.id), reverse=True)
        return [
            self._community_view(self.communities[m.community_id], user_id, now)
            for m in memberships
            if m.community_id in self.communities
        ]

    def get_community(
        self, community_id: int, viewer_id: int | None = None
    ) -> CommunityWithStats | None:
        community = self.communities.get(community_id)
        if community is None:
            return None
        return self._community_view(community, viewer_id, utcnow())

    def get_community_by_name(self, name: str) -> Community | None:
        return next((c for c in self.communities.values() if c.name == name), None)

    def create_community(self, creator_id: int, data: CommunityCreate) -> CommunityWithStats:
        with self._lock:
            if self.get_community_by_name(data.name) is not None:
                raise BusinessRuleViolation("A community with this name already exists")
            now = utcnow()
            community = Community(
                id=self._next_id("communities"),
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
            self.communities[community.id] = community
            self.members[(community.id, creator_id)] = CommunityMember(
                id=self._next_id("community_members"),
                community_id=community.id,
                user_id=creator_id,
                role=COMMUNITY_ROLE_OWNER,
                joined_at=now,
            )
            return self._community_view(community, creator_id, now)

    def update_community(
        self, community_id: int, changes: Mapping[str, Any], viewer_id: int | None = None
    ) -> CommunityWithStats | None:
        with self._lock:
            community = self.communities.get(community_id)
            if community is None:
                return None
            values = pick_fields(changes, COMMUNITY_MUTABLE_FIELDS)
            name = values.get("name")
            if name is not None:
                holder = self.get_community_by_name(name)
                if holder is not None and holder.id != community_id:
                    raise BusinessRuleViolation("A community with this name already exists")
            for key, value in values.items():
                setattr(community, key, value)
            community.updated_at = utcnow()
            return self._community_view(community, viewer_id, utcnow())

    def delete_community(self, community_id: int) -> bool:
        with self._lock:
            if community_id not in self.communities:
                return False
            for key in [k for k in self.members if k[0] == community_id]:
                del self.members[key]
            for key in [k for k in self.community_sentences if k[0] == community_id]:
                del self.community_sentences[key]
            del self.communities[community_id]
            return True

    def get_membership(self, community_id: int, user_id: int) -> CommunityMember | None:
        return self.members.get((community_id, user_id))

    def join_community(self, community_id: int, user_id: int) -> bool:
        with self._lock:
            community = self.communities.get(community_id)
            if community is None or (community_id, user_id) in self.members:
                return False
            self.members[(community_id, user_id)] = CommunityMember(
                id=self._next_id("community_members"),
                community_id=community_id,
                user_id=user_id,
                role=COMMUNITY_ROLE_MEMBER,
                joined_at=utcnow(),
            )
            community.member_count += 1
            return True

    def leave_community(self, community_id: int, user_id: int) -> bool:
        with self._lock:
            if self.members.pop((community_id, user_id), None) is None:
                return False
            community = self.communities.get(community_id)
            if community is not None:
                community.member_count = max(0, community.member_count - 1)
            return True

    def add_sentence_to_community(self, community_id: int, sentence_id: int) -> bool:
        with self._lock:
            community = self.communities.get(community_id)
            sentence = self.sentences.get(sentence_id)
            if community is None or sentence is None:
                return False
            if (community_id, sentence_id) in self.community_sentences:
                return False
            now = utcnow()
            self.community_sentences[(community_id, sentence_id)] = CommunitySentence(
                id=self._next_id("community_sentences"),
                community_id=community_id,
                sentence_id=sentence_id,
                added_at=now,
            )
            community.sentence_count += 1
            community.total_likes += sentence.likes
            community.last_activity_at = now
            return True

    def list_community_sentences(
        self,
        community_id: int,
        sort: SentenceSort = "latest",
        viewer_id: int | None = None,
    ) -> list[SentenceWithUser]:
        views = [
            self._view(self.sentences[sid], viewer_id)
            for cid, sid in self.community_sentences
            if cid == community_id and sid in self.sentences
        ]
        return sort_sentences(views, sort)

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

    def _public_views(self) -> list[SentenceWithUser]:
        return self._views(lambda s: s.is_public == 1, None)

    def overall_stats(self) -> OverallStats:
        popular = sort_sentences(self._public_views(), "likes")[:POPULAR_SENTENCE_COUNT]
        return OverallStats(
            total_sentences=len(self.sentences),
            total_users=len(self.users),
            total_likes=sum(s.likes for s in self.sentences.values()),
            popular_sentences=[s.for_viewer(None) for s in popular],
        )

    def _contributors(self, *, by_likes: bool, limit: int) -> list[Contributor]:
        counts: dict[int, int] = defaultdict(int)
        likes: dict[int, int] = defaultdict(int)
        for sentence in self.sentences.values():
            if sentence.is_public == 1 and sentence.user_id in self.users:
                counts[sentence.user_id] += 1
                likes[sentence.user_id] += sentence.likes
        rows = [
            Contributor(
                user_id=uid,
                nickname=self.users[uid].nickname,
                profile_image=self.users[uid].profile_image,
                sentence_count=counts[uid],
                total_likes=likes[uid],
            )
            for uid in counts
        ]
        if by_likes:
            rows.sort(key=lambda r: (-r.total_likes, -r.sentence_count, r.user_id))
        else:
            rows.sort(key=lambda r: (-r.sentence_count, -r.total_likes, r.user_id))
        return rows[:limit]

    def public_feed_stats(self) -> PublicFeedStats:
        public = self._public_views()
        top = sort_sentences(public, "likes")[:TOP_SENTENCE_COUNT]
        return PublicFeedStats(
            top_sentences=[s.for_viewer(None) for s in top],
            top_contributors=self._contributors(by_likes=True, limit=TOP_CONTRIBUTOR_COUNT),
            total_sentences=len(public),
            total_users=len({s.user_id for s in public if s.user_id is not None}),
        )

    def recent_activity(self, limit: int) -> list[RecentActivity]:
        recent = sort_sentences(self._public_views(), "latest")[:limit]
        return [
            RecentActivity(
                content=s.content,
                book_title=s.book_title,
                user_nickname=s.user.nickname,
                created_at=s.created_at,
            )
            for s in recent
        ]

    def top_contributors(self, limit: int) -> list[Contributor]:
        return self._contributors(by_likes=False, limit=limit)

    # Books ---------------------------------------------------------------

    def search_cached_books(self, q: str) -> list[Book]:
        matched = [
            b
            for b in self.books.values()
            if text_contains(b.title, q)
            or text_contains(b.author, q)
            or text_contains(b.publisher, q)
        ]
        matched.sort(key=lambda b: (-b.search_count, b.id))
        return matched[:BOOK_SEARCH_LIMIT]

    def get_or_create_book(self, data: BookCreate) -> Book:
        with self._lock:
            existing: Book | None = None
            if data.isbn:
                existing = next((b for b in self.books.values() if b.isbn == data.isbn), None)
            if existing is None:
                existing = next(
                    (
                        b
                        for b in sorted(self.books.values(), key=lambda b: b.id)
                        if b.title == data.title and b.author == data.author
                    ),
                    None,
                )
            now = utcnow()
            if existing is not None:
                existing.search_count += 1
                existing.updated_at = now
                return existing
            book = Book(
                id=self._next_id("books"),
                isbn=data.isbn or None,
                title=data.title,
                author=data.author,
                publisher=data.publisher,
                cover=data.cover,
                search_count=1,
                sentence_count=sum(
                    1 for s in self.sentences.values() if s.book_title == data.title
                ),
                created_at=now,
                updated_at=now,
            )
            self.books[book.id] = book
            return book

    def _book_groups(self) -> list[BookWithStats]:
        groups: dict[tuple[str, str | None], list[Sentence]] = defaultdict(list)
        for sentence in self.sentences.values():
            if sentence.is_public == 1 and sentence.book_title:
                groups[(sentence.book_title, sentence.author)].append(sentence)
        cached = sorted(self.books.values(), key=lambda b: b.id)
        results = []
        for (title, author), rows in groups.items():
            book = next((b for b in cached if b.title == title), None)
            publishers = [s.publisher for s in rows if s.publisher]
            results.append(
                BookWithStats(
                    title=title,
                    author=author,
                    publisher=max(publishers) if publishers else None,
                    isbn=book.isbn if book is not None else None,
                    cover=book.cover if book is not None else None,
                    total_sentences=len(rows),
                    total_likes=sum(s.likes for s in rows),
                    last_added_at=max(as_utc(s.created_at) for s in rows),
                )
            )
        return results

    def popular_books(self, limit: int) -> list[BookWithStats]:
        groups = self._book_groups()
        groups.sort(
            key=lambda b: (-b.total_sentences, -b.total_likes, b.title, b.author or "")
        )
        return groups[:limit]

    def recent_books(self, limit: int) -> list[BookWithStats]:
        groups = sorted(self._book_groups(), key=lambda b: (b.title, b.author or ""))
        groups.sort(key=lambda b: b.last_added_at, reverse=True)
        return groups[:limit]

    def author_stats(self) -> list[AuthorStats]:
        groups: dict[str, list[Sentence]] = defaultdict(list)
        for sentence in self.sentences.values():
            if sentence.is_public == 1 and sentence.author:
                groups[sentence.author].append(sentence)
        stats = [
            AuthorStats(
                author=author,
                sentence_count=len(rows),
                total_likes=sum(s.likes for s in rows),
                books=sorted({s.book_title for s in rows if s.book_title}),
            )
            for author, rows in groups.items()
        ]
        stats.sort(key=lambda a: (-a.sentence_count, a.author))
        return stats

    # Password reset ------------------------------------------------------

    def create_password_reset_token(
        self, user_id: int, token: str, expires_at: datetime
    ) -> PasswordResetToken:
        with self._lock:
            for existing in [t for t, row in self.reset_tokens.items() if row.user_id == user_id]:
                del self.reset_tokens[existing]
            row = PasswordResetToken(
                id=self._next_id("password_reset_tokens"),
                user_id=user_id,
                token=token,
                expires_at=expires_at,
                created_at=utcnow(),
            )
            self.reset_tokens[token] = row
            return row

    def get_password_reset_token(self, token: str) -> PasswordResetToken | None:
        return self.reset_tokens.get(token)

    def consume_password_reset_token(
        self, token: str, password_hash: str, now: datetime
    ) -> bool:
        with self._lock:
            row = self.reset_tokens.get(token)
            if row is None or as_utc(row.expires_at) <= as_utc(now):
                return False
            if not self.update_password(row.user_id, password_hash):
                return False
            del self.reset_tokens[token]
            return True


_memory_storage: MemoryStorage | None = None


def get_memory_storage() -> MemoryStorage:
    """Return the process-wide in-memory store, creating it on first use."""
    global _memory_storage
    if _memory_storage is None:
        logger.warning("Using in-memory storage; data will not survive a restart")
        _memory_storage = MemoryStorage()
    return _memory_storage
