# src/sentence_stash/api/endpoints/sentences.py
"""Sentence endpoints: the personal collection, the community feed and likes."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Literal

from fastapi import APIRouter, Query, status

from sentence_stash.api.dependencies import CurrentUserDep, OptionalUserDep, StorageDep
from sentence_stash.core.errors import AuthenticationRequired, AuthorizationDenied, NotFound
from sentence_stash.core.security import check_admin_password
from sentence_stash.db.time import utcnow
from sentence_stash.schemas.common import MessageResponse
from sentence_stash.schemas.sentence import (
    AdminDeleteRequest,
    DailySentenceResponse,
    LikeResponse,
    NoteUpdate,
    SentenceCreate,
    SentenceQuery,
    SentenceSort,
    SentenceUpdate,
    SentenceWithUser,
)
from sentence_stash.schemas.stats import PublicFeedStats
from sentence_stash.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sentences", tags=["sentences"])
search_router = APIRouter(tags=["sentences"])

ListSort = Literal["latest", "oldest", "popular", "likes"]


def _sort_key(sort: ListSort) -> SentenceSort:
    return "likes" if sort == "popular" else sort


def for_viewer(
    sentences: Iterable[SentenceWithUser], viewer_id: int | None
) -> list[SentenceWithUser]:
    """Strip private notes from sentences the viewer does not own."""
    return [s.for_viewer(viewer_id) for s in sentences]


def get_visible_sentence(
    storage: Storage, sentence_id: int, viewer_id: int | None
) -> SentenceWithUser:
    """Load a sentence the viewer may see; 404 when missing, 403 when private."""
    sentence = storage.get_sentence(sentence_id, viewer_id)
    if sentence is None:
        raise NotFound("Sentence not found")
    if not sentence.visible_to(viewer_id):
        raise AuthorizationDenied("This sentence is private")
    return sentence


def get_owned_sentence(storage: Storage, sentence_id: int, user_id: int) -> SentenceWithUser:
    """Load a sentence the caller must own; 404 when missing, 403 otherwise."""
    sentence = storage.get_sentence(sentence_id, user_id)
    if sentence is None:
        raise NotFound("Sentence not found")
    if sentence.user_id != user_id:
        raise AuthorizationDenied("You can only change your own sentences")
    return sentence


@router.get("", response_model=list[SentenceWithUser])
async def list_sentences(
    storage: StorageDep,
    viewer: OptionalUserDep,
    search: str | None = None,
    sort: ListSort = "latest",
    filter_: Literal["all", "liked"] = Query("all", alias="filter"),
) -> list[SentenceWithUser]:
    """Public sentences plus the caller's own; ``filter=liked`` requires a login."""
    liked_only = filter_ == "liked"
    if liked_only and viewer is None:
        raise AuthenticationRequired("Log in to see the sentences you liked")
    viewer_id = viewer.id if viewer is not None else None
    query = SentenceQuery(q=search, sort=_sort_key(sort))
    sentences = storage.list_visible_sentences(query, viewer_id, liked_only=liked_only)
    return for_viewer(sentences, viewer_id)


@router.get("/community", response_model=list[SentenceWithUser])
async def list_community_feed(
    storage: StorageDep,
    viewer: OptionalUserDep,
    q: str | None = None,
    sort: SentenceSort = "latest",
    author: str | None = None,
    book: str | None = None,
) -> list[SentenceWithUser]:
    """The public feed: only sentences shared to the community."""
    viewer_id = viewer.id if viewer is not None else None
    query = SentenceQuery(q=q, sort=sort, author=author, book=book)
    return for_viewer(storage.list_public_sentences(query, viewer_id), viewer_id)


@router.get("/community/stats", response_model=PublicFeedStats)
async def community_feed_stats(storage: StorageDep) -> PublicFeedStats:
    return storage.public_feed_stats()


@router.get("/daily", response_model=DailySentenceResponse)
async def daily_sentence(storage: StorageDep, viewer: OptionalUserDep) -> DailySentenceResponse:
    """Sentence of the day, stable for the whole UTC date.

    Picked from the caller's own collection when they have one, otherwise from
    the public feed.
    """
    today = utcnow().date()
    viewer_id = viewer.id if viewer is not None else None
    pool: list[SentenceWithUser] = []
    if viewer_id is not None:
        pool = storage.list_user_sentences(viewer_id)
    if not pool:
        pool = storage.list_public_sentences(SentenceQuery(), viewer_id)
    if not pool:
        return DailySentenceResponse(sentence=None, date=today.isoformat())
    pool.sort(key=lambda s: s.id)
    pick = pool[today.toordinal() % len(pool)]
    return DailySentenceResponse(sentence=pick.for_viewer(viewer_id), date=today.isoformat())


@router.get("/{sentence_id}", response_model=SentenceWithUser)
async def get_sentence(
    sentence_id: int,
    storage: StorageDep,
    viewer: OptionalUserDep,
) -> SentenceWithUser:
    viewer_id = viewer.id if viewer is not None else None
    return get_visible_sentence(storage, sentence_id, viewer_id).for_viewer(viewer_id)


@router.post("", response_model=SentenceWithUser, status_code=status.HTTP_201_CREATED)
async def create_sentence(
    payload: SentenceCreate,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> SentenceWithUser:
    """Save a sentence, optionally linking it into a community the author belongs to."""
    sentence = storage.create_sentence(current_user.id, payload)
    if payload.community_id is not None:
        if storage.get_membership(payload.community_id, current_user.id) is not None:
            storage.add_sentence_to_community(payload.community_id, sentence.id)
        else:
            logger.info(
                "User %s is not a member of community %s; sentence %s not linked",
                current_user.id,
                payload.community_id,
                sentence.id,
            )
    return sentence


@router.put("/{sentence_id}", response_model=SentenceWithUser)
async def update_sentence(
    sentence_id: int,
    payload: SentenceUpdate,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> SentenceWithUser:
    get_owned_sentence(storage, sentence_id, current_user.id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("content") is None:
        changes.pop("content", None)
    updated = storage.update_sentence(sentence_id, changes)
    if updated is None:
        raise NotFound("Sentence not found")
    return updated


@router.put("/{sentence_id}/note", response_model=SentenceWithUser)
async def update_note(
    sentence_id: int,
    payload: NoteUpdate,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> SentenceWithUser:
    get_owned_sentence(storage, sentence_id, current_user.id)
    updated = storage.update_sentence(sentence_id, {"private_note": payload.private_note})
    if updated is None:
        raise NotFound("Sentence not found")
    return updated


@router.delete("/{sentence_id}", response_model=MessageResponse)
async def delete_sentence(
    sentence_id: int,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> MessageResponse:
    get_owned_sentence(storage, sentence_id, current_user.id)
    storage.delete_sentence(sentence_id)
    return MessageResponse(message="Sentence deleted")


@router.delete("/{sentence_id}/admin-delete", response_model=MessageResponse)
async def admin_delete_sentence(
    sentence_id: int,
    payload: AdminDeleteRequest,
    storage: StorageDep,
) -> MessageResponse:
    """Moderator removal gated by the admin password."""
    if not check_admin_password(payload.admin_password):
        raise AuthorizationDenied("Invalid admin password")
    if not storage.delete_sentence(sentence_id):
        raise NotFound("Sentence not found")
    logger.info("Sentence %s deleted by admin", sentence_id)
    return MessageResponse(message="Sentence deleted")


@router.post("/{sentence_id}/like", response_model=LikeResponse)
async def toggle_like(
    sentence_id: int,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> LikeResponse:
    get_visible_sentence(storage, sentence_id, current_user.id)
    result = storage.toggle_like(sentence_id, current_user.id)
    if result is None:
        raise NotFound("Sentence not found")
    return result


@router.delete("/{sentence_id}/like", response_model=LikeResponse)
async def remove_like(
    sentence_id: int,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> LikeResponse:
    get_visible_sentence(storage, sentence_id, current_user.id)
    result = storage.remove_like(sentence_id, current_user.id)
    if result is None:
        raise NotFound("Sentence not found")
    return result


@search_router.get("/search", response_model=list[SentenceWithUser])
async def search_sentences(
    storage: StorageDep,
    viewer: OptionalUserDep,
    q: str = Query(..., min_length=1),
) -> list[SentenceWithUser]:
    """Search visible sentences by text, book, author or nickname."""
    viewer_id = viewer.id if viewer is not None else None
    return for_viewer(storage.search_sentences(q, viewer_id), viewer_id)

