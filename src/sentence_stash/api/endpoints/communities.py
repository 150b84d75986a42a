# src/sentence_stash/api/endpoints/communities.py
"""Community endpoints: discovery feed, membership and shared sentences."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, status

from sentence_stash.api.dependencies import CurrentUserDep, OptionalUserDep, StorageDep
from sentence_stash.core.errors import (
    AuthorizationDenied,
    BusinessRuleViolation,
    NotFound,
)
from sentence_stash.models import COMMUNITY_ROLE_ADMIN, COMMUNITY_ROLE_OWNER
from sentence_stash.schemas.common import MessageResponse
from sentence_stash.schemas.community import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AddSentenceRequest,
    CommunityCreate,
    CommunityQuery,
    CommunitySort,
    CommunityUpdate,
    CommunityWithStats,
)
from sentence_stash.schemas.sentence import SentenceSort, SentenceWithUser
from sentence_stash.storage import Storage

from .sentences import for_viewer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/communities", tags=["communities"])


def get_visible_community(
    storage: Storage, community_id: int, viewer_id: int | None
) -> CommunityWithStats:
    """Load a community the viewer may see.

    Raises:
        NotFound: The community does not exist.
        AuthorizationDenied: The community is private and the viewer is not a member.
    """
    community = storage.get_community(community_id, viewer_id)
    if community is None:
        raise NotFound("Community not found")
    if community.is_public != 1 and not community.is_member:
        raise AuthorizationDenied("This community is private")
    return community


@router.get("", response_model=list[CommunityWithStats])
async def list_public_communities(storage: StorageDep) -> list[CommunityWithStats]:
    """First page of public communities by activity."""
    return storage.list_communities(CommunityQuery())


@router.get("/all", response_model=list[CommunityWithStats])
async def list_all_communities(
    storage: StorageDep,
    viewer: OptionalUserDep,
    sort: CommunitySort = CommunitySort.ACTIVITY,
    q: str = "",
    offset: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    include_top_sentences: bool = Query(False, alias="includeTopSentences"),
) -> list[CommunityWithStats]:
    """Discovery feed: public communities plus private ones the viewer belongs to.

    A page shorter than ``limit`` is the last one.
    """
    query = CommunityQuery(
        sort=sort,
        search=q,
        offset=offset,
        limit=limit,
        include_top_sentences=include_top_sentences,
        viewer_id=viewer.id if viewer is not None else None,
    )
    return storage.list_communities(query)


@router.get("/my", response_model=list[CommunityWithStats])
async def list_my_communities(
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> list[CommunityWithStats]:
    return storage.list_user_communities(current_user.id)


@router.get("/{community_id}", response_model=CommunityWithStats)
async def get_community(
    community_id: int,
    storage: StorageDep,
    viewer: OptionalUserDep,
) -> CommunityWithStats:
    return get_visible_community(storage, community_id, viewer.id if viewer else None)


@router.get("/{community_id}/sentences", response_model=list[SentenceWithUser])
async def list_community_sentences(
    community_id: int,
    storage: StorageDep,
    viewer: OptionalUserDep,
    sort: SentenceSort = "latest",
) -> list[SentenceWithUser]:
    viewer_id = viewer.id if viewer is not None else None
    get_visible_community(storage, community_id, viewer_id)
    sentences = storage.list_community_sentences(community_id, sort, viewer_id)
    return for_viewer(sentences, viewer_id)


@router.post("", response_model=CommunityWithStats, status_code=status.HTTP_201_CREATED)
async def create_community(
    payload: CommunityCreate,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> CommunityWithStats:
    """Create a community owned by the caller."""
    if storage.get_community_by_name(payload.name) is not None:
        raise BusinessRuleViolation("A community with this name already exists")
    community = storage.create_community(current_user.id, payload)
    logger.info("User %s created community %s", current_user.id, community.id)
    return community


@router.put("/{community_id}", response_model=CommunityWithStats)
async def update_community(
    community_id: int,
    payload: CommunityUpdate,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> CommunityWithStats:
    """Edit community metadata; owners and admins only."""
    community = storage.get_community(community_id, current_user.id)
    if community is None:
        raise NotFound("Community not found")
    if community.member_role not in (COMMUNITY_ROLE_OWNER, COMMUNITY_ROLE_ADMIN):
        raise AuthorizationDenied("Only the owner or an admin can edit this community")

    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    new_name = changes.get("name")
    if new_name and new_name != community.name:
        existing = storage.get_community_by_name(new_name)
        if existing is not None and existing.id != community_id:
            raise BusinessRuleViolation("A community with this name already exists")

    updated = storage.update_community(community_id, changes, current_user.id)
    if updated is None:
        raise NotFound("Community not found")
    return updated


@router.delete("/{community_id}", response_model=MessageResponse)
async def delete_community(
    community_id: int,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> MessageResponse:
    community = storage.get_community(community_id, current_user.id)
    if community is None:
        raise NotFound("Community not found")
    if community.member_role != COMMUNITY_ROLE_OWNER:
        raise AuthorizationDenied("Only the owner can delete this community")
    storage.delete_community(community_id)
    logger.info("User %s deleted community %s", current_user.id, community_id)
    return MessageResponse(message="Community deleted")


@router.post("/{community_id}/join", response_model=MessageResponse)
async def join_community(
    community_id: int,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> MessageResponse:
    """Join a community; a second join is rejected without side effects."""
    community = storage.get_community(community_id, current_user.id)
    if community is None:
        raise NotFound("Community not found")
    if community.is_member:
        raise BusinessRuleViolation("Already a member of this community")
    if not storage.join_community(community_id, current_user.id):
        raise BusinessRuleViolation("Already a member of this community")
    return MessageResponse(message="Joined the community")


@router.delete("/{community_id}/leave", response_model=MessageResponse)
async def leave_community(
    community_id: int,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> MessageResponse:
    membership = storage.get_membership(community_id, current_user.id)
    if membership is None:
        if storage.get_community(community_id) is None:
            raise NotFound("Community not found")
        raise BusinessRuleViolation("Not a member of this community")
    if membership.role == COMMUNITY_ROLE_OWNER:
        raise BusinessRuleViolation("The owner cannot leave the community")
    if not storage.leave_community(community_id, current_user.id):
        raise BusinessRuleViolation("Not a member of this community")
    return MessageResponse(message="Left the community")


@router.post("/{community_id}/sentences", response_model=MessageResponse)
async def add_sentence(
    community_id: int,
    payload: AddSentenceRequest,
    current_user: CurrentUserDep,
    storage: StorageDep,
) -> MessageResponse:
    """Share a sentence into a community the caller belongs to."""
    community = storage.get_community(community_id, current_user.id)
    if community is None:
        raise NotFound("Community not found")
    if not community.is_member:
        raise AuthorizationDenied("Only members can add sentences to this community")

    sentence = storage.get_sentence(payload.sentence_id, current_user.id)
    if sentence is None:
        raise NotFound("Sentence not found")
    if not sentence.visible_to(current_user.id):
        raise AuthorizationDenied("This sentence is private")
    if not storage.add_sentence_to_community(community_id, payload.sentence_id):
        raise BusinessRuleViolation("This sentence is already in the community")
    return MessageResponse(message="Sentence added to the community")
