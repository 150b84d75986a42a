# src/sentence_stash/api/endpoints/admin.py
"""Administrative endpoints behind a short-lived admin token."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from sentence_stash.api.dependencies import AdminDep, StorageDep
from sentence_stash.core.errors import AuthorizationDenied, NotFound
from sentence_stash.core.security import check_admin_password, create_admin_token
from sentence_stash.core.settings import settings
from sentence_stash.schemas.common import MessageResponse
from sentence_stash.schemas.user import AdminAuthRequest, AdminTokenResponse, AdminUserRow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/auth", response_model=AdminTokenResponse)
async def admin_auth(payload: AdminAuthRequest) -> AdminTokenResponse:
    """Exchange ``ADMIN_PASSWORD`` for an admin bearer token."""
    if not check_admin_password(payload.password):
        logger.warning("Rejected admin login attempt")
        raise AuthorizationDenied("Invalid admin password")
    return AdminTokenResponse(
        token=create_admin_token(),
        expires_in=settings.admin_token_expire_minutes * 60,
    )


@router.get("/users", response_model=list[AdminUserRow])
async def list_users(_admin: AdminDep, storage: StorageDep) -> list[AdminUserRow]:
    return storage.list_users()


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: int, _admin: AdminDep, storage: StorageDep) -> MessageResponse:
    """Remove a user together with their sentences, likes and memberships."""
    if not storage.delete_user(user_id):
        raise NotFound("User not found")
    logger.info("Admin deleted user %s", user_id)
    return MessageResponse(message="User deleted")


@router.delete("/sentences/{sentence_id}", response_model=MessageResponse)
async def delete_sentence(
    sentence_id: int, _admin: AdminDep, storage: StorageDep
) -> MessageResponse:
    if not storage.delete_sentence(sentence_id):
        raise NotFound("Sentence not found")
    logger.info("Admin deleted sentence %s", sentence_id)
    return MessageResponse(message="Sentence deleted")
