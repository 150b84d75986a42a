# src/sentence_stash/api/endpoints/__init__.py
"""API endpoint modules."""

from .admin import router as admin_router
from .auth import router as auth_router
from .books import router as books_router
from .communities import router as communities_router
from .export import router as export_router
from .sentences import router as sentences_router
from .sentences import search_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "sentences_router",
    "search_router",
    "communities_router",
    "users_router",
    "books_router",
    "export_router",
    "admin_router",
]
