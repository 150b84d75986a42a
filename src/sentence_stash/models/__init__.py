"""SQLAlchemy models for the SentenceStash application."""

from .book import Book
from .community import (
    COMMUNITY_ROLE_ADMIN,
    COMMUNITY_ROLE_MEMBER,
    COMMUNITY_ROLE_OWNER,
    Community,
    CommunityMember,
    CommunitySentence,
)
from .password_reset import PasswordResetToken
from .sentence import Sentence, SentenceLike
from .user import User

__all__ = [
    "Book",
    "COMMUNITY_ROLE_ADMIN", "COMMUNITY_ROLE_MEMBER", "COMMUNITY_ROLE_OWNER",
    "Community", "CommunityMember", "CommunitySentence",
    "PasswordResetToken",
    "Sentence", "SentenceLike",
    "User",
]
