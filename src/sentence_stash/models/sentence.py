# src/sentence_stash/models/sentence.py
"""Models for saved sentences and the likes they receive."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from sentence_stash.db.session import Base
from sentence_stash.db.time import utcnow


class Sentence(Base):
    """A quoted sentence with optional book metadata.

    ``likes`` is a denormalised counter kept equal to the number of
    ``SentenceLike`` rows by relative updates on toggle.
    """

    __tablename__ = "sentences"
    __table_args__ = (
        CheckConstraint("likes >= 0", name="ck_sentences_likes_non_negative"),
        CheckConstraint("is_public IN (0, 1)", name="ck_sentences_is_public"),
        Index("ix_sentences_user_id", "user_id"),
        Index("ix_sentences_is_public_created_at", "is_public", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Null for sentences imported before accounts existed; see legacy_nickname.
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    book_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    publisher: Mapped[str | None] = mapped_column(String(255), nullable=True)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # 0 = private to owner, 1 = listed in the community feed.
    is_public: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    private_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_bookmarked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    legacy_nickname: Mapped[str | None] = mapped_column(String(50), nullable=True)


class SentenceLike(Base):
    """Existence of a row means the user likes the sentence."""

    __tablename__ = "sentence_likes"
    __table_args__ = (
        UniqueConstraint("sentence_id", "user_id", name="uq_sentence_likes_pair"),
        Index("ix_sentence_likes_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sentence_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sentences.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
