# src/sentence_stash/api/endpoints/export.py
"""Download a user's collection as CSV, JSON, Markdown or plain text."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Query, Response

from sentence_stash.api.dependencies import CurrentUserDep, StorageDep
from sentence_stash.schemas.stats import ExportStats
from sentence_stash.services.export import (
    DEFAULT_TITLE,
    ExportFormat,
    ExportType,
    build_export,
    content_disposition,
    export_stats,
    filter_by_book,
    filter_by_date,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["export"])


@router.get("")
async def export_sentences(
    current_user: CurrentUserDep,
    storage: StorageDep,
    fmt: ExportFormat = Query("txt", alias="format"),
    export_type: ExportType = Query("all", alias="type"),
    book_title: str | None = Query(None, alias="bookTitle"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
) -> Response:
    """Render the caller's sentences and serve them as an attachment.

    ``type=book`` needs ``bookTitle`` and ``type=date`` needs both dates;
    without them the whole collection is exported.
    """
    sentences = storage.list_user_sentences(current_user.id)
    filename = "sentences"
    title = DEFAULT_TITLE

    if export_type == "book" and book_title:
        sentences = filter_by_book(sentences, book_title)
        filename = f"{book_title}_sentences"
        title = f"{book_title} - Sentences"
    elif export_type == "date" and start_date and end_date:
        sentences = filter_by_date(sentences, start_date, end_date)
        filename = f"sentences_{start_date.isoformat()}_to_{end_date.isoformat()}"
        title = f"{start_date.isoformat()} ~ {end_date.isoformat()} Sentences"

    document = build_export(sentences, fmt, title)
    logger.info(
        "User %s exported %d sentences as %s", current_user.id, len(sentences), fmt
    )
    return Response(
        content=document.body,
        media_type=document.media_type,
        headers={
            "Content-Disposition": content_disposition(f"{filename}.{document.extension}"),
            "Cache-Control": "no-cache",
        },
    )


@router.get("/stats", response_model=ExportStats)
async def export_preview(current_user: CurrentUserDep, storage: StorageDep) -> ExportStats:
    return export_stats(storage.list_user_sentences(current_user.id))
