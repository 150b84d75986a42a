"""Rendering a user's sentence collection as a downloadable document.

All functions here are pure: they take sentence views and return text, so
the route only has to pick the sentences and set download headers.
"""

from __future__ import annotations

import csv
import io
import json
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Literal
from urllib.parse import quote

from sentence_stash.db.time import as_utc, utcnow
from sentence_stash.schemas.sentence import SentenceWithUser
from sentence_stash.schemas.stats import DateRange, ExportBookEntry, ExportStats

ExportFormat = Literal["csv", "json", "markdown", "txt"]
ExportType = Literal["all", "book", "date"]

BOX_WIDTH = 78
WRAP_WIDTH = 70
INDENT = "    "
UNCATEGORIZED = "Uncategorized"
DEFAULT_TITLE = "My Sentence Collection"
JSON_EXPORT_TITLE = "SentenceStash Export"
CSV_HEADERS = ("No", "Content", "Book Title", "Author", "Page", "Likes", "Created", "Note")
UTF8_BOM = "\ufeff"

_MEDIA_TYPES: dict[str, tuple[str, str]] = {
    "csv": ("text/csv; charset=utf-8", "csv"),
    "json": ("application/json; charset=utf-8", "json"),
    "markdown": ("text/markdown; charset=utf-8", "md"),
    "txt": ("text/plain; charset=utf-8", "txt"),
}


@dataclass(frozen=True)
class ExportDocument:
    """Rendered export body plus what the HTTP layer needs to serve it."""

    body: str
    media_type: str
    extension: str


def title_key(title: str | None) -> str:
    """Locale-insensitive collation key for book titles."""
    return unicodedata.normalize("NFKC", title or "").casefold()


def sort_for_export(sentences: Iterable[SentenceWithUser]) -> list[SentenceWithUser]:
    """Book title first, then page number with a missing page sorting first."""
    return sorted(sentences, key=lambda s: (title_key(s.book_title), s.page_number or 0))


def format_date(value: datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%d")


def wrap_words(text: str, width: int = WRAP_WIDTH) -> list[str]:
    """Greedy word wrap on single spaces; words longer than ``width`` stay whole."""
    lines: list[str] = []
    current = ""
    for word in text.split(" "):
        if len(f"{current} {word}") > width:
            if current:
                lines.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        lines.append(current)
    return lines


def group_by_book(
    sentences: Iterable[SentenceWithUser],
) -> list[tuple[str, list[SentenceWithUser]]]:
    """Group by book title (``Uncategorized`` when missing), sorted for output."""
    groups: dict[str, list[SentenceWithUser]] = {}
    for sentence in sentences:
        groups.setdefault(sentence.book_title or UNCATEGORIZED, []).append(sentence)
    ordered = sorted(groups.items(), key=lambda item: title_key(item[0]))
    return [
        (title, sorted(items, key=lambda s: s.page_number or 0)) for title, items in ordered
    ]


def to_csv(sentences: Sequence[SentenceWithUser]) -> str:
    """Spreadsheet-friendly CSV with a UTF-8 BOM.

    Text columns are always quoted with embedded quotes doubled; an empty
    collection renders as the BOM alone.
    """
    if not sentences:
        return UTF8_BOM
    buffer = io.StringIO()
    buffer.write(UTF8_BOM)
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for index, sentence in enumerate(sentences, start=1):
        writer.writerow(
            [
                index,
                sentence.content,
                sentence.book_title or "",
                sentence.author or "",
                sentence.page_number or "",
                sentence.likes or 0,
                format_date(sentence.created_at),
                "",
            ]
        )
    return buffer.getvalue()


def to_json(sentences: Sequence[SentenceWithUser], now: datetime | None = None) -> str:
    exported_at = as_utc(now or utcnow())
    payload = {
        "metadata": {
            "title": JSON_EXPORT_TITLE,
            "exportDate": exported_at.isoformat(),
            "totalSentences": len(sentences),
            "totalBooks": len({s.book_title for s in sentences if s.book_title}),
        },
        "sentences": [
            {
                "id": index,
                "content": sentence.content,
                "book": {
                    "title": sentence.book_title or None,
                    "author": sentence.author or None,
                    "pageNumber": sentence.page_number or None,
                },
                "stats": {
                    "likes": sentence.likes or 0,
                    "createdAt": as_utc(sentence.created_at).isoformat(),
                },
            }
            for index, sentence in enumerate(sentences, start=1)
        ],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def to_markdown(
    sentences: Sequence[SentenceWithUser],
    title: str = DEFAULT_TITLE,
    now: datetime | None = None,
) -> str:
    lines = [
        f"# {title}",
        "",
        f"> 📅 Created: {format_date(now or utcnow())}",
        f"> 📚 {len(sentences)} sentences",
        "",
        "---",
        "",
    ]
    for book_title, items in group_by_book(sentences):
        lines.append(f"## 📖 {book_title}")
        if items[0].author:
            lines.append(f"*Author: {items[0].author}*")
        lines.append("")
        for index, sentence in enumerate(items, start=1):
            page = f"(p.{sentence.page_number})" if sentence.page_number else ""
            lines.append(f"### {index}. {page}".rstrip())
            lines.append("")
            lines.append(f"> {sentence.content}")
            lines.append("")
            meta = []
            if sentence.likes > 0:
                meta.append(f"❤️ {sentence.likes}")
            meta.append(f"📅 {format_date(sentence.created_at)}")
            lines.append(f"*{' • '.join(meta)}*")
            lines.append("")
        lines.append("---")
        lines.append("")
    lines.append("")
    lines.append("*✨ Exported from SentenceStash*")
    return "\n".join(lines)


def _boxed(text: str, left: str = "║", right: str = "║") -> str:
    return left + text.ljust(BOX_WIDTH) + right


def to_text(
    sentences: Sequence[SentenceWithUser],
    title: str = DEFAULT_TITLE,
    now: datetime | None = None,
) -> str:
    """Decorative plain-text report grouped by book."""
    lines = [
        "╔" + "═" * BOX_WIDTH + "╗",
        _boxed(title.center(BOX_WIDTH)),
        "╠" + "═" * BOX_WIDTH + "╣",
        _boxed(f" {len(sentences)} sentences"),
        _boxed(f" Created: {format_date(now or utcnow())}"),
        "╚" + "═" * BOX_WIDTH + "╝",
        "",
    ]
    for book_title, items in group_by_book(sentences):
        lines.append("")
        lines.append("┌" + "─" * BOX_WIDTH + "┐")
        lines.append(_boxed(f" 📚 {book_title}", "│", "│"))
        if items[0].author:
            lines.append(_boxed(f" ✍️  {items[0].author}", "│", "│"))
        lines.append(_boxed(f" 📝 {len(items)} sentences", "│", "│"))
        lines.append("└" + "─" * BOX_WIDTH + "┘")
        lines.append("")
        for index, sentence in enumerate(items, start=1):
            lines.append(f"【{index}】")
            lines.extend(INDENT + line for line in wrap_words(sentence.content))
            meta = []
            if sentence.page_number:
                meta.append(f"p.{sentence.page_number}")
            if sentence.likes > 0:
                meta.append(f"♥ {sentence.likes}")
            meta.append(format_date(sentence.created_at))
            lines.append(f"{INDENT}▸ {' | '.join(meta)}")
            lines.append("")
    lines.append("")
    lines.append("─" * (BOX_WIDTH + 2))
    lines.append("✨ SentenceStash - keep the sentences that matter to you")
    return "\n".join(lines)


def build_export(
    sentences: Sequence[SentenceWithUser],
    fmt: ExportFormat,
    title: str = DEFAULT_TITLE,
    now: datetime | None = None,
) -> ExportDocument:
    """Sort and render ``sentences`` in the requested format."""
    ordered = sort_for_export(sentences)
    if fmt == "csv":
        body = to_csv(ordered)
    elif fmt == "json":
        body = to_json(ordered, now)
    elif fmt == "markdown":
        body = to_markdown(ordered, title, now)
    else:
        body = to_text(ordered, title, now)
    media_type, extension = _MEDIA_TYPES[fmt]
    return ExportDocument(body=body, media_type=media_type, extension=extension)


def filter_by_book(
    sentences: Iterable[SentenceWithUser], book_title: str
) -> list[SentenceWithUser]:
    return [s for s in sentences if s.book_title == book_title]


def filter_by_date(
    sentences: Iterable[SentenceWithUser], start: date, end: date
) -> list[SentenceWithUser]:
    """Keep sentences created between ``start`` and the end of ``end`` (UTC)."""
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return [s for s in sentences if lower <= as_utc(s.created_at) <= upper]


def content_disposition(filename: str) -> str:
    """``attachment`` header value that survives non-ASCII book titles."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    fallback = fallback.replace('"', "")
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def export_stats(sentences: Sequence[SentenceWithUser]) -> ExportStats:
    """Preview numbers for the export dialog."""
    counts: dict[str, int] = {}
    authors: dict[str, str | None] = {}
    for sentence in sentences:
        if not sentence.book_title:
            continue
        counts[sentence.book_title] = counts.get(sentence.book_title, 0) + 1
        authors.setdefault(sentence.book_title, sentence.author)
    created = [as_utc(s.created_at) for s in sentences]
    average = round(sum(len(s.content) for s in sentences) / len(sentences)) if sentences else 0
    return ExportStats(
        total_sentences=len(sentences),
        total_books=len(counts),
        total_likes=sum(s.likes or 0 for s in sentences),
        average_length=average,
        date_range=DateRange(
            earliest=min(created) if created else None,
            latest=max(created) if created else None,
        ),
        book_list=[
            ExportBookEntry(title=title, count=count, author=authors[title])
            for title, count in sorted(counts.items(), key=lambda item: -item[1])
        ],
    )
