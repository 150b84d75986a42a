# mypy: ignore-errors
# tests/services/test_export.py
"""Tests for collection export rendering."""

import csv
import io
import json
from datetime import UTC, date, datetime

from sentence_stash.services.export import (
    CSV_HEADERS,
    UTF8_BOM,
    build_export,
    content_disposition,
    export_stats,
    filter_by_book,
    filter_by_date,
    group_by_book,
    sort_for_export,
    to_csv,
    to_json,
    to_markdown,
    to_text,
    wrap_words,
)
from sentence_stash.schemas.sentence import SentenceWithUser

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _sentence(sentence_id, content, book=None, author=None, page=None, likes=0, created=NOW):
    return SentenceWithUser(
        id=sentence_id,
        content=content,
        book_title=book,
        author=author,
        page_number=page,
        likes=likes,
        created_at=created,
    )


def test_csv_quotes_and_bom() -> None:
    """Embedded quotes are doubled and the body parses as standard CSV."""
    sentences = [
        _sentence(1, 'She said "hello", then left.', "Book, One", "Kim", 12, likes=2),
        _sentence(2, "Plain line", None, None, None),
    ]
    body = to_csv(sentences)
    assert body.startswith(UTF8_BOM)
    rows = list(csv.reader(io.StringIO(body[len(UTF8_BOM):])))
    assert tuple(rows[0]) == CSV_HEADERS
    assert rows[1] == ["1", 'She said "hello", then left.', "Book, One", "Kim", "12", "2", "2024-03-15", ""]
    assert rows[2] == ["2", "Plain line", "", "", "", "0", "2024-03-15", ""]
    assert '""hello""' in body
    assert '1,"She said ""hello"", then left.","Book, One","Kim",12,2,"2024-03-15",""' in body


def test_csv_empty_collection_is_bom_only() -> None:
    """No sentences means no header row either."""
    assert to_csv([]) == UTF8_BOM


def test_json_export_shape() -> None:
    """Metadata counts distinct books; entries are numbered from one."""
    sentences = [
        _sentence(1, "First", "Alpha", "A", 3, likes=1),
        _sentence(2, "Second", "Alpha", "A", 7),
        _sentence(3, "Third"),
    ]
    data = json.loads(to_json(sentences, NOW))
    assert data["metadata"]["totalSentences"] == 3
    assert data["metadata"]["totalBooks"] == 1
    assert data["metadata"]["exportDate"].startswith("2024-03-15T09:30")
    assert [entry["id"] for entry in data["sentences"]] == [1, 2, 3]
    assert data["sentences"][0]["book"] == {"title": "Alpha", "author": "A", "pageNumber": 3}
    assert data["sentences"][2]["book"] == {"title": None, "author": None, "pageNumber": None}
    assert data["sentences"][0]["stats"]["likes"] == 1


def test_markdown_groups_by_book() -> None:
    """Each book gets a heading; missing titles land in Uncategorized."""
    sentences = [
        _sentence(1, "Loose thought"),
        _sentence(2, "Deep line", "Zen", "Suzuki", 4, likes=5),
    ]
    body = to_markdown(sentences, "Reading Log", NOW)
    assert body.startswith("# Reading Log")
    assert "> 📚 2 sentences" in body
    assert "## 📖 Zen" in body
    assert "*Author: Suzuki*" in body
    assert "### 1. (p.4)" in body
    assert "❤️ 5" in body
    assert "## 📖 Uncategorized" in body
    assert body.rstrip().endswith("*✨ Exported from SentenceStash*")


def test_text_export_wraps_content() -> None:
    """Long sentences are wrapped and indented under a numbered marker."""
    long_content = " ".join(["word"] * 40)
    body = to_text([_sentence(1, long_content, "Long Book", page=9, likes=1)], now=NOW)
    lines = body.split("\n")
    assert lines[0] == "╔" + "═" * 78 + "╗"
    assert "【1】" in lines
    wrapped = [line for line in lines if line.startswith("    word")]
    assert len(wrapped) > 1
    assert all(len(line) <= 74 for line in wrapped)
    assert "    ▸ p.9 | ♥ 1 | 2024-03-15" in lines


def test_wrap_words_keeps_long_words_whole() -> None:
    """A word longer than the width is emitted on its own line."""
    assert wrap_words("a " + "x" * 12 + " b", width=10) == ["a", "x" * 12, "b"]
    assert wrap_words("") == []


def test_sort_and_group_order() -> None:
    """Books sort by title and pages ascending, with a missing page first."""
    sentences = [
        _sentence(1, "c", "beta", page=5),
        _sentence(2, "a", "Alpha", page=9),
        _sentence(3, "b", "Alpha", page=None),
    ]
    assert [s.id for s in sort_for_export(sentences)] == [3, 2, 1]
    assert [title for title, _ in group_by_book(sentences)] == ["Alpha", "beta"]


def test_build_export_media_types() -> None:
    """Each format has its media type and file extension."""
    sentences = [_sentence(1, "x")]
    assert build_export(sentences, "csv", now=NOW).extension == "csv"
    assert build_export(sentences, "json", now=NOW).media_type.startswith("application/json")
    assert build_export(sentences, "markdown", now=NOW).extension == "md"
    assert build_export(sentences, "txt", now=NOW).media_type == "text/plain; charset=utf-8"


def test_filters() -> None:
    """Book filter is exact; date filter includes the whole end day."""
    sentences = [
        _sentence(1, "a", "Alpha", created=datetime(2024, 1, 1, 0, 0, tzinfo=UTC)),
        _sentence(2, "b", "Beta", created=datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC)),
        _sentence(3, "c", "Alpha", created=datetime(2024, 2, 1, 0, 0, tzinfo=UTC)),
    ]
    assert [s.id for s in filter_by_book(sentences, "Alpha")] == [1, 3]
    in_january = filter_by_date(sentences, date(2024, 1, 1), date(2024, 1, 31))
    assert [s.id for s in in_january] == [1, 2]


def test_content_disposition_non_ascii() -> None:
    """Non-ASCII filenames get an RFC 5987 ``filename*`` parameter."""
    assert content_disposition("sentences.txt") == 'attachment; filename="sentences.txt"'
    header = content_disposition("어린왕자_sentences.csv")
    assert header.startswith('attachment; filename="')
    assert "filename*=UTF-8''" in header


def test_export_stats() -> None:
    """Counts, likes and the per-book list ordered by count."""
    sentences = [
        _sentence(1, "abcd", "Alpha", "A", likes=1, created=datetime(2024, 1, 1, tzinfo=UTC)),
        _sentence(2, "ab", "Beta", "B", likes=2, created=datetime(2024, 2, 1, tzinfo=UTC)),
        _sentence(3, "abcdef", "Beta", "B", created=datetime(2024, 3, 1, tzinfo=UTC)),
    ]
    stats = export_stats(sentences)
    assert stats.total_sentences == 3
    assert stats.total_books == 2
    assert stats.total_likes == 3
    assert stats.average_length == 4
    assert stats.book_list[0].title == "Beta"
    assert stats.book_list[0].count == 2
    assert stats.date_range.earliest == datetime(2024, 1, 1, tzinfo=UTC)

    empty = export_stats([])
    assert empty.total_sentences == 0
    assert empty.average_length == 0
