"""
Chapter list reduction.

The feed lists one record per upload, so a popular chapter shows up once per
scanlation group. reduce_chapters() turns that multiset into a display list:

  1. Filter  - needs a chapter number, the target language, and pages
               (a missing page count is accepted, an explicit 0 is not)
  2. Dedup   - one entry per raw chapter-number string, keeping the upload
               with the most pages; ties keep the first one seen
  3. Sort    - by the leading number of the label ("12.5", "5a" -> 5);
               labels with no leading number ("Omake", "Extra") go
               last in the order they were first seen

The dedup key is the raw string, so "10" and "10.0" stay separate chapters.
"""

import math
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .base import CanonicalChapter, RawChapterRecord

# Leading decimal number, read the way a browser parseFloat would
NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _is_eligible(record: RawChapterRecord, language: str) -> bool:
    if not record.chapter_number:
        return False
    if language not in record.languages:
        return False
    if record.page_count is not None and record.page_count == 0:
        return False
    return True


def _to_canonical(record: RawChapterRecord) -> CanonicalChapter:
    return CanonicalChapter(
        id=record.id,
        title=record.title or f"Chapter {record.chapter_number}",
        chapter=record.chapter_number,
        pages=record.page_count or 0,
    )


def chapter_sort_key(chapter_number: str) -> Tuple[int, float]:
    """Numeric labels first by value; anything without a leading number after them."""
    match = NUMERIC_PREFIX.match(chapter_number or "")
    if not match:
        return (1, 0.0)
    value = float(match.group(0))
    if not math.isfinite(value):
        return (1, 0.0)
    return (0, value)


def reduce_chapters(
    records: Iterable[RawChapterRecord],
    language: str = "en"
) -> List[CanonicalChapter]:
    """
    Filter, deduplicate and sort raw feed records.

    Pure and deterministic for a given input order. Malformed records are
    dropped by the filter rather than raising.
    """
    best: Dict[str, CanonicalChapter] = {}

    for record in records:
        if not _is_eligible(record, language):
            continue
        key = record.chapter_number
        current = best.get(key)
        if current is None or (record.page_count or 0) > current.pages:
            best[key] = _to_canonical(record)

    # dicts keep insertion order and sorted() is stable, so equal keys
    # (every unparseable label) stay in first-seen order
    return sorted(best.values(), key=lambda c: chapter_sort_key(c.chapter))


def find_neighbors(
    chapters: Sequence[CanonicalChapter],
    chapter_id: str
) -> Tuple[Optional[CanonicalChapter], Optional[CanonicalChapter], Optional[CanonicalChapter]]:
    """Return (previous, current, next) around chapter_id in a reduced list."""
    for idx, chapter in enumerate(chapters):
        if chapter.id == chapter_id:
            prev_chapter = chapters[idx - 1] if idx > 0 else None
            next_chapter = chapters[idx + 1] if idx + 1 < len(chapters) else None
            return prev_chapter, chapter, next_chapter
    return None, None, None
