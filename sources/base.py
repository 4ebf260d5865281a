"""
================================================================================
MangaReader - Source Records
================================================================================
Typed records for everything we read from the upstream catalog API.

The upstream JSON is loosely shaped: optional fields go missing, arrays come
back as strings, page counts arrive as null. Every record here is built
through a `from_api()` constructor so the rest of the code can rely on
explicit required-vs-optional fields instead of poking at raw dicts.
================================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional


# =============================================================================
# LOGGING CALLBACK (avoids circular imports)
# =============================================================================

# Global logger callback - set by the Flask app on startup
_log_callback: Optional[Callable[[str], None]] = None

_fallback_logger = logging.getLogger("mangareader.sources")


def set_log_callback(callback: Optional[Callable[[str], None]]) -> None:
    """Set the logging callback function. Called by create_app() on startup."""
    global _log_callback
    _log_callback = callback


def source_log(msg: str) -> None:
    """Log a message using the registered callback or the module logger."""
    if _log_callback:
        _log_callback(msg)
    else:
        _fallback_logger.info(msg)


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _optional_count(value: Any) -> Optional[int]:
    # bool is an int subclass; upstream never means True as "1 page"
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


def _relationship(data: Dict[str, Any], rel_type: str) -> Dict[str, Any]:
    """Return the first relationship of the given type, or an empty dict."""
    for rel in data.get("relationships") or []:
        if isinstance(rel, dict) and rel.get("type") == rel_type:
            return rel
    return {}


def _attributes(data: Dict[str, Any]) -> Dict[str, Any]:
    attrs = data.get("attributes")
    return attrs if isinstance(attrs, dict) else {}


def _localized(values: Any, preferred: str = "en") -> Optional[str]:
    """Pick the preferred-language string from a {lang: text} map."""
    if not isinstance(values, dict) or not values:
        return None
    text = values.get(preferred)
    if isinstance(text, str) and text:
        return text
    for text in values.values():
        if isinstance(text, str) and text:
            return text
    return None


def cover_url(manga_id: str, file_name: str, size: int = 256) -> str:
    """Build the thumbnail URL for a cover art file."""
    return f"https://uploads.mangadex.org/covers/{manga_id}/{file_name}.{size}.jpg"


# =============================================================================
# CHAPTER RECORDS
# =============================================================================

@dataclass(frozen=True)
class RawChapterRecord:
    """
    One chapter entry exactly as the feed reported it.

    Several records may share a chapter number: every scanlation group that
    uploads chapter 12 produces its own record with its own id.
    """
    id: str
    chapter_number: Optional[str] = None   # Free-form label ("12", "12.5", "Omake")
    title: Optional[str] = None
    languages: FrozenSet[str] = frozenset()
    page_count: Optional[int] = None       # None/0 = unknown or not yet available

    @classmethod
    def from_api(cls, entry: Any) -> "RawChapterRecord":
        """
        Build a record from a feed entry.

        Raises:
            ValueError: if the entry has no string `id`.
        """
        if not isinstance(entry, dict):
            raise ValueError("chapter entry is not an object")
        chapter_id = entry.get("id")
        if not isinstance(chapter_id, str) or not chapter_id:
            raise ValueError("chapter entry has no id")

        attrs = _attributes(entry)

        languages = attrs.get("translatedLanguage")
        if isinstance(languages, str):
            languages = [languages]
        elif not isinstance(languages, list):
            languages = []

        return cls(
            id=chapter_id,
            chapter_number=_optional_str(attrs.get("chapter")),
            title=_optional_str(attrs.get("title")),
            languages=frozenset(lang for lang in languages if isinstance(lang, str)),
            page_count=_optional_count(attrs.get("pages")),
        )


@dataclass(frozen=True)
class CanonicalChapter:
    """A deduplicated, display-ready chapter."""
    id: str
    title: str
    chapter: str
    pages: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary for API responses."""
        return {
            "id": self.id,
            "title": self.title,
            "chapter": self.chapter,
            "pages": self.pages,
        }


# =============================================================================
# CATALOG RECORDS
# =============================================================================

@dataclass
class MangaResult:
    """A manga entry from search or the featured list."""
    id: str
    title: str
    cover_url: Optional[str] = None
    description: Optional[str] = None
    manga_plus_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Any) -> "MangaResult":
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise ValueError("manga entry has no id")
        manga_id = data["id"]
        attrs = _attributes(data)

        file_name = _attributes(_relationship(data, "cover_art")).get("fileName")
        links = attrs.get("links") or {}
        mangaplus = links.get("mangaplus") if isinstance(links, dict) else None

        return cls(
            id=manga_id,
            title=_localized(attrs.get("title")) or "",
            cover_url=cover_url(manga_id, file_name) if isinstance(file_name, str) and file_name else None,
            description=(attrs.get("description") or {}).get("en") if isinstance(attrs.get("description"), dict) else None,
            manga_plus_url=f"https://mangaplus.shueisha.co.jp/titles/{mangaplus}" if mangaplus else None,
        )

    @property
    def is_displayable(self) -> bool:
        """Cards need cover art, a title and a description."""
        return bool(self.cover_url and self.title and self.description)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "coverImage": self.cover_url or "",
            "description": self.description or "",
            "mangaPlusUrl": self.manga_plus_url,
        }


@dataclass
class TagResult:
    """A genre/theme tag usable as a search filter."""
    id: str
    name: str
    group: Optional[str] = None

    @classmethod
    def from_api(cls, data: Any) -> "TagResult":
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise ValueError("tag entry has no id")
        attrs = _attributes(data)
        return cls(
            id=data["id"],
            name=_localized(attrs.get("name")) or "",
            group=_optional_str(attrs.get("group")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "group": self.group}


@dataclass
class ChapterInfo:
    """A single chapter with the manga it belongs to."""
    id: str
    manga_id: Optional[str] = None
    manga_title: str = "Manga"
    manga_description: str = ""
    cover_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Any) -> "ChapterInfo":
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise ValueError("chapter entry has no id")
        manga = _relationship(data, "manga")
        manga_id = _optional_str(manga.get("id"))
        manga_attrs = _attributes(manga)

        file_name = _attributes(_relationship(data, "cover_art")).get("fileName")

        return cls(
            id=data["id"],
            manga_id=manga_id,
            manga_title=_localized(manga_attrs.get("title")) or "Manga",
            manga_description=(manga_attrs.get("description") or {}).get("en", "") if isinstance(manga_attrs.get("description"), dict) else "",
            cover_url=cover_url(manga_id, file_name) if manga_id and isinstance(file_name, str) and file_name else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mangaId": self.manga_id,
            "mangaTitle": self.manga_title,
            "mangaDescription": self.manga_description,
            "coverImage": self.cover_url or "",
        }


@dataclass
class PageResult:
    """Standardized page/image information."""
    url: str                         # Image URL
    index: int                       # Page number (0-indexed)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "index": self.index}


@dataclass
class ReaderContext:
    """Everything the reader screen needs for one chapter."""
    chapter: ChapterInfo
    chapters: List[CanonicalChapter] = field(default_factory=list)
    current: Optional[CanonicalChapter] = None
    prev_id: Optional[str] = None
    next_id: Optional[str] = None
    pages: List[PageResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chapter": self.chapter.to_dict(),
            "current": self.current.to_dict() if self.current else None,
            "prevChapterId": self.prev_id,
            "nextChapterId": self.next_id,
            "chapters": [c.to_dict() for c in self.chapters],
            "pages": [p.url for p in self.pages],
        }
