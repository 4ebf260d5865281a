"""
================================================================================
MangaReader - MangaDex Client
================================================================================
MangaDex API v5 client.

CHAPTER AGGREGATION:
  - /manga/{id}/feed is paginated at 100 records per request
  - We walk it from offset 0 until the reported total, a short page,
    or the 5000-record safety ceiling
  - Each page request gets its own retry budget (5xx/429/transport only)
  - A page that still fails ends the walk; we keep what we already have
  - The raw records then go through reduce_chapters()

MANGADEX API RULES:
  - User-Agent MUST identify your app (no browser spoofing)
  - Don't send auth headers when downloading images
  - Use /at-home/server/ for dynamic CDN URLs
================================================================================
"""

from typing import Any, Dict, List, Optional, Sequence

import requests

from .base import (
    ChapterInfo, CanonicalChapter, MangaResult, PageResult, RawChapterRecord,
    ReaderContext, TagResult, source_log
)
from .chapter_reducer import find_neighbors, reduce_chapters
from .retry import RetryPolicy, UpstreamError


# Curated titles for the landing page. Search terms are tried in order;
# exclude terms weed out spin-offs and side stories that share the name.
FEATURED_MANGA = [
    {
        "preferred": "Kage no Jitsuryokusha ni Naritakute!",
        "search_terms": ["Kage no Jitsuryokusha ni Naritakute", "The Eminence in Shadow"],
        "exclude_terms": ["Master of Garden", "Shichikage", "side story", "spin-off"],
    },
    {
        "preferred": "Chainsaw Man",
        "search_terms": ["Chainsaw Man"],
        "exclude_terms": [],
    },
    {
        "preferred": "Berserk",
        "search_terms": ["Berserk"],
        "exclude_terms": ["Gluttony", "of Gluttony", "Golden Age"],
    },
    {
        "preferred": "The Breaker",
        "search_terms": ["The Breaker"],
        "exclude_terms": ["New Waves", "Eternal Force", "Doom Breaker", "Doom"],
    },
    {
        "preferred": "Horimiya",
        "search_terms": ["Horimiya"],
        "exclude_terms": ["piece", "omake"],
    },
    {
        "preferred": "Eyeshield 21",
        "search_terms": ["Eyeshield 21"],
        "exclude_terms": ["Brain x Brave", "side story", "special"],
    },
]


class MangaDexClient:
    """
    MangaDex API client.

    Stateless between calls apart from the HTTP session, so one instance can
    serve concurrent requests for different manga.
    """

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    BASE_URL = "https://api.mangadex.org"
    USER_AGENT = "MangaReader/1.0"

    PAGE_SIZE = 100          # MangaDex max per feed request
    MAX_RECORDS = 5000       # Safety bound, 50 pages
    SEARCH_LIMIT = 12
    FEATURED_SEARCH_LIMIT = 15

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout: float = 8,
        retry_policy: Optional[RetryPolicy] = None,
        language: str = "en"
    ):
        self.session = session if session is not None else requests.Session()
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.language = language

    # =========================================================================
    # REQUEST HELPERS
    # =========================================================================

    def _headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json"
        }

    def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        One GET against the API, no retries.

        Raises:
            UpstreamError: retryable for 5xx/429, transport errors and
                undecodable bodies; permanent for other 4xx and non-object JSON.
        """
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise UpstreamError(f"{endpoint}: {e}", retryable=True) from e

        if not 200 <= response.status_code < 300:
            raise UpstreamError.from_status(response.status_code, endpoint)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"{endpoint}: malformed JSON", retryable=True) from e

        if not isinstance(data, dict):
            raise UpstreamError(f"{endpoint}: expected a JSON object")
        return data

    def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET with the client's retry policy applied."""
        return self.retry_policy.call(self._get_json, endpoint, params)

    # =========================================================================
    # CHAPTER AGGREGATION
    # =========================================================================

    def fetch_all_chapters(self, manga_id: str, language: Optional[str] = None) -> List[RawChapterRecord]:
        """
        Walk the whole chapter feed for a manga.

        Never raises. A failure part-way through returns the records gathered
        before it, so one bad late page doesn't cost the earlier ones.
        """
        language = language or self.language
        records: List[RawChapterRecord] = []
        offset = 0

        while offset < self.MAX_RECORDS:
            params = {
                "limit": self.PAGE_SIZE,
                "offset": offset,
                "translatedLanguage[]": [language],
                "order[chapter]": "asc",
            }

            try:
                data = self._request(f"/manga/{manga_id}/feed", params)
            except UpstreamError as e:
                source_log(f"⚠️ Feed for {manga_id} stopped at offset {offset}: {e}")
                break

            entries = data.get("data")
            if not isinstance(entries, list):
                source_log(f"⚠️ Feed for {manga_id} returned no data array at offset {offset}")
                break

            for entry in entries:
                try:
                    records.append(RawChapterRecord.from_api(entry))
                except ValueError as e:
                    source_log(f"⚠️ Skipping feed entry: {e}")

            offset += len(entries)
            total = data.get("total")

            if len(entries) < self.PAGE_SIZE:
                break
            if isinstance(total, int) and offset >= total:
                break

        return records[:self.MAX_RECORDS]

    def get_chapters(self, manga_id: str, language: Optional[str] = None) -> List[CanonicalChapter]:
        """
        Deduplicated, sorted chapter list for a manga.

        An empty list means "no chapters available"; it is not an error.
        """
        language = language or self.language
        source_log(f"📖 Fetching chapters for {manga_id}...")
        records = self.fetch_all_chapters(manga_id, language)
        chapters = reduce_chapters(records, language)
        source_log(f"✅ {len(chapters)} unique chapters from {len(records)} records")
        return chapters

    # =========================================================================
    # CATALOG PASS-THROUGH
    # =========================================================================

    def _search_raw(self, params: Dict[str, Any]) -> List[MangaResult]:
        data = self._request("/manga", params)
        results = []
        for entry in data.get("data") or []:
            try:
                results.append(MangaResult.from_api(entry))
            except ValueError:
                continue
        return results

    def search(
        self,
        query: Optional[str] = None,
        limit: int = SEARCH_LIMIT,
        tag_ids: Sequence[str] = ()
    ) -> List[MangaResult]:
        """Popular manga, optionally narrowed by title and tags."""
        params: Dict[str, Any] = {
            "limit": limit,
            "order[followedCount]": "desc",
            "includes[]": ["cover_art"],
            "availableTranslatedLanguage[]": [self.language],
        }
        if query:
            params["title"] = query
        if tag_ids:
            params["includedTags[]"] = list(tag_ids)

        results = [m for m in self._search_raw(params) if m.is_displayable]
        source_log(f"🔍 Search '{query or ''}' returned {len(results)} results")
        return results

    def get_tags(self) -> List[TagResult]:
        data = self._request("/manga/tag")
        tags = []
        for entry in data.get("data") or []:
            try:
                tags.append(TagResult.from_api(entry))
            except ValueError:
                continue
        return tags

    def _best_featured_match(self, candidates: List[MangaResult], entry: Dict[str, Any]) -> Optional[MangaResult]:
        """Shortest title that matches a search term and no exclude term."""
        excludes = [term.lower() for term in entry["exclude_terms"]]
        terms = [term.lower() for term in entry["search_terms"]]

        best = None
        for manga in candidates:
            title = manga.title.lower()
            if not title:
                continue
            if any(term in title for term in excludes):
                continue
            if not any(term in title or title in term for term in terms):
                continue
            if best is None or len(manga.title) < len(best.title):
                best = manga
        return best

    def get_featured(self) -> List[MangaResult]:
        """Resolve the curated featured list against live search results."""
        featured = []
        for entry in FEATURED_MANGA:
            match = None
            for term in entry["search_terms"]:
                params = {
                    "title": term,
                    "limit": self.FEATURED_SEARCH_LIMIT,
                    "includes[]": ["cover_art"],
                    "availableTranslatedLanguage[]": [self.language],
                }
                try:
                    candidates = self._search_raw(params)
                except UpstreamError as e:
                    source_log(f"⚠️ Featured lookup '{term}' failed: {e}")
                    continue
                match = self._best_featured_match(candidates, entry)
                if match:
                    break

            if match:
                featured.append(match)
            else:
                source_log(f"Could not find featured manga: {entry['preferred']}")
        return featured

    # =========================================================================
    # READER
    # =========================================================================

    def get_chapter_info(self, chapter_id: str) -> Optional[ChapterInfo]:
        """Chapter plus its manga; None when MangaDex doesn't know the id."""
        try:
            data = self._request(f"/chapter/{chapter_id}", {"includes[]": ["manga", "cover_art"]})
        except UpstreamError as e:
            if e.status == 404:
                return None
            raise
        try:
            return ChapterInfo.from_api(data.get("data"))
        except ValueError:
            return None

    def get_pages(self, chapter_id: str) -> List[PageResult]:
        """
        Page image URLs for a chapter.

        /at-home/server/ returns geo-optimized CDN URLs that expire after
        15 minutes, so these are never cached.
        """
        data = self._request(f"/at-home/server/{chapter_id}")
        base_url = data.get("baseUrl")
        chapter = data.get("chapter")
        if not isinstance(base_url, str) or not isinstance(chapter, dict):
            return []
        filenames = chapter.get("data")
        if not isinstance(filenames, list):
            return []

        hash_code = chapter.get("hash", "")
        return [
            PageResult(url=f"{base_url}/data/{hash_code}/{filename}", index=i)
            for i, filename in enumerate(filenames)
        ]

    def get_reader_context(self, chapter_id: str) -> Optional[ReaderContext]:
        """Chapter info, the full chapter list, neighbours and pages."""
        info = self.get_chapter_info(chapter_id)
        if info is None:
            return None

        chapters = self.get_chapters(info.manga_id) if info.manga_id else []
        prev_chapter, current, next_chapter = find_neighbors(chapters, chapter_id)

        try:
            pages = self.get_pages(chapter_id)
        except UpstreamError as e:
            source_log(f"⚠️ Pages for {chapter_id} unavailable: {e}")
            pages = []

        return ReaderContext(
            chapter=info,
            chapters=chapters,
            current=current,
            prev_id=prev_chapter.id if prev_chapter else None,
            next_id=next_chapter.id if next_chapter else None,
            pages=pages,
        )

    def __repr__(self) -> str:
        return f"<MangaDexClient base_url='{self.base_url}' language='{self.language}'>"
