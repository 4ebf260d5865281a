"""
================================================================================
MangaReader - Sources
================================================================================
Upstream catalog access and the chapter aggregation pipeline.

Nothing in here imports Flask: the app wires a log callback in through
set_log_callback() and reaches the client through get_client().

Environment:
  MANGADEX_API_URL           API root (default https://api.mangadex.org)
  MANGADEX_LANGUAGE          Target translation language (default en)
  MANGADEX_TIMEOUT           Per-request timeout in seconds (default 8)
  MANGADEX_MAX_ATTEMPTS      Attempts per request incl. the first (default 3)
  MANGADEX_RETRY_BASE_DELAY  First backoff delay in seconds (default 1.0)
================================================================================
"""

import os
import threading
from typing import Optional

from .base import (
    CanonicalChapter, ChapterInfo, MangaResult, PageResult, RawChapterRecord,
    ReaderContext, TagResult, set_log_callback, source_log
)
from .chapter_reducer import find_neighbors, reduce_chapters
from .mangadex import MangaDexClient
from .retry import RetryPolicy, UpstreamError, is_retryable_status

__all__ = [
    "CanonicalChapter", "ChapterInfo", "MangaResult", "PageResult",
    "RawChapterRecord", "ReaderContext", "TagResult",
    "MangaDexClient", "RetryPolicy", "UpstreamError",
    "find_neighbors", "reduce_chapters", "is_retryable_status",
    "get_client", "set_client", "create_client_from_env",
    "set_log_callback", "source_log",
]


def create_client_from_env() -> MangaDexClient:
    """Build a client from MANGADEX_* environment variables."""
    policy = RetryPolicy(
        max_attempts=int(os.environ.get("MANGADEX_MAX_ATTEMPTS", "3")),
        base_delay=float(os.environ.get("MANGADEX_RETRY_BASE_DELAY", "1.0")),
    )
    return MangaDexClient(
        base_url=os.environ.get("MANGADEX_API_URL", MangaDexClient.BASE_URL),
        timeout=float(os.environ.get("MANGADEX_TIMEOUT", "8")),
        retry_policy=policy,
        language=os.environ.get("MANGADEX_LANGUAGE", "en"),
    )


# Global instance
_client: Optional[MangaDexClient] = None
_client_lock = threading.Lock()


def get_client() -> MangaDexClient:
    """Get or create the global MangaDexClient instance."""
    global _client
    with _client_lock:
        if _client is None:
            _client = create_client_from_env()
        return _client


def set_client(client: Optional[MangaDexClient]) -> None:
    """Replace the global client (None resets it to the env default)."""
    global _client
    with _client_lock:
        _client = client
