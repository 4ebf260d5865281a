"""Lightweight request validation helpers."""

import re
from typing import Any, Dict, List, Tuple, Optional


Rule = Tuple[str, type, Optional[int]]

# MangaDex ids are UUIDs; allow any short dash/alnum token
UPSTREAM_ID_PATTERN = re.compile(r'^[A-Za-z0-9-]{1,64}$')

# Search limits (MangaDex caps list endpoints at 100)
DEFAULT_LIMIT = 12
MAX_LIMIT = 100
MAX_TAGS = 20


def validate_fields(payload: Dict[str, Any], rules: List[Rule]) -> Optional[str]:
    """
    Validate required fields with optional max length.

    Args:
        payload: Incoming JSON dict.
        rules: List of (field, type, max_length or None).

    Returns:
        None if valid, or error message string.
    """
    for field, expected_type, max_len in rules:
        if field not in payload:
            return f"Missing required field: {field}"
        value = payload.get(field)
        if not isinstance(value, expected_type):
            return f"Field '{field}' must be {expected_type.__name__}"
        if max_len is not None and len(str(value)) > max_len:
            return f"Field '{field}' exceeds max length {max_len}"
    return None


def validate_upstream_id(value: Optional[str], label: str = "id") -> Optional[str]:
    """
    Check a manga/chapter id before it goes into an upstream URL path.

    Returns:
        None if valid, or error message string.
    """
    if not value:
        return f"Missing {label}"
    if not UPSTREAM_ID_PATTERN.match(value):
        return f"Invalid {label} format"
    return None


def validate_limit(limit: Any) -> int:
    """Parse a limit, falling back to the default and clamping to 1..MAX_LIMIT."""
    try:
        limit_int = int(limit) if limit is not None else DEFAULT_LIMIT
    except (ValueError, TypeError):
        return DEFAULT_LIMIT
    if limit_int < 1:
        return DEFAULT_LIMIT
    return min(limit_int, MAX_LIMIT)


def validate_tag_ids(values: List[str]) -> Tuple[List[str], Optional[str]]:
    """Keep non-empty tag ids; reject malformed ones."""
    tag_ids = [v.strip() for v in values if v and v.strip()]
    if len(tag_ids) > MAX_TAGS:
        return [], f"Too many tags (max {MAX_TAGS})"
    for tag_id in tag_ids:
        if not UPSTREAM_ID_PATTERN.match(tag_id):
            return [], f"Invalid tag id: {tag_id[:64]}"
    return tag_ids, None


def sanitize_string(value: str, max_length: int = 500, allow_newlines: bool = False) -> str:
    """
    Sanitize a string by removing control characters and limiting length.

    Args:
        value: String to sanitize
        max_length: Maximum allowed length
        allow_newlines: Whether to allow newlines

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return ""

    # Remove control characters (except newlines if allowed)
    if allow_newlines:
        result = ''.join(c for c in value if c >= ' ' or c in '\n\r\t')
    else:
        result = ''.join(c for c in value if c >= ' ')

    # Limit length
    return result[:max_length]
