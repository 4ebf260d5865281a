"""
Rate limiting configuration for the MangaReader API.

Uses Flask-Limiter to protect API endpoints from abuse. Every request we
accept can fan out to MangaDex (a chapter list is up to 50 upstream calls),
so the tiers track upstream cost rather than our own.

Rate Limit Tiers:
- Heavy: /api/manga/<id>/chapters, /api/read/<id>, /api/manga/featured
- Medium: /api/manga, /api/manga/tags, /api/chapter/<id>/pages
- Light: /api/favorites
"""

import os
from flask import jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize limiter (will be attached to app in create_app)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri=os.environ.get("RATELIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
    headers_enabled=True,  # Add X-RateLimit-* headers to responses
)


# ==============================================================================
# RATE LIMIT TIERS
# ==============================================================================

# Heavy operations - paginated feed walks, multi-search lookups
HEAVY_LIMIT = "20 per minute"

# Medium operations - single upstream call
MEDIUM_LIMIT = "60 per minute"

# Light operations - local store reads/writes
LIGHT_LIMIT = "120 per minute"


# ==============================================================================
# RATE LIMIT DECORATORS
# ==============================================================================

def limit_heavy(f):
    """Apply heavy rate limit to operations that fan out upstream."""
    return limiter.limit(HEAVY_LIMIT)(f)


def limit_medium(f):
    """Apply medium rate limit to single upstream calls."""
    return limiter.limit(MEDIUM_LIMIT)(f)


def limit_light(f):
    """Apply light rate limit to cheap operations."""
    return limiter.limit(LIGHT_LIMIT)(f)


# ==============================================================================
# ERROR HANDLER
# ==============================================================================

def rate_limit_exceeded_handler(e):
    """Return a JSON 429 with the retry hint."""
    retry_after = e.retry_after if hasattr(e, 'retry_after') else 60
    response = jsonify({
        "error": "Rate limit exceeded",
        "message": str(e.description),
        "retry_after": retry_after
    })
    response.status_code = 429
    response.headers['Retry-After'] = str(retry_after)
    return response


# ==============================================================================
# INITIALIZATION
# ==============================================================================

def init_rate_limiting(app):
    """
    Initialize rate limiting for a Flask app.

    Call this in create_app() after app configuration.
    """
    # The limiter is module-level, so state the flag for every app explicitly
    app.config.setdefault('RATELIMIT_ENABLED', not app.config.get('DISABLE_RATE_LIMITING'))
    limiter.init_app(app)

    # Register custom error handler
    app.errorhandler(429)(rate_limit_exceeded_handler)

    return limiter
