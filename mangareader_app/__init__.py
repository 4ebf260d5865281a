# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import os
import time
import uuid
from typing import Any, Mapping, Optional
from flask import Flask, g, request


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ('true', '1', 'yes', 'on')


def create_app(config: Optional[Mapping[str, Any]] = None, client=None, favorites=None):
    """
    Create and configure an instance of the Flask application.

    Args:
        config: Overrides applied on top of the environment defaults
        client: MangaDexClient to use instead of the env-configured one
        favorites: FavoritesStore to use instead of the file-backed one
    """
    app = Flask(__name__, instance_relative_config=True)

    # =============================================================================
    # CONFIGURATION
    # =============================================================================
    app.config.from_mapping(
        JSON_SORT_KEYS=False,
        HOST=os.environ.get('FLASK_HOST', '127.0.0.1'),
        PORT=int(os.environ.get('FLASK_PORT', '5000')),
        DEBUG=_env_flag('FLASK_DEBUG'),
        FAVORITES_FILE=os.environ.get('FAVORITES_FILE', os.path.join(app.instance_path, 'favorites.json')),
        DISABLE_RATE_LIMITING=_env_flag('DISABLE_RATE_LIMITING'),
    )
    if config:
        app.config.update(config)

    # Ensure instance folder exists
    os.makedirs(app.instance_path, exist_ok=True)

    # =============================================================================
    # LOGGING and RATE LIMITING
    # =============================================================================
    from .log import log, debug_log_event
    from .rate_limit import init_rate_limiting

    init_rate_limiting(app)

    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex[:12]
        g.request_start = time.time()

    @app.after_request
    def debug_request_log(response):
        duration_ms = None
        start_time = getattr(g, 'request_start', None)
        if start_time:
            duration_ms = int((time.time() - start_time) * 1000)
        debug_log_event({
            'event': 'request',
            'request_id': getattr(g, 'request_id', None),
            'method': request.method,
            'path': request.path,
            'query': request.query_string.decode('utf-8', errors='ignore'),
            'status': response.status_code,
            'duration_ms': duration_ms,
            'remote_addr': request.remote_addr,
        })
        return response

    @app.teardown_request
    def debug_exception_log(error=None):
        if not error:
            return
        debug_log_event({
            'event': 'exception',
            'request_id': getattr(g, 'request_id', None),
            'path': request.path,
            'error_type': error.__class__.__name__,
            'error': str(error)
        })

    # =============================================================================
    # APPLICATION EXTENSIONS (upstream client, favorites)
    # =============================================================================
    from sources import get_client, set_log_callback
    from .favorites import FavoritesStore, JsonFileBackend

    set_log_callback(log)

    app.extensions['mangadex'] = client if client is not None else get_client()
    if favorites is None:
        favorites = FavoritesStore(JsonFileBackend(app.config['FAVORITES_FILE']))
    app.extensions['favorites'] = favorites

    # =============================================================================
    # BLUEPRINTS & ROUTES
    # =============================================================================
    from .routes.main_api import main_bp
    from .routes.manga_api import manga_bp
    from .routes.favorites_api import favorites_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(manga_bp)
    app.register_blueprint(favorites_bp)

    log(f"📚 MangaReader ready (upstream {app.extensions['mangadex'].base_url})")
    return app

# App instance should be created by the caller (run.py or WSGI entrypoint)
