from flask import Blueprint, current_app, jsonify, request
from sources import MangaDexClient, UpstreamError
from mangareader_app.log import log
from mangareader_app.rate_limit import limit_heavy, limit_medium
from .validators import sanitize_string, validate_limit, validate_tag_ids, validate_upstream_id

manga_bp = Blueprint('manga_api', __name__, url_prefix='/api')


def _client() -> MangaDexClient:
    return current_app.extensions['mangadex']


@manga_bp.route('/manga')
@limit_medium
def search_manga():
    """Popular manga, optionally filtered by title and genre tags."""
    query = sanitize_string(request.args.get('query', ''), max_length=200).strip()
    limit = validate_limit(request.args.get('limit'))
    tag_ids, error = validate_tag_ids(request.args.getlist('genre'))
    if error:
        return jsonify({'error': error}), 400

    try:
        results = _client().search(query or None, limit=limit, tag_ids=tag_ids)
    except UpstreamError as e:
        log(f"❌ Error fetching manga: {e}")
        return jsonify({'error': 'Failed to fetch manga'}), 500

    return jsonify({'data': [m.to_dict() for m in results]})


@manga_bp.route('/manga/featured')
@limit_heavy
def featured_manga():
    """Curated landing-page titles. Individual misses are skipped, not errors."""
    results = _client().get_featured()
    return jsonify({'data': [m.to_dict() for m in results if m.is_displayable]})


@manga_bp.route('/manga/tags')
@limit_medium
def manga_tags():
    try:
        tags = _client().get_tags()
    except UpstreamError as e:
        log(f"❌ Error fetching tags: {e}")
        return jsonify({'error': 'Failed to fetch tags'}), 500
    return jsonify({'data': [t.to_dict() for t in tags]})


@manga_bp.route('/manga/<manga_id>/chapters')
@limit_heavy
def manga_chapters(manga_id: str):
    """
    Deduplicated chapter list for a manga.

    Always 200: an empty list means the manga has no readable chapters in
    the configured language, which the UI shows as an empty state.
    """
    error = validate_upstream_id(manga_id, 'manga id')
    if error:
        return jsonify({'error': error}), 400

    chapters = _client().get_chapters(manga_id)
    return jsonify({'chapters': [c.to_dict() for c in chapters]})


@manga_bp.route('/chapter/<chapter_id>/pages')
@limit_medium
def chapter_pages(chapter_id: str):
    error = validate_upstream_id(chapter_id, 'chapter id')
    if error:
        return jsonify({'error': error}), 400

    try:
        pages = _client().get_pages(chapter_id)
    except UpstreamError as e:
        log(f"❌ Error fetching pages for {chapter_id}: {e}")
        return jsonify({'error': 'Failed to fetch pages'}), 502

    return jsonify({'pages': [p.url for p in pages]})


@manga_bp.route('/read/<chapter_id>')
@limit_heavy
def reader(chapter_id: str):
    """Everything the reader needs: chapter info, neighbours, page URLs."""
    error = validate_upstream_id(chapter_id, 'chapter id')
    if error:
        return jsonify({'error': error}), 400

    try:
        context = _client().get_reader_context(chapter_id)
    except UpstreamError as e:
        log(f"❌ Error loading chapter {chapter_id}: {e}")
        return jsonify({'error': 'Failed to load chapter'}), 502

    if context is None:
        return jsonify({'error': 'Chapter not found'}), 404

    payload = context.to_dict()
    payload['isFavorite'] = bool(
        context.chapter.manga_id
        and current_app.extensions['favorites'].is_favorite(context.chapter.manga_id)
    )
    return jsonify(payload)
