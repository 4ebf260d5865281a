from flask import Blueprint, current_app, jsonify, request
from mangareader_app.favorites import FavoriteManga, FavoritesStore
from mangareader_app.rate_limit import limit_light
from .validators import validate_fields, validate_upstream_id

favorites_bp = Blueprint('favorites_api', __name__, url_prefix='/api/favorites')


def _store() -> FavoritesStore:
    return current_app.extensions['favorites']


@favorites_bp.route('')
@limit_light
def list_favorites():
    return jsonify({'favorites': [f.to_dict() for f in _store().list()]})


@favorites_bp.route('', methods=['POST'])
@limit_light
def add_favorite():
    """Add a manga to favorites. Adding an existing one is a no-op."""
    data = request.get_json(silent=True) or {}
    error = validate_fields(data, [
        ('id', str, 64),
        ('title', str, 500),
    ])
    if error:
        return jsonify({'error': error}), 400
    error = validate_upstream_id(data['id'], 'manga id')
    if error:
        return jsonify({'error': error}), 400

    try:
        manga = FavoriteManga.from_dict(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    added = _store().add(manga)
    return jsonify({'status': 'ok', 'added': added}), 201 if added else 200


@favorites_bp.route('/<manga_id>')
@limit_light
def check_favorite(manga_id: str):
    return jsonify({'id': manga_id, 'favorite': _store().is_favorite(manga_id)})


@favorites_bp.route('/<manga_id>', methods=['DELETE'])
@limit_light
def remove_favorite(manga_id: str):
    if not _store().remove(manga_id):
        return jsonify({'error': 'Not in favorites'}), 404
    return jsonify({'status': 'ok'})
