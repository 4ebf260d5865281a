from flask import Blueprint, current_app, jsonify
from mangareader_app.log import drain_messages

main_bp = Blueprint('main_api', __name__)


@main_bp.route('/')
def index():
    """Service banner with the configured upstream."""
    client = current_app.extensions['mangadex']
    return jsonify({
        'name': 'MangaReader',
        'upstream': client.base_url,
        'language': client.language,
    })


@main_bp.route('/api/logs')
def get_logs():
    """Get pending log messages."""
    return jsonify({'logs': drain_messages()})
