"""
Service routes - liveness check.
"""

from flask import Blueprint, current_app, jsonify
from datetime import datetime, timezone
import time

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """Liveness probe; does not touch the database."""
    return jsonify({
        'status': 'OK',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime': round(time.time() - current_app.config['STARTED_AT'], 3),
        'environment': current_app.config['APP_ENV'],
    }), 200
