"""Service-level endpoints."""

import logging
from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from portfolio_backend.extensions import db

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """Liveness plus a database round trip."""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'connected'
    except SQLAlchemyError as exc:
        logger.error('Health check database error: %s', exc)
        db.session.rollback()
        database = 'unavailable'
    status = 200 if database == 'connected' else 503
    return jsonify({
        'success': status == 200,
        'status': 'ok' if status == 200 else 'degraded',
        'database': database,
        'timestamp': datetime.utcnow().isoformat(),
    }), status
