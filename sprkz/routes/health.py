# -*- coding: utf-8 -*-

import time

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from sprkz import __version__
from sprkz.infra.db import db
from sprkz.services.structured_logging import get_logger

logger = get_logger('sprkz.requests')

health_bp = Blueprint('health', __name__)


@health_bp.route('/api/health', methods=['GET', 'HEAD'])
def health():
    """Liveness plus a database round trip."""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Health check database probe failed: {e}")
        database = 'unavailable'

    status = 'healthy' if database == 'ok' else 'degraded'
    return jsonify({
        'status': status,
        'service': 'sprkz-automation',
        'version': __version__,
        'database': database,
        'timestamp': time.time(),
    }), 200 if database == 'ok' else 503
