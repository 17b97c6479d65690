# -*- coding: utf-8 -*-

import time

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from secret_message.infra.db import db
from secret_message.infra.log import get_logger

health_bp = Blueprint('health', __name__)
logger = get_logger(__name__)


@health_bp.route('/health', methods=['GET', 'HEAD'])
@health_bp.route('/healthz', methods=['GET', 'HEAD'])
def healthz():
    """Liveness check (available at both /health and /healthz)."""
    return jsonify({
        'status': 'healthy',
        'service': 'secret-message',
        'timestamp': time.time()
    }), 200


@health_bp.route('/readyz', methods=['GET', 'HEAD'])
def readyz():
    """Readiness check: the database answers a trivial query."""
    try:
        db.session.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Readiness check failed", error=str(e))
        database_ok = False

    return jsonify({
        'status': 'ready' if database_ok else 'degraded',
        'service': 'secret-message',
        'timestamp': time.time(),
        'checks': {
            'database': database_ok
        }
    }), 200 if database_ok else 503
