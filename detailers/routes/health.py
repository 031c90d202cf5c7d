# -*- coding: utf-8 -*-

from flask import Blueprint, jsonify
from sqlalchemy import text
import time

from detailers import __version__
from detailers.infra.db import db
from detailers.infra.log import get_logger

logger = get_logger("detailers.health")

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET', 'HEAD'])
@health_bp.route('/healthz', methods=['GET', 'HEAD'])
def healthz():
    """Liveness check (available at both /health and /healthz)."""
    return jsonify({
        'status': 'healthy',
        'service': 'detailers-purchases',
        'version': __version__,
        'timestamp': time.time()
    }), 200


@health_bp.route('/readyz', methods=['GET', 'HEAD'])
def readyz():
    """Readiness check: the database must answer."""
    try:
        db.session.execute(text('SELECT 1'))
        database_ok = True
    except Exception as e:
        db.session.rollback()
        logger.error("Readiness database check failed", error=str(e))
        database_ok = False

    return jsonify({
        'status': 'ready' if database_ok else 'not_ready',
        'service': 'detailers-purchases',
        'timestamp': time.time(),
        'checks': {
            'database': database_ok
        }
    }), 200 if database_ok else 503
