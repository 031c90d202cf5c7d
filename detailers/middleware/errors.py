"""
Error Handling Middleware
Renders every failure as {"success": false, "error": {"code", "message"[, "details"]}}
"""
from flask import jsonify
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from detailers.errors import GatewayError, PurchaseFlowError
from detailers.infra.db import db
from detailers.infra.log import get_logger

logger = get_logger("detailers.errors")


def _db_error_message(e) -> str:
    return str(e.orig) if hasattr(e, "orig") else str(e)


def error_response(code: str, message: str, status_code: int, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return jsonify({'success': False, 'error': error}), status_code


def success_response(data=None, message: str = None, status_code: int = 200):
    body = {'success': True, 'data': data}
    if message:
        body['message'] = message
    return jsonify(body), status_code


def register_error_handlers(app):
    """Register error handlers for the purchase API"""

    @app.errorhandler(PurchaseFlowError)
    def handle_purchase_flow_error(e):
        if isinstance(e, GatewayError):
            logger.error(f"Upstream provider error: {e.code}",
                         error_code=e.code, provider_message=e.provider_message)
        elif e.status_code >= 500:
            logger.error(f"{e.code}: {e.message}", error_code=e.code)
        else:
            logger.info(f"Request rejected: {e.code}", error_code=e.code, status_code=e.status_code)
        body = {'success': False, 'error': e.to_dict()}
        return jsonify(body), e.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        """Handle database integrity errors not absorbed by a service"""
        db.session.rollback()
        logger.error(f"Database integrity error: {_db_error_message(e)}")
        return error_response('DUPLICATE_ENTRY', 'This entry already exists', 409)

    @app.errorhandler(OperationalError)
    def handle_operational_error(e):
        """Handle database operational errors (connection, table not found, etc.)"""
        db.session.rollback()
        logger.error(f"Database operational error: {_db_error_message(e)}")
        return error_response('DATABASE_UNAVAILABLE',
                              'Database operation failed. Please try again later.', 503)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        code = (e.name or 'HTTP_ERROR').upper().replace(' ', '_')
        return error_response(code, e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        logger.exception(f"Unhandled error: {type(e).__name__}")
        return error_response('INTERNAL_SERVER_ERROR', 'An unexpected error occurred', 500)
