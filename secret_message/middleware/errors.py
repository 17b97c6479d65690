"""
Error Handling Middleware
Renders every failure as JSON: {"error", "message", "request_id"[, "details"]}
"""
from flask import jsonify, g
from marshmallow import ValidationError
from sqlalchemy.exc import OperationalError, IntegrityError
from werkzeug.exceptions import HTTPException

from secret_message.errors import ApiError
from secret_message.infra.db import db
from secret_message.infra.log import get_logger

logger = get_logger(__name__)


def error_response(error: str, message: str, status_code: int = 400, details: dict = None):
    """Generate consistent error response with request_id."""
    response = {
        'error': error,
        'message': message,
        'request_id': getattr(g, 'request_id', None)
    }
    if details:
        response['details'] = details
    return jsonify(response), status_code


def register_error_handlers(app):
    """Register JSON error handlers on the app."""

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        if e.status_code >= 500:
            logger.error(f"Request failed: {e.message}", error=e.error, status_code=e.status_code)
        return error_response(e.error, e.message, e.status_code, e.details)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return error_response('validation_error', 'Invalid request data', 400, e.messages)

    @app.errorhandler(OperationalError)
    def handle_operational_error(e):
        """Handle database operational errors (connection, table not found, etc.)"""
        db.session.rollback()
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.error(f"Database operational error: {error_msg}")
        return error_response('database_error', 'Database operation failed. Please try again later.', 503)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        """Handle database integrity errors (foreign key, unique constraint)"""
        db.session.rollback()
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.error(f"Database integrity error: {error_msg}")
        return error_response('duplicate_entry', 'This entry already exists', 409)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        name = (e.name or 'error').lower().replace(' ', '_')
        return error_response(name, e.description or e.name, e.code or 500)
