"""
Application error taxonomy and the Flask handlers that render it as JSON.
"""
import logging

from flask import jsonify
from pydantic import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class PermissionDenied(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 400


class InsufficientCredit(AppError):
    status_code = 400

    def __init__(self, message='No available tests. Please purchase more tests to continue.'):
        super().__init__(message)


class PaymentError(AppError):
    status_code = 502


def register_error_handlers(app):
    """Attach JSON error handlers to the app"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        return jsonify({'success': False, 'message': error.message}), error.status_code

    @app.errorhandler(SchemaValidationError)
    def handle_schema_error(error):
        errors = [
            {'field': '.'.join(str(p) for p in err['loc']), 'msg': err['msg']}
            for err in error.errors()
        ]
        return jsonify({'success': False, 'message': 'Invalid request data', 'errors': errors}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        app.logger.exception(f"Unhandled error: {error}")
        return jsonify({'success': False, 'message': 'Server error'}), 500
