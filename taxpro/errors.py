"""
API error types and the JSON error responders registered on the app.
"""

from flask import jsonify, request
from werkzeug.exceptions import HTTPException, NotFound, MethodNotAllowed, RequestEntityTooLarge
from typing import Optional, List, Dict
import logging

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors rendered as a JSON error response."""

    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict]] = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        payload = {'success': False, 'error': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(APIError):
    """Request input failed validation. `details` lists field-level problems."""
    status_code = 400

    def __init__(self, message: str = 'Validation failed', details: Optional[List[Dict]] = None):
        super().__init__(message, details)

    @classmethod
    def for_field(cls, field: str, message: str) -> 'ValidationError':
        return cls(details=[{'field': field, 'message': message}])


class ConflictError(APIError):
    """Duplicate email, duplicate tax year and similar uniqueness clashes."""
    status_code = 400


class AuthenticationError(APIError):
    """Missing, invalid or expired credentials, or an unverified account."""
    status_code = 401

    def __init__(self, message: str, kind: str = 'invalid'):
        super().__init__(message)
        self.kind = kind


class AuthorizationError(APIError):
    status_code = 403

    def __init__(self, message: str = 'Access denied'):
        super().__init__(message)


class NotFoundError(APIError):
    status_code = 404


def register_error_handlers(app):
    """Route every failure through a single JSON error responder."""
    from taxpro import db

    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(NotFound)
    def handle_not_found(error):
        return jsonify({
            'success': False,
            'error': 'Route not found',
            'path': request.path,
            'method': request.method
        }), 404

    @app.errorhandler(MethodNotAllowed)
    def handle_method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed',
            'path': request.path,
            'method': request.method
        }), 405

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        max_mb = app.config['MAX_FILE_SIZE'] // (1024 * 1024)
        return jsonify({
            'success': False,
            'error': f'File too large. Maximum size is {max_mb}MB.'
        }), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        db.session.rollback()
        logger.error(f"Unhandled error on {request.method} {request.path}: {error}", exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
