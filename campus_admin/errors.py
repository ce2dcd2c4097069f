"""Error taxonomy and the Flask handlers that render it.

Every failure a handler can produce is one of the classes below. The
handlers registered in ``register_error_handlers`` turn them into the
``{error, details?}`` body so no persistence error or traceback reaches
the client.
"""
from flask import current_app, jsonify
from flask_limiter.errors import RateLimitExceeded
from werkzeug.exceptions import HTTPException

from .extensions import db


class CampusError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500
    message = 'Internal server error'

    def __init__(self, message=None, details=None, extra=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.details = details
        self.extra = extra or {}

    def to_dict(self):
        body = {'error': self.message}
        if self.details is not None:
            body['details'] = self.details
        body.update(self.extra)
        return body


class InvalidToken(CampusError):
    status_code = 401
    message = 'Invalid token'


class AccountNotFound(CampusError):
    status_code = 401
    message = 'Invalid token'


class InvalidCredentials(CampusError):
    status_code = 401
    message = 'Invalid credentials'


class ProfileMissing(CampusError):
    """Account exists without a profile: a data integrity fault."""
    status_code = 500
    message = 'Authentication failed'


class Forbidden(CampusError):
    status_code = 403
    message = 'Access denied'


class ValidationFailed(CampusError):
    status_code = 400
    message = 'Validation failed'

    def __init__(self, details, message=None):
        super().__init__(message, details=list(details))


class DuplicateResource(CampusError):
    status_code = 409
    message = 'Resource already exists'


class ResourceInUse(CampusError):
    """Deleting the record would orphan rows that still reference it."""
    status_code = 409
    message = 'Resource is still in use'


class InvalidStateTransition(CampusError):
    status_code = 400
    message = 'Invalid status transition'


class NotFound(CampusError):
    status_code = 404
    message = 'Resource not found'


class AccountLocked(CampusError):
    status_code = 423
    message = 'Account is locked due to too many failed attempts'


class Unexpected(CampusError):
    status_code = 500
    message = 'Internal server error'


def register_error_handlers(app):

    @app.errorhandler(CampusError)
    def handle_campus_error(error):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(RateLimitExceeded)
    def ratelimit_error(error):
        return jsonify({
            'error': 'Rate limit exceeded',
            'message': 'Too many requests. Please try again later.'
        }), 429

    @app.errorhandler(HTTPException)
    def http_error(error):
        if error.code == 404:
            return jsonify({'error': 'Route not found'}), 404
        return jsonify({'error': error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        db.session.rollback()
        current_app.logger.exception(f"Server error: {str(error)}")
        return jsonify(Unexpected().to_dict()), 500
