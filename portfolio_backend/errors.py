"""API exception hierarchy and the JSON error handlers."""

import logging
import traceback

from flask import current_app, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from portfolio_backend.extensions import db

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors that map onto a JSON response."""
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message, status_code=None, code=None, details=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        self.payload = payload or {}

    def to_dict(self):
        body = {'success': False, 'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        body.update(self.payload)
        return body


class ValidationError(APIError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class AuthenticationError(APIError):
    status_code = 401
    code = 'NO_TOKEN'


class AuthorizationError(APIError):
    status_code = 403
    code = 'INSUFFICIENT_PERMISSIONS'


class NotFoundError(APIError):
    status_code = 404
    code = 'NOT_FOUND'


class ServiceUnavailableError(APIError):
    status_code = 503
    code = 'SERVICE_UNAVAILABLE'


class EmailDeliveryError(APIError):
    status_code = 502
    code = 'EMAIL_DELIVERY_FAILED'


class NewsletterDispatchError(APIError):
    status_code = 400
    code = 'DISPATCH_FAILED'


def _error_response(body, status_code, exc=None):
    if exc is not None and current_app.config.get('EXPOSE_ERROR_DETAILS'):
        body['stack'] = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return jsonify(body), status_code


def register_error_handlers(app):
    """Attach the JSON error handlers to the application."""

    @app.errorhandler(APIError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error('%s: %s', error.code, error.message)
        return _error_response(error.to_dict(), error.status_code)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        logger.warning('Integrity error: %s', error.orig)
        return _error_response({
            'success': False,
            'error': 'A record with this value already exists',
            'code': 'DUPLICATE_KEY',
        }, 409)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        code = (error.name or 'HTTP_ERROR').upper().replace(' ', '_')
        if error.code == 404:
            message = 'Endpoint or resource not found'
        elif error.code == 429:
            message = 'Too many requests, please try again later'
            code = 'RATE_LIMITED'
        else:
            message = error.description
        return _error_response({'success': False, 'error': message, 'code': code}, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception('Unhandled error')
        return _error_response({
            'success': False,
            'error': 'Internal server error',
            'code': 'INTERNAL_ERROR',
        }, 500, exc=error)
