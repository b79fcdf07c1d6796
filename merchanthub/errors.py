from flask import jsonify, request, current_app
from werkzeug.exceptions import HTTPException

from extensions import db


class APIError(Exception):
    """Error surfaced to API clients as a JSON body with a `message`."""
    status_code = 400
    error = 'BAD_REQUEST'

    def __init__(self, message, status_code=None, error=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error

    def to_dict(self):
        return {'success': False, 'error': self.error, 'message': self.message}


class ValidationError(APIError):
    status_code = 400
    error = 'VALIDATION_ERROR'


class UnauthorizedError(APIError):
    status_code = 401
    error = 'UNAUTHORIZED'


class ForbiddenError(APIError):
    status_code = 403
    error = 'FORBIDDEN'


class NotFoundError(APIError):
    status_code = 404
    error = 'NOT_FOUND'


class ConflictError(APIError):
    status_code = 409
    error = 'CONFLICT'


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def handle_api_error(ex):
        db.session.rollback()
        return jsonify(ex.to_dict()), ex.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(ex):
        if not request.path.startswith('/api'):
            return ex
        code = (ex.name or 'error').upper().replace(' ', '_')
        return jsonify({'success': False, 'error': code, 'message': ex.description}), ex.code

    @app.errorhandler(Exception)
    def handle_unexpected(ex):
        db.session.rollback()
        current_app.logger.exception("Unhandled exception on %s %s", request.method, request.path)
        return jsonify({
            'success': False,
            'error': 'INTERNAL_ERROR',
            'message': 'An unexpected error occurred.'
        }), 500
