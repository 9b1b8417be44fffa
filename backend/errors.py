# backend/errors.py
from flask import jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from models import db


class ApiError(Exception):
    """A business failure reported to the client as ``{status: 0, message}``.

    ``code`` is the HTTP status of the reply. Several routes answer business
    errors with 200 and let ``status`` carry the outcome; the rest use 4xx.
    """

    def __init__(self, message, code=200):
        super().__init__(message)
        self.message = message
        self.code = code


class OrderError(ApiError):
    pass


class StorageError(ApiError):
    def __init__(self, message, code=500):
        super().__init__(message, code)


class PaymentGatewayError(ApiError):
    pass


def respond(message='', data=None, status=1, code=200, **extra):
    body = {'status': status, 'message': message}
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), code


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        # the session save commits db.session, so drop anything half-applied
        db.session.rollback()
        return respond(err.message, status=0, code=err.code)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err):
        db.session.rollback()
        current_app.logger.error('Database error: %s', err)
        return respond('Database error occurred', status=0, code=500)

    @app.errorhandler(404)
    def handle_not_found(err):
        return respond('Route not found', status=0, code=404)

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return respond(err.description, status=0, code=err.code)
