# Overview: Error taxonomy shared by services and routes, plus the app-level handlers
# that turn it into the canonical {"error": "..."} response body.

from __future__ import annotations

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base class for errors that map onto a client-facing status code."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    """400-level input problem."""

    status_code = 400


class AuthenticationError(ApiError):
    """Missing, malformed, invalid or expired credentials."""

    status_code = 401


class AuthorizationError(ApiError):
    """Authenticated, but the role or outlet does not allow the action."""

    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """409-level uniqueness conflict (duplicate username, offer code, reconciliation date)."""

    status_code = 409


class RateLimitError(ApiError):
    status_code = 429

    def __init__(self, message: str, *, retry_after_seconds: int | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


def error_response(message: str, status_code: int):
    return jsonify({"error": message}), status_code


def register_error_handlers(app) -> None:
    """
    Route every failure through one body shape.

    Handlers raise typed ApiError subclasses; anything else is an unexpected
    failure whose details go to the log only.
    """

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        response, status = error_response(exc.message, exc.status_code)
        if isinstance(exc, RateLimitError) and exc.retry_after_seconds is not None:
            response.headers["Retry-After"] = str(exc.retry_after_seconds)
        return response, status

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        current_app.logger.exception("Unhandled error while processing request")
        return error_response("Internal server error", 500)
