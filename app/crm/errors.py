"""
Error taxonomy shared by the repository and the HTTP layer.

Every failure a request can hit is a ServiceError carrying an explicit kind
plus the message shown to the caller. Handlers never build error responses by
hand; they raise and let `register_error_handlers` render the JSON body.
"""

from __future__ import annotations

from enum import Enum

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    INTERNAL = "internal_error"


STATUS_BY_KIND = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.METHOD_NOT_ALLOWED: 405,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind.value, "message": self.message}


class BadRequest(ServiceError):
    kind = ErrorKind.BAD_REQUEST


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class InternalError(ServiceError):
    kind = ErrorKind.INTERNAL


class DatabaseUnavailable(RuntimeError):
    """Raised at startup when the database cannot be opened or pinged."""


def _kind_for_http_status(code: int | None) -> ErrorKind:
    if code == 404:
        return ErrorKind.NOT_FOUND
    if code == 405:
        return ErrorKind.METHOD_NOT_ALLOWED
    if code is not None and code < 500:
        return ErrorKind.BAD_REQUEST
    return ErrorKind.INTERNAL


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):
        if e.kind is ErrorKind.INTERNAL:
            current_app.logger.error("Internal error: %s", e.message)
        else:
            current_app.logger.info("%s: %s", e.kind.value, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        kind = _kind_for_http_status(e.code)
        return jsonify({"error": kind.value, "message": e.description or e.name}), e.code or 500
