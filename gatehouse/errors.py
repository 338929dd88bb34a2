"""JSON rendering of HTTP errors, shared by the service factories."""

from flask import Flask, jsonify, Response
from werkzeug.exceptions import HTTPException, BadRequest, NotFound, \
    Forbidden, Unauthorized, MethodNotAllowed, BadGateway, \
    InternalServerError, Conflict


def jsonify_exception(error: HTTPException) -> Response:
    exc_resp = error.get_response()
    response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response


def register_error_handlers(app: Flask) -> None:
    """Render werkzeug HTTP exceptions as ``{"reason": ...}``."""
    for exc in (BadRequest, NotFound, Forbidden, Unauthorized,
                MethodNotAllowed, Conflict, BadGateway, InternalServerError):
        app.errorhandler(exc)(jsonify_exception)
