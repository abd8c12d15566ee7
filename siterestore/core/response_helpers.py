"""Shared Flask response helpers for the restore polling loop."""

from collections.abc import Mapping

from flask import jsonify, request

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = (
    "Access-Control-Allow-Headers, Origin, Accept, X-Requested-With, Content-Type, "
    "Access-Control-Request-Method, Access-Control-Request-Headers, Authorization"
)


def build_envelope(status, response):
    """Return the ``{status, statusText[, error, message]}`` envelope dict.

    Mappings flagged with ``error`` replace ``statusText`` with their message.
    Any status other than 200/418 marks the envelope as an error carrying the
    raw response as message.
    """
    envelope = {"status": int(status), "statusText": response}
    if isinstance(response, Mapping) and response.get("error"):
        envelope["statusText"] = response.get("message", "")
        envelope["error"] = True
    elif status not in (200, 418):
        envelope["error"] = True
        envelope["message"] = response
    return envelope


def send_response(status, response):
    """Return the JSON envelope; the HTTP status itself is always 200."""
    return jsonify(build_envelope(status, response)), 200


def error_response(exc):
    """Return the envelope for a RestoreError using its own status."""
    return send_response(exc.status, exc.message)


def apply_cors_headers(response):
    """Attach permissive CORS headers echoing the caller origin."""
    origin = request.headers.get("Origin") or "*"
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
    response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
    response.headers["Access-Control-Allow-Credentials"] = "true"
    return response
