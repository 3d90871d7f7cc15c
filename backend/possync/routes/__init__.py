# Overview: Shared helpers for the UI-facing API routes.

from flask import jsonify

from ..errors import InsufficientStock, NetworkUnavailable, PartialPersistFailure, RemoteRejected
from ..validation import ValidationError


def error_response(exc: Exception):
    """Render an engine error as one human-readable message."""
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, InsufficientStock):
        return jsonify({"error": str(exc), "shortfalls": exc.shortfalls}), 409
    elif isinstance(exc, NetworkUnavailable):
        status = 503
    elif isinstance(exc, RemoteRejected):
        status = 422
    elif isinstance(exc, PartialPersistFailure):
        status = 500
    else:
        status = 400
    return jsonify({"error": str(exc)}), status
