# backend/possync/routes/auth.py
"""
Authentication routes backed by SessionManager.

Sign-in falls back to the stored session while offline; sign-out always
clears the stored session.
"""

from flask import Blueprint, request, jsonify, current_app

from .. import get_engine
from ..errors import PosSyncError, RemoteRejected
from . import error_response

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _public(session: dict | None) -> dict | None:
    if not session:
        return None
    return {k: v for k, v in session.items() if k != "refresh_token"}


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    try:
        session = get_engine().sessions.sign_in(email, password)
    except RemoteRejected as e:
        return jsonify({"error": str(e)}), 401
    except PosSyncError as e:
        return error_response(e)

    return jsonify({"session": _public(session)}), 200


@auth_bp.post("/logout")
def logout_route():
    get_engine().sessions.sign_out()
    return jsonify({"ok": True}), 200


@auth_bp.get("/session")
def session_route():
    session = get_engine().sessions.get_session()
    if not session:
        return jsonify({"session": None}), 401
    return jsonify({"session": _public(session)}), 200


@auth_bp.post("/refresh")
def refresh_route():
    session = get_engine().sessions.refresh_session()
    if not session:
        current_app.logger.info("Session refresh found nothing to refresh")
        return jsonify({"session": None}), 401
    return jsonify({"session": _public(session)}), 200
