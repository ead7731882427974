# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/rewards/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Bearer session tokens (hashed at rest, absolute + idle timeout)
- Password reset tokens with a per ip|utorid request cooldown
- Password strength validation on reset
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import auth_service
from ..services import session_service
from ..services import reset_service
from ..services.concurrency import run_atomic
from rewards.errors import RewardsError
from rewards.time_utils import to_utc_z
from rewards.validation import get_json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _client_key() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


@auth_bp.post("/tokens")
def login_route():
    """
    Authenticate with utorid + password and issue a session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = get_json_body()
        utorid = data.get("utorid")
        password = data.get("password")

        if not isinstance(utorid, str) or not isinstance(password, str) or not utorid or not password:
            return jsonify({"error": "Missing utorid or password"}), 400

        def _login():
            user = auth_service.authenticate(utorid, password)
            return session_service.create_session(
                user_id=user.id,
                user_agent=request.headers.get("User-Agent"),
                ip_address=request.remote_addr,
            )

        session, token = run_atomic(_login)

        return jsonify({
            "token": token,
            "expiresAt": to_utc_z(session.expires_at),
        }), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.delete("/tokens")
def logout_route():
    """
    Revoke the bearer session token (logout).

    WHY: Explicit logout prevents token reuse.
    """
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        revoked = run_atomic(lambda: session_service.revoke_session(token))

        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return "", 204

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/resets")
def request_reset_route():
    """
    Issue a password reset token.

    No email is sent; the token comes back in the response body.
    Returns 429 when the same client asks again for the same utorid inside
    the cooldown window.
    """
    try:
        data = get_json_body()
        utorid = data.get("utorid")
        email = data.get("email")
        if not isinstance(utorid, str) or not isinstance(email, str) or not utorid or not email:
            return jsonify({"error": "Missing utorid or email"}), 400

        token = run_atomic(
            lambda: reset_service.request_password_reset(utorid, email, client_key=_client_key())
        )

        return jsonify({
            "expiresAt": to_utc_z(token.expires_at),
            "resetToken": token.token,
        }), 202

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to issue password reset")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/resets/<reset_token>")
def complete_reset_route(reset_token: str):
    """Set a new password with a reset or activation token."""
    try:
        data = get_json_body()
        utorid = data.get("utorid")
        password = data.get("password")
        if not isinstance(utorid, str) or not isinstance(password, str) or not utorid or not password:
            return jsonify({"error": "Missing fields"}), 400

        run_atomic(lambda: reset_service.complete_password_reset(reset_token, utorid, password))

        return jsonify({"ok": True}), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete password reset")
        return jsonify({"error": "Internal server error"}), 500
