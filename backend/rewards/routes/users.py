# Overview: Flask API routes for user accounts and self-service transactions.

# backend/rewards/routes/users.py
"""
User API routes

Registration and lookups are staff operations (cashier+); browsing and
editing other accounts is manager+. Every authenticated user manages their
own profile, password, redemptions and transfers under /users/me.
"""

from flask import Blueprint, jsonify, current_app, g, request

from ..extensions import db
from ..decorators import require_auth, require_capability
from ..services import ledger_service, permission_service, promotion_service, user_service
from ..services.concurrency import run_atomic
from rewards.errors import RewardsError
from rewards.models.ledger import TRANSACTION_TYPE_REDEMPTION
from rewards.time_utils import to_utc_z
from rewards.validation import get_json_body


users_bp = Blueprint("users", __name__, url_prefix="/users")


def _with_promotions(payload: dict, user) -> dict:
    payload["promotions"] = [p.to_summary() for p in promotion_service.usable_onetime_promotions(user)]
    return payload


@users_bp.post("")
@require_auth
@require_capability("REGISTER_USER")
def register_user_route():
    """
    Register a new account.

    Returns the activation token the account holder redeems at
    POST /auth/resets/<token> to set a password.
    """
    try:
        data = get_json_body()
        user, token = run_atomic(lambda: user_service.register_user(g.current_user, data))

        return jsonify({
            "id": user.id,
            "utorid": user.utorid,
            "name": user.name,
            "email": user.email,
            "verified": user.verified,
            "expiresAt": to_utc_z(token.expires_at),
            "resetToken": token.token,
        }), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("")
@require_auth
@require_capability("LIST_USERS")
def list_users_route():
    try:
        count, users = user_service.list_users(request.args)
        return jsonify({"count": count, "results": [u.to_dict() for u in users]}), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/me")
@require_auth
@require_capability("VIEW_SELF")
def get_me_route():
    try:
        return jsonify(_with_promotions(g.current_user.to_dict(), g.current_user)), 200

    except Exception:
        current_app.logger.exception("Failed to load current user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/me")
@require_auth
@require_capability("VIEW_SELF")
def update_me_route():
    try:
        data = get_json_body()
        user = run_atomic(lambda: user_service.update_me(g.current_user, data))
        return jsonify(user.to_dict()), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update current user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/me/password")
@require_auth
@require_capability("VIEW_SELF")
def change_password_route():
    try:
        data = get_json_body()
        run_atomic(lambda: user_service.change_password(g.current_user, data.get("old"), data.get("new")))
        return jsonify({"message": "Password updated successfully"}), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_capability("LOOKUP_USER")
def get_user_route(user_id: int):
    """Cashiers get the limited view; managers and up get the full profile."""
    try:
        user = user_service.get_user(user_id)
        if permission_service.has_capability(g.current_user, "VIEW_USER_DETAILS"):
            payload = user.to_dict()
        else:
            payload = user.to_cashier_view()
        return jsonify(_with_promotions(payload, user)), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_capability("MANAGE_USERS")
def update_user_route(user_id: int):
    try:
        data = get_json_body()
        user, changed = run_atomic(lambda: user_service.update_user(g.current_user, user_id, data))

        full = user.to_dict()
        payload = {"id": user.id, "utorid": user.utorid, "name": user.name}
        for field in changed:
            payload[field] = full[field]
        return jsonify(payload), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


# -- Self-service ledger --

@users_bp.post("/me/transactions")
@require_auth
@require_capability("REDEEM_OWN_POINTS")
def create_own_redemption_route():
    """
    Request a redemption of one's own points.

    Request body:
    {
        "type": "redemption",
        "amount": int,
        "remark": str (optional)
    }
    """
    try:
        data = get_json_body()
        if data.get("type") != TRANSACTION_TYPE_REDEMPTION:
            return jsonify({"error": "Invalid transaction type"}), 400

        txn = run_atomic(lambda: ledger_service.create_redemption(g.current_user, data))

        return jsonify({
            "id": txn.id,
            "utorid": g.current_user.utorid,
            "type": txn.type,
            "amount": abs(txn.amount),
            "remark": txn.remark,
            "createdBy": g.current_user.utorid,
            "processedBy": None,
        }), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create redemption")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/me/transactions")
@require_auth
@require_capability("VIEW_OWN_TRANSACTIONS")
def list_own_transactions_route():
    try:
        count, txns = ledger_service.list_user_transactions(g.current_user, request.args)
        return jsonify({"count": count, "results": [t.to_dict() for t in txns]}), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list own transactions")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/<int:user_id>/transactions")
@require_auth
@require_capability("TRANSFER_POINTS")
def create_transfer_route(user_id: int):
    """
    Transfer points to another user.

    Request body:
    {
        "type": "transfer",
        "amount": int,
        "remark": str (optional)
    }
    """
    try:
        data = get_json_body()
        sent, received = run_atomic(lambda: ledger_service.create_transfer(g.current_user, user_id, data))

        return jsonify({
            "id": sent.id,
            "sender": sent.user.utorid,
            "recipient": received.user.utorid,
            "type": sent.type,
            "sent": received.amount,
            "remark": sent.remark,
            "createdBy": sent.user.utorid,
        }), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500
