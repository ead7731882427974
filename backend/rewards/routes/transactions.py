# Overview: Flask API routes for the points ledger; purchases, adjustments, redemptions and flags.

# backend/rewards/routes/transactions.py
"""
Transaction API routes

POST /transactions dispatches on "type":
- purchase    (cashier+)
- adjustment  (manager+)
- redemption  (cashier+, opened on a customer's behalf)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_capability
from ..services import ledger_service, permission_service
from ..services.concurrency import run_atomic
from rewards.errors import RewardsError
from rewards.models.ledger import (
    TRANSACTION_TYPE_ADJUSTMENT,
    TRANSACTION_TYPE_PURCHASE,
    TRANSACTION_TYPE_REDEMPTION,
)
from rewards.validation import get_json_body


transactions_bp = Blueprint("transactions", __name__, url_prefix="/transactions")


def _purchase(data: dict):
    permission_service.require_capability(g.current_user, "CREATE_PURCHASE", resource=request.path)
    txn, earned = run_atomic(lambda: ledger_service.create_purchase(g.current_user, data))
    return {
        "id": txn.id,
        "utorid": txn.user.utorid,
        "type": txn.type,
        "spent": txn.purchase_detail.spent,
        "earned": earned,
        "remark": txn.remark,
        "promotionIds": txn.promotion_ids,
        "createdBy": g.current_user.utorid,
    }


def _adjustment(data: dict):
    permission_service.require_capability(g.current_user, "CREATE_ADJUSTMENT", resource=request.path)
    txn = run_atomic(lambda: ledger_service.create_adjustment(g.current_user, data))
    return {
        "id": txn.id,
        "utorid": txn.user.utorid,
        "amount": txn.amount,
        "type": txn.type,
        "relatedId": txn.related_id,
        "remark": txn.remark,
        # Adjustments reference promotions for the record only
        "promotionIds": data.get("promotionIds") or [],
        "createdBy": g.current_user.utorid,
    }


def _redemption(data: dict):
    permission_service.require_capability(g.current_user, "CREATE_REDEMPTION_FOR_USER", resource=request.path)
    txn = run_atomic(lambda: ledger_service.create_redemption_for_user(g.current_user, data))
    return {
        "id": txn.id,
        "utorid": txn.user.utorid,
        "type": txn.type,
        "redeemed": abs(txn.amount),
        "remark": txn.remark,
        "createdBy": g.current_user.utorid,
    }


_HANDLERS = {
    TRANSACTION_TYPE_PURCHASE: _purchase,
    TRANSACTION_TYPE_ADJUSTMENT: _adjustment,
    TRANSACTION_TYPE_REDEMPTION: _redemption,
}


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Create a purchase, adjustment or cashier-opened redemption.

    Returns:
        201: Transaction created
        400: Invalid request, ineligible promotion, insufficient points
        403: Forbidden
        404: Customer or related transaction not found
    """
    try:
        data = get_json_body()
        handler = _HANDLERS.get(data.get("type"))
        if handler is None:
            return jsonify({"error": "Invalid transaction type"}), 400

        return jsonify(handler(data)), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_auth
@require_capability("VIEW_TRANSACTIONS")
def list_transactions_route():
    try:
        count, txns = ledger_service.list_transactions(request.args)
        return jsonify({"count": count, "results": [t.to_dict() for t in txns]}), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_auth
@require_capability("VIEW_TRANSACTIONS")
def get_transaction_route(transaction_id: int):
    try:
        return jsonify(ledger_service.get_transaction(transaction_id).to_dict()), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:transaction_id>/suspicious")
@require_auth
@require_capability("FLAG_TRANSACTION")
def set_suspicious_route(transaction_id: int):
    """
    Flag or clear a transaction. The owner's balance follows the change.

    Request body: {"suspicious": bool}
    """
    try:
        data = get_json_body()
        txn = run_atomic(
            lambda: ledger_service.set_suspicious(g.current_user, transaction_id, data.get("suspicious"))
        )
        return jsonify(txn.to_dict()), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to flag transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:transaction_id>/processed")
@require_auth
@require_capability("PROCESS_REDEMPTION")
def process_redemption_route(transaction_id: int):
    """
    Fulfil a pending redemption.

    Request body: {"processed": true}

    Returns:
        200: Processed; balance decremented
        400: Not a redemption, insufficient points
        404: Transaction not found
        409: Already processed
    """
    try:
        data = get_json_body()
        if data.get("processed") is not True:
            return jsonify({"error": "processed must be true"}), 400

        txn = run_atomic(lambda: ledger_service.process_redemption(g.current_user, transaction_id))

        return jsonify({
            "id": txn.id,
            "utorid": txn.user.utorid,
            "type": txn.type,
            "processedBy": g.current_user.utorid,
            "redeemed": abs(txn.amount),
            "remark": txn.remark,
            "createdBy": txn.created_by.utorid,
        }), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to process redemption")
        return jsonify({"error": "Internal server error"}), 500
