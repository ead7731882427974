# Overview: Flask API routes for promotions.

# backend/rewards/routes/promotions.py
"""
Promotion API routes

Managers create, edit, delete and browse every promotion. Everyone else
only sees what is active and still usable for them.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_capability
from ..services import promotion_service
from ..services.concurrency import run_atomic
from rewards.errors import RewardsError
from rewards.validation import get_json_body


promotions_bp = Blueprint("promotions", __name__, url_prefix="/promotions")


@promotions_bp.post("")
@require_auth
@require_capability("MANAGE_PROMOTIONS")
def create_promotion_route():
    """
    Create a promotion.

    Request body:
    {
        "name": "Double Tuesday",
        "description": "...",
        "type": "automatic" | "onetime",
        "startTime": "2030-01-01T00:00:00Z",
        "endTime": "2030-02-01T00:00:00Z",
        "minSpending": 10.0,    // optional
        "rate": 0.01,           // optional, extra points per cent
        "points": 50            // optional, flat bonus
    }
    """
    try:
        data = get_json_body()
        promo = run_atomic(lambda: promotion_service.create_promotion(data))
        return jsonify(promo.to_dict()), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.get("")
@require_auth
@require_capability("VIEW_PROMOTIONS")
def list_promotions_route():
    try:
        count, promos = promotion_service.list_promotions(g.current_user, request.args)
        return jsonify({
            "count": count,
            "results": [p.to_dict(include_description=False) for p in promos],
        }), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list promotions")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.get("/<int:promotion_id>")
@require_auth
@require_capability("VIEW_PROMOTIONS")
def get_promotion_route(promotion_id: int):
    try:
        promo = promotion_service.get_promotion(g.current_user, promotion_id)
        return jsonify(promo.to_dict()), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.patch("/<int:promotion_id>")
@require_auth
@require_capability("MANAGE_PROMOTIONS")
def update_promotion_route(promotion_id: int):
    try:
        data = get_json_body()
        promo, changed = run_atomic(lambda: promotion_service.update_promotion(promotion_id, data))

        full = promo.to_dict()
        payload = {"id": promo.id, "name": promo.name, "type": promo.type}
        payload.update({field: full[field] for field in changed})
        return jsonify(payload), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.delete("/<int:promotion_id>")
@require_auth
@require_capability("MANAGE_PROMOTIONS")
def delete_promotion_route(promotion_id: int):
    try:
        run_atomic(lambda: promotion_service.delete_promotion(promotion_id))
        return "", 204

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete promotion")
        return jsonify({"error": "Internal server error"}), 500
