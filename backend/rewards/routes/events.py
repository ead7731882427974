# Overview: Flask API routes for events; CRUD, organizers, guest list, RSVP and point awards.

# backend/rewards/routes/events.py
"""
Event API routes

Organizer-aware endpoints (view details, edit, add guest, award) only
require a session here; the service checks the capability once the event
row is loaded so an event's organizers pass regardless of role.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_capability
from ..services import event_service, ledger_service, permission_service
from ..services.concurrency import run_atomic
from rewards.errors import RewardsError
from rewards.time_utils import to_utc_z
from rewards.validation import get_json_body


events_bp = Blueprint("events", __name__, url_prefix="/events")


_CHANGED_FIELD_VALUES = {
    "name": lambda e: e.name,
    "description": lambda e: e.description,
    "location": lambda e: e.location,
    "startTime": lambda e: to_utc_z(e.start_time),
    "endTime": lambda e: to_utc_z(e.end_time),
    "capacity": lambda e: e.capacity,
    "published": lambda e: e.published,
}


def _award_dict(txn) -> dict:
    return {
        "id": txn.id,
        "recipient": txn.user.utorid,
        "awarded": txn.amount,
        "type": txn.type,
        "relatedId": txn.event_id,
        "remark": txn.remark,
        "createdBy": txn.created_by.utorid,
    }


@events_bp.get("")
@require_auth
@require_capability("VIEW_EVENTS")
def list_events_route():
    """
    List events.

    Query params: name, location, started, ended, showFull, published
    (managers only), page, limit.
    """
    try:
        count, events = event_service.list_events(g.current_user, request.args)
        manager = permission_service.has_capability(g.current_user, "VIEW_EVENT_DETAILS")

        results = []
        for event in events:
            item = event.to_summary()
            if manager:
                item["pointsRemain"] = event.points_remain
                item["pointsAwarded"] = event.points_awarded
                item["published"] = event.published
            results.append(item)

        return jsonify({"count": count, "results": results}), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list events")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("")
@require_auth
@require_capability("CREATE_EVENT")
def create_event_route():
    """
    Create an unpublished event.

    Request body:
    {
        "name": "Orientation",
        "description": "...",
        "location": "BA 1160",
        "startTime": "2030-09-01T10:00:00Z",
        "endTime": "2030-09-01T12:00:00Z",
        "capacity": 100,      // optional, null = unlimited
        "points": 500         // total budget
    }
    """
    try:
        data = get_json_body()
        event = run_atomic(lambda: event_service.create_event(data))
        return jsonify(event.to_dict(full=True)), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/<int:event_id>")
@require_auth
@require_capability("VIEW_EVENTS")
def get_event_route(event_id: int):
    try:
        event, full = event_service.get_event(g.current_user, event_id)
        return jsonify(event.to_dict(full=full)), 200

    except RewardsError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.patch("/<int:event_id>")
@require_auth
def update_event_route(event_id: int):
    """
    Partial update. Returns id, name, location and every changed field.
    A budget change is reported as pointsRemain and points (total).
    """
    try:
        data = get_json_body()
        event, changed = run_atomic(lambda: event_service.update_event(g.current_user, event_id, data))

        payload = {"id": event.id, "name": event.name, "location": event.location}
        for field in changed:
            if field == "points":
                payload["pointsRemain"] = event.points_remain
                payload["points"] = event.total_points
            else:
                payload[field] = _CHANGED_FIELD_VALUES[field](event)

        return jsonify(payload), 200

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.delete("/<int:event_id>")
@require_auth
@require_capability("DELETE_EVENT")
def delete_event_route(event_id: int):
    try:
        run_atomic(lambda: event_service.delete_event(event_id))
        return "", 204

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete event")
        return jsonify({"error": "Internal server error"}), 500


# -- Organizers --

@events_bp.post("/<int:event_id>/organizers")
@require_auth
@require_capability("MANAGE_ORGANIZERS")
def add_organizer_route(event_id: int):
    try:
        data = get_json_body()
        event = run_atomic(lambda: event_service.add_organizer(event_id, data.get("utorid")))

        return jsonify({
            "id": event.id,
            "name": event.name,
            "location": event.location,
            "organizers": [o.user.to_summary() for o in event.organizers],
        }), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add organizer")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.delete("/<int:event_id>/organizers/<int:user_id>")
@require_auth
@require_capability("MANAGE_ORGANIZERS")
def remove_organizer_route(event_id: int, user_id: int):
    try:
        run_atomic(lambda: event_service.remove_organizer(event_id, user_id))
        return "", 204

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to remove organizer")
        return jsonify({"error": "Internal server error"}), 500


# -- Guests --

@events_bp.post("/<int:event_id>/guests")
@require_auth
def add_guest_route(event_id: int):
    try:
        data = get_json_body()
        event, user = run_atomic(lambda: event_service.add_guest(g.current_user, event_id, data.get("utorid")))

        return jsonify({
            "id": event.id,
            "name": event.name,
            "location": event.location,
            "guestAdded": user.to_summary(),
            "numGuests": event.num_guests,
        }), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add guest")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/<int:event_id>/guests/me")
@require_auth
@require_capability("RSVP")
def rsvp_route(event_id: int):
    """
    RSVP the caller.

    Returns:
        201: Seat taken
        404: Event not found or unpublished
        409: Already a guest or organizer
        410: Event full or ended
    """
    try:
        event = run_atomic(lambda: event_service.rsvp(g.current_user, event_id))

        return jsonify({
            "id": event.id,
            "name": event.name,
            "location": event.location,
            "guestAdded": g.current_user.to_summary(),
            "numGuests": event.num_guests,
        }), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to RSVP")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.delete("/<int:event_id>/guests/me")
@require_auth
@require_capability("RSVP")
def cancel_rsvp_route(event_id: int):
    try:
        run_atomic(lambda: event_service.cancel_rsvp(g.current_user, event_id))
        return "", 204

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel RSVP")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.delete("/<int:event_id>/guests/<int:user_id>")
@require_auth
@require_capability("REMOVE_GUEST")
def remove_guest_route(event_id: int, user_id: int):
    try:
        run_atomic(lambda: event_service.remove_guest(event_id, user_id))
        return "", 204

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to remove guest")
        return jsonify({"error": "Internal server error"}), 500


# -- Awards --

@events_bp.post("/<int:event_id>/transactions")
@require_auth
def award_points_route(event_id: int):
    """
    Award event points.

    Request body:
    {
        "type": "event",
        "utorid": "guest01",   // omit to pay every confirmed guest
        "amount": 50,
        "remark": "..."
    }

    A single recipient returns one object; an all-guests award returns a list.
    """
    try:
        data = get_json_body()
        txns = run_atomic(lambda: ledger_service.award_event_points(g.current_user, event_id, data))

        if data.get("utorid"):
            return jsonify(_award_dict(txns[0])), 201
        return jsonify([_award_dict(t) for t in txns]), 201

    except RewardsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to award event points")
        return jsonify({"error": "Internal server error"}), 500
