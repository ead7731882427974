"""
Event budget and capacity tests.

Covers event CRUD, publishing, organizers, the guest list under a capacity
limit, and point awards drawn from the event budget.
"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from conftest import iso
from rewards.errors import EventFull
from rewards.extensions import db
from rewards.models import Event, EventGuest, Transaction
from rewards.services import event_service
from rewards.services.concurrency import run_atomic
from rewards.services.ledger_service import compute_balance
from rewards.time_utils import utcnow


def _event_payload(**overrides):
    start = utcnow() + timedelta(days=3)
    payload = {
        "name": "Hack Night",
        "description": "Build things",
        "location": "BA 3200",
        "startTime": iso(start),
        "endTime": iso(start + timedelta(hours=4)),
        "capacity": 2,
        "points": 300,
    }
    payload.update(overrides)
    return payload


# =============================================================================
# CRUD AND PUBLISHING
# =============================================================================


class TestEventCrud:

    def test_create_unpublished(self, client, manager_headers):
        resp = client.post("/events", json=_event_payload(), headers=manager_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["published"] is False
        assert body["pointsRemain"] == 300
        assert body["pointsAwarded"] == 0
        assert body["organizers"] == []
        assert body["guests"] == []

    def test_start_in_past_rejected(self, client, manager_headers):
        start = utcnow() - timedelta(hours=1)
        resp = client.post("/events", json=_event_payload(startTime=iso(start), endTime=iso(start + timedelta(hours=3))),
                           headers=manager_headers)
        assert resp.status_code == 400

    def test_end_before_start_rejected(self, client, manager_headers):
        payload = _event_payload()
        payload["endTime"], payload["startTime"] = payload["startTime"], payload["endTime"]
        assert client.post("/events", json=payload, headers=manager_headers).status_code == 400

    def test_points_must_be_positive_int(self, client, manager_headers):
        for points in (0, -1, 2.5, "100"):
            resp = client.post("/events", json=_event_payload(points=points), headers=manager_headers)
            assert resp.status_code == 400

    def test_unpublished_hidden_from_regular(self, client, make_event, regular_headers, manager_headers):
        hidden = make_event(published=False)

        assert client.get(f"/events/{hidden.id}", headers=regular_headers).status_code == 404
        assert client.get("/events", headers=regular_headers).get_json()["count"] == 0

        body = client.get("/events", headers=manager_headers).get_json()
        assert body["count"] == 1
        assert body["results"][0]["published"] is False

    def test_regular_sees_limited_view(self, client, make_event, regular_headers):
        event = make_event()
        body = client.get(f"/events/{event.id}", headers=regular_headers).get_json()
        assert "pointsRemain" not in body
        assert "guests" not in body
        assert body["numGuests"] == 0

    def test_publish_is_one_way(self, client, make_event, manager_headers):
        event = make_event(published=False)

        resp = client.patch(f"/events/{event.id}", json={"published": True}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["published"] is True

        resp = client.patch(f"/events/{event.id}", json={"published": False}, headers=manager_headers)
        assert resp.status_code == 400

    def test_delete_only_unpublished(self, client, db_session, make_event, manager_headers):
        draft = make_event(published=False)
        live = make_event()

        assert client.delete(f"/events/{live.id}", headers=manager_headers).status_code == 400
        assert client.delete(f"/events/{draft.id}", headers=manager_headers).status_code == 204
        assert db_session.get(Event, draft.id) is None

    def test_delete_refused_after_awards(self, client, db_session, make_user, make_event, manager_headers):
        make_user("guest001")
        draft = make_event(published=False, points=100)

        resp = client.post(f"/events/{draft.id}/guests", json={"utorid": "guest001"}, headers=manager_headers)
        assert resp.status_code == 201
        resp = client.post(f"/events/{draft.id}/transactions",
                           json={"type": "event", "utorid": "guest001", "amount": 30}, headers=manager_headers)
        assert resp.status_code == 201
        award_id = resp.get_json()["id"]

        resp = client.delete(f"/events/{draft.id}", headers=manager_headers)
        assert resp.status_code == 400

        db_session.expire_all()
        assert db_session.get(Event, draft.id) is not None
        assert db_session.get(Transaction, award_id).event_id == draft.id

        resp = client.get(f"/transactions?type=event&relatedId={draft.id}", headers=manager_headers)
        assert [t["id"] for t in resp.get_json()["results"]] == [award_id]

    def test_started_event_only_end_time_editable(self, client, make_event, manager_headers):
        event = make_event(starts_in=timedelta(hours=-1), lasts=timedelta(hours=3))

        resp = client.patch(f"/events/{event.id}", json={"name": "Renamed"}, headers=manager_headers)
        assert resp.status_code == 400

        new_end = utcnow() + timedelta(hours=5)
        resp = client.patch(f"/events/{event.id}", json={"endTime": iso(new_end)}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["endTime"] == iso(new_end)

    def test_list_filters(self, client, make_event, regular_headers):
        make_event(name="Career Fair")
        make_event(name="Games Night")
        make_event(name="Running", starts_in=timedelta(hours=-1), lasts=timedelta(hours=3))

        body = client.get("/events?name=fair", headers=regular_headers).get_json()
        assert [e["name"] for e in body["results"]] == ["Career Fair"]

        body = client.get("/events?started=true", headers=regular_headers).get_json()
        assert [e["name"] for e in body["results"]] == ["Running"]

        resp = client.get("/events?started=true&ended=false", headers=regular_headers)
        assert resp.status_code == 400


# =============================================================================
# CAPACITY
# =============================================================================


class TestCapacity:

    def test_rsvp_until_full(self, client, make_user, make_event, headers_for):
        event = make_event(capacity=2)
        guests = [make_user(f"guest00{i}") for i in range(3)]

        assert client.post(f"/events/{event.id}/guests/me", headers=headers_for(guests[0])).status_code == 201
        resp = client.post(f"/events/{event.id}/guests/me", headers=headers_for(guests[1]))
        assert resp.status_code == 201
        assert resp.get_json()["numGuests"] == 2

        resp = client.post(f"/events/{event.id}/guests/me", headers=headers_for(guests[2]))
        assert resp.status_code == 410

    def test_full_events_hidden_unless_show_full(self, client, make_user, make_event, regular_headers):
        make_event(capacity=1, guests=[make_user("guest001")])

        assert client.get("/events", headers=regular_headers).get_json()["count"] == 0
        assert client.get("/events?showFull=true", headers=regular_headers).get_json()["count"] == 1

    def test_cancel_frees_seat(self, client, make_user, make_event, headers_for):
        first = make_user("guest001")
        event = make_event(capacity=1, guests=[first])

        assert client.delete(f"/events/{event.id}/guests/me", headers=headers_for(first)).status_code == 204
        resp = client.post(f"/events/{event.id}/guests/me", headers=headers_for(make_user("guest002")))
        assert resp.status_code == 201

    def test_rsvp_twice(self, client, make_event, regular, regular_headers):
        event = make_event()
        client.post(f"/events/{event.id}/guests/me", headers=regular_headers)
        assert client.post(f"/events/{event.id}/guests/me", headers=regular_headers).status_code == 409

    def test_rsvp_ended_event(self, client, make_event, regular_headers):
        event = make_event(starts_in=timedelta(days=-2), lasts=timedelta(hours=1))
        assert client.post(f"/events/{event.id}/guests/me", headers=regular_headers).status_code == 410

    def test_rsvp_unpublished(self, client, make_event, regular_headers):
        event = make_event(published=False)
        assert client.post(f"/events/{event.id}/guests/me", headers=regular_headers).status_code == 404

    def test_capacity_cannot_drop_below_guests(self, client, make_user, make_event, manager_headers):
        event = make_event(capacity=3, guests=[make_user("guest001"), make_user("guest002")])

        assert client.patch(f"/events/{event.id}", json={"capacity": 1}, headers=manager_headers).status_code == 400
        resp = client.patch(f"/events/{event.id}", json={"capacity": None}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["capacity"] is None

    def test_rsvp_bumps_event_version(self, client, db_session, make_event, regular_headers):
        event = make_event()
        before = event.version_id

        client.post(f"/events/{event.id}/guests/me", headers=regular_headers)
        db_session.refresh(event)
        assert event.version_id > before


class TestConcurrentRsvp:
    """Two sessions racing for the last seat of a capacity-1 event."""

    def _confirmed_user_ids(self, db_session, event_id):
        db_session.expire_all()
        guests = db_session.query(EventGuest).filter_by(event_id=event_id, confirmed=True).all()
        return [g.user_id for g in guests]

    def test_stale_admission_is_rejected(self, db_session, make_user, make_event):
        first = make_user("guest001")
        second = make_user("guest002")
        event = make_event(capacity=1)
        event_id, first_id, second_id = event.id, first.id, second.id

        with Session(db.engine) as other:
            stale = other.get(Event, event_id)
            assert stale.num_guests == 0

            run_atomic(lambda: event_service.rsvp(first, event_id))

            # Admits against the count it read before the first RSVP committed
            other.add(EventGuest(event_id=event_id, user_id=second_id, confirmed=True, confirmed_at=utcnow()))
            stale.updated_at = utcnow()
            with pytest.raises(StaleDataError):
                other.flush()
            other.rollback()

        assert self._confirmed_user_ids(db_session, event_id) == [first_id]

    def test_retry_after_conflict_ends_full(self, db_session, make_user, make_event, monkeypatch):
        winner = make_user("guest001")
        loser = make_user("guest002")
        event = make_event(capacity=1)
        event_id, winner_id = event.id, winner.id

        touch = event_service._touch
        touched = []

        def touch_after_competing_rsvp(target):
            if not touched:
                with Session(db.engine) as other:
                    other.add(EventGuest(event_id=event_id, user_id=winner_id, confirmed=True, confirmed_at=utcnow()))
                    other.get(Event, event_id).updated_at = utcnow()
                    other.commit()
            touched.append(target.id)
            touch(target)

        monkeypatch.setattr(event_service, "_touch", touch_after_competing_rsvp)

        with pytest.raises(EventFull):
            run_atomic(lambda: event_service.rsvp(loser, event_id), backoff_base=0)

        # First attempt lost on flush; the retry saw the full event
        assert touched == [event_id]
        assert self._confirmed_user_ids(db_session, event_id) == [winner_id]


# =============================================================================
# ORGANIZERS AND GUEST LIST
# =============================================================================


class TestMembership:

    def test_add_and_remove_organizer(self, client, make_user, make_event, manager_headers):
        organizer = make_user("organiz1")
        event = make_event()

        resp = client.post(f"/events/{event.id}/organizers", json={"utorid": "organiz1"}, headers=manager_headers)
        assert resp.status_code == 201
        assert [o["utorid"] for o in resp.get_json()["organizers"]] == ["organiz1"]

        resp = client.delete(f"/events/{event.id}/organizers/{organizer.id}", headers=manager_headers)
        assert resp.status_code == 204

    def test_guest_cannot_become_organizer(self, client, make_user, make_event, manager_headers):
        event = make_event(guests=[make_user("guest001")])
        resp = client.post(f"/events/{event.id}/organizers", json={"utorid": "guest001"}, headers=manager_headers)
        assert resp.status_code == 409

    def test_organizer_cannot_rsvp(self, client, make_user, make_event, headers_for):
        organizer = make_user("organiz1")
        event = make_event(organizers=[organizer])
        assert client.post(f"/events/{event.id}/guests/me", headers=headers_for(organizer)).status_code == 409

    def test_organizer_adds_guest(self, client, make_user, make_event, headers_for):
        organizer = make_user("organiz1")
        make_user("guest001")
        event = make_event(organizers=[organizer])

        resp = client.post(f"/events/{event.id}/guests", json={"utorid": "guest001"}, headers=headers_for(organizer))
        assert resp.status_code == 201
        assert resp.get_json()["guestAdded"]["utorid"] == "guest001"
        assert resp.get_json()["numGuests"] == 1

    def test_regular_cannot_add_guest(self, client, make_user, make_event, regular_headers):
        make_user("guest001")
        event = make_event()
        resp = client.post(f"/events/{event.id}/guests", json={"utorid": "guest001"}, headers=regular_headers)
        assert resp.status_code == 403

    def test_manager_removes_guest(self, client, make_user, make_event, manager_headers):
        guest = make_user("guest001")
        event = make_event(guests=[guest])
        assert client.delete(f"/events/{event.id}/guests/{guest.id}", headers=manager_headers).status_code == 204
        assert client.delete(f"/events/{event.id}/guests/{guest.id}", headers=manager_headers).status_code == 404


# =============================================================================
# BUDGET AND AWARDS
# =============================================================================


class TestAwards:

    def test_award_single_guest(self, client, db_session, make_user, make_event, manager_headers):
        guest = make_user("guest001")
        event = make_event(points=100, guests=[guest])

        resp = client.post(f"/events/{event.id}/transactions",
                           json={"type": "event", "utorid": "guest001", "amount": 30}, headers=manager_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["recipient"] == "guest001"
        assert body["awarded"] == 30
        assert body["relatedId"] == event.id

        db_session.refresh(event)
        db_session.refresh(guest)
        assert (event.points_remain, event.points_awarded) == (70, 30)
        assert guest.points == 30 == compute_balance(guest.id)

    def test_award_all_guests(self, client, db_session, make_user, make_event, manager_headers):
        guests = [make_user(f"guest00{i}") for i in range(3)]
        event = make_event(points=100, guests=guests)

        resp = client.post(f"/events/{event.id}/transactions", json={"type": "event", "amount": 20},
                           headers=manager_headers)
        assert resp.status_code == 201
        assert sorted(r["recipient"] for r in resp.get_json()) == ["guest000", "guest001", "guest002"]

        db_session.refresh(event)
        assert event.points_remain == 40
        assert event.points_remain + event.points_awarded == 100

    def test_award_over_budget_writes_nothing(self, client, db_session, make_user, make_event, manager_headers):
        guests = [make_user(f"guest00{i}") for i in range(3)]
        event = make_event(points=50, guests=guests)

        resp = client.post(f"/events/{event.id}/transactions", json={"type": "event", "amount": 20},
                           headers=manager_headers)
        assert resp.status_code == 400

        db_session.refresh(event)
        assert event.points_remain == 50
        assert db_session.query(Transaction).count() == 0

    def test_award_non_guest(self, client, make_user, make_event, manager_headers):
        make_user("outsider")
        event = make_event()
        resp = client.post(f"/events/{event.id}/transactions",
                           json={"type": "event", "utorid": "outsider", "amount": 5}, headers=manager_headers)
        assert resp.status_code == 400

    def test_organizer_awards(self, client, make_user, make_event, headers_for):
        organizer = make_user("organiz1")
        event = make_event(organizers=[organizer], guests=[make_user("guest001")])

        resp = client.post(f"/events/{event.id}/transactions",
                           json={"type": "event", "utorid": "guest001", "amount": 5}, headers=headers_for(organizer))
        assert resp.status_code == 201

    def test_regular_cannot_award(self, client, make_user, make_event, regular_headers):
        event = make_event(guests=[make_user("guest001")])
        resp = client.post(f"/events/{event.id}/transactions",
                           json={"type": "event", "utorid": "guest001", "amount": 5}, headers=regular_headers)
        assert resp.status_code == 403

    def test_budget_edit_respects_awarded(self, client, make_user, make_event, manager_headers):
        event = make_event(points=100, guests=[make_user("guest001")])
        client.post(f"/events/{event.id}/transactions",
                    json={"type": "event", "utorid": "guest001", "amount": 60}, headers=manager_headers)

        assert client.patch(f"/events/{event.id}", json={"points": 50}, headers=manager_headers).status_code == 400

        resp = client.patch(f"/events/{event.id}", json={"points": 200}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["pointsRemain"] == 140
        assert resp.get_json()["points"] == 200
