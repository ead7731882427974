"""
Promotion management tests.
"""

from datetime import timedelta

import pytest

from conftest import iso
from rewards.time_utils import utcnow


def _promotion_payload(**overrides):
    start = utcnow() + timedelta(days=1)
    payload = {
        "name": "Double Tuesday",
        "description": "Extra points on Tuesdays",
        "type": "automatic",
        "startTime": iso(start),
        "endTime": iso(start + timedelta(days=7)),
        "rate": 0.5,
    }
    payload.update(overrides)
    return payload


class TestCreatePromotion:

    def test_create(self, client, manager_headers):
        resp = client.post("/promotions", json=_promotion_payload(minSpending=10, points=5), headers=manager_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["type"] == "automatic"
        assert body["rate"] == 0.5
        assert body["minSpending"] == 10
        assert body["points"] == 5

    def test_one_time_alias(self, client, manager_headers):
        resp = client.post("/promotions", json=_promotion_payload(type="one-time"), headers=manager_headers)
        assert resp.status_code == 201
        assert resp.get_json()["type"] == "onetime"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"type": "weekly"},
            {"rate": 0},
            {"minSpending": -1},
            {"points": -3},
            {"points": 2.7},
            {"name": ""},
            {"startTime": "yesterday"},
        ],
    )
    def test_invalid(self, client, manager_headers, overrides):
        resp = client.post("/promotions", json=_promotion_payload(**overrides), headers=manager_headers)
        assert resp.status_code == 400

    def test_start_in_past(self, client, manager_headers):
        start = utcnow() - timedelta(days=1)
        payload = _promotion_payload(startTime=iso(start), endTime=iso(start + timedelta(days=3)))
        assert client.post("/promotions", json=payload, headers=manager_headers).status_code == 400


class TestListPromotions:

    def test_regular_sees_active_only(self, client, make_promotion, regular_headers):
        active = make_promotion(name="Now")
        make_promotion(name="Later", starts_in=timedelta(days=2))
        make_promotion(name="Done", starts_in=timedelta(days=-10), lasts=timedelta(days=1))

        body = client.get("/promotions", headers=regular_headers).get_json()
        assert [p["id"] for p in body["results"]] == [active.id]

    def test_regular_hides_used_onetime(self, client, make_promotion, regular, regular_headers, cashier_headers):
        promo = make_promotion(type="onetime", points=10)
        client.post("/transactions", json={
            "type": "purchase", "utorid": "regular1", "spent": 1, "promotionIds": [promo.id],
        }, headers=cashier_headers)

        assert client.get("/promotions", headers=regular_headers).get_json()["count"] == 0

    def test_manager_filters(self, client, make_promotion, manager_headers):
        make_promotion(name="Now")
        make_promotion(name="Later", starts_in=timedelta(days=2))

        body = client.get("/promotions?started=false", headers=manager_headers).get_json()
        assert [p["name"] for p in body["results"]] == ["Later"]

        assert client.get("/promotions?started=true&ended=false", headers=manager_headers).status_code == 400

    def test_regular_cannot_see_inactive(self, client, make_promotion, regular_headers, manager_headers):
        later = make_promotion(starts_in=timedelta(days=2))
        assert client.get(f"/promotions/{later.id}", headers=regular_headers).status_code == 404
        assert client.get(f"/promotions/{later.id}", headers=manager_headers).status_code == 200


class TestUpdatePromotion:

    def test_update_before_start(self, client, make_promotion, manager_headers):
        promo = make_promotion(starts_in=timedelta(days=1), points=5)

        resp = client.patch(f"/promotions/{promo.id}", json={"points": 15, "name": "Bigger"}, headers=manager_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["points"] == 15
        assert body["name"] == "Bigger"
        assert "rate" not in body

    def test_started_only_end_time(self, client, make_promotion, manager_headers):
        promo = make_promotion(points=5)

        assert client.patch(f"/promotions/{promo.id}", json={"points": 15}, headers=manager_headers).status_code == 400

        new_end = utcnow() + timedelta(days=30)
        resp = client.patch(f"/promotions/{promo.id}", json={"endTime": iso(new_end)}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["endTime"] == iso(new_end)

    def test_ended_is_frozen(self, client, make_promotion, manager_headers):
        promo = make_promotion(starts_in=timedelta(days=-10), lasts=timedelta(days=1))
        new_end = utcnow() + timedelta(days=30)
        resp = client.patch(f"/promotions/{promo.id}", json={"endTime": iso(new_end)}, headers=manager_headers)
        assert resp.status_code == 400

    def test_empty_update(self, client, make_promotion, manager_headers):
        promo = make_promotion(starts_in=timedelta(days=1))
        assert client.patch(f"/promotions/{promo.id}", json={}, headers=manager_headers).status_code == 400

    @pytest.mark.parametrize(
        "changes",
        [
            {"rate": 0},
            {"minSpending": 0},
            {"points": 2.7},
        ],
    )
    def test_update_uses_create_rules(self, client, db_session, make_promotion, manager_headers, changes):
        promo = make_promotion(starts_in=timedelta(days=1), rate=0.5, points=5)

        resp = client.patch(f"/promotions/{promo.id}", json=changes, headers=manager_headers)
        assert resp.status_code == 400

        db_session.refresh(promo)
        assert (promo.rate, promo.min_spending, promo.points) == (0.5, None, 5)


class TestDeletePromotion:

    def test_delete_before_start(self, client, make_promotion, manager_headers):
        promo = make_promotion(starts_in=timedelta(days=1))
        assert client.delete(f"/promotions/{promo.id}", headers=manager_headers).status_code == 204
        assert client.get(f"/promotions/{promo.id}", headers=manager_headers).status_code == 404

    def test_started_cannot_be_deleted(self, client, make_promotion, manager_headers):
        promo = make_promotion()
        assert client.delete(f"/promotions/{promo.id}", headers=manager_headers).status_code == 403
