"""
Purchase and promotion eligibility tests.

Base rate is one point per 25 cents; promotions add flat points and/or
round(spent * rate), rounded half-up.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from rewards.models import PromotionUsage
from rewards.permissions import Role
from rewards.services import promotion_service
from rewards.services.ledger_service import compute_balance


def _purchase(client, headers, spent, utorid="regular1", **extra):
    payload = {"type": "purchase", "utorid": utorid, "spent": spent}
    payload.update(extra)
    return client.post("/transactions", json=payload, headers=headers)


class TestPointMath:

    @pytest.mark.parametrize(
        "spent,expected",
        [
            ("20.00", 80),
            ("0.25", 1),
            ("0.12", 0),
            ("0.13", 1),   # 0.52 rounds up
            ("10.10", 40),  # 40.4
            ("10.13", 41),  # 40.52
        ],
    )
    def test_base_points(self, spent, expected):
        assert promotion_service.compute_base_points(Decimal(spent)) == expected

    def test_round_half_up(self):
        assert promotion_service.round_half_up(Decimal("0.5")) == 1
        assert promotion_service.round_half_up(Decimal("2.5")) == 3
        assert promotion_service.round_half_up(Decimal("2.49")) == 2


class TestPurchase:

    def test_plain_purchase(self, client, db_session, regular, cashier_headers):
        resp = _purchase(client, cashier_headers, 20.00, remark="coffee")
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["earned"] == 80
        assert body["spent"] == 20.0
        assert body["type"] == "purchase"
        assert body["createdBy"] == "cashier1"
        assert body["promotionIds"] == []

        db_session.refresh(regular)
        assert regular.points == 80

    def test_automatic_rate_promotion(self, client, db_session, regular, cashier_headers, make_promotion):
        promo = make_promotion(rate=2.0)

        body = _purchase(client, cashier_headers, 20.00).get_json()
        assert body["earned"] == 120
        assert body["promotionIds"] == [promo.id]

        db_session.refresh(regular)
        assert regular.points == 120

    def test_rate_bonus_rounds_half_up(self, client, regular, cashier_headers, make_promotion):
        make_promotion(rate=0.05)
        # 40 base + round(10.00 * 0.05 = 0.5) = 41
        assert _purchase(client, cashier_headers, 10.00).get_json()["earned"] == 41

    def test_flat_and_rate_both_apply(self, client, regular, cashier_headers, make_promotion):
        make_promotion(rate=1.0, points=10)
        assert _purchase(client, cashier_headers, 5.00).get_json()["earned"] == 20 + 5 + 10

    def test_automatic_min_spending(self, client, regular, cashier_headers, make_promotion):
        make_promotion(points=50, min_spending=30)
        assert _purchase(client, cashier_headers, 29.99).get_json()["earned"] == 120
        assert _purchase(client, cashier_headers, 30.00).get_json()["earned"] == 170

    def test_expired_automatic_ignored(self, client, regular, cashier_headers, make_promotion):
        make_promotion(points=50, starts_in=timedelta(days=-10), lasts=timedelta(days=1))
        assert _purchase(client, cashier_headers, 1.00).get_json()["earned"] == 4

    def test_named_and_automatic_merge(self, client, regular, cashier_headers, make_promotion):
        auto = make_promotion(points=5)
        onetime = make_promotion(type="onetime", points=25)

        body = _purchase(client, cashier_headers, 1.00, promotionIds=[onetime.id, auto.id]).get_json()
        assert body["promotionIds"] == sorted([auto.id, onetime.id])
        assert body["earned"] == 4 + 5 + 25


class TestOneTimePromotions:

    def test_used_once_per_user(self, client, db_session, regular, cashier_headers, make_promotion):
        promo = make_promotion(type="onetime", points=100)

        assert _purchase(client, cashier_headers, 1.00, promotionIds=[promo.id]).status_code == 201
        resp = _purchase(client, cashier_headers, 1.00, promotionIds=[promo.id])
        assert resp.status_code == 400
        assert "already used" in resp.get_json()["error"]

        usages = db_session.query(PromotionUsage).filter_by(user_id=regular.id, promotion_id=promo.id).count()
        assert usages == 1

    def test_other_user_can_still_use(self, client, make_user, regular, cashier_headers, make_promotion):
        make_user("another1")
        promo = make_promotion(type="onetime", points=100)

        _purchase(client, cashier_headers, 1.00, promotionIds=[promo.id])
        resp = _purchase(client, cashier_headers, 1.00, utorid="another1", promotionIds=[promo.id])
        assert resp.status_code == 201

    def test_one_bad_promotion_rejects_purchase(self, client, db_session, regular, cashier_headers, make_promotion):
        good = make_promotion(type="onetime", points=10)
        pricey = make_promotion(type="onetime", points=10, min_spending=100)

        resp = _purchase(client, cashier_headers, 5.00, promotionIds=[good.id, pricey.id])
        assert resp.status_code == 400

        db_session.refresh(regular)
        assert regular.points == 0
        assert db_session.query(PromotionUsage).count() == 0

    def test_unknown_promotion(self, client, regular, cashier_headers):
        resp = _purchase(client, cashier_headers, 5.00, promotionIds=[999999])
        assert resp.status_code == 400

    def test_future_promotion_not_active(self, client, regular, cashier_headers, make_promotion):
        promo = make_promotion(type="onetime", points=10, starts_in=timedelta(days=1))
        resp = _purchase(client, cashier_headers, 5.00, promotionIds=[promo.id])
        assert resp.status_code == 400

    def test_user_view_lists_unused_onetime(self, client, regular, regular_headers, cashier_headers, make_promotion):
        promo = make_promotion(type="onetime", points=10)
        assert [p["id"] for p in client.get("/users/me", headers=regular_headers).get_json()["promotions"]] == [promo.id]

        _purchase(client, cashier_headers, 1.00, promotionIds=[promo.id])
        assert client.get("/users/me", headers=regular_headers).get_json()["promotions"] == []


class TestSuspiciousCashier:

    def test_purchase_recorded_but_not_credited(self, client, db_session, make_user, regular, headers_for):
        shady = make_user("shady001", Role.CASHIER, suspicious=True)

        resp = _purchase(client, headers_for(shady), 20.00)
        assert resp.status_code == 201
        assert resp.get_json()["earned"] == 0

        db_session.refresh(regular)
        assert regular.points == 0
        assert compute_balance(regular.id) == 0

    def test_clearing_flag_credits_points(self, client, db_session, make_user, regular, headers_for, manager_headers):
        shady = make_user("shady001", Role.CASHIER, suspicious=True)
        txn_id = _purchase(client, headers_for(shady), 20.00).get_json()["id"]

        resp = client.patch(f"/transactions/{txn_id}/suspicious", json={"suspicious": False}, headers=manager_headers)
        assert resp.status_code == 200

        db_session.refresh(regular)
        assert regular.points == 80


class TestPurchaseValidation:

    @pytest.mark.parametrize("spent", [0, -5, "abc", None, True, 100000])
    def test_invalid_spent(self, client, regular, cashier_headers, spent):
        assert _purchase(client, cashier_headers, spent).status_code == 400

    def test_unknown_customer(self, client, cashier_headers):
        assert _purchase(client, cashier_headers, 5.00, utorid="nobody01").status_code == 404

    def test_unknown_type(self, client, cashier_headers):
        resp = client.post("/transactions", json={"type": "refund"}, headers=cashier_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid transaction type"
