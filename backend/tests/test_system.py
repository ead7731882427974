"""
System endpoint and CLI tests.
"""

from rewards.models import Event, Promotion, User


class TestHealth:

    def test_health(self, client, regular):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["users"] == 1

    def test_version(self, client, db_session):
        body = client.get("/version").get_json()
        assert body["api_version"]
        assert body["server_time"].endswith("Z")

    def test_unknown_route_is_json(self, client, db_session):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Not found"}


class TestLedgerVerifyCommand:

    def test_clean_ledger(self, app, regular, cashier_headers, client):
        client.post("/transactions", json={"type": "purchase", "utorid": "regular1", "spent": 5}, headers=cashier_headers)

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])
        assert result.exit_code == 0
        assert "All balances match" in result.output

    def test_drift_detected_and_fixed(self, app, db_session, make_user):
        drifted = make_user("drift001", points=999)

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])
        assert result.exit_code != 0
        assert "drift001" in result.output

        result = app.test_cli_runner().invoke(args=["ledger", "verify", "--fix"])
        assert result.exit_code == 0
        db_session.expire_all()
        assert db_session.get(User, drifted.id).points == 0


class TestSeedDemoCommand:

    def test_seed_creates_users_event_and_promotion(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["seed", "demo"])
        assert result.exit_code == 0, result.output

        db_session.expire_all()
        roles = {u.utorid: u.role for u in db_session.query(User).all()}
        assert roles == {
            "super001": "superuser",
            "manager1": "manager",
            "cashier1": "cashier",
            "regular1": "regular",
        }

        event = db_session.query(Event).one()
        assert event.published is True
        assert event.total_points == 500
        assert [o.user.utorid for o in event.organizers] == ["manager1"]
        assert db_session.query(Promotion).filter_by(name="Dollar Bonus").count() == 1

    def test_seed_is_rerunnable(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["seed", "demo"])
        result = runner.invoke(args=["seed", "demo"])

        assert result.exit_code == 0
        assert "already exists" in result.output
        db_session.expire_all()
        assert db_session.query(Event).count() == 1
