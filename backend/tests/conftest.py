"""
Pytest fixtures for rewards backend tests.

Provides test database setup, users per role, session headers, event and
promotion factories, and a controllable clock for the reset cooldown.
"""

from datetime import timedelta

import pytest

from rewards import create_app
from rewards.extensions import db
from rewards.models import Event, EventGuest, EventOrganizer, Promotion, User
from rewards.permissions import Role
from rewards.services.auth_service import hash_password
from rewards.services.session_service import create_session
from rewards.time_utils import utcnow


DEFAULT_PASSWORD = "Password123!"


class FakeClock:
    """Monotonic clock stand-in; tests move it with advance()."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_clock = FakeClock()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RESET_COOLDOWN_SECONDS': 60,
        'RESET_COOLDOWN_CLOCK': _clock,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """Hash the default password once; bcrypt is slow on purpose."""
    return hash_password(DEFAULT_PASSWORD)


@pytest.fixture(scope='function')
def clock():
    return _clock


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["reset_cooldown"].reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# USERS
# =============================================================================


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    """Factory: make_user("alice001", Role.REGULAR, points=100)."""
    def _make(utorid, role=Role.REGULAR, *, points=0, verified=True, suspicious=False, name=None):
        user = User(
            utorid=utorid,
            name=name or utorid.title(),
            email=f"{utorid}@mail.utoronto.ca",
            password_hash=password_hash,
            role=role.label,
            points=points,
            verified=verified,
            suspicious=suspicious,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def regular(make_user):
    return make_user("regular1", Role.REGULAR)


@pytest.fixture(scope='function')
def cashier(make_user):
    return make_user("cashier1", Role.CASHIER)


@pytest.fixture(scope='function')
def manager(make_user):
    return make_user("manager1", Role.MANAGER)


@pytest.fixture(scope='function')
def superuser(make_user):
    return make_user("super001", Role.SUPERUSER)


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: bearer headers for a user, bypassing the login endpoint."""
    def _headers(user):
        _, token = create_session(user.id)
        db_session.commit()
        return auth_headers(token)
    return _headers


@pytest.fixture(scope='function')
def regular_headers(headers_for, regular):
    return headers_for(regular)


@pytest.fixture(scope='function')
def cashier_headers(headers_for, cashier):
    return headers_for(cashier)


@pytest.fixture(scope='function')
def manager_headers(headers_for, manager):
    return headers_for(manager)


@pytest.fixture(scope='function')
def superuser_headers(headers_for, superuser):
    return headers_for(superuser)


# =============================================================================
# EVENTS AND PROMOTIONS
# =============================================================================


@pytest.fixture(scope='function')
def make_event(db_session):
    """
    Factory for events starting tomorrow. Pass starts_in / lasts as
    timedeltas to build running or finished events.
    """
    def _make(*, starts_in=timedelta(days=1), lasts=timedelta(hours=2), capacity=None,
              points=100, published=True, name="Orientation", organizers=(), guests=()):
        start = utcnow() + starts_in
        event = Event(
            name=name,
            description="Welcome event",
            location="BA 1160",
            start_time=start,
            end_time=start + lasts,
            capacity=capacity,
            points_remain=points,
            points_awarded=0,
            published=published,
        )
        for user in organizers:
            event.organizers.append(EventOrganizer(user_id=user.id))
        for user in guests:
            event.guests.append(EventGuest(user_id=user.id, confirmed=True, confirmed_at=utcnow()))
        db_session.add(event)
        db_session.commit()
        return event
    return _make


@pytest.fixture(scope='function')
def make_promotion(db_session):
    """Factory for promotions active right now unless told otherwise."""
    def _make(*, type="automatic", starts_in=timedelta(days=-1), lasts=timedelta(days=7),
              min_spending=None, rate=None, points=None, name="Promo"):
        start = utcnow() + starts_in
        promo = Promotion(
            name=name,
            description="Promotion",
            type=type,
            start_time=start,
            end_time=start + lasts,
            min_spending=min_spending,
            rate=rate,
            points=points,
        )
        db_session.add(promo)
        db_session.commit()
        return promo
    return _make


def iso(dt) -> str:
    """Serialize a naive UTC datetime the way clients send it."""
    return dt.replace(microsecond=0).isoformat() + "Z"


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
