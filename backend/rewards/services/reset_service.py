# Overview: Service-layer operations for account activation and password resets.

"""
Password Reset Service

WHY: Users recover access with a single-use token. No email is sent; the
token is returned to the caller and delivered out of band.

SECURITY FEATURES:
- uuid4 tokens, single use, time-limited
- A new password reset consumes every earlier unconsumed one
- Per ip|utorid request cooldown (CooldownStore) against token spraying
"""

import logging
import threading
import time
import uuid
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import ResetToken, User
from .auth_service import hash_password, PasswordValidationError
from rewards.errors import Gone, InvalidInput, NotFound, TooManyRequests, Unauthorized
from rewards.time_utils import utcnow


logger = logging.getLogger(__name__)

TOKEN_KIND_ACTIVATION = "activation"
TOKEN_KIND_PASSWORD = "password"


class CooldownStore:
    """
    In-memory TTL map of keys that recently triggered a reset request.

    The clock is injectable so tests can move time without sleeping.
    One instance lives on app.extensions["reset_cooldown"].
    """

    def __init__(self, ttl_seconds: float, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        """
        Record a request for `key`.

        Returns False (and records nothing) if `key` is still cooling down.
        """
        now = self._clock()
        with self._lock:
            self._purge(now)
            expires = self._entries.get(key)
            if expires is not None and expires > now:
                return False
            self._entries[key] = now + self.ttl_seconds
            return True

    def remaining(self, key: str) -> float:
        now = self._clock()
        with self._lock:
            expires = self._entries.get(key)
            if expires is None or expires <= now:
                return 0.0
            return expires - now

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge(self, now: float) -> None:
        expired = [key for key, expires in self._entries.items() if expires <= now]
        for key in expired:
            del self._entries[key]


def get_cooldown_store() -> CooldownStore:
    return current_app.extensions["reset_cooldown"]


def issue_activation_token(user: User) -> ResetToken:
    """Activation token handed out at registration (default 7 days)."""
    token = ResetToken(
        token=str(uuid.uuid4()),
        kind=TOKEN_KIND_ACTIVATION,
        user_id=user.id,
        expires_at=utcnow() + timedelta(days=current_app.config["ACTIVATION_TOKEN_TTL_DAYS"]),
    )
    db.session.add(token)
    db.session.flush()
    return token


def request_password_reset(utorid: str, email: str, *, client_key: str) -> ResetToken:
    """
    Issue a password reset token for the account matching utorid + email.

    Raises NotFound for an unknown utorid, InvalidInput if the email does
    not match, TooManyRequests inside the cooldown window.
    """
    user = db.session.query(User).filter_by(utorid=utorid).first()
    if not user:
        raise NotFound("User not found")
    if user.email.lower() != email.strip().lower():
        raise InvalidInput("Email does not match utorid")

    if not get_cooldown_store().hit(f"{client_key}|{utorid}"):
        raise TooManyRequests()

    now = utcnow()
    db.session.query(ResetToken).filter(
        ResetToken.user_id == user.id,
        ResetToken.consumed_at.is_(None),
    ).update({ResetToken.consumed_at: now}, synchronize_session="fetch")

    token = ResetToken(
        token=str(uuid.uuid4()),
        kind=TOKEN_KIND_PASSWORD,
        user_id=user.id,
        expires_at=now + timedelta(minutes=current_app.config["RESET_TOKEN_TTL_MINUTES"]),
    )
    db.session.add(token)
    db.session.flush()

    logger.info("Password reset issued for utorid=%s", utorid)
    return token


def complete_password_reset(token_value: str, utorid: str, new_password: str) -> User:
    """
    Consume a reset or activation token and set the new password.

    NOTE: Activation only sets the first password. Verification stays a
    manager decision (PATCH /users/:id).
    """
    token = db.session.query(ResetToken).filter_by(token=token_value).first()
    if not token:
        raise NotFound("Reset token not found")

    if token.consumed_at is not None or token.expires_at <= utcnow():
        raise Gone("Reset token expired")

    if token.user.utorid != utorid:
        raise Unauthorized("Token does not match user")

    try:
        token.user.password_hash = hash_password(new_password)
    except PasswordValidationError as e:
        raise InvalidInput(str(e))

    token.consumed_at = utcnow()
    db.session.flush()

    logger.info("Password reset completed for utorid=%s", utorid)
    return token.user
