# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Authentication Service

WHY: Every ledger action must be attributable to a real account. Passwords
are hashed with bcrypt and must meet the campus password policy.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- 8 to 20 characters
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import logging
import re
import secrets

import bcrypt

from ..extensions import db
from ..models import User
from ..permissions import Role
from rewards.errors import Unauthorized
from rewards.time_utils import utcnow


logger = logging.getLogger(__name__)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


SPECIAL_CHARACTERS = r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]"


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or not 8 <= len(password) <= 20:
        raise PasswordValidationError("Password must be 8-20 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(SPECIAL_CHARACTERS, password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, validate: bool = True) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Temporary passwords generated at registration skip the strength check.
    """
    if validate:
        validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash. Timing-safe via bcrypt.checkpw."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def generate_temporary_password() -> str:
    return secrets.token_urlsafe(12)


def authenticate(utorid: str, password: str) -> User:
    """
    Check credentials and stamp last_login_at.

    Raises Unauthorized with the same message for unknown utorid and wrong
    password.
    """
    user = db.session.query(User).filter_by(utorid=utorid).first()
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login for utorid=%s", utorid)
        raise Unauthorized("Invalid credentials")

    user.last_login_at = utcnow()
    db.session.flush()
    return user


def create_superuser(utorid: str, email: str, password: str, name: str | None = None) -> User:
    """
    Create a verified superuser (CLI bootstrap).

    Raises ValueError if utorid or email is taken,
    PasswordValidationError if the password is weak.
    """
    existing = db.session.query(User).filter(
        (User.utorid == utorid) | (User.email == email)
    ).first()
    if existing:
        raise ValueError(f"User with utorid '{utorid}' or email '{email}' already exists")

    user = User(
        utorid=utorid,
        email=email,
        name=name or utorid,
        password_hash=hash_password(password),
        role=Role.SUPERUSER.label,
        verified=True,
    )
    db.session.add(user)
    db.session.flush()
    return user
