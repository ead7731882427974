# Overview: Service-layer operations for user accounts; registration, lookups and profile edits.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import User
from ..permissions import Role, can_assign_role
from .auth_service import (
    PasswordValidationError,
    generate_temporary_password,
    hash_password,
    verify_password,
)
from .reset_service import issue_activation_token
from rewards.errors import Conflict, Forbidden, InvalidInput, NotFound
from rewards.time_utils import parse_iso_date
from rewards.validation import (
    parse_optional_bool,
    parse_pagination,
    validate_email,
    validate_name,
    validate_utorid_format,
)


logger = logging.getLogger(__name__)


def register_user(actor: User, data: dict):
    """
    Create an unverified regular account with a random password.

    Returns (user, activation_token). The account holder sets a real
    password by redeeming the activation token at /auth/resets/<token>.
    """
    utorid = data.get("utorid")
    name = data.get("name")
    email = data.get("email")
    if not utorid or not name or not email:
        raise InvalidInput("Missing required fields")
    if not isinstance(utorid, str):
        raise InvalidInput("Invalid utorid format")

    validate_utorid_format(utorid)
    name = validate_name(name)
    email = validate_email(email)

    existing = db.session.query(User).filter(
        (User.utorid == utorid) | (User.email == email)
    ).first()
    if existing:
        raise Conflict("User already exists")

    user = User(
        utorid=utorid,
        name=name,
        email=email,
        password_hash=hash_password(generate_temporary_password(), validate=False),
        role=Role.REGULAR.label,
        verified=False,
    )
    db.session.add(user)
    db.session.flush()

    token = issue_activation_token(user)
    logger.info("User registered utorid=%s by=%s", utorid, actor.utorid)
    return user, token


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def list_users(args) -> tuple[int, list[User]]:
    page, limit = parse_pagination(args)
    query = db.session.query(User)

    name = args.get("name")
    if name:
        pattern = f"%{name}%"
        query = query.filter(User.name.ilike(pattern) | User.utorid.ilike(pattern))

    role = args.get("role")
    if role:
        try:
            query = query.filter(User.role == Role.from_label(role).label)
        except ValueError:
            raise InvalidInput("Invalid role")

    verified = parse_optional_bool(args.get("verified"), "verified filter")
    if verified is not None:
        query = query.filter(User.verified == verified)

    # "activated" means the account has logged in at least once
    activated = parse_optional_bool(args.get("activated"), "activated filter")
    if activated is not None:
        query = query.filter(User.last_login_at.isnot(None) if activated else User.last_login_at.is_(None))

    count = query.count()
    results = query.order_by(User.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return count, results


def _ensure_email_free(email: str, user: User) -> None:
    taken = db.session.query(User).filter(User.email == email, User.id != user.id).first()
    if taken:
        raise Conflict("Email already in use")


def update_user(actor: User, user_id: int, data: dict) -> tuple[User, set[str]]:
    """
    Manager edits: email, verified (true only), suspicious, role.

    Role changes follow ASSIGNABLE_ROLES. A suspicious user cannot become a
    cashier.
    """
    user = get_user(user_id)
    changed: set[str] = set()

    role_value = data.get("role")
    if isinstance(role_value, str) and role_value.strip():
        try:
            target = Role.from_label(role_value)
        except ValueError:
            raise InvalidInput("Invalid role")
        if not can_assign_role(actor.role_enum, target):
            logger.warning("Role change denied actor=%s target=%s role=%s", actor.utorid, user.utorid, target.label)
            raise Forbidden("Forbidden role update")
        if target == Role.CASHIER and user.suspicious:
            raise Forbidden("Suspicious users cannot be promoted to cashier")
        user.role = target.label
        changed.add("role")

    if data.get("email"):
        email = validate_email(data["email"])
        _ensure_email_free(email, user)
        user.email = email
        changed.add("email")

    verified = parse_optional_bool(data.get("verified"), "verified value")
    if verified is not None:
        if verified is not True:
            raise InvalidInput("Invalid verified value")
        user.verified = True
        changed.add("verified")

    suspicious = parse_optional_bool(data.get("suspicious"), "suspicious value")
    if suspicious is not None:
        user.suspicious = suspicious
        changed.add("suspicious")

    if not changed:
        raise InvalidInput("No valid fields provided")

    db.session.flush()
    logger.info("User updated utorid=%s by=%s fields=%s", user.utorid, actor.utorid, sorted(changed))
    return user, changed


def update_me(user: User, data: dict) -> User:
    changed = False

    if data.get("name") is not None:
        user.name = validate_name(data["name"])
        changed = True

    if data.get("email") is not None:
        email = validate_email(data["email"])
        _ensure_email_free(email, user)
        user.email = email
        changed = True

    if "birthday" in data:
        birthday = data["birthday"]
        if not isinstance(birthday, str):
            raise InvalidInput("Invalid birthday format")
        try:
            user.birthday = parse_iso_date(birthday)
        except ValueError:
            raise InvalidInput("Invalid birthday format")
        changed = True

    if not changed:
        raise InvalidInput("No valid fields provided")

    db.session.flush()
    return user


def change_password(user: User, old_password, new_password) -> None:
    if not old_password or not new_password:
        raise InvalidInput("Missing required fields")
    if not isinstance(old_password, str) or not isinstance(new_password, str):
        raise InvalidInput("Invalid password")
    if not verify_password(old_password, user.password_hash):
        raise Forbidden("Incorrect current password")
    try:
        user.password_hash = hash_password(new_password)
    except PasswordValidationError as e:
        raise InvalidInput(str(e))
    db.session.flush()
    logger.info("Password changed utorid=%s", user.utorid)
