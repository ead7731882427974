# Overview: Promotion eligibility engine and promotion CRUD.

"""
Promotion Eligibility

At purchase time:
1. Every automatic promotion in its window whose min_spending is met applies.
2. Every promotion named on the purchase must exist, be in its window, meet
   min_spending and, if onetime, be unused by this customer. One failure
   rejects the whole purchase.
3. The two sets merge by id. Each promotion adds its flat `points` and/or
   round(spent * rate).

Rounding is half-up on Decimal values.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Promotion, PromotionUsage, User
from ..models.promotions import PROMOTION_TYPE_AUTOMATIC, PROMOTION_TYPE_ONETIME, PROMOTION_TYPES
from ..permissions import Role
from rewards.errors import Forbidden, InvalidInput, NotFound
from rewards.time_utils import utcnow
from rewards.validation import (
    parse_datetime_field,
    parse_decimal,
    parse_int,
    parse_optional_bool,
    parse_pagination,
    parse_required_text,
)


POINTS_PER_DOLLAR_UNIT = Decimal("0.25")


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_base_points(spent: Decimal) -> int:
    """One point per 25 cents spent."""
    return round_half_up(spent / POINTS_PER_DOLLAR_UNIT)


def compute_bonus(promotions: list[Promotion], spent: Decimal) -> int:
    bonus = 0
    for promo in promotions:
        if promo.points and promo.points > 0:
            bonus += promo.points
        rate = promo.rate_decimal
        if rate is not None and rate > 0:
            bonus += round_half_up(spent * rate)
    return bonus


def meets_min_spending(promo: Promotion, spent: Decimal) -> bool:
    minimum = promo.min_spending_decimal
    return minimum is None or spent >= minimum


def has_used_promotion(user_id: int, promotion_id: int) -> bool:
    return db.session.query(PromotionUsage.id).filter_by(
        user_id=user_id, promotion_id=promotion_id
    ).first() is not None


def automatic_promotions_for(spent: Decimal, now) -> list[Promotion]:
    candidates = db.session.query(Promotion).filter(
        Promotion.type == PROMOTION_TYPE_AUTOMATIC,
        Promotion.start_time <= now,
        Promotion.end_time >= now,
    ).order_by(Promotion.id.asc()).all()
    return [p for p in candidates if meets_min_spending(p, spent)]


def validate_named_promotions(user: User, promotion_ids: list[int], spent: Decimal, now) -> list[Promotion]:
    """Raise InvalidInput unless every named promotion is usable right now."""
    promotions = []
    for promotion_id in promotion_ids:
        promo = db.session.get(Promotion, promotion_id)
        if promo is None:
            raise InvalidInput(f"Promotion {promotion_id} not found")
        if not promo.is_active(now):
            raise InvalidInput(f"Promotion {promotion_id} is not active")
        if not meets_min_spending(promo, spent):
            raise InvalidInput(f"Promotion {promotion_id} minimum spending not met")
        if promo.type == PROMOTION_TYPE_ONETIME and has_used_promotion(user.id, promo.id):
            raise InvalidInput(f"Promotion {promotion_id} already used")
        promotions.append(promo)
    return promotions


def resolve_promotions(user: User, spent: Decimal, promotion_ids: list[int], now=None) -> tuple[list[Promotion], int]:
    """
    Work out which promotions a purchase earns and the bonus they add.

    Returns (applied promotions ordered by id, bonus points).
    """
    now = now or utcnow()
    named = validate_named_promotions(user, promotion_ids, spent, now)
    merged = {p.id: p for p in automatic_promotions_for(spent, now)}
    for promo in named:
        merged[promo.id] = promo
    applied = [merged[k] for k in sorted(merged)]
    return applied, compute_bonus(applied, spent)


def usable_onetime_promotions(user: User, now=None) -> list[Promotion]:
    """Active one-time promotions the user has not spent yet."""
    now = now or utcnow()
    used = db.select(PromotionUsage.promotion_id).where(PromotionUsage.user_id == user.id)
    return db.session.query(Promotion).filter(
        Promotion.type == PROMOTION_TYPE_ONETIME,
        Promotion.start_time <= now,
        Promotion.end_time >= now,
        Promotion.id.notin_(used),
    ).order_by(Promotion.id.asc()).all()


# -- CRUD --

def _parse_type(value) -> str:
    if not isinstance(value, str):
        raise InvalidInput("Invalid type")
    normalized = value.strip()
    if normalized == "one-time":
        normalized = PROMOTION_TYPE_ONETIME
    if normalized not in PROMOTION_TYPES:
        raise InvalidInput("Invalid type")
    return normalized


def _optional_number(data: dict, field: str):
    value = data.get(field)
    if value is None:
        return None
    return float(parse_decimal(value, field, positive=True))


def _optional_points(data: dict):
    value = data.get("points")
    if value is None:
        return None
    return parse_int(value, "points", minimum=0)


def create_promotion(data: dict) -> Promotion:
    now = utcnow()
    name = parse_required_text(data.get("name"), "name", max_length=255)
    description = parse_required_text(data.get("description"), "description")
    promo_type = _parse_type(data.get("type"))

    start = parse_datetime_field(data.get("startTime"), "startTime")
    end = parse_datetime_field(data.get("endTime"), "endTime")
    if start < now or end <= start:
        raise InvalidInput("Invalid startTime/endTime")

    promo = Promotion(
        name=name,
        description=description,
        type=promo_type,
        start_time=start,
        end_time=end,
        min_spending=_optional_number(data, "minSpending"),
        rate=_optional_number(data, "rate"),
        points=_optional_points(data),
    )
    db.session.add(promo)
    db.session.flush()
    return promo


def _is_manager(user: User) -> bool:
    return user.role_enum >= Role.MANAGER


def list_promotions(user: User, args) -> tuple[int, list[Promotion]]:
    """
    Managers browse everything, with started/ended filters.

    Everyone else sees active promotions only, minus one-time promotions
    they already used.
    """
    page, limit = parse_pagination(args)
    now = utcnow()
    query = db.session.query(Promotion)

    name = args.get("name")
    if name and name.strip():
        query = query.filter(Promotion.name.ilike(f"%{name.strip()}%"))

    if args.get("type") is not None:
        query = query.filter(Promotion.type == _parse_type(args.get("type")))

    if _is_manager(user):
        started = parse_optional_bool(args.get("started"), "started filter")
        ended = parse_optional_bool(args.get("ended"), "ended filter")
        if started is not None and ended is not None:
            raise InvalidInput("Cannot specify both started and ended")
        if started is not None:
            query = query.filter(Promotion.start_time <= now if started else Promotion.start_time > now)
        if ended is not None:
            query = query.filter(Promotion.end_time <= now if ended else Promotion.end_time > now)
    else:
        used = db.select(PromotionUsage.promotion_id).where(PromotionUsage.user_id == user.id)
        query = query.filter(
            Promotion.start_time <= now,
            Promotion.end_time >= now,
            ~((Promotion.type == PROMOTION_TYPE_ONETIME) & Promotion.id.in_(used)),
        )

    count = query.count()
    results = query.order_by(Promotion.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return count, results


def get_promotion(user: User, promotion_id: int) -> Promotion:
    promo = db.session.get(Promotion, promotion_id)
    if promo is None:
        raise NotFound("Promotion not found")
    if not _is_manager(user) and not promo.is_active(utcnow()):
        raise NotFound("Promotion not found")
    return promo


def update_promotion(promotion_id: int, data: dict) -> tuple[Promotion, set[str]]:
    """
    Partial update. Returns (promotion, names of the fields that changed).

    Once a promotion has started only endTime may move; once it has ended
    nothing may.
    """
    promo = db.session.get(Promotion, promotion_id)
    if promo is None:
        raise NotFound("Promotion not found")

    now = utcnow()
    provided = {k for k, v in data.items() if v is not None}
    if not provided:
        raise InvalidInput("No valid fields provided")

    if promo.end_time <= now:
        raise InvalidInput("Promotion has ended")
    if promo.start_time <= now and provided - {"endTime"}:
        raise InvalidInput("Only endTime can change after a promotion starts")

    changed: set[str] = set()

    if "name" in provided:
        promo.name = parse_required_text(data["name"], "name", max_length=255)
        changed.add("name")
    if "description" in provided:
        promo.description = parse_required_text(data["description"], "description")
        changed.add("description")
    if "type" in provided:
        promo.type = _parse_type(data["type"])
        changed.add("type")

    effective_start = promo.start_time
    if "startTime" in provided:
        start = parse_datetime_field(data["startTime"], "startTime")
        if start <= now:
            raise InvalidInput("Invalid startTime")
        effective_start = start
        promo.start_time = start
        changed.add("startTime")

    if "endTime" in provided:
        end = parse_datetime_field(data["endTime"], "endTime")
        if end <= now:
            raise InvalidInput("Invalid endTime")
        if end <= effective_start:
            raise InvalidInput("endTime must be after startTime")
        promo.end_time = end
        changed.add("endTime")
    elif promo.end_time <= effective_start:
        raise InvalidInput("endTime must be after startTime")

    if "minSpending" in provided:
        promo.min_spending = _optional_number(data, "minSpending")
        changed.add("minSpending")
    if "rate" in provided:
        promo.rate = _optional_number(data, "rate")
        changed.add("rate")
    if "points" in provided:
        promo.points = _optional_points(data)
        changed.add("points")

    db.session.flush()
    return promo, changed


def delete_promotion(promotion_id: int) -> None:
    promo = db.session.get(Promotion, promotion_id)
    if promo is None:
        raise NotFound("Promotion not found")
    if promo.start_time <= utcnow():
        raise Forbidden("Promotion already started")
    db.session.delete(promo)
    db.session.flush()
