from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request

from rewards.errors import InvalidInput
from rewards.time_utils import parse_iso_datetime

UTORID_PATTERN = re.compile(r"^[A-Za-z0-9]{7,8}$")
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@mail\.utoronto\.ca$")

# Largest single purchase accepted at the till: $99,999.99
MAX_SPENT = Decimal("99999.99")


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats with a
    fractional part, decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise InvalidInput(f"Invalid {field}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidInput(f"Invalid {field}")
        parsed = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not re.fullmatch(r"-?\d+", stripped):
            raise InvalidInput(f"Invalid {field}")
        parsed = int(stripped)
    else:
        raise InvalidInput(f"Invalid {field}")

    if minimum is not None and parsed < minimum:
        raise InvalidInput(f"Invalid {field}")
    return parsed


def parse_positive_int(value: Any, field: str) -> int:
    return parse_int(value, field, minimum=1)


def parse_decimal(value: Any, field: str, *, positive: bool = False, non_negative: bool = False) -> Decimal:
    """Parse a JSON number (or numeric string) into a Decimal."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidInput(f"Invalid {field}")
    try:
        # str() so floats keep their shortest repr instead of binary noise
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"Invalid {field}")
    if not parsed.is_finite():
        raise InvalidInput(f"Invalid {field}")
    if positive and parsed <= 0:
        raise InvalidInput(f"Invalid {field}")
    if non_negative and parsed < 0:
        raise InvalidInput(f"Invalid {field}")
    return parsed


def parse_spent(value: Any) -> Decimal:
    spent = parse_decimal(value, "spent amount", positive=True)
    if spent > MAX_SPENT:
        raise InvalidInput("Invalid spent amount")
    return spent


def parse_bool(value: Any, field: str) -> bool:
    """Accept real booleans and the strings "true"/"false" (query params)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise InvalidInput(f"Invalid {field}")


def parse_optional_bool(value: Any, field: str) -> bool | None:
    if value is None:
        return None
    return parse_bool(value, field)


def parse_remark(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidInput("Invalid remark")
    return value


def parse_required_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"Invalid {field}")
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise InvalidInput(f"Invalid {field}")
    return text


def parse_utorid(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Invalid utorid")
    return value.strip()


def parse_promotion_ids(value: Any) -> list[int]:
    """
    Validate a list of promotion ids.

    Duplicates collapse, first occurrence keeps its position.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidInput("Invalid promotionIds")
    ids: list[int] = []
    for raw in value:
        if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
            raise InvalidInput("Invalid promotionIds")
        if raw not in ids:
            ids.append(raw)
    return ids


def parse_datetime_field(value: Any, field: str):
    if not isinstance(value, str):
        raise InvalidInput(f"Invalid {field}")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        raise InvalidInput(f"Invalid {field}")
    if parsed is None:
        raise InvalidInput(f"Invalid {field}")
    return parsed


def parse_pagination(args) -> tuple[int, int]:
    """Read page/limit from query args. Defaults: page 1, limit 10."""
    page = parse_int(args.get("page", 1), "page", minimum=1)
    limit = parse_int(args.get("limit", 10), "limit", minimum=1)
    return page, limit


def parse_amount_filter(args) -> tuple[int | None, str | None]:
    """amount + operator (gte|lte) must be supplied together."""
    amount = args.get("amount")
    operator = args.get("operator")
    if amount is None:
        if operator is not None:
            raise InvalidInput("Amount required with operator")
        return None, None
    parsed = parse_int(amount, "amount filter")
    if operator not in ("gte", "lte"):
        raise InvalidInput("Invalid operator")
    return parsed, operator


def validate_utorid_format(utorid: str) -> None:
    if not UTORID_PATTERN.match(utorid):
        raise InvalidInput("Invalid utorid format")


def validate_email(email: Any) -> str:
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        raise InvalidInput("Invalid UofT email")
    return email.strip()


def validate_name(name: Any) -> str:
    if not isinstance(name, str) or not 1 <= len(name) <= 50:
        raise InvalidInput("Invalid name length")
    return name


def get_json_body() -> dict:
    """The request's JSON object body; a missing body reads as {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data
