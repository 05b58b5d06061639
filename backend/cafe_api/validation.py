from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

from flask import request

from cafe_api.errors import ValidationError
from cafe_api.time_utils import parse_iso_datetime, try_parse_date


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

# Integers are stored in signed 64-bit columns
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_MISSING = object()


def get_json_payload() -> dict:
    """Request body as a dict; anything else is a 400."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def text_field(
    payload: dict,
    key: str,
    *,
    required: bool = False,
    max_length: int | None = None,
    min_length: int | None = None,
    default: Any = None,
) -> str | None:
    raw = payload.get(key, _MISSING)
    if raw is _MISSING or raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    value = str(raw).strip()
    if not value:
        if required:
            raise ValidationError(f"{key} cannot be blank")
        return default
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    if min_length is not None and len(value) < min_length:
        raise ValidationError(f"{key} must be at least {min_length} characters")
    return value


def int_field(
    payload: dict,
    key: str,
    *,
    required: bool = False,
    minimum: int | None = None,
    maximum: int | None = None,
    default: int | None = None,
) -> int | None:
    """
    Strict integer coercion: rejects floats, booleans and scientific notation
    so that "12.5" never silently becomes 12.
    """
    raw = payload.get(key, _MISSING)
    if raw is _MISSING or raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return default

    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError(f"{key} must be an integer, not a decimal")
        value = int(raw)
    elif isinstance(raw, str):
        stripped = raw.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    else:
        raise ValidationError(f"{key} must be an integer")

    if not INT64_MIN <= value <= INT64_MAX:
        raise ValidationError(f"{key} is out of range")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}")
    return value


def cents_field(payload: dict, key: str, *, required: bool = False, default: int | None = None) -> int | None:
    return int_field(payload, key, required=required, minimum=0, maximum=MAX_AMOUNT_CENTS, default=default)


def float_field(
    payload: dict,
    key: str,
    *,
    required: bool = False,
    minimum: float | None = None,
    maximum: float | None = None,
    default: float | None = None,
) -> float | None:
    raw = payload.get(key, _MISSING)
    if raw is _MISSING or raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return default
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError(f"{key} must be a finite number")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum:g}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum:g}")
    return value


def bool_field(payload: dict, key: str, *, default: bool | None = None) -> bool | None:
    raw = payload.get(key, _MISSING)
    if raw is _MISSING or raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(raw, str) and raw.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{key} must be a boolean")


def date_field(payload: dict, key: str, *, required: bool = False) -> date | None:
    raw = payload.get(key, _MISSING)
    if raw is _MISSING or raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    parsed = try_parse_date(raw)
    if parsed is None:
        raise ValidationError(f"{key} must be a date (YYYY-MM-DD)")
    return parsed


def datetime_field(payload: dict, key: str, *, required: bool = False) -> datetime | None:
    raw = payload.get(key, _MISSING)
    if raw is _MISSING or raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if isinstance(raw, datetime):
        return raw
    try:
        parsed = parse_iso_datetime(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def choice_field(
    payload: dict,
    key: str,
    choices: Iterable[str],
    *,
    required: bool = False,
    default: str | None = None,
    case_insensitive: bool = False,
) -> str | None:
    value = text_field(payload, key, required=required, default=default)
    if value is None:
        return None
    allowed = list(choices)
    if case_insensitive:
        for choice in allowed:
            if choice.lower() == value.lower():
                return choice
    elif value in allowed:
        return value
    raise ValidationError(f"{key} must be one of: {', '.join(allowed)}")


def query_date(name: str, *, required: bool = False) -> date | None:
    """Date from the query string (?start_date=2024-01-31)."""
    return date_field(request.args, name, required=required)


def query_int(name: str, *, default: int | None = None, minimum: int | None = None, maximum: int | None = None) -> int | None:
    return int_field(request.args, name, default=default, minimum=minimum, maximum=maximum)


def id_list_field(payload: dict, key: str) -> list[int]:
    raw = payload.get(key)
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{key} must be a non-empty list")
    ids: list[int] = []
    for value in raw:
        ids.append(int_field({key: value}, key, required=True, minimum=1))
    return ids
