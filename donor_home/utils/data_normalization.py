"""
Data normalization utilities for cleaning backend payloads.

The donor backend has shipped several response shapes over time (camelCase
and snake_case keys, bare lists and wrapped lists). These helpers turn any of
them into predictable Python values so the service layer can stay simple.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any


def normalize_string(value: Any) -> str | None:
    """
    Convert empty strings to None and strip surrounding whitespace.

    Non-string scalars (ids returned as integers, for example) are converted
    to their string form first.

    Examples:
        >>> normalize_string("  hello  ")
        'hello'
        >>> normalize_string("")
        None
        >>> normalize_string(42)
        '42'
        >>> normalize_string(None)
        None
    """
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, str):
        try:
            value = str(value)
        except ValueError:
            return None
    if value.strip() == "":
        return None
    return value.strip()


def first_present(raw: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """
    Return the value of the first alias that holds something usable.

    Aliases are tried in order; ``None`` and blank strings are skipped so a
    later alias acts as a fallback, never as an override.

    Examples:
        >>> first_present({"user_id": "u1", "userId": "u2"}, ("userId", "user_id"))
        'u2'
        >>> first_present({"user_id": "u1"}, ("userId", "user_id"))
        'u1'
        >>> first_present({}, ("userId",))
        None
    """
    for alias in aliases:
        value = raw.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        return value
    return None


def coerce_count(value: Any) -> int:
    """
    Coerce a counter-like value to a non-negative integer.

    Anything missing, unparseable, non-finite or negative becomes 0.

    Examples:
        >>> coerce_count("12")
        12
        >>> coerce_count(3.9)
        3
        >>> coerce_count("abc")
        0
        >>> coerce_count(None)
        0
    """
    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def coerce_bool(value: Any) -> bool | None:
    """
    Interpret a loosely typed flag.

    Booleans pass through, ``"true"``/``"false"`` strings (any case) and
    numbers are mapped, everything else is None.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def parse_datetime(dt_string: str | None) -> datetime | None:
    """
    Parse a datetime string returned by the backend.

    Handles ISO-8601 with a ``T`` or space separator, date-only strings and
    a trailing ``Z``.

    Examples:
        >>> parse_datetime("2025-11-27 06:08:44.635426")
        datetime.datetime(2025, 11, 27, 6, 8, 44, 635426)
        >>> parse_datetime("2025-11-27T06:08:44Z")
        datetime.datetime(2025, 11, 27, 6, 8, 44, tzinfo=datetime.timezone.utc)
        >>> parse_datetime("invalid")
        None
    """
    if not dt_string or not isinstance(dt_string, str):
        return None
    value = dt_string.strip().replace(" ", "T")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def parse_utc_datetime(dt_string: str | None) -> datetime | None:
    """Parse like parse_datetime, but always return an aware UTC datetime.

    Naive values are assumed to already be in UTC.
    """
    parsed = parse_datetime(dt_string)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        return None


def to_iso_string(dt: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def unwrap_list(payload: Any, entity: str) -> list[Any] | None:
    """
    Pull a list of records out of a response envelope.

    Tries, in order: a bare list, ``payload["data"]``, ``payload[entity]``
    and ``payload["data"][entity]``. Returns the first actual list found,
    or None when no strategy yields one.

    Examples:
        >>> unwrap_list([{"id": 1}], "appointments")
        [{'id': 1}]
        >>> unwrap_list({"appointments": [{"id": 1}]}, "appointments")
        [{'id': 1}]
        >>> unwrap_list({}, "appointments")
        None
    """
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, Mapping):
        return None

    data = payload.get("data")
    if isinstance(data, list):
        return data

    records = payload.get(entity)
    if isinstance(records, list):
        return records

    if isinstance(data, Mapping):
        nested = data.get(entity)
        if isinstance(nested, list):
            return nested

    return None


def unwrap_data(payload: Any) -> Any:
    """Return ``payload["data"]`` when the response uses a data envelope."""
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        return payload["data"]
    return payload
