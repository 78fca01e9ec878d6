"""Cell value formatting: timezone conversion and value substitution."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def load_timezone(name: str | None) -> tzinfo | None:
    """Load an IANA timezone by name.

    Args:
        name: Zone identifier such as ``Asia/Ho_Chi_Minh``.

    Returns:
        The zone, or None if the name is empty or not a known zone.
    """
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def format_timestamp(value: datetime, zone: tzinfo = UTC) -> str:
    """Render a datetime as RFC 3339 with second precision, using ``Z`` for UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    rendered = value.astimezone(zone).isoformat(timespec="seconds")
    if rendered.endswith("+00:00"):
        return rendered[:-6] + "Z"
    return rendered


def stringify_value(value: Any) -> str:
    """Render a raw value as text for value-map lookup and CSV cells.

    ``None`` becomes an empty string, booleans ``true``/``false``, integral
    floats lose their ``.0`` and lists/dicts become compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, list | dict):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def format_value(
    value: Any,
    timezone: str | None = None,
    value_map: Mapping[str, Any] | None = None,
) -> Any:
    """Turn a raw field value into its display value.

    Timestamps are converted to ``timezone``; an empty or unknown zone falls
    back to UTC. When ``value_map`` is non-empty, the stringified value is
    replaced by its mapping if one exists.

    Args:
        value: Raw field value.
        timezone: Optional IANA zone identifier.
        value_map: Optional mapping from stringified raw value to display value.

    Returns:
        The display value.
    """
    if isinstance(value, datetime):
        value = format_timestamp(value, load_timezone(timezone) or UTC)

    if value_map:
        key = stringify_value(value)
        if key in value_map:
            value = value_map[key]

    return value
