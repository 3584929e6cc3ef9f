"""Date-parts conversion.

CrossRef-style dumps encode dates as ``{"date-parts": [[year, month, day]]}``
with month and day optional. The warehouse wants a scalar ``YYYY-MM-DD``.
"""

import calendar
import math
import re
from typing import Any

from jsonl_normalize.normalize.arrays import DATE_PARTS_KEY
from jsonl_normalize.normalize.values import JSONObject, JSONValue

# Sub-objects that are replaced wholesale by their ISO date string
DATE_FIELDS: tuple[str, ...] = (
    "published",
    "created",
    "deposited",
    "indexed",
    "issued",
    "published-online",
    "published-print",
)

LICENSE_KEY = "license"
LICENSE_START_KEY = "start"
DATE_KEY = "date"

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


def parse_int(value: Any) -> int | None:
    """Parse a date component with leading-integer semantics.

    ``"2020"`` and ``"2020abc"`` give 2020, ``2020.7`` gives 2020. Booleans,
    null, containers and strings without leading digits give None.

    Args:
        value: Raw date component.

    Returns:
        Parsed integer or None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def unwrap_date_parts(parts: JSONValue) -> JSONValue:
    """Strip the one-element outer wrapper: ``[[Y, M, D]]`` -> ``[Y, M, D]``."""
    if isinstance(parts, list) and len(parts) == 1 and isinstance(parts[0], list):
        return parts[0]
    return parts


def date_parts_to_iso(parts: JSONValue) -> str | None:
    """Convert a date-parts array to a ``YYYY-MM-DD`` string.

    Missing or non-numeric month and day fall back to 1. A numeric month or
    day that isn't on the calendar (``[2021, 2, 30]``) invalidates the whole
    date rather than being moved.

    Args:
        parts: Date-parts value, wrapped or unwrapped.

    Returns:
        ISO date string, or None when the year is missing or not an integer
        in 1..9999, or when the month and day don't name a real day.
    """
    parts = unwrap_date_parts(parts)
    if not isinstance(parts, list) or not parts:
        return None

    year = parse_int(parts[0])
    if year is None or not 1 <= year <= 9999:
        return None

    month = parse_int(parts[1]) if len(parts) > 1 else None
    if month is None:
        month = 1
    elif not 1 <= month <= 12:
        return None

    day = parse_int(parts[2]) if len(parts) > 2 else None
    if day is None:
        day = 1
    elif not 1 <= day <= calendar.monthrange(year, month)[1]:
        return None

    return f"{year:04d}-{month:02d}-{day:02d}"


def _date_parts_of(value: JSONValue) -> JSONValue:
    """Return the date-parts carried by a sub-object, or None."""
    if isinstance(value, dict):
        return value.get(DATE_PARTS_KEY)
    return None


def _convert_license_start(entry: JSONValue) -> JSONValue:
    if not isinstance(entry, dict):
        return entry

    parts = _date_parts_of(entry.get(LICENSE_START_KEY))
    if parts is None:
        return entry

    iso = date_parts_to_iso(parts)

    result = dict(entry)
    if iso is None:
        del result[LICENSE_START_KEY]
    else:
        result[LICENSE_START_KEY] = iso
    return result


def _convert_object(obj: JSONObject) -> JSONObject:
    result = dict(obj)

    # Bare date-parts become a sibling "date"; the array form is always dropped
    if DATE_PARTS_KEY in result:
        iso = date_parts_to_iso(result.pop(DATE_PARTS_KEY))
        if iso is not None:
            result[DATE_KEY] = iso

    for field in DATE_FIELDS:
        parts = _date_parts_of(result.get(field))
        if parts is None:
            continue
        iso = date_parts_to_iso(parts)
        if iso is None:
            del result[field]
        else:
            result[field] = iso

    licenses = result.get(LICENSE_KEY)
    if isinstance(licenses, list):
        result[LICENSE_KEY] = [_convert_license_start(entry) for entry in licenses]

    return result


def convert_dates(value: JSONValue) -> JSONValue:
    """Replace every date-parts encoding with an ISO date string.

    Applies to bare ``date-parts`` keys in any object, the named date
    sub-objects in ``DATE_FIELDS``, and ``license[].start``. A date whose year
    cannot be parsed removes the field that carried it.

    Args:
        value: Decoded JSON value, already passed through array flattening.

    Returns:
        New value with no ``date-parts`` keys.
    """
    if isinstance(value, list):
        return [convert_dates(item) for item in value]

    if isinstance(value, dict):
        converted = _convert_object(value)
        return {key: convert_dates(item) for key, item in converted.items()}

    return value
