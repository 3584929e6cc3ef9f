"""Field-level fixes: year typing, null cleanup and key renaming."""

import re

from jsonl_normalize.normalize.values import JSONObject, JSONValue

YEAR_KEY = "year"
YEAR_STRING_KEY = "year_string"
SENTINEL_SUBSTRING = "colidentifier"

_ASCII_DIGITS = re.compile(r"[0-9]+")


def fix_year_fields(value: JSONValue) -> JSONValue:
    """Ensure no ``year`` field is left as a string.

    A digit-only string becomes an integer in place. Any other string moves
    verbatim to ``year_string`` and ``year`` is removed. Non-string years are
    left alone.

    Args:
        value: Decoded JSON value.

    Returns:
        New value with fixed year fields at every depth.
    """
    if isinstance(value, list):
        return [fix_year_fields(item) for item in value]

    if not isinstance(value, dict):
        return value

    result: JSONObject = {}
    moved: str | None = None
    for key, item in value.items():
        if key == YEAR_KEY and isinstance(item, str):
            if _ASCII_DIGITS.fullmatch(item):
                result[key] = int(item)
            else:
                moved = item
            continue
        result[key] = fix_year_fields(item)

    if moved is not None:
        result[YEAR_STRING_KEY] = moved
    return result


def is_sentinel_key(key: str) -> bool:
    """Return True for keys whose null value must become an empty string."""
    return SENTINEL_SUBSTRING in key or (key.startswith("*") and key.endswith("*"))


def clean_nulls(value: JSONValue) -> JSONValue:
    """Drop null values.

    Null object values are dropped, except for sentinel keys which get ``""``.
    Null array elements are removed.
    """
    if isinstance(value, list):
        return [clean_nulls(item) for item in value if item is not None]

    if isinstance(value, dict):
        result: JSONObject = {}
        for key, item in value.items():
            if item is None:
                if is_sentinel_key(key):
                    result[key] = ""
                continue
            result[key] = clean_nulls(item)
        return result

    return value


def rename_keys(value: JSONValue) -> JSONValue:
    """Replace every hyphen in every object key with an underscore.

    If two keys collide after renaming, the later one wins.
    """
    if isinstance(value, list):
        return [rename_keys(item) for item in value]

    if isinstance(value, dict):
        return {key.replace("-", "_"): rename_keys(item) for key, item in value.items()}

    return value
