"""Record normalization pipeline.

Stages run in a fixed order and each one relies on the invariants left by
the previous ones:

1. flatten nested arrays (date-parts are only unwrapped)
2. convert date-parts to ISO strings
3. fix ``year`` fields
4. clean nulls
5. replace hyphens in keys

Serialization then checks the output text for ``[[`` and runs a corrective
flattening pass if any nested array slipped through.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import NoReturn

from jsonl_normalize.errors import RecordError
from jsonl_normalize.normalize.arrays import flatten_nested_arrays, repair_nested_arrays
from jsonl_normalize.normalize.dates import convert_dates
from jsonl_normalize.normalize.fields import clean_nulls, fix_year_fields, rename_keys
from jsonl_normalize.normalize.values import JSONObject, JSONValue, type_name

Stage = Callable[[JSONValue], JSONValue]

STAGES: tuple[tuple[str, Stage], ...] = (
    ("flatten_arrays", flatten_nested_arrays),
    ("convert_dates", convert_dates),
    ("fix_year", fix_year_fields),
    ("clean_nulls", clean_nulls),
    ("rename_keys", rename_keys),
)

NESTED_ARRAY_MARKER = "[["


@dataclass(frozen=True)
class SerializedRecord:
    """One output line, without the trailing newline.

    Attributes:
        text: Compact JSON text.
        unrepaired: Text before the corrective pass, when one was needed.
    """

    text: str
    unrepaired: str | None = None

    @property
    def repaired(self) -> bool:
        """Whether the corrective flattening pass ran."""
        return self.unrepaired is not None

    def to_bytes(self) -> bytes:
        """Encode as UTF-8.

        Lone surrogates (legal as ``\\ud800`` escapes in the input) can't be
        encoded; they are written back as the same JSON escape.
        """
        return self.text.encode("utf-8", errors="backslashreplace")


def _reject_constant(name: str) -> NoReturn:
    msg = f"{name} is not valid JSON"
    raise ValueError(msg)


def parse_record(text: str) -> JSONValue:
    """Decode one JSON line.

    Raises:
        RecordError: If the text is not valid JSON (``NaN`` and ``Infinity``
            included).
    """
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        msg = f"invalid JSON: {e}"
        raise RecordError(msg) from e


def normalize_value(value: JSONValue) -> JSONValue:
    """Run every stage over any JSON value, in order."""
    for name, stage in STAGES:
        try:
            value = stage(value)
        except (RecursionError, TypeError, ValueError) as e:
            msg = f"{name} failed: {e}"
            raise RecordError(msg) from e
    return value


def normalize_record(record: JSONValue) -> JSONObject:
    """Normalize one decoded record into a warehouse-safe object.

    Args:
        record: Decoded JSON value from one input line.

    Returns:
        Normalized JSON object.

    Raises:
        RecordError: If the record is not an object or a stage fails.
    """
    if not isinstance(record, dict):
        msg = f"expected a JSON object, got {type_name(record)}"
        raise RecordError(msg)

    result = normalize_value(record)
    if not isinstance(result, dict):
        msg = f"normalization produced {type_name(result)}"
        raise RecordError(msg)
    return result


def dumps(value: JSONValue) -> str:
    """Serialize compactly, keeping non-ASCII text and refusing NaN."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def serialize_record(record: JSONObject) -> SerializedRecord:
    """Serialize a normalized record, repairing stray nested arrays.

    Raises:
        RecordError: If the record cannot be serialized.
    """
    try:
        text = dumps(record)
        if NESTED_ARRAY_MARKER not in text:
            return SerializedRecord(text=text)
        repaired = dumps(repair_nested_arrays(record))
    except (RecursionError, TypeError, ValueError) as e:
        msg = f"serialization failed: {e}"
        raise RecordError(msg) from e

    return SerializedRecord(text=repaired, unrepaired=text)


def transform_line(text: str) -> SerializedRecord:
    """Parse, normalize and serialize one input line."""
    return serialize_record(normalize_record(parse_record(text)))
