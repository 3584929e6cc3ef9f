"""Record transformer: turns one decoded JSON record into a warehouse-safe one.

Modules:
- values: JSON value model
- arrays: nested array flattening and the post-serialization repair pass
- dates: date-parts to ISO date conversion
- fields: year typing, null cleanup, key renaming
- pipeline: fixed-order stage pipeline and serialization
"""

from jsonl_normalize.normalize.pipeline import (
    SerializedRecord,
    normalize_record,
    normalize_value,
    parse_record,
    serialize_record,
    transform_line,
)

__all__ = [
    "SerializedRecord",
    "normalize_record",
    "normalize_value",
    "parse_record",
    "serialize_record",
    "transform_line",
]
