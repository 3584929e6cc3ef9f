"""Nested array flattening.

Columnar warehouses reject arrays whose elements are arrays. Date-parts are
the one shape where the nesting carries meaning (``[[2020, 1, 31]]``), so
they are unwrapped rather than concatenated and left for date conversion.
"""

from jsonl_normalize.normalize.values import JSONArray, JSONValue, has_array_element

DATE_PARTS_KEY = "date-parts"


def concat_once(items: JSONArray) -> JSONArray:
    """Concatenate element arrays one level, keeping non-array elements in place."""
    flat: JSONArray = []
    for item in items:
        if isinstance(item, list):
            flat.extend(item)
        else:
            flat.append(item)
    return flat


def concat_arrays(items: JSONArray) -> JSONArray:
    """Concatenate element arrays until no element is an array.

    Args:
        items: Array that may contain arrays at any depth.

    Returns:
        Array of non-array elements in document order.
    """
    flat = items
    while has_array_element(flat):
        flat = concat_once(flat)
    return flat


def flatten_nested_arrays(value: JSONValue, parent_key: str | None = None) -> JSONValue:
    """Flatten arrays of arrays anywhere inside a value.

    Args:
        value: Decoded JSON value.
        parent_key: Key under which ``value`` sits in its parent object.

    Returns:
        New value with no array-of-arrays, except ``date-parts`` arrays whose
        shape is not a single-element wrapper.
    """
    if isinstance(value, list):
        if not has_array_element(value):
            return [flatten_nested_arrays(item) for item in value]

        if parent_key == DATE_PARTS_KEY:
            # [[Y, M, D]] -> [Y, M, D]; other shapes are resolved by date conversion
            if len(value) == 1:
                return value[0]
            return value

        return [flatten_nested_arrays(item) for item in concat_arrays(value)]

    if isinstance(value, dict):
        return {key: flatten_nested_arrays(item, key) for key, item in value.items()}

    return value


def repair_nested_arrays(value: JSONValue) -> JSONValue:
    """Corrective pass used when serialized output still shows ``[[``.

    Walks top-down and concatenates each array-of-arrays one level before
    descending into its elements.
    """
    if isinstance(value, list):
        items = concat_once(value) if has_array_element(value) else value
        return [repair_nested_arrays(item) for item in items]

    if isinstance(value, dict):
        return {key: repair_nested_arrays(item) for key, item in value.items()}

    return value
