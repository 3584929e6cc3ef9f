"""JSON value model shared by the normalization stages.

Every stage is a total function over ``JSONValue`` and dispatches on the
runtime type: ``dict`` for objects, ``list`` for arrays, anything else is a
scalar (``None``, ``bool``, ``int``, ``float``, ``str``) and passes through.
Stages never mutate their input; they build new containers.
"""

from typing import TypeAlias

JSONScalar: TypeAlias = None | bool | int | float | str
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONArray: TypeAlias = list[JSONValue]
JSONObject: TypeAlias = dict[str, JSONValue]


def has_array_element(items: JSONArray) -> bool:
    """Return True if any element of the array is itself an array."""
    return any(isinstance(item, list) for item in items)


def type_name(value: JSONValue) -> str:
    """Return the JSON type name of a decoded value, for error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"
