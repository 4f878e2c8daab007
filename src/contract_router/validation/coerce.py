"""Coercion of raw transport values into the types a schema declares.

Path, query, and header values always arrive as strings. Before validating
them, strings are converted into integers, numbers, or booleans wherever the
schema asks for those types, and declared defaults are filled in for missing
object properties. Values are modified in place; callers pass a copy.
"""

import copy
import re
from typing import Any

from contract_router.parser.base import Schema

INTEGER_PATTERN = re.compile(r"^[-+]?\d+$")
NUMBER_PATTERN = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")
BOOLEANS = {"true": True, "false": False}

_MISSING = object()


def is_integer_string(value: str) -> bool:
    return INTEGER_PATTERN.match(value) is not None


def is_number_string(value: str) -> bool:
    return NUMBER_PATTERN.match(value) is not None


def coerce_value(schema: Schema, value: Any) -> Any:
    """Return value with defaults applied and strings converted per schema."""
    if not isinstance(schema, dict):
        return value
    if isinstance(value, dict):
        return _coerce_object(schema, value)
    if isinstance(value, list):
        return _coerce_array(schema, value)
    if isinstance(value, str):
        return _coerce_string(schema, value)
    return value


def _alternatives(schema: Schema) -> list[Schema]:
    """The schema itself plus its anyOf/oneOf branches."""
    result = [schema]
    for key in ("anyOf", "oneOf"):
        result.extend(alt for alt in schema.get(key, []) if isinstance(alt, dict))
    return result


def _is_numeric_string_branch(schema: Schema) -> bool:
    return schema.get("type") == "string" and schema.get("format") in ("integer", "number")


def _declared_types(schema: Schema) -> set[str]:
    types: set[str] = set()
    for alt in _alternatives(schema):
        if _is_numeric_string_branch(alt):
            continue
        kind = alt.get("type")
        if isinstance(kind, str):
            types.add(kind)
        elif isinstance(kind, list):
            types.update(k for k in kind if isinstance(k, str))
    return types


def _default_of(schema: Any) -> Any:
    if not isinstance(schema, dict):
        return _MISSING
    for alt in _alternatives(schema):
        if "default" in alt:
            return alt["default"]
    return _MISSING


def _coerce_object(schema: Schema, value: dict) -> dict:
    for alt in _alternatives(schema):
        properties = alt.get("properties")
        if not isinstance(properties, dict):
            continue
        for name, prop in properties.items():
            if name in value:
                value[name] = coerce_value(prop, value[name])
                continue
            default = _default_of(prop)
            if default is not _MISSING:
                value[name] = coerce_value(prop, copy.deepcopy(default))
    return value


def _coerce_array(schema: Schema, value: list) -> list:
    for alt in _alternatives(schema):
        items = alt.get("items")
        if isinstance(items, dict):
            return [coerce_value(items, item) for item in value]
    return value


def _coerce_string(schema: Schema, value: str) -> Any:
    types = _declared_types(schema)
    # a schema that takes plain strings keeps them
    if not types or "string" in types:
        return value

    if "integer" in types and is_integer_string(value):
        return int(value)
    if "number" in types and is_number_string(value):
        return int(value) if is_integer_string(value) else float(value)
    if "boolean" in types and value in BOOLEANS:
        return BOOLEANS[value]
    return value
