"""Compiled JSON Schema validators with a process-wide, append-only cache.

Swagger 2.0 schemas are a Draft 4 dialect with an extra `file` type, so the
validator class is Draft 4 extended with that type. Strings are checked
against the `integer` and `number` formats used for parameters that arrive
as text.

Usage:
    cache = get_validator_cache()
    result = cache.validate(schema, {"limit": "3"}, coerce=True, source="query")
    if result.ok:
        query = result.output
"""

import copy
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from jsonschema import Draft4Validator, FormatChecker, validators
from jsonschema.exceptions import SchemaError, UnknownType

from contract_router.errors import FieldError, UnknownError, ValidationError
from contract_router.parser.base import Schema
from contract_router.validation.coerce import coerce_value, is_integer_string, is_number_string

ValidateCallback = Callable[[ValidationError | UnknownError | None, Any], None]


def _is_file(checker, instance: Any) -> bool:
    return isinstance(instance, (bytes, bytearray)) or hasattr(instance, "read")


ContractValidator = validators.extend(
    Draft4Validator,
    type_checker=Draft4Validator.TYPE_CHECKER.redefine("file", _is_file),
)

FORMAT_CHECKER = FormatChecker()


@FORMAT_CHECKER.checks("integer")
def _check_integer_format(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    return is_integer_string(instance)


@FORMAT_CHECKER.checks("number")
def _check_number_format(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    return is_number_string(instance)


def schema_key(schema: Schema) -> str:
    """Canonical text of a schema; structurally equal schemas share a key."""
    return json.dumps(schema, sort_keys=True, separators=(",", ":"), default=repr)


@dataclass(frozen=True)
class ValidationResult:
    """Either the validated (possibly coerced) output or the failure."""

    output: Any = None
    error: ValidationError | UnknownError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.output


class CompiledValidator:
    """A reusable validator for one schema."""

    def __init__(self, schema: Schema):
        self.schema = copy.deepcopy(schema)
        self._validator = ContractValidator(self.schema, format_checker=FORMAT_CHECKER)

    def validate(self, data: Any, coerce: bool = False, source: str | None = None) -> ValidationResult:
        """Validate a copy of data.

        Args:
            data: Value to validate. Never modified.
            coerce: Fill defaults and convert strings to declared types first.
            source: Location tag carried by any resulting error.
        """
        output = copy.deepcopy(data)
        if coerce:
            output = coerce_value(self.schema, output)

        try:
            errors = list(self._validator.iter_errors(output))
        except (SchemaError, UnknownType) as e:
            error = UnknownError(source)
            error.__cause__ = e
            return ValidationResult(error=error)

        if not errors:
            return ValidationResult(output=output)

        return ValidationResult(error=ValidationError(_field_errors(errors), source))


def _field_errors(errors: list) -> list[FieldError]:
    """Convert jsonschema errors; a missing required property is named in its path.

    jsonschema reports each missing property as its own error against the
    parent object, in the order the `required` list declares them.
    """
    missing: dict[tuple, list[str]] = {}
    field_errors = []
    for e in errors:
        path = list(e.absolute_path)
        if e.validator == "required" and isinstance(e.instance, dict):
            key = (tuple(path), tuple(e.absolute_schema_path))
            if key not in missing:
                missing[key] = [name for name in e.validator_value if name not in e.instance]
            if missing[key]:
                path.append(missing[key].pop(0))
        field_errors.append(FieldError(path=path, constraint=str(e.validator), message=e.message))
    return field_errors


class ValidatorCache:
    """Compiles each distinct schema once and keeps it for the cache's lifetime.

    Keys are the canonical JSON of the schema, so two equal schemas built
    independently share one validator. Entries are never evicted.
    """

    def __init__(self):
        self._validators: dict[str, CompiledValidator] = {}
        self._lock = threading.Lock()
        self.compile_count = 0

    def __len__(self) -> int:
        return len(self._validators)

    def compile(self, schema: Schema) -> CompiledValidator:
        key = schema_key(schema)
        validator = self._validators.get(key)
        if validator is not None:
            return validator

        with self._lock:
            validator = self._validators.get(key)
            if validator is None:
                validator = CompiledValidator(schema)
                self._validators[key] = validator
                self.compile_count += 1
        return validator

    def validate(
        self,
        schema: Schema,
        data: Any,
        coerce: bool = False,
        source: str | None = None,
    ) -> ValidationResult:
        return self.compile(schema).validate(data, coerce=coerce, source=source)


@lru_cache
def get_validator_cache() -> ValidatorCache:
    """Get the process-wide validator cache."""
    return ValidatorCache()


def validate(
    schema: Schema,
    data: Any,
    callback: ValidateCallback | None = None,
    coerce: bool = False,
    source: str | None = None,
    cache: ValidatorCache | None = None,
) -> ValidationResult:
    """Validate data against schema, optionally reporting through callback(error, output)."""
    if cache is None:
        cache = get_validator_cache()
    result = cache.validate(schema, data, coerce=coerce, source=source)
    if callback is not None:
        callback(result.error, result.output)
    return result
