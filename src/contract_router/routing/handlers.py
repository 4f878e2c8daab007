"""Handler resolution and handler transforms.

Handlers are opaque values supplied by the caller, keyed by operation id or
by "<METHOD> <uri>". Routes without a handler get a stand-in that always
answers 501.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from contract_router.errors import TransformError
from contract_router.parser.base import Route


class Outcome(BaseModel):
    """A framework-agnostic response: status, body, headers."""

    status_code: int = 200
    body: Any = None
    headers: dict[str, Any] = {}


NOT_IMPLEMENTED = Outcome(
    status_code=501,
    body={"statusCode": 501, "error": "Not Implemented", "message": "Not Implemented"},
)


def not_implemented_handler(*args: Any, **kwargs: Any) -> Outcome:
    """Stand-in for operations without a handler."""
    return NOT_IMPLEMENTED.model_copy(deep=True)


@dataclass(frozen=True)
class Found:
    handler: Any
    key: str


@dataclass(frozen=True)
class NotFound:
    keys: tuple[str, ...]


HandlerLookup = Found | NotFound


def handler_keys(route: Route) -> tuple[str, ...]:
    """Keys tried for a route, in lookup order."""
    keys = []
    if route.operation_id:
        keys.append(route.operation_id)
    keys.append(f"{route.method.upper()} {route.uri}")
    keys.append(f"{route.method.lower()} {route.uri}")
    return tuple(keys)


def lookup_handler(handlers: Mapping[str, Any], route: Route) -> HandlerLookup:
    """Find the handler for a route: operation id first, then method and uri."""
    keys = handler_keys(route)
    for key in keys:
        handler = handlers.get(key)
        if handler is not None:
            return Found(handler=handler, key=key)
    return NotFound(keys=keys)


@dataclass(frozen=True)
class NameWrap:
    """Wrap each handler in a mapping under a fixed name."""

    name: str

    def apply(self, handler: Any) -> dict[str, Any]:
        return {self.name: handler}


@dataclass(frozen=True)
class FunctionWrap:
    """Pass each handler through a wrapping function."""

    fn: Callable[[Any], Any]

    def apply(self, handler: Any) -> Any:
        return self.fn(handler)


HandlerTransform = NameWrap | FunctionWrap


def as_transform(value: Any) -> HandlerTransform | None:
    """Turn a user-supplied transform into a transform variant.

    A string becomes NameWrap, a callable becomes FunctionWrap, None means no
    transform. Anything else raises TransformError.
    """
    if value is None:
        return None
    if isinstance(value, (NameWrap, FunctionWrap)):
        return value
    if isinstance(value, str):
        if not value:
            raise TransformError("handler transform name must not be empty")
        return NameWrap(value)
    if callable(value):
        return FunctionWrap(value)
    raise TransformError(f"unsupported handler transform of type {type(value).__name__}")
