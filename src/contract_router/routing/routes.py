"""Route materialization.

Binds derived routes to handlers and assembles the per-route configuration a
web framework needs: request validators per location with a failure hook, a
payload parsing policy, and response validation keyed by status code.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import structlog
from pydantic import BaseModel

from contract_router.config import Settings, get_settings
from contract_router.errors import UnknownError, ValidationError
from contract_router.parser.base import ContractDocument, Route, Schema
from contract_router.parser.detect import load_document
from contract_router.parser.swagger import derive_routes
from contract_router.routing.handlers import (
    Found,
    HandlerTransform,
    Outcome,
    as_transform,
    lookup_handler,
    not_implemented_handler,
)
from contract_router.validation.engine import ValidatorCache, get_validator_cache

logger = structlog.get_logger(__name__)

REQUEST_LOCATIONS = ("params", "query", "headers", "payload")

BODYLESS_METHODS = ("get", "head")


def _internal_error(message: str, source: str | None) -> Outcome:
    return Outcome(
        status_code=500,
        body={
            "statusCode": 500,
            "error": "Internal Server Error",
            "message": message,
            "source": source,
        },
    )


class PayloadPolicy(BaseModel):
    """How the framework should read request payloads for a route."""

    allow: list[str]
    parse: bool = True
    max_bytes: int
    output: str = "data"


@dataclass(frozen=True)
class LocationValidator:
    """Validates one location of a request or response; raises on failure."""

    source: str
    schema: Schema
    coerce: bool
    cache: ValidatorCache = field(repr=False, compare=False)

    def __call__(self, value: Any) -> Any:
        result = self.cache.validate(self.schema, value, coerce=self.coerce, source=self.source)
        return result.unwrap()


@dataclass(frozen=True)
class RequestValidation:
    route_id: str
    params: LocationValidator | None = None
    query: LocationValidator | None = None
    headers: LocationValidator | None = None
    payload: LocationValidator | None = None

    def check(self, location: str, value: Any) -> Any:
        """Validate one request location, returning the coerced value.

        Locations without a validator pass through untouched.
        """
        if location not in REQUEST_LOCATIONS:
            raise KeyError(location)
        validator = getattr(self, location)
        if validator is None:
            return value
        return validator(value)

    def fail_action(self, source: str | None, error: ValidationError | UnknownError) -> Outcome:
        if isinstance(error, ValidationError):
            logger.warning(
                "request validation failed",
                route=self.route_id,
                source=source,
                errors=[e.model_dump() for e in error.errors],
            )
            return Outcome(status_code=400, body={"source": source, "errors": [e.model_dump() for e in error.errors]})

        logger.error(
            "request validation failed without detail",
            route=self.route_id,
            source=source,
            cause=repr(error.__cause__),
        )
        return _internal_error("An internal server error occurred", source)


@dataclass(frozen=True)
class ResponseCheck:
    key: str
    payload: LocationValidator
    headers: LocationValidator


@dataclass(frozen=True)
class ResponseValidation:
    route_id: str
    status: Mapping[str, ResponseCheck]

    def for_status(self, status_code: int | str) -> ResponseCheck:
        return self.status.get(str(status_code)) or self.status["default"]

    def check(self, status_code: int | str, payload: Any, headers: Mapping[str, Any] | None = None) -> Outcome | None:
        """Return a 500 outcome if the response breaks its declared shape, else None."""
        response = self.for_status(status_code)
        try:
            response.payload(payload)
            response.headers({str(name).lower(): value for name, value in (headers or {}).items()})
        except (ValidationError, UnknownError) as error:
            logger.error(
                "response validation failed",
                route=self.route_id,
                status_code=status_code,
                source=error.source,
                errors=[e.model_dump() for e in getattr(error, "errors", [])],
                unknown=isinstance(error, UnknownError),
            )
            return _internal_error("Response validation failed", error.source)
        return None


@dataclass(frozen=True)
class RouteConfig:
    validate: RequestValidation
    payload: PayloadPolicy | None
    response: ResponseValidation


@dataclass(frozen=True)
class FrameworkRoute:
    """Everything a framework needs to register one route."""

    id: str
    method: str
    path: str
    handler: Any
    config: RouteConfig
    handler_key: str | None = None

    @property
    def implemented(self) -> bool:
        return self.handler_key is not None


def materialize(
    routes: list[Route],
    handlers: Mapping[str, Any],
    transform: Any = None,
    cache: ValidatorCache | None = None,
    settings: Settings | None = None,
) -> list[FrameworkRoute]:
    """Bind routes to handlers and build their framework configuration.

    Args:
        routes: Routes from derive_routes.
        handlers: Handler table keyed by operation id or "<METHOD> <uri>".
        transform: None, a name string, a wrapping callable, or a
            NameWrap/FunctionWrap. Checked before any route is built.
        cache: Validator cache. Defaults to the process-wide cache.
        settings: Payload limits. Defaults to get_settings().

    Raises:
        TransformError: transform is of an unsupported kind.
    """
    handler_transform = as_transform(transform)
    if cache is None:
        cache = get_validator_cache()
    if settings is None:
        settings = get_settings()

    table = MappingProxyType(dict(handlers))
    return [_materialize_route(route, table, handler_transform, cache, settings) for route in routes]


def materialize_document(
    document: ContractDocument | Mapping[str, Any] | Path,
    handlers: Mapping[str, Any],
    transform: Any = None,
    cache: ValidatorCache | None = None,
    settings: Settings | None = None,
) -> list[FrameworkRoute]:
    """Derive routes from a contract and materialize them in one step."""
    if not isinstance(document, ContractDocument):
        document = load_document(document)
    return materialize(derive_routes(document), handlers, transform, cache=cache, settings=settings)


def _materialize_route(
    route: Route,
    handlers: Mapping[str, Any],
    transform: HandlerTransform | None,
    cache: ValidatorCache,
    settings: Settings,
) -> FrameworkRoute:
    lookup = lookup_handler(handlers, route)
    if isinstance(lookup, Found):
        handler = transform.apply(lookup.handler) if transform else lookup.handler
        handler_key = lookup.key
    else:
        logger.warning("no handler for route, answering 501", route=route.key, tried=list(lookup.keys))
        handler = not_implemented_handler
        handler_key = None

    payload_policy = None
    if route.method.lower() not in BODYLESS_METHODS:
        payload_policy = PayloadPolicy(
            allow=list(route.consumes),
            max_bytes=settings.max_payload_bytes,
            output=settings.payload_output,
        )

    config = RouteConfig(
        validate=_request_validation(route, cache),
        payload=payload_policy,
        response=_response_validation(route, cache),
    )
    logger.debug("route materialized", route=route.key, id=route.id, handler=handler_key)

    return FrameworkRoute(
        id=route.id,
        method=route.method,
        path=route.uri,
        handler=handler,
        config=config,
        handler_key=handler_key,
    )


def _location_validator(
    source: str,
    schema: Schema | None,
    coerce: bool,
    cache: ValidatorCache,
) -> LocationValidator | None:
    if schema is None:
        return None
    # compile now so a broken schema fails at startup
    cache.compile(schema)
    return LocationValidator(source=source, schema=schema, coerce=coerce, cache=cache)


def _request_validation(route: Route, cache: ValidatorCache) -> RequestValidation:
    params = route.validation
    return RequestValidation(
        route_id=route.id,
        params=_location_validator("params", params.params, True, cache),
        query=_location_validator("query", params.query, True, cache),
        headers=_location_validator("headers", params.headers, True, cache),
        payload=_location_validator("payload", params.payload, params.coerce_payload, cache),
    )


def _response_validation(route: Route, cache: ValidatorCache) -> ResponseValidation:
    status = {}
    for key, schemas in route.validation.responses.items():
        status[key] = ResponseCheck(
            key=key,
            payload=_location_validator(f"response:{key}", schemas.payload, False, cache),
            headers=_location_validator(f"response:{key}:headers", schemas.headers, False, cache),
        )
    return ResponseValidation(route_id=route.id, status=MappingProxyType(status))
