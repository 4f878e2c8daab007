"""Mount contract routes on a FastAPI application.

Each materialized route becomes a plain endpoint that validates the request
locations, calls the handler with a RequestContext, and checks the handler's
outcome against the declared responses.

Usage:
    app = FastAPI()
    register(app, load_document(Path("petstore.yaml")), {"findPets": find_pets})
"""

import inspect
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from contract_router.config import Settings
from contract_router.errors import UnknownError, ValidationError
from contract_router.parser.base import ContractDocument
from contract_router.routing.handlers import Outcome
from contract_router.routing.routes import FrameworkRoute, PayloadPolicy, materialize_document
from contract_router.validation.engine import ValidatorCache

FORM_MEDIA_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class PayloadError(Exception):
    """The request body could not be read under the route's payload policy."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class RequestContext:
    """Validated request data handed to handlers."""

    method: str
    path: str
    params: dict[str, Any]
    query: dict[str, Any]
    headers: dict[str, Any]
    payload: Any
    request: Request


def register(
    app: FastAPI,
    document: ContractDocument | Mapping[str, Any],
    handlers: Mapping[str, Any],
    transform: Any = None,
    cache: ValidatorCache | None = None,
    settings: Settings | None = None,
) -> list[FrameworkRoute]:
    """Materialize the contract and add every route to the app.

    Raises:
        TransformError: transform is of an unsupported kind.
        TypeError: a resolved handler is not callable.
    """
    routes = materialize_document(document, handlers, transform, cache=cache, settings=settings)

    for route in routes:
        if not callable(route.handler):
            raise TypeError(f"handler for {route.method.upper()} {route.path} is not callable")

    for route in routes:
        app.add_api_route(
            route.path,
            _make_endpoint(route),
            methods=[route.method.upper()],
            name=route.id,
            include_in_schema=False,
        )
    return routes


def _make_endpoint(route: FrameworkRoute):
    validation = route.config.validate

    async def endpoint(request: Request) -> Response:
        try:
            params = validation.check("params", dict(request.path_params))
            query = validation.check("query", _query_dict(request))
            headers = validation.check("headers", dict(request.headers))
            payload = None
            if route.config.payload is not None:
                payload = await _read_payload(request, route.config.payload)
                payload = validation.check("payload", payload)
        except PayloadError as e:
            return _respond(Outcome(status_code=e.status_code, body={"statusCode": e.status_code, "message": e.message}))
        except (ValidationError, UnknownError) as error:
            return _respond(validation.fail_action(error.source, error))

        context = RequestContext(
            method=request.method,
            path=request.url.path,
            params=params,
            query=query,
            headers=headers,
            payload=payload,
            request=request,
        )
        result = route.handler(context)
        if inspect.isawaitable(result):
            result = await result

        outcome = result if isinstance(result, Outcome) else Outcome(body=result)
        if not route.implemented:
            return _respond(outcome)
        mismatch = route.config.response.check(outcome.status_code, outcome.body, outcome.headers)
        return _respond(mismatch or outcome)

    return endpoint


def _query_dict(request: Request) -> dict[str, Any]:
    """Query parameters; keys given more than once become lists."""
    query: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key not in query:
            query[key] = value
        elif isinstance(query[key], list):
            query[key].append(value)
        else:
            query[key] = [query[key], value]
    return query


async def _read_body(request: Request, max_bytes: int) -> bytes:
    """Read the body, stopping as soon as it grows past max_bytes."""
    too_large = PayloadError(413, "Payload content length greater than maximum allowed")
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise too_large

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise too_large
        chunks.append(chunk)
    return b"".join(chunks)


def _replay(request: Request, body: bytes) -> Request:
    """A copy of the request whose receive channel yields the already read body."""

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(request.scope, receive)


async def _read_payload(request: Request, policy: PayloadPolicy) -> Any:
    body = await _read_body(request, policy.max_bytes)
    if not body:
        return None

    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if policy.allow and media_type not in policy.allow:
        raise PayloadError(415, f"Unsupported media type {media_type or '(none)'}")
    if not policy.parse:
        return body

    if media_type in FORM_MEDIA_TYPES:
        form = await _replay(request, body).form()
        return {key: value for key, value in form.multi_items()}
    if media_type == "application/json" or media_type.endswith("+json") or not media_type:
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise PayloadError(400, f"Invalid request payload JSON format: {e.msg}") from e
    if media_type.startswith("text/"):
        return body.decode("utf-8", errors="replace")
    return body


def _respond(outcome: Outcome) -> Response:
    headers = {name: str(value) for name, value in outcome.headers.items()}
    if outcome.body is None:
        return Response(status_code=outcome.status_code, headers=headers)
    return JSONResponse(outcome.body, status_code=outcome.status_code, headers=headers)
