"""Swagger 2.0 route derivation.

Turns a resolved ContractDocument into Route descriptors, each carrying flat
per-location JSON Schemas for request validation and a status-keyed map of
response schemas.
"""

import uuid
from pathlib import Path

from contract_router.errors import ContractShapeError
from contract_router.parser.base import (
    ContractDocument,
    Operation,
    Parameter,
    ResponseSchemas,
    ResponseSpec,
    Route,
    Schema,
    ValidateParams,
)
from contract_router.parser.detect import load_document

ANY_TYPE = ["string", "boolean", "number", "integer", "object", "array", "file", "null"]

NUMERIC_TYPES = ("integer", "number")


def parse_swagger(file_path: Path) -> list[Route]:
    """Load a Swagger file and derive its routes."""
    return derive_routes(load_document(file_path))


def derive_routes(document: ContractDocument) -> list[Route]:
    """Derive one Route per (path, supported method) pair of the document."""
    base_path = document.base_path.rstrip("/")
    routes = []

    for path, path_item in document.paths.items():
        for method, operation in path_item.operations():
            parameters = _merge_parameters(path_item.parameters, operation.parameters)
            uri = f"{base_path}{path}"
            routes.append(
                Route(
                    uri=uri,
                    method=method,
                    consumes=operation.consumes if operation.consumes is not None else document.consumes,
                    produces=operation.produces if operation.produces is not None else document.produces,
                    id=operation.operation_id or uuid.uuid4().hex,
                    operation_id=operation.operation_id,
                    summary=operation.summary,
                    description=operation.description,
                    tags=operation.tags,
                    validation=_validate_params(f"{method.upper()} {uri}", operation, parameters),
                )
            )

    return routes


def create_schema(
    parameters: list[Parameter],
    location: str,
    additional_properties: bool,
    lower_names: bool = False,
) -> Schema | None:
    """Build an object schema from the parameters declared at one location.

    Returns None when the location declares no parameters, which means the
    location is not validated at all.
    """
    selected = [p for p in parameters if p.location == location]
    if not selected:
        return None

    def field_name(param: Parameter) -> str:
        return param.name.lower() if lower_names else param.name

    schema: Schema = {
        "type": "object",
        "additionalProperties": additional_properties,
        "properties": {field_name(p): property_schema(p.as_schema()) for p in selected},
    }
    required = [field_name(p) for p in selected if p.required]
    if required:
        schema["required"] = required
    return schema


def property_schema(schema: Schema) -> Schema:
    """Relax a primitive schema for values that arrive as strings.

    Numbers also accept strings spelling that number; arrays also accept a
    single unwrapped item.
    """
    kind = schema.get("type")

    if kind in NUMERIC_TYPES:
        return {"anyOf": [schema, {**schema, "type": "string", "format": kind}]}

    if kind == "array":
        items = schema.get("items") or []
        if isinstance(items, dict):
            items = [items]
        return {"anyOf": [schema, *items]}

    return schema


def _merge_parameters(path_params: list[Parameter], operation_params: list[Parameter]) -> list[Parameter]:
    """Path-level parameters, overridden by operation parameters of the same name and location."""
    overridden = {(p.name, p.location) for p in operation_params}
    inherited = [p for p in path_params if (p.name, p.location) not in overridden]
    return inherited + list(operation_params)


def _payload_schema(name: str, parameters: list[Parameter]) -> tuple[Schema | None, bool]:
    bodies = [p for p in parameters if p.location == "body"]
    if len(bodies) > 1:
        raise ContractShapeError(f"{name} declares {len(bodies)} body parameters, at most one is allowed")
    if bodies:
        return (bodies[0].body_schema or {}), False

    form = create_schema(parameters, "formData", False)
    return form, form is not None


def _response_schemas(response: ResponseSpec) -> ResponseSchemas:
    if response.response_schema is not None:
        payload = response.response_schema
    else:
        payload = {"type": ANY_TYPE, "additionalProperties": True}

    # handlers may return header names in any case; they are compared lower-cased
    headers: Schema = {"type": "object", "additionalProperties": True}
    if response.headers:
        headers["properties"] = {
            name.lower(): property_schema(dict(header)) for name, header in response.headers.items()
        }

    return ResponseSchemas(payload=payload, headers=headers)


def _validate_params(name: str, operation: Operation, parameters: list[Parameter]) -> ValidateParams:
    payload, coerce_payload = _payload_schema(name, parameters)

    responses = {
        "default": ResponseSchemas(
            payload={},
            headers={"type": "object", "additionalProperties": True},
        )
    }
    for key, response in operation.responses.items():
        responses[key] = _response_schemas(response)

    return ValidateParams(
        params=create_schema(parameters, "path", False),
        query=create_schema(parameters, "query", False),
        headers=create_schema(parameters, "header", True, lower_names=True),
        payload=payload,
        coerce_payload=coerce_payload,
        responses=responses,
    )
