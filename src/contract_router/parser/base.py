"""Data models for Swagger 2.0 contracts and the routes derived from them.

Contract models mirror the Swagger object model closely enough to read a
resolved document; route models are what the rest of the package consumes.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

Schema = dict[str, Any]

SUPPORTED_METHODS = ("get", "post", "put", "delete", "options", "head", "patch")

# Parameter keys that describe transport, not the value itself.
NON_SCHEMA_KEYS = ("collectionFormat", "allowEmptyValue")


class Parameter(BaseModel):
    """A single operation parameter (path, query, header, body, or formData)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    name: str
    location: str = Field(alias="in")
    required: bool = False
    description: str | None = None
    body_schema: Schema | None = Field(default=None, alias="schema")

    def as_schema(self) -> Schema:
        """Return the inline primitive schema of a non-body parameter."""
        schema = {
            key: value
            for key, value in (self.model_extra or {}).items()
            if key not in NON_SCHEMA_KEYS
        }
        if self.description is not None:
            schema["description"] = self.description
        return schema


class ResponseSpec(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    description: str = ""
    response_schema: Schema | None = Field(default=None, alias="schema")
    headers: dict[str, Schema] | None = None


class Operation(BaseModel):
    """One HTTP method on one path."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    parameters: list[Parameter] = []
    operation_id: str | None = Field(default=None, alias="operationId")
    summary: str = ""
    description: str = ""
    tags: list[str] = []
    consumes: list[str] | None = None
    produces: list[str] | None = None
    responses: dict[str, ResponseSpec] = {}

    @field_validator("responses", mode="before")
    @classmethod
    def stringify_status_keys(cls, v: Any) -> Any:
        # YAML reads `200:` as an int
        if isinstance(v, dict):
            return {str(key): value for key, value in v.items()}
        return v


class PathItem(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    get: Operation | None = None
    put: Operation | None = None
    post: Operation | None = None
    delete: Operation | None = None
    options: Operation | None = None
    head: Operation | None = None
    patch: Operation | None = None
    parameters: list[Parameter] = []

    def operations(self) -> list[tuple[str, Operation]]:
        """Declared operations in supported-method order."""
        result = []
        for method in SUPPORTED_METHODS:
            operation = getattr(self, method)
            if operation is not None:
                result.append((method, operation))
        return result


class ContractDocument(BaseModel):
    """A resolved Swagger 2.0 document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    swagger: str = "2.0"
    base_path: str = Field(default="", alias="basePath")
    consumes: list[str] = []
    produces: list[str] = []
    paths: dict[str, PathItem] = {}


class ResponseSchemas(BaseModel):
    """Payload and header schemas for one response key."""

    model_config = ConfigDict(frozen=True)

    payload: Schema
    headers: Schema


class ValidateParams(BaseModel):
    """Per-location validation schemas of a route. None means "do not validate"."""

    model_config = ConfigDict(frozen=True)

    params: Schema | None = None
    query: Schema | None = None
    headers: Schema | None = None
    payload: Schema | None = None
    coerce_payload: bool = False
    responses: dict[str, ResponseSchemas]


class Route(BaseModel):
    """The derived, framework-agnostic form of one operation."""

    model_config = ConfigDict(frozen=True)

    uri: str
    method: str
    consumes: list[str]
    produces: list[str]
    id: str
    operation_id: str | None = None
    summary: str = ""
    description: str = ""
    tags: list[str] = []
    validation: ValidateParams

    @property
    def key(self) -> str:
        return f"{self.method.upper()} {self.uri}"
