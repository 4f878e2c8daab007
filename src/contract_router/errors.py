"""Error taxonomy for contract-router.

Setup-time errors (document, shape, transform) abort route construction.
Request-time errors (validation, unknown) are turned into outcomes at the
route boundary.
"""

from typing import Any

from pydantic import BaseModel


class FieldError(BaseModel):
    """A single constraint violation inside a validated value."""

    path: list[str | int]
    constraint: str
    message: str


class ContractRouterError(Exception):
    """Base class for all contract-router errors."""


class DocumentError(ContractRouterError):
    """The supplied contract is not a Swagger 2.0 document."""


class ContractShapeError(ContractRouterError):
    """An operation declares parameters no schema can be derived from."""


class TransformError(ContractRouterError):
    """An unsupported handler transform was supplied."""


class ValidationError(ContractRouterError):
    """Validation failed with one or more field-level violations."""

    def __init__(self, errors: list[FieldError], source: str | None = None):
        super().__init__("Validation Error")
        self.errors = errors
        self.source = source

    def to_payload(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "errors": [error.model_dump() for error in self.errors],
        }


class UnknownError(ContractRouterError):
    """Validation failed but the engine gave no detail."""

    def __init__(self, source: str | None = None):
        super().__init__("Unknown Error")
        self.source = source
