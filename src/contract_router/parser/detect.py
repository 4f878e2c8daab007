"""Load Swagger 2.0 contract documents from files or mappings."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from contract_router.errors import DocumentError
from contract_router.parser.base import ContractDocument


def detect_version(data: Any) -> str | None:
    """Return the Swagger version a parsed document declares, if any."""
    if isinstance(data, Mapping) and "swagger" in data:
        return str(data["swagger"])
    return None


def load_document(source: Path | Mapping[str, Any]) -> ContractDocument:
    """Build a ContractDocument from a YAML/JSON file or an in-memory mapping.

    The document is expected to be resolved already; `$ref` pointers are not
    followed.
    """
    if isinstance(source, Mapping):
        data = source
    else:
        text = Path(source).read_text(encoding="utf-8")
        try:
            # YAML is a superset of JSON, one loader covers both
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DocumentError(f"{source}: not valid YAML or JSON: {e}") from e

    version = detect_version(data)
    if version is None:
        raise DocumentError("document is not a Swagger mapping (missing 'swagger' key)")
    if not version.startswith("2"):
        raise DocumentError(f"unsupported Swagger version {version!r}, expected 2.x")

    return ContractDocument.model_validate({**data, "swagger": version})
