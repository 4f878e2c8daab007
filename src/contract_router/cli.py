"""CLI entry point for contract-router."""

import json
from pathlib import Path

import click

from contract_router.config import get_settings
from contract_router.errors import ContractRouterError, ValidationError
from contract_router.log import configure_logging
from contract_router.parser.base import Route
from contract_router.parser.detect import load_document
from contract_router.parser.swagger import derive_routes
from contract_router.routing.handlers import handler_keys
from contract_router.validation.engine import get_validator_cache

LOCATIONS = ("params", "query", "headers", "payload")


def _load_routes(doc_path: Path) -> list[Route]:
    try:
        return derive_routes(load_document(doc_path))
    except ContractRouterError as e:
        raise click.ClickException(str(e)) from e


def _find_route(routes: list[Route], operation: str) -> Route:
    """Find a route by operation id or "METHOD /uri"."""
    wanted = operation.strip()
    for route in routes:
        if wanted in handler_keys(route):
            return route
    raise click.BadParameter(f"no operation matches {operation!r}", param_hint="OPERATION")


@click.group()
@click.option("--log-level", default=None, type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False), help="Log level (default from CONTRACT_ROUTER_LOG_LEVEL).")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines.")
def main(log_level: str | None, json_logs: bool):
    """contract-router: derive routes and validators from Swagger 2.0 contracts."""
    settings = get_settings()
    configure_logging(
        json_output=json_logs or settings.log_json,
        level=log_level or settings.log_level,
    )


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print routes as JSON.")
def routes(doc_path: Path, as_json: bool):
    """List the routes a contract declares."""
    derived = _load_routes(doc_path)

    if as_json:
        click.echo(json.dumps([r.model_dump(exclude={"validation"}) for r in derived], indent=2))
        return

    for route in derived:
        click.echo(f"{route.method.upper():7} {route.uri}  {route.operation_id or '-'}")
    click.echo(f"{len(derived)} routes.")


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("operation")
def schemas(doc_path: Path, operation: str):
    """Print the validation schemas of one operation."""
    route = _find_route(_load_routes(doc_path), operation)
    click.echo(route.validation.model_dump_json(indent=2))


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("operation")
@click.option("--location", required=True, type=click.Choice(LOCATIONS), help="Request location to validate.")
@click.option("--data", "data_json", required=True, help="Value to validate, as JSON.")
@click.option("--no-coerce", is_flag=True, help="Validate the value as given, without coercion.")
def check(doc_path: Path, operation: str, location: str, data_json: str, no_coerce: bool):
    """Validate a value against one request location of an operation."""
    route = _find_route(_load_routes(doc_path), operation)

    try:
        data = json.loads(data_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e.msg}", param_hint="--data") from e

    schema = getattr(route.validation, location)
    if schema is None:
        click.echo(f"{location} is not validated for {route.key}; value accepted as is.")
        click.echo(json.dumps(data, indent=2))
        return

    coerce = not no_coerce
    if location == "payload":
        coerce = coerce and route.validation.coerce_payload

    result = get_validator_cache().validate(schema, data, coerce=coerce, source=location)
    if result.ok:
        click.echo(json.dumps(result.output, indent=2))
        return

    error = result.error
    if isinstance(error, ValidationError):
        click.echo(json.dumps(error.to_payload(), indent=2))
    else:
        click.echo(f"{location}: validation failed without detail ({error.__cause__!r})")
    raise SystemExit(1)
