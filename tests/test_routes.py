from pathlib import Path
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from contract_router.config import Settings
from contract_router.errors import TransformError, UnknownError, ValidationError
from contract_router.parser.detect import load_document
from contract_router.parser.swagger import derive_routes
from contract_router.routing.handlers import (
    Found,
    FunctionWrap,
    NameWrap,
    NotFound,
    Outcome,
    as_transform,
    lookup_handler,
    not_implemented_handler,
)
from contract_router.routing.routes import materialize, materialize_document
from contract_router.validation.engine import ValidatorCache

FIXTURES = Path(__file__).parent / "fixtures"


def find_pets(ctx):
    return []


def add_pet(ctx):
    return {"id": 1}


HANDLERS = {"findPets": find_pets, "addPet": add_pet}


def _routes():
    return derive_routes(load_document(FIXTURES / "petstore.yaml"))


def _route(method: str, uri: str):
    return [r for r in _routes() if r.method == method and r.uri == uri][0]


def _materialized(handlers=HANDLERS, **kwargs):
    return materialize(_routes(), handlers, cache=ValidatorCache(), **kwargs)


def _framework_route(method: str, path: str, handlers=HANDLERS, **kwargs):
    return [r for r in _materialized(handlers, **kwargs) if r.method == method and r.path == path][0]


class TestLookupHandler:
    def test_by_operation_id(self):
        result = lookup_handler(HANDLERS, _route("get", "/api/pets"))
        assert result == Found(handler=find_pets, key="findPets")

    def test_by_method_and_uri(self):
        route = _route("delete", "/api/pets/{id}")
        result = lookup_handler({"DELETE /api/pets/{id}": find_pets}, route)
        assert isinstance(result, Found)
        assert result.key == "DELETE /api/pets/{id}"

    def test_lower_case_method_key(self):
        route = _route("delete", "/api/pets/{id}")
        assert isinstance(lookup_handler({"delete /api/pets/{id}": find_pets}, route), Found)

    def test_unmatched_id_falls_back_to_method_and_uri(self):
        route = _route("get", "/api/pets")
        result = lookup_handler({"GET /api/pets": add_pet}, route)
        assert result.handler is add_pet

    def test_not_found(self):
        route = _route("get", "/api/pets")
        result = lookup_handler({}, route)
        assert result == NotFound(keys=("findPets", "GET /api/pets", "get /api/pets"))


class TestTransforms:
    def test_none_means_no_transform(self):
        assert as_transform(None) is None

    def test_string_becomes_name_wrap(self):
        assert as_transform("handler") == NameWrap("handler")
        assert NameWrap("handler").apply(find_pets) == {"handler": find_pets}

    def test_callable_becomes_function_wrap(self):
        fn = MagicMock(return_value="wrapped")
        transform = as_transform(fn)
        assert isinstance(transform, FunctionWrap)
        assert transform.apply(find_pets) == "wrapped"
        fn.assert_called_once_with(find_pets)

    def test_variant_passes_through(self):
        transform = NameWrap("h")
        assert as_transform(transform) is transform

    @pytest.mark.parametrize("value", [42, "", ["handler"]])
    def test_unsupported_transform(self, value):
        with pytest.raises(TransformError):
            as_transform(value)

    def test_materialize_fails_early_on_bad_transform(self):
        with pytest.raises(TransformError):
            materialize([], HANDLERS, transform=42)

    def test_name_wrap_applied_to_found_handlers(self):
        route = _framework_route("get", "/api/pets", transform="handler")
        assert route.handler == {"handler": find_pets}

    def test_function_wrap_applied_to_found_handlers(self):
        route = _framework_route("post", "/api/pets", transform=lambda h: ("wrapped", h))
        assert route.handler == ("wrapped", add_pet)

    def test_stand_in_not_transformed(self):
        route = _framework_route("delete", "/api/pets/{id}", transform="handler")
        assert route.handler is not_implemented_handler


class TestNotImplemented:
    def test_stand_in_bound_for_missing_handler(self):
        route = _framework_route("delete", "/api/pets/{id}")
        assert route.handler is not_implemented_handler
        assert route.implemented is False
        assert route.handler_key is None

    def test_stand_in_outcome_ignores_input(self):
        assert not_implemented_handler().status_code == 501
        assert not_implemented_handler({"anything": 1}, key="value").status_code == 501

    def test_missing_handler_logged(self):
        with capture_logs() as logs:
            _materialized()
        events = [log for log in logs if log["event"] == "no handler for route, answering 501"]
        assert {log["route"] for log in events} == {
            "DELETE /api/pets/{id}",
            "POST /api/pets/{id}/photo",
            "GET /api/health",
            "GET /api/pets/{id}",
        }


class TestPayloadPolicy:
    def test_get_has_no_payload_policy(self):
        assert _framework_route("get", "/api/pets").config.payload is None

    def test_post_payload_policy(self):
        policy = _framework_route("post", "/api/pets").config.payload
        assert policy.allow == ["application/json"]
        assert policy.parse is True
        assert policy.max_bytes == 32 * 1024 * 1024
        assert policy.output == "data"

    def test_payload_limit_from_settings(self):
        route = _framework_route("post", "/api/pets", settings=Settings(max_payload_bytes=1024))
        assert route.config.payload.max_bytes == 1024

    def test_delete_has_payload_policy(self):
        assert _framework_route("delete", "/api/pets/{id}").config.payload is not None


class TestRequestValidation:
    def test_numeric_query_string_passes(self):
        validation = _framework_route("get", "/api/pets").config.validate
        assert validation.check("query", {"limit": "3"}) == {"limit": 3}

    def test_non_numeric_query_string_fails(self):
        validation = _framework_route("get", "/api/pets").config.validate
        with pytest.raises(ValidationError) as exc_info:
            validation.check("query", {"limit": "abc"})
        assert exc_info.value.source == "query"
        assert exc_info.value.errors[0].path == ["limit"]

    def test_undeclared_query_parameter_fails(self):
        validation = _framework_route("get", "/api/pets").config.validate
        with pytest.raises(ValidationError):
            validation.check("query", {"color": "red"})

    def test_location_without_schema_accepts_anything(self):
        validation = _framework_route("post", "/api/pets").config.validate
        assert validation.query is None
        assert validation.check("query", {"anything": "goes"}) == {"anything": "goes"}

    def test_body_forwarded_verbatim(self):
        validation = _framework_route("post", "/api/pets").config.validate
        assert validation.check("payload", {"name": "Rex", "tag": "7"}) == {"name": "Rex", "tag": "7"}

    def test_body_missing_required_field(self):
        validation = _framework_route("post", "/api/pets").config.validate
        with pytest.raises(ValidationError) as exc_info:
            validation.check("payload", {})
        error = exc_info.value
        assert error.source == "payload"
        assert error.errors[0].constraint == "required"
        assert "'name'" in error.errors[0].message
        assert error.errors[0].path == ["name"]

    def test_missing_payload_fails(self):
        validation = _framework_route("post", "/api/pets").config.validate
        with pytest.raises(ValidationError):
            validation.check("payload", None)

    def test_form_payload_coerced(self):
        validation = _framework_route("post", "/api/pets/{id}/photo").config.validate
        assert validation.check("payload", {"caption": "hi", "rating": "4"}) == {"caption": "hi", "rating": 4}

    def test_unknown_location(self):
        validation = _framework_route("get", "/api/pets").config.validate
        with pytest.raises(KeyError):
            validation.check("cookies", {})


class TestFailAction:
    def test_validation_error_is_client_error(self):
        validation = _framework_route("get", "/api/pets").config.validate
        try:
            validation.check("query", {"limit": "abc"})
        except ValidationError as error:
            with capture_logs() as logs:
                outcome = validation.fail_action("query", error)
        assert outcome.status_code == 400
        assert outcome.body["source"] == "query"
        assert outcome.body["errors"][0]["path"] == ["limit"]
        assert logs[0]["event"] == "request validation failed"
        assert logs[0]["source"] == "query"
        assert logs[0]["log_level"] == "warning"

    def test_unknown_error_is_server_error(self):
        validation = _framework_route("get", "/api/pets").config.validate
        with capture_logs() as logs:
            outcome = validation.fail_action("query", UnknownError("query"))
        assert outcome.status_code == 500
        assert logs[0]["log_level"] == "error"


class TestResponseValidation:
    def test_matching_response(self):
        response = _framework_route("get", "/api/pets").config.response
        assert response.check(200, [{"id": 1, "name": "Rex"}]) is None

    def test_mismatched_response_is_server_error(self):
        response = _framework_route("get", "/api/pets").config.response
        outcome = response.check(200, {"name": "abc"})
        assert outcome.status_code == 500
        assert outcome.body["source"] == "response:200"

    def test_undeclared_status_uses_declared_default(self):
        response = _framework_route("get", "/api/pets").config.response
        assert response.for_status(404).key == "default"
        assert response.check(404, {"code": 404, "message": "not found"}) is None
        assert response.check(404, {"unexpected": True}).status_code == 500

    def test_synthetic_default_accepts_anything(self):
        response = _framework_route("get", "/api/health").config.response
        assert response.check(418, "teapot") is None
        assert response.check(503, None) is None

    def test_response_headers_checked(self):
        response = _framework_route("get", "/api/health").config.response
        assert response.check(200, {"status": "ok"}, {"X-Rate-Limit": "10"}) is None
        outcome = response.check(200, {"status": "ok"}, {"X-Rate-Limit": "many"})
        assert outcome.body["source"] == "response:200:headers"

    def test_response_header_names_compared_without_case(self):
        response = _framework_route("get", "/api/health").config.response
        assert response.check(200, {"status": "ok"}, {"x-rate-limit": "10"}) is None
        outcome = response.check(200, {"status": "ok"}, {"x-rate-limit": "many"})
        assert outcome.status_code == 500
        assert outcome.body["source"] == "response:200:headers"

    def test_response_not_coerced(self):
        response = _framework_route("post", "/api/pets").config.response
        assert response.check(200, {"id": "1", "name": "Rex"}).status_code == 500

    def test_stand_in_outcome_passes_default(self):
        route = _framework_route("delete", "/api/pets/{id}")
        outcome = route.handler()
        assert isinstance(outcome, Outcome)
        assert route.config.response.check(outcome.status_code, outcome.body) is None


class TestMaterialize:
    def test_one_framework_route_per_route(self):
        routes = _materialized()
        assert len(routes) == 6
        assert {(r.method, r.path) for r in routes} == {(r.method, r.uri) for r in _routes()}

    def test_validators_compiled_at_materialization(self):
        cache = ValidatorCache()
        materialize(_routes(), HANDLERS, cache=cache)
        compiled = cache.compile_count
        assert compiled > 0
        materialize(_routes(), HANDLERS, cache=cache)
        assert cache.compile_count == compiled

    def test_materialize_document_from_mapping(self):
        doc = {
            "swagger": "2.0",
            "paths": {"/ping": {"get": {"operationId": "ping", "responses": {200: {"description": "pong"}}}}},
        }
        routes = materialize_document(doc, {"ping": find_pets}, cache=ValidatorCache())
        assert len(routes) == 1
        assert routes[0].handler is find_pets
        assert routes[0].implemented is True
