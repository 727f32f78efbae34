import json
from pathlib import Path

import pytest
import yaml

from api_doc_sync.errors import ParseError
from api_doc_sync.parser.base import ArraySchema, ObjectSchema
from api_doc_sync.parser.detect import detect_file_format, detect_format
from api_doc_sync.parser.swagger import parse_openapi_document, parse_swagger2_document, parse_swagger_document

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def petstore():
    return yaml.safe_load((FIXTURES / "petstore.yaml").read_text(encoding="utf-8"))


@pytest.fixture
def swagger2():
    return json.loads((FIXTURES / "swagger2.json").read_text(encoding="utf-8"))


def _find(service, endpoint_id):
    return next(e for e in service.endpoints if e.id == endpoint_id)


class TestDetectFormat:
    def test_detect_openapi_yaml(self):
        assert detect_file_format(FIXTURES / "petstore.yaml") == "openapi"

    def test_detect_swagger2(self):
        assert detect_file_format(FIXTURES / "swagger2.json") == "swagger"

    def test_detect_unknown_format(self, tmp_path):
        f = tmp_path / "doc.md"
        f.write_text("# API Docs\nSome text")
        assert detect_file_format(f) is None

    def test_detect_payloads(self):
        assert detect_format({"swagger": 2.0, "paths": {}}) == "swagger"
        assert detect_format({"openapi": "3.1.0"}) is None
        assert detect_format([]) is None


class TestOpenApiParser:
    def test_endpoint_count_is_path_verb_pairs(self, petstore):
        service = parse_openapi_document(petstore)
        assert len(service.endpoints) == 4
        assert service.source.kind == "openapi"

    def test_service_metadata(self, petstore):
        service = parse_openapi_document(petstore)
        assert service.title == "Petstore"
        assert service.version == "1.0.0"
        assert service.servers == ["https://petstore.example.com/v1"]
        assert set(service.types) == {"Pet", "NewPet", "Error"}

    def test_list_pets(self, petstore):
        endpoint = _find(parse_openapi_document(petstore), "listPets")
        assert endpoint.name == "List all pets"
        assert endpoint.method == "GET"
        assert endpoint.tags == ["pets"]
        limit = endpoint.parameters.query[0]
        assert limit.name == "limit"
        assert limit.required is False
        assert limit.schema_.format == "int32"

    def test_responses_sorted_success_first(self, petstore):
        endpoint = _find(parse_openapi_document(petstore), "listPets")
        assert [r.status for r in endpoint.responses] == [200, "default"]
        assert isinstance(endpoint.responses[0].schema_, ArraySchema)
        assert isinstance(endpoint.responses[0].schema_.element, ObjectSchema)

    def test_request_body_ref_resolved(self, petstore):
        endpoint = _find(parse_openapi_document(petstore), "createPet")
        assert endpoint.body.required is True
        assert endpoint.body.content_type == "application/json"
        assert endpoint.body.schema_.required == ["name"]

    def test_path_level_and_ref_parameters(self, petstore):
        endpoint = _find(parse_openapi_document(petstore), "showPetById")
        assert [p.name for p in endpoint.parameters.path] == ["petId"]
        assert endpoint.parameters.path[0].required is True
        assert [p.name for p in endpoint.parameters.header] == ["X-Trace-Id"]

    def test_cookie_parameters_become_headers(self, petstore):
        endpoint = _find(parse_openapi_document(petstore), "deletePet")
        assert [p.name for p in endpoint.parameters.header] == ["session"]

    def test_fallback_id_and_name(self):
        doc = {"openapi": "3.0.0", "paths": {"/a/{b}": {"get": {"responses": {}}}, "/a-b": {"get": {}}}}
        service = parse_openapi_document(doc)
        assert [e.id for e in service.endpoints] == ["GET__a_b_", "GET__a_b"]
        assert service.endpoints[0].name == "GET__a_b_"
        assert service.title == "API"

    def test_duplicate_operation_ids_disambiguated(self):
        doc = {
            "openapi": "3.0.0",
            "paths": {"/a": {"get": {"operationId": "op"}}, "/b": {"get": {"operationId": "op"}}},
        }
        assert [e.id for e in parse_openapi_document(doc).endpoints] == ["op", "op_2"]

    def test_list_pets_scenario(self):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/pets": {
                    "get": {
                        "operationId": "listPets",
                        "responses": {
                            "200": {
                                "content": {
                                    "application/json": {"schema": {"type": "array", "items": {"type": "string"}}}
                                }
                            }
                        },
                    }
                }
            },
        }
        service = parse_openapi_document(doc)
        assert len(service.endpoints) == 1
        endpoint = service.endpoints[0]
        assert (endpoint.id, endpoint.method, endpoint.path) == ("listPets", "GET", "/pets")
        schema = endpoint.responses[0].schema_
        assert isinstance(schema, ArraySchema)
        assert schema.element.kind == "string"

    def test_rejects_non_openapi(self):
        with pytest.raises(ParseError):
            parse_openapi_document({"swagger": "2.0", "paths": {}})


class TestSwagger2Parser:
    def test_servers_and_types(self, swagger2):
        service = parse_swagger2_document(swagger2)
        assert service.servers == ["https://api.example.com/v2"]
        assert service.version == "2"
        assert list(service.types) == ["User"]
        assert service.source.kind == "swagger"

    def test_query_parameters_use_inline_type(self, swagger2):
        endpoint = parse_swagger2_document(swagger2).endpoints[0]
        assert endpoint.id == "GET__users"
        page, tags = endpoint.parameters.query
        assert page.schema_.kind == "integer"
        assert tags.schema_.kind == "array"

    def test_body_parameter(self, swagger2):
        endpoint = next(e for e in parse_swagger2_document(swagger2).endpoints if e.id == "createUser")
        assert endpoint.body.required is True
        assert endpoint.body.content_type == "application/json"
        assert endpoint.body.schema_.required == ["id", "email"]
        assert endpoint.responses[0].content_type == "application/json"

    def test_form_data_becomes_multipart_body(self, swagger2):
        endpoint = next(e for e in parse_swagger2_document(swagger2).endpoints if e.id == "uploadAvatar")
        assert endpoint.body.content_type == "multipart/form-data"
        assert endpoint.body.schema_.required == ["file"]
        assert endpoint.body.schema_.properties["file"].format == "binary"
        assert endpoint.responses[0].schema_ is None
        assert endpoint.responses[0].content_type is None

    def test_dispatch(self, swagger2, petstore):
        assert parse_swagger_document(swagger2).source.kind == "swagger"
        assert parse_swagger_document(petstore).source.kind == "openapi"
        with pytest.raises(ParseError):
            parse_swagger_document({"paths": {}})
