"""Tests for the OpenAPI operation mapper."""

import pytest

from servicectl.mappers.openapi_mapper import (
    MAX_EXAMPLES,
    extract_options,
    generate_command_name,
    get_all_operations,
    get_auth_requirements,
    is_skipped_path,
    is_streaming,
    kebab_case,
    map_operation,
    map_spec,
    resolve_parameters,
    resolve_ref,
)
from servicectl.errors import MappingError
from servicectl.models import ArgumentType


async def noop_handler(args, context):
    return args


def handler_factory(path, method, operation):
    return noop_handler


@pytest.mark.parametrize(
    "value,expected",
    [
        ("storeDocument", "store-document"),
        ("store_document", "store-document"),
        ("store document", "store-document"),
        ("getHTTPStatus", "get-httpstatus"),
    ],
)
def test_kebab_case(value, expected):
    assert kebab_case(value) == expected


class TestCommandNames:
    def test_operation_id_wins(self):
        assert generate_command_name("/documents", "POST", {"operationId": "storeDocument"}) == "store-document"

    @pytest.mark.parametrize(
        "path,method,expected",
        [
            ("/documents", "POST", "create-documents"),
            ("/documents/{id}", "GET", "get-documents"),
            ("/documents/{id}", "PATCH", "update-documents"),
            ("/v1/users/{user_id}/api-keys/{id}", "DELETE", "delete-apikeys"),
            ("/{id}", "GET", "get-item"),
            ("/jobs", "OPTIONS", "execute-jobs"),
        ],
    )
    def test_verb_resource_fallback(self, path, method, expected):
        assert generate_command_name(path, method, {}) == expected


@pytest.mark.parametrize(
    "path,skipped",
    [("/health", True), ("/v1/health/live", True), ("/internal/metrics", True), ("/documents", False)],
)
def test_is_skipped_path(path, skipped):
    assert is_skipped_path(path) is skipped


def test_is_streaming():
    assert is_streaming({"x-streaming": True})
    assert is_streaming({"description": "Streams results as SSE"})
    assert not is_streaming({"description": "Plain response"})


class TestExtractOptions:
    def test_parameters_then_body(self):
        operation = {
            "parameters": [
                {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                {"name": "verbose", "in": "query", "schema": {"type": "boolean"}},
            ],
            "requestBody": {
                "content": {
                    "application/json": {
                        "schema": {
                            "type": "object",
                            "properties": {"title": {"type": "string"}, "id": {"type": "string"}},
                            "required": ["title"],
                        }
                    }
                }
            },
        }
        options = extract_options(operation)

        assert [(o.name, o.location) for o in options] == [
            ("id", "path"),
            ("verbose", "query"),
            ("title", "body"),
        ]
        assert options[0].required
        assert options[1].type == ArgumentType.BOOLEAN
        assert options[2].required

    def test_ref_body_becomes_json_option(self):
        operation = {
            "requestBody": {
                "required": True,
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Doc"}}},
            }
        }
        options = extract_options(operation)

        assert len(options) == 1
        assert options[0].name == "body"
        assert options[0].type == ArgumentType.JSON
        assert options[0].required

    def test_simple_body(self):
        operation = {
            "requestBody": {"content": {"application/json": {"schema": {"type": "array"}}}}
        }
        options = extract_options(operation)

        assert options[0].long == "--body"
        assert options[0].type == ArgumentType.ARRAY
        assert not options[0].required

    def test_no_parameters(self):
        assert extract_options({}) == []


class TestMapOperation:
    def test_store_document(self, documents_spec):
        operation = documents_spec["paths"]["/documents"]["post"]
        command = map_operation("/documents", "post", operation, "graphrag", noop_handler)

        assert command.key == "graphrag:store-document"
        assert command.category == "documents"
        assert command.description == "Store a document"
        assert command.metadata == {
            "http_method": "POST",
            "endpoint": "/documents",
            "operation_id": "storeDocument",
        }
        assert command.usage == "servicectl graphrag store-document --content <value> [options]"
        assert command.examples == [
            "servicectl graphrag store-document --content <value>",
            "servicectl graphrag store-document --content <value> --title <value> --tags <value>",
            "servicectl graphrag store-document --content <value> --output-format json",
        ]
        assert not command.destructive

    def test_examples_are_capped(self, documents_spec):
        for path, method, operation in get_all_operations(documents_spec):
            command = map_operation(path, method, operation, "graphrag", noop_handler)
            if command is not None:
                assert 1 <= len(command.examples) <= MAX_EXAMPLES
                assert command.examples[0].startswith(f"servicectl graphrag {command.name}")

    def test_required_example_tokens(self):
        operation = {
            "parameters": [
                {"name": "force", "in": "query", "required": True, "schema": {"type": "boolean"}},
                {"name": "upload", "in": "query", "required": True, "schema": {"type": "file"}},
                {"name": "mode", "in": "query", "required": True, "schema": {"type": "string", "enum": ["a", "b"]}},
            ]
        }
        command = map_operation("/jobs", "POST", operation, "jobs", noop_handler, program_name="ctl")

        assert command.examples[0] == "ctl jobs create-jobs --force --upload /path/to/file --mode a"
        assert len(command.examples) == 2

    def test_delete_is_destructive(self, documents_spec):
        operation = documents_spec["paths"]["/documents/{id}"]["delete"]
        command = map_operation("/documents/{id}", "delete", operation, "graphrag", noop_handler)

        assert command.name == "delete-documents"
        assert command.destructive

    def test_skipped_path_maps_to_none(self):
        assert map_operation("/health", "GET", {}, "svc", noop_handler) is None

    def test_mapping_is_deterministic(self, documents_spec):
        operation = documents_spec["paths"]["/documents"]["post"]
        first = map_operation("/documents", "POST", operation, "graphrag", noop_handler)
        second = map_operation("/documents", "POST", operation, "graphrag", noop_handler)
        assert first == second


class TestDocumentHelpers:
    def test_get_all_operations(self, documents_spec):
        operations = get_all_operations(documents_spec)
        assert [(o.path, o.method) for o in operations] == [
            ("/documents", "POST"),
            ("/documents", "GET"),
            ("/documents/{id}", "DELETE"),
            ("/health", "GET"),
            ("/internal/metrics", "GET"),
        ]

    def test_resolve_ref(self, documents_spec):
        assert resolve_ref(documents_spec, "#/components/parameters/Limit")["name"] == "limit"
        assert resolve_ref(documents_spec, "#/components/parameters/Missing") is None
        assert resolve_ref(documents_spec, "other.yaml#/Limit") is None

    def test_resolve_ref_escapes(self):
        spec = {"paths": {"/a/b": {"x~y": 1}}}
        assert resolve_ref(spec, "#/paths/~1a~1b/x~0y") == 1

    def test_resolve_parameters_merges_path_level(self, documents_spec):
        path_item = {"parameters": [{"name": "limit", "in": "query", "schema": {"type": "string"}}]}
        operation = documents_spec["paths"]["/documents"]["get"]

        resolved = resolve_parameters(documents_spec, path_item, operation)

        assert len(resolved["parameters"]) == 1
        assert resolved["parameters"][0]["schema"]["type"] == "integer"
        assert operation["parameters"][0] == {"$ref": "#/components/parameters/Limit"}

    def test_auth_requirements(self, documents_spec):
        assert get_auth_requirements(documents_spec).type == "bearer"
        assert get_auth_requirements({}).type == "none"

        api_key = {"components": {"securitySchemes": {"k": {"type": "apiKey", "in": "header", "name": "X-Key"}}}}
        auth = get_auth_requirements(api_key)
        assert (auth.type, auth.location, auth.name) == ("apiKey", "header", "X-Key")


class TestMapSpec:
    def test_maps_public_operations(self, documents_spec):
        commands = map_spec(documents_spec, "graphrag", handler_factory)

        assert [c.name for c in commands] == ["store-document", "get-documents", "delete-documents"]
        assert all(c.requires_auth for c in commands)
        assert all(c.namespace == "graphrag" for c in commands)

    def test_ref_parameters_are_resolved(self, documents_spec):
        commands = {c.name: c for c in map_spec(documents_spec, "graphrag", handler_factory)}
        limit = commands["get-documents"].get_option("limit")

        assert limit.type == ArgumentType.NUMBER
        assert limit.default == 10
        assert "--limit 10" in commands["get-documents"].examples[1]

    def test_handler_factory_receives_each_operation(self, documents_spec):
        seen = []

        def factory(path, method, operation):
            seen.append((path, method))
            return noop_handler

        map_spec(documents_spec, "graphrag", factory)
        assert seen == [("/documents", "POST"), ("/documents", "GET"), ("/documents/{id}", "DELETE")]

    def test_unsecured_document(self):
        spec = {"openapi": "3.0.0", "paths": {"/items": {"get": {}}}}
        commands = map_spec(spec, "shop", handler_factory)
        assert commands[0].name == "get-items"
        assert not commands[0].requires_auth

    def test_malformed_operations_are_skipped(self, caplog):
        spec = {
            "paths": {
                "/items": {"get": {}, "post": "not an operation"},
                "/orders": {"get": {"parameters": ["limit"]}},
            }
        }

        commands = map_spec(spec, "shop", handler_factory)

        assert [c.name for c in commands] == ["get-items"]
        assert "Skipping POST /items" in caplog.text
        assert "Skipping GET /orders" in caplog.text


def test_map_operation_rejects_non_object():
    with pytest.raises(MappingError):
        map_operation("/items", "get", ["nope"], "shop", noop_handler)
