"""Tests for the OpenAPI-backed dynamic source and the httpx transport."""

import json

import httpx
import pytest
import yaml

from servicectl.errors import ConfigError, DynamicSourceError, TransportError, ValidationFailedError
from servicectl.mappers.openapi_mapper import AuthRequirements
from servicectl.models import CommandContext, OptionDefinition, ServiceEndpoint, StaticSession
from servicectl.sources.openapi_source import (
    OpenAPICommandSource,
    auth_headers,
    build_http_request,
    candidate_spec_urls,
    load_spec_file,
    parse_spec_document,
)
from servicectl.transport import HttpResponse, HttpxTransport


class FakeTransport:
    """Records requests and answers from a url -> HttpResponse table."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default or HttpResponse(status_code=404, text="not found")
        self.calls = []

    async def request(self, method, url, *, params=None, headers=None, json_body=None):
        self.calls.append({"method": method, "url": url, "params": params, "headers": headers, "json": json_body})
        response = self.responses.get(url, self.default)
        if isinstance(response, Exception):
            raise response
        return response


def opt(name, location, required=False, default=None):
    return OptionDefinition(name=name, long=f"--{name}", location=location, required=required, default=default)


class TestBuildHttpRequest:
    def test_routes_each_location(self):
        options = [
            opt("id", "path", required=True),
            opt("limit", "query", default=10),
            opt("X-Trace", "header"),
            opt("session", "cookie"),
            opt("title", "body"),
            opt("tags", "body"),
        ]
        parts = build_http_request(
            "/documents/{id}",
            options,
            {"id": "a b", "X-Trace": 7, "session": "s1", "title": "Report"},
        )

        assert parts.path == "/documents/a%20b"
        assert parts.params == {"limit": 10}
        assert parts.headers == {"X-Trace": "7", "Cookie": "session=s1"}
        assert parts.body == {"title": "Report"}

    def test_missing_path_parameter(self):
        with pytest.raises(ValidationFailedError):
            build_http_request("/documents/{id}", [opt("id", "path", required=True)], {})

    def test_lone_body_option_is_sent_as_is(self):
        parts = build_http_request("/bulk", [opt("body", "body")], {"body": [1, 2, 3]})
        assert parts.body == [1, 2, 3]

    def test_no_body(self):
        parts = build_http_request("/items", [opt("q", "query")], {})
        assert parts.body is None
        assert parts.params == {}


class TestSpecDocuments:
    def test_candidate_urls(self):
        assert candidate_spec_urls("http://svc:8080/") == [
            "http://svc:8080",
            "http://svc:8080/openapi.json",
            "http://svc:8080/api-docs",
            "http://svc:8080/swagger.json",
            "http://svc:8080/v3/api-docs",
        ]

    def test_parse_yaml_and_json(self, documents_spec):
        assert parse_spec_document(yaml.safe_dump(documents_spec))["info"]["title"] == "GraphRAG"
        assert parse_spec_document(json.dumps(documents_spec))["openapi"] == "3.0.0"
        assert parse_spec_document(documents_spec) == documents_spec

    @pytest.mark.parametrize("raw", ["<html>hi</html>", "key: [unclosed", '{"openapi": "3.0.0"}', "", None])
    def test_rejects_non_documents(self, raw):
        assert parse_spec_document(raw) is None

    def test_load_spec_file(self, tmp_path, documents_spec):
        spec_file = tmp_path / "openapi.yaml"
        spec_file.write_text(yaml.safe_dump(documents_spec))

        assert load_spec_file(str(spec_file))["paths"]

    def test_load_spec_file_errors(self, tmp_path):
        with pytest.raises(DynamicSourceError):
            load_spec_file(str(tmp_path / "missing.yaml"))

        bad = tmp_path / "bad.yaml"
        bad.write_text("just: text\n")
        with pytest.raises(DynamicSourceError):
            load_spec_file(str(bad))


def test_auth_headers():
    assert auth_headers(AuthRequirements(type="bearer"), "tok") == {"Authorization": "Bearer tok"}
    assert auth_headers(AuthRequirements(type="apiKey", location="header", name="X-Key"), "k") == {"X-Key": "k"}
    assert auth_headers(AuthRequirements(type="apiKey", location="query", name="key"), "k") == {}
    assert auth_headers(AuthRequirements(type="bearer"), None) == {}


class TestOpenAPICommandSource:
    def test_requires_a_location(self):
        with pytest.raises(ConfigError):
            OpenAPICommandSource("graphrag")

    @pytest.mark.asyncio
    async def test_probes_well_known_locations(self, documents_spec):
        transport = FakeTransport(
            {"http://svc/openapi.json": HttpResponse(status_code=200, data=documents_spec)}
        )
        source = OpenAPICommandSource("graphrag", url="http://svc/", transport=transport)

        commands = await source.discover()

        assert [c.name for c in commands] == ["store-document", "get-documents", "delete-documents"]
        assert [call["url"] for call in transport.calls] == ["http://svc", "http://svc/openapi.json"]

    @pytest.mark.asyncio
    async def test_document_is_cached_until_refresh(self, documents_spec):
        transport = FakeTransport({"http://svc/spec": HttpResponse(status_code=200, data=documents_spec)})
        source = OpenAPICommandSource("graphrag", url="http://svc", spec_url="http://svc/spec", transport=transport)

        await source.discover()
        await source.discover()
        assert len(transport.calls) == 1

        await source.refresh()
        await source.discover()
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_no_document_found(self):
        source = OpenAPICommandSource("graphrag", url="http://svc", transport=FakeTransport())

        with pytest.raises(DynamicSourceError) as excinfo:
            await source.discover()
        assert len(excinfo.value.payload["tried"]) == 5

    @pytest.mark.asyncio
    async def test_transport_errors_move_to_next_candidate(self, documents_spec):
        transport = FakeTransport(
            {
                "http://svc": TransportError("refused"),
                "http://svc/openapi.json": HttpResponse(status_code=200, text=json.dumps(documents_spec)),
            }
        )
        source = OpenAPICommandSource("graphrag", url="http://svc", transport=transport)

        assert len(await source.discover()) == 3

    @pytest.mark.asyncio
    async def test_handler_sends_request(self, tmp_path, documents_spec):
        spec_file = tmp_path / "graphrag.json"
        spec_file.write_text(json.dumps(documents_spec))
        transport = FakeTransport(
            {"http://graphrag.local/documents": HttpResponse(status_code=201, data={"id": "d1"})}
        )
        source = OpenAPICommandSource(
            "graphrag", spec_path=str(spec_file), headers={"X-Client": "cli"}, transport=transport
        )
        store = {c.name: c for c in await source.discover()}["store-document"]
        context = CommandContext(auth=StaticSession("tok"))

        result = await store.handler({"content": "hello", "title": "T", "_": []}, context)

        assert result.success
        assert result.data == {"id": "d1"}
        assert result.metadata["status_code"] == 201
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["json"] == {"content": "hello", "title": "T"}
        assert call["headers"]["Authorization"] == "Bearer tok"
        assert call["headers"]["X-Client"] == "cli"

    @pytest.mark.asyncio
    async def test_handler_uses_context_service_and_transport(self, tmp_path, documents_spec):
        spec_file = tmp_path / "graphrag.yaml"
        spec_file.write_text(yaml.safe_dump(documents_spec))
        source = OpenAPICommandSource("graphrag", spec_path=str(spec_file), transport=FakeTransport())
        delete = {c.name: c for c in await source.discover()}["delete-documents"]

        override = FakeTransport(default=HttpResponse(status_code=404, text="missing"))
        context = CommandContext(
            services={"graphrag": ServiceEndpoint(name="graphrag", url="http://other:9000/")},
            transport=override,
        )
        result = await delete.handler({"id": "d1"}, context)

        assert not result.success
        assert result.error_code == "http_404"
        assert override.calls[0]["url"] == "http://other:9000/documents/d1"

    def test_base_url_without_any_source(self):
        source = OpenAPICommandSource("graphrag", spec_path="/nonexistent.yaml")
        with pytest.raises(ConfigError):
            source.base_url(None)


class TestHttpxTransport:
    @pytest.mark.asyncio
    async def test_parses_json(self):
        def handler(request):
            assert request.headers["x-default"] == "1"
            assert request.url.params["q"] == "a"
            return httpx.Response(200, json={"ok": True})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpxTransport(headers={"X-Default": "1"}, client=client)

        response = await transport.request("get", "http://svc/items", params={"q": "a"})

        assert response.ok
        assert response.data == {"ok": True}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_plain_text_response(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
        response = await HttpxTransport(client=client).request("POST", "http://svc/x", json_body={"a": 1})

        assert not response.ok
        assert response.data is None
        assert response.text == "boom"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_errors_become_transport_errors(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError):
            await HttpxTransport(client=client).request("GET", "http://svc/")
        await client.aclose()
