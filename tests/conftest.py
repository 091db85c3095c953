from typing import Any, Dict, List, Optional

import pytest

from servicectl.models import Command, CommandContext, CommandResult, ToolDefinition
from servicectl.registry import CommandRegistry


async def echo_handler(args: Dict[str, Any], context: CommandContext) -> CommandResult:
    return CommandResult(success=True, data=args)


def make_command(
    name: str,
    namespace: Optional[str] = None,
    aliases: Optional[List[str]] = None,
    handler=echo_handler,
    **kwargs,
) -> Command:
    return Command(
        name=name,
        namespace=namespace,
        description=kwargs.pop("description", f"{name} command"),
        handler=handler,
        aliases=aliases or [],
        **kwargs,
    )


class StaticSource:
    """Dynamic source returning a fixed command list (or raising)."""

    def __init__(self, namespace: str, names: List[str], error: Optional[Exception] = None):
        self.namespace = namespace
        self.names = list(names)
        self.error = error
        self.discover_calls = 0
        self.refresh_calls = 0

    async def discover(self) -> List[Command]:
        self.discover_calls += 1
        if self.error is not None:
            raise self.error
        return [make_command(name, self.namespace) for name in self.names]

    async def refresh(self) -> None:
        self.refresh_calls += 1


@pytest.fixture
def registry():
    return CommandRegistry()


@pytest.fixture
def context():
    return CommandContext(cwd="/tmp")


@pytest.fixture
def store_memory_tool():
    return ToolDefinition(
        name="mcp_store_memory",
        description="Store memory with content and tags",
        category="memory",
        inputSchema={
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Memory content"},
                "tags": {"type": "array", "description": "Tags for categorization"},
                "metadata": {"type": "object", "description": "Additional metadata"},
            },
            "required": ["content"],
        },
    )


@pytest.fixture
def documents_spec() -> Dict[str, Any]:
    """Small OpenAPI document with body, path parameter, $ref and internal paths."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "GraphRAG", "version": "1.0.0"},
        "servers": [{"url": "http://graphrag.local"}],
        "components": {
            "parameters": {
                "Limit": {
                    "name": "limit",
                    "in": "query",
                    "schema": {"type": "integer", "default": 10},
                    "description": "Max results",
                }
            },
            "securitySchemes": {"bearerAuth": {"type": "http", "scheme": "bearer"}},
        },
        "paths": {
            "/documents": {
                "post": {
                    "operationId": "storeDocument",
                    "summary": "Store a document",
                    "tags": ["documents"],
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {
                                        "content": {"type": "string", "description": "Document text"},
                                        "title": {"type": "string"},
                                        "tags": {"type": "array"},
                                    },
                                    "required": ["content"],
                                }
                            }
                        },
                    },
                    "responses": {"201": {"description": "created"}},
                },
                "get": {
                    "summary": "List documents",
                    "parameters": [{"$ref": "#/components/parameters/Limit"}],
                    "responses": {"200": {"description": "ok"}},
                },
            },
            "/documents/{id}": {
                "delete": {
                    "summary": "Delete a document",
                    "parameters": [
                        {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "responses": {"204": {"description": "deleted"}},
                }
            },
            "/health": {"get": {"summary": "Health", "responses": {"200": {"description": "ok"}}}},
            "/internal/metrics": {"get": {"responses": {"200": {"description": "ok"}}}},
        },
    }


@pytest.fixture
def command_factory():
    return make_command


@pytest.fixture
def source_factory():
    return StaticSource
