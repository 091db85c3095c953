"""Dynamic command source backed by tool-call schemas.

A ``ToolProvider`` lists tool definitions and executes tool calls; the source
maps each tool into a command through ``ToolCatalog`` and wires a handler that
translates CLI options back into the tool's argument names.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

import yaml

from ..errors import DynamicSourceError, HandlerError
from ..mappers.tool_mapper import ToolCatalog, parse_input_schema
from ..models import POSITIONAL_KEY, Command, CommandContext, CommandHandler, CommandResult, ToolDefinition
from ..transport import HttpTransport, HttpxTransport
from .base import SourceKind

logger = logging.getLogger(__name__)


DEFAULT_FALLBACK_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="mcp_store_memory",
        description="Store memory with content and tags",
        category="memory",
        input_schema={
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Memory content"},
                "tags": {"type": "array", "description": "Tags for categorization"},
                "metadata": {"type": "object", "description": "Additional metadata"},
            },
            "required": ["content"],
        },
    ),
    ToolDefinition(
        name="mcp_recall_memory",
        description="Recall memories by query",
        category="memory",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "limit": {"type": "number", "description": "Max results", "default": 10},
                "score_threshold": {"type": "number", "description": "Minimum similarity score"},
            },
            "required": ["query"],
        },
    ),
]


@runtime_checkable
class ToolProvider(Protocol):
    async def list_tools(self) -> List[ToolDefinition]:
        ...

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        ...


class ManifestToolProvider:
    """Tool provider reading definitions from a YAML or JSON manifest.

    Manifest layout::

        endpoint: http://localhost:9000/tools   # optional
        tools:
          - name: mcp_store_memory
            category: memory
            inputSchema: {...}

    Calls are POSTed as ``{"name": ..., "arguments": ...}`` to
    ``<endpoint>/call``; a manifest without an endpoint describes tools only.
    """

    def __init__(self, manifest_path: str, transport: Optional[HttpTransport] = None):
        self.manifest_path = Path(manifest_path).expanduser()
        self._transport = transport
        self._manifest: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._manifest is None:
            try:
                content = self.manifest_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise DynamicSourceError(f"Cannot read tool manifest {self.manifest_path}", cause=exc) from exc

            if self.manifest_path.suffix == ".json":
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)

            if isinstance(data, list):
                data = {"tools": data}
            if not isinstance(data, dict):
                raise DynamicSourceError(f"Tool manifest {self.manifest_path} must be a mapping or a list")
            self._manifest = data
        return self._manifest

    async def list_tools(self) -> List[ToolDefinition]:
        return [ToolDefinition.model_validate(tool) for tool in self._load().get("tools") or []]

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        endpoint = self._load().get("endpoint")
        if not endpoint:
            raise HandlerError(f"Tool manifest {self.manifest_path} declares no endpoint; cannot call '{name}'")

        transport = self._transport or HttpxTransport()
        response = await transport.request(
            "POST",
            f"{endpoint.rstrip('/')}/call",
            json_body={"name": name, "arguments": arguments},
        )
        if not response.ok:
            raise HandlerError(
                f"Tool '{name}' failed with HTTP {response.status_code}",
                payload={"status_code": response.status_code, "body": response.text[:200]},
                code=f"http_{response.status_code}",
            )
        return response.data if response.data is not None else response.text

    async def refresh(self) -> None:
        self._manifest = None


def tool_arguments(tool: ToolDefinition, args: Mapping[str, Any]) -> Dict[str, Any]:
    """Map parsed CLI option keys back to schema property names.

    Keys that match no schema property (router flags such as ``yes`` or
    ``output-format``) are not forwarded to the tool.
    """
    names: Dict[str, str] = {}
    for option in parse_input_schema(tool.input_schema):
        names[option.key] = option.name
        names[option.name] = option.name
        if option.short:
            names[option.short.lstrip("-")] = option.name

    return {
        names[key]: value
        for key, value in args.items()
        if key != POSITIONAL_KEY and key in names
    }


class ToolCommandSource:
    """Commands generated from a tool provider's tool list."""

    kind = SourceKind.TOOL

    def __init__(
        self,
        namespace: str,
        provider: ToolProvider,
        program_name: str = "servicectl",
        fallback_tools: Optional[Sequence[ToolDefinition]] = None,
    ):
        self.namespace = namespace
        self.provider = provider
        self.program_name = program_name
        self.fallback_tools = list(fallback_tools) if fallback_tools is not None else None
        self.catalog = ToolCatalog()

    async def _list_tools(self) -> List[ToolDefinition]:
        try:
            return await self.provider.list_tools()
        except Exception as exc:
            if self.fallback_tools is None:
                raise
            logger.warning(f"Listing tools for {self.namespace} failed ({exc}); using fallback tools")
            return list(self.fallback_tools)

    async def discover(self) -> List[Command]:
        tools = await self._list_tools()
        commands = []
        for tool in tools:
            mapping = self.catalog.map_tool(
                tool,
                self._make_handler(tool),
                namespace=self.namespace,
                program_name=self.program_name,
            )
            commands.append(mapping.command)

        logger.debug(
            f"Generated {len(commands)} commands for {self.namespace} across "
            f"{len(self.catalog.get_categories())} categories"
        )
        return commands

    async def refresh(self) -> None:
        self.catalog.clear()
        refresh = getattr(self.provider, "refresh", None)
        if refresh is not None:
            await refresh()

    def get_commands_by_category(self, category: str) -> List[Command]:
        return [mapping.command for mapping in self.catalog.get_tools_by_category(category)]

    def _make_handler(self, tool: ToolDefinition) -> CommandHandler:
        async def handler(args: Dict[str, Any], context: CommandContext) -> CommandResult:
            result = await self.provider.call_tool(tool.name, tool_arguments(tool, args))
            if isinstance(result, CommandResult):
                return result
            return CommandResult(success=True, data=result)

        return handler
