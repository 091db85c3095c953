"""Tool-schema mapper.

Converts tool definitions (a name plus a JSON-Schema ``inputSchema``) into
``Command`` objects. Mapping is pure: the same tool and handler always produce
an equal ``Command``. ``ToolCatalog`` adds the stateful per-category index on
top of the pure functions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

from ..models import ArgumentType, Command, CommandHandler, OptionDefinition, ToolDefinition
from .usage import command_prefix, format_usage


# Applied in order, each at most once
NAME_PREFIXES: Tuple[str, ...] = ("mcp__MCP_DOCKER__", "mcp_", "brain_")

SHORT_FLAG_NAMES = frozenset({"query", "file", "path", "id"})

# category -> ordered (substring, example arguments); first matching substring wins
EXAMPLE_TEMPLATES: Dict[str, Sequence[Tuple[str, str]]] = {
    "memory": (
        ("store", '--content "User prefers Python" --tags "preferences,python"'),
        ("recall", '--query "python patterns" --limit 10'),
    ),
    "documents": (
        ("store", '--file report.pdf --title "Q4 Report"'),
        ("retrieve", '--query "authentication" --strategy semantic_chunks'),
    ),
    "knowledge-graph": (
        ("store-entity", '--domain code --type class --content "User class"'),
        ("query", '--domain code --search "authentication"'),
    ),
    "code-analysis": (
        ("validate-code", "--file app.py --risk-level high"),
        ("analyze", "--file app.py --depth deep --focus security,performance"),
    ),
    "multi-agent": (
        ("orchestrate", '--task "Analyze codebase for security issues" --max-agents 5'),
    ),
    "learning": (
        ("trigger", '--topic "rust_async" --priority 9'),
        ("recall", '--topic "python_patterns" --layer EXPERT'),
    ),
    "episodes": (
        ("store", '--content "Fixed memory leak" --type insight'),
        ("recall", '--query "refactoring sessions" --limit 10'),
    ),
    "health": (
        ("health", "--detailed"),
    ),
}

_JSON_TYPES = {
    "number": ArgumentType.NUMBER,
    "integer": ArgumentType.NUMBER,
    "boolean": ArgumentType.BOOLEAN,
    "array": ArgumentType.ARRAY,
    "object": ArgumentType.JSON,
}


class ToolMapping(BaseModel):
    """A tool together with the command generated from it."""

    tool: ToolDefinition
    command: Command
    cli_name: str
    category: str


def convert_to_cli_name(tool_name: str) -> str:
    """Strip known tool prefixes and hyphenate.

    Examples:
        mcp_store_memory -> store-memory
        mcp__MCP_DOCKER__brain_recall_episodes -> recall-episodes
    """
    name = tool_name
    for prefix in NAME_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
    return name.replace("_", "-")


def _schema_type(prop: Mapping[str, Any]) -> Optional[str]:
    json_type = prop.get("type")
    if isinstance(json_type, list):
        # ["string", "null"] style unions: first non-null member
        json_type = next((t for t in json_type if t != "null"), None)
    return json_type


def map_json_type(prop: Mapping[str, Any]) -> ArgumentType:
    """JSON-Schema type to CLI type, retyping strings by their description."""
    json_type = _schema_type(prop)

    if json_type == "string":
        description = (prop.get("description") or "").lower()
        if "file" in description:
            return ArgumentType.FILE
        if "directory" in description:
            return ArgumentType.DIRECTORY
        if "url" in description:
            return ArgumentType.URL
        return ArgumentType.STRING

    return _JSON_TYPES.get(json_type, ArgumentType.STRING)


def parse_input_schema(schema: Optional[Mapping[str, Any]]) -> List[OptionDefinition]:
    """One option per top-level property, in schema order."""
    if not schema or not schema.get("properties"):
        return []

    required = set(schema.get("required") or [])
    options: List[OptionDefinition] = []

    for name, prop in schema["properties"].items():
        prop = prop or {}
        short = f"-{name[0]}" if len(name) == 1 or name in SHORT_FLAG_NAMES else None
        enum = prop.get("enum")

        options.append(
            OptionDefinition(
                name=name,
                long=f"--{name.replace('_', '-')}",
                short=short,
                description=prop.get("description") or name,
                type=map_json_type(prop),
                required=name in required,
                default=prop.get("default"),
                choices=list(enum) if enum else None,
            )
        )

    return options


def generate_examples(prefix: str, cli_name: str, category: str) -> List[str]:
    for needle, example_args in EXAMPLE_TEMPLATES.get(category, ()):
        if needle in cli_name:
            return [f"{prefix} {example_args}"]
    return [f"{prefix} [options]"]


def map_tool(
    tool: ToolDefinition,
    handler: CommandHandler,
    namespace: Optional[str] = "mcp",
    program_name: str = "servicectl",
) -> ToolMapping:
    cli_name = convert_to_cli_name(tool.name)
    options = parse_input_schema(tool.input_schema)
    prefix = command_prefix(program_name, namespace, cli_name)

    command = Command(
        name=cli_name,
        namespace=namespace,
        description=tool.description or f"Execute {tool.name}",
        handler=handler,
        category=tool.category,
        options=options,
        usage=format_usage(program_name, namespace, cli_name, options),
        examples=list(tool.examples) or generate_examples(prefix, cli_name, tool.category),
        streaming=tool.streaming,
        metadata={"tool_name": tool.name},
    )

    return ToolMapping(tool=tool, command=command, cli_name=cli_name, category=tool.category)


class ToolCatalog:
    """Keeps mapped tools indexed by tool name and category."""

    def __init__(self) -> None:
        self._mappings: Dict[str, ToolMapping] = {}
        self._categories: Dict[str, List[str]] = {}

    def add(self, mapping: ToolMapping) -> None:
        name = mapping.tool.name
        previous = self._mappings.get(name)
        if previous is not None:
            self._categories[previous.category].remove(name)
            if not self._categories[previous.category]:
                del self._categories[previous.category]

        self._mappings[name] = mapping
        self._categories.setdefault(mapping.category, []).append(name)

    def map_tool(
        self,
        tool: ToolDefinition,
        handler: CommandHandler,
        namespace: Optional[str] = "mcp",
        program_name: str = "servicectl",
    ) -> ToolMapping:
        mapping = map_tool(tool, handler, namespace=namespace, program_name=program_name)
        self.add(mapping)
        return mapping

    def map_tools(
        self,
        tools: Sequence[ToolDefinition],
        handler: CommandHandler,
        namespace: Optional[str] = "mcp",
        program_name: str = "servicectl",
    ) -> List[ToolMapping]:
        return [self.map_tool(tool, handler, namespace, program_name) for tool in tools]

    def get_tools_by_category(self, category: str) -> List[ToolMapping]:
        return [self._mappings[name] for name in self._categories.get(category, [])]

    def get_categories(self) -> List[str]:
        return list(self._categories)

    def get_mapping(self, tool_name: str) -> Optional[ToolMapping]:
        return self._mappings.get(tool_name)

    def all_mappings(self) -> List[ToolMapping]:
        return list(self._mappings.values())

    def clear(self) -> None:
        self._mappings.clear()
        self._categories.clear()
