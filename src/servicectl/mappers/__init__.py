"""Schema mappers: HTTP operations and tool schemas to ``Command``."""

from .openapi_mapper import (
    AuthRequirements,
    Operation,
    get_all_operations,
    get_auth_requirements,
    kebab_case,
    map_operation,
    map_spec,
    resolve_ref,
)
from .tool_mapper import ToolCatalog, ToolMapping, convert_to_cli_name, map_tool

__all__ = [
    "AuthRequirements",
    "Operation",
    "get_all_operations",
    "get_auth_requirements",
    "kebab_case",
    "map_operation",
    "map_spec",
    "resolve_ref",
    "ToolCatalog",
    "ToolMapping",
    "convert_to_cli_name",
    "map_tool",
]
