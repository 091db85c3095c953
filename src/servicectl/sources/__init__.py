"""Dynamic command sources."""

from .base import DynamicCommandSource, SourceKind, SourceOutcome
from .factory import sources_from_config
from .openapi_source import OpenAPICommandSource
from .tool_source import DEFAULT_FALLBACK_TOOLS, ManifestToolProvider, ToolCommandSource, ToolProvider

__all__ = [
    "DynamicCommandSource",
    "SourceKind",
    "SourceOutcome",
    "sources_from_config",
    "OpenAPICommandSource",
    "DEFAULT_FALLBACK_TOOLS",
    "ManifestToolProvider",
    "ToolCommandSource",
    "ToolProvider",
]
