"""Construction of dynamic sources from configuration, keyed by ``SourceKind``."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from ..config import Config, ServiceConfig, ToolSourceConfig
from ..transport import HttpTransport, HttpxTransport
from .base import DynamicCommandSource, SourceKind
from .openapi_source import OpenAPICommandSource
from .tool_source import DEFAULT_FALLBACK_TOOLS, ManifestToolProvider, ToolCommandSource

logger = logging.getLogger(__name__)


def build_openapi_source(
    service: ServiceConfig, config: Config, transport: Optional[HttpTransport] = None
) -> DynamicCommandSource:
    return OpenAPICommandSource(
        namespace=service.name,
        url=service.url,
        spec_url=service.openapi_url,
        spec_path=service.openapi_path,
        headers=service.headers,
        program_name=config.program_name,
        transport=transport,
        timeout=config.http_timeout_seconds,
    )


def build_tool_source(
    tool_source: ToolSourceConfig, config: Config, transport: Optional[HttpTransport] = None
) -> DynamicCommandSource:
    provider = ManifestToolProvider(
        tool_source.manifest,
        transport=transport or HttpxTransport(timeout=config.http_timeout_seconds),
    )
    return ToolCommandSource(
        namespace=tool_source.namespace,
        provider=provider,
        program_name=config.program_name,
        fallback_tools=DEFAULT_FALLBACK_TOOLS if tool_source.use_fallback_tools else None,
    )


SOURCE_BUILDERS: Dict[SourceKind, Callable[..., DynamicCommandSource]] = {
    SourceKind.OPENAPI: build_openapi_source,
    SourceKind.TOOL: build_tool_source,
}


def sources_from_config(config: Config, transport: Optional[HttpTransport] = None) -> List[DynamicCommandSource]:
    """Build one source per enabled service and tool manifest."""
    entries = [(SourceKind.OPENAPI, service) for service in config.services if service.enabled]
    entries += [(SourceKind.TOOL, tool) for tool in config.tool_sources if tool.enabled]

    sources = []
    for kind, entry in entries:
        sources.append(SOURCE_BUILDERS[kind](entry, config, transport))
        logger.debug(f"Configured {kind.value} source '{sources[-1].namespace}'")
    return sources
