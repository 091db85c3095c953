"""Process bootstrap.

``Application`` owns exactly one registry, router and evaluator per process and
builds the ``CommandContext`` handed to every invocation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .config import Config
from .core import CommandEvaluator, CommandRouter, create_default_middleware
from .core.middleware import ConfirmCallback
from .models import Command, CommandContext, CommandResult, ServiceEndpoint, StaticSession, WorkspaceInfo
from .registry import CommandRegistry
from .settings import AppSettings
from .sources import SourceOutcome, sources_from_config
from .transport import HttpTransport, HttpxTransport

logger = logging.getLogger(__name__)

WORKSPACE_MARKERS = ("servicectl.yaml", ".servicectl", ".git")


def detect_workspace(start: str) -> Optional[WorkspaceInfo]:
    """Walk up from ``start`` to the first directory holding a workspace marker."""
    path = Path(start).resolve()
    for candidate in [path, *path.parents]:
        if any((candidate / marker).exists() for marker in WORKSPACE_MARKERS):
            return WorkspaceInfo(root=str(candidate), name=candidate.name)
    return None


class Application:
    """Wires configuration, registry, router and evaluator together."""

    def __init__(
        self,
        config: Optional[Config] = None,
        settings: Optional[AppSettings] = None,
        transport: Optional[HttpTransport] = None,
        confirm: Optional[ConfirmCallback] = None,
        verbose: bool = False,
    ):
        self.settings = settings or AppSettings()
        self.config = config or self.settings.load_config()
        self.verbose = verbose or self.settings.verbose
        self.transport = transport or HttpxTransport(timeout=self.config.http_timeout_seconds)

        self.registry = CommandRegistry()
        self.router = CommandRouter(
            self.registry,
            create_default_middleware(
                verbose=self.verbose,
                confirm=confirm if self.config.confirm_destructive else None,
                rate_limit_max=self.config.rate_limit_max,
                rate_limit_window_seconds=self.config.rate_limit_window_seconds,
            ),
        )
        self.evaluator = CommandEvaluator(self.registry, self.router)
        self.context = self.create_context()
        self.source_outcomes: List[SourceOutcome] = []
        self._started = False

        self.registry.register(
            Command(
                name="status",
                description="Show registry statistics and dynamic source health",
                handler=self._status,
                category="System",
            )
        )

    def create_context(self) -> CommandContext:
        cwd = os.getcwd()
        return CommandContext(
            cwd=cwd,
            workspace=detect_workspace(cwd),
            auth=StaticSession(self.settings.token) if self.settings.token else None,
            config=self.config.model_dump(),
            services={
                service.name: ServiceEndpoint(name=service.name, url=service.url, headers=dict(service.headers))
                for service in self.config.services
                if service.enabled and service.url
            },
            verbose=self.verbose,
            transport=self.transport,
        )

    async def start(self) -> List[SourceOutcome]:
        """Register configured sources and run discovery once."""
        if self._started:
            return self.source_outcomes
        self._started = True

        for source in sources_from_config(self.config, transport=self.transport):
            self.registry.register_dynamic_source(source)

        if not self.settings.discovery_enabled:
            logger.info("Dynamic discovery disabled")
            return self.source_outcomes

        self.source_outcomes = await self.registry.discover_dynamic_commands()
        for outcome in self.source_outcomes:
            if not outcome.success:
                logger.warning(f"Source '{outcome.namespace}' unavailable: {outcome.error}")
        return self.source_outcomes

    async def refresh(self, namespace: Optional[str] = None) -> List[SourceOutcome]:
        outcomes = await self.registry.refresh(namespace)
        known = {o.namespace: o for o in self.source_outcomes}
        known.update({o.namespace: o for o in outcomes})
        self.source_outcomes = list(known.values())
        return outcomes

    async def run_argv(self, argv: Sequence[str]) -> CommandResult:
        await self.start()
        return await self.router.route_argv(argv, self.context)

    async def _status(self, args: Any, context: CommandContext) -> CommandResult:
        return CommandResult(
            success=True,
            data={
                "stats": self.registry.get_stats().model_dump(),
                "sources": [outcome.model_dump() for outcome in self.source_outcomes],
            },
        )
