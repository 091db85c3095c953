"""Execution context handed to middleware and command handlers.

The context is constructed by the caller (CLI bootstrap or REPL) and passed by
reference; the namespace-switch builtin mutates ``namespace`` in place.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class SessionAccessor(Protocol):
    """Auth/session capability supplied by the credential layer."""

    def get_token(self) -> Optional[str]:
        ...


@dataclass
class StaticSession:
    """Session accessor backed by a fixed token (env var or test fixture)."""

    token: Optional[str] = None

    def get_token(self) -> Optional[str]:
        return self.token


@dataclass
class WorkspaceInfo:
    root: str
    name: Optional[str] = None


@dataclass
class ServiceEndpoint:
    """A known remote service the generated HTTP commands can target."""

    name: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class CommandContext:
    cwd: str = field(default_factory=os.getcwd)
    workspace: Optional[WorkspaceInfo] = None
    auth: Optional[SessionAccessor] = None
    config: Dict[str, Any] = field(default_factory=dict)
    services: Dict[str, ServiceEndpoint] = field(default_factory=dict)
    namespace: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = None
    verbose: bool = False
    output_format: str = "text"
    transport: Any = None

    def is_authenticated(self) -> bool:
        return bool(self.auth is not None and self.auth.get_token())

    def is_cancelled(self) -> bool:
        return bool(self.cancel_event is not None and self.cancel_event.is_set())
