"""Dynamic command source capability.

Any schema-backed provider exposes ``namespace``, ``discover()`` and
``refresh()``; the registry treats every provider the same way regardless of the
schema format it consumes internally.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from ..models import Command


class SourceKind(str, Enum):
    """Tags for the provider variants the factory knows how to build."""
    OPENAPI = "openapi"
    TOOL = "tool"


@runtime_checkable
class DynamicCommandSource(Protocol):
    """Capability implemented by every dynamic command provider.

    ``discover`` is idempotent and side-effect free apart from reading the
    remote schema; ``refresh`` invalidates any cache so the next ``discover``
    reads fresh data.
    """

    namespace: str

    async def discover(self) -> List[Command]:
        ...

    async def refresh(self) -> None:
        ...


class SourceOutcome(BaseModel):
    """Per-source report from discovery or refresh."""

    namespace: str
    success: bool
    command_count: int = Field(default=0, ge=0)
    error: Optional[str] = None
