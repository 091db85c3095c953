"""Usage-line helpers shared by the schema mappers."""

from __future__ import annotations

from typing import Iterable, Optional

from ..models import OptionDefinition


def command_prefix(program: str, namespace: Optional[str], name: str) -> str:
    """``<program> <namespace> <name>`` (namespace omitted when global)."""
    parts = [program]
    if namespace:
        parts.append(namespace)
    parts.append(name)
    return " ".join(parts)


def format_usage(program: str, namespace: Optional[str], name: str, options: Iterable[OptionDefinition]) -> str:
    options = list(options)
    usage = command_prefix(program, namespace, name)

    for opt in options:
        if opt.required:
            usage += f" {opt.long} <value>"

    if any(not opt.required for opt in options):
        usage += " [options]"

    return usage
