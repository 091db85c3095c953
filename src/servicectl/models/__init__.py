"""Data models for the servicectl command core."""

from .command_models import (
    DEFAULT_CATEGORY,
    POSITIONAL_KEY,
    ArgumentDefinition,
    ArgumentType,
    Command,
    CommandHandler,
    CommandResult,
    CommandValidator,
    InvocationState,
    OptionDefinition,
    ParsedCommand,
    ParsedKind,
    RegistryStats,
    ToolDefinition,
    ValidationOutcome,
    command_key,
)
from .context import (
    CommandContext,
    ServiceEndpoint,
    SessionAccessor,
    StaticSession,
    WorkspaceInfo,
)

__all__ = [
    "DEFAULT_CATEGORY",
    "POSITIONAL_KEY",
    "ArgumentDefinition",
    "ArgumentType",
    "Command",
    "CommandHandler",
    "CommandResult",
    "CommandValidator",
    "InvocationState",
    "OptionDefinition",
    "ParsedCommand",
    "ParsedKind",
    "RegistryStats",
    "ToolDefinition",
    "ValidationOutcome",
    "command_key",
    "CommandContext",
    "ServiceEndpoint",
    "SessionAccessor",
    "StaticSession",
    "WorkspaceInfo",
]
