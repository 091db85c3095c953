"""Command models for the servicectl command core.

This module defines the Pydantic data structures shared by the schema mappers,
the registry, the evaluator and the router. Every command, whether registered
statically or discovered from a remote schema, is normalised into ``Command``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


POSITIONAL_KEY = "_"
"""Reserved argument key holding positional tokens."""

DEFAULT_CATEGORY = "General"

CommandHandler = Callable[..., Awaitable[Any]]
CommandValidator = Callable[..., Awaitable[Any]]


class ArgumentType(str, Enum):
    """Semantic type of an argument or option."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    JSON = "json"
    FILE = "file"
    DIRECTORY = "directory"
    URL = "url"


class ParsedKind(str, Enum):
    """Classification of a parsed input line."""
    BUILTIN = "builtin"
    NAMESPACE = "namespace"
    SERVICE = "service"


class InvocationState(str, Enum):
    """Per-invocation lifecycle tracked by the router."""
    RESOLVING = "resolving"
    MIDDLEWARE_PENDING = "middleware_pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class ArgumentDefinition(BaseModel):
    """Positional argument definition."""

    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    type: ArgumentType = Field(default=ArgumentType.STRING)
    required: bool = Field(default=False)
    default: Any = Field(default=None)
    choices: Optional[List[Any]] = Field(default=None)


class OptionDefinition(BaseModel):
    """Flag-style option definition (``--long`` / ``-s``)."""

    name: str = Field(..., min_length=1, description="Schema-level name (e.g. score_threshold)")
    long: str = Field(..., description="Long flag form, e.g. --score-threshold")
    short: Optional[str] = Field(default=None, description="Short flag form, e.g. -q")
    description: str = Field(default="")
    type: ArgumentType = Field(default=ArgumentType.STRING)
    required: bool = Field(default=False)
    default: Any = Field(default=None)
    choices: Optional[List[Any]] = Field(default=None)
    location: Optional[str] = Field(
        default=None,
        description="Request location for HTTP-derived options: query|path|header|cookie|body",
    )

    @property
    def key(self) -> str:
        """Option key as produced by the input parser (long flag without dashes)."""
        return self.long.lstrip("-")


class ValidationOutcome(BaseModel):
    """Result of a command's argument validator."""

    valid: bool = True
    errors: List[str] = Field(default_factory=list)


class Command(BaseModel):
    """Uniform command representation.

    ``(namespace, name)`` is the registry's primary key; commands without a
    namespace live in the flat global space.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    namespace: Optional[str] = Field(default=None)
    description: str = Field(default="")
    handler: CommandHandler
    aliases: List[str] = Field(default_factory=list)
    category: Optional[str] = Field(default=None)
    args: List[ArgumentDefinition] = Field(default_factory=list)
    options: List[OptionDefinition] = Field(default_factory=list)
    usage: Optional[str] = Field(default=None)
    examples: List[str] = Field(default_factory=list)
    streaming: bool = Field(default=False)
    requires_auth: bool = Field(default=False)
    requires_workspace: bool = Field(default=False)
    destructive: bool = Field(default=False)
    args_validator: Optional[CommandValidator] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("aliases")
    @classmethod
    def dedupe_aliases(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

    @property
    def key(self) -> str:
        return command_key(self.name, self.namespace)

    @property
    def full_name(self) -> str:
        return self.key

    def get_option(self, key: str) -> Optional[OptionDefinition]:
        """Look up an option by its flag key, short letter or schema name."""
        for option in self.options:
            if key in (option.key, option.name) or (option.short and option.short.lstrip("-") == key):
                return option
        return None


class CommandResult(BaseModel):
    """Uniform outcome of any invocation, successful or not."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("error", mode="before")
    @classmethod
    def stringify_error(cls, v: Any) -> Any:
        if isinstance(v, BaseException):
            return str(v) or v.__class__.__name__
        return v

    @classmethod
    def failure(cls, error: Any, code: Optional[str] = None, **metadata: Any) -> "CommandResult":
        return cls(success=False, error=error, error_code=code, metadata=metadata)

    @classmethod
    def coerce(cls, value: Any) -> "CommandResult":
        """Normalise a handler return value into a ``CommandResult``."""
        if isinstance(value, CommandResult):
            return value
        if isinstance(value, Mapping) and "success" in value:
            return cls.model_validate(dict(value))
        return cls(success=True, data=value)

    def with_metadata(self, **extra: Any) -> "CommandResult":
        return self.model_copy(update={"metadata": {**self.metadata, **extra}})


class ParsedCommand(BaseModel):
    """Structured invocation produced by the input evaluator."""

    kind: ParsedKind
    command: str
    args: List[str] = Field(default_factory=list)
    options: Dict[str, Any] = Field(default_factory=dict)
    namespace: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class ToolDefinition(BaseModel):
    """Tool-call description with a JSON-Schema input schema."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    category: str = Field(default="general")
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")
    streaming: bool = Field(default=False)
    examples: List[str] = Field(default_factory=list)


class RegistryStats(BaseModel):
    total_commands: int = 0
    namespaces: int = 0
    dynamic_sources: int = 0
    categories: int = 0


def command_key(name: str, namespace: Optional[str] = None) -> str:
    """Primary registry key: ``namespace:name`` or bare ``name``."""
    return f"{namespace}:{name}" if namespace else name
