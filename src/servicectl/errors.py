"""Exception hierarchy for the servicectl command core.

Errors carry optional context (a cause and a payload) that can be rendered in
logs and converted into failure results at the evaluator/router boundary.
"""

from __future__ import annotations

from typing import Any, Optional


class ServiceCtlError(RuntimeError):
    """Base class for all errors raised by the command core.

    ``code`` is the machine-readable identifier surfaced as
    ``CommandResult.error_code`` when the error is converted into a result.
    """

    code: str = "error"

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        payload: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.payload = payload or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation for logs and result metadata."""
        data = {"error": self.__class__.__name__, "code": self.code, "message": str(self)}
        if self.payload:
            data["payload"] = self.payload
        if self.cause:
            data["cause"] = repr(self.cause)
        return data


# Input errors
class ParseError(ServiceCtlError):
    """Raised when an input line cannot be turned into an invocation."""

    code = "parse_error"


# Resolution errors
class ResolutionError(ServiceCtlError):
    """Base for lookups that did not find what was asked for."""

    code = "resolution_error"


class UnknownCommandError(ResolutionError):
    code = "unknown_command"


class UnknownNamespaceError(ResolutionError):
    code = "unknown_namespace"


# Execution errors
class HandlerError(ServiceCtlError):
    """Wraps an exception raised by a command handler."""

    code = "handler_error"


class ValidationFailedError(ServiceCtlError):
    code = "validation_failed"


# Discovery errors
class DynamicSourceError(ServiceCtlError):
    """Raised when a dynamic source cannot discover or refresh its commands."""

    code = "dynamic_source_error"


class MappingError(ServiceCtlError):
    """Raised when a schema cannot be decomposed into command options."""

    code = "mapping_error"


# Configuration / transport errors
class ConfigError(ServiceCtlError):
    """Raised when configuration is missing or malformed."""

    code = "config_error"


class TransportError(ServiceCtlError):
    """Transport-level problems (timeouts, connection refused, bad status)."""

    code = "transport_error"
