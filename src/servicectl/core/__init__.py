"""Command core: parsing, evaluation, routing and middleware."""

from .evaluator import BUILTIN_COMMANDS, CommandEvaluator
from .middleware import (
    Middleware,
    auth_middleware,
    cancellation_middleware,
    confirmation_middleware,
    create_default_middleware,
    dry_run_middleware,
    error_handling_middleware,
    logging_middleware,
    rate_limit_middleware,
    telemetry_middleware,
    workspace_middleware,
)
from .parsing import coerce_value, parse_options, tokenize
from .router import CommandRouter

__all__ = [
    "BUILTIN_COMMANDS",
    "CommandEvaluator",
    "CommandRouter",
    "Middleware",
    "auth_middleware",
    "cancellation_middleware",
    "confirmation_middleware",
    "create_default_middleware",
    "dry_run_middleware",
    "error_handling_middleware",
    "logging_middleware",
    "rate_limit_middleware",
    "telemetry_middleware",
    "workspace_middleware",
    "coerce_value",
    "parse_options",
    "tokenize",
]
