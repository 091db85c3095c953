"""Built-in router middleware.

A middleware is an async callable ``(command, args, context, next_stage)``
that either returns a terminal ``CommandResult`` or awaits ``next_stage()`` to
continue the chain. ``Middleware`` wraps such a callable with a name and a
priority so the router can order and toggle stages.
"""

from __future__ import annotations

import logging
import math
import time
import traceback
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from ..errors import ServiceCtlError
from ..models import Command, CommandContext, CommandResult

logger = logging.getLogger(__name__)

NextStage = Callable[[], Awaitable[CommandResult]]
MiddlewareFunc = Callable[[Command, Dict[str, Any], CommandContext, NextStage], Awaitable[Any]]
TelemetryCallback = Callable[[Command, Dict[str, Any], CommandResult, float], None]
ConfirmCallback = Callable[[str], Awaitable[bool]]

DEFAULT_PRIORITY = 5


class Middleware:
    """Named pipeline stage."""

    def __init__(self, name: str, handler: MiddlewareFunc, priority: int = DEFAULT_PRIORITY):
        self.name = name
        self.handler = handler
        self.priority = priority  # 1=highest, 10=lowest
        self.enabled = True

    async def __call__(self, command, args, context, next_stage):
        return await self.handler(command, args, context, next_stage)

    def __repr__(self) -> str:
        return f"Middleware(name={self.name!r}, priority={self.priority}, enabled={self.enabled})"


def auth_middleware() -> Middleware:
    """Reject commands that require auth when the context has no token."""

    async def handler(command, args, context, next_stage):
        if command.requires_auth and not context.is_authenticated():
            return CommandResult.failure(
                f"Command '{command.key}' requires authentication. Set SERVICECTL_TOKEN first.",
                code="auth_required",
            )
        return await next_stage()

    return Middleware("auth", handler)


def workspace_middleware() -> Middleware:
    async def handler(command, args, context, next_stage):
        if command.requires_workspace and context.workspace is None:
            return CommandResult.failure(
                f"Command '{command.key}' requires a workspace. Run from within a project directory.",
                code="workspace_required",
            )
        return await next_stage()

    return Middleware("workspace", handler)


def logging_middleware(verbose: bool = False) -> Middleware:
    """Log each execution with its timing (INFO when verbose, else DEBUG)."""

    async def handler(command, args, context, next_stage):
        level = logging.INFO if verbose or context.verbose else logging.DEBUG
        start = time.perf_counter()
        logger.log(level, f"Executing command: {command.key} args={args}")

        result = await next_stage()

        duration_ms = (time.perf_counter() - start) * 1000
        logger.log(level, f"Command {command.key} completed in {duration_ms:.1f}ms (success: {result.success})")
        return result

    return Middleware("logging", handler)


def error_handling_middleware() -> Middleware:
    """Convert exceptions raised further down the chain into failure results."""

    async def handler(command, args, context, next_stage):
        try:
            return await next_stage()
        except ServiceCtlError as exc:
            logger.warning(f"Command {command.key} failed: {exc}")
            return _failure_from(command, context, exc, exc.code, exc.to_dict())
        except Exception as exc:
            logger.warning(f"Command {command.key} raised {type(exc).__name__}: {exc}", exc_info=context.verbose)
            info = {"error": type(exc).__name__, "message": str(exc)}
            return _failure_from(command, context, exc, "handler_error", info)

    return Middleware("error_handling", handler)


def _failure_from(command: Command, context: CommandContext, exc: BaseException, code: str,
                  error_info: Dict[str, Any]) -> CommandResult:
    if context.verbose:
        error_info["traceback"] = traceback.format_exc()
    metadata: Dict[str, Any] = {"error_info": error_info}
    if command.namespace:
        metadata["service"] = command.namespace
    return CommandResult.failure(str(exc) or "Unknown error occurred", code=code, **metadata)


def telemetry_middleware(callback: Optional[TelemetryCallback] = None) -> Middleware:
    """Report ``(command, args, result, duration_ms)`` after every execution.

    A failing callback is logged and never changes the command's result.
    """

    async def handler(command, args, context, next_stage):
        start = time.perf_counter()
        result = await next_stage()
        duration_ms = (time.perf_counter() - start) * 1000

        if callback is not None:
            try:
                callback(command, args, result, duration_ms)
            except Exception as exc:
                logger.warning(f"Telemetry callback failed: {exc}")

        return result

    return Middleware("telemetry", handler)


def dry_run_middleware() -> Middleware:
    """Short-circuit with a description of the call when ``--dry-run`` is given."""

    async def handler(command, args, context, next_stage):
        if args.get("dry-run") or args.get("dry_run") or args.get("dryRun"):
            return CommandResult(
                success=True,
                message=f"[DRY RUN] Would execute: {command.key}",
                data={
                    "command": command.key,
                    "args": {k: v for k, v in args.items() if k not in ("dry-run", "dry_run", "dryRun")},
                    "context": {
                        "cwd": context.cwd,
                        "workspace": context.workspace.root if context.workspace else None,
                    },
                },
            )
        return await next_stage()

    return Middleware("dry_run", handler)


def confirmation_middleware(
    confirm: ConfirmCallback,
    is_destructive: Optional[Callable[[Command], bool]] = None,
) -> Middleware:
    """Ask before running destructive commands; ``--yes``/``-y`` skips the prompt."""
    if is_destructive is None:
        is_destructive = _is_destructive

    async def handler(command, args, context, next_stage):
        if args.get("yes") or args.get("y"):
            return await next_stage()

        if is_destructive(command):
            confirmed = await confirm(
                f"Are you sure you want to execute '{command.key}'? This action may be destructive."
            )
            if not confirmed:
                return CommandResult(
                    success=False,
                    error="Command cancelled by user",
                    error_code="cancelled",
                    message="Command cancelled by user",
                )

        return await next_stage()

    return Middleware("confirmation", handler)


def _is_destructive(command: Command) -> bool:
    return command.destructive


def rate_limit_middleware(
    max_executions: int,
    window_seconds: float,
    clock: Callable[[], float] = time.monotonic,
) -> Middleware:
    """Sliding-window limit of ``max_executions`` per command key."""
    executions: Dict[str, Deque[float]] = {}

    async def handler(command, args, context, next_stage):
        now = clock()
        timestamps = executions.setdefault(command.key, deque())

        while timestamps and now - timestamps[0] >= window_seconds:
            timestamps.popleft()

        if len(timestamps) >= max_executions:
            wait_seconds = max(1, math.ceil(timestamps[0] + window_seconds - now))
            return CommandResult.failure(
                f"Rate limit exceeded. Please wait {wait_seconds} seconds before running this command again.",
                code="rate_limited",
                retry_after=wait_seconds,
            )

        timestamps.append(now)
        return await next_stage()

    return Middleware("rate_limit", handler)


def cancellation_middleware() -> Middleware:
    """Stop before the handler when the context's cancel event is already set."""

    async def handler(command, args, context, next_stage):
        if context.is_cancelled():
            return CommandResult.failure(f"Command '{command.key}' cancelled", code="cancelled")
        return await next_stage()

    return Middleware("cancellation", handler)


def create_default_middleware(
    verbose: bool = False,
    telemetry: Optional[TelemetryCallback] = None,
    confirm: Optional[ConfirmCallback] = None,
    is_destructive: Optional[Callable[[Command], bool]] = None,
    rate_limit_max: int = 0,
    rate_limit_window_seconds: float = 60.0,
) -> List[Middleware]:
    """Common middleware in their intended order."""
    middleware = [
        logging_middleware(verbose),
        error_handling_middleware(),
        cancellation_middleware(),
        dry_run_middleware(),
        auth_middleware(),
        workspace_middleware(),
    ]

    if confirm is not None:
        middleware.append(confirmation_middleware(confirm, is_destructive))

    if rate_limit_max > 0:
        middleware.append(rate_limit_middleware(rate_limit_max, rate_limit_window_seconds))

    if telemetry is not None:
        middleware.append(telemetry_middleware(telemetry))

    return middleware

