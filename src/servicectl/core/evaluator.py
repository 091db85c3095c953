"""Interactive input evaluator.

``parse_input`` turns a REPL line into a ``ParsedCommand``; ``evaluate``
executes it. ``evaluate`` never raises: every failure, including exceptions
from handlers, is returned as a failed ``CommandResult``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import ParseError, ServiceCtlError, UnknownCommandError, UnknownNamespaceError
from ..models import POSITIONAL_KEY, Command, CommandContext, CommandResult, ParsedCommand, ParsedKind
from ..registry import CommandRegistry
from .parsing import parse_options, tokenize
from .router import CommandRouter

logger = logging.getLogger(__name__)

BUILTIN_COMMANDS = frozenset(
    {"help", "services", "history", "clear", "save", "load", "sessions", "config", "exit", "quit"}
)

NAMESPACE_SWITCH = "use"

# ``use ..`` and ``use /`` return to the global scope
GLOBAL_SCOPE_TARGETS = ("..", "/")

BuiltinHandler = Callable[[ParsedCommand, CommandContext], Awaitable[Any]]


class CommandEvaluator:
    """Parses and evaluates interactive input against a registry.

    When a router is supplied, service commands run through its middleware
    chain; otherwise handlers are invoked directly.
    """

    def __init__(self, registry: CommandRegistry, router: Optional[CommandRouter] = None):
        self.registry = registry
        self.router = router

    def parse_input(self, line: str, context: Optional[CommandContext] = None) -> Optional[ParsedCommand]:
        """Classify a line; returns None for empty or whitespace-only input."""
        warnings: list = []
        tokens = tokenize(line, warnings)
        if not tokens:
            return None

        first, rest = tokens[0], tokens[1:]

        if first in BUILTIN_COMMANDS:
            return ParsedCommand(kind=ParsedKind.BUILTIN, command=first, args=rest, warnings=warnings)

        if first == NAMESPACE_SWITCH:
            return ParsedCommand(kind=ParsedKind.NAMESPACE, command=first, args=rest, warnings=warnings)

        options, positionals = parse_options(rest)
        parsed = ParsedCommand(
            kind=ParsedKind.SERVICE,
            command=first,
            args=positionals,
            options=options,
            warnings=warnings,
        )

        if context is not None and context.namespace:
            parsed.namespace = context.namespace
        elif "." in first:
            namespace, _, name = first.partition(".")
            if namespace and name:
                parsed.namespace = namespace
                parsed.command = name

        return parsed

    async def evaluate(
        self,
        parsed: ParsedCommand,
        context: CommandContext,
        builtin_handler: Optional[BuiltinHandler] = None,
    ) -> CommandResult:
        try:
            if parsed.kind == ParsedKind.BUILTIN:
                if builtin_handler is None:
                    return CommandResult.failure(
                        f"Built-in command '{parsed.command}' is not available here",
                        code="builtin_unavailable",
                    )
                return CommandResult.coerce(await builtin_handler(parsed, context))

            if parsed.kind == ParsedKind.NAMESPACE:
                return self._switch_namespace(parsed, context)

            return await self._evaluate_service(parsed, context)
        except ServiceCtlError as exc:
            return CommandResult.failure(exc, code=exc.code)
        except Exception as exc:
            logger.error(f"Evaluation of '{parsed.command}' failed: {exc}", exc_info=True)
            return CommandResult.failure(exc, code="handler_error")

    async def evaluate_line(
        self,
        line: str,
        context: CommandContext,
        builtin_handler: Optional[BuiltinHandler] = None,
    ) -> Optional[CommandResult]:
        """``parse_input`` followed by ``evaluate``; None for empty input."""
        parsed = self.parse_input(line, context)
        if parsed is None:
            return None
        result = await self.evaluate(parsed, context, builtin_handler)
        if parsed.warnings:
            result = result.with_metadata(warnings=list(parsed.warnings))
        return result

    def _switch_namespace(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        if not parsed.args:
            raise ParseError("Usage: use <namespace>")

        target = parsed.args[0]
        if target in GLOBAL_SCOPE_TARGETS:
            context.namespace = None
            return CommandResult(success=True, data={"namespace": None}, message="Switched to global scope")

        if target not in self.registry.list_namespaces():
            raise UnknownNamespaceError(f"Unknown namespace: {target}", payload={"namespace": target})

        context.namespace = target
        return CommandResult(success=True, data={"namespace": target}, message=f"Switched to namespace: {target}")

    def find_command(self, parsed: ParsedCommand, context: CommandContext) -> Optional[Command]:
        """Explicit or current namespace first, then global name, alias and a scan of all namespaces."""
        if parsed.namespace:
            command = self.registry.get(parsed.command, parsed.namespace)
            if command is not None or parsed.namespace != context.namespace:
                return command

        name = parsed.command
        command = self.registry.resolve(name) or self.registry.resolve_alias(name)
        if command is not None:
            return command

        for namespace in self.registry.list_namespaces():
            command = self.registry.get(name, namespace)
            if command is not None:
                return command
        return None

    async def _evaluate_service(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        command = self.find_command(parsed, context)
        if command is None:
            where = f" in namespace {parsed.namespace}" if parsed.namespace else ""
            raise UnknownCommandError(f"Unknown command: {parsed.command}{where}")

        args: Dict[str, Any] = {**parsed.options, POSITIONAL_KEY: list(parsed.args)}

        start = time.perf_counter()
        if self.router is not None:
            result = await self.router.execute(command, args, context)
        else:
            result = CommandResult.coerce(await command.handler(args, context))
        duration_ms = round((time.perf_counter() - start) * 1000, 3)

        return result.with_metadata(duration_ms=duration_ms, namespace=command.namespace)
