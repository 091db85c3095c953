"""Command router.

Resolves a command name against the registry, runs the middleware chain and
invokes the handler. Every outcome, including exceptions raised by handlers
or middleware, comes back as a ``CommandResult``; nothing is re-raised to the
caller. Timeouts are not enforced here: cancellation is cooperative through
``CommandContext.cancel_event``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import ResolutionError, ServiceCtlError, UnknownCommandError, ValidationFailedError
from ..models import (
    POSITIONAL_KEY,
    Command,
    CommandContext,
    CommandResult,
    InvocationState,
    ValidationOutcome,
)
from ..registry import CommandRegistry
from .middleware import Middleware, MiddlewareFunc
from .parsing import parse_options

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "json")


class CommandRouter:
    """Routes invocations through middleware to command handlers."""

    def __init__(self, registry: CommandRegistry, middleware: Optional[Sequence[Union[Middleware, MiddlewareFunc]]] = None):
        self.registry = registry
        self._middleware: List[Middleware] = []
        for stage in middleware or []:
            self.use(stage)

    # ------------------------------------------------------------------
    # Middleware management
    # ------------------------------------------------------------------
    def use(self, middleware: Union[Middleware, MiddlewareFunc]) -> "CommandRouter":
        """Append a stage; stages run in priority order, ties in insertion order."""
        if not isinstance(middleware, Middleware):
            middleware = Middleware(getattr(middleware, "__name__", "middleware"), middleware)
        self._middleware.append(middleware)
        self._middleware.sort(key=lambda m: m.priority)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def clear_middleware(self) -> None:
        self._middleware = []

    @property
    def middleware(self) -> List[Middleware]:
        return list(self._middleware)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def find_command(self, name: str, namespace: Optional[str] = None) -> Optional[Command]:
        """Resolve ``name`` without raising; see ``resolve_command``."""
        try:
            return self.resolve_command(name, namespace)
        except ResolutionError:
            return None

    def resolve_command(self, name: str, namespace: Optional[str] = None) -> Command:
        """Resolve a command name.

        Strategies in order: ``ns:name``, ``ns.name``, the given (current)
        namespace, a global command, the alias index, then a unique bare-name
        match across all namespaces.

        Raises:
            UnknownCommandError: If nothing matches
            ResolutionError: If a bare name matches in several namespaces
        """
        if ":" in name:
            command = self.registry.resolve(name)
            if command is not None:
                return command

        if "." in name:
            ns, _, cmd_name = name.partition(".")
            command = self.registry.get(cmd_name, ns)
            if command is not None:
                return command

        if namespace:
            command = self.registry.get(name, namespace)
            if command is not None:
                return command

        command = self.registry.get(name) or self.registry.resolve_alias(name)
        if command is not None:
            return command

        matches = [cmd for cmd in self.registry.list_commands() if cmd.name == name]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            candidates = ", ".join(sorted(cmd.key for cmd in matches))
            raise ResolutionError(
                f"Command '{name}' is ambiguous; use one of: {candidates}",
                code="ambiguous_command",
                payload={"candidates": [cmd.key for cmd in matches]},
            )

        raise UnknownCommandError(f"Command '{name}' not found")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def route(
        self,
        name: str,
        args: Optional[Mapping[str, Any]] = None,
        context: Optional[CommandContext] = None,
    ) -> CommandResult:
        """Resolve ``name`` and execute it."""
        context = context or CommandContext()
        start = time.perf_counter()
        logger.debug(f"Routing '{name}' ({InvocationState.RESOLVING.value})")

        try:
            command = self.resolve_command(name, context.namespace)
        except ResolutionError as exc:
            return CommandResult.failure(exc, code=exc.code).with_metadata(
                duration_ms=_elapsed_ms(start),
                namespace=context.namespace,
                state=InvocationState.FAILED.value,
            )

        return await self.execute(command, args, context)

    async def route_argv(self, argv: Sequence[str], context: Optional[CommandContext] = None) -> CommandResult:
        """Route a pre-tokenised invocation: ``[namespace] name [tokens...]``."""
        tokens = list(argv)
        if not tokens:
            return CommandResult.failure("No command given", code="parse_error", state=InvocationState.FAILED.value)

        first, rest = tokens[0], tokens[1:]
        if rest and first in self.registry.list_namespaces() and self.registry.has(rest[0], first):
            name, rest = f"{first}:{rest[0]}", rest[1:]
        else:
            name = first

        options, positionals = parse_options(rest)
        return await self.route(name, {**options, POSITIONAL_KEY: positionals}, context)

    async def execute(
        self,
        command: Command,
        args: Optional[Mapping[str, Any]] = None,
        context: Optional[CommandContext] = None,
    ) -> CommandResult:
        """Run ``command`` through the middleware chain."""
        context = context or CommandContext()
        call_args: Dict[str, Any] = dict(args or {})
        call_args.setdefault(POSITIONAL_KEY, [])
        start = time.perf_counter()

        try:
            if command.args_validator is not None:
                outcome = _as_outcome(await command.args_validator(call_args, context))
                if not outcome.valid:
                    raise ValidationFailedError(
                        "Validation failed: " + "; ".join(outcome.errors or ["invalid arguments"]),
                        payload={"errors": outcome.errors},
                    )

            logger.debug(f"{command.key}: {InvocationState.MIDDLEWARE_PENDING.value}")
            result = await self._run_chain(command, call_args, context)
        except ServiceCtlError as exc:
            logger.debug(f"{command.key} failed: {exc}")
            result = CommandResult.failure(exc, code=exc.code)
        except Exception as exc:
            logger.error(f"Command {command.key} raised: {exc}", exc_info=True)
            result = CommandResult.failure(exc, code="handler_error")

        state = InvocationState.COMPLETED if result.success else InvocationState.FAILED
        duration_ms = _elapsed_ms(start)
        logger.debug(f"{command.key}: {state.value} in {duration_ms:.1f}ms")

        return result.with_metadata(
            duration_ms=duration_ms,
            namespace=command.namespace,
            state=state.value,
            output_format=_output_format(call_args, context),
        )

    async def _run_chain(self, command: Command, args: Dict[str, Any], context: CommandContext) -> CommandResult:
        stages = [m for m in self._middleware if m.enabled]

        async def dispatch(index: int) -> CommandResult:
            if index < len(stages):
                result = await stages[index](command, args, context, lambda: dispatch(index + 1))
                return CommandResult.coerce(result)

            logger.debug(f"{command.key}: {InvocationState.EXECUTING.value}")
            return CommandResult.coerce(await command.handler(args, context))

        return await dispatch(0)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def validate_command(
        self,
        name: str,
        context: Optional[CommandContext] = None,
        args: Optional[Mapping[str, Any]] = None,
    ) -> ValidationOutcome:
        """Check that a command exists and that its static requirements are met."""
        context = context or CommandContext()
        try:
            command = self.resolve_command(name, context.namespace)
        except ResolutionError as exc:
            return ValidationOutcome(valid=False, errors=[str(exc)])

        errors = []
        if command.requires_auth and not context.is_authenticated():
            errors.append(f"Command '{name}' requires authentication")
        if command.requires_workspace and context.workspace is None:
            errors.append(f"Command '{name}' requires a workspace")

        if args is not None:
            for option in command.options:
                present = any(
                    key in args
                    for key in (option.key, option.name, option.short.lstrip("-") if option.short else None)
                    if key
                )
                if option.required and not present:
                    errors.append(f"Missing required option {option.long}")
                value = args.get(option.key, args.get(option.name))
                if option.choices and value is not None and value not in option.choices:
                    errors.append(f"Invalid value for {option.long}: {value!r} (choose from {option.choices})")

        return ValidationOutcome(valid=not errors, errors=errors)

    def get_command_help(self, name: str, namespace: Optional[str] = None) -> Optional[str]:
        command = self.find_command(name, namespace)
        if command is None:
            return None

        lines = [f"{command.name} - {command.description}", ""]

        if command.usage:
            lines += [f"Usage: {command.usage}", ""]

        if command.args:
            lines.append("Arguments:")
            for arg in command.args:
                required = "(required)" if arg.required else "(optional)"
                lines.append(f"  {arg.name} {required} - {arg.description}")
            lines.append("")

        if command.options:
            lines.append("Options:")
            for option in command.options:
                flags = f"{option.short}, {option.long}" if option.short else option.long
                suffix = " (required)" if option.required else ""
                lines.append(f"  {flags} - {option.description}{suffix}")
            lines.append("")

        if command.examples:
            lines.append("Examples:")
            lines += [f"  {example}" for example in command.examples]

        return "\n".join(lines).rstrip() + "\n"

    def list_commands(self, namespace: Optional[str] = None) -> List[Command]:
        return self.registry.list_commands(namespace)

    def list_namespaces(self) -> List[str]:
        return self.registry.list_namespaces()

    def search_commands(self, keyword: str) -> List[Command]:
        return self.registry.search(keyword)

    def get_commands_by_category(self) -> Dict[str, List[Command]]:
        return self.registry.get_by_category()


def _as_outcome(value: Any) -> ValidationOutcome:
    if isinstance(value, ValidationOutcome):
        return value
    if isinstance(value, bool):
        return ValidationOutcome(valid=value)
    if isinstance(value, Mapping):
        return ValidationOutcome.model_validate(dict(value))
    return ValidationOutcome(valid=bool(value))


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


def _output_format(args: Mapping[str, Any], context: CommandContext) -> str:
    """``--output-format`` from the invocation, else the context default."""
    requested = args.get("output-format") or args.get("output_format")
    if isinstance(requested, str) and requested.lower() in OUTPUT_FORMATS:
        return requested.lower()
    return context.output_format
