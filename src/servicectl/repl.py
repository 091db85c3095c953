"""Interactive shell.

Reads lines, hands them to the evaluator and renders results with rich. The
shell owns the built-in commands (help, history, sessions, ...) and passes
its ``handle_builtin`` to the evaluator.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .app import Application
from .core import BUILTIN_COMMANDS
from .errors import ParseError
from .models import CommandContext, CommandResult, ParsedCommand

logger = logging.getLogger(__name__)

_SESSION_NAME_RE = re.compile(r"^[\w.-]+$")


def render_result(console: Console, result: CommandResult) -> None:
    """Print a result: message, then data as text or JSON; failures in red.

    A result routed with ``--output-format json`` is printed whole as one JSON
    document instead.
    """
    if result.metadata.get("output_format") == "json":
        console.print_json(json.dumps(result.model_dump(), default=str))
        return

    if not result.success:
        console.print(f"[red]Error:[/red] {escape(result.error or result.message or 'Command failed')}")
        if result.error_code:
            console.print(f"[dim]code: {escape(result.error_code)}[/dim]")
        return

    if result.message:
        console.print(escape(result.message))

    if isinstance(result.data, str):
        console.print(escape(result.data))
    elif result.data is not None:
        console.print_json(data=result.data, default=str)


class Repl:
    """Interactive loop over one ``Application``."""

    def __init__(
        self,
        app: Application,
        console: Optional[Console] = None,
        input_func: Optional[Callable[[str], str]] = None,
    ):
        self.app = app
        self.console = console or Console()
        self._input = input_func or self.console.input
        self.history: List[str] = []
        self.sessions_dir = Path(app.config.sessions_dir).expanduser()
        self.running = False

    @property
    def context(self) -> CommandContext:
        return self.app.context

    def prompt(self) -> str:
        scope = f":{self.context.namespace}" if self.context.namespace else ""
        return f"{self.app.config.program_name}{scope}> "

    async def run(self) -> None:
        await self.app.start()
        self.console.print(
            f"[bold]{escape(self.app.config.program_name)}[/bold] interactive shell. "
            "Type 'help' for commands, 'exit' to leave."
        )

        self.running = True
        while self.running:
            try:
                line = await asyncio.to_thread(self._input, self.prompt())
            except (EOFError, KeyboardInterrupt):
                break
            await self.handle_line(line)

    async def handle_line(self, line: str) -> Optional[CommandResult]:
        if line.strip():
            self.history.append(line)

        result = await self.app.evaluator.evaluate_line(line, self.context, self.handle_builtin)
        if result is not None:
            for warning in result.metadata.get("warnings", []):
                self.console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
            render_result(self.console, result)
        return result

    async def handle_builtin(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        handler = getattr(self, f"_builtin_{parsed.command}", None)
        if handler is None:
            return CommandResult.failure(f"Unknown built-in: {parsed.command}", code="unknown_command")
        return await handler(parsed.args, context)

    # ------------------------------------------------------------------
    # Built-ins
    # ------------------------------------------------------------------
    async def _builtin_help(self, args: List[str], context: CommandContext) -> CommandResult:
        registry = self.app.registry
        if args:
            target = args[0]
            if target in registry.list_namespaces():
                table = Table(title=f"Commands in {target}")
                table.add_column("Command", style="cyan")
                table.add_column("Description")
                for command in registry.list_commands(target):
                    table.add_row(command.name, command.description)
                self.console.print(table)
                return CommandResult(success=True)

            help_text = self.app.router.get_command_help(target, context.namespace)
            if help_text is None:
                return CommandResult.failure(f"No help for '{target}'", code="unknown_command")
            return CommandResult(success=True, message=help_text)

        lines = [
            "Built-in commands: " + ", ".join(sorted(BUILTIN_COMMANDS)),
            "Switch namespace: use <namespace> (use .. to leave)",
            "Run a command: <namespace>.<command> [--option value ...]",
            "Namespaces: " + (", ".join(registry.list_namespaces()) or "none"),
        ]
        return CommandResult(success=True, message="\n".join(lines))

    async def _builtin_services(self, args: List[str], context: CommandContext) -> CommandResult:
        registry = self.app.registry
        return CommandResult(
            success=True,
            data={ns: len(registry.list_commands(ns)) for ns in registry.list_namespaces()},
        )

    async def _builtin_history(self, args: List[str], context: CommandContext) -> CommandResult:
        entries = self.history
        if args:
            try:
                count = int(args[0])
            except ValueError as exc:
                raise ParseError("Usage: history [n]", cause=exc) from exc
            if count <= 0:
                raise ParseError("history expects a positive number of entries")
            entries = entries[-count:]
        return CommandResult(success=True, data=list(entries))

    async def _builtin_clear(self, args: List[str], context: CommandContext) -> CommandResult:
        self.console.clear()
        return CommandResult(success=True)

    async def _builtin_save(self, args: List[str], context: CommandContext) -> CommandResult:
        path = self._session_path(args)
        if path is None:
            return CommandResult.failure("Usage: save <name>", code="parse_error")

        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "name": path.stem,
            "namespace": context.namespace,
            "history": self.history,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return CommandResult(success=True, message=f"Session saved: {path.stem}", data={"path": str(path)})

    async def _builtin_load(self, args: List[str], context: CommandContext) -> CommandResult:
        path = self._session_path(args)
        if path is None:
            return CommandResult.failure("Usage: load <name>", code="parse_error")
        if not path.exists():
            return CommandResult.failure(f"Session not found: {path.stem}", code="not_found")

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            return CommandResult.failure(f"Session {path.stem} is corrupted: {exc}", code="parse_error")

        self.history = list(payload.get("history") or [])
        namespace = payload.get("namespace")
        context.namespace = namespace if namespace in self.app.registry.list_namespaces() else None
        return CommandResult(
            success=True,
            message=f"Session loaded: {path.stem}",
            data={"namespace": context.namespace, "history": len(self.history)},
        )

    async def _builtin_sessions(self, args: List[str], context: CommandContext) -> CommandResult:
        if not self.sessions_dir.exists():
            return CommandResult(success=True, data=[])
        return CommandResult(success=True, data=sorted(p.stem for p in self.sessions_dir.glob("*.json")))

    async def _builtin_config(self, args: List[str], context: CommandContext) -> CommandResult:
        return CommandResult(success=True, data=self.app.config.model_dump())

    async def _builtin_exit(self, args: List[str], context: CommandContext) -> CommandResult:
        self.running = False
        return CommandResult(success=True, message="Goodbye")

    _builtin_quit = _builtin_exit

    def _session_path(self, args: List[str]) -> Optional[Path]:
        if not args or not _SESSION_NAME_RE.match(args[0]):
            return None
        return self.sessions_dir / f"{args[0]}.json"
