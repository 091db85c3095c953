"""servicectl command line entry point."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .app import Application
from .errors import ConfigError
from .logging_config import configure_logging
from .models import Command
from .repl import Repl, render_result
from .settings import AppSettings

console = Console()


class CliError(click.ClickException):
    """CLI-visible error with an optional hint line."""

    hint: Optional[str] = None

    def __init__(self, message: str, hint: Optional[str] = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint

    def show(self, file=None) -> None:
        click.echo(click.style(f"Error: {self.message}", fg="red", bold=True), err=True, file=file)
        if self.hint:
            click.echo(click.style(self.hint, fg="yellow"), err=True, file=file)


class ConfigurationProblem(CliError):
    def __init__(self, details: str):
        super().__init__(
            f"Configuration problem: {details}",
            f"Check {click.style('~/.servicectl/servicectl.yaml', fg='cyan')} or pass --config.",
        )


class CommandFailed(CliError):
    def __init__(self, message: str, code: Optional[str] = None):
        hint = None
        if code in ("unknown_command", "ambiguous_command"):
            hint = f"Run {click.style('servicectl commands list', fg='cyan')} to see available commands."
        elif code == "auth_required":
            hint = "Set SERVICECTL_TOKEN and try again."
        super().__init__(message, hint)


async def _confirm(message: str) -> bool:
    try:
        return await asyncio.to_thread(click.confirm, message, default=False)
    except click.Abort:
        return False


def _commands_table(commands: List[Command], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Command", style="cyan")
    table.add_column("Namespace", style="magenta")
    table.add_column("Category")
    table.add_column("Description")
    for command in sorted(commands, key=lambda c: c.key):
        table.add_row(command.name, command.namespace or "-", command.category or "General", command.description)
    return table


def _app(ctx: click.Context) -> Application:
    return ctx.find_object(Application)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="servicectl")
@click.option("--config", "config_path", default=None, help="Path to YAML config")
@click.option("--log-level", default=None, help="Log level (override env)")
@click.option("--log-format", default=None, type=click.Choice(["json", "text"]))
@click.option("--verbose", "-v", is_flag=True, default=False, help="Verbose command logging")
@click.pass_context
def main(ctx, config_path, log_level, log_format, verbose) -> None:
    """servicectl - one command line for many services."""
    settings = AppSettings()
    configure_logging(log_level or settings.log_level, log_format or settings.log_format)

    if config_path:
        settings = settings.model_copy(update={"config_path": config_path})

    try:
        config = settings.load_config()
    except ConfigError as exc:
        raise ConfigurationProblem(str(exc)) from exc

    ctx.obj = Application(config, settings, confirm=_confirm, verbose=verbose)


@main.command(
    "run",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("argv", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run_cmd(ctx, argv) -> None:
    """Run a command: [NAMESPACE] NAME [--option value ...]."""
    app = _app(ctx)
    result = asyncio.run(app.run_argv(list(argv)))
    render_result(console, result)
    if not result.success:
        raise CommandFailed(result.error or "Command failed", result.error_code)


@main.command("repl")
@click.pass_context
def repl_cmd(ctx) -> None:
    """Start the interactive shell."""
    asyncio.run(Repl(_app(ctx), console=console).run())


@main.group("commands")
def commands_group() -> None:
    """Inspect registered commands."""


@commands_group.command("list")
@click.option("--namespace", "-n", default=None, help="Only commands in this namespace")
@click.pass_context
def list_cmd(ctx, namespace) -> None:
    app = _app(ctx)
    asyncio.run(app.start())
    commands = app.registry.list_commands(namespace)
    if not commands:
        click.echo("No commands registered.")
        return
    console.print(_commands_table(commands, "Commands"))


@commands_group.command("search")
@click.argument("keyword")
@click.pass_context
def search_cmd(ctx, keyword) -> None:
    app = _app(ctx)
    asyncio.run(app.start())
    matches = app.registry.search(keyword)
    if not matches:
        click.echo(f"No commands match '{keyword}'.")
        return
    console.print(_commands_table(matches, f"Commands matching '{keyword}'"))


@commands_group.command("namespaces")
@click.pass_context
def namespaces_cmd(ctx) -> None:
    app = _app(ctx)
    asyncio.run(app.start())
    namespaces = app.registry.list_namespaces()
    if not namespaces:
        click.echo("No namespaces discovered.")
        return
    table = Table(title="Namespaces")
    table.add_column("Namespace", style="magenta")
    table.add_column("Commands", justify="right")
    for namespace in namespaces:
        table.add_row(namespace, str(len(app.registry.list_commands(namespace))))
    console.print(table)


@commands_group.command("help")
@click.argument("name")
@click.pass_context
def help_cmd(ctx, name) -> None:
    """Show usage, options and examples for one command."""
    app = _app(ctx)
    asyncio.run(app.start())
    help_text = app.router.get_command_help(name)
    if help_text is None:
        raise CommandFailed(f"Command '{name}' not found", "unknown_command")
    click.echo(help_text)


if __name__ == "__main__":
    main()
