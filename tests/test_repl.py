"""Tests for the application bootstrap and the interactive shell."""

import io
from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from servicectl.app import Application, detect_workspace
from servicectl.config import Config, ToolSourceConfig
from servicectl.models import Command, CommandResult
from servicectl.repl import Repl, render_result
from servicectl.settings import AppSettings


def make_app(tmp_path, **overrides):
    config = Config(
        sessions_dir=str(tmp_path / "sessions"),
        tool_sources=[
            ToolSourceConfig(namespace="mcp", manifest=str(tmp_path / "missing.yaml"), use_fallback_tools=True)
        ],
        **overrides,
    )
    return Application(config, AppSettings(_env_file=None, token=None))


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def app(tmp_path):
    return make_app(tmp_path)


@pytest.fixture
def repl(app, console):
    return Repl(app, console=console)


def test_detect_workspace(tmp_path):
    project = tmp_path / "project"
    nested = project / "src" / "pkg"
    nested.mkdir(parents=True)
    (project / "servicectl.yaml").write_text("")

    workspace = detect_workspace(str(nested))
    assert workspace.root == str(project.resolve())
    assert workspace.name == "project"


class TestApplication:
    @pytest.mark.asyncio
    async def test_start_discovers_sources_once(self, app):
        outcomes = await app.start()

        assert [o.namespace for o in outcomes] == ["mcp"]
        assert app.registry.has("store-memory", "mcp")
        assert await app.start() is outcomes

    @pytest.mark.asyncio
    async def test_discovery_can_be_disabled(self, tmp_path):
        config = Config(tool_sources=[ToolSourceConfig(manifest=str(tmp_path / "x.yaml"), use_fallback_tools=True)])
        app = Application(config, AppSettings(_env_file=None, discovery_enabled=False))

        assert await app.start() == []
        assert app.registry.list_namespaces() == []
        assert len(app.registry.list_dynamic_sources()) == 1

    @pytest.mark.asyncio
    async def test_run_argv_status(self, app):
        result = await app.run_argv(["status"])

        assert result.success
        assert result.data["stats"]["dynamic_sources"] == 1

    @pytest.mark.asyncio
    async def test_token_setting_authenticates_context(self, tmp_path):
        app = Application(Config(), AppSettings(_env_file=None, token="secret"))
        assert app.context.is_authenticated()

    @pytest.mark.asyncio
    async def test_destructive_commands_are_confirmed(self, tmp_path):
        confirm = AsyncMock(return_value=False)
        app = Application(Config(), AppSettings(_env_file=None), confirm=confirm)

        async def handler(args, context):
            return "deleted"

        app.registry.register(Command(name="wipe", handler=handler, destructive=True))

        result = await app.run_argv(["wipe"])
        assert result.error_code == "cancelled"
        assert (await app.run_argv(["wipe", "--yes"])).data == "deleted"

    @pytest.mark.asyncio
    async def test_rate_limit_from_config(self, tmp_path):
        app = make_app(tmp_path, rate_limit_max=1)

        assert (await app.run_argv(["status"])).success
        assert (await app.run_argv(["status"])).error_code == "rate_limited"

    @pytest.mark.asyncio
    async def test_refresh_keeps_outcomes(self, app):
        await app.start()
        outcomes = await app.refresh("mcp")

        assert outcomes[0].success
        assert [o.namespace for o in app.source_outcomes] == ["mcp"]


class TestRepl:
    @pytest.mark.asyncio
    async def test_prompt_follows_namespace(self, repl):
        await repl.app.start()
        assert repl.prompt() == "servicectl> "

        await repl.handle_line("use mcp")
        assert repl.prompt() == "servicectl:mcp> "

    @pytest.mark.asyncio
    async def test_history(self, repl):
        await repl.handle_line("status")
        await repl.handle_line("   ")
        await repl.handle_line("services")

        result = await repl.handle_line("history 2")
        assert result.data == ["services", "history 2"]

        assert (await repl.handle_line("history x")).error_code == "parse_error"
        assert (await repl.handle_line("history 0")).error_code == "parse_error"
        assert (await repl.handle_line("history -3")).error_code == "parse_error"

    @pytest.mark.asyncio
    async def test_services(self, repl):
        await repl.app.start()
        result = await repl.handle_line("services")
        assert result.data == {"mcp": 2}

    @pytest.mark.asyncio
    async def test_help(self, repl, console):
        await repl.app.start()

        general = await repl.handle_line("help")
        assert "Namespaces: mcp" in general.message

        command_help = await repl.handle_line("help mcp:recall-memory")
        assert command_help.message.startswith("recall-memory - Recall memories by query")

        await repl.handle_line("help mcp")
        assert "Commands in mcp" in console.file.getvalue()

        assert (await repl.handle_line("help nope")).error_code == "unknown_command"

    @pytest.mark.asyncio
    async def test_save_and_load_session(self, repl, app, console):
        await app.start()
        await repl.handle_line("use mcp")
        await repl.handle_line("status")

        saved = await repl.handle_line("save work")
        assert saved.success
        assert (await repl.handle_line("sessions")).data == ["work"]

        fresh = Repl(app, console=console)
        app.context.namespace = None
        loaded = await fresh.handle_line("load work")

        assert loaded.data == {"namespace": "mcp", "history": 3}
        assert app.context.namespace == "mcp"

    @pytest.mark.asyncio
    async def test_session_names_are_checked(self, repl):
        assert (await repl.handle_line("save ../escape")).error_code == "parse_error"
        assert (await repl.handle_line("load missing")).error_code == "not_found"

    @pytest.mark.asyncio
    async def test_exit(self, repl):
        repl.running = True
        await repl.handle_line("quit")
        assert repl.running is False

    @pytest.mark.asyncio
    async def test_run_loop_until_eof(self, app, console):
        lines = iter(["status", "exit", "never reached"])
        repl = Repl(app, console=console, input_func=lambda prompt: next(lines))

        await repl.run()

        assert repl.history == ["status", "exit"]

    @pytest.mark.asyncio
    async def test_warnings_are_printed(self, repl, console):
        await repl.handle_line('status "unterminated')
        assert "warning:" in console.file.getvalue()


def test_render_result(console):
    render_result(console, CommandResult.failure("boom [x]", code="handler_error"))
    render_result(console, CommandResult(success=True, message="done", data={"a": 1}))

    output = console.file.getvalue()
    assert "Error: boom [x]" in output
    assert "code: handler_error" in output
    assert '"a": 1' in output


def test_render_result_json_output(console):
    result = CommandResult(success=True, message="done", data={"a": 1}, metadata={"output_format": "json"})
    render_result(console, result)

    output = console.file.getvalue()
    assert '"success": true' in output
    assert '"message": "done"' in output
