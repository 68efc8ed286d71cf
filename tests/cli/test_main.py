"""Tests for the top-level CLI app."""

import pytest

from cosmos_tool.__about__ import __version__
from cosmos_tool.cli.main import app


@pytest.mark.unit
class TestCliHelp:
    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Cosmos Tool" in result.stdout

    def test_no_args_shows_help(self, runner):
        result = runner.invoke(app, [])
        assert "Usage" in result.output

    @pytest.mark.parametrize(
        "command", ["query", "run", "queries", "config", "databases", "containers"]
    )
    def test_commands_registered(self, runner, command):
        result = runner.invoke(app, ["--help"])
        assert command in result.stdout


@pytest.mark.unit
class TestCliVersion:
    @pytest.mark.parametrize("flag", ["--version", "-V"])
    def test_version(self, runner, flag):
        result = runner.invoke(app, [flag])
        assert result.exit_code == 0
        assert result.stdout.strip() == f"cosmos-tool {__version__}"


@pytest.mark.unit
class TestCliVerbose:
    def test_verbose_accepted(self, runner):
        result = runner.invoke(app, ["--verbose", "--version"])
        assert result.exit_code == 0

    def test_quiet_accepted(self, runner):
        result = runner.invoke(app, ["-q", "--version"])
        assert result.exit_code == 0


@pytest.mark.unit
class TestUnknownCommand:
    def test_unknown_command_fails(self, runner):
        result = runner.invoke(app, ["nonexistent"])
        assert result.exit_code != 0

    def test_invalid_format_rejected(self, runner):
        result = runner.invoke(app, ["--format", "xml", "databases"])
        assert result.exit_code == 2
