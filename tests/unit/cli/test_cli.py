"""Unit tests for the click entry point."""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from cli import main

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_secrets(monkeypatch):
    for name in ("RUSTBASE_USERNAME", "RUSTBASE_PASSWORD", "RUSTBASE_AUTH_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def mock_setup_logging():
    """Keep root handlers away from CliRunner's temporary streams."""
    with patch("cli.setup_logging") as mock:
        yield mock


class TestHelp:
    """Tests for --help and --version."""

    def test_help(self) -> None:
        """Help lists the connection flags."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Rustbase Shell" in result.output
        assert "--ca-file" in result.output
        assert "--execute" in result.output

    def test_transport_choices_are_validated(self) -> None:
        """Should reject an unknown transport with a usage error."""
        result = runner.invoke(main, ["--transport", "udp"])
        assert result.exit_code == 2


class TestLogLevel:
    """Tests for -v and -d."""

    @pytest.mark.parametrize(
        "flags,level",
        [([], None), (["-v"], "INFO"), (["-d"], "DEBUG"), (["-v", "-d"], "DEBUG")],
    )
    def test_flags_select_level(self, mock_setup_logging, flags, level) -> None:
        """Should map -v to INFO and -d to DEBUG, with -d winning."""
        with patch("rbshell.cli.shell.run_once", AsyncMock(return_value=0)):
            runner.invoke(main, flags + ["-e", 'get("k")'])
        mock_setup_logging.assert_called_once_with(level=level)


class TestExecute:
    """Tests for one-shot execution."""

    def test_execute_runs_one_line(self) -> None:
        """--execute hands the line to run_once and exits with its code."""
        run_once = AsyncMock(return_value=0)
        with patch("rbshell.cli.shell.run_once", run_once):
            result = runner.invoke(main, ["--host", "10.0.0.5", "-D", "app", "-e", 'get("k")'])

        assert result.exit_code == 0
        options, line = run_once.await_args.args
        assert line == 'get("k")'
        assert options.address == "10.0.0.5:23561"
        assert options.database == "app"

    def test_execute_failure_exit_code(self) -> None:
        """Should exit with the code returned by run_once."""
        with patch("rbshell.cli.shell.run_once", AsyncMock(return_value=1)):
            result = runner.invoke(main, ["-e", 'get("k")'])
        assert result.exit_code == 1

    def test_password_from_environment(self, monkeypatch) -> None:
        """Should read the SCRAM password from RUSTBASE_PASSWORD."""
        monkeypatch.setenv("RUSTBASE_PASSWORD", "pencil")
        run_once = AsyncMock(return_value=0)
        with patch("rbshell.cli.shell.run_once", run_once):
            runner.invoke(main, ["-u", "user", "-e", 'get("k")'])

        options = run_once.await_args.args[0]
        assert options.credentials_configured
        assert options.password.get_secret_value() == "pencil"


class TestInteractive:
    """Tests for the default interactive mode."""

    def test_starts_shell_with_configured_prompt(self) -> None:
        """Should start the REPL with the prompt from client.yaml."""
        run_shell = AsyncMock()
        with patch("rbshell.cli.shell.run_shell", run_shell):
            result = runner.invoke(main, [])

        assert result.exit_code == 0
        assert run_shell.await_args.kwargs["prompt"] == "RUSTBASE> "


class TestConfigurationErrors:
    """Inconsistent flags stop before any connection is attempted."""

    def test_tls_without_ca_file(self) -> None:
        """Should exit 1 without starting the shell when --tls lacks a CA file."""
        run_shell = AsyncMock()
        with patch("rbshell.cli.shell.run_shell", run_shell):
            result = runner.invoke(main, ["--tls"])

        assert result.exit_code == 1
        assert "CA file" in result.output
        run_shell.assert_not_awaited()

    def test_rpc_with_credentials(self) -> None:
        """Should exit 1 when credentials are combined with the rpc transport."""
        result = runner.invoke(main, ["-t", "rpc", "-u", "admin", "--password", "pw", "-e", 'get("k")'])
        assert result.exit_code == 1
        assert "stream transport" in result.output

    def test_invalid_logging_config(self, mock_setup_logging) -> None:
        """Should exit cleanly when logging.yaml fails validation."""
        mock_setup_logging.side_effect = ValueError("Invalid configuration in logging.yaml")
        result = runner.invoke(main, ["-e", 'get("k")'])
        assert result.exit_code == 1
        assert "logging.yaml" in result.output
