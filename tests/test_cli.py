"""CLI tests."""

from typer.testing import CliRunner

from activity_ledger_server import __version__
from activity_ledger_server.cli import app

runner = CliRunner()


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.output


def test_clear_ledger_needs_confirmation() -> None:
    result = runner.invoke(app, ["clear-ledger"], input="n\n")
    assert result.exit_code != 0
    assert "Deleted" not in result.output
