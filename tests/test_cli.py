"""CLI smoke tests — command wiring only, no server or database."""

from click.testing import CliRunner

from rescuetrack.cli.main import main


def test_help_lists_commands():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    for command in ("serve", "init-db", "sweep-tokens", "stats"):
        assert command in result.output


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "rescuetrack" in result.output


def test_stats_unreachable_api(monkeypatch):
    monkeypatch.setenv("RESCUETRACK_API_URL", "http://127.0.0.1:9")
    result = CliRunner().invoke(main, ["stats"])
    assert result.exit_code == 1
