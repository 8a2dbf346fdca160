"""Tests for keel.cli: command smoke tests via CliRunner.

Commands run against a file-backed SQLite database under ``tmp_path`` so
that consecutive invocations share the stored configuration.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from keel.cli.app import app

runner = CliRunner()


@pytest.fixture
def database(tmp_path):
    return f"sqlite:///{tmp_path / 'keel.db'}"


class TestRootCLI:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "keel-core" in result.stdout

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "config" in result.output
        assert "history" in result.output


class TestConfigCLI:
    def test_show_default(self):
        result = runner.invoke(app, ["config", "show", "--default"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert list(data) == ["server", "data", "auth", "media", "workflow"]

    def test_show_stored(self, database):
        result = runner.invoke(app, ["config", "show", "--database", database])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["version"] == 3
        assert data["auth"]["jwt"]["secret"] == ""

    def test_show_to_file(self, database, tmp_path):
        out = tmp_path / "config.json"
        result = runner.invoke(app, ["config", "show", "-d", database, "--out", str(out)])
        assert result.exit_code == 0
        assert "Wrote" in result.stdout
        assert json.loads(out.read_text())["version"] == 3

    def test_schema(self):
        result = runner.invoke(app, ["config", "schema"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["auth"]["title"] == "Authentication"


class TestSecretsCLI:
    def test_env_template(self, database):
        result = runner.invoke(app, ["secrets", "show", "-d", database, "--format", "env", "--template"])
        assert result.exit_code == 0
        assert "KEEL_TEST_SECRET_AUTH__JWT__SECRET=" in result.stdout.splitlines()

    def test_runtime_secret_from_env(self, database, monkeypatch):
        monkeypatch.setenv("KEEL_TEST_SECRET_AUTH__JWT__SECRET", "from-env")
        result = runner.invoke(app, ["secrets", "show", "-d", database])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"auth.jwt.secret": "from-env"}

    def test_unknown_format(self, database):
        result = runner.invoke(app, ["secrets", "show", "-d", database, "--format", "yaml"])
        assert result.exit_code == 1


class TestHistoryCLI:
    def test_lists_rows(self, database):
        runner.invoke(app, ["config", "show", "-d", database])
        result = runner.invoke(app, ["history", "-d", database])
        assert result.exit_code == 0
        assert "Configuration history" in result.stdout
        assert "config" in result.stdout

    def test_filter_without_rows(self, database):
        result = runner.invoke(app, ["history", "-d", database, "--type", "backup"])
        assert result.exit_code == 0
        assert "No history." in result.stdout

    def test_invalid_type(self, database):
        result = runner.invoke(app, ["history", "-d", database, "--type", "bogus"])
        assert result.exit_code == 1
