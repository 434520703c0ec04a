"""Tests for the CLI.

Commands run against a temporary database and storage directory with the
simulated strategy, so no network access is needed.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from web2desk import __version__
from web2desk.builds.models import Build
from web2desk.cli import app
from web2desk.db import create_all_tables, get_engine, get_session_factory
from web2desk.workflows.synth import synthesize_workflow

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path):
    """Point the CLI at a temporary database and storage directory."""
    env = {
        "W2D_DB_URL": f"sqlite:///{tmp_path}/test.db",
        "W2D_STORAGE_DIR": str(tmp_path / "files"),
        "W2D_DEFAULT_STRATEGY": "simulated",
        "W2D_SIMULATED_STEP_DELAY": "0",
    }
    with patch.dict(os.environ, env):
        yield tmp_path


def _insert_build(db_url: str, **kwargs) -> str:
    data = {
        "app_name": "Stored",
        "framework": "capacitor",
        "target_os": "android",
        "source_type": "url",
        "source_url": "https://example.com",
        "wrapper_mode": "webview",
        "strategy": "simulated",
    }
    data.update(kwargs)
    engine = get_engine(db_url)
    create_all_tables(engine)
    with get_session_factory(engine)() as session:
        build = Build(**data)
        session.add(build)
        session.commit()
        build_id = build.id
    engine.dispose()
    return build_id


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Web2Desk" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_subcommand_help(self) -> None:
        """Each command group has help."""
        for group in ("build", "artifacts", "workflow", "project"):
            result = runner.invoke(app, [group, "--help"])
            assert result.exit_code == 0, group


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self, cli_env) -> None:
        """config shows the sections without secrets."""
        with patch.dict(os.environ, {"W2D_GITHUB_TOKEN": "ghp_secret"}):
            result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Default strategy" in result.stdout
        assert "ghp_secret" not in result.stdout
        assert "(set)" in result.stdout

    def test_config_json(self, cli_env) -> None:
        """config --json is parseable and redacts secrets."""
        with patch.dict(os.environ, {"W2D_CALLBACK_TOKEN": "cb_secret"}):
            result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["default_strategy"] == "simulated"
        assert data["callback_token"] == "**********"


class TestBuildCommands:
    """Test build subcommands."""

    def test_create_json(self, cli_env) -> None:
        """build create --json prints the id and final status."""
        result = runner.invoke(
            app,
            ["build", "create", "My App", "-f", "electron", "-o", "linux",
             "--url", "https://example.com", "--json"],
        )

        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert set(data) == {"buildId", "status"}
        assert data["status"] == "completed"

    def test_create_watch_json(self, cli_env) -> None:
        """With --watch the final report is printed."""
        result = runner.invoke(
            app,
            ["build", "create", "My App", "-f", "tauri", "-o", "windows",
             "-u", "https://example.com", "--watch", "--json"],
        )

        assert result.exit_code == 0, result.stdout
        report = json.loads(result.stdout)
        assert report["status"] == "completed"
        assert len(report["artifacts"]) == 2

    def test_create_validation_error(self, cli_env) -> None:
        """Invalid requests exit 1 without creating a build."""
        result = runner.invoke(app, ["build", "create", "App", "-f", "electron", "-o", "ios"])
        assert result.exit_code == 1
        assert "validation" in result.stdout

        listed = runner.invoke(app, ["build", "list", "--json"])
        assert json.loads(listed.stdout) == []

    def test_create_dispatch_without_token(self, cli_env) -> None:
        """A CI strategy without a token is a configuration error."""
        result = runner.invoke(
            app,
            ["build", "create", "App", "-f", "electron", "-o", "windows",
             "-u", "https://example.com", "-s", "template-repo"],
        )
        assert result.exit_code == 1
        assert "configuration_error" in result.stdout

    def test_list_and_show(self, cli_env) -> None:
        """Created builds are listed and shown."""
        created = runner.invoke(
            app,
            ["build", "create", "Listed", "-f", "capacitor", "-o", "ios",
             "-u", "https://example.com", "--json"],
        )
        build_id = json.loads(created.stdout)["buildId"]

        listed = json.loads(runner.invoke(app, ["build", "list", "--json"]).stdout)
        assert [b["id"] for b in listed] == [build_id]

        filtered = runner.invoke(app, ["build", "list", "--framework", "tauri", "--json"])
        assert json.loads(filtered.stdout) == []

        shown = runner.invoke(app, ["build", "show", build_id, "--json"])
        assert json.loads(shown.stdout)["appName"] == "Listed"

        text = runner.invoke(app, ["build", "show", build_id])
        assert "capacitor/ios" in text.stdout

    def test_status(self, cli_env) -> None:
        """build status reports the stored build."""
        build_id = _insert_build(os.environ["W2D_DB_URL"])

        result = runner.invoke(app, ["build", "status", build_id, "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["status"] == "queued"

    def test_status_not_found(self, cli_env) -> None:
        """Unknown builds exit 1."""
        result = runner.invoke(app, ["build", "status", "missing"])
        assert result.exit_code == 1
        assert "Build not found" in result.stdout

    def test_watch_failed_build(self, cli_env) -> None:
        """Watching a failed build exits 1."""
        build_id = _insert_build(
            os.environ["W2D_DB_URL"], status="failed", error_message="Workflow failed: failure"
        )

        result = runner.invoke(app, ["build", "watch", build_id, "--json"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["errorMessage"] == "Workflow failed: failure"


class TestArtifactCommands:
    """Test artifacts subcommands."""

    def test_list(self, cli_env) -> None:
        """Archived installers are listed as JSON."""
        created = runner.invoke(
            app,
            ["build", "create", "Pkg", "-f", "electron", "-o", "macos",
             "-u", "https://example.com", "--json"],
        )
        build_id = json.loads(created.stdout)["buildId"]

        result = runner.invoke(app, ["artifacts", "list", build_id, "--json"])

        assert result.exit_code == 0
        names = sorted(a["fileName"] for a in json.loads(result.stdout))
        assert names == ["pkg.dmg", "pkg.pkg"]

    def test_list_not_found(self, cli_env) -> None:
        """Unknown builds exit 1."""
        result = runner.invoke(app, ["artifacts", "list", "missing"])
        assert result.exit_code == 1


class TestWorkflowCommands:
    """Test workflow subcommands."""

    def test_render_stdout(self) -> None:
        """The workflow YAML is printed."""
        result = runner.invoke(app, ["workflow", "render", "electron", "windows"])
        assert result.exit_code == 0
        assert yaml.safe_load(result.stdout)["name"] == "Build Electron Windows"

    def test_render_to_file(self, tmp_path: Path) -> None:
        """--output writes the exact workflow text."""
        target = tmp_path / "wf" / "build.yml"
        result = runner.invoke(
            app, ["workflow", "render", "react-native", "ios", "--output", str(target)]
        )
        assert result.exit_code == 0
        assert target.read_text(encoding="utf-8") == synthesize_workflow("react-native", "ios")

    def test_render_unsupported(self) -> None:
        """Unsupported pairs exit 1."""
        result = runner.invoke(app, ["workflow", "render", "tauri", "android"])
        assert result.exit_code == 1

    def test_ensure_requires_token(self, cli_env) -> None:
        """ensure needs a GitHub token."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("W2D_GITHUB_TOKEN", None)
            result = runner.invoke(app, ["workflow", "ensure", "electron", "linux"])
        assert result.exit_code == 1
        assert "W2D_GITHUB_TOKEN" in result.stdout


class TestProjectCommands:
    """Test project subcommands."""

    def test_generate_json(self, cli_env) -> None:
        """A project zip is generated into local storage."""
        result = runner.invoke(
            app,
            ["project", "generate", "Field Notes", "-f", "electron", "-o", "linux",
             "-u", "https://notes.example.com", "--json"],
        )

        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data["fileName"] == "field-notes-electron-linux.zip"
        stored = list((cli_env / "files" / "projects").glob("*.zip"))
        assert len(stored) == 1
        assert stored[0].stat().st_size == data["sizeBytes"]

    def test_generate_unsupported(self, cli_env) -> None:
        """Unsupported pairs exit 1."""
        result = runner.invoke(app, ["project", "generate", "X", "-f", "capacitor", "-o", "linux"])
        assert result.exit_code == 1
        assert "validation" in result.stdout
