"""Tests for MCP tools and their error codes.

These tests verify:
- MCP tools return correct structured responses
- Error codes are stable and match the core exception codes
- Status checks are safe to repeat
"""

import os
from unittest.mock import patch

import pytest
import yaml

from web2desk.db import create_all_tables, get_engine


@pytest.fixture(autouse=True)
def isolated_env(tmp_path):
    """Point every test at a fresh database and storage directory."""
    db_url = f"sqlite:///{tmp_path}/mcp.db"
    env = {
        "W2D_DB_URL": db_url,
        "W2D_STORAGE_DIR": str(tmp_path / "files"),
        "W2D_DEFAULT_STRATEGY": "simulated",
        "W2D_SIMULATED_STEP_DELAY": "0",
    }
    with patch.dict(os.environ, env):
        engine = get_engine()
        create_all_tables(engine)
        engine.dispose()
        yield tmp_path


@pytest.fixture
def created_build():
    """A completed simulated build."""
    from mcp_server.server import create_build

    result = create_build(
        app_name="Field Notes",
        framework="electron",
        target_os="windows",
        source_url="https://notes.example.com",
    )
    assert result.success is True
    return result.build_id


class TestCreateBuild:
    """Tests for create_build MCP tool."""

    def test_simulated_build(self):
        """A simulated build completes synchronously."""
        from mcp_server.server import create_build

        result = create_build(
            app_name="My App",
            framework="tauri",
            target_os="macos",
            source_url="https://example.com",
        )

        assert result.success is True
        assert result.build_id
        assert result.status == "completed"
        assert result.error is None

    def test_schema_error(self):
        """Unknown enum values are validation errors."""
        from mcp_server.errors import VALIDATION_ERROR
        from mcp_server.server import create_build

        result = create_build(app_name="X", framework="flutter", target_os="android")

        assert result.success is False
        assert result.build_id is None
        assert result.error["code"] == VALIDATION_ERROR
        assert result.error["details"]["errors"]

    def test_request_validation_error(self):
        """Service validation errors carry the field."""
        from mcp_server.errors import VALIDATION_ERROR
        from mcp_server.server import create_build

        result = create_build(app_name="X", framework="electron", target_os="ios", source_url="https://x.io")

        assert result.success is False
        assert result.error["code"] == VALIDATION_ERROR
        assert result.error["details"]["field"] == "targetOs"

    def test_configuration_error(self):
        """Dispatch strategies without a token report configuration_error."""
        from mcp_server.errors import CONFIGURATION_ERROR
        from mcp_server.server import create_build

        os.environ.pop("W2D_GITHUB_TOKEN", None)
        result = create_build(
            app_name="X",
            framework="electron",
            target_os="linux",
            source_url="https://x.io",
            strategy="template-repo",
        )

        assert result.success is False
        assert result.build_id is None
        assert result.error["code"] == CONFIGURATION_ERROR

    def test_project_strategy(self):
        """The project strategy stores the zip as the only artifact."""
        from mcp_server.server import create_build, get_build

        result = create_build(
            app_name="Zipped",
            framework="capacitor",
            target_os="android",
            source_url="https://x.io",
            strategy="project",
        )

        assert result.status == "completed"
        details = get_build(build_id=result.build_id)
        assert [a.file_type for a in details.artifacts] == ["zip"]


class TestCheckBuildStatus:
    """Tests for check_build_status MCP tool."""

    def test_not_found(self):
        """Unknown builds return build_not_found."""
        from mcp_server.errors import BUILD_NOT_FOUND
        from mcp_server.server import check_build_status

        result = check_build_status(build_id="missing")

        assert result.success is False
        assert result.report is None
        assert result.error["code"] == BUILD_NOT_FOUND

    def test_repeatable(self, created_build):
        """Repeated checks return the same report."""
        from mcp_server.server import check_build_status

        first = check_build_status(build_id=created_build)
        second = check_build_status(build_id=created_build)

        assert first.success is True
        assert first.report.status.value == "completed"
        assert [a.file_name for a in first.report.artifacts] == [
            a.file_name for a in second.report.artifacts
        ]


class TestGetAndListBuilds:
    """Tests for get_build and list_builds MCP tools."""

    def test_get_build(self, created_build):
        """The build and its artifacts are returned."""
        from mcp_server.server import get_build

        result = get_build(build_id=created_build)

        assert result.success is True
        assert result.build.app_name == "Field Notes"
        assert sorted(a.file_type for a in result.artifacts) == ["exe", "msi"]

    def test_get_build_not_found(self):
        """Unknown builds return build_not_found."""
        from mcp_server.errors import BUILD_NOT_FOUND
        from mcp_server.server import get_build

        result = get_build(build_id="missing")
        assert result.error["code"] == BUILD_NOT_FOUND
        assert result.error["details"] == {"build_id": "missing"}

    def test_list_builds(self, created_build):
        """Filters narrow the listing."""
        from mcp_server.server import list_builds

        assert list_builds().total == 1
        assert list_builds(status="completed", framework="electron").total == 1
        assert list_builds(target_os="android").total == 0

    def test_list_builds_invalid_filter(self):
        """Invalid filter values are validation errors."""
        from mcp_server.errors import VALIDATION_ERROR
        from mcp_server.server import list_builds

        result = list_builds(status="done")

        assert result.success is False
        assert result.error["code"] == VALIDATION_ERROR


class TestProjectAndWorkflowTools:
    """Tests for generate_project and render_workflow MCP tools."""

    def test_generate_project(self, isolated_env):
        """The project is stored in local storage."""
        from mcp_server.server import generate_project

        result = generate_project(
            app_name="Notes", framework="react-native", target_os="ios", source_url="https://x.io"
        )

        assert result.success is True
        assert result.file_name == "notes-react-native-ios.zip"
        assert list((isolated_env / "files" / "projects").glob("*.zip"))

    def test_generate_project_invalid(self):
        """Unsupported pairs are validation errors."""
        from mcp_server.errors import VALIDATION_ERROR
        from mcp_server.server import generate_project

        result = generate_project(app_name="X", framework="tauri", target_os="android")
        assert result.error["code"] == VALIDATION_ERROR

    def test_render_workflow(self):
        """The workflow YAML and its file name are returned."""
        from mcp_server.server import render_workflow

        result = render_workflow(framework="capacitor", target_os="ios")

        assert result.success is True
        assert result.file_name == "build-capacitor-ios.yml"
        assert yaml.safe_load(result.content)["jobs"]["build"]["runs-on"] == "macos-latest"

    def test_render_workflow_invalid(self):
        """Unknown or unsupported values are validation errors."""
        from mcp_server.errors import VALIDATION_ERROR
        from mcp_server.server import render_workflow

        assert render_workflow(framework="flutter", target_os="ios").error["code"] == VALIDATION_ERROR
        assert render_workflow(framework="electron", target_os="ios").error["code"] == VALIDATION_ERROR


class TestErrorCodes:
    """Tests for error helpers."""

    def test_from_exception_uses_code(self):
        """Core exception codes and attributes are carried over."""
        from mcp_server.errors import DISPATCH_FAILED, from_exception
        from web2desk.builds.service import DispatchError

        error = from_exception(DispatchError("rejected", status_code=422, body="bad"))

        assert error.to_dict() == {
            "code": DISPATCH_FAILED,
            "message": "rejected",
            "details": {"status_code": 422},
        }

    def test_from_exception_without_code(self):
        """Plain exceptions map to internal_error."""
        from mcp_server.errors import INTERNAL_ERROR, from_exception

        assert from_exception(RuntimeError("boom")).code == INTERNAL_ERROR

    def test_error_to_dict_without_details(self):
        """details is omitted when not set."""
        from mcp_server.errors import make_error

        assert make_error("x", "y").to_dict() == {"code": "x", "message": "y"}
