"""Tests for FastAPI web API.

Uses TestClient to test all endpoints.
"""

import uuid

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from web2desk import __version__
from web2desk.builds.models import Build
from web2desk.builds.strategies import get_strategy
from web2desk.config import Settings
from web2desk.db import Base
from web.deps import get_app_settings, get_strategy_resolver
from web.routers import builds, config, health, projects, workflows

CALLBACK_TOKEN = "callback-secret"


def create_test_app(settings: Settings) -> FastAPI:
    """Create a minimal FastAPI app for testing without lifespan."""
    application = FastAPI(title="Web2Desk API", version=__version__)

    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])
    application.include_router(projects.router, prefix="/projects", tags=["projects"])
    application.include_router(workflows.router, prefix="/workflows", tags=["workflows"])
    application.dependency_overrides[get_app_settings] = lambda: settings

    return application


@pytest.fixture
def settings(tmp_path):
    """Settings using the simulated strategy and local storage."""
    return Settings(
        storage_dir=tmp_path / "files",
        default_strategy="simulated",
        simulated_step_delay=0,
        github_token=None,
        callback_token=CALLBACK_TOKEN,
    )


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a fresh SQLite database file.

    Background tasks run in another thread, so an in-memory database
    cannot be shared.
    """
    db_file = tmp_path / f"test_{uuid.uuid4().hex[:8]}.db"
    engine = create_engine(f"sqlite:///{db_file}", echo=False)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def client(settings, session_factory):
    """Create a test client with a fresh database."""
    app = create_test_app(settings)
    app.state.session_factory = session_factory

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def running_build(session_factory):
    """A template-repo build waiting on its CI run."""
    with session_factory() as session:
        build = Build(
            app_name="Running",
            framework="tauri",
            target_os="linux",
            source_type="url",
            source_url="https://example.com",
            wrapper_mode="webview",
            strategy="template-repo",
            status="building",
            ci_repository="acme/builder",
        )
        session.add(build)
        session.commit()
        return build.id


def build_payload(**kwargs):
    """Sample build request body."""
    data = {
        "appName": "My App",
        "sourceUrl": "https://example.com",
        "framework": "electron",
        "targetOs": "windows",
    }
    data.update(kwargs)
    return data


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client):
        """Health reports ok with the version."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_root(self, client):
        """Root names the API."""
        assert client.get("/").json()["name"] == "Web2Desk API"


class TestConfig:
    """Tests for the config endpoint."""

    def test_secrets_redacted(self, client):
        """Secret settings are never returned in clear text."""
        data = client.get("/config").json()
        assert data["default_strategy"] == "simulated"
        assert data["callback_token"] == "**********"
        assert CALLBACK_TOKEN not in str(data)


class TestBuilds:
    """Tests for build endpoints."""

    def test_create_build(self, client):
        """A build is accepted and runs to completion in the background."""
        response = client.post("/builds", json=build_payload())

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "queued"

        build = client.get(f"/builds/{body['buildId']}").json()
        assert build["status"] == "completed"
        assert build["appName"] == "My App"
        assert build["strategy"] == "simulated"
        assert build["artifactCount"] == 2

    def test_create_build_validation(self, client):
        """Invalid requests return 400 with the offending field."""
        response = client.post("/builds", json=build_payload(appName="  "))

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "validation"
        assert detail["field"] == "appName"
        assert client.get("/builds").json() == []

    def test_create_build_unsupported_os(self, client):
        """Desktop frameworks cannot target mobile platforms."""
        response = client.post("/builds", json=build_payload(targetOs="ios"))
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "targetOs"

    def test_create_build_unknown_framework(self, client):
        """Unknown enum values are rejected by the schema."""
        response = client.post("/builds", json=build_payload(framework="flutter"))
        assert response.status_code == 422

    def test_create_build_without_token(self, client):
        """Dispatch strategies need a GitHub token."""
        response = client.post("/builds", json=build_payload(strategy="template-repo"))

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "configuration_error"

    def test_list_builds(self, client, running_build):
        """Builds can be filtered by status, framework and OS."""
        client.post("/builds", json=build_payload())

        assert len(client.get("/builds").json()) == 2
        completed = client.get("/builds", params={"status": "completed"}).json()
        assert [b["appName"] for b in completed] == ["My App"]
        tauri = client.get("/builds", params={"framework": "tauri", "targetOs": "linux"}).json()
        assert [b["id"] for b in tauri] == [running_build]

    def test_get_build_not_found(self, client):
        """Unknown builds return 404."""
        response = client.get("/builds/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "build_not_found"

    def test_artifacts(self, client):
        """Archived installers are listed with download URLs."""
        build_id = client.post("/builds", json=build_payload(targetOs="linux")).json()["buildId"]

        artifacts = client.get(f"/builds/{build_id}/artifacts").json()

        assert sorted(a["fileType"] for a in artifacts) == ["appimage", "deb"]
        assert all(a["downloadUrl"].endswith(a["fileName"]) for a in artifacts)

    def test_status_get_and_post(self, client):
        """Status checks accept GET and POST."""
        build_id = client.post("/builds", json=build_payload()).json()["buildId"]

        for method in ("GET", "POST"):
            response = client.request(method, f"/builds/{build_id}/status")
            assert response.status_code == 200
            report = response.json()
            assert report["buildId"] == build_id
            assert report["status"] == "completed"
            assert len(report["artifacts"]) == 2

    def test_status_without_token(self, client, running_build):
        """CI builds report a message instead of failing without a token."""
        report = client.get(f"/builds/{running_build}/status").json()

        assert report["status"] == "building"
        assert report["message"] == "W2D_GITHUB_TOKEN is not configured"

    def test_status_not_found(self, client):
        """Status checks for unknown builds return 404."""
        assert client.post("/builds/missing/status").status_code == 404

    def test_strategies_are_closed(self, client, settings):
        """Strategies built for a request release their clients afterwards."""
        resolved = []

        def resolve(kind):
            strategy = get_strategy(kind, settings=settings)
            resolved.append(strategy)
            return strategy

        client.app.dependency_overrides[get_strategy_resolver] = lambda: resolve
        build_id = client.post("/builds", json=build_payload()).json()["buildId"]
        client.get(f"/builds/{build_id}/status")

        assert len(resolved) == 2
        assert all(s.owned == () for s in resolved)


class TestCallback:
    """Tests for the CI completion callback."""

    def test_callback_completes_build(self, client, running_build):
        """An authenticated report completes the build."""
        response = client.post(
            f"/builds/{running_build}/callback",
            json={"status": "completed", "runId": 77},
            headers={"Authorization": f"Bearer {CALLBACK_TOKEN}"},
        )

        assert response.status_code == 200
        assert response.json() == {"buildId": running_build, "status": "completed"}
        build = client.get(f"/builds/{running_build}").json()
        assert build["ciRunId"] == 77
        assert build["completedAt"] is not None

    def test_callback_failure_conclusion(self, client, running_build):
        """A failure report keeps the job conclusion in the error message."""
        client.post(
            f"/builds/{running_build}/callback",
            json={"status": "failed", "runId": 77, "conclusion": "cancelled"},
            headers={"Authorization": f"Bearer {CALLBACK_TOKEN}"},
        )

        build = client.get(f"/builds/{running_build}").json()
        assert build["status"] == "failed"
        assert build["errorMessage"] == "Workflow failed: cancelled"

    def test_callback_rejects_bad_token(self, client, running_build):
        """Wrong or missing tokens are rejected."""
        for headers in ({"Authorization": "Bearer wrong"}, {}):
            response = client.post(
                f"/builds/{running_build}/callback", json={"status": "failed"}, headers=headers
            )
            assert response.status_code == 401
        assert client.get(f"/builds/{running_build}").json()["status"] == "building"

    def test_callback_non_terminal(self, client, running_build):
        """Only terminal statuses can be reported."""
        response = client.post(
            f"/builds/{running_build}/callback",
            json={"status": "building"},
            headers={"Authorization": f"Bearer {CALLBACK_TOKEN}"},
        )
        assert response.status_code == 400

    def test_callback_disabled(self, settings, session_factory, running_build):
        """Without a configured token callbacks are unavailable."""
        app = create_test_app(settings.model_copy(update={"callback_token": None}))
        app.state.session_factory = session_factory

        with TestClient(app) as test_client:
            response = test_client.post(
                f"/builds/{running_build}/callback", json={"status": "completed"}
            )
        assert response.status_code == 503


class TestProjects:
    """Tests for project generation."""

    def test_generate_project(self, client, settings):
        """The project zip is stored and its URL returned."""
        response = client.post(
            "/projects",
            json={
                "appName": "Field Notes",
                "sourceUrl": "https://notes.example.com",
                "framework": "capacitor",
                "targetOs": "android",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["fileName"] == "field-notes-capacitor-android.zip"
        assert body["targetOs"] == "android"
        path = body["downloadUrl"].removeprefix(settings.public_base_url + "/")
        assert (settings.storage_dir / path).stat().st_size == body["sizeBytes"]

    def test_generate_project_unsupported(self, client):
        """Unsupported pairs return 400."""
        response = client.post(
            "/projects",
            json={"appName": "X", "framework": "tauri", "targetOs": "ios"},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation"


class TestWorkflows:
    """Tests for workflow rendering."""

    def test_render(self, client):
        """The workflow is returned as YAML with a file name."""
        response = client.get("/workflows/react-native/android")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-yaml")
        assert 'filename="build-rn-android.yml"' in response.headers["content-disposition"]
        assert "workflow_dispatch" in yaml.safe_load(response.text)["on"]

    def test_render_unsupported(self, client):
        """Unsupported pairs return 400."""
        assert client.get("/workflows/electron/ios").status_code == 400
