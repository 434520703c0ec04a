"""Build strategies.

A strategy decides how a created build turns into installers:

- template-repo: dispatch a shared workflow in a fixed template repository,
  creating the workflow file on first use
- user-repo: dispatch a workflow in a repository named by the request
- simulated: step through the states on a timer and store placeholder files
- project: generate the wrapper project zip instead of running CI
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol, Self

from sqlalchemy.orm import Session

from web2desk.builds.archiver import content_type_for, record_artifact
from web2desk.builds.events import BuildEventBus, default_bus
from web2desk.builds.models import Build
from web2desk.builds.reconcile import reconcile_build
from web2desk.builds.schemas import BuildRequest, BuildStatusReport
from web2desk.builds.service import (
    BuildServiceError,
    ConfigurationError,
    DispatchError,
    WorkflowError,
    build_status_report,
    set_build_status,
)
from web2desk.ci.github import CIRequestError, GitHubClient
from web2desk.config import Settings, get_settings
from web2desk.projects.service import ProjectGenerationError, generate_project
from web2desk.projects.templates import build_project_config, sanitize_app_name
from web2desk.storage import BlobStore, StorageError, get_blob_store
from web2desk.types import (
    OUTPUT_FORMATS,
    ArtifactInfo,
    BuildStatus,
    Framework,
    StrategyKind,
    TargetOS,
    WrapperMode,
)
from web2desk.workflows.synth import synthesize_workflow, workflow_file_name

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], None]


class BuildStrategy(Protocol):
    """Interface shared by all build strategies."""

    kind: StrategyKind
    initial_status: BuildStatus
    bus: BuildEventBus

    def check_configuration(self) -> None:
        """Raise ConfigurationError if the strategy cannot run."""
        ...

    def target_repository(self, request: BuildRequest) -> str | None:
        """Return the CI repository a request will run in, if any."""
        ...

    def submit(self, session: Session, build: Build) -> None:
        """Start the build."""
        ...

    def poll(self, session: Session, build: Build) -> BuildStatusReport:
        """Reconcile and report the build's status."""
        ...

    def close(self) -> None:
        """Release the clients the strategy owns."""
        ...

    def __enter__(self) -> Self: ...

    def __exit__(self, *exc_info: object) -> None: ...


def ensure_workflow(
    client: GitHubClient,
    repo: str,
    framework: Framework,
    target_os: TargetOS,
    ref: str,
    create_missing: bool = True,
    grace_period: float = 0.0,
    sleep: Sleeper = time.sleep,
) -> bool:
    """Make sure the workflow for a framework and OS exists in a repository.

    Args:
        client: GitHub client.
        repo: Repository as owner/repo.
        framework: Packaging framework.
        target_os: Target OS.
        ref: Branch to check and write.
        create_missing: Write the synthesized workflow when absent.
        grace_period: Seconds to wait after creating the file.
        sleep: Sleep function.

    Returns:
        True if the workflow was created, False if it already existed.

    Raises:
        WorkflowError: If the workflow is absent and cannot or may not be
            created.
    """
    name = workflow_file_name(framework, target_os)
    path = f".github/workflows/{name}"
    try:
        if client.get_file(repo, path, ref=ref) is not None:
            logger.debug("Workflow %s present in %s", name, repo)
            return False
        if not create_missing:
            raise WorkflowError(f"Workflow {name} not found in {repo}")
        client.put_file(
            repo,
            path,
            synthesize_workflow(framework, target_os),
            message=f"Add {name} build workflow",
            branch=ref,
        )
    except CIRequestError as e:
        raise WorkflowError(f"Failed to create workflow {name} in {repo}: {e}") from e

    logger.info("Created workflow %s in %s", name, repo)
    if grace_period > 0:
        sleep(grace_period)
    return True


class _ResourceOwner:
    """Closes the clients handed to a strategy by get_strategy.

    Clients injected by the caller are not owned and stay open.
    """

    owned: tuple[GitHubClient | BlobStore, ...] = ()

    def close(self) -> None:
        owned, self.owned = self.owned, ()
        for resource in owned:
            resource.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class _DispatchStrategy(_ResourceOwner):
    """Common behaviour of the CI dispatch strategies."""

    kind: StrategyKind
    initial_status: BuildStatus

    def __init__(
        self,
        settings: Settings,
        client: GitHubClient | None,
        store: BlobStore,
        bus: BuildEventBus | None = None,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store
        self.bus = bus or default_bus
        self.sleep = sleep

    @property
    def create_missing_workflows(self) -> bool:
        raise NotImplementedError

    def check_configuration(self) -> None:
        if self.client is None:
            raise ConfigurationError("W2D_GITHUB_TOKEN is not configured")

    def dispatch_inputs(self, build: Build) -> dict[str, str]:
        raise NotImplementedError

    def _client(self) -> GitHubClient:
        self.check_configuration()
        assert self.client is not None
        return self.client

    def _resolve_ref(self, client: GitHubClient, repo: str) -> str:
        try:
            return client.get_default_branch(repo)
        except CIRequestError as e:
            logger.warning("Could not read default branch of %s, using main: %s", repo, e)
            return "main"

    def submit(self, session: Session, build: Build) -> None:
        """Ensure the workflow exists, dispatch it and move to building.

        Raises:
            ConfigurationError: If no GitHub token is configured.
            WorkflowError: If the workflow cannot be ensured.
            DispatchError: If the dispatch is rejected.
        """
        client = self._client()
        repo = build.ci_repository
        if not repo:
            raise ConfigurationError(f"Build {build.id} has no CI repository")

        framework = Framework(build.framework)
        target_os = TargetOS(build.target_os)
        ref = self._resolve_ref(client, repo)
        build.ci_workflow = workflow_file_name(framework, target_os)
        build.ci_ref = ref

        try:
            ensure_workflow(
                client,
                repo,
                framework,
                target_os,
                ref,
                create_missing=self.create_missing_workflows,
                grace_period=self.settings.workflow_grace_period,
                sleep=self.sleep,
            )
        except WorkflowError as e:
            set_build_status(session, build, BuildStatus.FAILED, str(e), self.bus)
            raise

        try:
            client.dispatch_workflow(repo, build.ci_workflow, ref, self.dispatch_inputs(build))
        except CIRequestError as e:
            if e.status_code is not None:
                message = f"Failed to trigger workflow: {e.status_code} - {e.body}"
            else:
                message = f"Failed to trigger workflow: {e}"
            set_build_status(session, build, BuildStatus.FAILED, message, self.bus)
            raise DispatchError(message, status_code=e.status_code, body=e.body) from e

        build.dispatched_at = datetime.now(timezone.utc)
        set_build_status(session, build, BuildStatus.BUILDING, bus=self.bus)

    def poll(self, session: Session, build: Build) -> BuildStatusReport:
        if self.client is None:
            return build_status_report(build, message="W2D_GITHUB_TOKEN is not configured")
        return reconcile_build(session, build, self.client, self.store, self.settings, self.bus)


class TemplateRepoStrategy(_DispatchStrategy):
    """Dispatch to the shared template repository."""

    kind = StrategyKind.TEMPLATE_REPO
    initial_status = BuildStatus.PREPARING

    @property
    def create_missing_workflows(self) -> bool:
        return True

    def target_repository(self, request: BuildRequest) -> str | None:
        return self.settings.template_repo

    def dispatch_inputs(self, build: Build) -> dict[str, str]:
        config = build_project_config(
            build.app_name,
            build.source_url,
            Framework(build.framework),
            TargetOS(build.target_os),
            WrapperMode(build.wrapper_mode),
        )
        return {
            "app_name": build.app_name,
            "source_url": build.source_url or "",
            "source_type": build.source_type,
            "build_id": build.id,
            "wrapper_mode": build.wrapper_mode,
            "project_config": json.dumps(config),
        }


class UserRepoStrategy(_DispatchStrategy):
    """Dispatch to a repository named in the request.

    Such repositories declare their own workflow inputs, so only the app
    name, source URL and build id are sent.
    """

    kind = StrategyKind.USER_REPO
    initial_status = BuildStatus.QUEUED

    @property
    def create_missing_workflows(self) -> bool:
        return self.settings.create_missing_user_workflows

    def target_repository(self, request: BuildRequest) -> str | None:
        return request.github_repo

    def dispatch_inputs(self, build: Build) -> dict[str, str]:
        return {
            "app_name": build.app_name,
            "source_url": build.source_url or "",
            "build_id": build.id,
        }


def _store_placeholder(
    session: Session,
    build: Build,
    store: BlobStore,
    file_name: str,
    file_type: str,
    data: bytes,
) -> bool:
    storage_path = f"builds/{build.id}/{file_name}"
    try:
        url = store.upload(storage_path, data, content_type_for(file_type))
    except StorageError as e:
        logger.error("Failed to store %s: %s", file_name, e)
        return False
    info = ArtifactInfo(
        file_name=file_name,
        file_type=file_type,
        size_bytes=len(data),
        storage_path=storage_path,
        download_url=url,
    )
    return record_artifact(session, build, info)


class SimulatedStrategy(_ResourceOwner):
    """Walk through the build states on a timer and store placeholder files.

    Each state is committed so watchers observe the progression.
    """

    kind = StrategyKind.SIMULATED
    initial_status = BuildStatus.QUEUED

    def __init__(
        self,
        settings: Settings,
        store: BlobStore,
        bus: BuildEventBus | None = None,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.bus = bus or default_bus
        self.sleep = sleep

    def check_configuration(self) -> None:
        return None

    def target_repository(self, request: BuildRequest) -> str | None:
        return None

    def submit(self, session: Session, build: Build) -> None:
        delay = self.settings.simulated_step_delay
        for status in (BuildStatus.EXTRACTING, BuildStatus.BUILDING):
            set_build_status(session, build, status, bus=self.bus)
            session.commit()
            if delay > 0:
                self.sleep(delay)

        slug = sanitize_app_name(build.app_name)
        existing = {a.file_name for a in build.artifacts}
        for file_type in OUTPUT_FORMATS[TargetOS(build.target_os)]:
            file_name = f"{slug}.{file_type}"
            if file_name in existing:
                continue
            placeholder = (
                f"Simulated {file_type} installer for {build.app_name} "
                f"({build.framework}/{build.target_os}), build {build.id}\n"
            ).encode()
            _store_placeholder(session, build, self.store, file_name, file_type, placeholder)

        set_build_status(session, build, BuildStatus.COMPLETED, bus=self.bus)

    def poll(self, session: Session, build: Build) -> BuildStatusReport:
        return build_status_report(build)


class ProjectStrategy(_ResourceOwner):
    """Generate the wrapper project zip as the build's only artifact."""

    kind = StrategyKind.PROJECT
    initial_status = BuildStatus.QUEUED

    def __init__(
        self,
        settings: Settings,
        store: BlobStore,
        bus: BuildEventBus | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.bus = bus or default_bus

    def check_configuration(self) -> None:
        return None

    def target_repository(self, request: BuildRequest) -> str | None:
        return None

    def submit(self, session: Session, build: Build) -> None:
        """Generate and store the project.

        Raises:
            BuildServiceError: If generation or upload fails.
        """
        set_build_status(session, build, BuildStatus.BUILDING, bus=self.bus)
        try:
            project = generate_project(
                self.store,
                app_name=build.app_name,
                framework=build.framework,
                target_os=build.target_os,
                source_url=build.source_url,
                wrapper_mode=build.wrapper_mode,
            )
        except (ProjectGenerationError, StorageError) as e:
            message = f"Project generation failed: {e}"
            set_build_status(session, build, BuildStatus.FAILED, message, self.bus)
            raise BuildServiceError(message, code=e.code) from e

        record_artifact(
            session,
            build,
            ArtifactInfo(
                file_name=project.file_name,
                file_type="zip",
                size_bytes=project.size_bytes,
                storage_path=project.storage_path,
                download_url=project.download_url,
            ),
        )
        set_build_status(session, build, BuildStatus.COMPLETED, bus=self.bus)

    def poll(self, session: Session, build: Build) -> BuildStatusReport:
        return build_status_report(build)


def get_strategy(
    kind: StrategyKind | str | None = None,
    settings: Settings | None = None,
    client: GitHubClient | None = None,
    store: BlobStore | None = None,
    bus: BuildEventBus | None = None,
    sleep: Sleeper = time.sleep,
) -> BuildStrategy:
    """Create a strategy from settings.

    Clients created here are owned by the strategy and closed by its
    ``close()``; use the strategy as a context manager.

    Args:
        kind: Strategy kind; ``settings.default_strategy`` when None.
        settings: Optional settings instance; uses default if not provided.
        client: GitHub client; created from settings when a token is set.
        store: Blob store; created from settings when not provided.
        bus: Event bus; the module default bus when not provided.
        sleep: Sleep function (tests pass a no-op).

    Raises:
        ConfigurationError: If the blob store is misconfigured.
    """
    if settings is None:
        settings = get_settings()
    kind = StrategyKind(kind or settings.default_strategy)
    owned: list[GitHubClient | BlobStore] = []

    if store is None:
        try:
            store = get_blob_store(settings)
        except StorageError as e:
            raise ConfigurationError(str(e)) from e
        owned.append(store)

    strategy: SimulatedStrategy | ProjectStrategy | UserRepoStrategy | TemplateRepoStrategy
    if kind == StrategyKind.SIMULATED:
        strategy = SimulatedStrategy(settings, store, bus=bus, sleep=sleep)
    elif kind == StrategyKind.PROJECT:
        strategy = ProjectStrategy(settings, store, bus=bus)
    else:
        if client is None and settings.github_token is not None:
            client = GitHubClient.from_settings(settings)
            owned.append(client)
        if kind == StrategyKind.USER_REPO:
            strategy = UserRepoStrategy(settings, client, store, bus=bus, sleep=sleep)
        else:
            strategy = TemplateRepoStrategy(settings, client, store, bus=bus, sleep=sleep)

    strategy.owned = tuple(owned)
    return strategy


__all__ = [
    "BuildStrategy",
    "ProjectStrategy",
    "SimulatedStrategy",
    "TemplateRepoStrategy",
    "UserRepoStrategy",
    "ensure_workflow",
    "get_strategy",
]
