"""Build service module.

This module provides the high-level build API:
- validate_build_request() / create_build(): synchronous request intake
- start_build() / submit_build(): hand a build to its strategy
- check_build_status(): re-entrant status reconciliation
- record_ci_callback(): completion reports sent by CI workflows
- Read helpers for builds and artifacts

Functions take the session first and flush; callers commit.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.orm import Session

from web2desk.builds.events import BuildEvent, BuildEventBus, queue_build_event
from web2desk.builds.models import Artifact, Build
from web2desk.builds.schemas import ArtifactSummary, BuildRequest, BuildStatusReport
from web2desk.types import (
    BuildStatus,
    Framework,
    SourceType,
    StrategyKind,
    TargetOS,
    is_supported_platform,
)

if TYPE_CHECKING:
    from web2desk.builds.strategies import BuildStrategy
    from web2desk.ci.github import WorkflowRun

logger = logging.getLogger(__name__)

GITHUB_REPO_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})/[A-Za-z0-9._-]{1,100}$")
GITHUB_URL_PATTERN = re.compile(
    r"^https?://(?:www\.)?github\.com/([A-Za-z0-9-]+/[A-Za-z0-9._-]+?)(?:\.git)?/?$"
)


class BuildServiceError(Exception):
    """Base error for build service operations."""

    def __init__(self, message: str, code: str = "build_service_error") -> None:
        super().__init__(message)
        self.code = code


class BuildValidationError(BuildServiceError):
    """Raised when a build request is rejected before any Build is created."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="validation")
        self.field = field


class ConfigurationError(BuildServiceError):
    """Raised when the selected strategy is missing required configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="configuration_error")


class BuildNotFoundError(BuildServiceError):
    """Raised when a build is not found."""

    def __init__(self, build_id: str) -> None:
        super().__init__(f"Build not found: {build_id}", code="build_not_found")
        self.build_id = build_id


class DispatchError(BuildServiceError):
    """Raised when the CI system rejects a workflow dispatch."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, code="dispatch_failed")
        self.status_code = status_code
        self.body = body


class WorkflowError(BuildServiceError):
    """Raised when a workflow definition is missing and cannot be created."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="workflow_error")


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_github_repo(value: str) -> bool:
    """Check whether a value is a well-formed ``owner/repo`` identifier."""
    return bool(GITHUB_REPO_PATTERN.match(value))


def validate_build_request(
    request: BuildRequest,
    strategy: StrategyKind,
) -> BuildRequest:
    """Validate a build request and return a normalized copy.

    Args:
        request: Incoming request.
        strategy: Strategy the request will run under.

    Returns:
        Request with trimmed strings.

    Raises:
        BuildValidationError: On any invalid field.
    """
    app_name = (request.app_name or "").strip()
    if not app_name:
        raise BuildValidationError("App name is required", field="appName")

    source_url = (request.source_url or "").strip() or None
    if request.source_type != SourceType.ZIP:
        if source_url is None:
            raise BuildValidationError(
                f"A source URL is required for source type '{request.source_type.value}'",
                field="sourceUrl",
            )
        if request.source_type == SourceType.URL and not _is_http_url(source_url):
            raise BuildValidationError(
                f"Source URL must be an http(s) URL: {source_url}", field="sourceUrl"
            )
        if request.source_type == SourceType.GITHUB and not (
            is_github_repo(source_url) or GITHUB_URL_PATTERN.match(source_url)
        ):
            raise BuildValidationError(
                f"Malformed GitHub repository: {source_url}", field="sourceUrl"
            )

    github_repo = (request.github_repo or "").strip() or None
    if strategy == StrategyKind.USER_REPO:
        if github_repo is None or not is_github_repo(github_repo):
            raise BuildValidationError(
                "A CI repository in owner/repo form is required", field="githubRepo"
            )

    if not is_supported_platform(request.framework, request.target_os):
        raise BuildValidationError(
            f"Framework '{request.framework.value}' does not support target OS "
            f"'{request.target_os.value}'",
            field="targetOs",
        )

    return request.model_copy(
        update={
            "app_name": app_name,
            "source_url": source_url,
            "github_repo": github_repo,
            "strategy": strategy,
        }
    )


def build_event_for(build: Build) -> BuildEvent:
    """Snapshot a build as an event."""
    return BuildEvent(
        build_id=build.id,
        status=BuildStatus(build.status),
        error_message=build.error_message,
        artifact_count=len(build.artifacts),
    )


def set_build_status(
    session: Session,
    build: Build,
    status: BuildStatus,
    error_message: str | None = None,
    bus: BuildEventBus | None = None,
) -> bool:
    """Move a build to a new status and queue a change event.

    Args:
        session: Database session.
        build: Build to update.
        status: Target status.
        error_message: Failure reason, used only for ``failed``.
        bus: Event bus for the change event.

    Returns:
        True if the status changed.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if status == BuildStatus.FAILED:
        changed = build.mark_failed(error_message)
    elif status == BuildStatus.COMPLETED:
        changed = build.mark_completed()
    else:
        changed = build.transition_to(status)

    if changed:
        session.flush()
        logger.info("Build %s -> %s", build.id, status.value)
        queue_build_event(session, build_event_for(build), bus)
    return changed


def create_build(
    session: Session,
    request: BuildRequest,
    strategy: BuildStrategy,
) -> Build:
    """Validate a request and insert a Build in the strategy's initial status.

    Args:
        session: Database session.
        request: Build request.
        strategy: Strategy that will run the build.

    Returns:
        The new Build (flushed, with id assigned).

    Raises:
        BuildValidationError: If the request is invalid.
        ConfigurationError: If the strategy is not configured.
    """
    request = validate_build_request(request, strategy.kind)
    strategy.check_configuration()

    build = Build(
        app_name=request.app_name,
        framework=request.framework.value,
        target_os=request.target_os.value,
        source_type=request.source_type.value,
        source_url=request.source_url,
        wrapper_mode=request.wrapper_mode.value,
        strategy=strategy.kind.value,
        status=strategy.initial_status.value,
        ci_repository=strategy.target_repository(request),
    )
    session.add(build)
    session.flush()
    queue_build_event(session, build_event_for(build), strategy.bus)

    logger.info(
        "Created build %s (%s/%s, strategy %s)",
        build.id,
        build.framework,
        build.target_os,
        build.strategy,
    )
    return build


def start_build(session: Session, build: Build, strategy: BuildStrategy) -> Build:
    """Run the strategy's submit step for a created build.

    On failure the build is marked ``failed`` before the error propagates;
    the caller must still commit to persist that.

    Raises:
        BuildServiceError: If configuration, workflow setup or dispatch fails.
    """
    try:
        strategy.submit(session, build)
    except ConfigurationError as e:
        set_build_status(session, build, BuildStatus.FAILED, str(e), strategy.bus)
        raise
    return build


def submit_build(
    session: Session,
    request: BuildRequest,
    strategy: BuildStrategy,
) -> Build:
    """Create a build and immediately run its submit step."""
    build = create_build(session, request, strategy)
    return start_build(session, build, strategy)


def get_build(session: Session, build_id: str) -> Build:
    """Get a build by ID.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = session.get(Build, build_id)
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def list_builds(
    session: Session,
    status: BuildStatus | None = None,
    framework: Framework | None = None,
    target_os: TargetOS | None = None,
    limit: int = 100,
) -> list[Build]:
    """List builds, newest first, with optional filters."""
    stmt = select(Build)
    if status is not None:
        stmt = stmt.where(Build.status == status.value)
    if framework is not None:
        stmt = stmt.where(Build.framework == framework.value)
    if target_os is not None:
        stmt = stmt.where(Build.target_os == target_os.value)
    stmt = stmt.order_by(Build.created_at.desc(), Build.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


def get_build_artifacts(session: Session, build_id: str) -> list[Artifact]:
    """Get artifacts for a build.

    Raises:
        BuildNotFoundError: If build not found.
    """
    return list(get_build(session, build_id).artifacts)


def build_status_report(
    build: Build,
    status: BuildStatus | None = None,
    run: WorkflowRun | None = None,
    message: str | None = None,
) -> BuildStatusReport:
    """Assemble a status report for a build.

    Args:
        build: The build.
        status: Reported status; the stored status when None.
        run: Matched CI run, if any.
        message: Informational message.
    """
    return BuildStatusReport(
        build_id=build.id,
        status=status or BuildStatus(build.status),
        artifacts=[ArtifactSummary.from_artifact(a) for a in build.artifacts],
        error_message=build.error_message,
        github_run_id=run.id if run else build.ci_run_id,
        github_run_url=run.html_url if run else build.ci_run_url,
        message=message,
        completed_at=build.completed_at,
    )


def check_build_status(
    session: Session,
    build_id: str,
    strategy: BuildStrategy,
) -> BuildStatusReport:
    """Reconcile a build with its strategy and report its status.

    Safe to call repeatedly and concurrently.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = get_build(session, build_id)
    return strategy.poll(session, build)


def record_ci_callback(
    session: Session,
    build_id: str,
    status: BuildStatus,
    run_id: int | None = None,
    bus: BuildEventBus | None = None,
    conclusion: str | None = None,
) -> Build:
    """Apply a completion report sent by a CI workflow.

    A report for a build that is already terminal is ignored, so repeated
    reports are harmless. A successful report does not archive artifacts;
    the next status check does. A failure is recorded as
    ``Workflow failed: <conclusion>``, the same message a status check
    would record for that run.

    Raises:
        BuildNotFoundError: If build not found.
        BuildValidationError: If ``status`` is not terminal.
    """
    if status not in (BuildStatus.COMPLETED, BuildStatus.FAILED):
        raise BuildValidationError(
            f"Callback status must be completed or failed, got '{status.value}'",
            field="status",
        )

    build = get_build(session, build_id)
    if run_id is not None and build.ci_run_id is None:
        build.ci_run_id = run_id

    if build.is_terminal():
        logger.info("Ignoring %s callback for terminal build %s", status.value, build.id)
        return build

    message = None
    if status == BuildStatus.FAILED:
        message = f"Workflow failed: {conclusion or 'failure'}"
    set_build_status(session, build, status, message, bus)
    return build


__all__ = [
    "BuildNotFoundError",
    "BuildServiceError",
    "BuildValidationError",
    "ConfigurationError",
    "DispatchError",
    "WorkflowError",
    "build_event_for",
    "build_status_report",
    "check_build_status",
    "create_build",
    "get_build",
    "get_build_artifacts",
    "is_github_repo",
    "list_builds",
    "record_ci_callback",
    "set_build_status",
    "start_build",
    "submit_build",
    "validate_build_request",
]
