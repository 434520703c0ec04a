"""CI status reconciliation.

This module handles:
- Matching a build to one of the recent runs of its workflow
- Mapping run status/conclusion onto the build state machine
- Triggering artifact archiving for successful runs

Reconciliation is idempotent: terminal builds are never changed, and a
run whose archive pass finished (``Build.archived_at``) is never
downloaded again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from web2desk.builds.archiver import archive_run_artifacts
from web2desk.builds.events import BuildEventBus
from web2desk.builds.models import Build
from web2desk.builds.schemas import BuildStatusReport
from web2desk.builds.service import build_status_report, set_build_status
from web2desk.ci.github import CIRequestError, GitHubClient, WorkflowRun
from web2desk.config import Settings
from web2desk.storage import BlobStore
from web2desk.types import BuildStatus

logger = logging.getLogger(__name__)

# Tolerated clock difference between this service and the CI system
CLOCK_SKEW = timedelta(seconds=60)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def match_run(
    runs: list[WorkflowRun],
    build: Build,
    fallback: bool = True,
) -> WorkflowRun | None:
    """Find the run belonging to a build.

    Matching order: the ``build_id`` dispatch input when the listing
    exposes inputs, then the build id inside the run's display title (set
    through ``run-name``). With ``fallback`` enabled, the most recent run
    created no earlier than the dispatch time is assumed.

    Args:
        runs: Runs of the build's workflow, newest first.
        build: The build.
        fallback: Allow the most-recent-run heuristic.

    Returns:
        The matched run, or None.
    """
    for run in runs:
        if str(run.inputs.get("build_id", "")) == build.id:
            return run
    for run in runs:
        if build.id in run.display_title:
            return run
    if not fallback:
        return None

    if build.dispatched_at is None:
        return runs[0] if runs else None
    earliest = _as_utc(build.dispatched_at) - CLOCK_SKEW
    for run in runs:
        if run.created_at is None or _as_utc(run.created_at) >= earliest:
            logger.warning(
                "No run carries build id %s; assuming most recent run %d",
                build.id,
                run.id,
            )
            return run
    return None


def reconcile_build(
    session: Session,
    build: Build,
    client: GitHubClient,
    store: BlobStore,
    settings: Settings,
    bus: BuildEventBus | None = None,
) -> BuildStatusReport:
    """Bring a build in line with its CI run and report the result.

    Args:
        session: Database session.
        build: Build to reconcile.
        client: GitHub client.
        store: Blob store for installers.
        settings: Settings (listing limit, fallback, size limit).
        bus: Event bus for status changes.

    Returns:
        Status report. CI request failures are reported in ``message``
        without changing the build.
    """
    if build.status == BuildStatus.FAILED.value:
        return build_status_report(build)

    if build.status == BuildStatus.COMPLETED.value:
        if build.archived_at is not None or not (build.ci_repository and build.ci_run_id):
            return build_status_report(build)
        # Completed by callback, or the last archive pass hit a transient error
        try:
            archive_run_artifacts(
                session,
                build,
                client,
                store,
                build.ci_repository,
                build.ci_run_id,
                settings.max_artifact_bytes,
                settings.max_bundle_bytes,
            )
        except CIRequestError as e:
            logger.warning("Archiving for build %s deferred: %s", build.id, e)
            return build_status_report(build, message=f"Status check failed: {e}")
        return build_status_report(build)

    if not build.ci_repository or not build.ci_workflow or build.dispatched_at is None:
        return build_status_report(build, message="Waiting for dispatch")

    try:
        runs = client.list_workflow_runs(
            build.ci_repository, build.ci_workflow, limit=settings.run_listing_limit
        )
        run = match_run(runs, build, fallback=settings.run_match_fallback)
        if run is None:
            return build_status_report(
                build, status=BuildStatus.BUILDING, message="Workflow starting"
            )

        if run.is_completed and run.conclusion == "success":
            archive_run_artifacts(
                session,
                build,
                client,
                store,
                build.ci_repository,
                run.id,
                settings.max_artifact_bytes,
                settings.max_bundle_bytes,
            )
            new_status = BuildStatus.COMPLETED
            error_message = None
        elif run.is_completed:
            new_status = BuildStatus.FAILED
            error_message = f"Workflow failed: {run.conclusion}"
        else:
            new_status = BuildStatus.BUILDING
            error_message = None
    except CIRequestError as e:
        logger.warning("Status check for build %s failed: %s", build.id, e)
        return build_status_report(build, message=f"Status check failed: {e}")

    build.ci_run_id = run.id
    build.ci_run_url = run.html_url
    set_build_status(session, build, new_status, error_message, bus)
    return build_status_report(build, run=run)


__all__ = ["CLOCK_SKEW", "match_run", "reconcile_build"]
