"""Build endpoints.

- POST /builds - Create a build and submit it in the background
- GET /builds - List builds
- GET /builds/{id} - Get build by ID
- GET /builds/{id}/artifacts - Get archived installers for a build
- GET|POST /builds/{id}/status - Reconcile and report build status
- POST /builds/{id}/callback - Completion report from a CI workflow
"""

import logging
import secrets
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session, sessionmaker

from web2desk.builds.schemas import ArtifactSummary, BuildRequest, BuildSummary
from web2desk.builds.service import (
    BuildNotFoundError,
    BuildServiceError,
    BuildValidationError,
    ConfigurationError,
    check_build_status,
    create_build,
    get_build,
    get_build_artifacts,
    list_builds,
    record_ci_callback,
    start_build,
)
from web2desk.builds.strategies import BuildStrategy
from web2desk.config import Settings
from web2desk.db import get_session
from web2desk.types import BuildStatus, Framework, StrategyKind, TargetOS
from web.deps import (
    StrategyResolver,
    get_app_settings,
    get_db,
    get_session_factory,
    get_strategy_resolver,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class CallbackReport(BaseModel):
    """Body sent by the workflow's final step."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: BuildStatus
    run_id: int | None = None
    conclusion: str | None = Field(None, max_length=64)


def _not_found(build_id: str) -> HTTPException:
    return HTTPException(
        status_code=http_status.HTTP_404_NOT_FOUND,
        detail={"code": "build_not_found", "message": f"Build not found: {build_id}"},
    )


def _run_build(
    session_factory: sessionmaker[Session],
    build_id: str,
    strategy: BuildStrategy,
) -> None:
    """Submit a created build outside the request.

    Failures are already recorded on the build by the strategy. The
    strategy is closed once the submit finishes.
    """
    with strategy, get_session(session_factory) as session:
        build = get_build(session, build_id)
        try:
            start_build(session, build, strategy)
        except BuildServiceError as e:
            logger.warning("Build %s failed to start (%s): %s", build_id, e.code, e)


@router.post("", status_code=http_status.HTTP_202_ACCEPTED)
def create_build_endpoint(
    request: BuildRequest,
    background_tasks: BackgroundTasks,
    resolve: StrategyResolver = Depends(get_strategy_resolver),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Create a build and start it in the background.

    Returns:
        ``{"buildId": ..., "status": ...}`` with the initial status.

    Raises:
        HTTPException: 400 for invalid requests, 500 for missing configuration.
    """
    strategy = resolve(request.strategy)
    try:
        build = create_build(db, request, strategy)
        # The background task uses its own session and must see the row
        db.commit()
    except BuildValidationError as e:
        strategy.close()
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e), "field": e.field},
        ) from None
    except ConfigurationError as e:
        strategy.close()
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": e.code, "message": str(e)},
        ) from None
    except Exception:
        strategy.close()
        raise

    background_tasks.add_task(_run_build, session_factory, build.id, strategy)
    return {"buildId": build.id, "status": build.status}


@router.get("")
def list_builds_endpoint(
    status: BuildStatus | None = Query(None, description="Filter by status"),
    framework: Framework | None = Query(None, description="Filter by framework"),
    target_os: TargetOS | None = Query(None, alias="targetOs", description="Filter by OS"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List builds, newest first."""
    builds = list_builds(db, status=status, framework=framework, target_os=target_os, limit=limit)
    return [BuildSummary.from_build(b).to_wire() for b in builds]


@router.get("/{build_id}")
def get_build_endpoint(
    build_id: str,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a build record by ID."""
    try:
        build = get_build(db, build_id)
    except BuildNotFoundError:
        raise _not_found(build_id) from None
    return BuildSummary.from_build(build).to_wire()


@router.get("/{build_id}/artifacts")
def get_build_artifacts_endpoint(
    build_id: str,
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get archived installers for a build."""
    try:
        artifacts = get_build_artifacts(db, build_id)
    except BuildNotFoundError:
        raise _not_found(build_id) from None
    return [ArtifactSummary.from_artifact(a).to_wire() for a in artifacts]


@router.api_route("/{build_id}/status", methods=["GET", "POST"])
def check_build_status_endpoint(
    build_id: str,
    resolve: StrategyResolver = Depends(get_strategy_resolver),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Reconcile a build with CI and report its status.

    Transient CI failures are reported in ``message`` with HTTP 200.
    """
    try:
        build = get_build(db, build_id)
    except BuildNotFoundError:
        raise _not_found(build_id) from None
    with resolve(StrategyKind(build.strategy)) as strategy:
        report = check_build_status(db, build_id, strategy)
    return report.to_wire()


@router.post("/{build_id}/callback")
def build_callback_endpoint(
    build_id: str,
    report: CallbackReport,
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Accept a completion report from a CI workflow.

    Raises:
        HTTPException: 503 when no callback token is configured, 401 on a
            token mismatch, 400 for a non-terminal status, 404 for an
            unknown build.
    """
    if settings.callback_token is None:
        raise HTTPException(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "configuration_error", "message": "Callbacks are not enabled"},
        )
    expected = f"Bearer {settings.callback_token.get_secret_value()}"
    if authorization is None or not secrets.compare_digest(
        authorization.encode(), expected.encode()
    ):
        raise HTTPException(
            status_code=http_status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Invalid callback token"},
        )

    try:
        build = record_ci_callback(
            db, build_id, report.status, run_id=report.run_id, conclusion=report.conclusion
        )
    except BuildNotFoundError:
        raise _not_found(build_id) from None
    except BuildValidationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e), "field": e.field},
        ) from None
    return {"buildId": build.id, "status": build.status}
