"""MCP server implementation.

This module creates the FastMCP server and registers all tools.
Tools are thin wrappers around core web2desk services:
- Builds are created and submitted synchronously
- Status checks reconcile with CI and are safe to repeat
- Errors are returned as structured dicts with stable codes
"""

from contextlib import closing
from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from mcp_server.errors import (
    INTERNAL_ERROR,
    build_not_found,
    from_exception,
    make_error,
    validation_error,
)
from mcp_server.schemas import (
    BuildStatusResponse,
    CreateBuildResponse,
    GenerateProjectResponse,
    GetBuildResponse,
    ListBuildsResponse,
    RenderWorkflowResponse,
)

# Create the FastMCP server instance
mcp = FastMCP(
    name="web2desk",
)


def _get_session_factory() -> Any:
    """Get the database session factory.

    Returns:
        Session factory callable.
    """
    from web2desk.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    return get_session_factory(engine)


@mcp.tool()
def create_build(
    app_name: Annotated[str, Field(description="Display name of the app")],
    framework: Annotated[
        str, Field(description="electron, tauri, capacitor or react-native")
    ],
    target_os: Annotated[
        str, Field(description="windows, macos, linux, android or ios")
    ],
    source_url: Annotated[
        str | None, Field(description="Web app URL or GitHub repository")
    ] = None,
    source_type: Annotated[str, Field(description="url, github or zip")] = "url",
    wrapper_mode: Annotated[str, Field(description="webview or pwa")] = "webview",
    strategy: Annotated[
        str | None,
        Field(description="template-repo, user-repo, simulated or project"),
    ] = None,
    github_repo: Annotated[
        str | None, Field(description="CI repository (owner/repo) for user-repo")
    ] = None,
) -> CreateBuildResponse:
    """Create a build and submit it.

    The build is created in its strategy's initial status and then handed
    to the strategy (workflow dispatch, simulation or project generation).
    A failed submit still returns the build id with status ``failed``.

    Returns:
        CreateBuildResponse with build id and status, or error.
    """
    from web2desk.builds.schemas import BuildRequest
    from web2desk.builds.service import BuildServiceError, create_build, start_build
    from web2desk.builds.strategies import get_strategy

    try:
        request = BuildRequest(
            app_name=app_name,
            framework=framework,
            target_os=target_os,
            source_url=source_url,
            source_type=source_type,
            wrapper_mode=wrapper_mode,
            strategy=strategy,
            github_repo=github_repo,
        )
    except ValidationError as e:
        return CreateBuildResponse(
            success=False,
            error=validation_error(
                "Invalid build request", details={"errors": e.errors(include_url=False)}
            ).to_dict(),
        )

    try:
        factory = _get_session_factory()
        with factory() as session:
            try:
                build_strategy = get_strategy(request.strategy)
            except BuildServiceError as e:
                return CreateBuildResponse(success=False, error=from_exception(e).to_dict())

            with build_strategy:
                try:
                    build = create_build(session, request, build_strategy)
                    session.commit()
                except BuildServiceError as e:
                    return CreateBuildResponse(
                        success=False, error=from_exception(e).to_dict()
                    )

                try:
                    start_build(session, build, build_strategy)
                except BuildServiceError as e:
                    session.commit()
                    return CreateBuildResponse(
                        success=False,
                        build_id=build.id,
                        status=build.status,
                        error=from_exception(e).to_dict(),
                    )
                session.commit()

            return CreateBuildResponse(success=True, build_id=build.id, status=build.status)

    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return CreateBuildResponse(success=False, error=error.to_dict())


@mcp.tool()
def check_build_status(
    build_id: Annotated[str, Field(description="Build ID to check")],
) -> BuildStatusResponse:
    """Reconcile a build with its CI run and report its status.

    Safe to call repeatedly. A completed run's installers are archived on
    the first check that sees it; later checks return the same artifacts.
    Transient CI failures are reported in ``report.message``.

    Returns:
        BuildStatusResponse with the status report, or error.
    """
    from web2desk.builds.service import BuildNotFoundError, BuildServiceError, get_build
    from web2desk.builds.service import check_build_status as svc_check_build_status
    from web2desk.builds.strategies import get_strategy

    try:
        factory = _get_session_factory()
        with factory() as session:
            try:
                build = get_build(session, build_id)
                with get_strategy(build.strategy) as strategy:
                    report = svc_check_build_status(session, build_id, strategy)
                session.commit()
            except BuildNotFoundError:
                return BuildStatusResponse(
                    success=False, error=build_not_found(build_id).to_dict()
                )
            except BuildServiceError as e:
                return BuildStatusResponse(success=False, error=from_exception(e).to_dict())

            return BuildStatusResponse(success=True, report=report)

    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return BuildStatusResponse(success=False, error=error.to_dict())


@mcp.tool()
def get_build(
    build_id: Annotated[str, Field(description="Build ID to retrieve")],
) -> GetBuildResponse:
    """Get a build record and its archived installers without contacting CI.

    Returns:
        GetBuildResponse with build details, or error.
    """
    from web2desk.builds.schemas import ArtifactSummary, BuildSummary
    from web2desk.builds.service import BuildNotFoundError
    from web2desk.builds.service import get_build as svc_get_build

    try:
        factory = _get_session_factory()
        with factory() as session:
            try:
                build = svc_get_build(session, build_id)
            except BuildNotFoundError:
                return GetBuildResponse(success=False, error=build_not_found(build_id).to_dict())

            return GetBuildResponse(
                success=True,
                build=BuildSummary.from_build(build),
                artifacts=[ArtifactSummary.from_artifact(a) for a in build.artifacts],
            )

    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return GetBuildResponse(success=False, error=error.to_dict())


@mcp.tool()
def list_builds(
    status: Annotated[str | None, Field(description="Filter by status")] = None,
    framework: Annotated[str | None, Field(description="Filter by framework")] = None,
    target_os: Annotated[str | None, Field(description="Filter by target OS")] = None,
    limit: Annotated[int, Field(description="Maximum results", ge=1, le=1000)] = 100,
) -> ListBuildsResponse:
    """List builds, newest first, with optional filters.

    Returns:
        ListBuildsResponse with build summaries, or error.
    """
    from web2desk.builds.schemas import BuildSummary
    from web2desk.builds.service import list_builds as svc_list_builds
    from web2desk.types import BuildStatus, Framework, TargetOS

    try:
        status_filter = BuildStatus(status) if status else None
        framework_filter = Framework(framework) if framework else None
        os_filter = TargetOS(target_os) if target_os else None
    except ValueError as e:
        return ListBuildsResponse(
            success=False, builds=[], total=0, error=validation_error(str(e)).to_dict()
        )

    try:
        factory = _get_session_factory()
        with factory() as session:
            builds = svc_list_builds(
                session,
                status=status_filter,
                framework=framework_filter,
                target_os=os_filter,
                limit=limit,
            )
            summaries = [BuildSummary.from_build(b) for b in builds]
            return ListBuildsResponse(success=True, builds=summaries, total=len(summaries))

    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return ListBuildsResponse(success=False, builds=[], total=0, error=error.to_dict())


@mcp.tool()
def generate_project(
    app_name: Annotated[str, Field(description="Display name of the app")],
    framework: Annotated[str, Field(description="Packaging framework")],
    target_os: Annotated[str, Field(description="Target OS or mobile platform")],
    source_url: Annotated[str | None, Field(description="Web app URL")] = None,
    wrapper_mode: Annotated[str, Field(description="webview or pwa")] = "webview",
) -> GenerateProjectResponse:
    """Generate a wrapper project zip without running CI.

    Returns:
        GenerateProjectResponse with the download URL, or error.
    """
    from web2desk.config import get_settings
    from web2desk.projects.service import ProjectGenerationError
    from web2desk.projects.service import generate_project as svc_generate_project
    from web2desk.storage import StorageError, get_blob_store

    try:
        with closing(get_blob_store(get_settings())) as store:
            project = svc_generate_project(
                store,
                app_name=app_name,
                framework=framework,
                target_os=target_os,
                source_url=source_url,
                wrapper_mode=wrapper_mode,
            )
    except ValueError as e:
        return GenerateProjectResponse(success=False, error=validation_error(str(e)).to_dict())
    except (ProjectGenerationError, StorageError) as e:
        return GenerateProjectResponse(success=False, error=from_exception(e).to_dict())
    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return GenerateProjectResponse(success=False, error=error.to_dict())

    return GenerateProjectResponse(
        success=True,
        download_url=project.download_url,
        file_name=project.file_name,
        size_bytes=project.size_bytes,
    )


@mcp.tool()
def render_workflow(
    framework: Annotated[str, Field(description="Packaging framework")],
    target_os: Annotated[str, Field(description="Target OS or mobile platform")],
) -> RenderWorkflowResponse:
    """Render the CI workflow YAML for a framework and OS.

    Returns:
        RenderWorkflowResponse with file name and YAML content, or error.
    """
    from web2desk.workflows.synth import synthesize_workflow, workflow_file_name

    try:
        content = synthesize_workflow(framework, target_os)
        file_name = workflow_file_name(framework, target_os)
    except ValueError as e:
        return RenderWorkflowResponse(success=False, error=validation_error(str(e)).to_dict())

    return RenderWorkflowResponse(success=True, file_name=file_name, content=content)


def main() -> None:
    """Run the MCP server over stdio."""
    mcp.run()


__all__ = [
    "check_build_status",
    "create_build",
    "generate_project",
    "get_build",
    "list_builds",
    "main",
    "mcp",
    "render_workflow",
]
