"""Thin CLI wrapper for web2desk.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from contextlib import closing
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from web2desk import __version__
from web2desk.config import configure_logging, get_settings, print_settings_json
from web2desk.types import (
    BuildStatus,
    Framework,
    SourceType,
    StrategyKind,
    TargetOS,
    WrapperMode,
)

app = typer.Typer(
    name="web2desk",
    help="Web2Desk - package web apps as desktop and mobile installers",
    no_args_is_help=True,
)
console = Console()

STATUS_COLORS = {
    "completed": "green",
    "failed": "red",
    "building": "blue",
    "extracting": "blue",
    "queued": "yellow",
    "preparing": "yellow",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"web2desk version {__version__}")
        raise typer.Exit()


def _print_json(data: Any) -> None:
    console.print(json.dumps(data, indent=2), markup=False, highlight=False, emoji=False, soft_wrap=True)


def _session_factory() -> Any:
    from web2desk.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    return get_session_factory(engine)


def _status_markup(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log to stderr at the configured level"),
    ] = False,
) -> None:
    """Web2Desk - package web apps as desktop and mobile installers."""
    if verbose:
        configure_logging()


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        _print_json(json.loads(print_settings_json(settings)))
        return

    def secret(value: Any) -> str:
        return "(set)" if value is not None else "(not set)"

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Persistence:[/bold]")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print()
    console.print("[bold]Storage:[/bold]")
    console.print(f"  Backend:             {settings.storage_backend}")
    console.print(f"  Local directory:     {settings.storage_dir}")
    console.print(f"  Public base URL:     {settings.public_base_url}")
    console.print(f"  Supabase URL:        {settings.supabase_url or '(not set)'}")
    console.print(f"  Supabase key:        {secret(settings.supabase_service_key)}")
    console.print(f"  Bucket:              {settings.storage_bucket}")
    console.print()
    console.print("[bold]CI:[/bold]")
    console.print(f"  GitHub token:        {secret(settings.github_token)}")
    console.print(f"  GitHub API:          {settings.github_api_url}")
    console.print(f"  Template repository: {settings.template_repo}")
    console.print(f"  Default strategy:    {settings.default_strategy}")
    console.print(f"  Create user wfs:     {settings.create_missing_user_workflows}")
    console.print(f"  Run match fallback:  {settings.run_match_fallback}")
    console.print(f"  Callback token:      {secret(settings.callback_token)}")
    console.print()
    console.print("[bold]Timing (seconds):[/bold]")
    console.print(f"  HTTP timeout:        {settings.http_timeout}")
    console.print(f"  Download timeout:    {settings.download_timeout}")
    console.print(f"  Poll interval:       {settings.poll_interval}")
    console.print(f"  Workflow grace:      {settings.workflow_grace_period}")
    console.print()
    console.print(f"  Log level:           {settings.log_level}")


builds_app = typer.Typer(help="Create and follow builds")
app.add_typer(builds_app, name="build")


def _print_report(report: Any) -> None:
    console.print(f"[bold]Build {report.build_id}[/bold]: {_status_markup(report.status.value)}")
    if report.message:
        console.print(f"  {report.message}")
    if report.error_message:
        console.print(f"  [red]Error: {report.error_message}[/red]")
    if report.github_run_url:
        console.print(f"  Run: {report.github_run_url}")
    for a in report.artifacts:
        console.print(f"  [green]{a.file_name}[/green] ({a.file_size})")
        if a.download_url:
            console.print(f"    {a.download_url}")


def _watch(build_id: str, interval: float | None, timeout: float | None, json_output: bool) -> Any:
    """Follow a build until it is terminal and return the last report."""
    from web2desk.builds.events import BuildEvent, BuildWatcher, WatchTimeoutError, default_bus
    from web2desk.builds.service import check_build_status, get_build
    from web2desk.builds.strategies import get_strategy

    factory = _session_factory()
    with factory() as session:
        strategy = get_strategy(get_build(session, build_id).strategy)

    reports: list[Any] = []

    def poll() -> BuildEvent:
        with factory() as session:
            report = check_build_status(session, build_id, strategy)
            session.commit()
        reports.append(report)
        return BuildEvent(
            build_id=build_id,
            status=report.status,
            error_message=report.error_message,
            artifact_count=len(report.artifacts),
        )

    def on_change(event: BuildEvent) -> None:
        if not json_output:
            console.print(f"  {event.occurred_at:%H:%M:%S} {_status_markup(event.status.value)}")

    watcher = BuildWatcher(
        build_id,
        poll=poll,
        callback=on_change,
        bus=default_bus,
        poll_interval=interval or get_settings().poll_interval,
        timeout=timeout,
    )
    try:
        with strategy:
            final = watcher.run()
            # A pushed event can end the watch before the last poll saw it
            if reports[-1].status != final.status:
                poll()
    except WatchTimeoutError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from None
    return reports[-1]


@builds_app.command("create")
def build_create(
    app_name: Annotated[str, typer.Argument(help="Display name of the app")],
    framework: Annotated[
        Framework,
        typer.Option("--framework", "-f", help="Packaging framework"),
    ],
    target_os: Annotated[
        TargetOS,
        typer.Option("--os", "-o", help="Target OS or mobile platform"),
    ],
    source_url: Annotated[
        str | None,
        typer.Option("--url", "-u", help="Web app URL or GitHub repository"),
    ] = None,
    source_type: Annotated[
        SourceType,
        typer.Option("--source-type", help="Kind of source"),
    ] = SourceType.URL,
    wrapper_mode: Annotated[
        WrapperMode,
        typer.Option("--mode", "-m", help="Wrapper mode"),
    ] = WrapperMode.WEBVIEW,
    strategy: Annotated[
        StrategyKind | None,
        typer.Option("--strategy", "-s", help="Build strategy (default from settings)"),
    ] = None,
    github_repo: Annotated[
        str | None,
        typer.Option("--repo", "-r", help="CI repository (owner/repo) for user-repo"),
    ] = None,
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Follow the build until it finishes"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Create a build and submit it to its strategy."""
    from web2desk.builds.schemas import BuildRequest
    from web2desk.builds.service import BuildServiceError, create_build, start_build
    from web2desk.builds.strategies import get_strategy

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

    factory = _session_factory()
    error: BuildServiceError | None = None
    with factory() as session:
        try:
            build_strategy = get_strategy(request.strategy)
        except BuildServiceError as e:
            console.print(f"[red]Error ({e.code}): {e}[/red]")
            raise typer.Exit(code=1) from None

        with build_strategy:
            try:
                build = create_build(session, request, build_strategy)
                session.commit()
            except BuildServiceError as e:
                console.print(f"[red]Error ({e.code}): {e}[/red]")
                raise typer.Exit(code=1) from None

            try:
                start_build(session, build, build_strategy)
            except BuildServiceError as e:
                error = e
            session.commit()
        build_id, status = build.id, build.status

    if json_output and not watch:
        output: dict[str, Any] = {"buildId": build_id, "status": status}
        if error is not None:
            output["error"] = {"code": error.code, "message": str(error)}
        _print_json(output)
    elif not json_output:
        console.print(f"[bold]Build {build_id}[/bold]: {_status_markup(status)}")
        if error is not None:
            console.print(f"[red]Error ({error.code}): {error}[/red]")

    if error is not None:
        raise typer.Exit(code=1)

    if watch:
        report = _watch(build_id, None, None, json_output)
        if json_output:
            _print_json(report.to_wire())
        else:
            _print_report(report)
        if report.status == BuildStatus.FAILED:
            raise typer.Exit(code=1)


@builds_app.command("status")
def build_status(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Reconcile a build with CI and show its status."""
    from web2desk.builds.service import (
        BuildNotFoundError,
        BuildServiceError,
        check_build_status,
        get_build,
    )
    from web2desk.builds.strategies import get_strategy

    factory = _session_factory()
    with factory() as session:
        try:
            with get_strategy(get_build(session, build_id).strategy) as strategy:
                report = check_build_status(session, build_id, strategy)
            session.commit()
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None
        except BuildServiceError as e:
            console.print(f"[red]Error ({e.code}): {e}[/red]")
            raise typer.Exit(code=1) from None

    if json_output:
        _print_json(report.to_wire())
    else:
        _print_report(report)


@builds_app.command("watch")
def build_watch(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    interval: Annotated[
        float | None,
        typer.Option("--interval", "-i", min=1, help="Seconds between status checks"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Give up after this many seconds"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the final report as JSON"),
    ] = False,
) -> None:
    """Follow a build until it completes or fails.

    Exits 1 if the build fails and 2 on timeout.
    """
    from web2desk.builds.service import BuildNotFoundError

    try:
        report = _watch(build_id, interval, timeout, json_output)
    except BuildNotFoundError:
        console.print(f"[red]Build not found: {build_id}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        _print_json(report.to_wire())
    else:
        _print_report(report)
    if report.status == BuildStatus.FAILED:
        raise typer.Exit(code=1)


@builds_app.command("list")
def builds_list(
    status: Annotated[
        BuildStatus | None,
        typer.Option("--status", "-s", help="Filter by status"),
    ] = None,
    framework: Annotated[
        Framework | None,
        typer.Option("--framework", "-f", help="Filter by framework"),
    ] = None,
    target_os: Annotated[
        TargetOS | None,
        typer.Option("--os", "-o", help="Filter by target OS"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List builds, newest first."""
    from web2desk.builds.schemas import BuildSummary
    from web2desk.builds.service import list_builds

    factory = _session_factory()
    with factory() as session:
        builds = list_builds(
            session, status=status, framework=framework, target_os=target_os, limit=limit
        )

        if not builds:
            if json_output:
                _print_json([])
            else:
                console.print("[yellow]No builds found[/yellow]")
            return

        if json_output:
            _print_json([BuildSummary.from_build(b).to_wire() for b in builds])
            return

        console.print(f"[bold]Found {len(builds)} build(s):[/bold]")
        console.print()
        for b in builds:
            console.print(f"  [bold]{b.id}[/bold] {_status_markup(b.status)}")
            console.print(f"    App: {b.app_name} ({b.framework}/{b.target_os})")
            console.print(f"    Strategy: {b.strategy}")
            console.print(
                f"    Created: {b.created_at.isoformat() if b.created_at else 'N/A'}"
            )
            console.print(f"    Artifacts: {len(b.artifacts)}")
            if b.error_message:
                console.print(f"    Error: {b.error_message}")
            console.print()


@builds_app.command("show")
def build_show(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a stored build record without contacting CI."""
    from web2desk.builds.schemas import BuildSummary
    from web2desk.builds.service import BuildNotFoundError, get_build

    factory = _session_factory()
    with factory() as session:
        try:
            build = get_build(session, build_id)
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None

        if json_output:
            _print_json(BuildSummary.from_build(build).to_wire())
            return

        console.print(f"[bold]Build {build.id}[/bold]")
        console.print()
        console.print(f"  App name:      {build.app_name}")
        console.print(f"  Platform:      {build.framework}/{build.target_os}")
        console.print(f"  Source:        {build.source_type} {build.source_url or ''}")
        console.print(f"  Wrapper mode:  {build.wrapper_mode}")
        console.print(f"  Strategy:      {build.strategy}")
        console.print(f"  Status:        {_status_markup(build.status)}")
        if build.ci_repository:
            console.print(f"  Repository:    {build.ci_repository}")
        if build.ci_workflow:
            console.print(f"  Workflow:      {build.ci_workflow}")
        if build.ci_run_url:
            console.print(f"  Run:           {build.ci_run_url}")
        if build.error_message:
            console.print(f"  Error:         {build.error_message}")
        console.print(f"  Artifacts:     {len(build.artifacts)}")


artifacts_app = typer.Typer(help="Inspect archived installers")
app.add_typer(artifacts_app, name="artifacts")


@artifacts_app.command("list")
def artifacts_list(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List archived installers of a build."""
    from web2desk.builds.schemas import ArtifactSummary
    from web2desk.builds.service import BuildNotFoundError, get_build_artifacts

    factory = _session_factory()
    with factory() as session:
        try:
            artifacts = get_build_artifacts(session, build_id)
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None

        if json_output:
            _print_json([ArtifactSummary.from_artifact(a).to_wire() for a in artifacts])
            return

        if not artifacts:
            console.print("[yellow]No artifacts found[/yellow]")
            return

        console.print(f"[bold]Found {len(artifacts)} artifact(s):[/bold]")
        console.print()
        for a in artifacts:
            console.print(f"  [green]{a.file_name}[/green]")
            console.print(f"    Type: {a.file_type}")
            console.print(f"    Size: {a.file_size}")
            console.print(f"    URL:  {a.download_url or 'N/A'}")
            console.print()


workflows_app = typer.Typer(help="Render and install CI workflows")
app.add_typer(workflows_app, name="workflow")


@workflows_app.command("render")
def workflow_render(
    framework: Annotated[Framework, typer.Argument(help="Packaging framework")],
    target_os: Annotated[TargetOS, typer.Argument(help="Target OS")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write to file instead of stdout"),
    ] = None,
) -> None:
    """Render the workflow YAML for a framework and OS."""
    from web2desk.workflows.synth import UnsupportedPlatformError, synthesize_workflow

    try:
        content = synthesize_workflow(framework, target_os)
    except UnsupportedPlatformError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    if output is None:
        console.print(content, markup=False, highlight=False, emoji=False, soft_wrap=True, end="")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    console.print(f"[green]Wrote {output}[/green]")


@workflows_app.command("ensure")
def workflow_ensure(
    framework: Annotated[Framework, typer.Argument(help="Packaging framework")],
    target_os: Annotated[TargetOS, typer.Argument(help="Target OS")],
    repo: Annotated[
        str | None,
        typer.Option("--repo", "-r", help="Repository (default: template repository)"),
    ] = None,
    ref: Annotated[
        str | None,
        typer.Option("--ref", help="Branch (default: repository default branch)"),
    ] = None,
) -> None:
    """Create the workflow file in a repository if it is missing."""
    from web2desk.builds.service import WorkflowError
    from web2desk.builds.strategies import ensure_workflow
    from web2desk.ci.github import CIRequestError, GitHubClient
    from web2desk.workflows.synth import UnsupportedPlatformError, workflow_file_name

    settings = get_settings()
    try:
        client = GitHubClient.from_settings(settings)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    repo = repo or settings.template_repo
    try:
        branch = ref or client.get_default_branch(repo)
        created = ensure_workflow(client, repo, framework, target_os, branch)
    except (CIRequestError, WorkflowError, UnsupportedPlatformError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    finally:
        client.close()

    name = workflow_file_name(framework, target_os)
    if created:
        console.print(f"[green]Created {name} in {repo}@{branch}[/green]")
    else:
        console.print(f"{name} already present in {repo}@{branch}")


projects_app = typer.Typer(help="Generate wrapper projects")
app.add_typer(projects_app, name="project")


@projects_app.command("generate")
def project_generate(
    app_name: Annotated[str, typer.Argument(help="Display name of the app")],
    framework: Annotated[
        Framework,
        typer.Option("--framework", "-f", help="Packaging framework"),
    ],
    target_os: Annotated[
        TargetOS,
        typer.Option("--os", "-o", help="Target OS or mobile platform"),
    ],
    source_url: Annotated[
        str | None,
        typer.Option("--url", "-u", help="Web app URL"),
    ] = None,
    wrapper_mode: Annotated[
        WrapperMode,
        typer.Option("--mode", "-m", help="Wrapper mode"),
    ] = WrapperMode.WEBVIEW,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Generate a wrapper project zip and print its download URL."""
    from web2desk.projects.service import ProjectGenerationError, generate_project
    from web2desk.storage import StorageError, get_blob_store

    try:
        with closing(get_blob_store(get_settings())) as store:
            project = generate_project(
                store,
                app_name=app_name,
                framework=framework,
                target_os=target_os,
                source_url=source_url,
                wrapper_mode=wrapper_mode,
            )
    except (ProjectGenerationError, StorageError) as e:
        console.print(f"[red]Error ({e.code}): {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        _print_json(
            {
                "downloadUrl": project.download_url,
                "fileName": project.file_name,
                "sizeBytes": project.size_bytes,
            }
        )
    else:
        console.print(f"[green]Generated {project.file_name}[/green] ({project.size_bytes:,} bytes)")
        console.print(f"  {project.download_url}")


if __name__ == "__main__":
    app()
