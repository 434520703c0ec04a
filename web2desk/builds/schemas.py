"""Pydantic schemas for build requests and reports.

Field names are snake_case in Python and camelCase on the wire
(``appName``, ``targetOs``, ``buildId``, ...). Both forms are accepted
on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from web2desk.types import (
    BuildStatus,
    Framework,
    SourceType,
    StrategyKind,
    TargetOS,
    WrapperMode,
)

if TYPE_CHECKING:
    from web2desk.builds.models import Artifact, Build


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self) -> dict:
        """Dump as a JSON-compatible dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


class BuildRequest(_WireModel):
    """A conversion request.

    Emptiness and identifier checks happen in the build service so they
    surface as validation errors rather than schema errors.
    """

    app_name: str
    source_type: SourceType = SourceType.URL
    source_url: str | None = None
    framework: Framework
    target_os: TargetOS
    wrapper_mode: WrapperMode = WrapperMode.WEBVIEW
    strategy: StrategyKind | None = None
    github_repo: str | None = None


class ArtifactSummary(_WireModel):
    """An archived installer."""

    id: int
    file_type: str
    file_name: str
    file_size: str
    size_bytes: int
    storage_path: str
    download_url: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_artifact(cls, artifact: Artifact) -> ArtifactSummary:
        return cls(
            id=artifact.id,
            file_type=artifact.file_type,
            file_name=artifact.file_name,
            file_size=artifact.file_size,
            size_bytes=artifact.size_bytes,
            storage_path=artifact.storage_path,
            download_url=artifact.download_url,
            created_at=artifact.created_at,
        )


class BuildSummary(_WireModel):
    """A build record as exposed to clients."""

    id: str
    app_name: str
    framework: Framework
    target_os: TargetOS
    source_type: SourceType
    source_url: str | None = None
    wrapper_mode: WrapperMode
    strategy: StrategyKind
    status: BuildStatus
    error_message: str | None = None
    ci_repository: str | None = None
    ci_workflow: str | None = None
    ci_run_id: int | None = None
    ci_run_url: str | None = None
    artifact_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    dispatched_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_build(cls, build: Build) -> BuildSummary:
        return cls(
            id=build.id,
            app_name=build.app_name,
            framework=Framework(build.framework),
            target_os=TargetOS(build.target_os),
            source_type=SourceType(build.source_type),
            source_url=build.source_url,
            wrapper_mode=WrapperMode(build.wrapper_mode),
            strategy=StrategyKind(build.strategy),
            status=BuildStatus(build.status),
            error_message=build.error_message,
            ci_repository=build.ci_repository,
            ci_workflow=build.ci_workflow,
            ci_run_id=build.ci_run_id,
            ci_run_url=build.ci_run_url,
            artifact_count=len(build.artifacts),
            created_at=build.created_at,
            updated_at=build.updated_at,
            dispatched_at=build.dispatched_at,
            completed_at=build.completed_at,
        )


class BuildStatusReport(_WireModel):
    """Result of a status check.

    ``status`` is the reported status, which is ``building`` while a
    dispatched run has not been matched yet even if the stored status is
    still ``preparing`` or ``queued``. ``message`` carries transient
    information such as a failed CI request.
    """

    build_id: str
    status: BuildStatus
    artifacts: list[ArtifactSummary]
    error_message: str | None = None
    github_run_id: int | None = None
    github_run_url: str | None = None
    message: str | None = None
    completed_at: datetime | None = None


__all__ = [
    "ArtifactSummary",
    "BuildRequest",
    "BuildStatusReport",
    "BuildSummary",
]
