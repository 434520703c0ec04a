"""Pydantic schemas for MCP tool responses.

These schemas define the structured output formats for MCP tools,
ensuring consistent JSON responses across all tools. Build and artifact
payloads reuse the wire schemas of the core package.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict

from web2desk.builds.schemas import ArtifactSummary, BuildStatusReport, BuildSummary


class CreateBuildResponse(BaseModel):
    """Response for create_build tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    build_id: str | None = None
    status: str | None = None
    error: dict[str, Any] | None = None


class BuildStatusResponse(BaseModel):
    """Response for check_build_status tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    report: BuildStatusReport | None = None
    error: dict[str, Any] | None = None


class GetBuildResponse(BaseModel):
    """Response for get_build tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    build: BuildSummary | None = None
    artifacts: list[ArtifactSummary] | None = None
    error: dict[str, Any] | None = None


class ListBuildsResponse(BaseModel):
    """Response for list_builds tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    builds: list[BuildSummary]
    total: int
    error: dict[str, Any] | None = None


class GenerateProjectResponse(BaseModel):
    """Response for generate_project tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    download_url: str | None = None
    file_name: str | None = None
    size_bytes: int | None = None
    error: dict[str, Any] | None = None


class RenderWorkflowResponse(BaseModel):
    """Response for render_workflow tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    file_name: str | None = None
    content: str | None = None
    error: dict[str, Any] | None = None


__all__ = [
    "BuildStatusResponse",
    "CreateBuildResponse",
    "GenerateProjectResponse",
    "GetBuildResponse",
    "ListBuildsResponse",
    "RenderWorkflowResponse",
]
