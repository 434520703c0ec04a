"""Workflow rendering endpoint.

- GET /workflows/{framework}/{os} - Render the CI workflow YAML
"""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import PlainTextResponse

from web2desk.types import Framework, TargetOS
from web2desk.workflows.synth import (
    UnsupportedPlatformError,
    synthesize_workflow,
    workflow_file_name,
)

router = APIRouter()


@router.get("/{framework}/{target_os}", response_class=PlainTextResponse)
def render_workflow_endpoint(framework: Framework, target_os: TargetOS) -> PlainTextResponse:
    """Render the workflow for a framework and OS as YAML."""
    try:
        content = synthesize_workflow(framework, target_os)
    except UnsupportedPlatformError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e)},
        ) from None
    return PlainTextResponse(
        content,
        media_type="application/x-yaml",
        headers={
            "Content-Disposition": (
                f'inline; filename="{workflow_file_name(framework, target_os)}"'
            )
        },
    )
