"""Project generation endpoint.

- POST /projects - Generate a wrapper project zip without running CI
"""

from contextlib import closing
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from web2desk.config import Settings
from web2desk.projects.service import ProjectGenerationError, generate_project
from web2desk.storage import StorageError, get_blob_store
from web2desk.types import Framework, TargetOS, WrapperMode
from web.deps import get_app_settings

router = APIRouter()


class ProjectRequest(BaseModel):
    """Request body for project generation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    app_name: str
    source_url: str | None = None
    framework: Framework
    target_os: TargetOS
    wrapper_mode: WrapperMode = WrapperMode.WEBVIEW


@router.post("", status_code=status.HTTP_201_CREATED)
def generate_project_endpoint(
    request: ProjectRequest,
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Generate a project and return its download URL.

    Raises:
        HTTPException: 400 for invalid input, 500 when storage fails.
    """
    try:
        with closing(get_blob_store(settings)) as store:
            project = generate_project(
                store,
                app_name=request.app_name,
                framework=request.framework,
                target_os=request.target_os,
                source_url=request.source_url,
                wrapper_mode=request.wrapper_mode,
            )
    except ProjectGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e)},
        ) from None
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": e.code, "message": str(e)},
        ) from None

    return {
        "downloadUrl": project.download_url,
        "fileName": project.file_name,
        "framework": project.framework.value,
        "targetOs": project.target_os.value,
        "sizeBytes": project.size_bytes,
    }
