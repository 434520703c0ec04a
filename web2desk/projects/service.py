"""Project generation service.

Renders a wrapper project, packs it into a zip namespaced under the app
slug and stores it in blob storage. This flow never calls CI.
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone

from web2desk.projects.templates import (
    ProjectFiles,
    ProjectParams,
    generate_project_files,
    sanitize_app_name,
)
from web2desk.storage import BlobStore
from web2desk.types import Framework, TargetOS, WrapperMode, is_supported_platform

logger = logging.getLogger(__name__)


class ProjectGenerationError(Exception):
    """Raised when a project cannot be generated."""

    def __init__(self, message: str, code: str = "validation") -> None:
        """Initialize ProjectGenerationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass
class GeneratedProject:
    """A generated project archive stored in blob storage."""

    download_url: str
    file_name: str
    framework: Framework
    target_os: TargetOS
    storage_path: str
    size_bytes: int


def pack_project(slug: str, files: ProjectFiles) -> bytes:
    """Zip a file mapping with every path placed under ``slug/``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(files):
            zf.writestr(f"{slug}/{path}", files[path])
    return buffer.getvalue()


def generate_project(
    store: BlobStore,
    app_name: str,
    framework: Framework | str,
    target_os: TargetOS | str,
    source_url: str | None = None,
    wrapper_mode: WrapperMode | str = WrapperMode.WEBVIEW,
    now: datetime | None = None,
) -> GeneratedProject:
    """Generate a wrapper project and store it as a zip.

    Args:
        store: Blob store receiving the archive.
        app_name: Display name of the app.
        framework: Packaging framework.
        target_os: Target OS or mobile platform.
        source_url: URL the wrapper loads in webview mode.
        wrapper_mode: webview or pwa.
        now: Timestamp used in the storage path (defaults to current time).

    Returns:
        GeneratedProject with the public download URL.

    Raises:
        ProjectGenerationError: If the app name is empty or the
            framework/OS pair is unsupported.
        StorageError: If the upload fails.
    """
    framework = Framework(framework)
    target_os = TargetOS(target_os)
    wrapper_mode = WrapperMode(wrapper_mode)

    if not app_name or not app_name.strip():
        raise ProjectGenerationError("App name is required")
    if not is_supported_platform(framework, target_os):
        raise ProjectGenerationError(
            f"Framework '{framework.value}' does not support target OS "
            f"'{target_os.value}'"
        )

    app_name = app_name.strip()
    slug = sanitize_app_name(app_name)
    params = ProjectParams(
        app_name=app_name,
        source_url=(source_url or "").strip(),
        framework=framework,
        target_os=target_os,
        wrapper_mode=wrapper_mode,
    )
    data = pack_project(slug, generate_project_files(params))

    if now is None:
        now = datetime.now(timezone.utc)
    file_name = f"{slug}-{framework.value}-{target_os.value}.zip"
    storage_path = f"projects/{int(now.timestamp() * 1000)}-{file_name}"

    download_url = store.upload(storage_path, data, "application/zip")
    logger.info("Generated project %s (%d bytes) at %s", file_name, len(data), storage_path)

    return GeneratedProject(
        download_url=download_url,
        file_name=file_name,
        framework=framework,
        target_os=target_os,
        storage_path=storage_path,
        size_bytes=len(data),
    )


__all__ = [
    "GeneratedProject",
    "ProjectGenerationError",
    "generate_project",
    "pack_project",
]
