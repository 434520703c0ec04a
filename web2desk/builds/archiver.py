"""Artifact archiving from CI runs.

This module handles:
- Listing and downloading a run's artifact bundles (zip containers)
- Selecting installer files by extension
- Uploading installers to blob storage
- Recording one Artifact row per stored installer, at most once per name
"""

from __future__ import annotations

import logging
import re
import tempfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from web2desk.builds.models import Artifact, Build
from web2desk.ci.github import CIRequestError, GitHubClient
from web2desk.projects.templates import sanitize_app_name
from web2desk.storage import BlobStore, StorageError
from web2desk.types import ArtifactInfo

logger = logging.getLogger(__name__)

INSTALLER_EXTENSIONS = frozenset(
    {"exe", "msi", "dmg", "pkg", "deb", "rpm", "appimage", "apk", "aab", "ipa"}
)

CONTENT_TYPES = {
    "exe": "application/vnd.microsoft.portable-executable",
    "msi": "application/x-msi",
    "dmg": "application/x-apple-diskimage",
    "pkg": "application/octet-stream",
    "deb": "application/vnd.debian.binary-package",
    "rpm": "application/x-rpm",
    "appimage": "application/vnd.appimage",
    "apk": "application/vnd.android.package-archive",
    "aab": "application/octet-stream",
    "ipa": "application/octet-stream",
    "zip": "application/zip",
}

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class ArchiveResult:
    """Outcome of archiving one run's artifacts."""

    archived: list[ArtifactInfo] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    complete: bool = False


def classify_artifact(file_name: str) -> str | None:
    """Return the installer type for a file name, or None if not an installer."""
    suffix = PurePosixPath(file_name).suffix.lower().lstrip(".")
    return suffix if suffix in INSTALLER_EXTENSIONS else None


def content_type_for(file_type: str) -> str:
    """Return the content type used when uploading a file of this type."""
    return CONTENT_TYPES.get(file_type, "application/octet-stream")


def format_file_size(size_bytes: int) -> str:
    """Format a byte count with binary units.

    Examples: ``0`` -> ``"0 Bytes"``, ``1536`` -> ``"1.5 KB"``,
    ``1048576`` -> ``"1.0 MB"``.
    """
    if size_bytes <= 0:
        return "0 Bytes"
    value = float(size_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{size_bytes} Bytes"
    return f"{round(value, 2)} {_SIZE_UNITS[unit]}"


def artifact_output_name(app_name: str, bundle_name: str, entry_name: str) -> str:
    """Build the stored file name ``<app-slug>-<bundle>-<base-name>``."""
    base = _WHITESPACE.sub("-", PurePosixPath(entry_name).name)
    return f"{sanitize_app_name(app_name)}-{bundle_name}-{base}"


def record_artifact(session: Session, build: Build, info: ArtifactInfo) -> bool:
    """Insert an Artifact row inside a savepoint.

    Returns:
        False if another writer recorded the same name first.
    """
    artifact = Artifact(
        build_id=build.id,
        file_type=info.file_type,
        file_name=info.file_name,
        file_size=format_file_size(info.size_bytes),
        size_bytes=info.size_bytes,
        storage_path=info.storage_path,
        download_url=info.download_url,
    )
    try:
        with session.begin_nested():
            build.artifacts.append(artifact)
    except IntegrityError:
        logger.info("Artifact %s already recorded for build %s", info.file_name, build.id)
        return False
    return True


def _is_transient(error: CIRequestError) -> bool:
    if error.code in ("timeout", "network_error"):
        return True
    return error.status_code is not None and (error.status_code >= 500 or error.status_code == 429)


def _archive_entries(
    session: Session,
    build: Build,
    store: BlobStore,
    bundle_name: str,
    container: zipfile.ZipFile,
    existing: set[str],
    max_bytes: int,
    result: ArchiveResult,
) -> bool:
    """Upload and record the installers of one opened bundle.

    Returns:
        True if an upload failed and the bundle should be archived again.
    """
    upload_failed = False
    for entry in container.infolist():
        if entry.is_dir() or entry.file_size == 0:
            continue
        file_type = classify_artifact(entry.filename)
        if file_type is None:
            continue

        file_name = artifact_output_name(build.app_name, bundle_name, entry.filename)
        if file_name in existing:
            result.skipped.append(file_name)
            continue
        if entry.file_size > max_bytes:
            logger.warning(
                "Skipping %s: %d bytes exceeds limit of %d",
                file_name,
                entry.file_size,
                max_bytes,
            )
            result.skipped.append(file_name)
            continue

        storage_path = f"builds/{build.id}/{file_name}"
        try:
            data = container.read(entry)
        except zipfile.BadZipFile as e:
            logger.error("Failed to extract %s: %s", file_name, e)
            result.failed.append(file_name)
            continue
        try:
            url = store.upload(storage_path, data, content_type_for(file_type))
        except StorageError as e:
            logger.error("Failed to archive %s: %s", file_name, e)
            result.failed.append(file_name)
            upload_failed = True
            continue

        info = ArtifactInfo(
            file_name=file_name,
            file_type=file_type,
            size_bytes=len(data),
            storage_path=storage_path,
            download_url=url,
            bundle_name=bundle_name,
        )
        existing.add(file_name)
        if record_artifact(session, build, info):
            result.archived.append(info)
        else:
            result.skipped.append(file_name)
    return upload_failed


def archive_run_artifacts(
    session: Session,
    build: Build,
    client: GitHubClient,
    store: BlobStore,
    repo: str,
    run_id: int,
    max_bytes: int,
    max_bundle_bytes: int | None = None,
) -> ArchiveResult:
    """Copy a completed run's installers into blob storage.

    Bundles are spooled to a temporary file rather than held in memory.
    Once every bundle has been handled, ``build.archived_at`` is stamped
    so later status checks do not download the run again. Transient
    download errors and failed uploads leave it unset.

    Args:
        session: Database session.
        build: Build the run belongs to.
        client: GitHub client.
        store: Blob store for installers.
        repo: Repository (owner/repo) the run belongs to.
        run_id: Workflow run ID.
        max_bytes: Largest single installer accepted.
        max_bundle_bytes: Largest bundle downloaded, unlimited when None.

    Returns:
        ArchiveResult listing archived, skipped and failed file names.

    Raises:
        CIRequestError: If the run's bundles cannot be listed.
    """
    result = ArchiveResult()
    existing = {a.file_name for a in build.artifacts}
    retry_later = False

    bundles = client.list_run_artifacts(repo, run_id)
    logger.info("Run %d of build %s has %d bundle(s)", run_id, build.id, len(bundles))

    for bundle in bundles:
        with tempfile.TemporaryFile() as spool:
            try:
                client.download_artifact(repo, bundle.id, spool, max_bytes=max_bundle_bytes)
            except CIRequestError as e:
                logger.error("Failed to download bundle %s: %s", bundle.name, e)
                result.failed.append(bundle.name)
                retry_later = retry_later or _is_transient(e)
                continue

            spool.seek(0)
            try:
                container = zipfile.ZipFile(spool)
            except zipfile.BadZipFile:
                logger.error("Bundle %s is not a valid zip archive", bundle.name)
                result.failed.append(bundle.name)
                continue

            with container:
                if _archive_entries(
                    session, build, store, bundle.name, container, existing, max_bytes, result
                ):
                    retry_later = True

    if retry_later:
        logger.warning("Archiving for build %s incomplete; will retry", build.id)
    else:
        build.archived_at = datetime.now(timezone.utc)
        result.complete = True

    logger.info(
        "Archived %d installer(s) for build %s (%d skipped, %d failed)",
        len(result.archived),
        build.id,
        len(result.skipped),
        len(result.failed),
    )
    return result


__all__ = [
    "CONTENT_TYPES",
    "INSTALLER_EXTENSIONS",
    "ArchiveResult",
    "archive_run_artifacts",
    "artifact_output_name",
    "classify_artifact",
    "content_type_for",
    "format_file_size",
    "record_artifact",
]
