"""Blob storage for installers and generated projects.

This module handles:
- A small BlobStore protocol shared by all backends
- Local filesystem storage with atomic writes, served under /files
- Supabase object storage over its REST API
- Backend selection from settings
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol

import httpx

from web2desk.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a blob cannot be stored or located."""

    def __init__(self, message: str, code: str = "storage_error") -> None:
        """Initialize StorageError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class BlobStore(Protocol):
    """Interface for blob storage backends."""

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``path`` and return its public URL."""
        ...

    def public_url(self, path: str) -> str:
        """Return the public URL for ``path``."""
        ...

    def exists(self, path: str) -> bool:
        """Check whether an object exists at ``path``."""
        ...

    def close(self) -> None:
        """Release any connections held by the store."""
        ...


def _normalize_path(path: str) -> str:
    """Validate a storage path and return it in canonical form.

    Raises:
        StorageError: If the path is empty, absolute or escapes the root.
    """
    pure = PurePosixPath(path)
    if not path or pure.is_absolute() or ".." in pure.parts:
        raise StorageError(f"Invalid storage path: {path!r}", code="invalid_path")
    return str(pure)


class LocalBlobStore:
    """Store blobs on the local filesystem."""

    def __init__(self, root: Path, base_url: str) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        return self.root / _normalize_path(path)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Write ``data`` atomically and return its public URL.

        Raises:
            StorageError: If the file cannot be written.
        """
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

        logger.debug("Stored %s (%d bytes, %s)", path, len(data), content_type)
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{_normalize_path(path)}"

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def close(self) -> None:
        return None


class SupabaseBlobStore:
    """Store blobs in a Supabase storage bucket.

    Objects are uploaded with upsert enabled, so re-uploading the same path
    replaces the object.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _object_url(self, path: str) -> str:
        return (
            f"{self.base_url}/storage/v1/object/{self.bucket}/{_normalize_path(path)}"
        )

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Upload ``data`` and return its public URL.

        Raises:
            StorageError: If the storage API rejects the upload or is unreachable.
        """
        headers = {
            **self._headers,
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            response = self._client.post(
                self._object_url(path), content=data, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"Upload of {path} failed: {e.response.status_code} {e.response.text}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise StorageError(f"Timeout uploading {path}", code="timeout") from e
        except httpx.RequestError as e:
            raise StorageError(
                f"Network error uploading {path}: {e}", code="network_error"
            ) from e

        logger.debug("Uploaded %s to bucket %s", path, self.bucket)
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        return (
            f"{self.base_url}/storage/v1/object/public/"
            f"{self.bucket}/{_normalize_path(path)}"
        )

    def exists(self, path: str) -> bool:
        try:
            response = self._client.head(
                self.public_url(path), headers=self._headers
            )
        except httpx.RequestError as e:
            raise StorageError(
                f"Network error checking {path}: {e}", code="network_error"
            ) from e
        return response.status_code == 200

    def close(self) -> None:
        self._client.close()


def get_blob_store(settings: Settings | None = None) -> BlobStore:
    """Create the blob store configured in settings.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        LocalBlobStore or SupabaseBlobStore.

    Raises:
        StorageError: If the supabase backend is selected without credentials.
    """
    if settings is None:
        settings = get_settings()

    if settings.storage_backend == "supabase":
        if not settings.supabase_url or settings.supabase_service_key is None:
            raise StorageError(
                "Supabase storage requires W2D_SUPABASE_URL and "
                "W2D_SUPABASE_SERVICE_KEY",
                code="configuration_error",
            )
        return SupabaseBlobStore(
            base_url=settings.supabase_url,
            service_key=settings.supabase_service_key.get_secret_value(),
            bucket=settings.storage_bucket,
            timeout=settings.http_timeout,
        )

    return LocalBlobStore(settings.storage_dir, settings.public_base_url)


__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "StorageError",
    "SupabaseBlobStore",
    "get_blob_store",
]
