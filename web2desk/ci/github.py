"""GitHub Actions REST client.

This module handles:
- Repository metadata (default branch)
- Reading and writing workflow files via the contents API
- Dispatching workflow_dispatch events
- Listing workflow runs and their artifact bundles
- Downloading artifact bundles (zip)
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO

import httpx

from web2desk.config import Settings, get_settings

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class CIRequestError(Exception):
    """Raised when a CI API request fails.

    Attributes:
        code: One of ``http_error``, ``timeout``, ``network_error`` or
            ``too_large``.
        status_code: HTTP status, when the server answered.
        body: Response body, when the server answered.
    """

    def __init__(
        self,
        message: str,
        code: str = "http_error",
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        """Initialize CIRequestError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            status_code: HTTP status code of the failed response.
            body: Body text of the failed response.
        """
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.body = body


def _translate_error(method: str, path: str, error: httpx.HTTPError) -> CIRequestError:
    if isinstance(error, httpx.HTTPStatusError):
        return CIRequestError(
            f"{method} {path} failed: {error.response.status_code} {error.response.text}",
            code="http_error",
            status_code=error.response.status_code,
            body=error.response.text,
        )
    if isinstance(error, httpx.TimeoutException):
        return CIRequestError(f"Timeout on {method} {path}", code="timeout")
    return CIRequestError(f"Network error on {method} {path}: {error}", code="network_error")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class WorkflowRun:
    """A single workflow run as reported by the Actions API."""

    id: int
    status: str
    conclusion: str | None
    display_title: str = ""
    html_url: str | None = None
    created_at: datetime | None = None
    inputs: dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WorkflowRun:
        """Build a WorkflowRun from a runs-listing entry."""
        return cls(
            id=int(data["id"]),
            status=data.get("status") or "",
            conclusion=data.get("conclusion"),
            display_title=data.get("display_title") or data.get("name") or "",
            html_url=data.get("html_url"),
            created_at=_parse_timestamp(data.get("created_at")),
            inputs=data.get("inputs") or {},
        )


@dataclass
class RunArtifact:
    """An artifact bundle attached to a workflow run."""

    id: int
    name: str
    size_in_bytes: int = 0
    expired: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RunArtifact:
        """Build a RunArtifact from an artifacts-listing entry."""
        return cls(
            id=int(data["id"]),
            name=data.get("name") or f"artifact-{data['id']}",
            size_in_bytes=int(data.get("size_in_bytes") or 0),
            expired=bool(data.get("expired", False)),
        )


class GitHubClient:
    """Thin synchronous client for the GitHub REST endpoints used by builds.

    Args:
        token: Token with contents and actions scope.
        api_url: REST API base URL.
        timeout: Timeout for API requests in seconds.
        download_timeout: Timeout for artifact downloads in seconds.
        client: Optional pre-configured httpx client (tests).
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        download_timeout: float = 600.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.download_timeout = download_timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> GitHubClient:
        """Create a client from settings.

        Raises:
            ValueError: If no GitHub token is configured.
        """
        if settings is None:
            settings = get_settings()
        if settings.github_token is None:
            raise ValueError("W2D_GITHUB_TOKEN is not configured")
        return cls(
            token=settings.github_token.get_secret_value(),
            api_url=settings.github_api_url,
            timeout=settings.http_timeout,
            download_timeout=settings.download_timeout,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> httpx.Response | None:
        """Send a request and translate failures into CIRequestError.

        Returns:
            The response, or None for a 404 when ``allow_404`` is set.
        """
        url = f"{self.api_url}{path}"
        try:
            response = self._client.request(method, url, headers=self._headers, **kwargs)
            if allow_404 and response.status_code == 404:
                return None
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            raise _translate_error(method, path, e) from e

    def get_default_branch(self, repo: str) -> str:
        """Return the repository's default branch, "main" if unreported."""
        response = self._request("GET", f"/repos/{repo}")
        assert response is not None
        return response.json().get("default_branch") or "main"

    def get_file(self, repo: str, path: str, ref: str | None = None) -> str | None:
        """Read a text file from a repository.

        Args:
            repo: Repository as owner/repo.
            path: File path inside the repository.
            ref: Branch or commit; repository default when None.

        Returns:
            Decoded file content, or None when the file does not exist.
        """
        params = {"ref": ref} if ref else None
        response = self._request(
            "GET", f"/repos/{repo}/contents/{path}", allow_404=True, params=params
        )
        if response is None:
            return None
        data = response.json()
        content = data.get("content") or ""
        return base64.b64decode(content).decode("utf-8")

    def put_file(
        self,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str | None = None,
    ) -> None:
        """Create a file in a repository via the contents API."""
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if branch:
            payload["branch"] = branch
        self._request("PUT", f"/repos/{repo}/contents/{path}", json=payload)
        logger.info("Wrote %s to %s", path, repo)

    def dispatch_workflow(
        self,
        repo: str,
        workflow: str,
        ref: str,
        inputs: dict[str, str],
    ) -> None:
        """Trigger a workflow_dispatch event.

        Raises:
            CIRequestError: If the API does not accept the dispatch.
        """
        self._request(
            "POST",
            f"/repos/{repo}/actions/workflows/{workflow}/dispatches",
            json={"ref": ref, "inputs": inputs},
        )
        logger.info("Dispatched %s on %s@%s", workflow, repo, ref)

    def list_workflow_runs(
        self,
        repo: str,
        workflow: str | None = None,
        limit: int = 10,
    ) -> list[WorkflowRun]:
        """List recent workflow_dispatch runs, newest first.

        Args:
            repo: Repository as owner/repo.
            workflow: Restrict to one workflow file; all workflows when None.
            limit: Maximum number of runs returned.
        """
        if workflow:
            path = f"/repos/{repo}/actions/workflows/{workflow}/runs"
        else:
            path = f"/repos/{repo}/actions/runs"
        response = self._request(
            "GET", path, params={"event": "workflow_dispatch", "per_page": limit}
        )
        assert response is not None
        return [
            WorkflowRun.from_api(run)
            for run in response.json().get("workflow_runs", [])
        ]

    def list_run_artifacts(self, repo: str, run_id: int) -> list[RunArtifact]:
        """List artifact bundles of a run, skipping expired ones."""
        response = self._request(
            "GET", f"/repos/{repo}/actions/runs/{run_id}/artifacts"
        )
        assert response is not None
        artifacts = [
            RunArtifact.from_api(item)
            for item in response.json().get("artifacts", [])
        ]
        return [a for a in artifacts if not a.expired]

    def download_artifact(
        self,
        repo: str,
        artifact_id: int,
        dest: BinaryIO,
        max_bytes: int | None = None,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> int:
        """Stream an artifact bundle (zip) into a file object.

        Args:
            repo: Repository as owner/repo.
            artifact_id: Artifact bundle ID.
            dest: Writable binary file object.
            max_bytes: Abort once the bundle grows past this size.
            chunk_size: Size of chunks to download.

        Returns:
            Number of bytes written.

        Raises:
            CIRequestError: If the download fails, or with code ``too_large``
                when the bundle exceeds ``max_bytes``.
        """
        path = f"/repos/{repo}/actions/artifacts/{artifact_id}/zip"
        total_bytes = 0
        try:
            with self._client.stream(
                "GET",
                f"{self.api_url}{path}",
                headers=self._headers,
                follow_redirects=True,
                timeout=self.download_timeout,
            ) as response:
                if response.is_error:
                    response.read()
                response.raise_for_status()
                for chunk in response.iter_bytes(chunk_size):
                    total_bytes += len(chunk)
                    if max_bytes is not None and total_bytes > max_bytes:
                        raise CIRequestError(
                            f"Bundle {artifact_id} exceeds {max_bytes} bytes",
                            code="too_large",
                        )
                    dest.write(chunk)
        except httpx.HTTPError as e:
            raise _translate_error("GET", path, e) from e

        logger.info("Downloaded bundle %d (%d bytes)", artifact_id, total_bytes)
        return total_bytes


__all__ = [
    "GITHUB_API_VERSION",
    "CIRequestError",
    "GitHubClient",
    "RunArtifact",
    "WorkflowRun",
]
