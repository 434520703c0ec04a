"""Build ORM models.

This module defines the Build and Artifact models that record a
conversion request's lifecycle and the installers it produced.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from web2desk.builds.state import check_transition, is_terminal
from web2desk.db import Base
from web2desk.types import BuildStatus


def _new_build_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Build(Base):
    """ORM model for a single conversion request.

    Attributes:
        id: Opaque server-assigned identifier (hex UUID).
        app_name: Display name of the packaged app.
        framework: Packaging framework (electron, tauri, capacitor, react-native).
        target_os: Target OS or mobile platform.
        source_type: Source kind (url, github, zip).
        source_url: Source URL or repository, None for archive uploads.
        wrapper_mode: webview (remote URL) or pwa (bundled page).
        strategy: Orchestration strategy that owns this build.
        ci_repository: owner/repo the CI workflow runs in.
        ci_workflow: Workflow file name that was dispatched.
        ci_ref: Git ref the workflow was dispatched on.
        ci_run_id: Matched CI run identifier, once known.
        ci_run_url: Web URL of the matched CI run.
        status: Current BuildStatus value.
        error_message: Failure reason, set only on failure.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        dispatched_at: When the CI workflow was dispatched.
        completed_at: Set exactly once, on terminal success.
        archived_at: When the matched run's bundles were fully archived.
    """

    __tablename__ = "builds"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_build_id)

    # Request
    app_name: Mapped[str] = mapped_column(String(255), nullable=False)
    framework: Mapped[str] = mapped_column(String(20), nullable=False)
    target_os: Mapped[str] = mapped_column(String(20), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    wrapper_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    strategy: Mapped[str] = mapped_column(String(20), nullable=False)

    # CI correlation
    ci_repository: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ci_workflow: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ci_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ci_run_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ci_run_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Status and timing
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.QUEUED.value, index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_utcnow
    )
    dispatched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    artifacts: Mapped[list["Artifact"]] = relationship(
        "Artifact",
        back_populates="build",
        cascade="all, delete-orphan",
        order_by="Artifact.id",
    )

    __table_args__ = (Index("ix_builds_framework_os", "framework", "target_os"),)

    def __repr__(self) -> str:
        """Return string representation of Build."""
        return (
            f"<Build(id='{self.id}', app_name='{self.app_name}', "
            f"framework='{self.framework}', target_os='{self.target_os}', "
            f"status='{self.status}')>"
        )

    @property
    def build_status(self) -> BuildStatus:
        """Current status as a BuildStatus enum."""
        return BuildStatus(self.status)

    def is_terminal(self) -> bool:
        """Check if this build reached completed or failed."""
        return is_terminal(self.build_status)

    def is_completed(self) -> bool:
        """Check if this build completed successfully."""
        return self.status == BuildStatus.COMPLETED.value

    def transition_to(self, status: BuildStatus) -> bool:
        """Move this build to a new status.

        Args:
            status: Target status.

        Returns:
            True if the status changed, False for an identical write.

        Raises:
            InvalidTransitionError: If the move is backwards or would
                overwrite a terminal status.
        """
        check_transition(self.build_status, status)
        if self.status == status.value:
            return False
        self.status = status.value
        return True

    def mark_completed(self) -> bool:
        """Mark this build as completed, stamping completed_at once."""
        changed = self.transition_to(BuildStatus.COMPLETED)
        if self.completed_at is None:
            self.completed_at = _utcnow()
        return changed

    def mark_failed(self, message: str | None = None) -> bool:
        """Mark this build as failed.

        Args:
            message: Failure reason recorded as error_message.
        """
        changed = self.transition_to(BuildStatus.FAILED)
        if changed and message:
            self.error_message = message
        return changed


class Artifact(Base):
    """ORM model for an installer produced by a build.

    Attributes:
        id: Primary key.
        build_id: Foreign key to Build.
        file_type: Extension-derived category (exe, msi, dmg, deb, apk, ...).
        file_name: File name, unique within the build.
        file_size: Human-readable size (e.g. "1.5 KB").
        size_bytes: Size in bytes.
        storage_path: Path of the object in blob storage.
        download_url: Public download URL once the upload succeeded.
        created_at: Creation timestamp.
    """

    __tablename__ = "build_artifacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    build_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("builds.id"), nullable=False, index=True
    )

    file_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[str] = mapped_column(String(32), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)
    download_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    build: Mapped["Build"] = relationship("Build", back_populates="artifacts")

    __table_args__ = (
        UniqueConstraint("build_id", "file_name", name="uq_build_artifacts_name"),
    )

    def __repr__(self) -> str:
        """Return string representation of Artifact."""
        return (
            f"<Artifact(id={self.id}, file_name='{self.file_name}', "
            f"file_type='{self.file_type}', size='{self.file_size}')>"
        )


__all__ = ["Artifact", "Build"]
