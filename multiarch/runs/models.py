"""Run ledger ORM models.

This module defines the RunRecord, BuildJobRecord and TagRecord models
recording each coordinated run, its per-platform build jobs, and where
each tag currently points.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from multiarch.db import Base
from multiarch.types import BuildStatus, RunState


class RunRecord(Base):
    """ORM model for one coordinated build-and-publish run.

    Attributes:
        id: Primary key.
        repository: Target repository coordinate.
        trigger_event: Trigger event (push, schedule, manual).
        commit_sha: Source commit identifier.
        state: Current RunState value.
        platforms: Ordered platform strings configured for the run.
        tags: Resolved tags, primary first.
        digests: Distinct digests published (set once merged).
        requested_at: When the run was created.
        started_at: When builds were dispatched.
        finished_at: When the run reached a terminal state.
        error_type: Error code if the run failed.
        error_message: Error message if the run failed.
    """

    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repository: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    trigger_event: Mapped[str] = mapped_column(String(20), nullable=False)
    commit_sha: Mapped[str] = mapped_column(String(64), nullable=False)

    state: Mapped[str] = mapped_column(
        String(30), nullable=False, default=RunState.DISPATCHED.value, index=True
    )
    platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    digests: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    jobs: Mapped[list["BuildJobRecord"]] = relationship(
        "BuildJobRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="BuildJobRecord.id",
    )

    __table_args__ = (Index("ix_runs_repository_state", "repository", "state"),)

    def __repr__(self) -> str:
        """Return string representation of RunRecord."""
        return (
            f"<RunRecord(id={self.id}, repository='{self.repository}', "
            f"state='{self.state}')>"
        )

    @property
    def primary_tag(self) -> str | None:
        """Highest priority tag of the run."""
        return self.tags[0] if self.tags else None

    def mark_failed(self, error_type: str, message: str) -> None:
        """Record the failure that ended this run.

        Args:
            error_type: Stable error code.
            message: Error message details.
        """
        self.error_type = error_type
        self.error_message = message
        self.finished_at = datetime.now()


class BuildJobRecord(Base):
    """ORM model for one platform build within a run.

    Attributes:
        id: Primary key.
        run_id: Foreign key to RunRecord.
        platform: Platform string ('os/arch[/variant]').
        status: BuildStatus value.
        digest: Pushed digest (on success).
        log_path: Path to the build log file.
        started_at: When the build started.
        finished_at: When the build reached a terminal state.
        error_type: Failure code if the build failed.
        error_message: Failure message if the build failed.
    """

    __tablename__ = "build_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("runs.id"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value
    )
    digest: Mapped[str | None] = mapped_column(String(80), nullable=True)
    log_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    run: Mapped["RunRecord"] = relationship("RunRecord", back_populates="jobs")

    def __repr__(self) -> str:
        """Return string representation of BuildJobRecord."""
        return (
            f"<BuildJobRecord(id={self.id}, run_id={self.run_id}, "
            f"platform='{self.platform}', status='{self.status}')>"
        )


class TagRecord(Base):
    """ORM model mirroring where a published tag currently points.

    One row per (repository, name); every successful publish repoints
    the row instead of adding a new one.

    Attributes:
        id: Primary key.
        repository: Repository coordinate.
        name: Tag name.
        run_id: Run that last published the tag.
        digests: Platform digests of the manifest list the tag points at.
        updated_at: When the tag was last repointed.
    """

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repository: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    run_id: Mapped[int] = mapped_column(Integer, ForeignKey("runs.id"), nullable=False)
    digests: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("repository", "name", name="uq_tags_repository_name"),
    )

    def __repr__(self) -> str:
        """Return string representation of TagRecord."""
        return (
            f"<TagRecord(repository='{self.repository}', name='{self.name}', "
            f"run_id={self.run_id})>"
        )


__all__ = ["BuildJobRecord", "RunRecord", "TagRecord"]
