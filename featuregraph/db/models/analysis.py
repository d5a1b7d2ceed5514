"""AnalysisJob model for tracking workspace re-analysis runs.

Each orchestrated analysis of a workspace is recorded as a job so that
overlapping invocations can be detected and serialized.
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDPrimaryKeyMixin, enum_values, generate_repr


class AnalysisJobStatus(str, enum.Enum):
    """Status of an analysis job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_finished(self) -> bool:
        return self in (
            AnalysisJobStatus.COMPLETED,
            AnalysisJobStatus.FAILED,
            AnalysisJobStatus.CANCELLED,
        )


class AnalysisJob(Base, UUIDPrimaryKeyMixin):
    """A single workspace re-analysis run.

    Attributes:
        id: UUID primary key
        workspace_id: Workspace being analyzed
        status: queued, running, completed, failed or cancelled
        triggered_by: What requested the run (user, batch, api, cli)
        result: Summary returned by the run
        error_message: Error message if the run failed or was cancelled
        started_at: When the run started
        completed_at: When the run finished
        created_at: When the run was requested
    """

    __tablename__ = "analysis_jobs"

    workspace_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    status: Mapped[AnalysisJobStatus] = mapped_column(
        Enum(AnalysisJobStatus, name="analysis_job_status", values_callable=enum_values),
        default=AnalysisJobStatus.QUEUED,
        nullable=False,
    )
    triggered_by: Mapped[str] = mapped_column(
        String(32),
        default="user",
        nullable=False,
    )
    result: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_analysis_jobs_workspace_status", "workspace_id", "status"),
        Index("ix_analysis_jobs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return generate_repr(self, "id", "workspace_id", "status")
