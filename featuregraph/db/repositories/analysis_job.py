"""Repository for AnalysisJob rows."""

from datetime import timedelta
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from featuregraph.db.models import AnalysisJob, AnalysisJobStatus
from featuregraph.db.models.base import utc_now
from featuregraph.errors import AnalysisJobNotFoundError


class AnalysisJobRepository:
    """Data access for analysis job tracking."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        workspace_id: str,
        triggered_by: str = "user",
        status: AnalysisJobStatus = AnalysisJobStatus.QUEUED,
    ) -> AnalysisJob:
        job = AnalysisJob(workspace_id=workspace_id, triggered_by=triggered_by, status=status)
        if status == AnalysisJobStatus.RUNNING:
            job.started_at = utc_now()
        self.session.add(job)
        self.session.flush()
        return job

    def get_by_id(self, job_id: UUID) -> Optional[AnalysisJob]:
        return self.session.get(AnalysisJob, job_id)

    def get_by_id_or_raise(self, job_id: UUID) -> AnalysisJob:
        job = self.get_by_id(job_id)
        if job is None:
            raise AnalysisJobNotFoundError(job_id)
        return job

    def find_running(
        self,
        workspace_id: str,
        stale_after: timedelta,
        exclude_job_id: Optional[UUID] = None,
    ) -> Optional[AnalysisJob]:
        """Return a non-stale running job for the workspace, if any."""
        cutoff = utc_now() - stale_after
        query = select(AnalysisJob).where(
            AnalysisJob.workspace_id == workspace_id,
            AnalysisJob.status == AnalysisJobStatus.RUNNING,
            AnalysisJob.started_at > cutoff,
        )
        if exclude_job_id is not None:
            query = query.where(AnalysisJob.id != exclude_job_id)
        return self.session.execute(query.order_by(AnalysisJob.started_at.desc()).limit(1)).scalar_one_or_none()

    def fail_stale(self, workspace_id: str, stale_after: timedelta) -> int:
        """Mark running jobs older than ``stale_after`` as failed."""
        cutoff = utc_now() - stale_after
        stale = self.session.execute(
            select(AnalysisJob).where(
                AnalysisJob.workspace_id == workspace_id,
                AnalysisJob.status == AnalysisJobStatus.RUNNING,
                AnalysisJob.started_at <= cutoff,
            )
        ).scalars().all()
        for job in stale:
            job.status = AnalysisJobStatus.FAILED
            job.completed_at = utc_now()
            job.error_message = "Abandoned: exceeded stale job window"
        self.session.flush()
        return len(stale)

    def mark_running(self, job: AnalysisJob) -> AnalysisJob:
        job.status = AnalysisJobStatus.RUNNING
        job.started_at = utc_now()
        self.session.flush()
        return job

    def finish(
        self,
        job_id: UUID,
        status: AnalysisJobStatus,
        result: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> AnalysisJob:
        job = self.get_by_id_or_raise(job_id)
        job.status = status
        job.completed_at = utc_now()
        job.result = result
        job.error_message = error_message
        self.session.flush()
        return job

    def list_for_workspace(self, workspace_id: str, limit: int = 20) -> List[AnalysisJob]:
        return list(
            self.session.execute(
                select(AnalysisJob)
                .where(AnalysisJob.workspace_id == workspace_id)
                .order_by(AnalysisJob.created_at.desc())
                .limit(limit)
            ).scalars()
        )

