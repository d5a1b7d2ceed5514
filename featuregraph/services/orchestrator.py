"""Analysis Orchestrator.

The single entry point for a full re-analysis of a workspace:

1. obsolete the active system insights
2. recompute importance scores, ranks and graph flags
3. scan for new correlations
4. regenerate insights

All four steps run in one transaction, so a failed or cancelled run leaves
the previous scores and insights exactly as they were. Every run is tracked
as an ``AnalysisJob`` row committed separately from the work itself.

Runs are serialized per workspace twice over: an in-process lock keyed by
workspace id, and a check for a non-stale ``running`` job in the database
(which also covers other processes sharing the database).
"""

import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy.orm import Session, sessionmaker

from featuregraph.config import FeatureGraphConfig
from featuregraph.db.models import AnalysisJob, AnalysisJobStatus
from featuregraph.db.repositories import AnalysisJobRepository
from featuregraph.db.session import get_session_factory, get_sync_session
from featuregraph.errors import AnalysisCancelledError, AnalysisInProgressError
from featuregraph.features import FeatureStore, SqlFeatureStore
from featuregraph.services.cancellation import CancellationToken
from featuregraph.services.correlation import CorrelationDetector
from featuregraph.services.importance import ImportanceScorer
from featuregraph.services.insights import InsightGenerator

logger = structlog.get_logger(__name__)

FeatureStoreFactory = Callable[[Session], FeatureStore]


@dataclass
class AnalysisResult:
    """Summary of a completed workspace analysis."""

    job_id: UUID
    workspace_id: str
    features_scored: int
    correlations_detected: int
    insights: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["job_id"] = str(self.job_id)
        return data


class WorkspaceLockRegistry:
    """One lock per workspace, created on first use."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, workspace_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(workspace_id)
            if lock is None:
                lock = self._locks[workspace_id] = threading.Lock()
            return lock

    def acquire(self, workspace_id: str, timeout: float) -> bool:
        """Try to take the workspace lock; ``timeout`` <= 0 does not wait."""
        lock = self.get(workspace_id)
        if timeout <= 0:
            return lock.acquire(blocking=False)
        return lock.acquire(timeout=timeout)

    def release(self, workspace_id: str) -> None:
        self.get(workspace_id).release()

    def is_locked(self, workspace_id: str) -> bool:
        return self.get(workspace_id).locked()


class AnalysisOrchestrator:
    """Run, queue and cancel full workspace analyses."""

    def __init__(
        self,
        config: Optional[FeatureGraphConfig] = None,
        session_factory: Optional[sessionmaker] = None,
        feature_store_factory: FeatureStoreFactory = SqlFeatureStore,
    ):
        """Initialize the orchestrator.

        Args:
            config: Engine configuration (defaults to ``FeatureGraphConfig()``)
            session_factory: Session factory; defaults to the module-level one
            feature_store_factory: Builds the feature store for a session
        """
        self.config = config or FeatureGraphConfig()
        self.session_factory = session_factory or get_session_factory()
        self.feature_store_factory = feature_store_factory
        self.locks = WorkspaceLockRegistry()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: Dict[UUID, Future] = {}
        self._tokens: Dict[UUID, CancellationToken] = {}
        self._progress: Dict[UUID, str] = {}
        self._state_lock = threading.Lock()

    # ---------------------------------------------------------- synchronous

    def analyze_workspace(
        self,
        workspace_id: str,
        triggered_by: str = "user",
        token: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """Run a full analysis and wait for it.

        Raises:
            AnalysisInProgressError: If the workspace is already being analyzed
            AnalysisCancelledError: If the run was cancelled
            AnalysisTimeoutError: If the run exceeded its time budget
        """
        if not self.locks.acquire(workspace_id, self.config.analysis.lock_timeout_seconds):
            raise AnalysisInProgressError(workspace_id)
        try:
            with get_sync_session(self.session_factory) as session:
                job = self._claim(AnalysisJobRepository(session), workspace_id, triggered_by=triggered_by)
                job_id = job.id
            token = token or self._new_token(workspace_id)
            with self._state_lock:
                self._tokens[job_id] = token
            return self._run(job_id, workspace_id, token)
        finally:
            self.locks.release(workspace_id)

    # --------------------------------------------------------------- queued

    def submit(self, workspace_id: str, triggered_by: str = "batch") -> UUID:
        """Queue an analysis on the worker pool and return its job id.

        Queued runs of the same workspace execute one after another.

        Raises:
            AnalysisInProgressError: If a run of the workspace is already
                running in another process
        """
        with get_sync_session(self.session_factory) as session:
            jobs = AnalysisJobRepository(session)
            jobs.fail_stale(workspace_id, self._stale_after)
            running = jobs.find_running(workspace_id, self._stale_after)
            if running is not None and not self.locks.is_locked(workspace_id):
                raise AnalysisInProgressError(workspace_id, running.id)
            job_id = jobs.create(workspace_id, triggered_by=triggered_by).id

        token = self._new_token(workspace_id)
        with self._state_lock:
            self._tokens[job_id] = token
            self._futures[job_id] = self._pool().submit(self._run_queued, job_id, workspace_id, token)
        logger.bind(workspace_id=workspace_id, job_id=str(job_id)).info("analysis_queued")
        return job_id

    def cancel(self, job_id: UUID) -> bool:
        """Request cancellation of a queued or running job.

        Returns:
            False if the job had already finished
        """
        with get_sync_session(self.session_factory) as session:
            job = AnalysisJobRepository(session).get_by_id_or_raise(job_id)
            if job.status.is_finished:
                return False
        with self._state_lock:
            token = self._tokens.get(job_id)
            future = self._futures.get(job_id)
        if token is not None:
            token.cancel()
        if future is not None and future.cancel():
            self._finish(job_id, AnalysisJobStatus.CANCELLED, error_message="Cancelled before start")
            with self._state_lock:
                self._tokens.pop(job_id, None)
                self._futures.pop(job_id, None)
        logger.bind(job_id=str(job_id)).info("analysis_cancel_requested")
        return True

    def get_progress(self, job_id: UUID) -> Optional[str]:
        """Step a running job is executing, or None."""
        with self._state_lock:
            return self._progress.get(job_id)

    def get_job(self, job_id: UUID) -> AnalysisJob:
        with get_sync_session(self.session_factory) as session:
            return AnalysisJobRepository(session).get_by_id_or_raise(job_id)

    def list_jobs(self, workspace_id: str, limit: int = 20) -> list[AnalysisJob]:
        with get_sync_session(self.session_factory) as session:
            return AnalysisJobRepository(session).list_for_workspace(workspace_id, limit=limit)

    def wait(self, job_id: UUID, timeout: Optional[float] = None) -> AnalysisJob:
        """Block until a submitted job finishes and return its final row.

        Finished jobs are no longer tracked in memory; their row is read
        straight from the database.
        """
        with self._state_lock:
            future = self._futures.get(job_id)
        if future is not None:
            try:
                future.exception(timeout=timeout)
            except CancelledError:
                # cancel() already recorded the job as cancelled
                pass
        return self.get_job(job_id)

    def shutdown(self, wait: bool = True) -> None:
        with self._state_lock:
            for token in self._tokens.values():
                if not wait:
                    token.cancel()
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    # -------------------------------------------------------------- internals

    @property
    def _stale_after(self) -> timedelta:
        return timedelta(minutes=self.config.analysis.stale_job_minutes)

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, self.config.analysis.max_workers),
                thread_name_prefix="featuregraph-analysis",
            )
        return self._executor

    def _new_token(self, workspace_id: str) -> CancellationToken:
        return CancellationToken(workspace_id, self.config.analysis.time_budget_seconds)

    def _claim(
        self,
        jobs: AnalysisJobRepository,
        workspace_id: str,
        job: Optional[AnalysisJob] = None,
        triggered_by: str = "user",
    ) -> AnalysisJob:
        """Mark a job running unless another non-stale run holds the workspace."""
        jobs.fail_stale(workspace_id, self._stale_after)
        running = jobs.find_running(
            workspace_id, self._stale_after, exclude_job_id=job.id if job else None
        )
        if running is not None:
            raise AnalysisInProgressError(workspace_id, running.id)
        if job is None:
            return jobs.create(workspace_id, triggered_by=triggered_by, status=AnalysisJobStatus.RUNNING)
        return jobs.mark_running(job)

    def _run_queued(self, job_id: UUID, workspace_id: str, token: CancellationToken) -> None:
        log = logger.bind(workspace_id=workspace_id, job_id=str(job_id))
        acquired = started = False
        try:
            while not acquired:
                token.check()
                acquired = self.locks.acquire(workspace_id, timeout=0.5)

            with get_sync_session(self.session_factory) as session:
                jobs = AnalysisJobRepository(session)
                self._claim(jobs, workspace_id, job=jobs.get_by_id_or_raise(job_id))
            started = True
            self._run(job_id, workspace_id, token)
        except AnalysisCancelledError as exc:
            if not started:
                self._finish(job_id, AnalysisJobStatus.CANCELLED, error_message=str(exc))
            log.warning("queued_analysis_cancelled", reason=exc.reason)
        except AnalysisInProgressError as exc:
            self._finish(job_id, AnalysisJobStatus.FAILED, error_message=str(exc))
            log.warning("queued_analysis_rejected", error=str(exc))
        except Exception as exc:
            # _run records its own failures
            if not started:
                log.exception("queued_analysis_failed", error=str(exc))
                self._finish(job_id, AnalysisJobStatus.FAILED, error_message=str(exc))
        finally:
            if acquired:
                self.locks.release(workspace_id)
            # The job row is final by now; wait() falls back to it
            with self._state_lock:
                self._tokens.pop(job_id, None)
                self._futures.pop(job_id, None)

    def _run(self, job_id: UUID, workspace_id: str, token: CancellationToken) -> AnalysisResult:
        """Execute the analysis steps for a job already marked running."""
        log = logger.bind(workspace_id=workspace_id, job_id=str(job_id))
        log.info("analysis_started")
        start_time = time.monotonic()

        try:
            with get_sync_session(self.session_factory) as session:
                store = self.feature_store_factory(session)
                generator = InsightGenerator(session, store, self.config.insights, self.config.graph)

                token.check()
                self._step(job_id, "obsoleting_insights")
                obsoleted = generator.insights.mark_system_insights_obsolete(workspace_id)

                token.check()
                self._step(job_id, "scoring")
                scored = ImportanceScorer(
                    session, store, self.config.scoring, self.config.graph
                ).recalc_workspace_importance(workspace_id)

                detected = 0
                if self.config.analysis.detect_correlations:
                    token.check()
                    self._step(job_id, "detecting_correlations")
                    detected = CorrelationDetector(
                        session, store, self.config.correlation
                    ).detect_workspace_correlations(workspace_id, token=token)

                token.check()
                self._step(job_id, "generating_insights")
                summary = generator.generate(workspace_id)
                summary.obsoleted = obsoleted

                token.check()

            result = AnalysisResult(
                job_id=job_id,
                workspace_id=workspace_id,
                features_scored=scored,
                correlations_detected=detected,
                insights=summary.to_dict(),
                duration_seconds=round(time.monotonic() - start_time, 3),
            )
            self._finish(job_id, AnalysisJobStatus.COMPLETED, result=result.to_dict())
            log.info(
                "analysis_completed",
                features_scored=scored,
                correlations_detected=detected,
                insights_created=summary.insights_created,
                duration_seconds=result.duration_seconds,
            )
            return result

        except AnalysisCancelledError as exc:
            log.warning("analysis_cancelled", reason=exc.reason)
            self._finish(job_id, AnalysisJobStatus.CANCELLED, error_message=str(exc))
            raise

        except Exception as exc:
            log.exception("analysis_failed", error=str(exc))
            self._finish(job_id, AnalysisJobStatus.FAILED, error_message=str(exc))
            raise

        finally:
            with self._state_lock:
                self._tokens.pop(job_id, None)
                self._progress.pop(job_id, None)

    def _step(self, job_id: UUID, step: str) -> None:
        with self._state_lock:
            self._progress[job_id] = step

    def _finish(
        self,
        job_id: UUID,
        status: AnalysisJobStatus,
        result: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        with get_sync_session(self.session_factory) as session:
            AnalysisJobRepository(session).finish(
                job_id, status, result=result, error_message=error_message
            )
