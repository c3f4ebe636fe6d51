"""Runs sync and classification as locked, time-boxed jobs."""

import structlog

from src.classification.service import ClassificationReport, ClassificationService
from src.jobs.deadline import Deadline
from src.jobs.lock import JobLock
from src.models.job import JobKind
from src.sync.engine import IncrementalSyncEngine
from src.sync.models import SyncResult
from src.utils.logging_config import bind_job_context, clear_job_context

log = structlog.stdlib.get_logger()


class JobRunner:
    """Wraps sync and classification in a JobLock and a wall-clock ceiling.

    A duplicate trigger raises ``JobAlreadyRunningError`` without doing any
    work. Any failure, including a timeout, leaves the job row ``failed``.
    """

    def __init__(
        self,
        engine: IncrementalSyncEngine,
        lock: JobLock,
        classification: ClassificationService | None = None,
        sync_timeout: float = 600.0,
        classification_timeout: float = 3600.0,
    ):
        self._engine = engine
        self._lock = lock
        self._classification = classification
        self._sync_timeout = sync_timeout
        self._classification_timeout = classification_timeout

    def run_sync(self, owner: str, repo: str, force: bool = False, token: str | None = None) -> SyncResult:
        subject = f"{owner}/{repo}"
        with self._lock.hold(subject, JobKind.SYNC_PRS) as lock_id:
            bind_job_context(job_id=lock_id, job_kind=JobKind.SYNC_PRS.value, subject=subject)
            try:
                return self._engine.sync(owner, repo, Deadline(self._sync_timeout), force=force, token=token)
            finally:
                clear_job_context()

    def run_pipeline(
        self,
        owner: str,
        repo: str,
        full_resync: bool = False,
        force: bool = False,
        token: str | None = None,
    ) -> tuple[SyncResult, ClassificationReport]:
        """Sync, then classify whatever is left unscored.

        ``force`` skips the staleness check before syncing; ``full_resync``
        reclassifies pull requests that already have a score.
        """
        if self._classification is None:
            raise ValueError("run_pipeline needs a ClassificationService")

        subject = f"{owner}/{repo}"
        with self._lock.hold(subject, JobKind.FULL_PIPELINE, {"full_resync": full_resync, "force": force}) as lock_id:
            bind_job_context(job_id=lock_id, job_kind=JobKind.FULL_PIPELINE.value, subject=subject)
            try:
                self._lock.update_progress(lock_id, current=0, total=2, stage="sync")
                sync_result = self._engine.sync(owner, repo, Deadline(self._sync_timeout), force=force, token=token)

                self._lock.update_progress(lock_id, current=1, total=2, stage="classify")
                report = self._classification.classify_pending(
                    owner,
                    repo,
                    full_resync=full_resync,
                    deadline=Deadline(self._classification_timeout),
                    token=token,
                )

                self._lock.update_progress(lock_id, current=2, total=2, stage="done")
            finally:
                clear_job_context()

        log.info(
            "pipeline_completed",
            owner=owner,
            repo=repo,
            synced=sync_result.total_synced,
            classified=report.classified,
            failed=report.failed,
        )
        return sync_result, report
