"""Store-backed mutual exclusion for background jobs."""

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import structlog

from src.models.job import JobKind, JobProgress, JobRun, JobStatus, LockHandle
from src.storage.store import ContributionStore
from src.utils.errors import JobAlreadyRunningError

log = structlog.stdlib.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobLock:
    """Cooperative per-(subject, job kind) lock backed by the job table.

    A running row marks the lock as held. There is no lease expiry: a run
    that never reaches ``release`` keeps the lock until its row is fixed by
    hand.
    """

    def __init__(self, store: ContributionStore):
        self._store = store

    def acquire(
        self,
        subject: str,
        job_kind: JobKind,
        metadata: dict[str, Any] | None = None,
    ) -> LockHandle:
        """
        Try to take the lock.

        Args:
            subject: What the job runs on, usually ``owner/repo``
            job_kind: Kind of job
            metadata: Extra context stored on the job row

        Returns:
            LockHandle. ``already_running`` is True when another run holds the
            lock; its id is returned and no new row is created.
        """
        run = JobRun(
            id=uuid.uuid4().hex,
            subject=subject,
            job_kind=job_kind,
            status=JobStatus.RUNNING,
            started_at=_now(),
            metadata=metadata,
        )
        row, created = self._store.acquire_job(run)

        if created:
            log.info("job_started", job_id=row.id, subject=subject, job_kind=job_kind.value)
        else:
            log.warning(
                "job_already_running",
                job_id=row.id,
                subject=subject,
                job_kind=job_kind.value,
                started_at=row.started_at.isoformat(),
            )
        return LockHandle(lock_id=row.id, already_running=not created)

    def release(self, lock_id: str, outcome: JobStatus, detail: str | None = None) -> None:
        """Mark a run completed or failed."""
        if outcome == JobStatus.RUNNING:
            raise ValueError("A lock can only be released as completed or failed")

        updated = self._store.update_job(
            lock_id,
            status=outcome,
            completed_at=_now(),
            error=detail,
        )
        if updated is None:
            log.warning("job_release_unknown_id", job_id=lock_id)
            return

        log.info(
            "job_finished",
            job_id=lock_id,
            subject=updated.subject,
            job_kind=updated.job_kind.value,
            status=outcome.value,
            error=detail,
        )

    def update_progress(self, lock_id: str, current: int, total: int, stage: str = "") -> None:
        self._store.update_job(
            lock_id, progress=JobProgress(current=current, total=total, stage=stage)
        )

    def status(self, subject: str, job_kind: JobKind | None = None) -> JobRun | None:
        """Most recently started run for the subject."""
        return self._store.latest_job(subject, job_kind)

    def is_running(self, subject: str, job_kind: JobKind | None = None) -> bool:
        return any(
            job_kind is None or job.job_kind == job_kind
            for job in self._store.running_jobs(subject)
        )

    def running_jobs(self, subject: str | None = None) -> list[JobRun]:
        return self._store.running_jobs(subject)

    @contextmanager
    def hold(
        self,
        subject: str,
        job_kind: JobKind,
        metadata: dict[str, Any] | None = None,
    ) -> Iterator[str]:
        """Hold the lock for the duration of a block.

        Yields the lock id. Releases as completed when the block exits
        normally and as failed (with the exception text) otherwise.

        Raises:
            JobAlreadyRunningError: Another run holds the lock
        """
        handle = self.acquire(subject, job_kind, metadata)
        if handle.already_running:
            raise JobAlreadyRunningError(subject, job_kind.value, handle.lock_id)

        try:
            yield handle.lock_id
        except BaseException as e:
            self.release(handle.lock_id, JobStatus.FAILED, str(e) or type(e).__name__)
            raise
        else:
            self.release(handle.lock_id, JobStatus.COMPLETED)
