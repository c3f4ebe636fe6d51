"""Models for background job bookkeeping."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobKind(str, Enum):
    SYNC_PRS = "sync_prs"
    BUCKET_PRS = "bucket_prs"
    FULL_PIPELINE = "full_pipeline"


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobProgress(BaseModel):
    current: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    stage: str = ""


class JobRun(BaseModel):
    """One row of the job table; at most one RUNNING row per (subject, job_kind)."""

    id: str = Field(default=..., description="Job identifier (uuid4 hex)")
    subject: str = Field(default=..., description="What the job runs on, e.g. owner/repo")
    job_kind: JobKind
    status: JobStatus
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    progress: JobProgress | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.RUNNING


class LockHandle(BaseModel):
    """Result of JobLock.acquire."""

    lock_id: str
    already_running: bool
