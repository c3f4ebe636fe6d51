"""SQLAlchemy ORM tables for mirrored pull requests, scores, and job runs.

Timestamps are stored as naive UTC; ``SqlStore`` converts at the boundary.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PullRequestRow(Base):
    __tablename__ = "pull_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repo: Mapped[str] = mapped_column(String(255), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body: Mapped[str | None] = mapped_column(Text, default=None)
    author: Mapped[str] = mapped_column(String(255), nullable=False, default="unknown")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    merged_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    html_url: Mapped[str | None] = mapped_column(Text, default=None)

    __table_args__ = (
        UniqueConstraint("owner", "repo", "number", name="uq_pull_requests_key"),
        Index("ix_pull_requests_updated", "owner", "repo", "updated_at"),
        Index("ix_pull_requests_merged", "owner", "repo", "merged_at"),
    )


class ScoreRow(Base):
    __tablename__ = "pr_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repo: Mapped[str] = mapped_column(String(255), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    bucket: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    classified_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner", "repo", "number", name="uq_pr_scores_key"),
        Index("ix_pr_scores_bucket", "bucket"),
    )


class JobRunRow(Base):
    __tablename__ = "job_runs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    job_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    error: Mapped[str | None] = mapped_column(Text, default=None)
    progress: Mapped[dict | None] = mapped_column(JSON, default=None)
    job_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, default=None)

    __table_args__ = (
        Index("ix_job_runs_subject", "subject", "job_kind", "started_at"),
        # At most one running row per (subject, job_kind)
        Index(
            "uq_job_runs_running",
            "subject",
            "job_kind",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )
