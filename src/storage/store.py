"""Contribution store interface and SQLAlchemy implementation."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Sequence

import structlog
from sqlalchemy import and_, create_engine, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.models.contribution import ClassifiedScore, Contribution, ScoredContribution, ensure_utc
from src.models.job import JobKind, JobProgress, JobRun, JobStatus
from src.storage.tables import Base, JobRunRow, PullRequestRow, ScoreRow
from src.utils.errors import StorageError

log = structlog.stdlib.get_logger()

_KEY_COLUMNS = ("owner", "repo", "number")
_PR_UPDATE_COLUMNS = ("state", "title", "body", "updated_at", "merged_at", "html_url")
_SCORE_UPDATE_COLUMNS = ("author", "bucket", "score", "classified_at")
_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class ContributionStore(ABC):
    """Abstract interface for the local mirror of pull requests, scores, and job runs.

    Implementations raise ``StorageError`` for any backend failure.
    """

    # Pull requests

    @abstractmethod
    def upsert_contribution(self, contribution: Contribution) -> None:
        """Insert or update a pull request keyed by (owner, repo, number)."""

    @abstractmethod
    def get_contribution(self, owner: str, repo: str, number: int) -> Contribution | None:
        pass

    @abstractmethod
    def highest_number(self, owner: str, repo: str) -> int | None:
        """Highest stored pull request number, or None when nothing is stored."""

    @abstractmethod
    def count_up_to(self, owner: str, repo: str, number: int) -> int:
        """Number of stored pull requests with number <= ``number``."""

    @abstractmethod
    def count_contributions(self, owner: str, repo: str) -> int:
        pass

    @abstractmethod
    def most_recently_updated(self, owner: str, repo: str) -> Contribution | None:
        pass

    @abstractmethod
    def list_merged(self, owner: str, repo: str, unscored_only: bool = True) -> list[Contribution]:
        """Merged pull requests ordered by number, optionally only those without a score."""

    # Scores

    @abstractmethod
    def save_scores(self, scores: Sequence[ClassifiedScore], overwrite: bool = False) -> int:
        """Store scores, skipping existing keys unless ``overwrite``. Returns rows written."""

    @abstractmethod
    def scored_contributions(
        self,
        sources: Sequence[tuple[str, str]] | None = None,
        merged_since: datetime | None = None,
        merged_until: datetime | None = None,
    ) -> list[ScoredContribution]:
        """Scores joined with merge times, in merge order (owner/repo/number break ties)."""

    @abstractmethod
    def count_merged(self, owner: str, repo: str) -> int:
        pass

    @abstractmethod
    def count_scored(self, owner: str, repo: str) -> int:
        """Number of merged pull requests that have a score."""

    # Jobs

    @abstractmethod
    def acquire_job(self, run: JobRun) -> tuple[JobRun, bool]:
        """Insert ``run`` unless a running row exists for its subject and kind.

        Returns:
            (row, created): the new row and True, or the existing running row and False
        """

    @abstractmethod
    def get_job(self, job_id: str) -> JobRun | None:
        pass

    @abstractmethod
    def update_job(
        self,
        job_id: str,
        status: JobStatus | None = None,
        completed_at: datetime | None = None,
        error: str | None = None,
        progress: JobProgress | None = None,
    ) -> JobRun | None:
        """Update the given fields of a job row. Returns None if the row does not exist."""

    @abstractmethod
    def latest_job(self, subject: str, job_kind: JobKind | None = None) -> JobRun | None:
        pass

    @abstractmethod
    def running_jobs(self, subject: str | None = None) -> list[JobRun]:
        pass


def _to_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def _contribution_values(contribution: Contribution) -> dict[str, Any]:
    return {
        "owner": contribution.owner,
        "repo": contribution.repo,
        "number": contribution.number,
        "state": contribution.state,
        "title": contribution.title,
        "body": contribution.body,
        "author": contribution.author,
        "created_at": _to_db(contribution.created_at),
        "updated_at": _to_db(contribution.updated_at),
        "merged_at": _to_db(contribution.merged_at),
        "html_url": contribution.html_url,
    }


def _contribution_from_row(row: PullRequestRow) -> Contribution:
    return Contribution(
        owner=row.owner,
        repo=row.repo,
        number=row.number,
        state=row.state,
        title=row.title,
        body=row.body,
        author=row.author,
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
        merged_at=_from_db(row.merged_at),
        html_url=row.html_url,
    )


def _job_from_row(row: JobRunRow) -> JobRun:
    return JobRun(
        id=row.id,
        subject=row.subject,
        job_kind=JobKind(row.job_kind),
        status=JobStatus(row.status),
        started_at=_from_db(row.started_at),
        completed_at=_from_db(row.completed_at),
        error=row.error,
        progress=JobProgress(**row.progress) if row.progress else None,
        metadata=row.job_metadata,
    )


def _dialect_insert(dialect_name: str):
    if dialect_name == "sqlite":
        return sqlite.insert
    if dialect_name == "postgresql":
        return postgresql.insert
    return None


def _upsert_statement(session: Session, table, values: dict[str, Any], update_columns: Sequence[str]):
    """Build an ON CONFLICT statement for dialects that support it, else None."""
    insert = _dialect_insert(session.get_bind().dialect.name)
    if insert is None:
        return None

    stmt = insert(table).values(**values)
    if not update_columns:
        return stmt.on_conflict_do_nothing(index_elements=list(_KEY_COLUMNS))
    return stmt.on_conflict_do_update(
        index_elements=list(_KEY_COLUMNS),
        set_={column: stmt.excluded[column] for column in update_columns},
    )


class SqlStore(ContributionStore):
    """ContributionStore backed by SQLAlchemy (SQLite or PostgreSQL).

    Upserts use the dialect's ``ON CONFLICT`` clause where available and fall
    back to select-then-write elsewhere. Tables are created on construction.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///pr_attribution.db",
        echo: bool = False,
        engine: Engine | None = None,
    ):
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy database URL
            echo: Echo SQL statements
            engine: Pre-built engine (overrides database_url)

        Raises:
            StorageError: If the database cannot be reached or tables cannot be created
        """
        try:
            self._engine = engine or self._create_engine(database_url, echo)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            log.error("store_initialization_failed", database_url=database_url, error=str(e))
            raise StorageError(f"Failed to initialize store at {database_url}: {e}", cause=e) from e

        self._sessions = sessionmaker(self._engine, expire_on_commit=False)

        log.info("sql_store_initialized", dialect=self._engine.dialect.name)

    @staticmethod
    def _create_engine(database_url: str, echo: bool) -> Engine:
        if database_url in _MEMORY_URLS:
            # One shared connection so every thread sees the same in-memory database
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, echo=echo)

    def close(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except SQLAlchemyError as e:
            log.error(
                "storage_operation_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageError(f"{operation} failed: {e}", cause=e) from e

    # Pull requests

    def upsert_contribution(self, contribution: Contribution) -> None:
        values = _contribution_values(contribution)

        with self._transaction("upsert_contribution") as session:
            stmt = _upsert_statement(session, PullRequestRow, values, _PR_UPDATE_COLUMNS)
            if stmt is not None:
                session.execute(stmt)
                return

            row = session.scalars(
                select(PullRequestRow).filter_by(
                    owner=contribution.owner, repo=contribution.repo, number=contribution.number
                )
            ).first()
            if row is None:
                session.add(PullRequestRow(**values))
            else:
                for column in _PR_UPDATE_COLUMNS:
                    setattr(row, column, values[column])

    def get_contribution(self, owner: str, repo: str, number: int) -> Contribution | None:
        with self._transaction("get_contribution") as session:
            row = session.scalars(
                select(PullRequestRow).filter_by(owner=owner, repo=repo, number=number)
            ).first()
            return _contribution_from_row(row) if row is not None else None

    def highest_number(self, owner: str, repo: str) -> int | None:
        with self._transaction("highest_number") as session:
            return session.scalar(
                select(func.max(PullRequestRow.number)).where(
                    PullRequestRow.owner == owner, PullRequestRow.repo == repo
                )
            )

    def count_up_to(self, owner: str, repo: str, number: int) -> int:
        with self._transaction("count_up_to") as session:
            return session.scalar(
                select(func.count(PullRequestRow.id)).where(
                    PullRequestRow.owner == owner,
                    PullRequestRow.repo == repo,
                    PullRequestRow.number <= number,
                )
            ) or 0

    def count_contributions(self, owner: str, repo: str) -> int:
        with self._transaction("count_contributions") as session:
            return session.scalar(
                select(func.count(PullRequestRow.id)).where(
                    PullRequestRow.owner == owner, PullRequestRow.repo == repo
                )
            ) or 0

    def most_recently_updated(self, owner: str, repo: str) -> Contribution | None:
        with self._transaction("most_recently_updated") as session:
            row = session.scalars(
                select(PullRequestRow)
                .where(PullRequestRow.owner == owner, PullRequestRow.repo == repo)
                .order_by(PullRequestRow.updated_at.desc(), PullRequestRow.number.desc())
                .limit(1)
            ).first()
            return _contribution_from_row(row) if row is not None else None

    def list_merged(self, owner: str, repo: str, unscored_only: bool = True) -> list[Contribution]:
        query = select(PullRequestRow).where(
            PullRequestRow.owner == owner,
            PullRequestRow.repo == repo,
            PullRequestRow.state == "closed",
            PullRequestRow.merged_at.is_not(None),
        )
        if unscored_only:
            query = query.outerjoin(
                ScoreRow,
                and_(
                    ScoreRow.owner == PullRequestRow.owner,
                    ScoreRow.repo == PullRequestRow.repo,
                    ScoreRow.number == PullRequestRow.number,
                ),
            ).where(ScoreRow.id.is_(None))

        with self._transaction("list_merged") as session:
            rows = session.scalars(query.order_by(PullRequestRow.number)).all()
            return [_contribution_from_row(row) for row in rows]

    # Scores

    def save_scores(self, scores: Sequence[ClassifiedScore], overwrite: bool = False) -> int:
        if not scores:
            return 0

        update_columns = _SCORE_UPDATE_COLUMNS if overwrite else ()
        classified_at = _to_db(datetime.now().astimezone())
        written = 0

        with self._transaction("save_scores") as session:
            for score in scores:
                values = {
                    "owner": score.owner,
                    "repo": score.repo,
                    "number": score.number,
                    "author": score.author,
                    "bucket": score.bucket,
                    "score": score.score,
                    "classified_at": classified_at,
                }
                stmt = _upsert_statement(session, ScoreRow, values, update_columns)
                if stmt is not None:
                    result = session.execute(stmt)
                    written += max(result.rowcount, 0)
                    continue

                row = session.scalars(
                    select(ScoreRow).filter_by(owner=score.owner, repo=score.repo, number=score.number)
                ).first()
                if row is None:
                    session.add(ScoreRow(**values))
                    written += 1
                elif overwrite:
                    for column in update_columns:
                        setattr(row, column, values[column])
                    written += 1

        log.debug("scores_saved", requested=len(scores), written=written, overwrite=overwrite)
        return written

    def scored_contributions(
        self,
        sources: Sequence[tuple[str, str]] | None = None,
        merged_since: datetime | None = None,
        merged_until: datetime | None = None,
    ) -> list[ScoredContribution]:
        if sources is not None and not sources:
            return []

        query = (
            select(ScoreRow, PullRequestRow.merged_at)
            .join(
                PullRequestRow,
                and_(
                    PullRequestRow.owner == ScoreRow.owner,
                    PullRequestRow.repo == ScoreRow.repo,
                    PullRequestRow.number == ScoreRow.number,
                ),
            )
            .where(PullRequestRow.merged_at.is_not(None))
        )
        if sources:
            query = query.where(
                or_(*(and_(ScoreRow.owner == o, ScoreRow.repo == r) for o, r in sources))
            )
        if merged_since is not None:
            query = query.where(PullRequestRow.merged_at >= _to_db(merged_since))
        if merged_until is not None:
            query = query.where(PullRequestRow.merged_at <= _to_db(merged_until))

        query = query.order_by(
            PullRequestRow.merged_at, ScoreRow.owner, ScoreRow.repo, ScoreRow.number
        )

        with self._transaction("scored_contributions") as session:
            return [
                ScoredContribution(
                    owner=row.owner,
                    repo=row.repo,
                    number=row.number,
                    author=row.author,
                    bucket=row.bucket,
                    score=row.score,
                    merged_at=_from_db(merged_at),
                )
                for row, merged_at in session.execute(query).all()
            ]

    def count_merged(self, owner: str, repo: str) -> int:
        with self._transaction("count_merged") as session:
            return session.scalar(
                select(func.count(PullRequestRow.id)).where(
                    PullRequestRow.owner == owner,
                    PullRequestRow.repo == repo,
                    PullRequestRow.merged_at.is_not(None),
                )
            ) or 0

    def count_scored(self, owner: str, repo: str) -> int:
        with self._transaction("count_scored") as session:
            return session.scalar(
                select(func.count(ScoreRow.id))
                .join(
                    PullRequestRow,
                    and_(
                        PullRequestRow.owner == ScoreRow.owner,
                        PullRequestRow.repo == ScoreRow.repo,
                        PullRequestRow.number == ScoreRow.number,
                    ),
                )
                .where(
                    ScoreRow.owner == owner,
                    ScoreRow.repo == repo,
                    PullRequestRow.merged_at.is_not(None),
                )
            ) or 0

    # Jobs

    def acquire_job(self, run: JobRun) -> tuple[JobRun, bool]:
        try:
            with self._sessions.begin() as session:
                existing = self._find_running(session, run.subject, run.job_kind)
                if existing is not None:
                    return _job_from_row(existing), False

                session.add(
                    JobRunRow(
                        id=run.id,
                        subject=run.subject,
                        job_kind=run.job_kind.value,
                        status=run.status.value,
                        started_at=_to_db(run.started_at),
                        progress=run.progress.model_dump() if run.progress else None,
                        job_metadata=run.metadata,
                    )
                )
            return run, True
        except IntegrityError as e:
            # A concurrent acquirer inserted its running row first
            existing = self.running_jobs(run.subject)
            for job in existing:
                if job.job_kind == run.job_kind:
                    return job, False
            raise StorageError(f"acquire_job failed: {e}", cause=e) from e
        except SQLAlchemyError as e:
            log.error("storage_operation_failed", operation="acquire_job", error=str(e))
            raise StorageError(f"acquire_job failed: {e}", cause=e) from e

    @staticmethod
    def _find_running(session: Session, subject: str, job_kind: JobKind) -> JobRunRow | None:
        return session.scalars(
            select(JobRunRow).where(
                JobRunRow.subject == subject,
                JobRunRow.job_kind == job_kind.value,
                JobRunRow.status == JobStatus.RUNNING.value,
            )
        ).first()

    def get_job(self, job_id: str) -> JobRun | None:
        with self._transaction("get_job") as session:
            row = session.get(JobRunRow, job_id)
            return _job_from_row(row) if row is not None else None

    def update_job(
        self,
        job_id: str,
        status: JobStatus | None = None,
        completed_at: datetime | None = None,
        error: str | None = None,
        progress: JobProgress | None = None,
    ) -> JobRun | None:
        with self._transaction("update_job") as session:
            row = session.get(JobRunRow, job_id)
            if row is None:
                return None
            if status is not None:
                row.status = status.value
            if completed_at is not None:
                row.completed_at = _to_db(completed_at)
            if error is not None:
                row.error = error
            if progress is not None:
                row.progress = progress.model_dump()
            session.flush()
            return _job_from_row(row)

    def latest_job(self, subject: str, job_kind: JobKind | None = None) -> JobRun | None:
        query = select(JobRunRow).where(JobRunRow.subject == subject)
        if job_kind is not None:
            query = query.where(JobRunRow.job_kind == job_kind.value)

        with self._transaction("latest_job") as session:
            row = session.scalars(
                query.order_by(JobRunRow.started_at.desc(), JobRunRow.id.desc()).limit(1)
            ).first()
            return _job_from_row(row) if row is not None else None

    def running_jobs(self, subject: str | None = None) -> list[JobRun]:
        query = select(JobRunRow).where(JobRunRow.status == JobStatus.RUNNING.value)
        if subject is not None:
            query = query.where(JobRunRow.subject == subject)

        with self._transaction("running_jobs") as session:
            rows = session.scalars(query.order_by(JobRunRow.started_at)).all()
            return [_job_from_row(row) for row in rows]
