"""Data models for the PR attribution system."""

from src.models.attribution import (
    AttributionResult,
    AuthorCredit,
    ContributionCredit,
    PaginatedResponse,
    QuartileDetails,
    QuartileStat,
    Readiness,
)
from src.models.config import (
    AppConfig,
    ClassificationConfig,
    GitHubConfig,
    LoggingConfig,
    StorageConfig,
    SyncConfig,
)
from src.models.contribution import (
    NUM_BUCKETS,
    ClassifiedScore,
    Contribution,
    ScoredContribution,
    parse_github_timestamp,
)
from src.models.job import JobKind, JobProgress, JobRun, JobStatus, LockHandle

__all__ = [
    "NUM_BUCKETS",
    "AppConfig",
    "AttributionResult",
    "AuthorCredit",
    "ClassificationConfig",
    "ClassifiedScore",
    "Contribution",
    "ContributionCredit",
    "GitHubConfig",
    "JobKind",
    "JobProgress",
    "JobRun",
    "JobStatus",
    "LockHandle",
    "LoggingConfig",
    "PaginatedResponse",
    "QuartileDetails",
    "QuartileStat",
    "Readiness",
    "ScoredContribution",
    "StorageConfig",
    "SyncConfig",
    "parse_github_timestamp",
]
