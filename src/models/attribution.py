"""Result models produced by the attribution engine."""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from src.models.contribution import NUM_BUCKETS

T = TypeVar("T")


def _zeros_int() -> list[int]:
    return [0] * NUM_BUCKETS


def _zeros_float() -> list[float]:
    return [0.0] * NUM_BUCKETS


class AuthorCredit(BaseModel):
    """One author's share of credit in a snapshot."""

    author: str = Field(default=..., description="Author login")
    pct: float = Field(default=0.0, description="Share of total credit, 0..1")
    bucket_counts: list[int] = Field(
        default_factory=_zeros_int, description="Contributions per bucket 0..3"
    )
    bucket_pcts: list[float] = Field(
        default_factory=_zeros_float, description="Credit earned per bucket 0..3"
    )

    @property
    def total_count(self) -> int:
        return sum(self.bucket_counts)


class ContributionCredit(BaseModel):
    """Credit assigned to a single contribution."""

    owner: str
    repo: str
    number: int
    author: str
    bucket: int
    score: float
    pct: float = Field(default=0.0, description="Share of total credit, 0..1")
    merged_at: datetime | None = None


class QuartileStat(BaseModel):
    """Aggregate credit statistics for one bucket."""

    bucket: int = Field(default=..., ge=0, le=NUM_BUCKETS - 1)
    count: int = Field(default=0, ge=0)
    aggregate_pct: float = 0.0
    min_pct: float = 0.0
    max_pct: float = 0.0


class AttributionResult(BaseModel):
    """Ranking, per-bucket statistics, and per-item credit for one snapshot."""

    ranking: list[AuthorCredit] = Field(default_factory=list)
    quartiles: list[QuartileStat] = Field(
        default_factory=lambda: [QuartileStat(bucket=b) for b in range(NUM_BUCKETS)]
    )
    items: list[ContributionCredit] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def top(self, n: int) -> list[AuthorCredit]:
        return self.ranking[:n]


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a ranked listing."""

    items: list[T] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    has_next: bool = False


class QuartileDetails(BaseModel):
    """Drill-down for one bucket: contribution counts per author."""

    bucket: int
    total_count: int = 0
    distinct_author_count: int = 0
    min_score: float = 0.0
    max_score: float = 0.0
    authors: PaginatedResponse[tuple[str, int]] = Field(default_factory=PaginatedResponse)


class Readiness(BaseModel):
    """How much of a repository's merged history has been classified."""

    owner: str
    repo: str
    total_merged: int = 0
    scored: int = 0

    @property
    def unscored(self) -> int:
        return max(self.total_merged - self.scored, 0)

    @property
    def coverage_pct(self) -> float:
        if self.total_merged == 0:
            return 0.0
        return self.scored / self.total_merged * 100

    @property
    def is_ready(self) -> bool:
        return self.total_merged > 0 and self.scored >= self.total_merged
