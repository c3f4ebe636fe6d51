"""Query filters and pagination for attribution listings."""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import TypeVar

from pydantic import BaseModel, Field

from src.models.attribution import AuthorCredit, ContributionCredit, PaginatedResponse
from src.models.contribution import NUM_BUCKETS, ScoredContribution, ensure_utc
from src.utils.errors import ValidationError

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 500


class AttributionQuery(BaseModel):
    """Filters for an attribution request.

    ``merged_since``, ``merged_until`` and ``sources`` select which scores
    are attributed. ``author``, ``bucket``, ``min_pct`` and ``max_pct`` only
    narrow the listing afterwards, so shares are not recomputed over the
    narrowed set.
    """

    merged_since: datetime | None = Field(default=None, description="Inclusive lower bound on merge time")
    merged_until: datetime | None = Field(default=None, description="Inclusive upper bound on merge time")
    sources: list[str] | None = Field(default=None, description="owner/repo names to include")
    author: str | None = None
    bucket: int | None = None
    min_pct: float | None = None
    max_pct: float | None = None

    def validate_query(self) -> None:
        """
        Raises:
            ValidationError: For an inverted window or range, a bad bucket, or a malformed source
        """
        if self.merged_since and self.merged_until:
            if ensure_utc(self.merged_since) > ensure_utc(self.merged_until):
                raise ValidationError(
                    f"merged_since {self.merged_since.isoformat()} is after "
                    f"merged_until {self.merged_until.isoformat()}"
                )
        if self.bucket is not None and not 0 <= self.bucket < NUM_BUCKETS:
            raise ValidationError(f"bucket must be 0..{NUM_BUCKETS - 1}, got {self.bucket}")
        if self.min_pct is not None and self.max_pct is not None and self.min_pct > self.max_pct:
            raise ValidationError(f"min_pct {self.min_pct} is greater than max_pct {self.max_pct}")
        if self.sources is not None:
            parse_sources(self.sources)

    def source_pairs(self) -> list[tuple[str, str]] | None:
        return parse_sources(self.sources) if self.sources is not None else None


def parse_source(source: str) -> tuple[str, str]:
    """Split ``owner/repo``."""
    owner, sep, repo = source.strip().partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ValidationError(f"Source must look like owner/repo, got {source!r}")
    return owner, repo


def parse_sources(sources: Iterable[str]) -> list[tuple[str, str]]:
    return [parse_source(source) for source in sources]


def apply_pre_filters(
    items: Iterable[ScoredContribution], query: AttributionQuery
) -> list[ScoredContribution]:
    """Keep items inside the merge window and source subset."""
    query.validate_query()

    since = ensure_utc(query.merged_since) if query.merged_since else None
    until = ensure_utc(query.merged_until) if query.merged_until else None
    pairs = query.source_pairs()
    sources = {f"{owner}/{repo}" for owner, repo in pairs} if pairs is not None else None

    return [
        item
        for item in items
        if (since is None or item.merged_at >= since)
        and (until is None or item.merged_at <= until)
        and (sources is None or item.source in sources)
    ]


def _pct_in_range(pct: float, query: AttributionQuery) -> bool:
    if query.min_pct is not None and pct < query.min_pct:
        return False
    if query.max_pct is not None and pct > query.max_pct:
        return False
    return True


def filter_ranking(ranking: Sequence[AuthorCredit], query: AttributionQuery) -> list[AuthorCredit]:
    """Narrow an author ranking without changing anyone's share."""
    return [
        entry
        for entry in ranking
        if (query.author is None or entry.author == query.author)
        and (query.bucket is None or entry.bucket_counts[query.bucket] > 0)
        and _pct_in_range(entry.pct, query)
    ]


def filter_credits(
    credits: Sequence[ContributionCredit], query: AttributionQuery
) -> list[ContributionCredit]:
    return [
        credit
        for credit in credits
        if (query.author is None or credit.author == query.author)
        and (query.bucket is None or credit.bucket == query.bucket)
        and _pct_in_range(credit.pct, query)
    ]


def paginate(items: Sequence[T], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> PaginatedResponse[T]:
    """
    Slice one page out of ``items``.

    Raises:
        ValidationError: If page < 1 or page_size is outside 1..MAX_PAGE_SIZE
    """
    if page < 1:
        raise ValidationError(f"page must be at least 1, got {page}")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

    start = (page - 1) * page_size
    return PaginatedResponse(
        items=list(items[start : start + page_size]),
        total_count=len(items),
        page=page,
        page_size=page_size,
        has_next=len(items) > page * page_size,
    )
