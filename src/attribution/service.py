"""Store-backed attribution queries."""

from collections import Counter

import structlog

from src.attribution.engine import attribute
from src.attribution.filters import (
    DEFAULT_PAGE_SIZE,
    AttributionQuery,
    apply_pre_filters,
    filter_credits,
    filter_ranking,
    paginate,
)
from src.attribution.timeline import DEFAULT_TOP_N, TimelineSnapshotCalculator
from src.models.attribution import (
    AttributionResult,
    AuthorCredit,
    ContributionCredit,
    PaginatedResponse,
    QuartileDetails,
    QuartileStat,
    Readiness,
)
from src.models.contribution import NUM_BUCKETS, ScoredContribution
from src.storage.store import ContributionStore
from src.utils.errors import ValidationError

log = structlog.stdlib.get_logger()


class AttributionService:
    """Answers attribution questions from the scores in the store.

    Every method loads the scores selected by the query's time window and
    sources, then runs the same :func:`attribute` computation.
    """

    def __init__(self, store: ContributionStore):
        self._store = store

    def load_scores(self, query: AttributionQuery | None = None) -> list[ScoredContribution]:
        query = query or AttributionQuery()
        query.validate_query()
        scores = self._store.scored_contributions(
            sources=query.source_pairs(),
            merged_since=query.merged_since,
            merged_until=query.merged_until,
        )
        # The store filters already; this keeps the window inclusive in every backend
        return apply_pre_filters(scores, query)

    def compute(self, query: AttributionQuery | None = None) -> AttributionResult:
        scores = self.load_scores(query)
        result = attribute(scores)
        log.info(
            "attribution_computed",
            scores=len(scores),
            authors=len(result.ranking),
        )
        return result

    def by_author(
        self,
        query: AttributionQuery | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedResponse[AuthorCredit]:
        query = query or AttributionQuery()
        result = self.compute(query)
        return paginate(filter_ranking(result.ranking, query), page, page_size)

    def by_contribution(
        self,
        query: AttributionQuery | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedResponse[ContributionCredit]:
        """Per-pull-request credit, highest first."""
        query = query or AttributionQuery()
        result = self.compute(query)
        credits = sorted(
            filter_credits(result.items, query),
            key=lambda credit: (-credit.pct, credit.owner, credit.repo, credit.number),
        )
        return paginate(credits, page, page_size)

    def quartiles(self, query: AttributionQuery | None = None) -> list[QuartileStat]:
        return self.compute(query).quartiles

    def quartile_details(
        self,
        bucket: int,
        query: AttributionQuery | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> QuartileDetails:
        """Contribution counts per author within one bucket, most active first."""
        if not 0 <= bucket < NUM_BUCKETS:
            raise ValidationError(f"bucket must be 0..{NUM_BUCKETS - 1}, got {bucket}")

        in_bucket = [item for item in self.load_scores(query) if item.bucket == bucket]
        counts = Counter(item.author for item in in_bucket)
        authors = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
        authors_page = paginate(authors, page, page_size)

        return QuartileDetails(
            bucket=bucket,
            total_count=len(in_bucket),
            distinct_author_count=len(counts),
            min_score=min((item.score for item in in_bucket), default=0.0),
            max_score=max((item.score for item in in_bucket), default=0.0),
            authors=PaginatedResponse[tuple[str, int]].model_validate(authors_page.model_dump()),
        )

    def timeline(
        self,
        query: AttributionQuery | None = None,
        source_weights: dict[str, float] | None = None,
        top_n: int = DEFAULT_TOP_N,
    ) -> TimelineSnapshotCalculator:
        """Calculator over the scores selected by ``query``."""
        return TimelineSnapshotCalculator(
            self.load_scores(query), source_weights=source_weights, top_n=top_n
        )

    def readiness(self, owner: str, repo: str) -> Readiness:
        """How much of a repository's merged history has been classified."""
        readiness = Readiness(
            owner=owner,
            repo=repo,
            total_merged=self._store.count_merged(owner, repo),
            scored=self._store.count_scored(owner, repo),
        )
        log.info(
            "readiness_checked",
            owner=owner,
            repo=repo,
            total_merged=readiness.total_merged,
            scored=readiness.scored,
            is_ready=readiness.is_ready,
        )
        return readiness
