"""Attribution scoring: turns classified scores into per-author credit.

Every ranking in the system (whole-history, time window, timeline prefix,
weighted multi-repository timeline) goes through :func:`attribute`.

Steps:

1. Empty input gives an empty ranking and four zeroed quartiles.
2. Min-max normalize raw scores over the whole input (all zero when every
   score is equal).
3. ``attrib = max(norm ** 2, EPSILON)``.
4. Sum ``attrib`` and count items per bucket.
5. Bucket target share is the bucket's sum over the total.
6. Renormalize the target shares so they sum to one.
7. Item credit is its share of the bucket sum times the bucket's final share,
   or an even split of the bucket's share when the bucket sum is zero.
8. Sum item credit per author; rank by credit descending, then by author.
9. Per-bucket count, total credit, and min/max item credit.
"""

import math
from collections.abc import Sequence

from src.models.attribution import AttributionResult, AuthorCredit, ContributionCredit, QuartileStat
from src.models.contribution import NUM_BUCKETS, ClassifiedScore
from src.utils.errors import ValidationError

EPSILON = 1e-9


def validate_scores(items: Sequence[ClassifiedScore]) -> None:
    """Reject non-finite scores and out-of-range buckets.

    Raises:
        ValidationError: On the first malformed item
    """
    for item in items:
        if not math.isfinite(item.score):
            raise ValidationError(
                f"Score for {item.source}#{item.number} is not finite: {item.score}"
            )
        if not 0 <= item.bucket < NUM_BUCKETS:
            raise ValidationError(
                f"Bucket for {item.source}#{item.number} must be 0..{NUM_BUCKETS - 1}, got {item.bucket}"
            )


def normalize(scores: Sequence[float]) -> list[float]:
    """Min-max normalize to [0, 1]; all zeros when every score is equal."""
    if not scores:
        return []
    lo = min(scores)
    hi = max(scores)
    if hi <= lo:
        return [0.0] * len(scores)
    span = hi - lo
    return [(score - lo) / span for score in scores]


def attribution_weight(norm: float) -> float:
    return max(norm * norm, EPSILON)


def renormalize(target_pcts: Sequence[float]) -> list[float]:
    """Scale bucket shares so they sum to one (zeros stay zeros)."""
    # TODO: accept per-bucket override percentages here once overrides are
    # stored alongside scores; shares from attribute() already sum to one.
    total = sum(target_pcts)
    if total <= 0:
        return [0.0] * len(target_pcts)
    return [pct / total for pct in target_pcts]


def attribute(items: Sequence[ClassifiedScore]) -> AttributionResult:
    """
    Distribute credit across the authors of ``items``.

    Args:
        items: Classified scores in scope, already filtered by the caller

    Returns:
        AttributionResult with the ranking, four quartiles, and per-item credit

    Raises:
        ValidationError: If any score is NaN/infinite or any bucket is out of range
    """
    if not items:
        return AttributionResult()

    validate_scores(items)

    attribs = [attribution_weight(norm) for norm in normalize([item.score for item in items])]

    bucket_sums = [0.0] * NUM_BUCKETS
    bucket_counts = [0] * NUM_BUCKETS
    for item, attrib in zip(items, attribs):
        bucket_sums[item.bucket] += attrib
        bucket_counts[item.bucket] += 1

    total = sum(attribs)
    target_pcts = [bucket_sum / total if total > 0 else 0.0 for bucket_sum in bucket_sums]
    final_pcts = renormalize(target_pcts)

    credits: list[ContributionCredit] = []
    for item, attrib in zip(items, attribs):
        bucket = item.bucket
        if bucket_sums[bucket] > 0:
            pct = attrib / bucket_sums[bucket] * final_pcts[bucket]
        else:
            pct = final_pcts[bucket] / bucket_counts[bucket]

        credits.append(
            ContributionCredit(
                owner=item.owner,
                repo=item.repo,
                number=item.number,
                author=item.author,
                bucket=bucket,
                score=item.score,
                pct=pct,
                merged_at=getattr(item, "merged_at", None),
            )
        )

    return AttributionResult(
        ranking=_rank_authors(credits),
        quartiles=_quartiles(credits),
        items=credits,
    )


def _rank_authors(credits: Sequence[ContributionCredit]) -> list[AuthorCredit]:
    by_author: dict[str, AuthorCredit] = {}
    for credit in credits:
        entry = by_author.get(credit.author)
        if entry is None:
            entry = by_author[credit.author] = AuthorCredit(author=credit.author)
        entry.pct += credit.pct
        entry.bucket_counts[credit.bucket] += 1
        entry.bucket_pcts[credit.bucket] += credit.pct

    return sorted(by_author.values(), key=lambda entry: (-entry.pct, entry.author))


def _quartiles(credits: Sequence[ContributionCredit]) -> list[QuartileStat]:
    per_bucket: list[list[float]] = [[] for _ in range(NUM_BUCKETS)]
    for credit in credits:
        per_bucket[credit.bucket].append(credit.pct)

    return [
        QuartileStat(
            bucket=bucket,
            count=len(pcts),
            aggregate_pct=sum(pcts),
            min_pct=min(pcts) if pcts else 0.0,
            max_pct=max(pcts) if pcts else 0.0,
        )
        for bucket, pcts in enumerate(per_bucket)
    ]
