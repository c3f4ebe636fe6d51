"""Attribution snapshots over growing prefixes of merge history."""

import math
from collections import OrderedDict
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from src.attribution.engine import attribute
from src.attribution.filters import parse_source
from src.models.attribution import AuthorCredit
from src.models.contribution import ScoredContribution
from src.utils.errors import ValidationError

log = structlog.stdlib.get_logger()

DEFAULT_TOP_N = 10
DEFAULT_WEIGHT = 1.0


class SequenceEntry(BaseModel):
    """Position of one merged contribution in the global merge order."""

    sequence_number: int = Field(default=..., ge=1)
    owner: str
    repo: str
    number: int
    merged_at: datetime

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.owner, self.repo, self.number)

    @property
    def source(self) -> str:
        return f"{self.owner}/{self.repo}"


def _merge_order(item: ScoredContribution) -> tuple:
    return (item.merged_at, item.owner, item.repo, item.number)


def build_sequence(scores: Iterable[ScoredContribution]) -> list[SequenceEntry]:
    """Order contributions from every source by merge time and number them from 1."""
    return [
        SequenceEntry(
            sequence_number=position,
            owner=item.owner,
            repo=item.repo,
            number=item.number,
            merged_at=item.merged_at,
        )
        for position, item in enumerate(sorted(scores, key=_merge_order), start=1)
    ]


def parse_source_weights(value: str) -> dict[str, float]:
    """
    Parse ``owner1/repo1:2.0,owner2/repo2`` into ``{"owner1/repo1": 2.0, "owner2/repo2": 1.0}``.

    Raises:
        ValidationError: On a malformed source, an unparseable weight, or a negative weight
    """
    weights: dict[str, float] = {}
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        source, _, weight_text = part.partition(":")
        owner, repo = parse_source(source)
        try:
            weight = float(weight_text) if weight_text.strip() else DEFAULT_WEIGHT
        except ValueError as e:
            raise ValidationError(f"Invalid weight for {owner}/{repo}: {weight_text!r}", cause=e) from e
        weights[f"{owner}/{repo}"] = weight

    _validate_weights(weights)
    return weights


def _validate_weights(weights: Mapping[str, float]) -> None:
    for source, weight in weights.items():
        if not math.isfinite(weight) or weight < 0:
            raise ValidationError(f"Weight for {source} must be a non-negative number, got {weight}")


def _validate_prefix(prefix_length: int) -> None:
    if prefix_length < 0:
        raise ValidationError(f"prefix_length must be non-negative, got {prefix_length}")


def _copies(ranking: list[AuthorCredit]) -> list[AuthorCredit]:
    # Cached rankings are shared between calls
    return [entry.model_copy(deep=True) for entry in ranking]


def shift_and_weight(
    scores: Sequence[ScoredContribution],
    source_weights: Mapping[str, float] | None = None,
) -> list[ScoredContribution]:
    """Shift scores so the minimum is zero, then multiply by each source's weight.

    Scores are only shifted when the minimum is negative. Shifting happens
    before weighting so a weight above one never pushes a negative score
    further down.
    """
    if not scores:
        return []

    weights = source_weights or {}
    _validate_weights(weights)

    global_min = min(item.score for item in scores)
    shift = abs(global_min) if global_min < 0 else 0.0

    return [
        item.model_copy(
            update={"score": (item.score + shift) * weights.get(item.source, DEFAULT_WEIGHT)}
        )
        for item in scores
    ]


def snapshot_at(
    scores: Sequence[ScoredContribution],
    prefix_length: int,
    top_n: int = DEFAULT_TOP_N,
) -> list[AuthorCredit]:
    """Top authors over the first ``prefix_length`` merges of a single source."""
    _validate_prefix(prefix_length)
    prefix = sorted(scores, key=_merge_order)[:prefix_length]
    return attribute(prefix).top(top_n)


def snapshot_at_weighted(
    scores: Sequence[ScoredContribution],
    sequence: Sequence[SequenceEntry],
    prefix_length: int,
    source_weights: Mapping[str, float] | None = None,
    top_n: int = DEFAULT_TOP_N,
) -> list[AuthorCredit]:
    """
    Top authors over the first ``prefix_length`` entries of a multi-source sequence.

    Args:
        scores: Scores for every source in the sequence
        sequence: Global merge order from :func:`build_sequence`
        prefix_length: Number of sequence entries in scope
        source_weights: ``owner/repo`` to weight (missing sources weigh 1.0)
        top_n: Number of authors to return

    Raises:
        ValidationError: On a negative prefix, a bad weight, or malformed scores
    """
    _validate_prefix(prefix_length)
    in_prefix = {entry.key for entry in sequence if entry.sequence_number <= prefix_length}
    in_scope = [item for item in scores if item.key in in_prefix]
    return attribute(shift_and_weight(in_scope, source_weights)).top(top_n)


class TimelineSnapshotCalculator:
    """Replays attribution over a fixed set of scores, one prefix at a time.

    Single-source timelines use plain prefixes. When more than one source is
    present, or weights are given, each prefix is shifted and weighted first.
    Results are cached per prefix length so scrubbing back and forth does
    not recompute.
    """

    def __init__(
        self,
        scores: Sequence[ScoredContribution],
        source_weights: Mapping[str, float] | None = None,
        top_n: int = DEFAULT_TOP_N,
        cache_size: int = 1024,
    ):
        if source_weights:
            _validate_weights(source_weights)

        self._scores = list(scores)
        self._weights = dict(source_weights) if source_weights else None
        self._top_n = top_n
        self._cache_size = cache_size
        self._cache: OrderedDict[int, list[AuthorCredit]] = OrderedDict()

        self.sequence = build_sequence(self._scores)
        sources = {item.source for item in self._scores}
        self.weighted = bool(self._weights) or len(sources) > 1

        log.debug(
            "timeline_calculator_initialized",
            scores=len(self._scores),
            sources=len(sources),
            weighted=self.weighted,
        )

    @property
    def max_prefix(self) -> int:
        return len(self.sequence)

    def snapshot(self, prefix_length: int) -> list[AuthorCredit]:
        _validate_prefix(prefix_length)
        prefix_length = min(prefix_length, self.max_prefix)

        cached = self._cache.get(prefix_length)
        if cached is not None:
            self._cache.move_to_end(prefix_length)
            return _copies(cached)

        if self.weighted:
            result = snapshot_at_weighted(
                self._scores, self.sequence, prefix_length, self._weights, self._top_n
            )
        else:
            result = snapshot_at(self._scores, prefix_length, self._top_n)

        self._cache[prefix_length] = result
        if len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return _copies(result)

    def snapshots(self, prefixes: Iterable[int]) -> dict[int, list[AuthorCredit]]:
        """Snapshot for each requested prefix length."""
        return {prefix: self.snapshot(prefix) for prefix in prefixes}

    def cache_info(self) -> dict[str, int]:
        return {"size": len(self._cache), "max_size": self._cache_size}
