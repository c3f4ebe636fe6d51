"""Attribution scoring, filtering, and timeline snapshots."""

from src.attribution.engine import EPSILON, attribute
from src.attribution.filters import AttributionQuery, paginate
from src.attribution.service import AttributionService
from src.attribution.timeline import (
    SequenceEntry,
    TimelineSnapshotCalculator,
    build_sequence,
    parse_source_weights,
    shift_and_weight,
    snapshot_at,
    snapshot_at_weighted,
)

__all__ = [
    "EPSILON",
    "AttributionQuery",
    "AttributionService",
    "SequenceEntry",
    "TimelineSnapshotCalculator",
    "attribute",
    "build_sequence",
    "paginate",
    "parse_source_weights",
    "shift_and_weight",
    "snapshot_at",
    "snapshot_at_weighted",
]
