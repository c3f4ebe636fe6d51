"""A size-based classifier for running the pipeline without a model."""

from src.classification.inputs import ClassificationInput

# Upper bounds on lines changed for buckets 0, 1 and 2
DEFAULT_THRESHOLDS = (50, 200, 500)


class SizeHeuristicClassifier:
    """Buckets a pull request by lines changed outside ignored files."""

    def __init__(self, thresholds: tuple[int, int, int] = DEFAULT_THRESHOLDS):
        if list(thresholds) != sorted(thresholds):
            raise ValueError(f"Thresholds must be ascending, got {thresholds}")
        self._thresholds = thresholds

    def classify(self, item: ClassificationInput) -> int:
        changed = item.additions + item.deletions
        for bucket, limit in enumerate(self._thresholds):
            if changed < limit:
                return bucket
        return len(self._thresholds)
