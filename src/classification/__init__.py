"""Bucket classification of merged pull requests."""

from src.classification.inputs import ChangedFile, ClassificationInput, is_ignored
from src.classification.service import (
    BUCKET_SCORES,
    ClassificationReport,
    ClassificationService,
    Classifier,
    score_for_bucket,
)

__all__ = [
    "BUCKET_SCORES",
    "ChangedFile",
    "ClassificationInput",
    "ClassificationReport",
    "ClassificationService",
    "Classifier",
    "is_ignored",
    "score_for_bucket",
]
