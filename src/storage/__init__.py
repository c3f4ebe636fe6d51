"""Local storage for mirrored pull requests, scores, and job runs."""

from src.storage.store import ContributionStore, SqlStore

__all__ = ["ContributionStore", "SqlStore"]
