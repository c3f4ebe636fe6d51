"""GitHub REST API access."""

from src.github.client import GitHubClient
from src.github.page_fetcher import Page, PageFetcher, PageParams, SortDirection, SortKey

__all__ = [
    "GitHubClient",
    "Page",
    "PageFetcher",
    "PageParams",
    "SortDirection",
    "SortKey",
]
