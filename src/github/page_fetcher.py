"""Single-page fetching of pull requests with bounded retries."""

import time
from enum import Enum
from typing import Callable

import structlog
from pydantic import BaseModel, Field

from src.github.client import GitHubClient
from src.models.contribution import Contribution
from src.utils.errors import TransientUpstreamError, UpstreamAPIError
from src.utils.retry import linear_backoff_retry

log = structlog.stdlib.get_logger()

MAX_PAGE_SIZE = 100


class SortKey(str, Enum):
    """Orderings the sync phases rely on."""

    NUMBER = "number"
    UPDATED = "updated"

    @property
    def github_sort(self) -> str:
        # Pull request numbers are assigned in creation order
        return "created" if self is SortKey.NUMBER else "updated"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PageParams(BaseModel):
    """Which page of the pull request listing to fetch."""

    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort: SortKey = SortKey.NUMBER
    direction: SortDirection = SortDirection.ASC


class Page(BaseModel):
    """One fetched page of contributions."""

    params: PageParams
    items: list[Contribution] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def is_full(self) -> bool:
        return len(self.items) >= self.params.per_page


class PageFetcher:
    """Fetches one page of a repository's pull requests.

    Transient failures are retried on the same page with linear backoff
    (``base_delay * attempt``). Authentication failures and other
    non-transient errors are raised on the first attempt.
    """

    def __init__(
        self,
        client: GitHubClient,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._fetch_with_retry = linear_backoff_retry(
            max_retries=max_retries,
            base_delay=base_delay,
            exceptions=(TransientUpstreamError,),
            sleep=sleep,
        )(self._fetch_once)

    def fetch(self, owner: str, repo: str, params: PageParams, token: str | None = None) -> Page:
        """
        Fetch one page.

        Args:
            owner: Repository owner
            repo: Repository name
            params: Page number, size, and ordering
            token: Token for this call only, overriding the client token

        Returns:
            Page of parsed contributions

        Raises:
            AuthError: Credentials rejected
            UpstreamAPIError: Non-transient error, or retries exhausted
        """
        return self._fetch_with_retry(owner, repo, params, token)

    def latest_by_number(self, owner: str, repo: str, token: str | None = None) -> Contribution | None:
        """Return the highest-numbered pull request, or None for an empty repository."""
        page = self.fetch(
            owner,
            repo,
            PageParams(page=1, per_page=1, sort=SortKey.NUMBER, direction=SortDirection.DESC),
            token=token,
        )
        return page.items[0] if page.items else None

    def latest_by_update(self, owner: str, repo: str, token: str | None = None) -> Contribution | None:
        """Return the most recently updated pull request, or None for an empty repository."""
        page = self.fetch(
            owner,
            repo,
            PageParams(page=1, per_page=1, sort=SortKey.UPDATED, direction=SortDirection.DESC),
            token=token,
        )
        return page.items[0] if page.items else None

    def _fetch_once(self, owner: str, repo: str, params: PageParams, token: str | None = None) -> Page:
        log.debug(
            "fetching_page",
            owner=owner,
            repo=repo,
            page=params.page,
            per_page=params.per_page,
            sort=params.sort.value,
            direction=params.direction.value,
        )

        payloads = self._client.list_pulls(
            owner,
            repo,
            page=params.page,
            per_page=params.per_page,
            sort=params.sort.github_sort,
            direction=params.direction.value,
            token=token,
        )

        if not isinstance(payloads, list):
            raise UpstreamAPIError(
                f"Unexpected pull request listing for {owner}/{repo}: {type(payloads).__name__}"
            )

        items = []
        for payload in payloads:
            if not isinstance(payload, dict):
                raise UpstreamAPIError(
                    f"Unexpected pull request entry in {owner}/{repo} page {params.page}: {type(payload).__name__}"
                )
            try:
                items.append(Contribution.from_github(owner, repo, payload))
            except ValueError as e:
                raise UpstreamAPIError(
                    f"Malformed pull request in {owner}/{repo} page {params.page}: {e}",
                    cause=e,
                ) from e

        return Page(params=params, items=items)
