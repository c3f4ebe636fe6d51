"""Two-phase incremental pull request sync."""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime

import structlog

from src.github.page_fetcher import MAX_PAGE_SIZE, Page, PageFetcher, PageParams, SortDirection, SortKey
from src.jobs.deadline import Deadline
from src.models.contribution import Contribution
from src.storage.store import ContributionStore
from src.sync.models import StalenessReport, SyncResult
from src.sync.staleness import StalenessDetector

log = structlog.stdlib.get_logger()


def _highest(current: Contribution | None, candidate: Contribution) -> Contribution:
    if current is None or candidate.number > current.number:
        return candidate
    return current


class IncrementalSyncEngine:
    """Keeps the local store in step with a repository's pull requests.

    Phase one fetches pages by number, starting from the page that holds the
    first unseen pull request, in concurrent batches. Phase two walks pages
    by ``updated_at`` descending, one at a time, until it reaches an item no
    newer than the local watermark.

    Worker threads only fetch pages. Every upsert happens on the calling
    thread in page order. Any error aborts the call; upserts already made
    are kept and the next call recomputes both boundaries from the store.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        store: ContributionStore,
        detector: StalenessDetector | None = None,
        batch_size: int = 10,
        page_size: int = MAX_PAGE_SIZE,
    ):
        """
        Initialize sync engine.

        Args:
            fetcher: Page fetcher for the GitHub API
            store: Local contribution store
            detector: Staleness detector (built from fetcher and store if None)
            batch_size: Pages fetched concurrently per phase-one batch
            page_size: Items per page (at most 100)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

        self._fetcher = fetcher
        self._store = store
        self._detector = detector or StalenessDetector(fetcher, store)
        self._batch_size = batch_size
        self._page_size = page_size

    def sync(
        self,
        owner: str,
        repo: str,
        deadline: Deadline | None = None,
        force: bool = False,
        token: str | None = None,
    ) -> SyncResult:
        """
        Sync one repository if it is stale.

        Args:
            owner: Repository owner
            repo: Repository name
            deadline: Optional ceiling checked before every page fetch
            force: Skip the staleness check
            token: Token for this sync only, overriding the client token

        Returns:
            SyncResult with per-phase counts

        Raises:
            AuthError: Credentials rejected
            UpstreamAPIError: A page fetch exhausted its retries
            StorageError: The store failed
            JobTimeoutError: The deadline passed
        """
        start = time.monotonic()
        log.info("sync_started", owner=owner, repo=repo, force=force)

        report = None
        if not force:
            report = self._detector.check(owner, repo, token)
            if not report.stale:
                log.info("sync_skipped_not_stale", owner=owner, repo=repo)
                return SyncResult(
                    owner=owner,
                    repo=repo,
                    skipped=True,
                    duration_seconds=time.monotonic() - start,
                )

        # Captured before phase one so that items it upserts cannot lift the
        # watermark past updates phase two still has to see
        local_latest = self._store.most_recently_updated(owner, repo)
        watermark = local_latest.updated_at if local_latest else None

        result = SyncResult(owner=owner, repo=repo)

        self._phase_one(owner, repo, result, report, deadline, token)
        log.info(
            "phase_one_complete",
            owner=owner,
            repo=repo,
            synced=result.phase_one_synced,
            latest_number=result.latest_item.number if result.latest_item else None,
        )

        self._phase_two(owner, repo, watermark, result, deadline, token)
        log.info("phase_two_complete", owner=owner, repo=repo, synced=result.phase_two_synced)

        result.duration_seconds = time.monotonic() - start
        log.info(
            "sync_completed",
            owner=owner,
            repo=repo,
            total_synced=result.total_synced,
            pages_fetched=result.pages_fetched,
            duration_seconds=result.duration_seconds,
        )
        return result

    def _phase_one(
        self,
        owner: str,
        repo: str,
        result: SyncResult,
        report: StalenessReport | None,
        deadline: Deadline | None,
        token: str | None = None,
    ) -> None:
        if report is not None and report.upstream_error is None:
            remote_highest = report.remote_highest_number
        else:
            if deadline:
                deadline.check("phase one")
            remote_latest = self._fetcher.latest_by_number(owner, repo, token)
            result.pages_fetched += 1
            remote_highest = remote_latest.number if remote_latest else None

        if remote_highest is None:
            log.info("phase_one_no_remote_items", owner=owner, repo=repo)
            return

        local_highest = self._store.highest_number(owner, repo)
        local_count = self._store.count_up_to(owner, repo, local_highest) if local_highest else 0

        first_page = local_count // self._page_size + 1
        last_page = remote_highest // self._page_size + 1

        log.info(
            "phase_one_range",
            owner=owner,
            repo=repo,
            local_count=local_count,
            remote_highest=remote_highest,
            first_page=first_page,
            last_page=last_page,
        )

        with ThreadPoolExecutor(max_workers=self._batch_size, thread_name_prefix="page-fetch") as executor:
            for batch_start in range(first_page, last_page + 1, self._batch_size):
                if deadline:
                    deadline.check("phase one")

                pages = range(batch_start, min(batch_start + self._batch_size, last_page + 1))
                fetched = self._fetch_batch(executor, owner, repo, pages, token)
                result.pages_fetched += len(fetched)

                batch_items = 0
                for page in fetched:
                    for item in page.items:
                        self._store.upsert_contribution(item)
                        result.latest_item = _highest(result.latest_item, item)
                        batch_items += 1
                result.phase_one_synced += batch_items

                log.debug(
                    "phase_one_batch_synced",
                    owner=owner,
                    repo=repo,
                    first_page=pages.start,
                    last_page=pages.stop - 1,
                    items=batch_items,
                )

                if batch_items < self._batch_size * self._page_size:
                    break

    def _fetch_batch(
        self, executor: ThreadPoolExecutor, owner: str, repo: str, pages: range, token: str | None = None
    ) -> list[Page]:
        """Fetch pages concurrently and return them in page order; the first failure aborts."""
        futures: list[Future[Page]] = [
            executor.submit(
                self._fetcher.fetch,
                owner,
                repo,
                PageParams(
                    page=number,
                    per_page=self._page_size,
                    sort=SortKey.NUMBER,
                    direction=SortDirection.ASC,
                ),
                token,
            )
            for number in pages
        ]

        fetched = []
        try:
            for future in futures:
                fetched.append(future.result())
        except Exception:
            for future in futures:
                future.cancel()
            log.error("phase_one_batch_failed", owner=owner, repo=repo, first_page=pages.start)
            raise
        return fetched

    def _phase_two(
        self,
        owner: str,
        repo: str,
        watermark: datetime | None,
        result: SyncResult,
        deadline: Deadline | None,
        token: str | None = None,
    ) -> None:
        if watermark is None:
            log.info("phase_two_skipped_no_local_items", owner=owner, repo=repo)
            return

        log.info("phase_two_started", owner=owner, repo=repo, watermark=watermark.isoformat())

        page_number = 1
        while True:
            if deadline:
                deadline.check("phase two")

            page = self._fetcher.fetch(
                owner,
                repo,
                PageParams(
                    page=page_number,
                    per_page=self._page_size,
                    sort=SortKey.UPDATED,
                    direction=SortDirection.DESC,
                ),
                token=token,
            )
            result.pages_fetched += 1

            if page.is_empty:
                return

            for item in page.items:
                if item.updated_at <= watermark:
                    log.debug(
                        "phase_two_reached_watermark",
                        owner=owner,
                        repo=repo,
                        number=item.number,
                        page=page_number,
                    )
                    return
                self._store.upsert_contribution(item)
                result.phase_two_synced += 1
                if result.latest_item is None:
                    result.latest_item = item

            if not page.is_full:
                return
            page_number += 1
