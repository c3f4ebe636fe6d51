"""Decides whether a repository needs syncing at all."""

import structlog

from src.github.page_fetcher import PageFetcher
from src.storage.store import ContributionStore
from src.sync.models import StalenessReport
from src.utils.errors import AuthError, UpstreamAPIError

log = structlog.stdlib.get_logger()


class StalenessDetector:
    """Compares local and remote high-water marks.

    Two signals are ORed:

    - new items: the remote highest number is greater than the local one,
      or nothing is stored locally while the remote has items
    - updated items: the local most recent ``updated_at`` is older than the
      remote one, or nothing is stored locally while the remote has items

    Upstream failures while computing a signal count as stale. Storage
    failures propagate.
    """

    def __init__(self, fetcher: PageFetcher, store: ContributionStore):
        self._fetcher = fetcher
        self._store = store

    def is_stale(self, owner: str, repo: str, token: str | None = None) -> bool:
        return self.check(owner, repo, token).stale

    def check(self, owner: str, repo: str, token: str | None = None) -> StalenessReport:
        """
        Compute both staleness signals.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Token for this call only, overriding the client token

        Returns:
            StalenessReport with both signals and the watermarks compared

        Raises:
            StorageError: If the local store cannot be read
        """
        local_highest = self._store.highest_number(owner, repo)
        local_latest = self._store.most_recently_updated(owner, repo)
        local_watermark = local_latest.updated_at if local_latest else None

        try:
            remote_by_number = self._fetcher.latest_by_number(owner, repo, token)
            remote_by_update = self._fetcher.latest_by_update(owner, repo, token)
        except (AuthError, UpstreamAPIError) as e:
            log.warning(
                "staleness_check_failed_assuming_stale",
                owner=owner,
                repo=repo,
                error=str(e),
                error_kind=e.kind.value,
            )
            return StalenessReport(
                owner=owner,
                repo=repo,
                new_items=True,
                updated_items=True,
                upstream_error=str(e),
                local_highest_number=local_highest,
                local_watermark=local_watermark,
            )

        remote_highest = remote_by_number.number if remote_by_number else None
        remote_watermark = remote_by_update.updated_at if remote_by_update else None

        new_items = remote_highest is not None and (local_highest is None or remote_highest > local_highest)
        if remote_watermark is None:
            updated_items = False
        elif local_watermark is None:
            updated_items = True
        else:
            updated_items = local_watermark < remote_watermark

        report = StalenessReport(
            owner=owner,
            repo=repo,
            new_items=new_items,
            updated_items=updated_items,
            local_highest_number=local_highest,
            remote_highest_number=remote_highest,
            local_watermark=local_watermark,
            remote_watermark=remote_watermark,
        )

        log.info(
            "staleness_checked",
            owner=owner,
            repo=repo,
            stale=report.stale,
            new_items=new_items,
            updated_items=updated_items,
            local_highest=local_highest,
            remote_highest=remote_highest,
        )
        return report
