"""Classification of merged pull requests into buckets."""

from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from src.classification.inputs import ChangedFile, ClassificationInput
from src.github.client import GitHubClient
from src.jobs.deadline import Deadline
from src.jobs.lock import JobLock
from src.models.contribution import NUM_BUCKETS, ClassifiedScore, Contribution
from src.models.job import JobKind
from src.storage.store import ContributionStore

log = structlog.stdlib.get_logger()

BUCKET_SCORES: dict[int, float] = {0: -2.0, 1: -1.0, 2: 1.0, 3: 2.0}


class Classifier(Protocol):
    """Assigns a merged pull request to a bucket 0..3."""

    def classify(self, item: ClassificationInput) -> int: ...


def score_for_bucket(bucket: int) -> float:
    try:
        return BUCKET_SCORES[bucket]
    except KeyError:
        raise ValueError(f"Bucket must be 0..{NUM_BUCKETS - 1}, got {bucket!r}") from None


class ClassificationReport(BaseModel):
    owner: str
    repo: str
    pending: int = Field(default=0, ge=0)
    classified: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    failed_numbers: list[int] = Field(default_factory=list)


class ClassificationService:
    """Classifies merged pull requests that have no score yet.

    The classifier and the changed-file lookup run on worker threads, one
    batch at a time. Scores are written on the calling thread after each
    batch. A failure for one pull request is logged and skipped.
    """

    def __init__(
        self,
        store: ContributionStore,
        classifier: Classifier,
        lock: JobLock,
        client: GitHubClient | None = None,
        batch_size: int = 10,
    ):
        self._store = store
        self._classifier = classifier
        self._lock = lock
        self._client = client
        self._batch_size = batch_size

    def classify_pending(
        self,
        owner: str,
        repo: str,
        full_resync: bool = False,
        deadline: Deadline | None = None,
        token: str | None = None,
    ) -> ClassificationReport:
        """
        Classify merged pull requests for one repository.

        Args:
            owner: Repository owner
            repo: Repository name
            full_resync: Reclassify everything, overwriting existing scores
            deadline: Optional ceiling checked before every batch
            token: Token for fetching changed files, overriding the client token

        Returns:
            ClassificationReport with per-item outcome counts

        Raises:
            JobAlreadyRunningError: Classification is already running for the repository
            JobTimeoutError: The deadline passed
            StorageError: The store failed
        """
        subject = f"{owner}/{repo}"
        with self._lock.hold(subject, JobKind.BUCKET_PRS, {"full_resync": full_resync}) as lock_id:
            pending = self._store.list_merged(owner, repo, unscored_only=not full_resync)
            report = ClassificationReport(owner=owner, repo=repo, pending=len(pending))
            log.info(
                "classification_started",
                owner=owner,
                repo=repo,
                pending=len(pending),
                full_resync=full_resync,
            )

            with ThreadPoolExecutor(max_workers=self._batch_size, thread_name_prefix="classify") as executor:
                for start in range(0, len(pending), self._batch_size):
                    if deadline:
                        deadline.check("classification")

                    batch = pending[start : start + self._batch_size]
                    futures = [executor.submit(self._classify_one, item, token) for item in batch]

                    scores = []
                    for item, future in zip(batch, futures):
                        try:
                            bucket = future.result()
                        except Exception as e:
                            log.warning(
                                "classification_failed",
                                owner=owner,
                                repo=repo,
                                number=item.number,
                                error=str(e),
                                error_type=type(e).__name__,
                            )
                            report.failed += 1
                            report.failed_numbers.append(item.number)
                            continue

                        scores.append(
                            ClassifiedScore(
                                owner=owner,
                                repo=repo,
                                number=item.number,
                                author=item.author,
                                bucket=bucket,
                                score=score_for_bucket(bucket),
                            )
                        )

                    self._store.save_scores(scores, overwrite=full_resync)
                    report.classified += len(scores)
                    self._lock.update_progress(
                        lock_id,
                        current=min(start + len(batch), len(pending)),
                        total=len(pending),
                        stage="classifying",
                    )

            log.info(
                "classification_completed",
                owner=owner,
                repo=repo,
                classified=report.classified,
                failed=report.failed,
            )
            return report

    def _classify_one(self, contribution: Contribution, token: str | None = None) -> int:
        files: list[ChangedFile] = []
        if self._client is not None:
            files = [
                ChangedFile.from_github(payload)
                for payload in self._client.list_pull_files(
                    contribution.owner, contribution.repo, contribution.number, token=token
                )
            ]

        bucket = self._classifier.classify(ClassificationInput.build(contribution, files))
        if bucket not in BUCKET_SCORES:
            raise ValueError(f"Classifier returned bucket {bucket!r}")
        return bucket
