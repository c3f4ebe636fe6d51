"""Property-based tests for two-phase incremental sync."""

import threading
import time
from datetime import timedelta

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from src.github.page_fetcher import PageFetcher
from src.jobs.deadline import Deadline
from src.models.contribution import Contribution
from src.sync.engine import IncrementalSyncEngine
from src.utils.errors import AuthError, JobTimeoutError

log = structlog.stdlib.get_logger()

PAGE_SIZE = 5


def _engine(github, store, batch_size: int = 3) -> IncrementalSyncEngine:
    fetcher = PageFetcher(github, max_retries=0, sleep=lambda _: None)
    return IncrementalSyncEngine(fetcher, store, batch_size=batch_size, page_size=PAGE_SIZE)


def _seed(github, store, numbers) -> None:
    for number in numbers:
        store.upsert_contribution(Contribution.from_github(github.owner, github.repo, github.prs[number]))


@given(total=st.integers(min_value=0, max_value=40), local=st.integers(min_value=0, max_value=40))
@settings(max_examples=30, deadline=None)
def test_property_phase_one_completeness(fake_github, make_store, total, local):
    """Property 1: After a sync every remote pull request is stored.

    The store may already hold any prefix of the repository's history.
    """
    local = min(local, total)
    log.info("test_property_phase_one_completeness", total=total, local=local)

    github = fake_github(total)
    store = make_store()
    _seed(github, store, range(1, local + 1))

    result = _engine(github, store).sync("octo", "hello")

    assert store.count_contributions("octo", "hello") == total
    assert store.highest_number("octo", "hello") == (total or None)
    if total > local:
        assert not result.skipped
        assert result.latest_item is not None
        assert result.latest_item.number == total
    else:
        assert result.skipped
    store.close()


@given(total=st.integers(min_value=1, max_value=30))
@settings(max_examples=20, deadline=None)
def test_property_sync_is_idempotent(fake_github, make_store, total):
    """Property 2: A second sync with no upstream changes fetches no listing pages."""
    github = fake_github(total)
    store = make_store()
    engine = _engine(github, store)

    engine.sync("octo", "hello")
    fetches_after_first = github.fetch_count(PAGE_SIZE)
    before = {n: store.get_contribution("octo", "hello", n) for n in range(1, total + 1)}

    second = engine.sync("octo", "hello")

    assert second.skipped
    assert second.total_synced == 0
    assert github.fetch_count(PAGE_SIZE) == fetches_after_first
    assert {n: store.get_contribution("octo", "hello", n) for n in range(1, total + 1)} == before
    store.close()


@given(
    total=st.integers(min_value=2, max_value=30),
    touched=st.integers(min_value=1, max_value=29),
)
@settings(max_examples=30, deadline=None)
def test_property_phase_two_stops_at_watermark(fake_github, make_store, total, touched):
    """Property 3: Phase two reads only the pages holding updates newer than the watermark.

    With m updated items out of n, phase two fetches exactly m // page_size + 1
    pages and upserts exactly the m updated items.
    """
    touched = min(touched, total - 1)
    github = fake_github(total)
    store = make_store()
    _seed(github, store, range(1, total + 1))

    later = github.base_time + timedelta(days=30)
    for offset, number in enumerate(range(1, touched + 1)):
        github.touch(number, later + timedelta(minutes=offset), title=f"Edited {number}")

    result = _engine(github, store).sync("octo", "hello")

    assert result.phase_two_synced == touched
    assert github.fetch_count(PAGE_SIZE, sort="updated") == touched // PAGE_SIZE + 1
    for number in range(1, touched + 1):
        assert store.get_contribution("octo", "hello", number).title == f"Edited {number}"
    assert store.get_contribution("octo", "hello", total).title == f"PR {total}"
    store.close()


def test_updates_to_items_fetched_in_phase_one_are_not_missed(fake_github, store):
    github = fake_github(8)
    _seed(github, store, range(1, 5))
    # PR 2 changes after the last local sync, PR 5..8 are new
    github.touch(2, github.base_time + timedelta(days=1), title="Edited 2")

    result = _engine(github, store).sync("octo", "hello")

    assert store.count_contributions("octo", "hello") == 8
    assert store.get_contribution("octo", "hello", 2).title == "Edited 2"
    assert result.phase_two_synced >= 1


def test_failure_aborts_and_keeps_earlier_batches(fake_github, store):
    github = fake_github(20)
    github.failures[("created", 2)] = AuthError("bad credentials", status_code=401)
    engine = _engine(github, store, batch_size=1)

    with pytest.raises(AuthError):
        engine.sync("octo", "hello")

    assert store.count_contributions("octo", "hello") == PAGE_SIZE

    github.failures.clear()
    engine.sync("octo", "hello")

    assert store.count_contributions("octo", "hello") == 20


def test_failure_inside_a_batch_upserts_nothing_from_that_batch(fake_github, store):
    github = fake_github(20)
    github.failures[("created", 3)] = AuthError("bad credentials", status_code=401)

    with pytest.raises(AuthError):
        _engine(github, store, batch_size=4).sync("octo", "hello")

    assert store.count_contributions("octo", "hello") == 0


def test_expired_deadline_stops_before_fetching(fake_github, store):
    github = fake_github(10)
    ticks = iter([0.0, 100.0, 100.0, 100.0])
    deadline = Deadline(10, clock=lambda: next(ticks))

    with pytest.raises(JobTimeoutError):
        _engine(github, store).sync("octo", "hello", deadline=deadline)

    assert github.fetch_count(PAGE_SIZE) == 0
    assert store.count_contributions("octo", "hello") == 0


def test_empty_repository_is_not_stale(fake_github, store):
    github = fake_github(0)

    result = _engine(github, store).sync("octo", "hello")

    assert result.skipped
    assert store.highest_number("octo", "hello") is None


def test_force_skips_staleness_check(fake_github, store):
    github = fake_github(3)
    engine = _engine(github, store)
    engine.sync("octo", "hello")

    result = engine.sync("octo", "hello", force=True)

    assert not result.skipped
    assert result.phase_one_synced == 3
    assert result.phase_two_synced == 0


def _phase_one_pages(github) -> list[int]:
    return sorted(call["page"] for call in github.calls if call["per_page"] == PAGE_SIZE and call["sort"] == "created")


def test_short_batch_ends_phase_one_early(fake_github, store):
    github = fake_github(7)
    # A gap in numbering: the remote highest number points far past the last page with items
    github.add(100)

    result = _engine(github, store, batch_size=3).sync("octo", "hello")

    assert _phase_one_pages(github) == [1, 2, 3]
    assert store.count_contributions("octo", "hello") == 8
    assert result.latest_item.number == 100
    assert result.phase_one_synced == 8


def test_phase_one_batches_run_one_after_another(fake_github, store):
    github = fake_github(40)
    events = []
    events_lock = threading.Lock()
    list_pulls = github.list_pulls

    def recording_list_pulls(owner, repo, page=1, per_page=100, sort="created", **kwargs):
        phase_one = per_page == PAGE_SIZE and sort == "created"
        if phase_one:
            with events_lock:
                events.append(("start", page))
            time.sleep(0.01)
        payloads = list_pulls(owner, repo, page=page, per_page=per_page, sort=sort, **kwargs)
        if phase_one:
            with events_lock:
                events.append(("finish", page))
        return payloads

    github.list_pulls = recording_list_pulls

    _engine(github, store, batch_size=3).sync("octo", "hello")

    position = {event: index for index, event in enumerate(events)}
    batches = [range(1, 4), range(4, 7), range(7, 10)]
    for earlier, later in zip(batches, batches[1:]):
        assert max(position[("finish", page)] for page in earlier) < min(position[("start", page)] for page in later)
    assert store.count_contributions("octo", "hello") == 40


def test_token_is_used_for_every_fetch_of_the_call(fake_github, store):
    github = fake_github(12)
    _seed(github, store, range(1, 4))
    github.touch(2, github.base_time + timedelta(days=1))

    _engine(github, store).sync("octo", "hello", token="ghs_installation")

    assert github.calls
    assert {call["token"] for call in github.calls} == {"ghs_installation"}

    github.calls.clear()
    _engine(github, store).sync("octo", "hello", force=True)
    assert {call["token"] for call in github.calls} == {None}


@pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"page_size": 0}, {"page_size": 101}])
def test_invalid_engine_settings(fake_github, store, kwargs):
    fetcher = PageFetcher(fake_github(), sleep=lambda _: None)

    with pytest.raises(ValueError):
        IncrementalSyncEngine(fetcher, store, **kwargs)
