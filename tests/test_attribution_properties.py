"""Property-based tests for attribution scoring."""

import math

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from src.attribution.engine import EPSILON, attribute, normalize, renormalize
from src.models.contribution import ClassifiedScore
from src.utils.errors import ValidationError

log = structlog.stdlib.get_logger()

AUTHORS = ["alice", "bob", "carol", "dave", "erin"]


def _item(number: int, author: str, bucket: int, score: float) -> ClassifiedScore:
    return ClassifiedScore(owner="octo", repo="hello", number=number, author=author, bucket=bucket, score=score)


@st.composite
def scored_items(draw: st.DrawFn, min_size: int = 1, max_size: int = 40) -> list[ClassifiedScore]:
    """Generate classified scores with unique numbers."""
    size = draw(st.integers(min_value=min_size, max_value=max_size))
    return [
        _item(
            number,
            draw(st.sampled_from(AUTHORS)),
            draw(st.integers(min_value=0, max_value=3)),
            draw(st.floats(min_value=-100, max_value=100, allow_nan=False, allow_infinity=False)),
        )
        for number in range(1, size + 1)
    ]


@given(scored_items())
@settings(max_examples=100)
def test_property_credit_is_conserved(items):
    """Property 1: Item, author and bucket credit each sum to one."""
    log.info("test_property_credit_is_conserved", items=len(items))

    result = attribute(items)

    assert sum(credit.pct for credit in result.items) == pytest.approx(1.0)
    assert sum(entry.pct for entry in result.ranking) == pytest.approx(1.0)
    assert sum(q.aggregate_pct for q in result.quartiles) == pytest.approx(1.0)
    assert all(credit.pct >= 0 for credit in result.items)


@given(scored_items())
@settings(max_examples=100)
def test_property_item_credit_is_its_share_of_the_total(items):
    """Property 2: Each item's credit is attrib over the total attrib.

    attrib is the squared min-max normalized score, floored at EPSILON.
    """
    result = attribute(items)

    attribs = [max(norm * norm, EPSILON) for norm in normalize([item.score for item in items])]
    total = sum(attribs)
    for credit, attrib in zip(result.items, attribs):
        assert credit.pct == pytest.approx(attrib / total, rel=1e-6, abs=1e-12)


@given(scored_items(min_size=2))
@settings(max_examples=100)
def test_property_higher_score_never_earns_less(items):
    """Property 3: Credit is monotone in the raw score."""
    result = attribute(items)

    by_score = sorted(zip(items, result.items), key=lambda pair: pair[0].score)
    for (_, lower), (_, higher) in zip(by_score, by_score[1:]):
        assert higher.pct >= lower.pct - 1e-12


@given(scored_items())
@settings(max_examples=100)
def test_property_ranking_order_and_bucket_counts(items):
    """Property 4: Ranking is credit descending with ties broken by author."""
    result = attribute(items)

    keys = [(-entry.pct, entry.author) for entry in result.ranking]
    assert keys == sorted(keys)
    assert {entry.author for entry in result.ranking} == {item.author for item in items}
    assert sum(entry.total_count for entry in result.ranking) == len(items)
    for entry in result.ranking:
        assert sum(entry.bucket_pcts) == pytest.approx(entry.pct)

    for quartile in result.quartiles:
        in_bucket = [credit.pct for credit in result.items if credit.bucket == quartile.bucket]
        assert quartile.count == len(in_bucket)
        if in_bucket:
            assert quartile.min_pct == min(in_bucket)
            assert quartile.max_pct == max(in_bucket)


@given(
    st.lists(st.sampled_from(AUTHORS), min_size=1, max_size=20),
    st.floats(min_value=-5, max_value=5, allow_nan=False),
)
def test_property_equal_scores_split_evenly(authors, score):
    """Property 5: When every score is equal, every item earns 1/n."""
    items = [_item(n, author, n % 4, score) for n, author in enumerate(authors, start=1)]

    result = attribute(items)

    for credit in result.items:
        assert credit.pct == pytest.approx(1 / len(items))


def test_empty_input():
    result = attribute([])

    assert result.is_empty
    assert result.ranking == []
    assert [(q.bucket, q.count, q.aggregate_pct) for q in result.quartiles] == [
        (0, 0, 0.0),
        (1, 0, 0.0),
        (2, 0, 0.0),
        (3, 0, 0.0),
    ]


def test_three_authors_scenario():
    items = [
        _item(1, "alice", 3, 2.0),
        _item(2, "bob", 0, -2.0),
        _item(3, "carol", 2, 1.0),
    ]

    result = attribute(items)

    # Normalized: alice 1.0, bob 0.0, carol 0.75
    total = 1.0 + EPSILON + 0.5625
    assert [entry.author for entry in result.ranking] == ["alice", "carol", "bob"]
    assert result.ranking[0].pct == pytest.approx(1.0 / total)
    assert result.ranking[1].pct == pytest.approx(0.5625 / total)
    assert result.ranking[2].pct == pytest.approx(EPSILON / total, rel=1e-6)
    assert result.ranking[0].bucket_counts == [0, 0, 0, 1]
    assert result.quartiles[0].aggregate_pct == pytest.approx(EPSILON / total, rel=1e-6)


def test_repeated_contributions_add_up():
    items = [
        _item(1, "alice", 3, 2.0),
        _item(2, "alice", 3, 2.0),
        _item(3, "bob", 3, 2.0),
        _item(4, "bob", 0, -2.0),
    ]

    result = attribute(items)

    alice, bob = result.ranking
    assert alice.author == "alice"
    assert alice.pct == pytest.approx(2 / 3)
    assert bob.pct == pytest.approx(1 / 3)
    assert bob.bucket_counts == [1, 0, 0, 1]
    assert result.quartiles[3].count == 3


def test_ties_are_ranked_by_author():
    items = [_item(1, "zoe", 2, 1.0), _item(2, "adam", 2, 1.0), _item(3, "mia", 2, 1.0)]

    result = attribute(items)

    assert [entry.author for entry in result.ranking] == ["adam", "mia", "zoe"]


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
def test_non_finite_scores_rejected(bad):
    with pytest.raises(ValidationError):
        attribute([_item(1, "alice", 1, 1.0), _item(2, "bob", 1, bad)])


def test_out_of_range_bucket_rejected():
    item = _item(1, "alice", 1, 1.0).model_copy(update={"bucket": 7})

    with pytest.raises(ValidationError):
        attribute([item])


def test_renormalize():
    assert renormalize([0.2, 0.2, 0.0, 0.6]) == pytest.approx([0.2, 0.2, 0.0, 0.6])
    assert renormalize([1.0, 1.0, 0.0, 2.0]) == pytest.approx([0.25, 0.25, 0.0, 0.5])
    assert renormalize([0.0, 0.0, 0.0, 0.0]) == [0.0, 0.0, 0.0, 0.0]


def test_normalize():
    assert normalize([]) == []
    assert normalize([3.0, 3.0]) == [0.0, 0.0]
    assert normalize([-1.0, 0.0, 3.0]) == pytest.approx([0.0, 0.25, 1.0])
