"""Property-based tests for the GitHub client and page fetcher."""

import json
from unittest.mock import Mock

import pytest
import requests
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from src.github.client import GitHubClient
from src.github.page_fetcher import Page, PageFetcher, PageParams, SortDirection, SortKey
from src.utils.errors import AuthError, TransientUpstreamError, UpstreamAPIError

log = structlog.stdlib.get_logger()


def _response(status: int, body=None, headers: dict | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body if body is not None else []).encode()
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    return response


def _client(response=None, side_effect=None, token: str | None = "ghp_test") -> tuple[GitHubClient, Mock]:
    session = requests.Session()
    session.get = Mock(return_value=response, side_effect=side_effect)
    return GitHubClient(token=token, session=session), session.get


def _pull(number: int) -> dict:
    return {
        "number": number,
        "state": "closed",
        "title": f"PR {number}",
        "user": {"login": "octocat"},
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-02T00:00:00Z",
        "merged_at": "2024-01-02T00:00:00Z",
    }


def test_list_pulls_sends_listing_parameters():
    client, get = _client(_response(200, [_pull(1)]))

    payloads = client.list_pulls("octo", "hello", page=3, per_page=50, sort="updated", direction="desc")

    assert payloads == [_pull(1)]
    url = get.call_args.args[0]
    params = get.call_args.kwargs["params"]
    assert url == "https://api.github.com/repos/octo/hello/pulls"
    assert params == {"state": "all", "sort": "updated", "direction": "desc", "per_page": 50, "page": 3}


def test_headers_carry_token():
    session = requests.Session()
    GitHubClient(token="ghp_test", session=session)

    assert session.headers["Authorization"] == "Bearer ghp_test"
    assert session.headers["Accept"] == "application/vnd.github+json"


def test_anonymous_client_sends_no_authorization():
    session = requests.Session()
    GitHubClient(session=session)

    assert "Authorization" not in session.headers


def test_token_for_one_call_overrides_the_client_token():
    client, get = _client(_response(200, []))

    client.list_pulls("octo", "hello", token="ghs_installation")
    assert get.call_args.kwargs["headers"] == {"Authorization": "Bearer ghs_installation"}

    client.list_pull_files("octo", "hello", 3)
    assert get.call_args.kwargs["headers"] is None


def _html_response(status: int = 200) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = b"<html>gateway hiccup</html>"
    response.encoding = "utf-8"
    return response


def test_non_json_body_raises_upstream_error():
    client, _ = _client(_html_response())

    with pytest.raises(UpstreamAPIError) as excinfo:
        client.list_pulls("octo", "hello")

    assert type(excinfo.value) is UpstreamAPIError
    assert isinstance(excinfo.value.cause, ValueError)
    assert excinfo.value.status_code == 200

    with pytest.raises(UpstreamAPIError):
        PageFetcher(client, max_retries=0).latest_by_number("octo", "hello")


def test_fetcher_passes_token_through():
    client = Mock()
    client.list_pulls.return_value = [_pull(9)]
    fetcher = PageFetcher(client, max_retries=0)

    fetcher.fetch("octo", "hello", PageParams(page=2, per_page=10), token="ghs_installation")
    fetcher.latest_by_update("octo", "hello", token="ghs_other")

    assert [c.kwargs["token"] for c in client.list_pulls.call_args_list] == ["ghs_installation", "ghs_other"]


@pytest.mark.parametrize(
    ("status", "headers", "body", "expected"),
    [
        (401, {}, {"message": "Bad credentials"}, AuthError),
        (403, {}, {"message": "Resource not accessible by integration"}, AuthError),
        (403, {"X-RateLimit-Remaining": "0"}, {"message": "Forbidden"}, TransientUpstreamError),
        (403, {"Retry-After": "60"}, {"message": "Forbidden"}, TransientUpstreamError),
        (403, {}, {"message": "API rate limit exceeded"}, TransientUpstreamError),
        (429, {}, {"message": "Too many requests"}, TransientUpstreamError),
        (404, {}, {"message": "Not Found"}, UpstreamAPIError),
        (422, {}, {"message": "Validation Failed"}, UpstreamAPIError),
    ],
)
def test_status_codes_map_to_error_kinds(status, headers, body, expected):
    client, _ = _client(_response(status, body, headers))

    with pytest.raises(expected) as excinfo:
        client.list_pulls("octo", "hello")

    assert type(excinfo.value) is expected
    assert excinfo.value.status_code == status


@given(st.integers(min_value=500, max_value=599))
def test_property_server_errors_are_transient(status: int):
    """Property 1: Every 5xx response is retryable."""
    log.info("test_property_server_errors_are_transient", status=status)
    client, _ = _client(_response(status, {"message": "oops"}))

    with pytest.raises(TransientUpstreamError):
        client.list_pulls("octo", "hello")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (requests.exceptions.ConnectionError("reset"), TransientUpstreamError),
        (requests.exceptions.Timeout("slow"), TransientUpstreamError),
        (requests.exceptions.InvalidURL("bad"), UpstreamAPIError),
    ],
)
def test_network_errors(error, expected):
    client, _ = _client(side_effect=error)

    with pytest.raises(expected) as excinfo:
        client.list_pulls("octo", "hello")

    assert type(excinfo.value) is expected
    assert excinfo.value.cause is error


def test_transient_failures_retry_the_same_page_with_linear_delays():
    delays = []
    client = Mock()
    client.list_pulls.side_effect = [
        TransientUpstreamError("503"),
        TransientUpstreamError("503"),
        [_pull(7)],
    ]
    fetcher = PageFetcher(client, max_retries=3, base_delay=1.0, sleep=delays.append)

    page = fetcher.fetch("octo", "hello", PageParams(page=4, per_page=10))

    assert [item.number for item in page.items] == [7]
    assert delays == [1.0, 2.0]
    assert [c.kwargs["page"] for c in client.list_pulls.call_args_list] == [4, 4, 4]


def test_auth_failure_is_not_retried():
    delays = []
    client = Mock()
    client.list_pulls.side_effect = AuthError("Bad credentials", status_code=401)
    fetcher = PageFetcher(client, max_retries=3, sleep=delays.append)

    with pytest.raises(AuthError):
        fetcher.fetch("octo", "hello", PageParams())

    assert client.list_pulls.call_count == 1
    assert delays == []


def test_retries_exhausted_raise_upstream_error():
    client = Mock()
    client.list_pulls.side_effect = TransientUpstreamError("502")
    fetcher = PageFetcher(client, max_retries=2, sleep=lambda _: None)

    with pytest.raises(UpstreamAPIError):
        fetcher.fetch("octo", "hello", PageParams())

    assert client.list_pulls.call_count == 3


@pytest.mark.parametrize("payload", [{"message": "Moved"}, [{"title": "no number"}], ["not-a-pull-request"], [None]])
def test_malformed_listing_raises_upstream_error(payload):
    client = Mock()
    client.list_pulls.return_value = payload
    fetcher = PageFetcher(client, max_retries=0)

    with pytest.raises(UpstreamAPIError):
        fetcher.fetch("octo", "hello", PageParams())


def test_latest_lookups_request_a_single_item():
    client = Mock()
    client.list_pulls.return_value = [_pull(42)]
    fetcher = PageFetcher(client, max_retries=0)

    assert fetcher.latest_by_number("octo", "hello").number == 42
    assert fetcher.latest_by_update("octo", "hello").number == 42

    by_number, by_update = client.list_pulls.call_args_list
    assert by_number.kwargs == {"page": 1, "per_page": 1, "sort": "created", "direction": "desc", "token": None}
    assert by_update.kwargs == {"page": 1, "per_page": 1, "sort": "updated", "direction": "desc", "token": None}


def test_latest_lookups_on_empty_repository():
    client = Mock()
    client.list_pulls.return_value = []
    fetcher = PageFetcher(client, max_retries=0)

    assert fetcher.latest_by_number("octo", "hello") is None
    assert fetcher.latest_by_update("octo", "hello") is None


@given(
    per_page=st.integers(min_value=1, max_value=100),
    count=st.integers(min_value=0, max_value=100),
)
@settings(max_examples=30)
def test_property_page_fullness(per_page: int, count: int):
    """Property 2: A page is full exactly when it holds per_page items."""
    count = min(count, per_page)
    client = Mock()
    client.list_pulls.return_value = [_pull(n) for n in range(1, count + 1)]
    fetcher = PageFetcher(client, max_retries=0)

    page = fetcher.fetch(
        "octo",
        "hello",
        PageParams(per_page=per_page, sort=SortKey.UPDATED, direction=SortDirection.DESC),
    )

    assert isinstance(page, Page)
    assert page.is_full == (count == per_page)
    assert page.is_empty == (count == 0)


@pytest.mark.parametrize("kwargs", [{"page": 0}, {"per_page": 0}, {"per_page": 101}])
def test_page_params_bounds(kwargs):
    with pytest.raises(ValueError):
        PageParams(**kwargs)
