"""Shared fakes for the test suite."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.storage.store import SqlStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class FakeGitHub:
    """In-memory stand-in for GitHubClient.

    Pull requests are created in number order, one minute apart. Every
    ``list_pulls`` call is recorded so tests can count fetches.
    """

    base_time = BASE_TIME

    def __init__(self, count: int = 0, owner: str = "octo", repo: str = "hello"):
        self.owner = owner
        self.repo = repo
        self.prs: dict[int, dict[str, Any]] = {}
        self.files: dict[int, list[dict[str, Any]]] = {}
        self.calls: list[dict[str, Any]] = []
        self.failures: dict[tuple[str, int], Exception] = {}
        self._lock = threading.Lock()
        for number in range(1, count + 1):
            self.add(number)

    def add(self, number: int, author: str | None = None, merged: bool = True) -> dict[str, Any]:
        created = BASE_TIME + timedelta(minutes=number)
        payload = {
            "number": number,
            "state": "closed" if merged else "open",
            "title": f"PR {number}",
            "body": None,
            "user": {"login": author or f"user{number % 5}"},
            "created_at": iso(created),
            "updated_at": iso(created),
            "merged_at": iso(created + timedelta(seconds=30)) if merged else None,
            "html_url": f"https://github.com/{self.owner}/{self.repo}/pull/{number}",
        }
        self.prs[number] = payload
        return payload

    def touch(self, number: int, updated_at: datetime, title: str | None = None) -> None:
        self.prs[number]["updated_at"] = iso(updated_at)
        if title is not None:
            self.prs[number]["title"] = title

    def list_pulls(
        self,
        owner: str,
        repo: str,
        page: int = 1,
        per_page: int = 100,
        sort: str = "created",
        direction: str = "asc",
        state: str = "all",
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append(
                {"page": page, "per_page": per_page, "sort": sort, "direction": direction, "token": token}
            )
            failure = self.failures.get((sort, page))
        if failure is not None:
            raise failure

        field = "created_at" if sort == "created" else "updated_at"
        ordered = sorted(
            self.prs.values(),
            key=lambda pr: (pr[field], pr["number"]),
            reverse=direction == "desc",
        )
        start = (page - 1) * per_page
        return [dict(pr) for pr in ordered[start : start + per_page]]

    def list_pull_files(self, owner: str, repo: str, number: int, token: str | None = None) -> list[dict[str, Any]]:
        return self.files.get(number, [])

    def fetch_count(self, per_page: int, sort: str | None = None) -> int:
        return sum(
            1
            for call in self.calls
            if call["per_page"] == per_page and (sort is None or call["sort"] == sort)
        )


@pytest.fixture(scope="session")
def fake_github():
    """The FakeGitHub class, usable inside hypothesis tests."""
    return FakeGitHub


@pytest.fixture(scope="session")
def make_store():
    """Factory for fresh in-memory stores."""
    return lambda: SqlStore("sqlite://")


@pytest.fixture
def store():
    store = SqlStore("sqlite://")
    yield store
    store.close()
