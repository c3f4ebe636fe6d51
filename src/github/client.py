"""GitHub REST client wrapper for pull request listing."""

from typing import Any

import requests
import structlog
from requests.exceptions import ConnectionError, RequestException, Timeout

from src.utils.errors import AuthError, TransientUpstreamError, UpstreamAPIError

log = structlog.stdlib.get_logger()

USER_AGENT = "pr-attribution/0.1.0"


class GitHubClient:
    """Thin wrapper around the GitHub REST API.

    Translates HTTP failures into the application's error taxonomy:

    - 401, and 403 without rate-limit exhaustion: ``AuthError``
    - network errors, 5xx, 429, and rate-limited 403: ``TransientUpstreamError``
    - any other 4xx: ``UpstreamAPIError``

    The client performs a single attempt per call; retrying is the caller's job.
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: Installation or personal access token (optional)
            api_url: REST API base URL
            timeout: Per-request timeout in seconds
            session: Pre-built session, mainly for tests
        """
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        self._session.headers["Accept"] = "application/vnd.github+json"
        self._session.headers["User-Agent"] = USER_AGENT

        log.info(
            "github_client_initialized",
            api_url=self._api_url,
            authenticated=bool(token),
        )

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
        """
        List one page of pull requests.

        Args:
            owner: Repository owner
            repo: Repository name
            page: 1-based page number
            per_page: Page size (GitHub caps at 100)
            sort: created, updated, popularity, or long-running
            direction: asc or desc
            state: open, closed, or all
            token: Token for this call only, overriding the client token

        Returns:
            Raw pull request payloads for the page (empty past the end)
        """
        return self._get_json(
            f"/repos/{owner}/{repo}/pulls",
            params={
                "state": state,
                "sort": sort,
                "direction": direction,
                "per_page": per_page,
                "page": page,
            },
            token=token,
        )

    def list_pull_files(
        self, owner: str, repo: str, number: int, token: str | None = None
    ) -> list[dict[str, Any]]:
        """List the files changed by a pull request (first 100 files)."""
        return self._get_json(
            f"/repos/{owner}/{repo}/pulls/{number}/files",
            params={"per_page": 100},
            token=token,
        )

    def _get_json(
        self, endpoint: str, params: dict[str, Any] | None = None, token: str | None = None
    ) -> Any:
        url = f"{self._api_url}{endpoint}"
        headers = {"Authorization": f"Bearer {token}"} if token else None

        try:
            response = self._session.get(url, params=params, headers=headers, timeout=self._timeout)
        except (ConnectionError, Timeout) as e:
            log.warning("github_request_failed", url=url, error=str(e))
            raise TransientUpstreamError(f"Request to {url} failed: {e}", cause=e) from e
        except RequestException as e:
            log.error("github_request_error", url=url, error=str(e))
            raise UpstreamAPIError(f"Request to {url} failed: {e}", cause=e) from e

        self._raise_for_status(response, url)

        try:
            return response.json()
        except ValueError as e:
            log.error("github_response_not_json", url=url, status=response.status_code, error=str(e))
            raise UpstreamAPIError(
                f"GitHub returned a non-JSON body for {url}: {response.text[:200]}",
                status_code=response.status_code,
                cause=e,
            ) from e

    def _raise_for_status(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return

        message = f"GitHub API error {status} for {url}: {response.text[:200]}"

        if status == 401:
            raise AuthError(message, status_code=status)

        if status == 403:
            if self._is_rate_limited(response):
                log.warning(
                    "github_rate_limited",
                    url=url,
                    reset=response.headers.get("X-RateLimit-Reset"),
                )
                raise TransientUpstreamError(message, status_code=status)
            raise AuthError(message, status_code=status)

        if status == 429 or status >= 500:
            raise TransientUpstreamError(message, status_code=status)

        raise UpstreamAPIError(message, status_code=status)

    @staticmethod
    def _is_rate_limited(response: requests.Response) -> bool:
        if response.headers.get("X-RateLimit-Remaining") == "0":
            return True
        if "Retry-After" in response.headers:
            return True
        return "rate limit" in response.text.lower()
