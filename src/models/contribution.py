"""Pydantic models for pull requests and their classified scores."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

NUM_BUCKETS = 4


def parse_github_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp ("2024-01-15T14:30:00Z") into an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Contribution(BaseModel):
    """A pull request mirrored from GitHub, identified by (owner, repo, number)."""

    owner: str = Field(default=..., min_length=1, description="Repository owner")
    repo: str = Field(default=..., min_length=1, description="Repository name")
    number: int = Field(default=..., ge=1, description="Pull request number")
    state: str = Field(default=..., description="open or closed")
    title: str = Field(default="", description="Pull request title")
    body: str | None = Field(default=None, description="Pull request description")
    author: str = Field(default="unknown", description="Login of the pull request author")
    created_at: datetime = Field(default=..., description="Creation timestamp")
    updated_at: datetime = Field(default=..., description="Last update timestamp")
    merged_at: datetime | None = Field(default=None, description="Merge timestamp, if merged")
    html_url: str | None = Field(default=None, description="Link to the pull request")

    model_config = {
        "json_schema_extra": {
            "example": {
                "owner": "octo-org",
                "repo": "hello-world",
                "number": 1347,
                "state": "closed",
                "title": "Fix pagination off-by-one",
                "body": "Pages are 1-indexed.",
                "author": "octocat",
                "created_at": "2024-01-01T10:00:00Z",
                "updated_at": "2024-01-15T14:30:00Z",
                "merged_at": "2024-01-15T14:30:00Z",
                "html_url": "https://github.com/octo-org/hello-world/pull/1347",
            }
        }
    }

    @field_validator("created_at", "updated_at", "merged_at")
    @classmethod
    def normalize_timezone(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.owner, self.repo, self.number)

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None

    @classmethod
    def from_github(cls, owner: str, repo: str, payload: dict[str, Any]) -> "Contribution":
        """Build a Contribution from a GitHub REST pull request payload.

        Args:
            owner: Repository owner the payload was listed from
            repo: Repository name the payload was listed from
            payload: One element of ``GET /repos/{owner}/{repo}/pulls``

        Returns:
            Contribution instance

        Raises:
            ValueError: If number or created_at is missing
        """
        try:
            number = payload["number"]
            created_at = parse_github_timestamp(payload["created_at"])
        except KeyError as e:
            raise ValueError(f"Missing required field in pull request payload: {e}") from e

        user = payload.get("user") or {}
        # GitHub omits updated_at on some legacy records
        updated_at = parse_github_timestamp(payload.get("updated_at")) or created_at

        return cls(
            owner=owner,
            repo=repo,
            number=number,
            state=payload.get("state", "open"),
            title=payload.get("title") or "",
            body=payload.get("body"),
            author=user.get("login") or "unknown",
            created_at=created_at,
            updated_at=updated_at,
            merged_at=parse_github_timestamp(payload.get("merged_at")),
            html_url=payload.get("html_url"),
        )


class ClassifiedScore(BaseModel):
    """Bucket and raw score assigned to one merged contribution by the classifier."""

    owner: str = Field(default=..., description="Repository owner")
    repo: str = Field(default=..., description="Repository name")
    number: int = Field(default=..., ge=1, description="Pull request number")
    author: str = Field(default=..., description="Login credited for the contribution")
    bucket: int = Field(default=..., ge=0, le=NUM_BUCKETS - 1, description="Complexity bucket 0..3")
    score: float = Field(default=..., description="Raw score on the classifier's scale")

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.owner, self.repo, self.number)

    @property
    def source(self) -> str:
        """``owner/repo`` of the repository the contribution belongs to."""
        return f"{self.owner}/{self.repo}"


class ScoredContribution(ClassifiedScore):
    """A ClassifiedScore joined with the merge time of its pull request."""

    merged_at: datetime = Field(default=..., description="Merge timestamp")

    @field_validator("merged_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)
