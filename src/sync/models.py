"""Data models for synchronization operations."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.contribution import Contribution


class StalenessReport(BaseModel):
    """Both staleness signals for one repository."""

    owner: str
    repo: str
    new_items: bool = Field(
        default=False, description="Remote highest number differs from the local one"
    )
    updated_items: bool = Field(
        default=False, description="Remote has updates newer than the local watermark"
    )
    upstream_error: str | None = Field(
        default=None, description="Error that forced a conservative stale result"
    )
    local_highest_number: int | None = None
    remote_highest_number: int | None = None
    local_watermark: datetime | None = None
    remote_watermark: datetime | None = None

    @property
    def stale(self) -> bool:
        return self.new_items or self.updated_items


class SyncResult(BaseModel):
    """Report of one incremental sync call."""

    owner: str = Field(..., description="Repository owner")
    repo: str = Field(..., description="Repository name")
    phase_one_synced: int = Field(default=0, ge=0, description="Items upserted while catching up on new numbers")
    phase_two_synced: int = Field(default=0, ge=0, description="Items upserted while catching up on updates")
    pages_fetched: int = Field(default=0, ge=0, description="Pages requested from GitHub")
    latest_item: Contribution | None = Field(
        default=None, description="Highest-numbered pull request seen in phase one"
    )
    skipped: bool = Field(default=False, description="True when nothing was stale")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Sync duration in seconds")

    @property
    def total_synced(self) -> int:
        return self.phase_one_synced + self.phase_two_synced
