"""Shared Pydantic models for the resolve → fetch pipeline."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BuildInfo(BaseModel):
    """One build as listed by the metadata API. Unknown fields are dropped."""

    model_config = ConfigDict(extra="ignore")

    build: int
    filename: str
    time: datetime | None = None
    channel: str | None = None
    sha256: str | None = None


class BuildDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    project: str = Field(min_length=1)
    version: str = Field(min_length=1)
    build_id: int = Field(ge=0)
    artifact_filename: str = Field(min_length=1)
    checksum: str | None = None


class ArtifactFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    size: int
    sha256: str
    skipped: bool = False


class RetryPolicy(BaseModel):
    """Bounded exponential backoff: delay(n) = min(base * factor**(n-1), max)."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    factor: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> RetryPolicy:
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self

    def delay(self, retry: int) -> float:
        return min(self.base_delay * self.factor ** (retry - 1), self.max_delay)
