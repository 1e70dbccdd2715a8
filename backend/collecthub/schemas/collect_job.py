"""Pydantic schemas for CollectJob model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CollectJobBase(BaseModel):
    """Base fields for collect job."""

    name: str = Field(min_length=2, max_length=100)
    schedule: str = ""
    collect_time: int = Field(default=24, ge=0)
    interval_seconds: int = Field(default=1, ge=0)
    push_workers: int = Field(default=1, ge=1)
    push_interval_seconds: int = Field(default=2, ge=0)
    max_workers: int = Field(default=2, ge=1)
    status: int = 1


class CollectJobCreate(CollectJobBase):
    """Fields for creating a collect job."""

    source_ids: list[int] = []


class CollectJobSave(BaseModel):
    """Partial update; ``source_ids`` replaces the bindings when given."""

    id: int
    name: str | None = Field(default=None, min_length=2, max_length=100)
    schedule: str | None = None
    collect_time: int | None = Field(default=None, ge=0)
    interval_seconds: int | None = Field(default=None, ge=0)
    push_workers: int | None = Field(default=None, ge=1)
    push_interval_seconds: int | None = Field(default=None, ge=0)
    max_workers: int | None = Field(default=None, ge=1)
    status: int | None = None
    source_ids: list[int] | None = None


class CollectJobRead(CollectJobBase):
    """Full collect job output."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    source_ids: list[int] = []
    created_at: datetime
    updated_at: datetime


class RunJobRequest(BaseModel):
    """Manually start a run, optionally for a subset of sources."""

    id: int
    source_ids: list[int] | None = None
