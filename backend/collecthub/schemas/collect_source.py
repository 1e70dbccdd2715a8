"""Pydantic schemas for CollectSource model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CollectSourceBase(BaseModel):
    """Base fields for collect source."""

    name: str = Field(min_length=2, max_length=100)
    base_url: str = Field(min_length=1, max_length=500)
    collect_type: int = 2
    status: int = 1


class CollectSourceCreate(CollectSourceBase):
    """Fields for creating a collect source."""


class CollectSourceSave(BaseModel):
    """Partial update of a collect source."""

    id: int
    name: str | None = Field(default=None, min_length=2, max_length=100)
    base_url: str | None = Field(default=None, min_length=1, max_length=500)
    collect_type: int | None = None
    status: int | None = None


class CollectSourceRead(CollectSourceBase):
    """Full collect source output."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime


class CollectSourceSummary(BaseModel):
    """Source info handed to workers on pull."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    base_url: str
    collect_type: int
