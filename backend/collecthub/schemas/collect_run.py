"""Pydantic schemas for CollectRun and CollectTask models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CollectRunRead(BaseModel):
    """Run as shown to operators."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int | None = None
    job_name: str | None = None
    status: int
    worker_id: str = ""
    progress_page: int = 0
    progress_total_pages: int = 0
    pushed_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CollectTaskRead(BaseModel):
    """Task as shown to operators and introspection callers."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    run_id: int
    source_id: int
    source_name: str | None = None
    status: int
    current_page: int = 1
    total_pages: int = 0
    created_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    error_message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class Page(BaseModel):
    page: int
    page_size: int
    total: int


class CollectRunPage(Page):
    items: list[CollectRunRead]


class CollectTaskPage(Page):
    items: list[CollectTaskRead]


class IdRequest(BaseModel):
    id: int


class CreatedResponse(BaseModel):
    ok: bool = True
    id: int
