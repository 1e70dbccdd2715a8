"""Wire schemas for the worker pull protocol."""

from pydantic import BaseModel, ConfigDict, Field

from collecthub.schemas.collect_source import CollectSourceSummary


class PullRequest(BaseModel):
    worker_id: str | None = None


class PulledRun(BaseModel):
    id: int
    job_id: int | None
    task_id: int
    source_id: int
    current_page: int = 1
    total_pages: int = 0


class PulledJob(BaseModel):
    """Job configuration handed to the worker."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    schedule: str = ""
    collect_time: int
    interval_seconds: int
    push_workers: int
    push_interval_seconds: int
    max_workers: int
    domain_url: str = ""
    api_pass: str = ""
    filter_keywords: str = ""


class PullResponse(BaseModel):
    ok: bool = True
    run: PulledRun | None = None
    job: PulledJob | None = None
    sources: list[CollectSourceSummary] = []


class ReportRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = Field(gt=0)
    task_id: int | None = None
    status: int | None = Field(default=None, ge=0, le=3)
    progress_page: int | None = None
    progress_total_pages: int | None = None
    pushed_count: int | None = None
    updated_count: int | None = None
    created_count: int | None = None
    error_count: int | None = None
    message: str | None = None


class OkResponse(BaseModel):
    ok: bool = True


class RecordExistsResponse(BaseModel):
    exists: bool
