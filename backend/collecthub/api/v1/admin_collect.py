"""Operator endpoints for sources, jobs, runs, type bindings and collect settings."""

from fastapi import APIRouter, Depends, Query

from collecthub.api.v1.collector_queue import task_page
from collecthub.config import Settings
from collecthub.dependencies.auth import get_app_settings, require_admin
from collecthub.dependencies.services import (
    get_collect,
    get_runner,
    get_settings_service,
    get_tasks,
    get_type_bind,
)
from collecthub.models.collect_job import CollectJob
from collecthub.schemas.collect_job import CollectJobCreate, CollectJobRead, CollectJobSave, RunJobRequest
from collecthub.schemas.collect_run import (
    CollectRunPage,
    CollectRunRead,
    CollectTaskPage,
    CreatedResponse,
    IdRequest,
)
from collecthub.schemas.collect_settings import CollectSettings, CollectSettingsUpdate, SystemSettings
from collecthub.schemas.collect_source import CollectSourceCreate, CollectSourceRead, CollectSourceSave
from collecthub.schemas.collector_queue import OkResponse
from collecthub.schemas.type_binding import (
    RemoteTypesResponse,
    TypeBindingBatch,
    TypeBindingRead,
    TypeBindingSave,
)
from collecthub.services.collect import CollectService
from collecthub.services.collect_settings import CollectSettingsService
from collecthub.services.collect_task import CollectTaskService
from collecthub.services.type_bind import TypeBindService
from collecthub.services.worker_runner import WorkerRunner

router = APIRouter(
    prefix="/admin/collect",
    tags=["admin-collect"],
    dependencies=[Depends(require_admin)],
)


def job_read(job: CollectJob) -> CollectJobRead:
    return CollectJobRead(
        **CollectJobRead.model_validate(job).model_dump(exclude={"source_ids"}),
        source_ids=[source.id for source in job.sources],
    )


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

@router.get("/sources", response_model=list[CollectSourceRead])
async def list_sources(collect: CollectService = Depends(get_collect)):
    return await collect.list_sources()


@router.post("/sources/create", response_model=CreatedResponse)
async def create_source(body: CollectSourceCreate, collect: CollectService = Depends(get_collect)):
    source = await collect.create_source(body)
    return CreatedResponse(id=source.id)


@router.post("/sources/save", response_model=CollectSourceRead)
async def save_source(body: CollectSourceSave, collect: CollectService = Depends(get_collect)):
    return await collect.save_source(body)


@router.post("/sources/delete", response_model=OkResponse)
async def delete_source(body: IdRequest, collect: CollectService = Depends(get_collect)):
    await collect.delete_source(body.id)
    return OkResponse()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

@router.get("/jobs", response_model=list[CollectJobRead])
async def list_jobs(collect: CollectService = Depends(get_collect)):
    return [job_read(job) for job in await collect.list_jobs()]


@router.post("/jobs/create", response_model=CreatedResponse)
async def create_job(body: CollectJobCreate, collect: CollectService = Depends(get_collect)):
    job = await collect.create_job(body)
    return CreatedResponse(id=job.id)


@router.post("/jobs/save", response_model=CollectJobRead)
async def save_job(body: CollectJobSave, collect: CollectService = Depends(get_collect)):
    return job_read(await collect.save_job(body))


@router.post("/jobs/delete", response_model=OkResponse)
async def delete_job(body: IdRequest, collect: CollectService = Depends(get_collect)):
    await collect.delete_job(body.id)
    return OkResponse()


@router.post("/jobs/run", response_model=CreatedResponse)
async def run_job(
    body: RunJobRequest,
    collect: CollectService = Depends(get_collect),
    runner: WorkerRunner = Depends(get_runner),
    settings: Settings = Depends(get_app_settings),
):
    """Start a run now; the reference collector is kicked when enabled."""
    run_id = await collect.create_run(body.id, body.source_ids)
    if settings.runner_enabled:
        runner.kick_soon()
    return CreatedResponse(id=run_id)


# ---------------------------------------------------------------------------
# Runs / tasks
# ---------------------------------------------------------------------------

@router.get("/runs", response_model=CollectRunPage)
async def list_runs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: int | None = Query(None, ge=0, le=3),
    job_id: int | None = Query(None),
    collect: CollectService = Depends(get_collect),
):
    result = await collect.list_runs(page, page_size, status=status, job_id=job_id)
    return CollectRunPage(
        page=result["page"],
        page_size=result["page_size"],
        total=result["total"],
        items=[
            CollectRunRead(
                **CollectRunRead.model_validate(run).model_dump(exclude={"job_name"}),
                job_name=job_name,
            )
            for run, job_name in result["items"]
        ],
    )


@router.get("/runs/{run_id}", response_model=CollectRunRead)
async def get_run(run_id: int, collect: CollectService = Depends(get_collect)):
    return await collect.get_run(run_id)


@router.post("/runs/cancel", response_model=OkResponse)
async def cancel_run(body: IdRequest, collect: CollectService = Depends(get_collect)):
    await collect.cancel_run(body.id)
    return OkResponse()


@router.post("/runs/delete", response_model=OkResponse)
async def delete_run(body: IdRequest, collect: CollectService = Depends(get_collect)):
    await collect.delete_run(body.id)
    return OkResponse()


@router.get("/tasks", response_model=CollectTaskPage)
async def list_tasks(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    run_id: int | None = Query(None),
    source_id: int | None = Query(None),
    status: int | None = Query(None, ge=0, le=3),
    tasks: CollectTaskService = Depends(get_tasks),
):
    result = await tasks.list_tasks(page, page_size, run_id=run_id, source_id=source_id, status=status)
    return task_page(result)


# ---------------------------------------------------------------------------
# Type bindings
# ---------------------------------------------------------------------------

@router.get("/type-bind/list", response_model=list[TypeBindingRead])
async def list_type_bindings(
    source_id: int = Query(..., gt=0),
    type_bind: TypeBindService = Depends(get_type_bind),
):
    return await type_bind.list_bindings(source_id)


@router.post("/type-bind/save", response_model=OkResponse)
async def save_type_binding(body: TypeBindingSave, type_bind: TypeBindService = Depends(get_type_bind)):
    await type_bind.save_bind(body.source_id, body.remote_type_id, body.local_type_id, body.remote_type_name)
    return OkResponse()


@router.post("/type-bind/save-batch")
async def save_type_bindings(body: TypeBindingBatch, type_bind: TypeBindService = Depends(get_type_bind)):
    result = await type_bind.save_bind_batch(body.source_id, [b.model_dump() for b in body.bindings])
    return {"ok": True, **result}


@router.post("/type-bind/delete", response_model=OkResponse)
async def delete_type_binding(
    source_id: int = Query(..., gt=0),
    remote_type_id: int = Query(..., gt=0),
    type_bind: TypeBindService = Depends(get_type_bind),
):
    await type_bind.delete_bind(source_id, remote_type_id)
    return OkResponse()


@router.get("/type-bind/fetch-remote", response_model=RemoteTypesResponse, response_model_exclude_none=True)
async def fetch_remote_types(
    base_url: str = Query(..., min_length=1),
    type_bind: TypeBindService = Depends(get_type_bind),
):
    return await type_bind.fetch_remote_types(base_url)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get("/settings", response_model=CollectSettings)
async def get_collect_settings(settings_service: CollectSettingsService = Depends(get_settings_service)):
    return await settings_service.get()


@router.post("/settings/save", response_model=CollectSettings)
async def save_collect_settings(
    body: CollectSettingsUpdate,
    settings_service: CollectSettingsService = Depends(get_settings_service),
):
    return await settings_service.save(body)


@router.post("/settings/system", response_model=OkResponse)
async def save_system_settings(
    body: SystemSettings,
    settings_service: CollectSettingsService = Depends(get_settings_service),
):
    """Set the ingestion secret handed to workers and checked by the receive endpoints."""
    await settings_service.save_system(body.interface_pass)
    return OkResponse()
