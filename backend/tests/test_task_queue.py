import asyncio

import pytest
from sqlalchemy import select

from collecthub.exceptions import CollectError
from collecthub.models.collect_run import CollectStatus
from collecthub.models.collect_task import CollectTask

from conftest import make_job, make_source


async def _run_with_sources(services, count):
    source_ids = [
        await make_source(services, name=f"Source {i}", base_url=f"https://s{i}.example.com")
        for i in range(count)
    ]
    job_id = await make_job(services, source_ids)
    run_id = await services.collect.create_run(job_id)
    return run_id, source_ids


async def test_claim_returns_oldest_pending_task(services):
    run_id, source_ids = await _run_with_sources(services, 2)

    first = await services.tasks.claim_next_task()
    second = await services.tasks.claim_next_task()
    third = await services.tasks.claim_next_task()

    assert first.run_id == run_id
    assert first.source_id == source_ids[0]
    assert first.current_page == 1
    assert second.source_id == source_ids[1]
    assert third is None


async def test_claim_with_no_pending_tasks_returns_none(services):
    assert await services.tasks.claim_next_task() is None


async def test_concurrent_claims_yield_single_task_once(services):
    await _run_with_sources(services, 1)

    results = await asyncio.gather(
        services.tasks.claim_next_task(),
        services.tasks.claim_next_task(),
    )

    claimed = [r for r in results if r is not None]
    assert len(claimed) == 1
    assert results.count(None) == 1


async def test_create_tasks_is_insert_if_absent(services, session_factory):
    run_id, source_ids = await _run_with_sources(services, 2)

    async with session_factory() as session:
        async with session.begin():
            created = await services.tasks.create_tasks_for_run(session, run_id, source_ids + source_ids)

    assert created == 0
    stats = await services.tasks.task_stats(run_id)
    assert stats.total_tasks == 2


async def test_progress_is_absolute_and_keeps_omitted_fields(services):
    await _run_with_sources(services, 1)
    task = await services.tasks.claim_next_task()

    await services.tasks.report_progress(task.id, current_page=3, total_pages=10, created_count=4)
    await services.tasks.report_progress(task.id, created_count=6, error_count=1)

    stats = await services.tasks.task_stats(task.run_id)
    assert stats.total_created == 6
    assert stats.total_errors == 1

    result = await services.tasks.list_tasks(run_id=task.run_id)
    row, source_name = result["items"][0]
    assert row.current_page == 3
    assert row.total_pages == 10
    assert source_name == "Source 0"


async def test_terminal_task_never_transitions_again(services, session_factory):
    await _run_with_sources(services, 1)
    task = await services.tasks.claim_next_task()

    assert await services.tasks.complete_task(task.id, CollectStatus.DONE)
    assert not await services.tasks.complete_task(task.id, CollectStatus.FAILED, "late failure")
    assert not await services.tasks.report_progress(task.id, created_count=99)

    async with session_factory() as session:
        row = await session.get(CollectTask, task.id)
    assert row.status == CollectStatus.DONE
    assert row.created_count == 0
    assert row.finished_at is not None


async def test_done_requires_running(services):
    run_id, _ = await _run_with_sources(services, 1)
    result = await services.tasks.list_tasks(run_id=run_id)
    pending_id = result["items"][0][0].id

    assert not await services.tasks.complete_task(pending_id, CollectStatus.DONE)
    assert await services.tasks.complete_task(pending_id, CollectStatus.FAILED, "never started")


async def test_complete_task_truncates_error_message(services, session_factory):
    await _run_with_sources(services, 1)
    task = await services.tasks.claim_next_task()

    await services.tasks.complete_task(task.id, CollectStatus.FAILED, "x" * 2000)

    async with session_factory() as session:
        row = await session.get(CollectTask, task.id)
    assert len(row.error_message) == 500


async def test_complete_task_rejects_non_terminal_status(services):
    with pytest.raises(CollectError):
        await services.tasks.complete_task(1, CollectStatus.RUNNING)


async def test_aggregate_stats_rewrites_run_counters(services, session_factory):
    run_id, _ = await _run_with_sources(services, 2)
    a = await services.tasks.claim_next_task()
    b = await services.tasks.claim_next_task()
    await services.tasks.report_progress(a.id, created_count=3, updated_count=1)
    await services.tasks.report_progress(b.id, created_count=2, error_count=4)

    async with session_factory() as session:
        async with session.begin():
            stats = await services.tasks.aggregate_stats(session, run_id)

    run = await services.collect.get_run(run_id)
    assert stats.total_created == 5
    assert run.created_count == 5
    assert run.updated_count == 1
    assert run.pushed_count == 6
    assert run.error_count == 4


async def test_record_ledger_upserts_on_source_and_remote_id(services, session_factory):
    source_id = await make_source(services)

    async with session_factory() as session:
        async with session.begin():
            await services.tasks.record_collected_item(session, source_id, "r-1", 10, True, task_id=1)
        async with session.begin():
            await services.tasks.record_collected_item(session, source_id, "r-1", 10, False, task_id=2)

    assert await services.tasks.check_record_exists(source_id, "r-1")
    assert not await services.tasks.check_record_exists(source_id, "r-2")

    from collecthub.models.collect_record import CollectRecord

    async with session_factory() as session:
        rows = (await session.execute(select(CollectRecord))).scalars().all()
    assert len(rows) == 1
    assert rows[0].task_id == 2
    assert rows[0].is_new is False
