from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from collecthub.exceptions import CollectError, InvalidStateError, NotFoundError
from collecthub.models.base import utcnow
from collecthub.models.collect_run import CollectRun, CollectStatus
from collecthub.models.collect_task import CollectTask
from collecthub.schemas.collect_job import CollectJobSave
from collecthub.schemas.collect_source import CollectSourceCreate
from collecthub.services.collect import cron_due, is_cron_schedule, parse_schedule_seconds

from conftest import make_job, make_source


@pytest.mark.parametrize(
    "schedule, expected",
    [
        ("3600", 3600),
        ("  900 ", 900),
        ("@every 60", 60),
        ("@every   5", 5),
        ("", 0),
        (None, 0),
        ("*/5 * * * *", 0),
        ("@every", 0),
        ("-10", 0),
        ("1h", 0),
    ],
)
def test_parse_schedule_seconds(schedule, expected):
    assert parse_schedule_seconds(schedule) == expected


async def _tasks_for(session_factory, run_id):
    async with session_factory() as session:
        result = await session.execute(select(CollectTask).where(CollectTask.run_id == run_id))
        return result.scalars().all()


async def test_create_source_strips_trailing_slash_and_rejects_duplicates(services):
    source = await services.collect.create_source(
        CollectSourceCreate(name="Catalog", base_url="https://c.example.com/api///")
    )
    assert source.base_url == "https://c.example.com/api"

    with pytest.raises(CollectError):
        await services.collect.create_source(CollectSourceCreate(name="Again", base_url="https://c.example.com/api"))


async def test_delete_source_refused_while_bound(services):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id])

    with pytest.raises(InvalidStateError):
        await services.collect.delete_source(source_id)

    await services.collect.delete_job(job_id)
    await services.collect.delete_source(source_id)
    assert await services.collect.list_sources() == []


async def test_save_job_rebinds_sources(services):
    a = await make_source(services, name="Alpha", base_url="https://a.example.com")
    b = await make_source(services, name="Beta", base_url="https://b.example.com")
    job_id = await make_job(services, [a])

    job = await services.collect.save_job(CollectJobSave(id=job_id, source_ids=[b], schedule=" @every 60 "))

    assert [s.id for s in job.sources] == [b]
    assert job.schedule == "@every 60"


async def test_create_run_uses_job_sources(services, session_factory):
    a = await make_source(services, name="Alpha", base_url="https://a.example.com")
    b = await make_source(services, name="Beta", base_url="https://b.example.com")
    job_id = await make_job(services, [a, b])

    run_id = await services.collect.create_run(job_id, [])

    run = await services.collect.get_run(run_id)
    tasks = await _tasks_for(session_factory, run_id)
    assert run.status == CollectStatus.PENDING
    assert sorted(t.source_id for t in tasks) == [a, b]
    assert all(t.status == CollectStatus.PENDING for t in tasks)


async def test_create_run_with_explicit_subset(services, session_factory):
    a = await make_source(services, name="Alpha", base_url="https://a.example.com")
    b = await make_source(services, name="Beta", base_url="https://b.example.com")
    job_id = await make_job(services, [a, b])

    run_id = await services.collect.create_run(job_id, [b, b])

    tasks = await _tasks_for(session_factory, run_id)
    assert [t.source_id for t in tasks] == [b]


async def test_create_run_without_sources_fails_fast(services, session_factory):
    job_id = await make_job(services, [])

    run_id = await services.collect.create_run(job_id)

    run = await services.collect.get_run(run_id)
    assert run.status == CollectStatus.FAILED
    assert run.message == "no sources bound to this job"
    assert run.finished_at is not None
    assert await _tasks_for(session_factory, run_id) == []


async def test_create_run_for_missing_job(services):
    with pytest.raises(NotFoundError):
        await services.collect.create_run(999)


async def test_cancel_run_fails_open_tasks(services, session_factory):
    a = await make_source(services, name="Alpha", base_url="https://a.example.com")
    b = await make_source(services, name="Beta", base_url="https://b.example.com")
    job_id = await make_job(services, [a, b])
    run_id = await services.collect.create_run(job_id)
    claimed = await services.tasks.claim_next_task()
    await services.tasks.complete_task(claimed.id, CollectStatus.DONE)

    await services.collect.cancel_run(run_id)

    run = await services.collect.get_run(run_id)
    tasks = {t.id: t for t in await _tasks_for(session_factory, run_id)}
    assert run.status == CollectStatus.FAILED
    assert run.message == "cancelled by user"
    assert tasks[claimed.id].status == CollectStatus.DONE
    others = [t for t in tasks.values() if t.id != claimed.id]
    assert [t.status for t in others] == [CollectStatus.FAILED]
    assert others[0].error_message == "cancelled by user"

    with pytest.raises(InvalidStateError):
        await services.collect.cancel_run(run_id)


async def test_delete_run_removes_tasks(services, session_factory):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id])
    run_id = await services.collect.create_run(job_id)

    await services.collect.delete_run(run_id)

    assert await _tasks_for(session_factory, run_id) == []
    with pytest.raises(NotFoundError):
        await services.collect.delete_run(run_id)


async def test_list_runs_joins_job_name(services):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id], name="Nightly")
    await services.collect.create_run(job_id)
    await services.collect.create_run(job_id)

    result = await services.collect.list_runs(page=1, page_size=1)

    assert result["total"] == 2
    run, job_name = result["items"][0]
    assert job_name == "Nightly"
    filtered = await services.collect.list_runs(status=CollectStatus.DONE)
    assert filtered["total"] == 0


async def test_enqueue_creates_run_for_due_job_with_two_sources(services, session_factory):
    a = await make_source(services, name="Alpha", base_url="https://a.example.com")
    b = await make_source(services, name="Beta", base_url="https://b.example.com")
    await make_job(services, [a, b], schedule="3600")

    created = await services.collect.enqueue_due_jobs()

    assert len(created) == 1
    tasks = await _tasks_for(session_factory, created[0])
    assert len(tasks) == 2
    assert all(t.status == CollectStatus.PENDING for t in tasks)


async def test_enqueue_skips_job_with_active_run(services, session_factory):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id], schedule="60")
    run_id = await services.collect.create_run(job_id)

    # Well past the interval, but the first run is still pending
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(CollectRun)
                .where(CollectRun.id == run_id)
                .values(created_at=utcnow() - timedelta(days=1))
            )

    assert await services.collect.enqueue_due_jobs() == []

    await services.tasks.claim_next_task()
    assert await services.collect.enqueue_due_jobs() == []


async def test_enqueue_waits_for_interval(services, session_factory):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id], schedule="@every 3600")
    run_id = await services.collect.create_run(job_id)
    await services.collect.cancel_run(run_id)

    assert await services.collect.enqueue_due_jobs() == []

    later = utcnow() + timedelta(seconds=3601)
    assert len(await services.collect.enqueue_due_jobs(now=later)) == 1


async def test_enqueue_ignores_disabled_and_unparseable_jobs(services):
    source_id = await make_source(services)
    await make_job(services, [source_id], name="Free text", schedule="every hour")
    await make_job(services, [source_id], name="Manual", schedule="")

    assert await services.collect.enqueue_due_jobs() == []


CRON_NOW = datetime(2030, 1, 1, 10, 10, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "schedule, expected",
    [
        ("*/5 * * * *", True),
        ("0 */2 * * *", True),
        ("@hourly", True),
        ("3600", False),
        ("@every 60", False),
        ("every hour", False),
        ("", False),
    ],
)
def test_is_cron_schedule(schedule, expected):
    assert is_cron_schedule(schedule) is expected


def test_cron_due_fires_once_per_matching_minute():
    assert cron_due("*/5 * * * *", CRON_NOW, None)
    assert not cron_due("*/5 * * * *", CRON_NOW + timedelta(minutes=1), None)
    assert not cron_due("*/5 * * * *", CRON_NOW, datetime(2030, 1, 1, 10, 10, 1, tzinfo=timezone.utc))
    assert cron_due("*/5 * * * *", CRON_NOW, datetime(2030, 1, 1, 10, 9, 59, tzinfo=timezone.utc))


async def test_enqueue_cron_job_when_expression_fires(services, session_factory):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id], name="Every five", schedule="*/5 * * * *")

    assert await services.collect.enqueue_due_jobs(now=CRON_NOW + timedelta(minutes=1)) == []

    created = await services.collect.enqueue_due_jobs(now=CRON_NOW)
    assert len(created) == 1
    # Still pending
    assert await services.collect.enqueue_due_jobs(now=CRON_NOW + timedelta(minutes=5)) == []

    await services.collect.cancel_run(created[0])
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(CollectRun)
                .where(CollectRun.id == created[0])
                .values(created_at=datetime(2030, 1, 1, 10, 10, 0, tzinfo=timezone.utc))
            )

    assert await services.collect.enqueue_due_jobs(now=CRON_NOW + timedelta(seconds=30)) == []
    later = await services.collect.enqueue_due_jobs(now=CRON_NOW + timedelta(minutes=5))
    assert len(later) == 1
    run = await services.collect.get_run(later[0])
    assert run.job_id == job_id


async def _make_running_run(services, session_factory, age_seconds):
    source_id = await make_source(services, name=f"S{age_seconds}", base_url=f"https://{age_seconds}.example.com")
    job_id = await make_job(services, [source_id], name=f"J{age_seconds}", schedule="")
    run_id = await services.collect.create_run(job_id)
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(CollectRun)
                .where(CollectRun.id == run_id)
                .values(status=CollectStatus.RUNNING, updated_at=utcnow() - timedelta(seconds=age_seconds))
            )
    return run_id


async def test_reaper_fails_stale_running_runs_only(services, session_factory):
    stale_id = await _make_running_run(services, session_factory, 1200)
    fresh_id = await _make_running_run(services, session_factory, 30)

    reaped = await services.collect.reap_stale_runs()

    stale = await services.collect.get_run(stale_id)
    fresh = await services.collect.get_run(fresh_id)
    assert reaped == 1
    assert stale.status == CollectStatus.FAILED
    assert stale.message == "stale run timeout (no update for 600s)"
    assert stale.error_count == 1
    assert stale.finished_at is not None
    assert fresh.status == CollectStatus.RUNNING

    tasks = await _tasks_for(session_factory, stale_id)
    assert all(t.status == CollectStatus.FAILED for t in tasks)


async def test_reaper_respects_batch_size(services, session_factory):
    services.collect.reaper_batch_size = 1
    await _make_running_run(services, session_factory, 1000)
    await _make_running_run(services, session_factory, 2000)

    assert await services.collect.reap_stale_runs() == 1
    assert await services.collect.reap_stale_runs() == 1
    assert await services.collect.reap_stale_runs() == 0


async def test_fail_run_if_active_only_touches_active_runs(services, session_factory):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id])
    run_id = await services.collect.create_run(job_id)

    assert await services.collect.oldest_pending_run_id() == run_id
    assert await services.collect.has_pending_work()

    assert await services.collect.fail_run_if_active(run_id, "collector exit code=1")
    assert not await services.collect.fail_run_if_active(run_id, "again")
    assert not await services.collect.fail_run_if_active(None, "no run")

    run = await services.collect.get_run(run_id)
    assert run.message == "collector exit code=1"
    assert run.error_count == 1
    assert not await services.collect.has_pending_work()


async def test_fail_run_if_active_fails_running_run_and_open_tasks(services, session_factory):
    source_id = await make_source(services)
    job_id = await make_job(services, [source_id])
    run_id = await services.collect.create_run(job_id)
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(CollectRun).where(CollectRun.id == run_id).values(status=CollectStatus.RUNNING)
            )

    assert await services.collect.fail_run_if_active(run_id, "collector exit code=2")

    run = await services.collect.get_run(run_id)
    assert run.status == CollectStatus.FAILED
    assert run.finished_at is not None
    tasks = await _tasks_for(session_factory, run_id)
    assert all(t.status == CollectStatus.FAILED for t in tasks)
