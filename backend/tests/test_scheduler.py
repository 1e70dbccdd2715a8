from collecthub.services.scheduler import CollectScheduler

from conftest import make_job, make_source


class RecordingRunner:
    def __init__(self):
        self.kicks = 0

    def kick_soon(self):
        self.kicks += 1


class ExplodingCollect:
    async def reap_stale_runs(self):
        raise RuntimeError("database unavailable")

    async def enqueue_due_jobs(self):
        raise AssertionError("not reached")


async def test_tick_enqueues_due_jobs_and_kicks_runner(services):
    source_id = await make_source(services)
    await make_job(services, [source_id], schedule="60")
    runner = RecordingRunner()
    scheduler = CollectScheduler(services.collect, runner=runner)

    assert await scheduler.tick() == {"reaped": 0, "enqueued": 1}
    assert await scheduler.tick() == {"reaped": 0, "enqueued": 0}
    assert runner.kicks == 2
    assert scheduler.last_tick_ok is True


async def test_tick_failure_is_logged_not_raised(caplog):
    runner = RecordingRunner()
    scheduler = CollectScheduler(ExplodingCollect(), runner=runner)

    assert await scheduler.tick() == {"reaped": 0, "enqueued": 0}
    assert scheduler.last_tick_ok is False
    assert runner.kicks == 0
    assert "Collect scheduler tick failed" in caplog.text


async def test_start_and_stop(services):
    scheduler = CollectScheduler(services.collect, interval_seconds=3600)

    await scheduler.start()
    assert scheduler.started
    await scheduler.stop()
    assert not scheduler.started
