"""In-process tick driver: reap stale runs, enqueue due jobs, kick the runner."""

import asyncio
import logging

from collecthub.services.collect import CollectService
from collecthub.services.worker_runner import WorkerRunner

logger = logging.getLogger(__name__)


class CollectScheduler:
    def __init__(
        self,
        collect: CollectService,
        runner: WorkerRunner | None = None,
        interval_seconds: float = 10.0,
    ):
        self.collect = collect
        self.runner = runner
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self.last_tick_ok: bool | None = None

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.started:
            return
        self._task = asyncio.create_task(self._loop(), name="collect-scheduler")
        logger.info(f"Collect scheduler started (tick every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Collect scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.tick()

    async def tick(self) -> dict[str, int]:
        """One pass; failures are logged and the next tick tries again."""
        try:
            reaped = await self.collect.reap_stale_runs()
            enqueued = await self.collect.enqueue_due_jobs()
        except Exception:
            self.last_tick_ok = False
            logger.exception("Collect scheduler tick failed")
            return {"reaped": 0, "enqueued": 0}

        self.last_tick_ok = True
        if self.runner is not None:
            self.runner.kick_soon()
        return {"reaped": reaped, "enqueued": len(enqueued)}
