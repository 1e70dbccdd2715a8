"""Reference worker host: run the bundled collector binary as a child process.

The collector is any pull/report compliant program; this runner only builds it
when missing, spawns it with ``--once`` and maps a failed exit back onto the
run that was pending at launch, whether or not the collector already pulled it.
"""

import asyncio
import logging
import os
from collections import deque
from pathlib import Path

from collecthub.services.collect import CollectService

logger = logging.getLogger(__name__)


class WorkerBuildError(Exception):
    """The collector binary is missing and could not be built."""


class WorkerRunner:
    def __init__(
        self,
        collect: CollectService,
        api_base: str,
        token: str,
        worker_dir: str = "../collector",
        worker_binary: str = "dist/collector",
        build_command: list[str] | None = None,
        interval_seconds: float = 60.0,
        tail_lines: int = 20,
        terminate_timeout: float = 5.0,
    ):
        self.collect = collect
        self.api_base = api_base.rstrip("/")
        self.token = token
        self.worker_dir = Path(worker_dir).resolve()
        self.binary_path = self.worker_dir / worker_binary
        self.build_command = build_command or ["go", "build", "-o", worker_binary, "./cmd/collector"]
        self.interval_seconds = interval_seconds
        self.tail_lines = tail_lines
        self.terminate_timeout = terminate_timeout

        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        """True while a collector process (or its build) is in flight."""
        return self._lock.locked()

    @property
    def started(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        if self.started:
            return
        self._loop_task = asyncio.create_task(self._loop(), name="worker-runner")
        logger.info(f"Worker runner started (every {self.interval_seconds}s, binary {self.binary_path})")

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._background.clear()
        logger.info("Worker runner stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.kick()
            except Exception:
                logger.exception("Worker runner tick failed")

    def kick_soon(self) -> None:
        """Schedule a kick without waiting for the collector to finish."""
        if self.is_running:
            return
        task = asyncio.create_task(self._kick_logged())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _kick_logged(self) -> None:
        try:
            await self.kick()
        except Exception:
            logger.exception("Worker runner kick failed")

    async def kick(self) -> bool:
        """Run the collector once if there is pending work and it is not already running."""
        if self.is_running:
            return False
        await self.collect.reap_stale_runs()
        if not await self.collect.has_pending_work():
            return False
        return await self.run_once()

    async def ensure_binary(self) -> Path:
        if self.binary_path.exists():
            return self.binary_path

        logger.warning(f"Building collector: {self.binary_path}")
        self.binary_path.parent.mkdir(parents=True, exist_ok=True)
        cache_dir = self.worker_dir / ".cache"
        env = {
            **os.environ,
            "GOCACHE": str(cache_dir / "go-build"),
            "GOPATH": str(cache_dir / "go"),
        }
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command,
                cwd=str(self.worker_dir),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise WorkerBuildError(f"collector build failed: {e}") from e

        output, _ = await proc.communicate()
        if proc.returncode != 0:
            text = output.decode("utf-8", errors="replace").strip()
            raise WorkerBuildError(f"collector build failed: {text or f'exit={proc.returncode}'}")
        return self.binary_path

    async def run_once(self) -> bool:
        """Build if needed, spawn the collector and wait for it.

        Returns True on a clean exit. Any failure is written onto the run that
        was oldest pending at launch unless the collector already reported it
        finished; the reaper covers runs this misses. Cancelling the call
        terminates the child process.
        """
        if self.is_running:
            return False

        async with self._lock:
            pending_id = await self.collect.oldest_pending_run_id()

            try:
                binary = await self.ensure_binary()
            except WorkerBuildError as e:
                logger.error(str(e))
                await self.collect.fail_run_if_active(pending_id, str(e))
                return False

            logger.info(f"Spawning collector --once (api base {self.api_base})")
            out_tail: deque[str] = deque(maxlen=self.tail_lines)
            err_tail: deque[str] = deque(maxlen=self.tail_lines)

            try:
                proc = await asyncio.create_subprocess_exec(
                    str(binary),
                    "--api-base", self.api_base,
                    "--token", self.token,
                    "--once",
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                message = self._failure_message(str(e), err_tail, out_tail)
                logger.error(f"Collector spawn failed: {e}")
                await self.collect.fail_run_if_active(pending_id, message)
                return False

            try:
                await asyncio.gather(
                    self._pump(proc.stdout, out_tail, logging.DEBUG),
                    self._pump(proc.stderr, err_tail, logging.WARNING),
                )
                code = await proc.wait()
            except asyncio.CancelledError:
                await self._terminate(proc)
                raise

            if code == 0:
                logger.info("Collector exited cleanly")
                return True

            message = self._failure_message(f"collector exit code={code}", err_tail, out_tail)
            logger.error(f"Collector exited with code {code}")
            await self.collect.fail_run_if_active(pending_id, message)
            return False

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        logger.warning(f"Terminating collector pid={proc.pid}")
        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=self.terminate_timeout)
        except ProcessLookupError:
            return
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()

    @staticmethod
    async def _pump(stream: asyncio.StreamReader | None, tail: deque, level: int) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            tail.append(line)
            logger.log(level, f"[collector] {line}")

    def _failure_message(self, head: str, err_tail: deque, out_tail: deque) -> str:
        last = [*err_tail, *out_tail][-self.tail_lines:]
        return "\n".join([head, *last]) if last else head
