"""
Queue worker.

A ``Worker`` pulls jobs from a ``JobQueue`` and runs them through an async
processor with at most ``concurrency`` jobs in flight.

Design
------

- Each claimed job is locked for ``lock_duration`` seconds; the lock is renewed
  every half duration while the processor runs. A worker that dies stops
  renewing, and the stalled checker of any live worker puts the job back to
  ``waiting`` (or fails it once ``max_stalled_count`` is exceeded).
- A processor result completes the job. ``UnrecoverableJobError`` and an
  invalid payload (``ValidationError``) fail it without further attempts;
  any other exception consumes an attempt and the store schedules the retry
  with backoff.
- ``close`` stops claiming, lets in-flight jobs finish for ``grace_period``
  seconds and then cancels them; cancelled jobs are released back to
  ``waiting``. A job that was claimed but not started when the worker began
  closing is released as well.

Usage
-----

    worker = Worker(queue, processor, concurrency=3)
    worker.install_signal_handlers()
    await worker.run()          # returns after SIGTERM/SIGINT and a graceful close
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import socket
from typing import Any, Awaitable, Callable, Optional, Set
from uuid import uuid4

from relayworks_ai.core.config import QueueConfig, settings
from relayworks_ai.core.errors import UnrecoverableJobError, ValidationError
from relayworks_ai.core.monitoring import log_job_event

from .models import Job, JobStatus, to_jsonable
from .queue import JobQueue

logger = logging.getLogger(__name__)

Processor = Callable[[Job], Awaitable[Any]]


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


class Worker:
    def __init__(
        self,
        queue: JobQueue,
        processor: Processor,
        *,
        concurrency: Optional[int] = None,
        lock_duration: Optional[float] = None,
        stalled_interval: Optional[float] = None,
        max_stalled_count: Optional[int] = None,
        poll_interval: float = 0.5,
        worker_id: Optional[str] = None,
        queue_config: Optional[QueueConfig] = None,
    ) -> None:
        cfg = queue_config or settings.queue
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency if concurrency is not None else cfg.agent_concurrency
        self.lock_duration = lock_duration if lock_duration is not None else cfg.lock_duration_seconds
        self.stalled_interval = stalled_interval if stalled_interval is not None else cfg.stalled_interval_seconds
        self.max_stalled_count = max_stalled_count if max_stalled_count is not None else cfg.max_stalled_count
        self.grace_period = cfg.graceful_shutdown_seconds
        self.poll_interval = poll_interval
        self.worker_id = worker_id or default_worker_id()
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self._slots = asyncio.Semaphore(self.concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self._closing = asyncio.Event()
        self._closed = asyncio.Event()
        self._runner: Optional[asyncio.Task] = None
        self._stalled_checker: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._closing.is_set()

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._runner is not None:
            raise RuntimeError(f"worker {self.worker_id} already started")
        logger.info(
            f"Worker {self.worker_id} started on queue {self.queue.name} (concurrency {self.concurrency})"
        )
        self._runner = asyncio.create_task(self._run())
        self._stalled_checker = asyncio.create_task(self._check_stalled_loop())

    async def run(self) -> None:
        """Start the worker and wait until it has been closed."""
        if self._runner is None:
            self.start()
        await self._closed.wait()

    async def close(self, grace_period: Optional[float] = None) -> None:
        if self._closing.is_set():
            await self._closed.wait()
            return
        grace = self.grace_period if grace_period is None else grace_period
        logger.info(f"Closing worker {self.worker_id}, waiting up to {grace}s for {len(self._tasks)} jobs")
        self._closing.set()

        for task in (self._runner, self._stalled_checker):
            if task is not None:
                await task

        pending = set(self._tasks)
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=grace)
            if still_running:
                logger.warning(f"Cancelling {len(still_running)} jobs still running after {grace}s")
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)

        self._closed.set()
        logger.info(f"Worker {self.worker_id} closed")

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Close gracefully on SIGTERM/SIGINT; a second signal cancels in-flight jobs."""
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._on_signal(s))
        logger.debug(f"Worker {self.worker_id} registered signal handlers")

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._closing.is_set():
            logger.warning(f"Received {sig.name} again, cancelling {len(self._tasks)} in-flight jobs")
            for task in list(self._tasks):
                task.cancel()
            return
        logger.info(f"Received {sig.name}, shutting down worker {self.worker_id}")
        self._shutdown = asyncio.ensure_future(self.close())

    # ------------------------------------------------------------------
    # Claim loop
    # ------------------------------------------------------------------

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._closing.wait(), seconds)

    async def _acquire_slot(self) -> bool:
        try:
            await asyncio.wait_for(self._slots.acquire(), self.poll_interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        while not self._closing.is_set():
            if not await self._acquire_slot():
                continue
            if self._closing.is_set():
                self._slots.release()
                break
            try:
                job = await self.queue.store.claim_next(self.queue.name, self.worker_id, self.lock_duration)
            except Exception:
                self._slots.release()
                logger.exception(f"Worker {self.worker_id} could not claim a job from {self.queue.name}")
                await self._sleep(self.poll_interval)
                continue
            if job is None:
                self._slots.release()
                await self._sleep(self.poll_interval)
                continue
            task = asyncio.create_task(self._process(job))
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._slots.release()
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Worker {self.worker_id} job task crashed: {task.exception()!r}")

    async def process_next(self) -> Optional[Job]:
        """Claim and process a single job inline; returns its stored state afterwards."""
        job = await self.queue.store.claim_next(self.queue.name, self.worker_id, self.lock_duration)
        if job is None:
            return None
        await self._process(job)
        return await self.queue.get_job(job.id)

    # ------------------------------------------------------------------
    # Job processing
    # ------------------------------------------------------------------

    async def _process(self, job: Job) -> None:
        store = self.queue.store
        if self._closing.is_set():
            logger.info(f"Worker {self.worker_id} is closing, releasing job {job.id}")
            await store.release(job.id, self.worker_id)
            return

        logger.debug(f"Processing job {job.id} ({job.name}), attempt {job.attempts_made + 1}")
        renewer = asyncio.create_task(self._renew_lock(job.id))
        try:
            result = await self.processor(job)
        except asyncio.CancelledError:
            logger.warning(f"Job {job.id} cancelled, releasing it back to {self.queue.name}")
            await store.release(job.id, self.worker_id)
            raise
        except (UnrecoverableJobError, ValidationError) as exc:
            await self._record_failure(job, exc, retry=False)
        except Exception as exc:
            await self._record_failure(job, exc, retry=True)
        else:
            done = await store.complete(job.id, self.worker_id, to_jsonable(result) if result is not None else None)
            if done is not None:
                logger.info(f"Job {job.id} ({job.name}) completed")
                log_job_event(self.queue.name, job.id, "completed", attempts=job.attempts_made + 1)
        finally:
            renewer.cancel()

    async def _record_failure(self, job: Job, exc: Exception, *, retry: bool) -> None:
        reason = str(exc) or type(exc).__name__
        updated = await self.queue.store.fail(job.id, self.worker_id, reason, retry=retry)
        if updated is None:
            return
        if updated.status is JobStatus.failed:
            logger.error(f"Job {job.id} ({job.name}) failed after {updated.attempts_made} attempts: {reason}")
            log_job_event(self.queue.name, job.id, "failed", attempts=updated.attempts_made, reason=reason)
        else:
            logger.warning(
                f"Job {job.id} ({job.name}) attempt {updated.attempts_made} failed, retrying at "
                f"{updated.available_at.isoformat()}: {reason}"
            )
            log_job_event(self.queue.name, job.id, "retrying", attempts=updated.attempts_made, reason=reason)

    async def _renew_lock(self, job_id: str) -> None:
        while True:
            await asyncio.sleep(self.lock_duration / 2)
            if not await self.queue.store.extend_lock(job_id, self.worker_id, self.lock_duration):
                return

    # ------------------------------------------------------------------
    # Stalled jobs
    # ------------------------------------------------------------------

    async def check_stalled(self) -> int:
        stalled = await self.queue.store.requeue_stalled(self.queue.name, self.max_stalled_count)
        for job in stalled:
            event = "failed" if job.status is JobStatus.failed else "stalled"
            logger.warning(f"Job {job.id} ({job.name}) stalled {job.stalled_count} times, now {job.status.value}")
            log_job_event(self.queue.name, job.id, event, stalled_count=job.stalled_count)
        return len(stalled)

    async def _check_stalled_loop(self) -> None:
        while not self._closing.is_set():
            try:
                await self.check_stalled()
            except Exception:
                logger.exception(f"Stalled job check failed on {self.queue.name}")
            await self._sleep(self.stalled_interval)
