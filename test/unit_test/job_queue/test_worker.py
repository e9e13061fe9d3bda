from __future__ import annotations

import asyncio
import signal
from typing import Any, List

import pytest
from pydantic import BaseModel

from relayworks_ai.core.errors import UnrecoverableJobError
from relayworks_ai.job_queue import InMemoryJobStore, Job, JobOptions, JobQueue, JobStatus, Worker

from ._fakes import eventually


class _Summary(BaseModel):
    total: int


@pytest.fixture
def queue() -> JobQueue:
    return JobQueue("q", InMemoryJobStore(), JobOptions(attempts=2))


@pytest.mark.asyncio
async def test_process_next_completes_with_json_result(queue: JobQueue) -> None:
    async def processor(job: Job) -> Any:
        return _Summary(total=job.data["a"] + job.data["b"])

    await queue.add("sum", {"a": 2, "b": 3})
    done = await Worker(queue, processor, worker_id="w1").process_next()

    assert done is not None
    assert done.status is JobStatus.completed
    assert done.result == {"total": 5}
    assert await Worker(queue, processor).process_next() is None


@pytest.mark.asyncio
async def test_processor_errors_are_retried_then_failed(queue: JobQueue) -> None:
    attempts: List[int] = []

    async def processor(job: Job) -> None:
        attempts.append(job.attempts_made)
        raise RuntimeError("downstream unavailable")

    job = await queue.add("flaky", {}, {"backoff": {"delay_ms": 0}})
    worker = Worker(queue, processor)

    first = await worker.process_next()
    assert first is not None
    assert first.status is JobStatus.delayed
    assert first.failed_reason == "downstream unavailable"

    second = await worker.process_next()
    assert second is not None and second.id == job.id
    assert second.status is JobStatus.failed
    assert second.attempts_made == 2
    assert attempts == [0, 1]


@pytest.mark.asyncio
async def test_unrecoverable_errors_skip_retries(queue: JobQueue) -> None:
    async def processor(job: Job) -> None:
        raise UnrecoverableJobError("payload is invalid")

    await queue.add("bad", {})
    failed = await Worker(queue, processor).process_next()

    assert failed is not None
    assert failed.status is JobStatus.failed
    assert failed.attempts_made == 1
    assert failed.failed_reason == "payload is invalid"


def test_concurrency_must_be_positive(queue: JobQueue) -> None:
    async def processor(job: Job) -> None:
        return None

    with pytest.raises(ValueError):
        Worker(queue, processor, concurrency=0)


@pytest.mark.asyncio
async def test_in_flight_jobs_never_exceed_concurrency(queue: JobQueue) -> None:
    gate = asyncio.Event()
    in_flight = 0
    peak = 0

    async def processor(job: Job) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await gate.wait()
        in_flight -= 1
        return job.data["n"]

    for n in range(5):
        await queue.add("slow", {"n": n})
    worker = Worker(queue, processor, concurrency=2, poll_interval=0.01)
    worker.start()

    async def two_running() -> bool:
        return worker.active_jobs == 2

    async def all_done() -> bool:
        return (await queue.get_counts())["completed"] == 5

    await eventually(two_running)
    await asyncio.sleep(0.05)
    assert peak == 2
    gate.set()
    await eventually(all_done)
    await worker.close(grace_period=1)

    assert peak == 2
    assert not worker.running


@pytest.mark.asyncio
async def test_close_cancels_and_releases_unfinished_jobs(queue: JobQueue) -> None:
    never = asyncio.Event()

    async def processor(job: Job) -> None:
        await never.wait()

    job = await queue.add("stuck", {})
    worker = Worker(queue, processor, concurrency=1, poll_interval=0.01)
    worker.start()
    with pytest.raises(RuntimeError):
        worker.start()

    async def running() -> bool:
        return worker.active_jobs == 1

    await eventually(running)
    await worker.close(grace_period=0.05)

    stored = await queue.get_job(job.id)
    assert stored is not None
    assert stored.status is JobStatus.waiting
    assert stored.attempts_made == 0
    assert worker.active_jobs == 0


@pytest.mark.asyncio
async def test_signal_triggers_graceful_close(queue: JobQueue) -> None:
    async def processor(job: Job) -> str:
        return "ok"

    worker = Worker(queue, processor, poll_interval=0.01)
    runner = asyncio.create_task(worker.run())
    await asyncio.sleep(0.02)

    worker._on_signal(signal.SIGTERM)

    await asyncio.wait_for(runner, timeout=2)
    assert not worker.running


@pytest.mark.asyncio
async def test_check_stalled_requeues_jobs_of_dead_workers(queue: JobQueue) -> None:
    async def processor(job: Job) -> None:
        return None

    job = await queue.add("orphan", {})
    await queue.store.claim_next("q", "dead-worker", 0.01)
    await asyncio.sleep(0.03)

    worker = Worker(queue, processor, max_stalled_count=1)
    assert await worker.check_stalled() == 1

    stored = await queue.get_job(job.id)
    assert stored is not None
    assert stored.status is JobStatus.waiting
    assert stored.stalled_count == 1
