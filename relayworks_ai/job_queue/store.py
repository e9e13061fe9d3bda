"""Job storage.

A ``JobStore`` owns job state transitions. Workers never mutate jobs
directly; they claim a job under a time-limited lock and report the outcome
back through the store, which applies retry/backoff and retention.

State machine
-------------

    waiting|delayed --claim_next--> active --complete--> completed
                                      |----fail-------> delayed (attempts left)
                                      |----fail-------> failed
                                      |----release----> waiting
                                      |--lock expired-> waiting | failed (requeue_stalled)

Transitions out of ``active`` require the caller to hold the lock; a worker
whose lock was lost (the job stalled and was handed to another worker) gets
``None`` back instead of a job.

``InMemoryJobStore`` serves tests and single-process deployments;
``relayworks_ai.job_queue.sql.SqlJobStore`` shares jobs between processes.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

from relayworks_ai.core.database import utc_now

from .models import STALLED_REASON, Job, JobStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

CLAIMABLE_STATUSES = (JobStatus.waiting, JobStatus.delayed)


class JobStore(Protocol):
    async def add(self, job: Job) -> Job: ...

    async def get(self, job_id: str) -> Optional[Job]: ...

    async def claim_next(self, queue: str, worker_id: str, lock_duration: float) -> Optional[Job]:
        """Lock the oldest available job of ``queue`` for ``lock_duration`` seconds."""
        ...

    async def extend_lock(self, job_id: str, worker_id: str, lock_duration: float) -> bool: ...

    async def complete(self, job_id: str, worker_id: str, result: Any = None) -> Optional[Job]: ...

    async def fail(self, job_id: str, worker_id: str, reason: str, *, retry: bool = True) -> Optional[Job]:
        """Record a failed attempt; the job is delayed for retry while attempts remain."""
        ...

    async def release(self, job_id: str, worker_id: str) -> Optional[Job]:
        """Return an active job to ``waiting`` without consuming an attempt."""
        ...

    async def requeue_stalled(self, queue: str, max_stalled_count: int) -> List[Job]:
        """Handle active jobs whose lock expired; returns the affected jobs."""
        ...

    async def counts(self, queue: str) -> Dict[JobStatus, int]: ...

    async def trim(self, queue: str, status: JobStatus, keep: int) -> int: ...


def apply_failure(job: Job, reason: str, *, retry: bool, now: datetime) -> None:
    """Consume an attempt and move ``job`` to ``delayed`` or ``failed``."""
    job.attempts_made += 1
    job.failed_reason = reason
    job.lock_owner = None
    job.lock_expires_at = None
    if retry and job.attempts_made < job.options.attempts:
        job.status = JobStatus.delayed
        job.available_at = now + job.options.backoff.delay_for(job.attempts_made)
    else:
        job.status = JobStatus.failed
        job.finished_at = now


def apply_stall(job: Job, max_stalled_count: int, *, now: datetime) -> None:
    job.stalled_count += 1
    job.lock_owner = None
    job.lock_expires_at = None
    if job.stalled_count > max_stalled_count:
        job.status = JobStatus.failed
        job.failed_reason = STALLED_REASON
        job.finished_at = now
    else:
        job.status = JobStatus.waiting
        job.available_at = now


class InMemoryJobStore(JobStore):
    """Process-local ``JobStore``; ``clock`` is injectable for tests."""

    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._jobs: Dict[str, Job] = {}
        self._order: Dict[str, int] = {}
        self._seq = itertools.count()
        self._lock = asyncio.Lock()
        self._clock = clock

    def _held(self, job_id: str, worker_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.active or job.lock_owner != worker_id:
            logger.warning(f"Worker {worker_id} no longer holds the lock for job {job_id}")
            return None
        return job

    async def add(self, job: Job) -> Job:
        async with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)
            self._order[job.id] = next(self._seq)
            return copy.deepcopy(job)

    async def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job is not None else None

    async def claim_next(self, queue: str, worker_id: str, lock_duration: float) -> Optional[Job]:
        async with self._lock:
            now = self._clock()
            candidates = [
                j
                for j in self._jobs.values()
                if j.queue == queue and j.status in CLAIMABLE_STATUSES and j.available_at <= now
            ]
            if not candidates:
                return None
            job = min(candidates, key=lambda j: (j.available_at, self._order[j.id]))
            job.status = JobStatus.active
            job.lock_owner = worker_id
            job.lock_expires_at = now + timedelta(seconds=lock_duration)
            job.processed_at = now
            return copy.deepcopy(job)

    async def extend_lock(self, job_id: str, worker_id: str, lock_duration: float) -> bool:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return False
            job.lock_expires_at = self._clock() + timedelta(seconds=lock_duration)
            return True

    async def complete(self, job_id: str, worker_id: str, result: Any = None) -> Optional[Job]:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return None
            job.status = JobStatus.completed
            job.result = result
            job.finished_at = self._clock()
            job.lock_owner = None
            job.lock_expires_at = None
            done = copy.deepcopy(job)
            self._trim(job.queue, JobStatus.completed, job.options.remove_on_complete)
            return done

    async def fail(self, job_id: str, worker_id: str, reason: str, *, retry: bool = True) -> Optional[Job]:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return None
            apply_failure(job, reason, retry=retry, now=self._clock())
            failed = copy.deepcopy(job)
            if job.status is JobStatus.failed:
                self._trim(job.queue, JobStatus.failed, job.options.remove_on_fail)
            return failed

    async def release(self, job_id: str, worker_id: str) -> Optional[Job]:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return None
            job.status = JobStatus.waiting
            job.available_at = self._clock()
            job.lock_owner = None
            job.lock_expires_at = None
            return copy.deepcopy(job)

    async def requeue_stalled(self, queue: str, max_stalled_count: int) -> List[Job]:
        async with self._lock:
            now = self._clock()
            stalled = [
                j
                for j in self._jobs.values()
                if j.queue == queue
                and j.status is JobStatus.active
                and j.lock_expires_at is not None
                and j.lock_expires_at < now
            ]
            for job in stalled:
                apply_stall(job, max_stalled_count, now=now)
            return [copy.deepcopy(j) for j in stalled]

    async def counts(self, queue: str) -> Dict[JobStatus, int]:
        totals = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            if job.queue == queue:
                totals[job.status] += 1
        return totals

    async def trim(self, queue: str, status: JobStatus, keep: int) -> int:
        async with self._lock:
            return self._trim(queue, status, keep)

    def _trim(self, queue: str, status: JobStatus, keep: int) -> int:
        finished = sorted(
            (j for j in self._jobs.values() if j.queue == queue and j.status is status),
            key=lambda j: (j.finished_at or j.created_at, self._order[j.id]),
            reverse=True,
        )
        removed = finished[keep:]
        for job in removed:
            del self._jobs[job.id]
            del self._order[job.id]
        return len(removed)
