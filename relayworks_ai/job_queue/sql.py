"""SQL-backed ``JobStore``.

Jobs live in ``rw_jobs``. ``claim_next`` selects the oldest available job
with ``FOR UPDATE SKIP LOCKED`` so several worker processes can poll the same
table on Postgres without handing out a job twice. SQLite ignores the row
lock, which is fine for the single-process setups it is used for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Integer, String, Text, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from relayworks_ai.agent_core.repos.models import JsonDocument
from relayworks_ai.core.database import Base, as_utc, utc_now

from .models import Job, JobOptions, JobStatus
from .store import CLAIMABLE_STATUSES, Clock, JobStore, apply_failure, apply_stall

logger = logging.getLogger(__name__)


class JobRow(Base):
    """Row model for ``rw_jobs``."""

    __tablename__ = "rw_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    queue: Mapped[str] = mapped_column(String(128), index=True)
    name: Mapped[str] = mapped_column(String(128))
    data: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)
    options: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)

    status: Mapped[str] = mapped_column(String(16), index=True)
    attempts_made: Mapped[int] = mapped_column(Integer, default=0)
    stalled_count: Mapped[int] = mapped_column(Integer, default=0)
    lock_owner: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    lock_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    result: Mapped[Optional[Any]] = mapped_column(JsonDocument, nullable=True)
    failed_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


def _job_from_row(row: JobRow) -> Job:
    return Job(
        id=row.id,
        queue=row.queue,
        name=row.name,
        data=row.data or {},
        options=JobOptions.model_validate(row.options or {}),
        status=JobStatus(row.status),
        attempts_made=row.attempts_made,
        stalled_count=row.stalled_count,
        lock_owner=row.lock_owner,
        lock_expires_at=as_utc(row.lock_expires_at),
        created_at=as_utc(row.created_at),
        available_at=as_utc(row.available_at),
        processed_at=as_utc(row.processed_at),
        finished_at=as_utc(row.finished_at),
        result=row.result,
        failed_reason=row.failed_reason,
    )


def _copy_state(row: JobRow, job: Job) -> None:
    row.status = job.status.value
    row.attempts_made = job.attempts_made
    row.stalled_count = job.stalled_count
    row.lock_owner = job.lock_owner
    row.lock_expires_at = job.lock_expires_at
    row.available_at = job.available_at
    row.finished_at = job.finished_at
    row.failed_reason = job.failed_reason


@dataclass(frozen=True)
class SqlJobStore(JobStore):
    """SQL implementation of ``JobStore``."""

    session_factory: async_sessionmaker[AsyncSession]
    clock: Clock = field(default=utc_now)

    async def _held(self, s: AsyncSession, job_id: str, worker_id: str) -> Optional[JobRow]:
        stmt = select(JobRow).where(JobRow.id == job_id).with_for_update()
        row = (await s.execute(stmt)).scalar_one_or_none()
        if row is None or row.status != JobStatus.active.value or row.lock_owner != worker_id:
            logger.warning(f"Worker {worker_id} no longer holds the lock for job {job_id}")
            return None
        return row

    async def add(self, job: Job) -> Job:
        async with self.session_factory() as s:
            s.add(
                JobRow(
                    id=job.id,
                    queue=job.queue,
                    name=job.name,
                    data=job.data,
                    options=job.options.model_dump(mode="json"),
                    status=job.status.value,
                    attempts_made=job.attempts_made,
                    stalled_count=job.stalled_count,
                    lock_owner=job.lock_owner,
                    lock_expires_at=job.lock_expires_at,
                    created_at=job.created_at,
                    available_at=job.available_at,
                    processed_at=job.processed_at,
                    finished_at=job.finished_at,
                    result=job.result,
                    failed_reason=job.failed_reason,
                )
            )
            await s.commit()
        return job

    async def get(self, job_id: str) -> Optional[Job]:
        async with self.session_factory() as s:
            row = await s.get(JobRow, job_id)
            return _job_from_row(row) if row is not None else None

    async def claim_next(self, queue: str, worker_id: str, lock_duration: float) -> Optional[Job]:
        now = self.clock()
        async with self.session_factory() as s:
            stmt = (
                select(JobRow)
                .where(
                    JobRow.queue == queue,
                    JobRow.status.in_([st.value for st in CLAIMABLE_STATUSES]),
                    JobRow.available_at <= now,
                )
                .order_by(JobRow.available_at, JobRow.created_at)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            row.status = JobStatus.active.value
            row.lock_owner = worker_id
            row.lock_expires_at = now + timedelta(seconds=lock_duration)
            row.processed_at = now
            await s.commit()
            return _job_from_row(row)

    async def extend_lock(self, job_id: str, worker_id: str, lock_duration: float) -> bool:
        async with self.session_factory() as s:
            row = await self._held(s, job_id, worker_id)
            if row is None:
                return False
            row.lock_expires_at = self.clock() + timedelta(seconds=lock_duration)
            await s.commit()
            return True

    async def complete(self, job_id: str, worker_id: str, result: Any = None) -> Optional[Job]:
        async with self.session_factory() as s:
            row = await self._held(s, job_id, worker_id)
            if row is None:
                return None
            row.status = JobStatus.completed.value
            row.result = result
            row.finished_at = self.clock()
            row.lock_owner = None
            row.lock_expires_at = None
            await s.commit()
            job = _job_from_row(row)
        await self.trim(job.queue, JobStatus.completed, job.options.remove_on_complete)
        return job

    async def fail(self, job_id: str, worker_id: str, reason: str, *, retry: bool = True) -> Optional[Job]:
        async with self.session_factory() as s:
            row = await self._held(s, job_id, worker_id)
            if row is None:
                return None
            job = _job_from_row(row)
            apply_failure(job, reason, retry=retry, now=self.clock())
            _copy_state(row, job)
            await s.commit()
        if job.status is JobStatus.failed:
            await self.trim(job.queue, JobStatus.failed, job.options.remove_on_fail)
        return job

    async def release(self, job_id: str, worker_id: str) -> Optional[Job]:
        async with self.session_factory() as s:
            row = await self._held(s, job_id, worker_id)
            if row is None:
                return None
            row.status = JobStatus.waiting.value
            row.available_at = self.clock()
            row.lock_owner = None
            row.lock_expires_at = None
            await s.commit()
            return _job_from_row(row)

    async def requeue_stalled(self, queue: str, max_stalled_count: int) -> List[Job]:
        now = self.clock()
        async with self.session_factory() as s:
            stmt = (
                select(JobRow)
                .where(
                    JobRow.queue == queue,
                    JobRow.status == JobStatus.active.value,
                    JobRow.lock_expires_at < now,
                )
                .with_for_update(skip_locked=True)
            )
            rows = (await s.execute(stmt)).scalars().all()
            stalled: List[Job] = []
            for row in rows:
                job = _job_from_row(row)
                apply_stall(job, max_stalled_count, now=now)
                _copy_state(row, job)
                stalled.append(job)
            await s.commit()
            return stalled

    async def counts(self, queue: str) -> Dict[JobStatus, int]:
        totals = {status: 0 for status in JobStatus}
        async with self.session_factory() as s:
            stmt = select(JobRow.status, func.count()).where(JobRow.queue == queue).group_by(JobRow.status)
            for status, count in (await s.execute(stmt)).all():
                totals[JobStatus(status)] = count
        return totals

    async def trim(self, queue: str, status: JobStatus, keep: int) -> int:
        async with self.session_factory() as s:
            stmt = (
                select(JobRow.id)
                .where(JobRow.queue == queue, JobRow.status == status.value)
                .order_by(JobRow.finished_at.desc(), JobRow.created_at.desc())
                .offset(keep)
            )
            ids = list((await s.execute(stmt)).scalars().all())
            if ids:
                await s.execute(delete(JobRow).where(JobRow.id.in_(ids)))
                await s.commit()
            return len(ids)
