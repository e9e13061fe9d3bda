"""Named job queue on top of a ``JobStore``."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from relayworks_ai.core.config import QueueConfig, settings
from relayworks_ai.core.database import utc_now
from relayworks_ai.core.monitoring import log_job_event

from .models import BackoffOptions, Job, JobOptions, JobStatus, to_jsonable
from .store import Clock, JobStore

logger = logging.getLogger(__name__)

OptionsLike = Union[JobOptions, Mapping[str, Any], None]


def configured_job_options(queue_config: Optional[QueueConfig] = None) -> JobOptions:
    """Job options for the service queues, taken from ``QUEUE_*`` settings."""
    cfg = queue_config or settings.queue
    return JobOptions(
        attempts=cfg.job_attempts,
        backoff=BackoffOptions(type="exponential", delay_ms=cfg.backoff_delay_ms),
        remove_on_complete=cfg.remove_on_complete,
        remove_on_fail=cfg.remove_on_fail,
    )


class JobQueue:
    """Producer side of a queue: add jobs and inspect them.

    ``default_options`` apply to every job; options passed to ``add`` are
    merged over them field by field.
    """

    def __init__(
        self,
        name: str,
        store: JobStore,
        default_options: Optional[JobOptions] = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.name = name
        self.store = store
        self.default_options = default_options or JobOptions()
        self._clock = clock

    def resolve_options(self, options: OptionsLike = None) -> JobOptions:
        if options is None:
            return self.default_options
        if isinstance(options, JobOptions):
            overrides = options.model_dump(exclude_unset=True)
        else:
            overrides = dict(options)
        merged = {**self.default_options.model_dump(), **overrides}
        return JobOptions.model_validate(merged)

    async def add(
        self,
        name: str,
        data: Union[BaseModel, Mapping[str, Any]],
        options: OptionsLike = None,
        *,
        job_id: Optional[str] = None,
    ) -> Job:
        resolved = self.resolve_options(options)
        now = self._clock()
        fields: Dict[str, Any] = {
            "queue": self.name,
            "name": name,
            "data": to_jsonable(data if isinstance(data, BaseModel) else dict(data)),
            "options": resolved,
            "created_at": now,
            "available_at": now + timedelta(milliseconds=resolved.delay_ms),
            "status": JobStatus.delayed if resolved.delay_ms else JobStatus.waiting,
        }
        if job_id is not None:
            fields["id"] = job_id
        job = await self.store.add(Job(**fields))
        logger.debug(f"Queued job {job.id} ({name}) on {self.name}")
        log_job_event(self.name, job.id, "added", job_name=name)
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self.store.get(job_id)

    async def get_counts(self) -> Dict[str, int]:
        counts = await self.store.counts(self.name)
        return {status.value: count for status, count in counts.items()}
