"""Job and job option models shared by the queue, the stores and the worker."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Literal, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from relayworks_ai.agent_core.schemas.base import BaseSchema
from relayworks_ai.core.database import utc_now
from relayworks_ai.core.errors import ValidationError

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class JobStatus(str, Enum):
    waiting = "waiting"
    delayed = "delayed"
    active = "active"
    completed = "completed"
    failed = "failed"


class BackoffOptions(BaseSchema):
    """Delay before retry ``n`` (1-based): ``delay_ms * 2**(n-1)`` when exponential."""

    type: Literal["exponential", "fixed"] = "exponential"
    delay_ms: int = Field(default=1000, ge=0)

    def delay_for(self, attempts_made: int) -> timedelta:
        if self.type == "fixed":
            return timedelta(milliseconds=self.delay_ms)
        return timedelta(milliseconds=self.delay_ms * 2 ** max(attempts_made - 1, 0))


class JobOptions(BaseSchema):
    attempts: int = Field(default=3, ge=1)
    backoff: BackoffOptions = Field(default_factory=BackoffOptions)
    remove_on_complete: int = Field(default=100, ge=0, description="Completed jobs kept per queue")
    remove_on_fail: int = Field(default=500, ge=0, description="Failed jobs kept per queue")
    delay_ms: int = Field(default=0, ge=0, description="Initial delay before the job becomes available")


class Job(BaseSchema):
    id: str = Field(default_factory=lambda: uuid4().hex)
    queue: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    options: JobOptions = Field(default_factory=JobOptions)

    status: JobStatus = JobStatus.waiting
    attempts_made: int = 0
    stalled_count: int = 0
    lock_owner: Optional[str] = None
    lock_expires_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utc_now)
    available_at: datetime = Field(default_factory=utc_now)
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    result: Optional[Any] = None
    failed_reason: Optional[str] = None


STALLED_REASON = "job stalled more than allowable limit"


def to_jsonable(value: Any) -> Any:
    """Convert job payloads and results into plain JSON values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return json.loads(json.dumps(value, default=str))


def parse_job_data(model: Type[PayloadT], job: Job) -> PayloadT:
    """Validate ``job.data`` against ``model``.

    Raises:
        ValidationError: The payload does not match; retrying cannot fix it.
    """
    try:
        return model.model_validate(job.data)
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise ValidationError(
            f"Invalid {job.name} payload for job {job.id}: {', '.join(fields) or 'payload'}",
            context={"job_id": job.id, "fields": fields},
        ) from exc
