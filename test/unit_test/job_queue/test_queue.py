from __future__ import annotations

import pytest

from relayworks_ai.core.config import QueueConfig
from relayworks_ai.job_queue import (
    BackoffOptions,
    InMemoryJobStore,
    JobOptions,
    JobQueue,
    WorkflowJobData,
    configured_job_options,
)


def test_configured_options_follow_queue_settings() -> None:
    options = configured_job_options(QueueConfig(job_attempts=4, backoff_delay_ms=250, remove_on_fail=10))
    assert options.attempts == 4
    assert options.backoff == BackoffOptions(type="exponential", delay_ms=250)
    assert options.remove_on_fail == 10


def test_options_are_merged_over_defaults() -> None:
    queue = JobQueue("q", InMemoryJobStore(), JobOptions(attempts=5, remove_on_complete=7))

    assert queue.resolve_options() == queue.default_options
    merged = queue.resolve_options(JobOptions(delay_ms=100))
    assert (merged.attempts, merged.remove_on_complete, merged.delay_ms) == (5, 7, 100)
    from_dict = queue.resolve_options({"attempts": 1})
    assert (from_dict.attempts, from_dict.remove_on_complete) == (1, 7)


@pytest.mark.asyncio
async def test_add_stores_json_payload() -> None:
    queue = JobQueue("workflows", InMemoryJobStore())
    job = await queue.add("execute-workflow", WorkflowJobData(workflow_id="wf-1"), job_id="job-1")

    assert job.id == "job-1"
    stored = await queue.get_job("job-1")
    assert stored is not None
    assert stored.data["workflow_id"] == "wf-1"
    assert stored.data["triggered_by"] == "manual"
    with pytest.raises(ValueError):
        await queue.add("execute-workflow", {"workflow_id": "wf-1"}, job_id="job-1")
