"""Agent run jobs: queue an ``AgentEngine.execute`` call for a stored agent."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from relayworks_ai.agent_core.repos.interfaces import AgentRepository
from relayworks_ai.agent_core.runtime.engine import AgentEngine
from relayworks_ai.agent_core.schemas.base import BaseSchema
from relayworks_ai.agent_core.schemas.domain import ExecutionContext, TriggerSource
from relayworks_ai.core.config import QueueConfig, settings
from relayworks_ai.core.errors import AgentExecutionError, UnrecoverableJobError

from .models import Job, parse_job_data
from .queue import JobQueue, OptionsLike, configured_job_options
from .store import JobStore
from .worker import Processor, Worker

logger = logging.getLogger(__name__)

AGENT_QUEUE = "agents"
RUN_AGENT_JOB = "run-agent"


class AgentJobData(BaseSchema):
    agent_id: str
    workspace_id: str
    user_id: str
    triggered_by: TriggerSource = TriggerSource.manual
    user_message: Optional[str] = None
    additional_context: Optional[Dict[str, Any]] = None


class AgentJobResult(BaseSchema):
    agent_id: str
    run_id: Optional[str] = None
    status: str
    decision: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None


def create_agent_queue(store: JobStore, *, queue_config: Optional[QueueConfig] = None) -> JobQueue:
    return JobQueue(AGENT_QUEUE, store, configured_job_options(queue_config))


async def enqueue_agent_run(queue: JobQueue, data: AgentJobData, options: OptionsLike = None) -> Job:
    job = await queue.add(RUN_AGENT_JOB, data, options)
    logger.info(f"Queued run of agent {data.agent_id} as job {job.id}")
    return job


def build_agent_processor(engine: AgentEngine, agents: AgentRepository) -> Processor:
    """Build a processor that loads the agent configuration and executes it.

    An unknown agent fails the job without retries. Failed runs are re-raised
    for a retry when the cause was transient and otherwise reported as a
    ``failed`` result.
    """

    async def process(job: Job) -> AgentJobResult:
        data = parse_job_data(AgentJobData, job)
        config = await agents.get(data.agent_id)
        if config is None:
            raise UnrecoverableJobError(f"agent {data.agent_id} not found", context={"job_id": job.id})

        context = ExecutionContext(
            agent_id=data.agent_id,
            workspace_id=data.workspace_id,
            user_id=data.user_id,
            triggered_by=data.triggered_by.value,
            user_message=data.user_message,
            additional_context=data.additional_context,
        )
        try:
            result = await engine.execute(config, context)
        except AgentExecutionError as exc:
            if exc.is_retryable:
                raise
            return AgentJobResult(agent_id=data.agent_id, run_id=exc.run_id, status="failed", error=exc.reason)

        return AgentJobResult(
            agent_id=data.agent_id,
            run_id=result.run_id,
            status=result.status.value,
            decision=result.eval_result.final_decision.value,
            content=result.output.content,
        )

    return process


def create_agent_worker(
    queue: JobQueue,
    processor: Processor,
    *,
    concurrency: Optional[int] = None,
    queue_config: Optional[QueueConfig] = None,
    **worker_options: Any,
) -> Worker:
    cfg = queue_config or settings.queue
    return Worker(
        queue,
        processor,
        concurrency=concurrency if concurrency is not None else cfg.agent_concurrency,
        queue_config=cfg,
        **worker_options,
    )
