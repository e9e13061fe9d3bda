"""
Workflow execution jobs.

``enqueue_workflow`` puts an ``execute-workflow`` job on the ``workflows``
queue; the processor built by ``build_workflow_processor`` turns it into a
``WorkflowExecution`` record and runs the graph.

Execution records
-----------------

A fresh run uses the job id as execution id, so retries of the same job
update one record instead of creating a new one per attempt. A run that
reaches a ``wait_for_event`` node is recorded as ``suspended`` together with
its context, node id and resume token; ``enqueue_workflow_resume`` queues a
follow-up job that continues that same execution once the event arrives.

Errors
------

Errors flagged ``is_retryable`` are re-raised so the worker retries the job
with backoff; the execution is marked failed meanwhile, or put back to
``suspended`` when the failing job was a resume. Any other error marks the
execution failed and is returned as a failed ``WorkflowJobResult``; the job
itself completes and is not retried.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import Field

from relayworks_ai.agent_core.repos.interfaces import WorkflowExecutionRepository, WorkflowRepository
from relayworks_ai.agent_core.schemas.base import BaseSchema
from relayworks_ai.agent_core.schemas.domain import TriggerSource
from relayworks_ai.agent_core.schemas.workflow import ExecutionStatus, WorkflowExecution
from relayworks_ai.core.config import QueueConfig, settings
from relayworks_ai.core.errors import ConfigurationError, UnrecoverableJobError
from relayworks_ai.workflow.executor import WorkflowExecutor
from relayworks_ai.workflow.models import RunStatus, WorkflowRunResult

from .models import Job, parse_job_data, to_jsonable
from .queue import JobQueue, OptionsLike, configured_job_options
from .store import JobStore
from .worker import Processor, Worker

logger = logging.getLogger(__name__)

WORKFLOW_QUEUE = "workflows"
EXECUTE_WORKFLOW_JOB = "execute-workflow"


class WorkflowJobData(BaseSchema):
    workflow_id: str
    user_id: Optional[str] = None
    initial_data: Optional[Dict[str, Any]] = None
    triggered_by: TriggerSource = TriggerSource.manual
    execution_id: Optional[str] = Field(default=None, description="Suspended execution to resume")
    event_data: Optional[Dict[str, Any]] = Field(default=None, description="Payload of the awaited event")


class WorkflowJobResult(BaseSchema):
    workflow_id: str
    execution_id: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    suspended_node_id: Optional[str] = None
    resume_token: Optional[str] = None


def create_workflow_queue(store: JobStore, *, queue_config: Optional[QueueConfig] = None) -> JobQueue:
    return JobQueue(WORKFLOW_QUEUE, store, configured_job_options(queue_config))


async def enqueue_workflow(queue: JobQueue, data: WorkflowJobData, options: OptionsLike = None) -> Job:
    job = await queue.add(EXECUTE_WORKFLOW_JOB, data, options)
    logger.info(f"Queued workflow {data.workflow_id} as job {job.id} (triggered by {data.triggered_by.value})")
    return job


async def enqueue_workflow_resume(
    queue: JobQueue,
    execution: WorkflowExecution,
    event_data: Optional[Dict[str, Any]] = None,
    options: OptionsLike = None,
) -> Job:
    """Queue the continuation of a suspended execution."""
    if execution.status is not ExecutionStatus.suspended:
        raise ConfigurationError.invalid(
            "execution_id", f"execution {execution.id} is {execution.status.value}, not suspended"
        )
    data = WorkflowJobData(
        workflow_id=execution.workflow_id,
        user_id=execution.user_id,
        triggered_by=TriggerSource.webhook,
        execution_id=execution.id,
        event_data=event_data,
    )
    return await enqueue_workflow(queue, data, options)


def build_workflow_processor(
    workflows: WorkflowRepository,
    executions: WorkflowExecutionRepository,
    executor: WorkflowExecutor,
) -> Processor:
    async def _start(job: Job, data: WorkflowJobData) -> WorkflowExecution:
        existing = await executions.get(job.id)
        if existing is not None:
            return await executions.update(existing.id, status=ExecutionStatus.running)
        execution = WorkflowExecution(
            id=job.id,
            workflow_id=data.workflow_id,
            user_id=data.user_id,
            triggered_by=data.triggered_by.value,
        )
        await executions.create(execution)
        return execution

    async def _run(data: WorkflowJobData, execution: WorkflowExecution) -> WorkflowRunResult:
        workflow = await workflows.get(data.workflow_id)
        if workflow is None:
            raise ConfigurationError.invalid("workflow_id", f"workflow {data.workflow_id} not found")
        user_id = data.user_id or workflow.user_id

        if data.execution_id is None:
            initial = {**(data.initial_data or {}), "triggered_by": data.triggered_by.value}
            return await executor.run(workflow, user_id=user_id, initial_data=initial, execution_id=execution.id)

        if execution.suspended_node_id is None:
            raise ConfigurationError.invalid("execution_id", f"execution {execution.id} has no suspension point")
        await executions.update(execution.id, status=ExecutionStatus.running)
        return await executor.resume(
            workflow,
            user_id=user_id,
            suspended_at=execution.suspended_node_id,
            context=execution.result or {},
            event_data=data.event_data,
        )

    async def process(job: Job) -> WorkflowJobResult:
        data = parse_job_data(WorkflowJobData, job)
        if data.execution_id is None:
            execution = await _start(job, data)
        else:
            found = await executions.get(data.execution_id)
            if found is None:
                raise UnrecoverableJobError(f"execution {data.execution_id} not found", context={"job_id": job.id})
            execution = found
        logger.info(f"Processing workflow {data.workflow_id} (execution {execution.id}, job {job.id})")

        try:
            run = await _run(data, execution)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            if getattr(exc, "is_retryable", False):
                if data.execution_id is not None:
                    # keep the suspension point so the retried job can resume again
                    await executions.update(
                        execution.id,
                        status=ExecutionStatus.suspended,
                        error=reason,
                        suspended_node_id=execution.suspended_node_id,
                        resume_token=execution.resume_token,
                    )
                else:
                    await executions.update(execution.id, status=ExecutionStatus.failed, error=reason)
                logger.warning(f"Workflow execution {execution.id} failed, will retry: {reason}")
                raise
            await executions.update(execution.id, status=ExecutionStatus.failed, error=reason)
            logger.error(f"Workflow execution {execution.id} failed: {reason}")
            return WorkflowJobResult(
                workflow_id=data.workflow_id,
                execution_id=execution.id,
                status=ExecutionStatus.failed.value,
                error=reason,
            )

        context = to_jsonable(run.context_dict())
        if run.status is RunStatus.suspended:
            await executions.update(
                execution.id,
                status=ExecutionStatus.suspended,
                result=context,
                suspended_node_id=run.suspended_node_id,
                resume_token=run.resume_token,
            )
            logger.info(f"Workflow execution {execution.id} suspended at node {run.suspended_node_id}")
            return WorkflowJobResult(
                workflow_id=data.workflow_id,
                execution_id=execution.id,
                status=ExecutionStatus.success.value,
                result=context,
                suspended_node_id=run.suspended_node_id,
                resume_token=run.resume_token,
            )

        await executions.update(execution.id, status=ExecutionStatus.success, result=context)
        logger.info(f"Workflow execution {execution.id} completed")
        return WorkflowJobResult(
            workflow_id=data.workflow_id,
            execution_id=execution.id,
            status=ExecutionStatus.success.value,
            result=context,
        )

    return process


def create_workflow_worker(
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
        concurrency=concurrency if concurrency is not None else cfg.workflow_concurrency,
        queue_config=cfg,
        **worker_options,
    )
