"""Persistent job queue with retry/backoff, a bounded async worker and the
workflow and agent job processors.

The SQL store lives in ``relayworks_ai.job_queue.sql`` and is imported
explicitly where a database is configured.
"""

from .agent_queue import (
    AGENT_QUEUE,
    RUN_AGENT_JOB,
    AgentJobData,
    AgentJobResult,
    build_agent_processor,
    create_agent_queue,
    create_agent_worker,
    enqueue_agent_run,
)
from .models import BackoffOptions, Job, JobOptions, JobStatus
from .queue import JobQueue, configured_job_options
from .store import InMemoryJobStore, JobStore
from .worker import Processor, Worker
from .workflow_queue import (
    EXECUTE_WORKFLOW_JOB,
    WORKFLOW_QUEUE,
    WorkflowJobData,
    WorkflowJobResult,
    build_workflow_processor,
    create_workflow_queue,
    create_workflow_worker,
    enqueue_workflow,
    enqueue_workflow_resume,
)

__all__ = [
    "AGENT_QUEUE",
    "AgentJobData",
    "AgentJobResult",
    "BackoffOptions",
    "EXECUTE_WORKFLOW_JOB",
    "InMemoryJobStore",
    "Job",
    "JobOptions",
    "JobQueue",
    "JobStatus",
    "JobStore",
    "Processor",
    "RUN_AGENT_JOB",
    "WORKFLOW_QUEUE",
    "Worker",
    "WorkflowJobData",
    "WorkflowJobResult",
    "build_agent_processor",
    "build_workflow_processor",
    "configured_job_options",
    "create_agent_queue",
    "create_agent_worker",
    "create_workflow_queue",
    "create_workflow_worker",
    "enqueue_agent_run",
    "enqueue_workflow",
    "enqueue_workflow_resume",
]
