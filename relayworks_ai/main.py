"""
Worker Process Entry Point.

Configures logging and Logfire, wires the agent engine, the workflow executor
and both job queues onto one database, then runs the workflow and agent
workers until SIGTERM/SIGINT. Installed as the ``relayworks-worker`` command.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from relayworks_ai.agent_core.eval import EvalEngine, PydanticAIJudge
from relayworks_ai.agent_core.llm import LLMClient
from relayworks_ai.agent_core.llm.transport import ModelTransport
from relayworks_ai.agent_core.repos.sql import SqlRepos, build_sql_repos
from relayworks_ai.agent_core.runtime import AgentEngine, EngineDeps
from relayworks_ai.core.config import Settings, settings
from relayworks_ai.core.database import create_engine, create_sessionmaker
from relayworks_ai.core.logging_config import setup_logging
from relayworks_ai.core.monitoring import initialize_logfire
from relayworks_ai.job_queue import (
    JobQueue,
    Worker,
    build_agent_processor,
    build_workflow_processor,
    create_agent_queue,
    create_agent_worker,
    create_workflow_queue,
    create_workflow_worker,
)
from relayworks_ai.job_queue.sql import SqlJobStore
from relayworks_ai.workflow import WorkflowExecutor, build_default_registry

logger = logging.getLogger(__name__)


@dataclass
class WorkerApp:
    """Everything a worker process owns, built by ``build_worker_app``."""

    db: AsyncEngine
    http_client: httpx.AsyncClient
    repos: SqlRepos
    agent_engine: AgentEngine
    executor: WorkflowExecutor
    workflow_queue: JobQueue
    agent_queue: JobQueue
    workers: List[Worker] = field(default_factory=list)

    async def run(self) -> None:
        for worker in self.workers:
            worker.install_signal_handlers()
        logger.info(f"Running {len(self.workers)} workers on {self.workflow_queue.name}, {self.agent_queue.name}")
        try:
            await asyncio.gather(*(worker.run() for worker in self.workers))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await asyncio.gather(*(worker.close() for worker in self.workers if worker.running))
        await self.http_client.aclose()
        await self.db.dispose()


def build_worker_app(app_settings: Optional[Settings] = None, *, transport: Optional[ModelTransport] = None) -> WorkerApp:
    """Wire the execution core onto ``app_settings.database_url``.

    The L3 judge is only attached when ``EVAL_ENABLE_L3`` is on. ``transport``
    replaces the Pydantic AI model transport of the LLM client.
    """
    cfg = app_settings or settings
    db = create_engine(cfg.database_url)
    session_factory = create_sessionmaker(db)
    repos = build_sql_repos(session_factory=session_factory)

    evaluation = cfg.evaluation
    judge = PydanticAIJudge(eval_config=evaluation, llm_config=cfg.llm) if evaluation.enable_l3 else None
    agent_engine = AgentEngine(
        EngineDeps(
            llm=LLMClient(transport, config=cfg.llm),
            evaluator=EvalEngine(judge),
            traces=repos.traces,
        )
    )

    queue_config = cfg.queue
    http_client = httpx.AsyncClient(timeout=30.0)
    registry = build_default_registry(http_client=http_client, engine=agent_engine, agents=repos.agents)
    executor = WorkflowExecutor(registry, timeout_seconds=queue_config.workflow_timeout_seconds)

    store = SqlJobStore(session_factory)
    workflow_queue = create_workflow_queue(store, queue_config=queue_config)
    agent_queue = create_agent_queue(store, queue_config=queue_config)
    workers = [
        create_workflow_worker(
            workflow_queue,
            build_workflow_processor(repos.workflows, repos.executions, executor),
            queue_config=queue_config,
        ),
        create_agent_worker(agent_queue, build_agent_processor(agent_engine, repos.agents), queue_config=queue_config),
    ]
    return WorkerApp(
        db=db,
        http_client=http_client,
        repos=repos,
        agent_engine=agent_engine,
        executor=executor,
        workflow_queue=workflow_queue,
        agent_queue=agent_queue,
        workers=workers,
    )


async def serve(app_settings: Optional[Settings] = None) -> None:
    app = build_worker_app(app_settings)
    await app.run()


def main() -> None:
    setup_logging()
    initialize_logfire()
    logger.info("Starting Relayworks-AI workers...")
    asyncio.run(serve())
    logger.info("Relayworks-AI workers stopped")


if __name__ == "__main__":
    main()
