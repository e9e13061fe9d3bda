from __future__ import annotations

from typing import List
from unittest.mock import AsyncMock, patch

import pytest

from relayworks_ai import main as worker_main
from relayworks_ai.agent_core.llm import ModelCall, ModelTurn
from relayworks_ai.agent_core.schemas.domain import AgentConfig, AutonomyTier
from relayworks_ai.agent_core.schemas.workflow import Workflow, WorkflowNode
from relayworks_ai.core.config import Settings
from relayworks_ai.core.database import create_all
from relayworks_ai.job_queue import (
    AgentJobData,
    JobStatus,
    WorkflowJobData,
    enqueue_agent_run,
    enqueue_workflow,
)
from relayworks_ai.workflow import Connection


class _ScriptedTransport:
    def __init__(self, text: str) -> None:
        self.text = text
        self.calls: List[ModelCall] = []

    async def complete(self, call: ModelCall) -> ModelTurn:
        self.calls.append(call)
        return ModelTurn(text=self.text, input_tokens=20, output_tokens=10)


@pytest.fixture
def app_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Settings:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'worker.db'}")
    monkeypatch.setenv("EVAL_ENABLE_L3", "false")
    monkeypatch.setenv("QUEUE_WORKFLOW_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("QUEUE_AGENT_CONCURRENCY", "2")
    return Settings(_env_file=None)


@pytest.fixture
async def app(app_settings: Settings):
    transport = _ScriptedTransport("Thank you for the update. Best regards")
    built = worker_main.build_worker_app(app_settings, transport=transport)
    await create_all(built.db)
    try:
        yield built
    finally:
        await built.aclose()


@pytest.mark.asyncio
async def test_workers_follow_the_queue_settings(app) -> None:
    workflow_worker, agent_worker = app.workers
    assert workflow_worker.queue is app.workflow_queue
    assert agent_worker.queue is app.agent_queue
    assert workflow_worker.concurrency == 3
    assert agent_worker.concurrency == 2
    assert app.executor._timeout_seconds == 12.5


@pytest.mark.asyncio
async def test_agent_jobs_run_against_the_configured_database(app) -> None:
    await app.repos.agents.save(AgentConfig(id="agent-1", name="Follow-up", system_prompt="Write follow-ups."))
    await enqueue_agent_run(app.agent_queue, AgentJobData(agent_id="agent-1", workspace_id="ws-1", user_id="u-1"))

    done = await app.workers[1].process_next()

    assert done is not None and done.status is JobStatus.completed
    assert done.result["content"] == "Thank you for the update. Best regards"
    trace = await app.repos.traces.get(done.result["run_id"])
    assert trace is not None
    assert trace.agent_id == "agent-1"


@pytest.mark.asyncio
async def test_workflow_jobs_can_run_agent_nodes(app) -> None:
    await app.repos.agents.save(
        AgentConfig(id="writer", name="Writer", system_prompt="Write.", autonomy_tier=AutonomyTier.auto)
    )
    await app.repos.workflows.save(
        Workflow(
            id="wf-1",
            user_id="owner",
            nodes=[
                WorkflowNode(id="start", type="manual_trigger"),
                WorkflowNode(id="draft", type="agent", data={"agent_id": "writer", "variable_name": "draft"}),
            ],
            connections=[Connection(from_node_id="start", to_node_id="draft")],
        )
    )
    await enqueue_workflow(app.workflow_queue, WorkflowJobData(workflow_id="wf-1", user_id="owner"))

    done = await app.workers[0].process_next()

    assert done is not None and done.status is JobStatus.completed
    assert done.result["status"] == "success"
    assert done.result["result"]["draft"]["decision"] == "auto_send"


@pytest.mark.asyncio
async def test_l3_judge_is_attached_when_enabled(monkeypatch: pytest.MonkeyPatch, app_settings: Settings) -> None:
    monkeypatch.setenv("EVAL_ENABLE_L3", "true")
    with patch.object(worker_main, "PydanticAIJudge") as judge_cls:
        built = worker_main.build_worker_app(Settings(_env_file=None))
    await built.aclose()
    judge_cls.assert_called_once()


def test_main_configures_logging_and_monitoring_before_serving() -> None:
    calls: List[str] = []
    with (
        patch.object(worker_main, "setup_logging", side_effect=lambda: calls.append("logging")),
        patch.object(worker_main, "initialize_logfire", side_effect=lambda: calls.append("logfire")),
        patch.object(worker_main, "serve", new=AsyncMock(side_effect=lambda: calls.append("serve"))),
    ):
        worker_main.main()
    assert calls == ["logging", "logfire", "serve"]
