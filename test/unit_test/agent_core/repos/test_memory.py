from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from relayworks_ai.agent_core.repos import (
    InMemoryAgentRepository,
    InMemoryTraceRepository,
    InMemoryWorkflowExecutionRepository,
    InMemoryWorkflowRepository,
)
from relayworks_ai.agent_core.schemas.domain import AgentConfig, AgentTrace, RunStatus
from relayworks_ai.agent_core.schemas.workflow import (
    Connection,
    ExecutionStatus,
    Workflow,
    WorkflowExecution,
    WorkflowNode,
)


@pytest.mark.asyncio
async def test_traces_are_listed_newest_first_and_isolated() -> None:
    repo = InMemoryTraceRepository()
    now = datetime.now(timezone.utc)
    old = AgentTrace(id="t-old", agent_id="a", started_at=now - timedelta(minutes=5))
    new = AgentTrace(id="t-new", agent_id="a", started_at=now)
    other = AgentTrace(id="t-other", agent_id="b")
    for trace in (old, new, other):
        await repo.save(trace)

    listed = await repo.list_for_agent("a")
    assert [t.id for t in listed] == ["t-new", "t-old"]
    assert [t.id for t in await repo.list_for_agent("a", limit=1)] == ["t-new"]

    listed[0].status = RunStatus.failed
    stored = await repo.get("t-new")
    assert stored is not None and stored.status is RunStatus.running


@pytest.mark.asyncio
async def test_save_replaces_existing_trace() -> None:
    repo = InMemoryTraceRepository()
    await repo.save(AgentTrace(id="t1", agent_id="a"))
    await repo.save(AgentTrace(id="t1", agent_id="a", status=RunStatus.completed))
    stored = await repo.get("t1")
    assert stored is not None and stored.status is RunStatus.completed


@pytest.mark.asyncio
async def test_feedback_on_unknown_trace_raises() -> None:
    repo = InMemoryTraceRepository()
    assert await repo.get("missing") is None
    with pytest.raises(KeyError):
        await repo.update_feedback("missing", score=3)
    with pytest.raises(ValueError):
        await repo.update_feedback("missing", score=0)


@pytest.mark.asyncio
async def test_agent_and_workflow_round_trip() -> None:
    agents = InMemoryAgentRepository()
    await agents.save(AgentConfig(id="agent-1", name="Follow-up", system_prompt="Be brief."))
    config = await agents.get("agent-1")
    assert config is not None and config.system_prompt == "Be brief."
    assert await agents.get("nope") is None

    workflows = InMemoryWorkflowRepository()
    workflow = Workflow(
        id="wf-1",
        user_id="u1",
        nodes=[WorkflowNode(id="n1", type="manual_trigger"), WorkflowNode(id="n2", type="http_request")],
        connections=[Connection(from_node_id="n1", to_node_id="n2")],
    )
    await workflows.save(workflow)
    assert await workflows.get("wf-1") == workflow


@pytest.mark.asyncio
async def test_execution_update_stamps_completion_on_terminal_status() -> None:
    repo = InMemoryWorkflowExecutionRepository()
    await repo.create(WorkflowExecution(id="e1", workflow_id="wf-1"))

    suspended = await repo.update(
        "e1", status=ExecutionStatus.suspended, result={"a": 1}, suspended_node_id="n2", resume_token="tok"
    )
    assert suspended.completed_at is None
    assert suspended.resume_token == "tok"

    done = await repo.update("e1", status=ExecutionStatus.success)
    assert done.completed_at is not None
    assert done.result == {"a": 1}
    assert done.suspended_node_id is None

    with pytest.raises(KeyError):
        await repo.update("missing", status=ExecutionStatus.failed)
