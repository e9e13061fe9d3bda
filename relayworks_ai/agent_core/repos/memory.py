"""In-memory repository implementations.

Used by tests and by local wiring where durability is not required. Objects
are deep-copied on the way in and out so callers can never mutate stored
state behind the repository's back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..schemas.domain import AgentConfig, AgentTrace
from ..schemas.workflow import ExecutionStatus, Workflow, WorkflowExecution

TERMINAL_EXECUTION_STATUSES = (ExecutionStatus.success, ExecutionStatus.failed)


class InMemoryTraceRepository:
    def __init__(self) -> None:
        self._traces: Dict[str, AgentTrace] = {}

    async def save(self, trace: AgentTrace) -> None:
        self._traces[trace.id] = trace.model_copy(deep=True)

    async def get(self, trace_id: str) -> Optional[AgentTrace]:
        trace = self._traces.get(trace_id)
        return trace.model_copy(deep=True) if trace else None

    async def list_for_agent(self, agent_id: str, limit: int = 100) -> List[AgentTrace]:
        traces = [t for t in self._traces.values() if t.agent_id == agent_id]
        traces.sort(key=lambda t: t.started_at, reverse=True)
        return [t.model_copy(deep=True) for t in traces[:limit]]

    async def update_feedback(
        self,
        trace_id: str,
        *,
        score: Optional[int] = None,
        comment: Optional[str] = None,
        user_edited: bool = False,
        edit_diff: Optional[str] = None,
    ) -> AgentTrace:
        if score is not None and not 1 <= score <= 5:
            raise ValueError("feedback score must be between 1 and 5")
        if trace_id not in self._traces:
            raise KeyError(trace_id)
        updated = AgentTrace.model_validate(
            {
                **self._traces[trace_id].model_dump(),
                "feedback_score": score,
                "feedback_comment": comment,
                "user_edited": user_edited,
                "edit_diff": edit_diff,
            }
        )
        self._traces[trace_id] = updated
        return updated.model_copy(deep=True)


class InMemoryAgentRepository:
    def __init__(self) -> None:
        self._agents: Dict[str, AgentConfig] = {}

    async def get(self, agent_id: str) -> Optional[AgentConfig]:
        config = self._agents.get(agent_id)
        return config.model_copy(deep=True) if config else None

    async def save(self, config: AgentConfig) -> None:
        self._agents[config.id] = config.model_copy(deep=True)


class InMemoryWorkflowRepository:
    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def save(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)


class InMemoryWorkflowExecutionRepository:
    def __init__(self) -> None:
        self._executions: Dict[str, WorkflowExecution] = {}

    async def create(self, execution: WorkflowExecution) -> None:
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def update(
        self,
        execution_id: str,
        *,
        status: ExecutionStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        suspended_node_id: Optional[str] = None,
        resume_token: Optional[str] = None,
    ) -> WorkflowExecution:
        if execution_id not in self._executions:
            raise KeyError(execution_id)
        current = self._executions[execution_id]
        updated = current.model_copy(
            update={
                "status": status,
                "result": result if result is not None else current.result,
                "error": error,
                "suspended_node_id": suspended_node_id,
                "resume_token": resume_token,
                "completed_at": datetime.now(timezone.utc) if status in TERMINAL_EXECUTION_STATUSES else None,
            },
            deep=True,
        )
        self._executions[execution_id] = updated
        return updated.model_copy(deep=True)
