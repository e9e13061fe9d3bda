"""SQLAlchemy async repository implementations.

This module provides the database-backed implementation of the repository
interfaces defined in ``relayworks_ai.agent_core.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. A trace or execution is durable when the method returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relayworks_ai.core.database import as_utc, create_all, create_engine, create_sessionmaker, utc_now

from ..schemas.domain import AgentConfig, AgentTrace
from ..schemas.workflow import ExecutionStatus, Workflow, WorkflowExecution
from .interfaces import (
    AgentRepository,
    TraceRepository,
    WorkflowExecutionRepository,
    WorkflowRepository,
)
from .memory import TERMINAL_EXECUTION_STATUSES
from .models import AgentRow, TraceRow, WorkflowExecutionRow, WorkflowRow

__all__ = [
    "SqlAgentRepository",
    "SqlRepos",
    "SqlTraceRepository",
    "SqlWorkflowExecutionRepository",
    "SqlWorkflowRepository",
    "build_sql_repos",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]


def _trace_from_row(row: TraceRow) -> AgentTrace:
    return AgentTrace.model_validate(
        {
            "id": row.id,
            "agent_id": row.agent_id,
            "workspace_id": row.workspace_id,
            "user_id": row.user_id,
            "triggered_by": row.triggered_by,
            "status": row.status,
            "steps": row.steps or [],
            "metrics": row.metrics or {},
            "output": row.output,
            "eval_result": row.eval_result,
            "error": row.error,
            "metadata": row.meta or {},
            "started_at": as_utc(row.started_at),
            "completed_at": as_utc(row.completed_at),
            "feedback_score": row.feedback_score,
            "feedback_comment": row.feedback_comment,
            "user_edited": row.user_edited,
            "edit_diff": row.edit_diff,
        }
    )


def _execution_from_row(row: WorkflowExecutionRow) -> WorkflowExecution:
    return WorkflowExecution(
        id=row.id,
        workflow_id=row.workflow_id,
        user_id=row.user_id,
        triggered_by=row.triggered_by,
        status=ExecutionStatus(row.status),
        started_at=as_utc(row.started_at),
        completed_at=as_utc(row.completed_at),
        result=row.result,
        error=row.error,
        suspended_node_id=row.suspended_node_id,
        resume_token=row.resume_token,
    )


@dataclass(frozen=True)
class SqlTraceRepository(TraceRepository):
    """SQL implementation of ``TraceRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def save(self, trace: AgentTrace) -> None:
        doc = trace.model_dump(mode="json")
        async with self.session_factory() as s:
            row = await s.get(TraceRow, trace.id)
            if row is None:
                row = TraceRow(id=trace.id)
                s.add(row)
            row.agent_id = trace.agent_id
            row.workspace_id = trace.workspace_id
            row.user_id = trace.user_id
            row.triggered_by = trace.triggered_by
            row.status = trace.status.value
            row.steps = doc["steps"]
            row.metrics = doc["metrics"]
            row.output = trace.output
            row.eval_result = doc["eval_result"]
            row.error = trace.error
            row.meta = doc["metadata"]
            row.total_cost = trace.metrics.total_cost
            row.duration_ms = trace.metrics.duration_ms
            row.started_at = trace.started_at
            row.completed_at = trace.completed_at
            row.feedback_score = trace.feedback_score
            row.feedback_comment = trace.feedback_comment
            row.user_edited = trace.user_edited
            row.edit_diff = trace.edit_diff
            await s.commit()

    async def get(self, trace_id: str) -> Optional[AgentTrace]:
        async with self.session_factory() as s:
            row = await s.get(TraceRow, trace_id)
            return _trace_from_row(row) if row is not None else None

    async def list_for_agent(self, agent_id: str, limit: int = 100) -> List[AgentTrace]:
        async with self.session_factory() as s:
            stmt = (
                select(TraceRow)
                .where(TraceRow.agent_id == agent_id)
                .order_by(TraceRow.started_at.desc())
                .limit(limit)
            )
            result = await s.execute(stmt)
            return [_trace_from_row(r) for r in result.scalars().all()]

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
        async with self.session_factory() as s:
            row = await s.get(TraceRow, trace_id)
            if row is None:
                raise KeyError(trace_id)
            row.feedback_score = score
            row.feedback_comment = comment
            row.user_edited = user_edited
            row.edit_diff = edit_diff
            await s.commit()
            return _trace_from_row(row)


@dataclass(frozen=True)
class SqlAgentRepository(AgentRepository):
    """SQL implementation of ``AgentRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, agent_id: str) -> Optional[AgentConfig]:
        async with self.session_factory() as s:
            row = await s.get(AgentRow, agent_id)
            return AgentConfig.model_validate(row.config) if row is not None else None

    async def save(self, config: AgentConfig) -> None:
        async with self.session_factory() as s:
            row = await s.get(AgentRow, config.id)
            if row is None:
                row = AgentRow(id=config.id)
                s.add(row)
            row.workspace_id = config.workspace_id
            row.name = config.name
            row.config = config.model_dump(mode="json")
            await s.commit()


@dataclass(frozen=True)
class SqlWorkflowRepository(WorkflowRepository):
    """SQL implementation of ``WorkflowRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        async with self.session_factory() as s:
            row = await s.get(WorkflowRow, workflow_id)
            if row is None:
                return None
            return Workflow.model_validate(
                {
                    "id": row.id,
                    "name": row.name,
                    "user_id": row.user_id,
                    "nodes": row.nodes or [],
                    "connections": row.connections or [],
                }
            )

    async def save(self, workflow: Workflow) -> None:
        doc = workflow.model_dump(mode="json")
        async with self.session_factory() as s:
            row = await s.get(WorkflowRow, workflow.id)
            if row is None:
                row = WorkflowRow(id=workflow.id)
                s.add(row)
            row.user_id = workflow.user_id
            row.name = workflow.name
            row.nodes = doc["nodes"]
            row.connections = doc["connections"]
            await s.commit()


@dataclass(frozen=True)
class SqlWorkflowExecutionRepository(WorkflowExecutionRepository):
    """SQL implementation of ``WorkflowExecutionRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, execution: WorkflowExecution) -> None:
        async with self.session_factory() as s:
            s.add(
                WorkflowExecutionRow(
                    id=execution.id,
                    workflow_id=execution.workflow_id,
                    user_id=execution.user_id,
                    triggered_by=execution.triggered_by,
                    status=execution.status.value,
                    started_at=execution.started_at,
                    completed_at=execution.completed_at,
                    result=execution.result,
                    error=execution.error,
                    suspended_node_id=execution.suspended_node_id,
                    resume_token=execution.resume_token,
                )
            )
            await s.commit()

    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        async with self.session_factory() as s:
            row = await s.get(WorkflowExecutionRow, execution_id)
            return _execution_from_row(row) if row is not None else None

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
        async with self.session_factory() as s:
            row = await s.get(WorkflowExecutionRow, execution_id)
            if row is None:
                raise KeyError(execution_id)
            row.status = status.value
            if result is not None:
                row.result = result
            row.error = error
            row.suspended_node_id = suspended_node_id
            row.resume_token = resume_token
            row.completed_at = utc_now() if status in TERMINAL_EXECUTION_STATUSES else None
            await s.commit()
            return _execution_from_row(row)


@dataclass(frozen=True)
class SqlRepos:
    traces: SqlTraceRepository
    agents: SqlAgentRepository
    workflows: SqlWorkflowRepository
    executions: SqlWorkflowExecutionRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepos:
    """Build every SQL repository on one session factory."""
    return SqlRepos(
        traces=SqlTraceRepository(session_factory),
        agents=SqlAgentRepository(session_factory),
        workflows=SqlWorkflowRepository(session_factory),
        executions=SqlWorkflowExecutionRepository(session_factory),
    )
