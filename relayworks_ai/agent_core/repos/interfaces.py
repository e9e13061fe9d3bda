"""Repository interface contracts.

The agent engine, tracer and workflow worker depend on these Protocols
instead of concrete persistence implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations must not leak sessions or transactions to callers.
- ``save`` is an upsert: saving a trace or execution twice replaces it.
- Lookups of unknown ids return ``None``; updates of unknown ids raise
  ``KeyError`` so lost records are never silently ignored.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from ..schemas.domain import AgentConfig, AgentTrace
from ..schemas.workflow import ExecutionStatus, Workflow, WorkflowExecution


class TraceRepository(Protocol):
    """Persist finalized agent traces and user feedback on them."""

    async def save(self, trace: AgentTrace) -> None:
        """Insert or replace a trace."""
        ...

    async def get(self, trace_id: str) -> Optional[AgentTrace]:
        ...

    async def list_for_agent(self, agent_id: str, limit: int = 100) -> List[AgentTrace]:
        """Return the most recent traces of an agent, newest first."""
        ...

    async def update_feedback(
        self,
        trace_id: str,
        *,
        score: Optional[int] = None,
        comment: Optional[str] = None,
        user_edited: bool = False,
        edit_diff: Optional[str] = None,
    ) -> AgentTrace:
        """Attach user feedback to a trace and return the updated trace."""
        ...


class AgentRepository(Protocol):
    """Read agent configurations authored elsewhere."""

    async def get(self, agent_id: str) -> Optional[AgentConfig]:
        ...

    async def save(self, config: AgentConfig) -> None:
        ...


class WorkflowRepository(Protocol):
    """Read workflow graphs authored elsewhere."""

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        ...

    async def save(self, workflow: Workflow) -> None:
        ...


class WorkflowExecutionRepository(Protocol):
    """Record workflow execution lifecycles."""

    async def create(self, execution: WorkflowExecution) -> None:
        ...

    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        ...

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
        """Set the status of an execution; terminal statuses stamp ``completed_at``."""
        ...
