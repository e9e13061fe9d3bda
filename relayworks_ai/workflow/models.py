"""Workflow execution types.

A node executor receives the node's configuration, the node id, the acting
user and the context accumulated from upstream nodes, and returns either
``Continue(context)`` with the new context or ``Suspend(resume_token,
context)`` when the run has to wait for an external event.

Contexts are read-only mappings; executors build and return a new mapping
instead of mutating the one they were given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from relayworks_ai.agent_core.schemas.workflow import (
    Connection,
    ExecutionStatus,
    NodeType,
    Workflow,
    WorkflowExecution,
    WorkflowNode,
)

WorkflowContext = Mapping[str, Any]

SELECTED_BRANCH = "selected_branch"
EXECUTION_ID = "execution_id"
TRIGGERED_AT = "triggered_at"


def freeze(context: Mapping[str, Any]) -> WorkflowContext:
    return MappingProxyType(dict(context))


def extend(context: Mapping[str, Any], **updates: Any) -> WorkflowContext:
    """Return a new read-only context with ``updates`` applied."""
    merged: Dict[str, Any] = dict(context)
    merged.update(updates)
    return MappingProxyType(merged)


@dataclass(frozen=True)
class Continue:
    context: WorkflowContext


@dataclass(frozen=True)
class Suspend:
    resume_token: str
    context: WorkflowContext


NodeOutcome = Union[Continue, Suspend]
NodeExecutor = Callable[[Mapping[str, Any], str, str, WorkflowContext], Awaitable[NodeOutcome]]


class RunStatus(str, Enum):
    completed = "completed"
    suspended = "suspended"


@dataclass(frozen=True)
class WorkflowRunResult:
    status: RunStatus
    context: WorkflowContext = field(default_factory=lambda: freeze({}))
    suspended_node_id: Optional[str] = None
    resume_token: Optional[str] = None

    def context_dict(self) -> Dict[str, Any]:
        return dict(self.context)


__all__ = [
    "Connection",
    "Continue",
    "EXECUTION_ID",
    "ExecutionStatus",
    "NodeExecutor",
    "NodeOutcome",
    "NodeType",
    "RunStatus",
    "SELECTED_BRANCH",
    "Suspend",
    "TRIGGERED_AT",
    "Workflow",
    "WorkflowContext",
    "WorkflowExecution",
    "WorkflowNode",
    "WorkflowRunResult",
    "extend",
    "freeze",
]
