"""Persisted workflow graph and execution records.

A workflow is a list of typed nodes plus directed connections between them.
Node ``type`` is kept as a plain string on the persisted model so that graphs
authored against executors this process does not know about still load; the
executor registry rejects them at run time with ``UnknownNodeTypeError``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeType(str, Enum):
    """Node types with a built-in executor."""

    manual_trigger = "manual_trigger"
    initial = "initial"
    http_request = "http_request"
    condition = "condition"
    wait_for_event = "wait_for_event"
    agent = "agent"


class ExecutionStatus(str, Enum):
    running = "running"
    suspended = "suspended"
    success = "success"
    failed = "failed"


class WorkflowNode(BaseSchema):
    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class Connection(BaseSchema):
    from_node_id: str
    to_node_id: str


class Workflow(BaseSchema):
    id: str
    name: str = ""
    user_id: str
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)


class WorkflowExecution(BaseSchema):
    """One run (or run segment chain) of a workflow."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    workflow_id: str
    user_id: Optional[str] = None
    triggered_by: str = "manual"
    status: ExecutionStatus = ExecutionStatus.running
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    suspended_node_id: Optional[str] = None
    resume_token: Optional[str] = None
