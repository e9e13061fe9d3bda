"""Workflow DAG execution: topological ordering, node executors and suspend/resume."""

from .executor import WorkflowExecutor
from .executors import (
    AgentNodeExecutor,
    HttpRequestExecutor,
    build_default_registry,
    condition_executor,
    manual_trigger_executor,
    wait_for_event_executor,
)
from .graph import topological_sort, validate_graph
from .models import (
    Connection,
    Continue,
    NodeExecutor,
    NodeType,
    RunStatus,
    Suspend,
    Workflow,
    WorkflowContext,
    WorkflowNode,
    WorkflowRunResult,
)
from .registry import NodeExecutorRegistry

__all__ = [
    "AgentNodeExecutor",
    "Connection",
    "Continue",
    "HttpRequestExecutor",
    "NodeExecutor",
    "NodeExecutorRegistry",
    "NodeType",
    "RunStatus",
    "Suspend",
    "Workflow",
    "WorkflowContext",
    "WorkflowExecutor",
    "WorkflowNode",
    "WorkflowRunResult",
    "build_default_registry",
    "condition_executor",
    "manual_trigger_executor",
    "topological_sort",
    "validate_graph",
    "wait_for_event_executor",
]
