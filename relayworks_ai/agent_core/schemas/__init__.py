"""Domain schemas shared by the agent engine, eval gate, tracer and persistence."""

from .base import BaseSchema
from .domain import (
    AgentConfig,
    AgentOutput,
    AgentTrace,
    AssertionResult,
    AssertionSeverity,
    AutonomyTier,
    EvalDecision,
    EvalResult,
    EvalRules,
    ExecutionContext,
    ExecutionResult,
    FetchSource,
    L1Assertion,
    L1Result,
    L2Result,
    L3Result,
    LLMUsage,
    ModelTier,
    RunStatus,
    TraceMetrics,
    TraceStep,
    TraceStepType,
    TriggerSource,
)
from .workflow import Connection, ExecutionStatus, NodeType, Workflow, WorkflowExecution, WorkflowNode

__all__ = [
    "AgentConfig",
    "AgentOutput",
    "AgentTrace",
    "AssertionResult",
    "AssertionSeverity",
    "AutonomyTier",
    "BaseSchema",
    "Connection",
    "EvalDecision",
    "EvalResult",
    "EvalRules",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionStatus",
    "FetchSource",
    "L1Assertion",
    "L1Result",
    "L2Result",
    "L3Result",
    "LLMUsage",
    "ModelTier",
    "NodeType",
    "RunStatus",
    "TraceMetrics",
    "TraceStep",
    "TraceStepType",
    "TriggerSource",
    "Workflow",
    "WorkflowExecution",
    "WorkflowNode",
]
