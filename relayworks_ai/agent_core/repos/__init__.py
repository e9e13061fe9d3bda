"""Persistence interfaces and implementations.

``interfaces`` defines the Protocols consumed by the engine, tracer and
workflow worker; ``memory`` holds dict-backed implementations and ``sql``
the SQLAlchemy async implementations. The SQL module is not imported here so
that in-memory wiring does not require a database driver.
"""

from .interfaces import AgentRepository, TraceRepository, WorkflowExecutionRepository, WorkflowRepository
from .memory import (
    InMemoryAgentRepository,
    InMemoryTraceRepository,
    InMemoryWorkflowExecutionRepository,
    InMemoryWorkflowRepository,
)

__all__ = [
    "AgentRepository",
    "InMemoryAgentRepository",
    "InMemoryTraceRepository",
    "InMemoryWorkflowExecutionRepository",
    "InMemoryWorkflowRepository",
    "TraceRepository",
    "WorkflowExecutionRepository",
    "WorkflowRepository",
]
