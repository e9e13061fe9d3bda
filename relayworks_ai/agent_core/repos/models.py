"""SQLAlchemy ORM models for agent and workflow persistence.

These rows back the SQL repositories in ``relayworks_ai.agent_core.repos.sql``.

Design
------

- Traces are stored as one row per run; steps, metrics and the eval result
  are JSON documents since they are always read together with the trace.
- Agent configurations and workflow graphs are stored as JSON documents next
  to a few indexed columns used for lookups.
- Workflow executions keep their status and suspension point as columns so
  resumable runs can be queried.

JSON columns use ``JSONB`` on Postgres and plain ``JSON`` elsewhere.
Table names are prefixed with ``rw_`` to avoid collisions in shared databases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from relayworks_ai.core.database import Base

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class TraceRow(Base):
    """Row model for ``rw_agent_traces``."""

    __tablename__ = "rw_agent_traces"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(128), index=True)
    workspace_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    triggered_by: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    status: Mapped[str] = mapped_column(String(32))
    steps: Mapped[List[Dict[str, Any]]] = mapped_column(JsonDocument)
    metrics: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)
    output: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    eval_result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonDocument, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[Dict[str, Any]] = mapped_column("metadata", JsonDocument)

    total_cost: Mapped[float] = mapped_column(Float, default=0.0)
    duration_ms: Mapped[float] = mapped_column(Float, default=0.0)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    feedback_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    edit_diff: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class AgentRow(Base):
    """Row model for ``rw_agents``."""

    __tablename__ = "rw_agents"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    workspace_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(256))
    config: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)


class WorkflowRow(Base):
    """Row model for ``rw_workflows``."""

    __tablename__ = "rw_workflows"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    name: Mapped[str] = mapped_column(String(256), default="")
    nodes: Mapped[List[Dict[str, Any]]] = mapped_column(JsonDocument)
    connections: Mapped[List[Dict[str, Any]]] = mapped_column(JsonDocument)


class WorkflowExecutionRow(Base):
    """Row model for ``rw_workflow_executions``."""

    __tablename__ = "rw_workflow_executions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workflow_id: Mapped[str] = mapped_column(String(128), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    triggered_by: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonDocument, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suspended_node_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resume_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
