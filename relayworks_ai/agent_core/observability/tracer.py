"""Per-run structured tracing.

An ``AgentTracer`` owns the ``AgentTrace`` of exactly one run. Steps are
append-only and metrics are maintained as steps are recorded. The trace is
finalized once, through ``complete`` or ``fail``; any recording after that
raises ``RuntimeError``.

The tracer itself does no I/O. The engine persists the finalized trace
through a ``TraceRepository``; feedback collected afterwards is written with
``record_feedback``.

Usage
-----

    tracer = AgentTracer(agent_id="a1", workspace_id="w1", user_id="u1")
    tracer.record_llm_call(usage_event)
    tracer.complete(RunStatus.completed, output="...", eval_result=result)
    await traces.save(tracer.trace)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
from uuid import uuid4

from ..llm.models import LLMUsageEvent
from ..repos.interfaces import TraceRepository
from ..schemas.domain import AgentTrace, EvalResult, RunStatus, TraceStep, TraceStepType

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (RunStatus.completed, RunStatus.pending_review, RunStatus.blocked, RunStatus.failed)


class AgentTracer:
    def __init__(
        self,
        *,
        agent_id: str,
        workspace_id: Optional[str] = None,
        user_id: Optional[str] = None,
        triggered_by: Optional[str] = None,
        trace_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._trace = AgentTrace(
            id=trace_id or str(uuid4()),
            agent_id=agent_id,
            workspace_id=workspace_id,
            user_id=user_id,
            triggered_by=triggered_by,
            metadata=dict(metadata or {}),
        )
        self._started = time.perf_counter()
        self._finalized = False
        logger.debug(f"Started trace {self._trace.id} for agent {agent_id}")

    @property
    def trace_id(self) -> str:
        return self._trace.id

    @property
    def trace(self) -> AgentTrace:
        """A copy of the current trace."""
        return self._trace.model_copy(deep=True)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _append(self, step: TraceStep) -> TraceStep:
        if self._finalized:
            raise RuntimeError(f"Trace {self._trace.id} is already finalized")
        self._trace.steps.append(step)
        return step

    def record_llm_call(self, event: LLMUsageEvent, *, output: Optional[str] = None) -> TraceStep:
        step = self._append(
            TraceStep(
                type=TraceStepType.llm_call,
                name=event.model,
                started_at=event.timestamp,
                duration_ms=event.latency_ms,
                output=output,
                metadata={
                    "tier": event.tier.value,
                    "tokens_in": event.tokens_in,
                    "tokens_out": event.tokens_out,
                    "cost": event.cost,
                    "step_number": event.step_number,
                    "action": event.action.value,
                },
            )
        )
        metrics = self._trace.metrics
        metrics.llm_calls += 1
        metrics.total_tokens_in += event.tokens_in
        metrics.total_tokens_out += event.tokens_out
        metrics.total_cost += event.cost
        return step

    def record_tool_call(
        self,
        name: str,
        *,
        input: Any = None,
        output: Any = None,
        success: bool = True,
        error: Optional[str] = None,
        duration_ms: float = 0.0,
    ) -> TraceStep:
        step = self._append(
            TraceStep(
                type=TraceStepType.tool_call,
                name=name,
                duration_ms=duration_ms,
                input=input,
                output=output,
                success=success,
                error=error,
            )
        )
        if success:
            self._trace.metrics.tool_successes += 1
        else:
            self._trace.metrics.tool_failures += 1
        return step

    def record_decision(self, name: str, *, input: Any = None, output: Any = None) -> TraceStep:
        return self._append(TraceStep(type=TraceStepType.decision, name=name, input=input, output=output))

    def record_error(self, name: str, error: str, *, metadata: Optional[Dict[str, Any]] = None) -> TraceStep:
        return self._append(
            TraceStep(type=TraceStepType.error, name=name, success=False, error=error, metadata=dict(metadata or {}))
        )

    def preview(
        self,
        status: RunStatus,
        *,
        output: Optional[str] = None,
        eval_result: Optional[EvalResult] = None,
    ) -> AgentTrace:
        """The trace ``complete`` would produce, without finalizing the tracer.

        Lets the caller persist the final trace first and ``commit`` it only
        once the write succeeded.
        """
        if status not in TERMINAL_STATUSES or status == RunStatus.failed:
            raise ValueError(f"complete() needs a terminal success status, got {status.value}")
        if self._finalized:
            raise RuntimeError(f"Trace {self._trace.id} is already finalized")
        trace = self.trace
        trace.status = status
        trace.completed_at = datetime.now(timezone.utc)
        trace.metrics.duration_ms = (time.perf_counter() - self._started) * 1000.0
        trace.output = output
        trace.eval_result = eval_result
        return trace

    def commit(self, trace: AgentTrace) -> AgentTrace:
        """Finalize the tracer with a trace returned by ``preview``."""
        if self._finalized:
            raise RuntimeError(f"Trace {self._trace.id} is already finalized")
        if trace.id != self._trace.id:
            raise ValueError(f"Trace {trace.id} does not belong to tracer {self._trace.id}")
        self._trace = trace.model_copy(deep=True)
        self._finalized = True
        logger.info(
            f"Completed trace {trace.id} status={trace.status.value} in {trace.metrics.duration_ms:.0f}ms"
        )
        return self.trace

    def complete(
        self,
        status: RunStatus,
        *,
        output: Optional[str] = None,
        eval_result: Optional[EvalResult] = None,
    ) -> AgentTrace:
        """Finalize the trace with a terminal non-failure status."""
        return self.commit(self.preview(status, output=output, eval_result=eval_result))

    def fail(self, error: str) -> AgentTrace:
        self._finalize(RunStatus.failed)
        self._trace.error = error
        logger.warning(f"Failed trace {self._trace.id}: {error}")
        return self.trace

    def _finalize(self, status: RunStatus) -> None:
        if self._finalized:
            raise RuntimeError(f"Trace {self._trace.id} is already finalized")
        self._finalized = True
        self._trace.status = status
        self._trace.completed_at = datetime.now(timezone.utc)
        self._trace.metrics.duration_ms = (time.perf_counter() - self._started) * 1000.0


async def record_feedback(
    traces: TraceRepository,
    trace_id: str,
    score: int,
    *,
    comment: Optional[str] = None,
    user_edited: bool = False,
    edit_diff: Optional[str] = None,
) -> AgentTrace:
    """Attach a 1-5 user rating (and optional edit) to a persisted trace."""
    if not 1 <= score <= 5:
        raise ValueError("feedback score must be between 1 and 5")
    updated = await traces.update_feedback(
        trace_id, score=score, comment=comment, user_edited=user_edited, edit_diff=edit_diff
    )
    logger.info(f"Recorded feedback for trace {trace_id}: {score}/5")
    return updated


@dataclass
class AgentMetricsSummary:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    success_rate: float = 0.0
    total_cost: float = 0.0
    average_cost: float = 0.0
    average_latency_ms: float = 0.0
    average_steps: float = 0.0
    average_feedback: Optional[float] = None


def summarize_agent_metrics(traces: Iterable[AgentTrace]) -> AgentMetricsSummary:
    """Aggregate run outcomes, cost, latency and feedback over traces."""
    items = list(traces)
    summary = AgentMetricsSummary(total=len(items))
    if not items:
        return summary
    for t in items:
        summary.by_status[t.status.value] = summary.by_status.get(t.status.value, 0) + 1
    summary.success_rate = summary.by_status.get(RunStatus.completed.value, 0) / len(items)
    summary.total_cost = sum(t.metrics.total_cost for t in items)
    summary.average_cost = summary.total_cost / len(items)
    summary.average_latency_ms = sum(t.metrics.duration_ms for t in items) / len(items)
    summary.average_steps = sum(len(t.steps) for t in items) / len(items)
    rated = [t.feedback_score for t in items if t.feedback_score is not None]
    if rated:
        summary.average_feedback = sum(rated) / len(rated)
    return summary
