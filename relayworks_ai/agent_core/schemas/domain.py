"""Domain models for agent configuration, evaluation and tracing.

These models are the stable contract between the agent engine, the eval
gate, the tracer and persistence. They are plain Pydantic models so they can
be serialized into JSON columns, job payloads and logs without custom
encoders.

Model groups
------------

- Configuration: ``AgentConfig`` with its ``FetchSource`` list and
  ``EvalRules``. Read-only to the core.
- Evaluation: ``AssertionResult``, ``L1Result``, ``L2Result``, ``L3Result``
  and the combined ``EvalResult``.
- Execution: ``ExecutionContext`` (input of one run) and ``ExecutionResult``
  (output of one run).
- Tracing: ``TraceStep``, ``TraceMetrics`` and the ``AgentTrace`` aggregate.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from relayworks_ai.core import config as _config

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _eval_default(name: str) -> Any:
    return getattr(_config.settings.evaluation, name)


class ModelTier(str, Enum):
    """Cost/quality tier used to select a concrete model identifier."""

    fast = "fast"
    smart = "smart"
    deep = "deep"


class AutonomyTier(str, Enum):
    """How much an agent may do without a human in the loop."""

    auto = "auto"
    review = "review"
    readonly = "readonly"


class AssertionSeverity(str, Enum):
    """Effect of a failed L1 assertion on the gate verdict."""

    block = "block"
    warn = "warn"


class EvalDecision(str, Enum):
    """Final decision of the evaluation gate."""

    auto_send = "auto_send"
    needs_review = "needs_review"
    blocked = "blocked"


class RunStatus(str, Enum):
    """Lifecycle status of an agent run and its trace."""

    running = "running"
    completed = "completed"
    pending_review = "pending_review"
    blocked = "blocked"
    failed = "failed"


class TraceStepType(str, Enum):
    """Kind of step recorded in an ``AgentTrace``."""

    llm_call = "llm_call"
    tool_call = "tool_call"
    decision = "decision"
    error = "error"


class TriggerSource(str, Enum):
    """Origin of a queued job."""

    manual = "manual"
    cron = "cron"
    webhook = "webhook"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class FetchSource(BaseSchema):
    """A data source an agent reads before prompting (e.g. ``gmail``/``unread``)."""

    source: str
    query: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)


class L1Assertion(BaseSchema):
    """A named deterministic check with a severity and check-specific params."""

    check: str
    severity: AssertionSeverity = AssertionSeverity.block
    params: Dict[str, Any] = Field(default_factory=dict)


class EvalRules(BaseSchema):
    """Rule set driving the three-tier evaluation of one agent's output.

    ``min_confidence`` is the L2 score below which L3 is triggered;
    ``auto_send_threshold`` is the L2 score required to skip human review.
    Both, and ``enable_l3``, default to the ``EVAL_*`` settings when the rule
    set is created.
    """

    assertions: List[L1Assertion] = Field(default_factory=list)
    criteria: List[str] = Field(default_factory=list)
    min_confidence: float = Field(default_factory=lambda: _eval_default("l2_min_score"), ge=0.0, le=1.0)
    auto_send_threshold: float = Field(default_factory=lambda: _eval_default("auto_send_threshold"), ge=0.0, le=1.0)
    require_approval: bool = False
    enable_l3: bool = Field(default_factory=lambda: _eval_default("enable_l3"))
    l3_trigger_conditions: List[str] = Field(default_factory=list)


class AgentConfig(BaseSchema):
    """Configuration of an agent as authored in the dashboard."""

    id: str
    name: str
    system_prompt: str
    model_tier: ModelTier = ModelTier.smart
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_steps_per_run: int = Field(default=5, ge=1)
    autonomy_tier: AutonomyTier = AutonomyTier.review
    eval_rules: EvalRules = Field(default_factory=EvalRules)
    fetch_sources: List[FetchSource] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)
    workspace_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class AssertionResult(BaseSchema):
    check: str
    severity: AssertionSeverity
    passed: bool
    message: Optional[str] = None


class L1Result(BaseSchema):
    passed: bool
    assertions: List[AssertionResult] = Field(default_factory=list)

    @property
    def failures(self) -> List[AssertionResult]:
        return [a for a in self.assertions if not a.passed]


class L2Result(BaseSchema):
    score: float = Field(ge=0.0, le=1.0)
    breakdown: Dict[str, float] = Field(default_factory=dict)


class L3Result(BaseSchema):
    blocked: bool
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class EvalResult(BaseSchema):
    """Combined output of the L1/L2/L3 gate for a single candidate output."""

    l1_passed: bool
    l1_assertions: List[AssertionResult] = Field(default_factory=list)
    l2_score: float = 0.0
    l2_breakdown: Dict[str, float] = Field(default_factory=dict)
    l3_triggered: bool = False
    l3_blocked: bool = False
    l3_confidence: Optional[float] = None
    l3_reason: Optional[str] = None
    final_decision: EvalDecision


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionContext(BaseSchema):
    """Input of one agent run: who runs it, why, and with what request."""

    agent_id: str
    workspace_id: str
    user_id: str
    triggered_by: str = TriggerSource.manual.value
    user_message: Optional[str] = None
    additional_context: Optional[Dict[str, Any]] = None


class LLMUsage(BaseSchema):
    model: str
    tokens_in: int = 0
    tokens_out: int = 0
    cost: float = 0.0
    latency_ms: float = 0.0


class AgentOutput(BaseSchema):
    type: str = "text"
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseSchema):
    """Output of one agent run."""

    run_id: str
    output: AgentOutput
    llm_usage: LLMUsage
    eval_result: EvalResult
    status: RunStatus


# ---------------------------------------------------------------------------
# Tracing
# ---------------------------------------------------------------------------


class TraceStep(BaseSchema):
    """One append-only entry in an agent trace."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: TraceStepType
    name: str
    started_at: datetime = Field(default_factory=_utc_now)
    duration_ms: float = 0.0
    input: Optional[Any] = None
    output: Optional[Any] = None
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TraceMetrics(BaseSchema):
    total_tokens_in: int = 0
    total_tokens_out: int = 0
    total_cost: float = 0.0
    llm_calls: int = 0
    tool_successes: int = 0
    tool_failures: int = 0
    duration_ms: float = 0.0


class AgentTrace(BaseSchema):
    """Structured record of one agent execution.

    Created at run start with status ``running``, appended to during the run
    and finalized once with a terminal status.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str
    workspace_id: Optional[str] = None
    user_id: Optional[str] = None
    triggered_by: Optional[str] = None
    status: RunStatus = RunStatus.running
    steps: List[TraceStep] = Field(default_factory=list)
    metrics: TraceMetrics = Field(default_factory=TraceMetrics)
    output: Optional[str] = None
    eval_result: Optional[EvalResult] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    feedback_score: Optional[int] = Field(default=None, ge=1, le=5)
    feedback_comment: Optional[str] = None
    user_edited: bool = False
    edit_diff: Optional[str] = None
