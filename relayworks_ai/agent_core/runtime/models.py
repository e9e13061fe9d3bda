"""Runtime dependency bundle and LangGraph state types.

The runtime engine is dependency-injected.

- ``EngineDeps`` collects the collaborators the engine needs.
- ``_GraphState`` is the state passed between LangGraph nodes for one run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, NotRequired, Optional, Required, TypedDict

from ..eval.engine import EvalEngine
from ..llm.client import LLMClient
from ..llm.models import ChatResult
from ..observability.tracer import AgentTracer
from ..repos.interfaces import TraceRepository
from ..schemas.domain import AgentConfig, EvalResult, ExecutionContext, ExecutionResult, RunStatus
from .fetch import DataFetcher


@dataclass(frozen=True)
class EngineDeps:
    """Dependency bundle for ``AgentEngine``.

    Constructed once by application wiring code:

    - ``llm``: the shared ``LLMClient``.
    - ``evaluator``: the ``EvalEngine`` gating every output.
    - ``traces``: where finalized traces are persisted.
    - ``fetcher``: optional data-source fetcher; without one, configured
      fetch sources yield a ``fetch_failed`` placeholder.
    """

    llm: LLMClient
    evaluator: EvalEngine
    traces: TraceRepository
    fetcher: Optional[DataFetcher] = None
    max_tokens: Optional[int] = None


class _GraphState(TypedDict, total=False):
    """LangGraph state for a single agent run.

    Required keys:

    - ``run_id``: run identifier (also the trace id).
    - ``config``: the agent configuration.
    - ``context``: the execution context.
    - ``tracer``: the run's ``AgentTracer``.

    Keys filled in by successive nodes: ``fetched``, ``prompt``, ``llm``,
    ``eval_result``, ``status``, ``result``.
    """

    run_id: Required[str]
    config: Required[AgentConfig]
    context: Required[ExecutionContext]
    tracer: Required[AgentTracer]
    started: Required[float]

    fetched: NotRequired[Dict[str, Any]]
    prompt: NotRequired[str]
    llm: NotRequired[ChatResult]
    eval_result: NotRequired[EvalResult]
    status: NotRequired[RunStatus]
    result: NotRequired[ExecutionResult]
