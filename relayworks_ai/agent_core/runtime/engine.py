"""LangGraph runtime engine.

``AgentEngine`` executes one agent run end to end.

Execution model
---------------

The engine runs a linear LangGraph state machine over ``_GraphState``:

``fetch_data -> build_prompt -> execute_llm -> run_eval -> finalize``

- ``fetch_data``: every configured source is fetched best-effort; failures
  become placeholders and failed tool-call steps.
- ``build_prompt``: system prompt, fetched data, additional context and the
  user request are joined into one system prompt.
- ``execute_llm``: a single-shot generation (``max_steps=1``) at the agent's
  tier and temperature.
- ``run_eval``: the L1/L2/L3 gate.
- ``finalize``: the decision maps to a run status and the final trace is
  persisted; the tracer is only finalized once that write succeeded, so a
  failed write leaves the run recorded as ``failed``.

Failure semantics
-----------------

``before`` hooks and every node run inside one failure boundary. Any
exception there is recorded as an error step, the trace is finalized as
``failed`` and persisted, ``on_error`` hooks fire, and an
``AgentExecutionError`` chained to the cause is raised. ``after`` hooks run
once the result is final; an exception from them propagates unchanged.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional
from uuid import uuid4

from langgraph.graph import END, StateGraph

from relayworks_ai.core.config import settings
from relayworks_ai.core.errors import AgentExecutionError
from relayworks_ai.core.monitoring import log_agent_completion, log_agent_run

from ..llm.models import ChatMessage
from ..observability.tracer import AgentTracer
from ..schemas.domain import (
    AgentConfig,
    AgentOutput,
    EvalDecision,
    ExecutionContext,
    ExecutionResult,
    LLMUsage,
    RunStatus,
)
from .fetch import fetch_all
from .hooks import AfterHook, BeforeHook, ErrorHook, HookRegistry
from .models import EngineDeps, _GraphState
from .prompt import build_prompt, user_message_for

logger = logging.getLogger(__name__)

STATUS_BY_DECISION: Dict[EvalDecision, RunStatus] = {
    EvalDecision.auto_send: RunStatus.completed,
    EvalDecision.needs_review: RunStatus.pending_review,
    EvalDecision.blocked: RunStatus.blocked,
}


def new_run_id() -> str:
    return f"run_{uuid4().hex[:10]}"


class AgentEngine:
    """Run agents with data fetching, generation, evaluation and tracing.

    Construct one engine at process start and pass it to every consumer
    (job processors, workflow executors). The engine keeps no per-run state;
    hooks registered on it apply to all later runs.
    """

    def __init__(self, deps: EngineDeps) -> None:
        self._deps = deps
        self._hooks = HookRegistry()
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("fetch_data", self._node_fetch_data)
        g.add_node("build_prompt", self._node_build_prompt)
        g.add_node("execute_llm", self._node_execute_llm)
        g.add_node("run_eval", self._node_run_eval)
        g.add_node("finalize", self._node_finalize)

        g.set_entry_point("fetch_data")
        g.add_edge("fetch_data", "build_prompt")
        g.add_edge("build_prompt", "execute_llm")
        g.add_edge("execute_llm", "run_eval")
        g.add_edge("run_eval", "finalize")
        g.add_edge("finalize", END)
        return g.compile()

    def on_before(self, hook: BeforeHook) -> None:
        self._hooks.before.append(hook)

    def on_after(self, hook: AfterHook) -> None:
        self._hooks.after.append(hook)

    def on_error(self, hook: ErrorHook) -> None:
        self._hooks.on_error.append(hook)

    async def execute(self, config: AgentConfig, context: ExecutionContext) -> ExecutionResult:
        """Execute one run of ``config`` for ``context``.

        Raises:
            AgentExecutionError: Any step between the before hooks and trace
                persistence failed. ``is_retryable`` mirrors the cause.
        """
        run_id = new_run_id()
        tracer = AgentTracer(
            agent_id=context.agent_id,
            workspace_id=context.workspace_id,
            user_id=context.user_id,
            triggered_by=context.triggered_by,
            trace_id=run_id,
            metadata={
                "agent_name": config.name,
                "model_tier": config.model_tier.value,
                "temperature": config.temperature,
                "max_steps_per_run": config.max_steps_per_run,
            },
        )
        log_agent_run(run_id, context.agent_id, context.workspace_id, context.triggered_by)

        try:
            await self._hooks.run_before(context)
            state: _GraphState = {
                "run_id": run_id,
                "config": config,
                "context": context,
                "tracer": tracer,
                "started": time.perf_counter(),
            }
            final_state = await self._graph.ainvoke(state)
            result: ExecutionResult = final_state["result"]
        except Exception as exc:
            await self._handle_failure(tracer, context, exc)
            raise AgentExecutionError(
                context.agent_id,
                run_id,
                str(exc) or type(exc).__name__,
                is_retryable=bool(getattr(exc, "is_retryable", False)),
            ) from exc

        log_agent_completion(run_id, result.status.value, result.llm_usage.latency_ms)
        await self._hooks.run_after(context, result)
        return result

    async def _handle_failure(self, tracer: AgentTracer, context: ExecutionContext, exc: Exception) -> None:
        logger.error(f"Agent {context.agent_id} run {tracer.trace_id} failed: {exc}")
        if not tracer.finalized:
            tracer.record_error(type(exc).__name__, str(exc))
            tracer.fail(str(exc) or type(exc).__name__)
        try:
            await self._deps.traces.save(tracer.trace)
        except Exception as save_exc:
            logger.error(f"Could not persist failed trace {tracer.trace_id}: {save_exc}")
        log_agent_completion(tracer.trace_id, RunStatus.failed.value, tracer.trace.metrics.duration_ms)
        await self._hooks.run_error(context, exc)

    async def _node_fetch_data(self, state: _GraphState) -> Dict[str, Any]:
        config = state["config"]
        tracer = state["tracer"]
        tracer.record_decision(
            "fetch_data",
            input={"sources": [s.source for s in config.fetch_sources]},
            output=f"Fetching data from {len(config.fetch_sources)} sources",
        )
        fetched, _ = await fetch_all(self._deps.fetcher, config.fetch_sources, state["context"], tracer)
        return {"fetched": fetched}

    async def _node_build_prompt(self, state: _GraphState) -> Dict[str, Any]:
        return {"prompt": build_prompt(state["config"], state["context"], state.get("fetched") or {})}

    async def _node_execute_llm(self, state: _GraphState) -> Dict[str, Any]:
        config = state["config"]
        context = state["context"]
        chat = await self._deps.llm.chat(
            [ChatMessage.user(user_message_for(context))],
            system_prompt=state["prompt"],
            tier=config.model_tier,
            temperature=config.temperature,
            max_tokens=self._deps.max_tokens or settings.llm.default_max_tokens,
            max_steps=1,
            agent_id=context.agent_id,
            user_id=context.user_id,
        )
        for event in chat.events:
            state["tracer"].record_llm_call(event, output=chat.content)
        return {"llm": chat}

    async def _node_run_eval(self, state: _GraphState) -> Dict[str, Any]:
        rules = state["config"].eval_rules
        eval_result = await self._deps.evaluator.evaluate(state["llm"].content, rules)
        state["tracer"].record_decision(
            "eval",
            input={"l1_passed": eval_result.l1_passed, "l2_score": eval_result.l2_score},
            output=eval_result.final_decision.value,
        )
        return {"eval_result": eval_result}

    async def _node_finalize(self, state: _GraphState) -> Dict[str, Any]:
        eval_result = state["eval_result"]
        chat = state["llm"]
        tracer = state["tracer"]
        status = STATUS_BY_DECISION[eval_result.final_decision]

        result = ExecutionResult(
            run_id=state["run_id"],
            output=AgentOutput(type="text", content=chat.content, metadata={"fetched_data": state.get("fetched") or {}}),
            llm_usage=LLMUsage(
                model=chat.model,
                tokens_in=chat.tokens_in,
                tokens_out=chat.tokens_out,
                cost=chat.cost,
                latency_ms=(time.perf_counter() - state["started"]) * 1000.0,
            ),
            eval_result=eval_result,
            status=status,
        )
        trace = tracer.preview(status, output=chat.content, eval_result=eval_result)
        await self._deps.traces.save(trace)
        tracer.commit(trace)
        return {"status": status, "result": result}
