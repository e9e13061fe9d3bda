"""Lifecycle hooks for ``AgentEngine``.

Three ordered registries: ``before`` hooks receive the context, ``after``
hooks receive the context and the result, ``on_error`` hooks receive the
context and the exception. Hooks may be sync or async and run in
registration order. A hook exception is not caught here.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Union

from relayworks_ai.core.monitoring import log_error

from ..llm.models import LLMUsageEvent, StepAction
from ..llm.tiers import tier_from_model
from ..llm.usage import UsageLedger
from ..schemas.domain import ExecutionContext, ExecutionResult

logger = logging.getLogger(__name__)

BeforeHook = Callable[[ExecutionContext], Union[None, Awaitable[None]]]
AfterHook = Callable[[ExecutionContext, ExecutionResult], Union[None, Awaitable[None]]]
ErrorHook = Callable[[ExecutionContext, BaseException], Union[None, Awaitable[None]]]


async def _call(hook: Callable[..., Any], *args: Any) -> None:
    maybe = hook(*args)
    if inspect.isawaitable(maybe):
        await maybe


class HookRegistry:
    def __init__(self) -> None:
        self.before: List[BeforeHook] = []
        self.after: List[AfterHook] = []
        self.on_error: List[ErrorHook] = []

    async def run_before(self, context: ExecutionContext) -> None:
        for hook in self.before:
            await _call(hook, context)

    async def run_after(self, context: ExecutionContext, result: ExecutionResult) -> None:
        for hook in self.after:
            await _call(hook, context, result)

    async def run_error(self, context: ExecutionContext, error: BaseException) -> None:
        for hook in self.on_error:
            await _call(hook, context, error)


async def logging_hook(context: ExecutionContext, result: ExecutionResult) -> None:
    """Log the outcome of a run."""
    logger.info(
        f"Agent {context.agent_id} run {result.run_id} finished: status={result.status.value} "
        f"cost=${result.llm_usage.cost:.4f} latency={result.llm_usage.latency_ms:.0f}ms"
    )


def cost_tracking_hook(ledger: UsageLedger) -> AfterHook:
    """Build an after hook that records each run's LLM usage in ``ledger``."""

    async def _track(context: ExecutionContext, result: ExecutionResult) -> None:
        usage = result.llm_usage
        ledger.record(
            LLMUsageEvent(
                model=usage.model,
                tier=tier_from_model(usage.model),
                tokens_in=usage.tokens_in,
                tokens_out=usage.tokens_out,
                cost=usage.cost,
                latency_ms=usage.latency_ms,
                step_number=1,
                action=StepAction.final_response,
                agent_id=context.agent_id,
                user_id=context.user_id,
            )
        )

    return _track


async def error_logging_hook(context: ExecutionContext, error: BaseException) -> None:
    logger.error(f"Agent {context.agent_id} failed for user {context.user_id}: {error}")
    log_error(type(error).__name__, str(error), {"agent_id": context.agent_id, "workspace_id": context.workspace_id})
