"""Tiered LLM client with an automatic tool-calling loop.

``LLMClient`` turns a conversation plus optional tools into a final answer:

1. Call the model with the current history.
2. If the response contains only text, stop with ``stop_reason="end_turn"``.
3. Otherwise dispatch every requested tool, in request order, to the
   caller-supplied handler, append the results as the next turn and loop.
4. Stop with ``stop_reason="max_steps"`` once ``max_steps`` model calls have
   been made without a terminal response.

Every model call produces one ``LLMUsageEvent`` (model, tier, tokens, cost,
latency, step number, action). Tool handler failures never escape the loop:
they become ``"Error: <message>"`` tool results flagged ``is_error`` so the
model can react. Provider failures propagate as ``LLMError`` with
``is_retryable`` set from the HTTP status.

``chat_stream`` runs the same loop and yields semantic events instead of
returning a single result.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Union

from relayworks_ai.core.config import LLMConfig, settings
from relayworks_ai.core.errors import LLMError, ToolExecutionError
from relayworks_ai.core.monitoring import log_llm_call

from ..schemas.domain import ModelTier
from .models import (
    ChatMessage,
    ChatResult,
    ChatRole,
    ErrorEvent,
    FinishEvent,
    LLMUsageEvent,
    StepAction,
    StepCompleteEvent,
    StopReason,
    StreamEvent,
    TextDeltaEvent,
    ToolCall,
    ToolInputAvailableEvent,
    ToolInputStartEvent,
    ToolOutputAvailableEvent,
    ToolResult,
    ToolSpec,
)
from .tiers import calculate_cost, get_model_for_tier
from .transport import (
    ModelCall,
    ModelTransport,
    ModelTurn,
    PydanticAITransport,
    TurnComplete,
    TurnTextDelta,
    TurnToolCallStart,
    provider_of,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[ToolCall], Awaitable[Any]]
StepCallback = Callable[[LLMUsageEvent], Union[None, Awaitable[None]]]

MAX_STEPS_EXCEEDED = "Max steps exceeded"


def classify_step(turn: ModelTurn) -> StepAction:
    """Classify a model turn for usage accounting."""
    if turn.tool_calls:
        return StepAction.tool_use
    if not turn.text and turn.thinking:
        return StepAction.thinking
    return StepAction.final_response


def _tool_content(result: Any) -> str:
    if isinstance(result, ToolResult):
        return result.content
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class LLMClient:
    """Execute tiered chat completions with tool calling and usage accounting.

    The client is stateless between calls and safe to share across
    concurrent runs; construct it once at process start and inject it.
    """

    def __init__(
        self,
        transport: Optional[ModelTransport] = None,
        *,
        config: Optional[LLMConfig] = None,
    ) -> None:
        self._transport: ModelTransport = transport or PydanticAITransport()
        self._config = config or settings.llm

    def model_for(self, tier: Union[ModelTier, str]) -> str:
        return get_model_for_tier(tier, self._config)

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        system_prompt: Optional[str] = None,
        tools: Sequence[ToolSpec] = (),
        tier: Union[ModelTier, str] = ModelTier.smart,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_steps: Optional[int] = None,
        tool_handler: Optional[ToolHandler] = None,
        on_step_complete: Optional[StepCallback] = None,
        agent_id: Optional[str] = None,
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> ChatResult:
        """Run the tool-calling loop to completion.

        Args:
            messages: Conversation history, oldest first.
            system_prompt: Optional system instructions.
            tools: Tools the model may call.
            tier: Model tier selecting the concrete model identifier.
            temperature: Sampling temperature (defaults from settings).
            max_tokens: Completion token limit (defaults from settings).
            max_steps: Maximum number of model calls (defaults from settings).
            tool_handler: Async callable executing one ``ToolCall``.
            on_step_complete: Sync or async callback receiving each usage event.

        Returns:
            ChatResult with the final content, stop reason and usage events.

        Raises:
            LLMError: The provider failed, or tools were requested without a handler.
        """
        tier = ModelTier(tier)
        model = self.model_for(tier)
        steps = self._max_steps(max_steps)
        history: List[ChatMessage] = list(messages)
        events: List[LLMUsageEvent] = []
        executed: List[ToolCall] = []
        final_content = ""

        for step_number in range(1, steps + 1):
            call = self._build_call(model, history, system_prompt, tools, temperature, max_tokens)
            started = time.perf_counter()
            turn = await self._complete(call)
            event = self._usage_event(
                turn, model, tier, started, step_number, agent_id=agent_id, user_id=user_id, conversation_id=conversation_id
            )
            events.append(event)
            await self._notify(on_step_complete, event)
            final_content = turn.text

            if not turn.tool_calls:
                return self._result(final_content, StopReason.end_turn, model, events, executed)

            self._require_handler(tool_handler, model)
            history.append(ChatMessage(role=ChatRole.assistant, content=turn.text, tool_calls=list(turn.tool_calls)))
            results: List[ToolResult] = []
            for tool_call in turn.tool_calls:
                results.append(await self._run_tool(tool_handler, tool_call))
                executed.append(tool_call)
            history.append(ChatMessage(role=ChatRole.user, tool_results=results))

        logger.info(f"Tool-calling loop reached max_steps={steps} for model {model}")
        return self._result(final_content or MAX_STEPS_EXCEEDED, StopReason.max_steps, model, events, executed)

    async def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        *,
        system_prompt: Optional[str] = None,
        tools: Sequence[ToolSpec] = (),
        tier: Union[ModelTier, str] = ModelTier.smart,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_steps: Optional[int] = None,
        tool_handler: Optional[ToolHandler] = None,
        on_step_complete: Optional[StepCallback] = None,
        agent_id: Optional[str] = None,
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run the tool-calling loop, yielding semantic events in generation order.

        Per step the order is: text deltas and ``tool-input-start`` events as
        they stream, one ``tool-input-available`` per requested tool, one
        ``step-complete``, then one ``tool-output-available`` per tool. The
        stream ends with ``finish``; a provider failure yields ``error`` and
        raises the ``LLMError``.
        """
        tier = ModelTier(tier)
        model = self.model_for(tier)
        steps = self._max_steps(max_steps)
        history: List[ChatMessage] = list(messages)
        total_in = 0
        total_out = 0

        try:
            for step_number in range(1, steps + 1):
                call = self._build_call(model, history, system_prompt, tools, temperature, max_tokens)
                started = time.perf_counter()
                turn: Optional[ModelTurn] = None
                announced: set[str] = set()

                async for chunk in self._transport.stream(call):
                    if isinstance(chunk, TurnTextDelta):
                        yield TextDeltaEvent(delta=chunk.delta)
                    elif isinstance(chunk, TurnToolCallStart):
                        announced.add(chunk.tool_call_id)
                        yield ToolInputStartEvent(tool_call_id=chunk.tool_call_id, tool_name=chunk.tool_name)
                    elif isinstance(chunk, TurnComplete):
                        turn = chunk.turn
                if turn is None:
                    raise LLMError(
                        "Stream ended without a final response",
                        provider=provider_of(model),
                        model=model,
                        code="llm_stream_incomplete",
                        is_retryable=True,
                    )

                for tool_call in turn.tool_calls:
                    if tool_call.id not in announced:
                        yield ToolInputStartEvent(tool_call_id=tool_call.id, tool_name=tool_call.name)
                    yield ToolInputAvailableEvent(tool_call_id=tool_call.id, tool_name=tool_call.name, input=tool_call.input)

                event = self._usage_event(
                    turn, model, tier, started, step_number, agent_id=agent_id, user_id=user_id, conversation_id=conversation_id
                )
                total_in += event.tokens_in
                total_out += event.tokens_out
                yield StepCompleteEvent(event=event)
                await self._notify(on_step_complete, event)

                if not turn.tool_calls:
                    yield FinishEvent(stop_reason=StopReason.end_turn, tokens_in=total_in, tokens_out=total_out)
                    return

                self._require_handler(tool_handler, model)
                history.append(ChatMessage(role=ChatRole.assistant, content=turn.text, tool_calls=list(turn.tool_calls)))
                results: List[ToolResult] = []
                for tool_call in turn.tool_calls:
                    result = await self._run_tool(tool_handler, tool_call)
                    results.append(result)
                    yield ToolOutputAvailableEvent(
                        tool_call_id=tool_call.id, output=result.content, is_error=result.is_error
                    )
                history.append(ChatMessage(role=ChatRole.user, tool_results=results))
        except LLMError as exc:
            yield ErrorEvent(message=exc.message, code=exc.code, retryable=exc.is_retryable)
            raise
        except Exception as exc:
            err = LLMError.from_exception(exc, provider=provider_of(model), model=model)
            yield ErrorEvent(message=err.message, code=err.code, retryable=err.is_retryable)
            raise err from exc

        yield FinishEvent(stop_reason=StopReason.max_steps, tokens_in=total_in, tokens_out=total_out)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _max_steps(self, max_steps: Optional[int]) -> int:
        steps = self._config.default_max_steps if max_steps is None else max_steps
        if steps < 1:
            raise ValueError("max_steps must be >= 1")
        return steps

    def _build_call(
        self,
        model: str,
        history: Sequence[ChatMessage],
        system_prompt: Optional[str],
        tools: Sequence[ToolSpec],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> ModelCall:
        return ModelCall(
            model=model,
            messages=tuple(history),
            system_prompt=system_prompt,
            tools=tuple(tools),
            temperature=self._config.default_temperature if temperature is None else temperature,
            max_tokens=self._config.default_max_tokens if max_tokens is None else max_tokens,
        )

    async def _complete(self, call: ModelCall) -> ModelTurn:
        try:
            return await self._transport.complete(call)
        except LLMError:
            raise
        except Exception as exc:
            raise LLMError.from_exception(exc, provider=provider_of(call.model), model=call.model) from exc

    @staticmethod
    def _require_handler(tool_handler: Optional[ToolHandler], model: str) -> None:
        if tool_handler is None:
            raise LLMError(
                "Tool calls requested but no tool handler provided",
                provider=provider_of(model),
                model=model,
                code="llm_tool_handler_missing",
            )

    @staticmethod
    async def _run_tool(tool_handler: ToolHandler, tool_call: ToolCall) -> ToolResult:
        try:
            result = await tool_handler(tool_call)
        except Exception as exc:
            err = exc if isinstance(exc, ToolExecutionError) else ToolExecutionError(tool_call.name, str(exc))
            logger.warning(f"Tool call {tool_call.id} failed: {err.to_log_object()}")
            return ToolResult(
                tool_call_id=tool_call.id, tool_name=tool_call.name, content=f"Error: {exc}", is_error=True
            )
        if isinstance(result, ToolResult):
            return result
        return ToolResult(tool_call_id=tool_call.id, tool_name=tool_call.name, content=_tool_content(result))

    @staticmethod
    async def _notify(callback: Optional[StepCallback], event: LLMUsageEvent) -> None:
        if callback is None:
            return
        maybe = callback(event)
        if inspect.isawaitable(maybe):
            await maybe

    @staticmethod
    def _usage_event(
        turn: ModelTurn,
        model: str,
        tier: ModelTier,
        started: float,
        step_number: int,
        **ids: Optional[str],
    ) -> LLMUsageEvent:
        latency_ms = (time.perf_counter() - started) * 1000.0
        event = LLMUsageEvent(
            model=model,
            tier=tier,
            tokens_in=turn.input_tokens,
            tokens_out=turn.output_tokens,
            cost=calculate_cost(tier, turn.input_tokens, turn.output_tokens),
            latency_ms=latency_ms,
            step_number=step_number,
            action=classify_step(turn),
            tool_name=turn.tool_calls[0].name if turn.tool_calls else None,
            **ids,
        )
        logger.debug(
            f"LLM step {step_number} model={model} action={event.action.value} "
            f"tokens_in={event.tokens_in} tokens_out={event.tokens_out} cost={event.cost:.6f}"
        )
        log_llm_call(model, event.tokens_in + event.tokens_out, event.cost, step_number)
        return event

    @staticmethod
    def _result(
        content: str,
        stop_reason: StopReason,
        model: str,
        events: List[LLMUsageEvent],
        executed: List[ToolCall],
    ) -> ChatResult:
        return ChatResult(
            content=content,
            stop_reason=stop_reason,
            model=model,
            tokens_in=sum(e.tokens_in for e in events),
            tokens_out=sum(e.tokens_out for e in events),
            cost=sum(e.cost for e in events),
            tool_calls=list(executed),
            events=list(events),
        )
