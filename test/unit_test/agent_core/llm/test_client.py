from __future__ import annotations

import logging
from typing import AsyncIterator, List, Sequence, Union

import pytest

from relayworks_ai.agent_core.llm import (
    ChatMessage,
    ErrorEvent,
    FinishEvent,
    LLMClient,
    LLMUsageEvent,
    ModelCall,
    ModelTurn,
    PydanticAITransport,
    StepAction,
    StepCompleteEvent,
    StopReason,
    TextDeltaEvent,
    ToolCall,
    ToolInputAvailableEvent,
    ToolInputStartEvent,
    ToolOutputAvailableEvent,
    ToolSpec,
    TurnComplete,
    TurnTextDelta,
    TurnToolCallStart,
)
from relayworks_ai.agent_core.schemas.domain import ModelTier
from relayworks_ai.core.config import LLMConfig
from relayworks_ai.core.errors import LLMError


class _ScriptedTransport:
    """Replays one scripted turn (or exception) per model call."""

    def __init__(self, turns: Sequence[Union[ModelTurn, Exception]]) -> None:
        self._turns = list(turns)
        self.calls: List[ModelCall] = []

    def _next(self, call: ModelCall) -> ModelTurn:
        self.calls.append(call)
        turn = self._turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn

    async def complete(self, call: ModelCall) -> ModelTurn:
        return self._next(call)

    async def stream(self, call: ModelCall) -> AsyncIterator:
        turn = self._next(call)
        if turn.text:
            half = len(turn.text) // 2
            yield TurnTextDelta(delta=turn.text[:half])
            yield TurnTextDelta(delta=turn.text[half:])
        for tc in turn.tool_calls:
            yield TurnToolCallStart(tool_call_id=tc.id, tool_name=tc.name)
        yield TurnComplete(turn=turn)


def _config() -> LLMConfig:
    return LLMConfig(
        fast_model="anthropic:claude-3-haiku-20240307",
        smart_model="anthropic:claude-3-5-sonnet-20241022",
        deep_model="anthropic:claude-opus-4-5-20251101",
        default_temperature=0.3,
        default_max_tokens=1024,
        default_max_steps=5,
    )


def _tool_turn(*names: str, tokens: int = 10) -> ModelTurn:
    calls = tuple(ToolCall(id=f"call_{i}", name=n, input={"q": n}) for i, n in enumerate(names))
    return ModelTurn(text="", tool_calls=calls, input_tokens=tokens, output_tokens=tokens)


@pytest.mark.asyncio
async def test_chat_without_tools_returns_end_turn() -> None:
    transport = _ScriptedTransport([ModelTurn(text="Hello!", input_tokens=1000, output_tokens=500)])
    client = LLMClient(transport, config=_config())

    result = await client.chat([ChatMessage.user("hi")], system_prompt="be nice", tier=ModelTier.fast)

    assert result.content == "Hello!"
    assert result.stop_reason is StopReason.end_turn
    assert result.model == "anthropic:claude-3-haiku-20240307"
    assert result.tokens_in == 1000 and result.tokens_out == 500
    # fast tier: 0.25 / 1.25 USD per million tokens
    assert result.cost == pytest.approx((1000 * 0.25 + 500 * 1.25) / 1_000_000)
    assert len(result.events) == 1
    assert result.events[0].action is StepAction.final_response
    call = transport.calls[0]
    assert call.system_prompt == "be nice"
    assert call.temperature == 0.3
    assert call.max_tokens == 1024


@pytest.mark.asyncio
async def test_chat_runs_tools_in_request_order_and_feeds_results_back() -> None:
    transport = _ScriptedTransport([_tool_turn("search", "lookup"), ModelTurn(text="done", input_tokens=5, output_tokens=5)])
    client = LLMClient(transport, config=_config())
    seen: List[str] = []

    async def handler(call: ToolCall) -> dict:
        seen.append(call.name)
        return {"tool": call.name}

    result = await client.chat(
        [ChatMessage.user("find it")],
        tools=[ToolSpec(name="search"), ToolSpec(name="lookup")],
        tool_handler=handler,
    )

    assert seen == ["search", "lookup"]
    assert result.content == "done"
    assert [tc.name for tc in result.tool_calls] == ["search", "lookup"]
    assert [e.action for e in result.events] == [StepAction.tool_use, StepAction.final_response]
    assert result.events[0].tool_name == "search"

    second_call = transport.calls[1]
    tool_message = second_call.messages[-1]
    assert [r.content for r in tool_message.tool_results] == ['{"tool": "search"}', '{"tool": "lookup"}']
    assert second_call.messages[-2].tool_calls[0].name == "search"


@pytest.mark.asyncio
async def test_tool_handler_errors_become_error_results() -> None:
    transport = _ScriptedTransport([_tool_turn("broken"), ModelTurn(text="recovered")])
    client = LLMClient(transport, config=_config())

    async def handler(call: ToolCall) -> str:
        raise RuntimeError("backend down")

    result = await client.chat([ChatMessage.user("go")], tools=[ToolSpec(name="broken")], tool_handler=handler)

    assert result.content == "recovered"
    tool_result = transport.calls[1].messages[-1].tool_results[0]
    assert tool_result.is_error is True
    assert tool_result.content == "Error: backend down"


@pytest.mark.asyncio
async def test_tool_failures_are_logged_as_tool_errors(caplog: pytest.LogCaptureFixture) -> None:
    transport = _ScriptedTransport([_tool_turn("crm_lookup"), ModelTurn(text="done")])
    client = LLMClient(transport, config=_config())

    async def handler(call: ToolCall) -> str:
        raise TimeoutError("crm timed out")

    with caplog.at_level(logging.WARNING, logger="relayworks_ai.agent_core.llm.client"):
        await client.chat([ChatMessage.user("go")], tools=[ToolSpec(name="crm_lookup")], tool_handler=handler)

    record = next(r for r in caplog.records if "call_0" in r.getMessage())
    assert "ToolExecutionError" in record.getMessage()
    assert "'tool_name': 'crm_lookup'" in record.getMessage()
    assert transport.calls[1].messages[-1].tool_results[0].content == "Error: crm timed out"


@pytest.mark.asyncio
async def test_max_steps_stops_the_loop() -> None:
    transport = _ScriptedTransport([_tool_turn("a"), _tool_turn("b")])
    client = LLMClient(transport, config=_config())

    async def handler(call: ToolCall) -> str:
        return "ok"

    result = await client.chat([ChatMessage.user("go")], tools=[ToolSpec(name="a")], tool_handler=handler, max_steps=2)

    assert result.stop_reason is StopReason.max_steps
    assert result.content == "Max steps exceeded"
    assert len(result.events) == 2


@pytest.mark.asyncio
async def test_tool_calls_without_handler_raise() -> None:
    client = LLMClient(_ScriptedTransport([_tool_turn("a")]), config=_config())
    with pytest.raises(LLMError) as exc_info:
        await client.chat([ChatMessage.user("go")], tools=[ToolSpec(name="a")])
    assert exc_info.value.code == "llm_tool_handler_missing"


@pytest.mark.asyncio
async def test_provider_failures_are_wrapped_with_retryability() -> None:
    class _Overloaded(Exception):
        status_code = 529

    client = LLMClient(_ScriptedTransport([_Overloaded("overloaded")]), config=_config())
    with pytest.raises(LLMError) as exc_info:
        await client.chat([ChatMessage.user("hi")])
    assert exc_info.value.is_retryable is True
    assert exc_info.value.provider == "anthropic"


@pytest.mark.asyncio
async def test_step_callback_receives_each_event_with_ids() -> None:
    transport = _ScriptedTransport([_tool_turn("a"), ModelTurn(text="ok")])
    client = LLMClient(transport, config=_config())
    received: List[LLMUsageEvent] = []

    async def handler(call: ToolCall) -> str:
        return "ok"

    await client.chat(
        [ChatMessage.user("go")],
        tools=[ToolSpec(name="a")],
        tool_handler=handler,
        on_step_complete=received.append,
        agent_id="agent-1",
        user_id="user-1",
    )

    assert [e.step_number for e in received] == [1, 2]
    assert all(e.agent_id == "agent-1" and e.user_id == "user-1" for e in received)


@pytest.mark.asyncio
async def test_chat_stream_event_order() -> None:
    transport = _ScriptedTransport([_tool_turn("search"), ModelTurn(text="final answer", input_tokens=3, output_tokens=4)])
    client = LLMClient(transport, config=_config())

    async def handler(call: ToolCall) -> str:
        return "found"

    events = [
        e
        async for e in client.chat_stream(
            [ChatMessage.user("go")], tools=[ToolSpec(name="search")], tool_handler=handler
        )
    ]
    kinds = [type(e) for e in events]

    assert kinds == [
        ToolInputStartEvent,
        ToolInputAvailableEvent,
        StepCompleteEvent,
        ToolOutputAvailableEvent,
        TextDeltaEvent,
        TextDeltaEvent,
        StepCompleteEvent,
        FinishEvent,
    ]
    assert "".join(e.delta for e in events if isinstance(e, TextDeltaEvent)) == "final answer"
    finish = events[-1]
    assert finish.stop_reason is StopReason.end_turn
    assert finish.tokens_in == 13 and finish.tokens_out == 14


@pytest.mark.asyncio
async def test_chat_stream_stops_at_max_steps() -> None:
    transport = _ScriptedTransport([_tool_turn("a"), _tool_turn("b"), _tool_turn("c")])
    client = LLMClient(transport, config=_config())

    async def handler(call: ToolCall) -> str:
        return "ok"

    events = [
        e
        async for e in client.chat_stream(
            [ChatMessage.user("go")], tools=[ToolSpec(name="a")], tool_handler=handler, max_steps=2
        )
    ]

    assert len(transport.calls) == 2
    assert sum(isinstance(e, StepCompleteEvent) for e in events) == 2
    assert sum(isinstance(e, ToolOutputAvailableEvent) for e in events) == 2
    finish = events[-1]
    assert isinstance(finish, FinishEvent)
    assert finish.stop_reason is StopReason.max_steps
    assert finish.tokens_in == 20 and finish.tokens_out == 20


@pytest.mark.asyncio
async def test_chat_stream_yields_error_then_raises() -> None:
    client = LLMClient(_ScriptedTransport([LLMError.rate_limited("anthropic")]), config=_config())
    events = []
    with pytest.raises(LLMError):
        async for event in client.chat_stream([ChatMessage.user("hi")]):
            events.append(event)
    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].retryable is True
    assert events[-1].code == "llm_rate_limited"


@pytest.mark.asyncio
async def test_pydantic_ai_transport_with_test_model() -> None:
    turn = await PydanticAITransport().complete(ModelCall(model="test", messages=[ChatMessage.user("hello")]))
    assert turn.text
    assert turn.tool_calls == ()


def test_pydantic_ai_response_usage_becomes_turn_tokens() -> None:
    from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart
    from pydantic_ai.usage import RequestUsage

    response = ModelResponse(
        parts=[TextPart(content="Looking it up"), ToolCallPart(tool_name="search", args={"q": "ana"}, tool_call_id="c1")],
        usage=RequestUsage(input_tokens=120, output_tokens=30),
        model_name=None,
    )

    turn = PydanticAITransport._to_turn(response, "anthropic:claude-3-haiku-20240307")

    assert turn.input_tokens == 120
    assert turn.output_tokens == 30
    assert turn.model_name == "anthropic:claude-3-haiku-20240307"
    assert turn.tool_calls == (ToolCall(id="c1", name="search", input={"q": "ana"}),)
