"""Model transport abstraction and the Pydantic AI adapter.

The LLM client owns the tool-calling loop, usage accounting and streaming
semantics; a *transport* only performs a single model request. Keeping that
seam narrow lets the loop be exercised with scripted transports in tests and
lets production code reach any provider supported by Pydantic AI.

Usage
-----

    transport = PydanticAITransport()
    turn = await transport.complete(ModelCall(model="anthropic:claude-3-haiku-20240307", messages=[...]))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Optional, Protocol, Sequence, Tuple, Union

from pydantic_ai.direct import model_request, model_request_stream
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    PartDeltaEvent,
    PartStartEvent,
    SystemPromptPart,
    TextPart,
    TextPartDelta,
    ThinkingPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.settings import ModelSettings
from pydantic_ai.tools import ToolDefinition

from relayworks_ai.core.errors import LLMError

from .models import ChatMessage, ChatRole, ToolCall, ToolSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelCall:
    """Everything a transport needs to perform one model request."""

    model: str
    messages: Sequence[ChatMessage]
    system_prompt: Optional[str] = None
    tools: Sequence[ToolSpec] = ()
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class ModelTurn:
    """Normalized response of one model request."""

    text: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    thinking: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    model_name: Optional[str] = None


@dataclass(frozen=True)
class TurnTextDelta:
    delta: str


@dataclass(frozen=True)
class TurnToolCallStart:
    tool_call_id: str
    tool_name: str


@dataclass(frozen=True)
class TurnComplete:
    turn: ModelTurn = field(default_factory=ModelTurn)


TurnChunk = Union[TurnTextDelta, TurnToolCallStart, TurnComplete]


class ModelTransport(Protocol):
    """Perform single model requests, either whole or streamed."""

    async def complete(self, call: ModelCall) -> ModelTurn:
        """Return the full response of one request."""
        ...

    def stream(self, call: ModelCall) -> AsyncIterator[TurnChunk]:
        """Yield text deltas and tool-call starts, then exactly one ``TurnComplete``."""
        ...


def provider_of(model: str) -> str:
    return model.split(":", 1)[0] if ":" in model else "unknown"


class PydanticAITransport:
    """``ModelTransport`` backed by ``pydantic_ai.direct``.

    Pydantic AI resolves ``provider:model`` identifiers (e.g.
    ``anthropic:claude-3-5-sonnet-20241022``) to a concrete model client and
    reads credentials such as ``ANTHROPIC_API_KEY`` from the environment.
    """

    async def complete(self, call: ModelCall) -> ModelTurn:
        try:
            response = await model_request(
                call.model,
                self._to_messages(call),
                model_settings=self._settings(call),
                model_request_parameters=self._parameters(call),
            )
        except ModelHTTPError as exc:
            raise LLMError.from_status(
                exc.status_code, str(exc), provider=provider_of(call.model), model=call.model
            ) from exc
        except LLMError:
            raise
        except Exception as exc:
            raise LLMError.from_exception(exc, provider=provider_of(call.model), model=call.model) from exc
        return self._to_turn(response, call.model)

    async def stream(self, call: ModelCall) -> AsyncIterator[TurnChunk]:
        try:
            async with model_request_stream(
                call.model,
                self._to_messages(call),
                model_settings=self._settings(call),
                model_request_parameters=self._parameters(call),
            ) as streamed:
                async for event in streamed:
                    if isinstance(event, PartStartEvent):
                        if isinstance(event.part, TextPart) and event.part.content:
                            yield TurnTextDelta(delta=event.part.content)
                        elif isinstance(event.part, ToolCallPart):
                            yield TurnToolCallStart(
                                tool_call_id=event.part.tool_call_id, tool_name=event.part.tool_name
                            )
                    elif isinstance(event, PartDeltaEvent) and isinstance(event.delta, TextPartDelta):
                        if event.delta.content_delta:
                            yield TurnTextDelta(delta=event.delta.content_delta)
                response = streamed.get()
        except ModelHTTPError as exc:
            raise LLMError.from_status(
                exc.status_code, str(exc), provider=provider_of(call.model), model=call.model
            ) from exc
        except LLMError:
            raise
        except Exception as exc:
            raise LLMError.from_exception(exc, provider=provider_of(call.model), model=call.model) from exc
        yield TurnComplete(turn=self._to_turn(response, call.model))

    @staticmethod
    def _settings(call: ModelCall) -> ModelSettings:
        settings: ModelSettings = {}
        if call.temperature is not None:
            settings["temperature"] = call.temperature
        if call.max_tokens is not None:
            settings["max_tokens"] = call.max_tokens
        return settings

    @staticmethod
    def _parameters(call: ModelCall) -> ModelRequestParameters:
        return ModelRequestParameters(
            function_tools=[
                ToolDefinition(name=t.name, description=t.description, parameters_json_schema=t.input_schema)
                for t in call.tools
            ]
        )

    @staticmethod
    def _to_messages(call: ModelCall) -> List[ModelMessage]:
        messages: List[ModelMessage] = []
        pending_system = call.system_prompt
        for msg in call.messages:
            if msg.role == ChatRole.assistant:
                parts: List[Any] = []
                if msg.content:
                    parts.append(TextPart(content=msg.content))
                for tc in msg.tool_calls:
                    parts.append(ToolCallPart(tool_name=tc.name, args=dict(tc.input), tool_call_id=tc.id))
                messages.append(ModelResponse(parts=parts))
                continue

            request_parts: List[Any] = []
            if pending_system:
                request_parts.append(SystemPromptPart(content=pending_system))
                pending_system = None
            for tr in msg.tool_results:
                request_parts.append(
                    ToolReturnPart(tool_name=tr.tool_name, content=tr.content, tool_call_id=tr.tool_call_id)
                )
            if msg.content:
                request_parts.append(UserPromptPart(content=msg.content))
            messages.append(ModelRequest(parts=request_parts))
        return messages

    @staticmethod
    def _to_turn(response: ModelResponse, requested_model: str) -> ModelTurn:
        text: List[str] = []
        thinking: List[str] = []
        tool_calls: List[ToolCall] = []
        for part in response.parts:
            if isinstance(part, TextPart):
                text.append(part.content)
            elif isinstance(part, ThinkingPart):
                thinking.append(part.content)
            elif isinstance(part, ToolCallPart):
                tool_calls.append(ToolCall(id=part.tool_call_id, name=part.tool_name, input=part.args_as_dict()))

        usage = response.usage
        return ModelTurn(
            text="".join(text),
            tool_calls=tuple(tool_calls),
            thinking="".join(thinking),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            model_name=response.model_name or requested_model,
        )
