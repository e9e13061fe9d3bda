"""Message, tool, usage and stream-event models for the LLM client."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import ModelTier


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatRole(str, Enum):
    user = "user"
    assistant = "assistant"


class StepAction(str, Enum):
    """Classification of one model step in the tool-calling loop."""

    thinking = "thinking"
    tool_use = "tool_use"
    final_response = "final_response"


class StopReason(str, Enum):
    end_turn = "end_turn"
    max_steps = "max_steps"


class ToolSpec(BaseSchema):
    """A tool offered to the model; ``input_schema`` is a JSON schema object."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolCall(BaseSchema):
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseSchema):
    tool_call_id: str
    tool_name: str
    content: str
    is_error: bool = False


class ChatMessage(BaseSchema):
    """One turn of conversation history.

    User turns carry either text ``content`` or ``tool_results`` answering the
    previous assistant turn; assistant turns carry text and/or ``tool_calls``.
    """

    role: ChatRole
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.user, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.assistant, content=content)


class LLMUsageEvent(BaseSchema):
    """Usage and cost of one step of the tool-calling loop."""

    model: str
    tier: ModelTier
    tokens_in: int
    tokens_out: int
    cost: float
    latency_ms: float
    step_number: int
    action: StepAction
    tool_name: Optional[str] = None
    agent_id: Optional[str] = None
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)


class ChatResult(BaseSchema):
    content: str
    stop_reason: StopReason
    model: str
    tokens_in: int = 0
    tokens_out: int = 0
    cost: float = 0.0
    tool_calls: List[ToolCall] = Field(default_factory=list)
    events: List[LLMUsageEvent] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Streaming events
# ---------------------------------------------------------------------------


class TextDeltaEvent(BaseSchema):
    type: Literal["text-delta"] = "text-delta"
    delta: str


class ToolInputStartEvent(BaseSchema):
    type: Literal["tool-input-start"] = "tool-input-start"
    tool_call_id: str
    tool_name: str


class ToolInputAvailableEvent(BaseSchema):
    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolOutputAvailableEvent(BaseSchema):
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str
    output: str
    is_error: bool = False


class StepCompleteEvent(BaseSchema):
    type: Literal["step-complete"] = "step-complete"
    event: LLMUsageEvent


class FinishEvent(BaseSchema):
    type: Literal["finish"] = "finish"
    stop_reason: StopReason
    tokens_in: int = 0
    tokens_out: int = 0


class ErrorEvent(BaseSchema):
    type: Literal["error"] = "error"
    message: str
    code: str
    retryable: bool = False


StreamEvent = Union[
    TextDeltaEvent,
    ToolInputStartEvent,
    ToolInputAvailableEvent,
    ToolOutputAvailableEvent,
    StepCompleteEvent,
    FinishEvent,
    ErrorEvent,
]
