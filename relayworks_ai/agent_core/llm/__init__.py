"""Tiered LLM access: model tiers and pricing, the tool-calling client and usage accounting."""

from .client import LLMClient, ToolHandler, classify_step
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
from .tiers import TIER_PRICING, calculate_cost, get_model_for_tier, tier_from_model
from .transport import ModelCall, ModelTransport, ModelTurn, PydanticAITransport, TurnComplete, TurnTextDelta, TurnToolCallStart
from .usage import CostSummary, UsageLedger

__all__ = [
    "ChatMessage",
    "ChatResult",
    "ChatRole",
    "CostSummary",
    "ErrorEvent",
    "FinishEvent",
    "LLMClient",
    "LLMUsageEvent",
    "ModelCall",
    "ModelTransport",
    "ModelTurn",
    "PydanticAITransport",
    "StepAction",
    "StepCompleteEvent",
    "StopReason",
    "StreamEvent",
    "TIER_PRICING",
    "TextDeltaEvent",
    "ToolCall",
    "ToolHandler",
    "ToolInputAvailableEvent",
    "ToolInputStartEvent",
    "ToolOutputAvailableEvent",
    "ToolResult",
    "ToolSpec",
    "TurnComplete",
    "TurnTextDelta",
    "TurnToolCallStart",
    "UsageLedger",
    "calculate_cost",
    "classify_step",
    "get_model_for_tier",
    "tier_from_model",
]
