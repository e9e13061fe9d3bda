"""In-process aggregation of LLM usage events.

``UsageLedger`` collects ``LLMUsageEvent`` objects (typically wired as the
``on_step_complete`` callback of ``LLMClient`` or through the engine's cost
tracking hook) and summarizes cost per tier and per agent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..schemas.domain import ModelTier
from .models import LLMUsageEvent

logger = logging.getLogger(__name__)


@dataclass
class CostSummary:
    total_cost: float = 0.0
    total_tokens_in: int = 0
    total_tokens_out: int = 0
    calls: int = 0
    average_latency_ms: float = 0.0
    by_tier: Dict[ModelTier, float] = field(default_factory=dict)


class UsageLedger:
    def __init__(self) -> None:
        self._events: List[LLMUsageEvent] = []

    def record(self, event: LLMUsageEvent) -> None:
        self._events.append(event)
        logger.debug(
            f"Recorded usage: model={event.model} step={event.step_number} "
            f"action={event.action.value} cost={event.cost:.6f}"
        )

    @property
    def events(self) -> List[LLMUsageEvent]:
        return list(self._events)

    def summary(self, *, agent_id: Optional[str] = None, user_id: Optional[str] = None) -> CostSummary:
        """Summarize recorded events, optionally filtered by agent or user."""
        events = [
            e
            for e in self._events
            if (agent_id is None or e.agent_id == agent_id) and (user_id is None or e.user_id == user_id)
        ]
        summary = CostSummary()
        for e in events:
            summary.total_cost += e.cost
            summary.total_tokens_in += e.tokens_in
            summary.total_tokens_out += e.tokens_out
            summary.by_tier[e.tier] = summary.by_tier.get(e.tier, 0.0) + e.cost
        summary.calls = len(events)
        if events:
            summary.average_latency_ms = sum(e.latency_ms for e in events) / len(events)
        return summary
