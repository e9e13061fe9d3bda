from __future__ import annotations

import pytest

from relayworks_ai.agent_core.llm import (
    LLMUsageEvent,
    StepAction,
    UsageLedger,
    calculate_cost,
    get_model_for_tier,
    tier_from_model,
)
from relayworks_ai.agent_core.schemas.domain import ModelTier
from relayworks_ai.core.config import LLMConfig


@pytest.fixture
def llm_config() -> LLMConfig:
    return LLMConfig(
        fast_model="anthropic:claude-3-haiku-20240307",
        smart_model="anthropic:claude-3-5-sonnet-20241022",
        deep_model="anthropic:claude-opus-4-5-20251101",
    )


def test_tier_resolution(llm_config: LLMConfig) -> None:
    assert get_model_for_tier("fast", llm_config) == "anthropic:claude-3-haiku-20240307"
    assert get_model_for_tier(ModelTier.deep, llm_config) == "anthropic:claude-opus-4-5-20251101"


@pytest.mark.parametrize(
    "model, tier",
    [
        ("anthropic:claude-3-haiku-20240307", ModelTier.fast),
        ("claude-3-5-sonnet-20241022", ModelTier.smart),
        ("claude-3-opus-latest", ModelTier.deep),
        ("claude-3-5-haiku-latest", ModelTier.fast),
        ("some-unknown-model", ModelTier.smart),
    ],
)
def test_tier_from_model(model: str, tier: ModelTier, llm_config: LLMConfig) -> None:
    assert tier_from_model(model, llm_config) is tier


def test_calculate_cost_per_tier() -> None:
    assert calculate_cost(ModelTier.fast, 1_000_000, 1_000_000) == pytest.approx(1.5)
    assert calculate_cost("smart", 1_000_000, 0) == pytest.approx(3.0)
    assert calculate_cost(ModelTier.deep, 0, 1_000_000) == pytest.approx(75.0)
    assert calculate_cost("unknown-model", 1_000_000, 0) == pytest.approx(3.0)


def _event(tier: ModelTier, cost: float, *, agent_id: str, latency: float = 100.0) -> LLMUsageEvent:
    return LLMUsageEvent(
        model="m",
        tier=tier,
        tokens_in=10,
        tokens_out=20,
        cost=cost,
        latency_ms=latency,
        step_number=1,
        action=StepAction.final_response,
        agent_id=agent_id,
    )


def test_usage_ledger_summary_filters_by_agent() -> None:
    ledger = UsageLedger()
    ledger.record(_event(ModelTier.fast, 0.01, agent_id="a", latency=100))
    ledger.record(_event(ModelTier.smart, 0.10, agent_id="a", latency=300))
    ledger.record(_event(ModelTier.smart, 0.50, agent_id="b"))

    summary = ledger.summary(agent_id="a")
    assert summary.calls == 2
    assert summary.total_cost == pytest.approx(0.11)
    assert summary.total_tokens_in == 20
    assert summary.total_tokens_out == 40
    assert summary.average_latency_ms == pytest.approx(200.0)
    assert summary.by_tier == {ModelTier.fast: pytest.approx(0.01), ModelTier.smart: pytest.approx(0.10)}

    assert ledger.summary().calls == 3
    assert ledger.summary(agent_id="nobody").calls == 0
