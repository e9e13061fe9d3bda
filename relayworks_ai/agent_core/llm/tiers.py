"""Model tiers, pricing and cost calculation.

Agents pick a *tier* rather than a concrete model. The tier decides both the
model identifier sent to the provider and the per-million-token rates used
for cost accounting.

Pricing (USD per 1M tokens)
---------------------------

======  =====  ======
tier    input  output
======  =====  ======
fast    0.25   1.25
smart   3.00   15.00
deep    15.00  75.00
======  =====  ======

Model identifiers that cannot be classified fall back to the ``smart`` rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from relayworks_ai.core.config import LLMConfig, settings

from ..schemas.domain import ModelTier


@dataclass(frozen=True)
class TierPricing:
    input_per_million: float
    output_per_million: float


TIER_PRICING: Dict[ModelTier, TierPricing] = {
    ModelTier.fast: TierPricing(input_per_million=0.25, output_per_million=1.25),
    ModelTier.smart: TierPricing(input_per_million=3.0, output_per_million=15.0),
    ModelTier.deep: TierPricing(input_per_million=15.0, output_per_million=75.0),
}

DEFAULT_TIER = ModelTier.smart


def tier_models(config: Optional[LLMConfig] = None) -> Dict[ModelTier, str]:
    """Return the tier -> model identifier map from configuration."""
    cfg = config or settings.llm
    return {
        ModelTier.fast: cfg.fast_model,
        ModelTier.smart: cfg.smart_model,
        ModelTier.deep: cfg.deep_model,
    }


def get_model_for_tier(tier: Union[ModelTier, str], config: Optional[LLMConfig] = None) -> str:
    """Resolve a tier to its configured model identifier."""
    return tier_models(config)[ModelTier(tier)]


def tier_from_model(model: str, config: Optional[LLMConfig] = None) -> ModelTier:
    """Classify a model identifier into a tier.

    Exact matches against the configured tier map win; otherwise the model
    family name decides (``haiku`` -> fast, ``opus`` -> deep). Anything else is
    treated as the mid tier.
    """
    for tier, model_id in tier_models(config).items():
        if model == model_id or model == model_id.split(":", 1)[-1]:
            return tier
    lowered = model.lower()
    if "haiku" in lowered:
        return ModelTier.fast
    if "opus" in lowered:
        return ModelTier.deep
    return DEFAULT_TIER


def calculate_cost(model_or_tier: Union[ModelTier, str], tokens_in: int, tokens_out: int) -> float:
    """Compute the USD cost of one call.

    ``(tokens_in * input_rate + tokens_out * output_rate) / 1_000_000``
    """
    if isinstance(model_or_tier, ModelTier):
        tier = model_or_tier
    elif model_or_tier in ModelTier._value2member_map_:
        tier = ModelTier(model_or_tier)
    else:
        tier = tier_from_model(model_or_tier)
    rates = TIER_PRICING[tier]
    return (tokens_in * rates.input_per_million + tokens_out * rates.output_per_million) / 1_000_000
