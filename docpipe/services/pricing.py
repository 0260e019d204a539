# =============================================================================
# Model Pricing — Cost Estimates for the AI-Enrichment Stage
# =============================================================================
#
# AI enrichment is the only metered stage. Every LLM call it makes is priced
# here and summed into the document's `ai_usage`, so an operator can see
# what enriching one course cost.
#
# Prices are listed in USD per MILLION tokens, the unit vendors publish.
#
# Providers report dated snapshot names ("gpt-4o-mini-2024-07-18",
# "claude-haiku-4-5-20251001"). A snapshot is priced like the longest listed
# model name it starts with.
#
# An unpriced model yields None, not 0.0: self-hosted models served through
# the OpenAI-compatible provider are unknown cost, not free.
# =============================================================================

from __future__ import annotations

from typing import NamedTuple


class Price(NamedTuple):
    input_per_mtok: float
    output_per_mtok: float


MODEL_PRICES: dict[str, dict[str, Price]] = {
    "anthropic": {
        "claude-sonnet-4-6": Price(3.00, 15.00),
        "claude-haiku-4-5": Price(0.80, 4.00),
    },
    "openai_compatible": {
        "gpt-4o": Price(2.50, 10.00),
        "gpt-4o-mini": Price(0.15, 0.60),
        "deepseek-chat": Price(0.14, 0.28),
        # French-language course material
        "mistral-large-latest": Price(2.00, 6.00),
    },
}


def lookup_price(provider_type: str, model: str) -> Price | None:
    prices = MODEL_PRICES.get(provider_type, {})
    if model in prices:
        return prices[model]
    candidates = [name for name in prices if model.startswith(f"{name}-")]
    if not candidates:
        return None
    return prices[max(candidates, key=len)]


def estimate_cost(
    provider_type: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> float | None:
    """USD cost of one completion, or None when the model has no listed price."""
    price = lookup_price(provider_type, model)
    if price is None:
        return None
    return (input_tokens * price.input_per_mtok + output_tokens * price.output_per_mtok) / 1_000_000
