"""Cost estimation for model usage buckets based on API pricing."""

from __future__ import annotations

# Pricing per million tokens, matched by substring of the model id
MODEL_PRICING = {
    "opus": {
        "input": 15.00,
        "output": 75.00,
        "cache_read": 1.50,
        "cache_creation": 18.75,
    },
    "sonnet": {
        "input": 3.00,
        "output": 15.00,
        "cache_read": 0.30,
        "cache_creation": 3.75,
    },
    "haiku": {
        "input": 0.80,
        "output": 4.00,
        "cache_read": 0.08,
        "cache_creation": 1.00,
    },
}

# Unknown models are priced at Sonnet level
DEFAULT_PRICING = MODEL_PRICING["sonnet"]


def pricing_for(model: str | None) -> dict[str, float]:
    """Return the per-million pricing table for a model id."""
    if model:
        lowered = model.lower()
        for family, pricing in MODEL_PRICING.items():
            if family in lowered:
                return pricing
    return DEFAULT_PRICING


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    cache_read_tokens: int = 0,
    cache_creation_tokens: int = 0,
    model: str | None = None,
) -> float:
    """Estimate cost in USD based on token counts and the model's API pricing.

    Returns float rounded to 4 decimal places.
    """
    pricing = pricing_for(model)
    cost = (
        input_tokens * pricing["input"] / 1_000_000
        + output_tokens * pricing["output"] / 1_000_000
        + cache_read_tokens * pricing["cache_read"] / 1_000_000
        + cache_creation_tokens * pricing["cache_creation"] / 1_000_000
    )
    return round(cost, 4)
