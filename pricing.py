"""Rough USD cost of a post-processing request."""

from __future__ import annotations

from dataclasses import dataclass

from models import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    input: float  # USD per 1M input tokens
    output: float  # USD per 1M output tokens


MODEL_PRICING: dict[str, ModelPricing] = {
    "openai/gpt-oss-120b": ModelPricing(0.15, 0.75),
    "claude-sonnet-4-5": ModelPricing(3.0, 15.0),
    "claude-haiku-4-5": ModelPricing(0.8, 4.0),
    "claude-opus-4-5": ModelPricing(15.0, 75.0),
    "gpt-4o-mini": ModelPricing(0.15, 0.6),
    "qwen-plus": ModelPricing(0.4, 1.2),
}


def calculate_cost(model_name: str, usage: TokenUsage) -> float:
    pricing = MODEL_PRICING.get(model_name)
    if pricing is None:
        return 0.0
    return (
        usage.input_tokens / 1_000_000 * pricing.input
        + usage.output_tokens / 1_000_000 * pricing.output
    )


def format_cost(cost: float) -> str:
    if cost == 0:
        return "$0.00"
    if cost < 0.0001:
        return f"${cost:.6f}"
    if cost < 0.01:
        return f"${cost:.4f}"
    return f"${cost:.2f}"
