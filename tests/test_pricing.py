from __future__ import annotations

import pytest

from models import TokenUsage
from pricing import calculate_cost, format_cost


def test_known_model_cost() -> None:
    cost = calculate_cost("openai/gpt-oss-120b", TokenUsage(1_000_000, 1_000_000))
    assert cost == pytest.approx(0.90)


def test_unknown_model_is_free() -> None:
    assert calculate_cost("mystery-model", TokenUsage(1000, 1000)) == 0.0


@pytest.mark.parametrize(
    "cost, expected",
    [
        (0, "$0.00"),
        (0.00001234, "$0.000012"),
        (0.001234, "$0.0012"),
        (0.1234, "$0.12"),
    ],
)
def test_format_cost(cost: float, expected: str) -> None:
    assert format_cost(cost) == expected
