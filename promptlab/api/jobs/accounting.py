"""Derived accounting attached to a job on completion."""
from __future__ import annotations

import numbers
from typing import Any, Dict, Mapping, Optional

from ...providers.base import Usage
from ...providers.pricing import get_rates

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count for vendors that report no usage."""
    return len(text or "") // CHARS_PER_TOKEN


def resolve_usage(prompt: str, output: str, reported: Optional[Usage]) -> Usage:
    """Vendor-reported usage when present, otherwise an estimate."""
    if reported is not None and reported.total_tokens > 0:
        return reported
    return Usage(prompt_tokens=estimate_tokens(prompt), completion_tokens=estimate_tokens(output))


def compute_cost(provider: str, model: str, usage: Usage) -> float:
    """USD cost from the static price table; 0 for unpriced models."""
    rates = get_rates(provider, model)
    if rates is None:
        return 0.0
    cost = (usage.prompt_tokens / 1000) * rates["input"] + (
        usage.completion_tokens / 1000
    ) * rates["output"]
    return round(cost, 8)


def average_score(metrics: Mapping[str, Any]) -> float:
    """Arithmetic mean of the numeric values in a metrics bag (0 if none)."""
    values = [
        float(v)
        for v in metrics.values()
        if isinstance(v, numbers.Real) and not isinstance(v, bool)
    ]
    if not values:
        return 0.0
    return sum(values) / len(values)


def with_average_score(metrics: Mapping[str, Any]) -> Dict[str, Any]:
    return {**metrics, "avgScore": average_score(metrics)}
