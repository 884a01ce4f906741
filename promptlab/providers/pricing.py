"""Static per-model price table (USD per 1K tokens)."""
from __future__ import annotations

from typing import Dict, Optional

PRICING: Dict[str, Dict[str, Dict[str, float]]] = {
    "openai": {
        "gpt-4.1-nano": {"input": 0.0001, "output": 0.0004},
        "gpt-4.1-mini": {"input": 0.0004, "output": 0.0016},
        "gpt-4.1": {"input": 0.002, "output": 0.008},
        "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    },
    "anthropic": {
        "claude-3-5-haiku-20241022": {"input": 0.0008, "output": 0.004},
    },
    "gemini": {
        "gemini-2.5-flash": {"input": 0.0003, "output": 0.0025},
    },
}


def get_rates(provider: str, model: str) -> Optional[Dict[str, float]]:
    """Return ``{"input": .., "output": ..}`` for a model, or None if unpriced."""
    return PRICING.get(provider, {}).get(model)
