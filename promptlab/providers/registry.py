"""Name -> provider capability lookup.

The registry is populated once at startup and only read afterwards.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from .anthropic import AnthropicProvider
from .base import ProviderCapability
from .gemini import GeminiProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

BUILTIN_PROVIDERS = {
    OpenAIProvider.name: OpenAIProvider,
    AnthropicProvider.name: AnthropicProvider,
    GeminiProvider.name: GeminiProvider,
}


class ProviderRegistry:
    """Resolves provider names to :class:`ProviderCapability` instances."""

    def __init__(self, capabilities: Iterable[ProviderCapability] = ()) -> None:
        self._providers: Dict[str, ProviderCapability] = {}
        for cap in capabilities:
            self.register(cap)

    @classmethod
    def with_builtins(
        cls,
        credentials: Mapping[str, Optional[str]],
        *,
        base_urls: Optional[Mapping[str, Optional[str]]] = None,
        connect_timeout: float = 10.0,
        read_timeout: Optional[float] = None,
    ) -> "ProviderRegistry":
        """Build a registry holding the OpenAI, Anthropic and Gemini providers."""
        base_urls = base_urls or {}
        registry = cls()
        for name, provider_cls in BUILTIN_PROVIDERS.items():
            registry.register(
                provider_cls(
                    credentials.get(name),
                    base_url=base_urls.get(name),
                    connect_timeout=connect_timeout,
                    read_timeout=read_timeout,
                )
            )
        missing = [n for n in registry.names() if not registry.resolve(n).has_credentials()]
        if missing:
            logger.warning("No API key configured for providers: %s", ", ".join(missing))
        return registry

    def register(self, capability: ProviderCapability) -> None:
        if not capability.name:
            raise ValueError(f"Provider {capability!r} has no name")
        self._providers[capability.name] = capability

    def resolve(self, name: str) -> Optional[ProviderCapability]:
        return self._providers.get(name)

    def names(self) -> List[str]:
        return list(self._providers)

    def describe(self) -> Dict[str, Dict[str, object]]:
        """Model list and credential state per provider."""
        return {
            name: {"models": list(cap.models), "configured": cap.has_credentials()}
            for name, cap in self._providers.items()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)
