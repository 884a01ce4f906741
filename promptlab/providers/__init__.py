"""LLM vendor integrations behind a common streaming contract."""
from .base import (
    ProviderCapability,
    ProviderError,
    ProviderOptions,
    StreamChunk,
    Usage,
    categorize_error,
)
from .registry import ProviderRegistry

__all__ = [
    "ProviderCapability",
    "ProviderError",
    "ProviderOptions",
    "ProviderRegistry",
    "StreamChunk",
    "Usage",
    "categorize_error",
]
