"""Anthropic messages-API streaming provider."""
from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator, Dict, Optional

from .base import (
    ProviderCapability,
    ProviderError,
    ProviderOptions,
    StreamChunk,
    Usage,
    iter_sse,
    load_event,
    raise_for_vendor_status,
)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(ProviderCapability):
    name = "anthropic"
    models = ("claude-3-5-haiku-20241022",)
    default_base_url = "https://api.anthropic.com/v1"

    def _payload(self, prompt: str, options: ProviderOptions) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
        }
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.top_p is not None:
            body["top_p"] = options.top_p
        return body

    async def stream(
        self,
        prompt: str,
        options: ProviderOptions,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        key = self._require_key()
        headers = {"x-api-key": key, "anthropic-version": ANTHROPIC_VERSION}
        input_tokens = 0
        output_tokens = 0
        async with self._client() as client:
            async with client.stream(
                "POST", "/messages", json=self._payload(prompt, options), headers=headers
            ) as response:
                await raise_for_vendor_status(response, "Anthropic")
                async for name, data in iter_sse(response.aiter_lines()):
                    if cancel_event is not None and cancel_event.is_set():
                        return
                    event = load_event(data, "Anthropic")
                    kind = event.get("type") or name
                    if kind == "error":
                        err = event.get("error") or {}
                        raise ProviderError(f"Anthropic stream error: {err.get('message', err)}")
                    if kind == "message_start":
                        usage = (event.get("message") or {}).get("usage") or {}
                        input_tokens = int(usage.get("input_tokens") or 0)
                        output_tokens = int(usage.get("output_tokens") or 0)
                    elif kind == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield StreamChunk(content=delta["text"])
                    elif kind == "message_delta":
                        usage = event.get("usage") or {}
                        output_tokens = int(usage.get("output_tokens") or output_tokens)
                    elif kind == "message_stop":
                        break
        yield StreamChunk(usage=Usage(prompt_tokens=input_tokens, completion_tokens=output_tokens))
