"""OpenAI chat-completions streaming provider."""
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


class OpenAIProvider(ProviderCapability):
    name = "openai"
    models = ("gpt-4.1-nano", "gpt-4.1-mini", "gpt-4.1", "gpt-4o-mini")
    default_base_url = "https://api.openai.com/v1"

    def _payload(self, prompt: str, options: ProviderOptions) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": options.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.top_p is not None:
            body["top_p"] = options.top_p
        if options.max_tokens is not None:
            body["max_tokens"] = options.max_tokens
        return body

    async def stream(
        self,
        prompt: str,
        options: ProviderOptions,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        key = self._require_key()
        headers = {"Authorization": f"Bearer {key}"}
        async with self._client() as client:
            async with client.stream(
                "POST", "/chat/completions", json=self._payload(prompt, options), headers=headers
            ) as response:
                await raise_for_vendor_status(response, "OpenAI")
                async for _, data in iter_sse(response.aiter_lines()):
                    if cancel_event is not None and cancel_event.is_set():
                        return
                    if data.strip() == "[DONE]":
                        break
                    event = load_event(data, "OpenAI")
                    if "error" in event:
                        err = event["error"] or {}
                        raise ProviderError(f"OpenAI stream error: {err.get('message', err)}")
                    usage = event.get("usage")
                    if usage:
                        yield StreamChunk(
                            usage=Usage(
                                prompt_tokens=int(usage.get("prompt_tokens") or 0),
                                completion_tokens=int(usage.get("completion_tokens") or 0),
                            )
                        )
                    for choice in event.get("choices") or []:
                        delta = (choice.get("delta") or {}).get("content")
                        if delta:
                            yield StreamChunk(content=delta)
