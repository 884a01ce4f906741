"""Google Gemini streaming provider (``streamGenerateContent`` over SSE)."""
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


class GeminiProvider(ProviderCapability):
    name = "gemini"
    models = ("gemini-2.5-flash",)
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _payload(self, prompt: str, options: ProviderOptions) -> Dict[str, Any]:
        generation: Dict[str, Any] = {}
        if options.temperature is not None:
            generation["temperature"] = options.temperature
        if options.top_p is not None:
            generation["topP"] = options.top_p
        if options.max_tokens is not None:
            generation["maxOutputTokens"] = options.max_tokens
        body: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if generation:
            body["generationConfig"] = generation
        return body

    async def stream(
        self,
        prompt: str,
        options: ProviderOptions,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        key = self._require_key()
        url = f"/models/{options.model}:streamGenerateContent"
        usage: Optional[Usage] = None
        async with self._client() as client:
            async with client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                json=self._payload(prompt, options),
                headers={"x-goog-api-key": key},
            ) as response:
                await raise_for_vendor_status(response, "Gemini")
                async for _, data in iter_sse(response.aiter_lines()):
                    if cancel_event is not None and cancel_event.is_set():
                        return
                    event = load_event(data, "Gemini")
                    if "error" in event:
                        err = event["error"] or {}
                        raise ProviderError(f"Gemini API error: {err.get('message', err)}")
                    meta = event.get("usageMetadata")
                    if meta:
                        usage = Usage(
                            prompt_tokens=int(meta.get("promptTokenCount") or 0),
                            completion_tokens=int(meta.get("candidatesTokenCount") or 0),
                        )
                    for candidate in event.get("candidates") or []:
                        parts = (candidate.get("content") or {}).get("parts") or []
                        for part in parts:
                            text = part.get("text")
                            if text:
                                yield StreamChunk(content=text)
        if usage is not None:
            yield StreamChunk(usage=usage)
