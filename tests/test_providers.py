"""Tests for the vendor streaming providers against canned SSE bodies."""
import asyncio
import json

import httpx
import pytest

from promptlab.providers.anthropic import AnthropicProvider
from promptlab.providers.base import (
    ProviderError,
    ProviderOptions,
    Usage,
    categorize_error,
    iter_sse,
)
from promptlab.providers.gemini import GeminiProvider
from promptlab.providers.openai import OpenAIProvider


def _sse(*events) -> bytes:
    """Encode ``(event_name | None, payload)`` pairs as an event-stream body."""
    out = []
    for name, payload in events:
        if name:
            out.append(f"event: {name}")
        data = payload if isinstance(payload, str) else json.dumps(payload)
        out.append(f"data: {data}")
        out.append("")
    return ("\n".join(out) + "\n").encode()


def _transport(body: bytes, status: int = 200, seen: list = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if status >= 400:
            return httpx.Response(status, content=body, headers={"content-type": "application/json"})
        return httpx.Response(status, content=body, headers={"content-type": "text/event-stream"})

    return httpx.MockTransport(handler)


async def _collect(provider, prompt="hi", options=None, cancel_event=None):
    options = options or ProviderOptions(model=provider.models[0])
    return [c async for c in provider.stream(prompt, options, cancel_event)]


def _text(chunks) -> str:
    return "".join(c.content for c in chunks)


def _usage(chunks):
    return [c.usage for c in chunks if c.usage is not None]


# ── OpenAI ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_openai_stream_and_usage():
    body = _sse(
        (None, {"choices": [{"delta": {"role": "assistant"}}]}),
        (None, {"choices": [{"delta": {"content": "Hel"}}]}),
        (None, {"choices": [{"delta": {"content": "lo"}}]}),
        (None, {"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 2}}),
        (None, "[DONE]"),
    )
    seen = []
    provider = OpenAIProvider("sk-test", transport=_transport(body, seen=seen))
    options = ProviderOptions(model="gpt-4.1-mini", temperature=0.4, max_tokens=32)
    chunks = await _collect(provider, "Say hello", options)

    assert _text(chunks) == "Hello"
    assert _usage(chunks) == [Usage(prompt_tokens=5, completion_tokens=2)]
    request = seen[0]
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "gpt-4.1-mini"
    assert payload["stream"] is True
    assert payload["temperature"] == 0.4
    assert payload["max_tokens"] == 32
    assert "top_p" not in payload
    assert payload["messages"] == [{"role": "user", "content": "Say hello"}]


@pytest.mark.asyncio
async def test_openai_http_error_carries_vendor_message():
    body = json.dumps({"error": {"message": "Incorrect API key provided"}}).encode()
    provider = OpenAIProvider("sk-bad", transport=_transport(body, status=401))
    with pytest.raises(ProviderError) as exc_info:
        await _collect(provider)
    assert exc_info.value.status_code == 401
    assert "Incorrect API key provided" in str(exc_info.value)
    assert categorize_error(exc_info.value) == "provider_error"


@pytest.mark.asyncio
async def test_openai_in_stream_error():
    body = _sse(
        (None, {"choices": [{"delta": {"content": "partial"}}]}),
        (None, {"error": {"message": "overloaded"}}),
    )
    provider = OpenAIProvider("sk-test", transport=_transport(body))
    seen = []
    with pytest.raises(ProviderError, match="overloaded"):
        async for chunk in provider.stream("hi", ProviderOptions(model="gpt-4.1")):
            seen.append(chunk)
    assert _text(seen) == "partial"


@pytest.mark.asyncio
async def test_openai_stops_when_cancelled():
    body = _sse(*[(None, {"choices": [{"delta": {"content": f"{i} "}}]}) for i in range(5)])
    provider = OpenAIProvider("sk-test", transport=_transport(body))
    cancel = asyncio.Event()
    received = []
    async for chunk in provider.stream("hi", ProviderOptions(model="gpt-4.1"), cancel):
        received.append(chunk)
        if len(received) == 2:
            cancel.set()
    assert _text(received) == "0 1 "


@pytest.mark.asyncio
async def test_missing_key_raises_before_any_request():
    seen = []
    provider = OpenAIProvider(None, transport=_transport(b"", seen=seen))
    assert not provider.has_credentials()
    with pytest.raises(ProviderError, match="API key not configured"):
        await _collect(provider)
    assert seen == []


# ── Anthropic ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_anthropic_stream_and_usage():
    body = _sse(
        ("message_start", {"type": "message_start", "message": {"usage": {"input_tokens": 11, "output_tokens": 1}}}),
        ("content_block_start", {"type": "content_block_start", "index": 0}),
        ("ping", {"type": "ping"}),
        ("content_block_delta", {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Bon"}}),
        ("content_block_delta", {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "jour"}}),
        ("content_block_stop", {"type": "content_block_stop", "index": 0}),
        ("message_delta", {"type": "message_delta", "usage": {"output_tokens": 4}}),
        ("message_stop", {"type": "message_stop"}),
    )
    seen = []
    provider = AnthropicProvider("ak-test", transport=_transport(body, seen=seen))
    chunks = await _collect(provider, options=ProviderOptions(model="claude-3-5-haiku-20241022", top_p=0.8))

    assert _text(chunks) == "Bonjour"
    assert _usage(chunks) == [Usage(prompt_tokens=11, completion_tokens=4)]
    request = seen[0]
    assert request.url.path == "/v1/messages"
    assert request.headers["x-api-key"] == "ak-test"
    assert request.headers["anthropic-version"]
    payload = json.loads(request.content)
    assert payload["max_tokens"] > 0
    assert payload["top_p"] == 0.8


@pytest.mark.asyncio
async def test_anthropic_error_event():
    body = _sse(("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}))
    provider = AnthropicProvider("ak-test", transport=_transport(body))
    with pytest.raises(ProviderError, match="Overloaded"):
        await _collect(provider)


@pytest.mark.asyncio
async def test_anthropic_rate_limit_status():
    body = json.dumps({"type": "error", "error": {"type": "rate_limit_error", "message": "Slow down"}}).encode()
    provider = AnthropicProvider("ak-test", transport=_transport(body, status=429))
    with pytest.raises(ProviderError) as exc_info:
        await _collect(provider)
    assert categorize_error(exc_info.value) == "rate_limit"
    assert "Slow down" in str(exc_info.value)


# ── Gemini ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_gemini_stream_and_usage():
    body = _sse(
        (None, {"candidates": [{"content": {"parts": [{"text": "Hi "}]}}]}),
        (None, {
            "candidates": [{"content": {"parts": [{"text": "there"}]}}],
            "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2},
        }),
    )
    seen = []
    provider = GeminiProvider("gk-test", transport=_transport(body, seen=seen))
    options = ProviderOptions(model="gemini-2.5-flash", temperature=1.0, max_tokens=20)
    chunks = await _collect(provider, options=options)

    assert _text(chunks) == "Hi there"
    assert _usage(chunks) == [Usage(prompt_tokens=3, completion_tokens=2)]
    request = seen[0]
    assert request.url.path == "/v1beta/models/gemini-2.5-flash:streamGenerateContent"
    assert request.url.params["alt"] == "sse"
    assert request.headers["x-goog-api-key"] == "gk-test"
    payload = json.loads(request.content)
    assert payload["generationConfig"] == {"temperature": 1.0, "maxOutputTokens": 20}


@pytest.mark.asyncio
async def test_gemini_malformed_event():
    provider = GeminiProvider("gk-test", transport=_transport(_sse((None, "not json"))))
    with pytest.raises(ProviderError, match="malformed"):
        await _collect(provider)


# ── Helpers ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_iter_sse_parses_events():
    async def lines():
        for line in [": comment", "event: a", "data: one", "data: two", "", "data: three", ""]:
            yield line

    events = [e async for e in iter_sse(lines())]
    assert events == [("a", "one\ntwo"), (None, "three")]


@pytest.mark.parametrize(
    "exc, expected",
    [
        (httpx.ReadTimeout("slow"), "timeout"),
        (httpx.ConnectTimeout("slow"), "timeout"),
        (httpx.ConnectError("refused"), "network_error"),
        (ProviderError("limited", status_code=429), "rate_limit"),
        (ProviderError("bad", status_code=400), "validation_error"),
        (ProviderError("down", status_code=503), "provider_error"),
        (ProviderError("forbidden", status_code=403), "provider_error"),
        (ValueError("?"), "unknown"),
    ],
)
def test_categorize_error(exc, expected):
    assert categorize_error(exc) == expected
