"""Provider capability contract shared by every LLM vendor integration."""
from __future__ import annotations

import abc
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Vendor call failed (HTTP error status or in-stream error event)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ProviderOptions:
    """Generation parameters forwarded to the vendor."""

    model: str
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class Usage:
    """Token usage reported by a vendor (or estimated when it reports none)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class StreamChunk:
    """One unit of streamed output.

    ``content`` may be empty for bookkeeping chunks that only carry ``usage``.
    """

    content: str = ""
    usage: Optional[Usage] = None


class ProviderCapability(abc.ABC):
    """Wraps one LLM vendor.

    Subclasses set ``name`` and ``models`` and implement :meth:`stream` as an
    async generator.  Cancellation is cooperative: implementations check
    ``cancel_event`` between chunks and return early once it is set.  A
    provider that ignores the event keeps consuming upstream resources until
    its own stream ends, even though the job is already marked cancelled.
    """

    name: str = ""
    models: Tuple[str, ...] = ()
    default_base_url: str = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or None
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport

    def has_credentials(self) -> bool:
        """True when the vendor credential is configured."""
        return bool(self.api_key)

    def supports(self, model: str) -> bool:
        return model in self.models

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    def _require_key(self) -> str:
        if not self.api_key:
            raise ProviderError(
                f"{self.name} API key not configured. Cannot process request.",
                status_code=401,
            )
        return self.api_key

    @abc.abstractmethod
    def stream(
        self,
        prompt: str,
        options: ProviderOptions,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        """Yield output chunks for *prompt* in vendor order."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} models={list(self.models)}>"


# ── Vendor stream helpers ───────────────────────────────────────────


async def raise_for_vendor_status(response: httpx.Response, vendor: str) -> None:
    """Raise ``ProviderError`` with the vendor's own message on HTTP errors."""
    if response.status_code < 400:
        return
    body = await response.aread()
    message = body.decode("utf-8", errors="replace").strip()
    try:
        payload = json.loads(message)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            message = str(err["message"])
        elif isinstance(err, str):
            message = err
    raise ProviderError(
        f"{vendor} API error ({response.status_code}): {message or response.reason_phrase}",
        status_code=response.status_code,
    )


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[Optional[str], str]]:
    """Parse a text/event-stream body into ``(event, data)`` pairs.

    Multi-line ``data:`` fields are joined with newlines.  Comment lines and
    unknown fields are ignored.
    """
    event: Optional[str] = None
    data: list = []
    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = None, []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


def load_event(data: str, vendor: str) -> Dict[str, Any]:
    """Decode one SSE data payload as a JSON object."""
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise ProviderError(f"{vendor} sent a malformed stream event: {data[:200]}") from exc
    if not isinstance(payload, dict):
        raise ProviderError(f"{vendor} sent a malformed stream event: {data[:200]}")
    return payload


# ── Failure classification ──────────────────────────────────────────


def categorize_error(exc: BaseException) -> str:
    """Map a streaming failure to a stored ``errorType``."""
    if isinstance(exc, httpx.TimeoutException) or isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    if isinstance(exc, httpx.TransportError):
        return "network_error"
    if isinstance(exc, ProviderError):
        status = exc.status_code
        if status == 429:
            return "rate_limit"
        if status in (400, 422):
            return "validation_error"
        if status in (401, 403, 404):
            return "provider_error"
        if status is not None and status >= 500:
            return "provider_error"
    return "unknown"
