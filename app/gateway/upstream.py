"""Upstream adapter: one HTTP exchange with the Chat Completions endpoint.

The adapter does not retry, throttle or classify. It returns an
UpstreamResponse whenever the upstream answered (any status code) and lets
httpx transport errors (connect failures, timeouts) propagate to the
executor, which classifies them.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import httpx

from app.gateway.types import ComposedPrompt, UpstreamConfig, UpstreamResponse

logger = logging.getLogger(__name__)


class BaseUpstreamAdapter(ABC):
    """Base class for upstream chat adapters."""

    def __init__(
        self,
        api_key: str,
        config: UpstreamConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.config = config or UpstreamConfig()
        self._transport = transport  # Tests inject httpx.MockTransport

    @abstractmethod
    async def send(self, prompt: ComposedPrompt, temperature: float) -> UpstreamResponse:
        """Issue one upstream call and return whatever the upstream answered."""
        ...

    @staticmethod
    @abstractmethod
    def extract_content(response: UpstreamResponse) -> str:
        """Trimmed assistant text from a successful response."""
        ...


class OpenAIChatAdapter(BaseUpstreamAdapter):
    """OpenAI Chat Completions adapter."""

    async def send(self, prompt: ComposedPrompt, temperature: float) -> UpstreamResponse:
        payload = {
            "model": self.config.model,
            "temperature": temperature,
            "max_tokens": self.config.max_tokens,
            "messages": prompt.to_payload(),
        }
        start = time.monotonic()

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
            resp = await client.post(
                self.config.api_url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )

        response = UpstreamResponse(
            status_code=resp.status_code,
            text=resp.text,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            response.data = data
            response.model_version = data.get("model", "") or ""
            usage = data.get("usage") or {}
            response.input_tokens = usage.get("prompt_tokens", 0) or 0
            response.output_tokens = usage.get("completion_tokens", 0) or 0

        logger.debug(
            "Upstream %s answered %d in %dms",
            self.config.model,
            response.status_code,
            response.latency_ms,
        )
        return response

    @staticmethod
    def extract_content(response: UpstreamResponse) -> str:
        choices = (response.data or {}).get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content")
        return content.strip() if isinstance(content, str) else ""
