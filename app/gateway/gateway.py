"""Chat Gateway: orchestrates one chat request end to end.

  1. Refuses early when no upstream credential is configured
  2. Composes the prompt (system directive + truncated history + user turn)
  3. Executes it through the retry executor and the shared throttle
  4. Normalizes any failure into a ClassifiedError

Usage:
    gateway = ChatGateway.from_settings(settings)
    content = await gateway.handle(chat_request)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from app.core.metrics import CHAT_FAILURES
from app.gateway.classifier import ClassifiedError, classify, service_unavailable
from app.gateway.executor import RetryExecutor
from app.gateway.prompt_composer import compose
from app.gateway.throttle import UpstreamThrottle
from app.gateway.types import ChatRequest, UpstreamConfig
from app.gateway.upstream import BaseUpstreamAdapter, OpenAIChatAdapter

logger = logging.getLogger(__name__)


class ChatGateway:
    """Owns the process-wide throttle and the upstream adapter.

    One instance per process; the throttle lives as long as the gateway.
    """

    def __init__(
        self,
        api_key: str = "",
        config: UpstreamConfig | None = None,
        throttle: UpstreamThrottle | None = None,
        adapter: BaseUpstreamAdapter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key or ""
        self.config = config or UpstreamConfig()
        self.throttle = throttle or UpstreamThrottle(min_interval_ms=self.config.min_interval_ms)
        self.adapter = adapter or OpenAIChatAdapter(self.api_key, self.config, transport=transport)
        self.executor = RetryExecutor(self.adapter, self.throttle, self.config, sleep=sleep)

    @classmethod
    def from_settings(cls, settings, **kwargs) -> ChatGateway:
        config = UpstreamConfig(
            api_url=settings.openai_api_url,
            model=settings.openai_model,
            timeout_seconds=settings.openai_timeout_seconds,
            max_tokens=settings.openai_max_tokens,
            min_interval_ms=settings.openai_min_interval_ms,
            history_limit=settings.chat_history_limit,
        )
        return cls(api_key=settings.openai_api_key, config=config, **kwargs)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def handle(self, request: ChatRequest) -> str:
        """Run one chat request; raise ClassifiedError on any failure."""
        if not self.configured:
            error = service_unavailable()
            CHAT_FAILURES.labels(kind=error.kind.value).inc()
            logger.error("Chat request refused: upstream credential is not configured")
            raise error

        try:
            prompt = compose(
                request.user_input,
                request.mode,
                request.tone,
                request.history,
                history_limit=self.config.history_limit,
            )
            return await self.executor.execute(prompt, request.tone)
        except ClassifiedError as e:
            CHAT_FAILURES.labels(kind=e.kind.value).inc()
            raise
        except Exception as e:
            logger.exception("Unexpected failure while handling chat request")
            error = classify(e)
            CHAT_FAILURES.labels(kind=error.kind.value).inc()
            raise error from e

    def get_status(self) -> dict:
        return {
            "upstream_configured": self.configured,
            "model": self.config.model,
            "throttle": self.throttle.get_stats(),
        }
