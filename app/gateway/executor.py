"""Retry/Backoff Executor: one user-facing upstream call with bounded retries.

State machine per request (max_attempts = 4):
  1. Attempt: throttle.acquire(), then one upstream call
  2. 2xx → trimmed content (terminal)
  3. 429 → sleep (attempt + 1) * backoff_step and retry while attempts remain,
     else RateLimitExceeded (terminal)
  4. Anything else → classify immediately, no retry (terminal)

Only rate-limit responses are treated as transient. Auth errors, malformed
requests and network failures are surfaced on first occurrence.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from app.core.metrics import THROTTLE_WAIT, UPSTREAM_CALLS, UPSTREAM_RETRIES, UPSTREAM_TOKENS
from app.gateway.classifier import RetryBudgetExhausted, classify
from app.gateway.throttle import UpstreamThrottle
from app.gateway.types import ComposedPrompt, RetryContext, Tone, UpstreamConfig, UpstreamResponse
from app.gateway.upstream import BaseUpstreamAdapter

logger = logging.getLogger(__name__)


class RetryExecutor:
    """Runs a composed prompt against the upstream through the shared throttle."""

    def __init__(
        self,
        adapter: BaseUpstreamAdapter,
        throttle: UpstreamThrottle,
        config: UpstreamConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.adapter = adapter
        self.throttle = throttle
        self.config = config or adapter.config
        self._sleep = sleep

    async def execute(self, prompt: ComposedPrompt, tone: Tone = Tone.TRAINING) -> str:
        """Return the upstream's text answer or raise ClassifiedError."""
        temperature = self.config.temperature_for(tone)
        ctx = RetryContext(
            max_attempts=self.config.max_attempts,
            backoff_step_ms=self.config.backoff_step_ms,
        )

        while True:
            waited = await self.throttle.acquire()
            THROTTLE_WAIT.observe(waited)

            try:
                response = await self.adapter.send(prompt, temperature)
            except httpx.TransportError as e:
                UPSTREAM_CALLS.labels(outcome="unreachable").inc()
                logger.warning(
                    "Upstream unreachable on attempt %d/%d: %s",
                    ctx.attempt + 1,
                    ctx.max_attempts,
                    type(e).__name__,
                )
                raise classify(e) from e

            if response.ok:
                UPSTREAM_CALLS.labels(outcome="success").inc()
                self._record_usage(response)
                return self.adapter.extract_content(response)

            if not response.rate_limited:
                UPSTREAM_CALLS.labels(outcome="rejected").inc()
                error = classify(response)
                logger.warning(
                    "Upstream rejected request with %d (%s)",
                    response.status_code,
                    error.message,
                )
                raise error

            UPSTREAM_CALLS.labels(outcome="rate_limited").inc()
            if ctx.remaining <= 0:
                break

            delay_ms = ctx.backoff_ms()
            logger.info(
                "Upstream rate limited (attempt %d/%d), retrying in %dms",
                ctx.attempt + 1,
                ctx.max_attempts,
                delay_ms,
            )
            UPSTREAM_RETRIES.inc()
            await self._sleep(delay_ms / 1000.0)
            ctx.advance()

        logger.warning("Upstream rate limited on all %d attempts", ctx.max_attempts)
        exhausted = RetryBudgetExhausted(ctx.max_attempts)
        raise classify(exhausted) from exhausted

    def _record_usage(self, response: UpstreamResponse) -> None:
        model = response.model_version or self.config.model
        UPSTREAM_TOKENS.labels(model=model, direction="input").inc(response.input_tokens)
        UPSTREAM_TOKENS.labels(model=model, direction="output").inc(response.output_tokens)
        logger.debug(
            "Upstream %s answered in %dms (%d in / %d out tokens)",
            model,
            response.latency_ms,
            response.input_tokens,
            response.output_tokens,
        )

