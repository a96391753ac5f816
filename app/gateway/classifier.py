"""Error Classifier: maps raw upstream/transport failures onto the taxonomy.

Every failure leaving the gateway is a ClassifiedError with a stable kind,
an HTTP status for the client and a short message that never includes raw
upstream payloads (only the upstream's own ``error.message`` text).
"""

from __future__ import annotations

import httpx

from app.gateway.types import ErrorKind, UpstreamResponse

MSG_INVALID_INPUT = "userInput is required."
MSG_ADMISSION_CAP = "Too many requests, please try again later."
MSG_RATE_LIMIT = "RATE_LIMIT: OpenAI rate limit hit."
MSG_RETRIES_EXHAUSTED = "RATE_LIMIT: exceeded retries"
MSG_UNREACHABLE = "OpenAI service is unreachable."
MSG_REJECTED = "OpenAI request failed."
MSG_NOT_CONFIGURED = "OPENAI_API_KEY is not configured on server."
MSG_INTERNAL = "Unexpected server error."


class ClassifiedError(Exception):
    """Terminal gateway failure. Never retried once raised."""

    def __init__(self, kind: ErrorKind, http_status: int, message: str):
        super().__init__(message)
        self.kind = kind
        self.http_status = http_status
        self.message = message

    def __repr__(self) -> str:
        return f"ClassifiedError({self.kind.value}, {self.http_status}, {self.message!r})"


class RetryBudgetExhausted(Exception):
    """All attempts were rate limited."""

    def __init__(self, attempts: int):
        super().__init__(f"Upstream rate limited on all {attempts} attempts")
        self.attempts = attempts


def invalid_input(message: str = MSG_INVALID_INPUT) -> ClassifiedError:
    return ClassifiedError(ErrorKind.INVALID_INPUT, 400, message)


def admission_cap_exceeded() -> ClassifiedError:
    return ClassifiedError(ErrorKind.ADMISSION_CAP_EXCEEDED, 429, MSG_ADMISSION_CAP)


def service_unavailable() -> ClassifiedError:
    return ClassifiedError(ErrorKind.SERVICE_UNAVAILABLE, 500, MSG_NOT_CONFIGURED)


def classify(failure: BaseException | UpstreamResponse) -> ClassifiedError:
    """Normalize a failure into a ClassifiedError.

    Accepts either an exception (transport errors, exhausted retries,
    anything unexpected) or an UpstreamResponse with a non-2xx status.
    """
    if isinstance(failure, ClassifiedError):
        return failure

    if isinstance(failure, UpstreamResponse):
        return _classify_response(failure)

    if isinstance(failure, RetryBudgetExhausted):
        return ClassifiedError(ErrorKind.RATE_LIMIT_EXCEEDED, 429, MSG_RETRIES_EXHAUSTED)

    # TimeoutException is a TransportError subclass; no response was received
    if isinstance(failure, httpx.TransportError):
        return ClassifiedError(ErrorKind.UPSTREAM_UNREACHABLE, 500, MSG_UNREACHABLE)

    return ClassifiedError(ErrorKind.INTERNAL, 500, MSG_INTERNAL)


def _classify_response(response: UpstreamResponse) -> ClassifiedError:
    if response.rate_limited:
        return ClassifiedError(ErrorKind.RATE_LIMIT_EXCEEDED, 429, MSG_RATE_LIMIT)
    if response.ok:
        # A 2xx that still failed (e.g. unreadable body) is ours, not upstream's
        return ClassifiedError(ErrorKind.INTERNAL, 500, MSG_INTERNAL)
    return ClassifiedError(
        ErrorKind.UPSTREAM_REJECTED,
        response.status_code,
        response.error_message or MSG_REJECTED,
    )
