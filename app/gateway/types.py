"""Core types and DTOs for the chat gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Mode(str, Enum):
    """Interaction style requested by the client."""

    INFORMATIONAL = "informational"
    QUIZ = "quiz"
    SIMULATION = "simulation"


class Tone(str, Enum):
    """Register requested by the client."""

    FIELD = "field"  # Real-time operations
    TRAINING = "training"  # Classroom / self-paced


class Role(str, Enum):
    """Message author as understood by the upstream API."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ErrorKind(str, Enum):
    """Stable, client-facing failure taxonomy."""

    INVALID_INPUT = "InvalidInput"
    ADMISSION_CAP_EXCEEDED = "AdmissionCapExceeded"
    RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
    UPSTREAM_UNREACHABLE = "UpstreamUnreachable"
    UPSTREAM_REJECTED = "UpstreamRejected"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    INTERNAL = "Internal"


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------


@dataclass
class HistoryTurn:
    """A prior conversation turn supplied by the caller."""

    content: str = ""
    role: Role = Role.USER
    mode: Mode | None = None  # Annotation only
    tone: Tone | None = None  # Annotation only


@dataclass
class ChatRequest:
    """A single inbound chat request, alive for one request only."""

    user_input: str
    mode: Mode = Mode.INFORMATIONAL
    tone: Tone = Tone.TRAINING
    history: list[HistoryTurn] = field(default_factory=list)


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ComposedPrompt:
    """Ordered upstream messages: system, history (oldest first), new user turn."""

    messages: list[Message] = field(default_factory=list)

    @property
    def system(self) -> Message:
        return self.messages[0]

    @property
    def user_turn(self) -> Message:
        return self.messages[-1]

    def to_payload(self) -> list[dict[str, str]]:
        return [m.to_dict() for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)


# ---------------------------------------------------------------------------
# Upstream side
# ---------------------------------------------------------------------------


@dataclass
class UpstreamResponse:
    """Raw outcome of one upstream HTTP exchange that produced a response."""

    status_code: int
    data: dict[str, Any] | None = None  # Parsed JSON body, if any
    text: str = ""
    latency_ms: int = 0
    model_version: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def error_message(self) -> str:
        """Upstream's own human-readable error text, or empty string."""
        if not isinstance(self.data, dict):
            return ""
        error = self.data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            return message if isinstance(message, str) else ""
        if isinstance(error, str):
            return error
        return ""


@dataclass
class RetryContext:
    """Attempt bookkeeping for one request's retry sequence."""

    max_attempts: int = 4
    backoff_step_ms: int = 500
    attempt: int = 0  # 0-based

    @property
    def remaining(self) -> int:
        return self.max_attempts - self.attempt - 1

    def backoff_ms(self) -> int:
        """Linear backoff before the next attempt: 500, 1000, 1500, ..."""
        return (self.attempt + 1) * self.backoff_step_ms

    def advance(self) -> None:
        self.attempt += 1


# ---------------------------------------------------------------------------
# Upstream config
# ---------------------------------------------------------------------------


@dataclass
class UpstreamConfig:
    """Connection, generation and pacing settings for the upstream API."""

    api_url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 25.0
    max_tokens: int = 350
    field_temperature: float = 0.4
    training_temperature: float = 0.7
    max_attempts: int = 4
    backoff_step_ms: int = 500
    min_interval_ms: int = 2500
    history_limit: int = 6

    def temperature_for(self, tone: Tone) -> float:
        return self.field_temperature if tone == Tone.FIELD else self.training_temperature
