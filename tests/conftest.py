import asyncio
import json
from collections.abc import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings

# Override settings for tests
settings.openai_api_key = "test-key"
settings.openai_min_interval_ms = 0
settings.app_env = "development"

from app.core.rate_limit import limiter  # noqa: E402
from app.gateway.gateway import ChatGateway  # noqa: E402
from app.gateway.throttle import UpstreamThrottle  # noqa: E402
from app.gateway.types import UpstreamConfig  # noqa: E402
from app.main import app  # noqa: E402


class FakeClock:
    """Simulated monotonic clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)  # Still yield, like a real suspension point


def openai_completion(text: str = "Hello world", model: str = "gpt-4o-mini") -> dict:
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20},
    }


def openai_error(message: str, status_code: int) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"message": message, "type": "error"}})


class ScriptedUpstream:
    """httpx.MockTransport handler replaying scripted responses in order.

    The last scripted item repeats once the script runs out. Exceptions in
    the script are raised instead of answered.
    """

    def __init__(self, *script: httpx.Response | Exception):
        self.script = list(script) or [httpx.Response(200, json=openai_completion())]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_gateway(fake_clock: FakeClock):
    """Build a ChatGateway wired to a scripted upstream and simulated time."""

    def _make(upstream: ScriptedUpstream, api_key: str = "test-key", **config_overrides) -> ChatGateway:
        config_overrides.setdefault("min_interval_ms", 0)
        config = UpstreamConfig(**config_overrides)
        throttle = UpstreamThrottle(config.min_interval_ms, clock=fake_clock, sleep=fake_clock.sleep)
        return ChatGateway(
            api_key=api_key,
            config=config,
            throttle=throttle,
            transport=upstream.transport,
            sleep=fake_clock.sleep,
        )

    return _make


@pytest.fixture(autouse=True)
def _isolate_app():
    """Restore the app gateway and clear admission counters around each test."""
    original = app.state.gateway
    limiter.reset()
    yield
    app.state.gateway = original
    limiter.reset()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
