"""Per-client admission cap using slowapi.

Independent of (and stricter than) the upstream throttle: a client over its
cap is turned away before the gateway is consulted at all.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Rate limiter instance: use remote address as key
limiter = Limiter(key_func=get_remote_address, strategy="moving-window")


def chat_rate_limit() -> str:
    """Current /chat cap, read per request so it follows settings."""
    return settings.chat_rate_limit
