import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from slowapi.errors import RateLimitExceeded

from app.api.chat import router as chat_router
from app.core.config import settings, validate_settings_for_production
from app.core.logging import setup_logging
from app.core.metrics import CHAT_FAILURES, PrometheusMiddleware, metrics_response
from app.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from app.core.rate_limit import limiter
from app.core.sentry import init_sentry
from app.gateway.classifier import (
    MSG_INTERNAL,
    ClassifiedError,
    admission_cap_exceeded,
    invalid_input,
)
from app.gateway.gateway import ChatGateway
from app.gateway.types import Mode, Tone
from app.schemas.chat import HealthResponse

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    init_sentry()
    logger.info(
        "Starting TEXAI gateway (env=%s, model=%s, min_interval=%dms)",
        settings.app_env,
        settings.openai_model,
        settings.openai_min_interval_ms,
    )

    yield

    # Shutdown
    logger.info("TEXAI gateway shut down")


app = FastAPI(
    title="TEXAI Gateway",
    description="Chat gateway between the TEXAI mobile client and the OpenAI API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.app_debug else None,
    redoc_url="/redoc" if settings.app_debug else None,
)

# One gateway (and so one throttle) per process
app.state.gateway = ChatGateway.from_settings(settings)


# --- Exception handlers ---


def _validation_message(exc: RequestValidationError) -> str:
    """Pick a short client message for the first offending field."""
    for error in exc.errors():
        loc = tuple(error.get("loc", ()))
        field = loc[1] if len(loc) > 1 else None
        if error.get("type") == "json_invalid" or field in (None, "userInput"):
            break
        if field == "mode":
            return f"mode must be one of: {', '.join(m.value for m in Mode)}."
        if field == "tone":
            return f"tone must be one of: {', '.join(t.value for t in Tone)}."
        if field == "history":
            return "history must be a list of {role, content} turns."
    return invalid_input().message


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    error = invalid_input(_validation_message(exc))
    CHAT_FAILURES.labels(kind=error.kind.value).inc()
    return PlainTextResponse(error.message, status_code=error.http_status)


@app.exception_handler(ClassifiedError)
async def _classified_error_handler(request: Request, exc: ClassifiedError):
    logger.warning("Chat error %s (%d): %s", exc.kind.value, exc.http_status, exc.message)
    return PlainTextResponse(exc.message, status_code=exc.http_status)


@app.exception_handler(RateLimitExceeded)
async def _admission_cap_handler(request: Request, exc: RateLimitExceeded):
    error = admission_cap_exceeded()
    CHAT_FAILURES.labels(kind=error.kind.value).inc()
    logger.info("Admission cap hit for %s (%s)", request.client.host if request.client else "-", exc.detail)
    return PlainTextResponse(error.message, status_code=error.http_status)


# Log unhandled exceptions; clients only get a generic message
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return PlainTextResponse(MSG_INTERNAL, status_code=500)


# Rate limiter
app.state.limiter = limiter

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Prometheus metrics
app.add_middleware(PrometheusMiddleware)

# Reject oversized bodies before parsing
app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)

# CORS: parse allowed_origins from settings (comma-separated)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(chat_router)


@app.get("/", response_model=HealthResponse)
async def root():
    return HealthResponse(status="ok", message="TEXAI backend is running.")


@app.get("/health")
async def health(request: Request):
    return {"status": "ok", **request.app.state.gateway.get_status()}


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
