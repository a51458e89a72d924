import os
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.cache import close_redis, initialize_redis
from .core.config import get_settings
from .core.errors import RateLimited
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.metrics import record_http_request
from .core.middleware import TraceIDMiddleware
from .core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    instrument_fastapi,
    record_exception,
    set_span_status,
    shutdown_tracing,
)
from .routes import capabilities, health, metrics

# Configure structured logging
# Use JSON output in production (containerized), console output in development
log_level = os.getenv("LOG_LEVEL", "INFO")
json_output = os.getenv("LOG_JSON", "true").lower() == "true"
configure_logging(log_level=log_level, json_output=json_output)

logger = get_logger(__name__)

# OTLP export only when OTEL_EXPORTER_OTLP_ENDPOINT is set
configure_tracing()

app = FastAPI(
    title="Pharmassist AI Core",
    description="Resilient AI capability orchestration for pharmacy assistants",
    version="1.0.0"
)

# CORS for local dev; restrict in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trace ID middleware (must be after CORS middleware)
app.add_middleware(TraceIDMiddleware)

# Instrument FastAPI with OpenTelemetry (creates automatic spans for HTTP requests)
instrument_fastapi(app)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("app_startup_started")

    redis_initialized = await initialize_redis(get_settings().redis_url)
    if redis_initialized:
        logger.info("app_startup_redis_ready")
    else:
        logger.warning(
            "app_startup_redis_unavailable",
            message="Redis cache not available. Drug name lookups will not be cached.",
        )

    logger.info("app_startup_completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on application shutdown."""
    logger.info("app_shutdown_started")
    shutdown_tracing()
    await close_redis()
    logger.info("app_shutdown_completed")


def _error_response(status_code: int, detail: str, trace_id, headers=None) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "status_code": status_code,
            "trace_id": trace_id,
        },
        headers=headers,
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited):
    """The only capability error that reaches the caller."""
    trace_id = get_trace_id() or get_trace_id_from_context()
    retry_after = max(1, int(exc.retry_after + 0.999))
    logger.info(
        "rate_limited_response",
        endpoint=exc.endpoint_key,
        retry_after=retry_after,
        path=request.url.path,
    )
    return _error_response(
        429,
        str(exc),
        trace_id,
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    start_time = getattr(request.state, "start_time", time.time())
    duration = time.time() - start_time

    trace_id = get_trace_id() or get_trace_id_from_context()

    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.OK, exc.detail)

    record_http_request(
        method=request.method,
        endpoint=request.url.path,
        status_code=exc.status_code,
        duration_seconds=duration,
    )

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(exc.status_code, exc.detail, trace_id)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    trace_id = get_trace_id() or get_trace_id_from_context()

    record_exception(exc)
    set_span_status(StatusCode.ERROR, str(exc))

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(500, "Internal server error", trace_id)


# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(capabilities.router, prefix="/ai", tags=["AI Capabilities"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
