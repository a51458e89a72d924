"""
Request context middleware.

For every HTTP request:
- Reuse X-Trace-ID / X-Request-ID from the caller, or the OpenTelemetry trace
  ID, or generate a new one
- Bind user (X-User-ID) and shop (X-Shop-ID) for structured logging
- Record RED metrics and log request start/finish
- Echo X-Trace-ID and X-Request-ID on the response
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import (
    bind_caller_context,
    clear_request_context,
    generate_request_id,
    generate_trace_id,
    get_logger,
    set_request_id,
    set_trace_id,
)
from .metrics import record_http_request
from .tracing import get_trace_id_from_context, set_span_attribute

logger = get_logger(__name__)


def _uuid_format(hex_id: str) -> str:
    if len(hex_id) != 32:
        return hex_id
    return f"{hex_id[0:8]}-{hex_id[8:12]}-{hex_id[12:16]}-{hex_id[16:20]}-{hex_id[20:32]}"


class TraceIDMiddleware(BaseHTTPMiddleware):
    """Bind trace/request/caller context for the lifetime of one request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = request.headers.get("X-Trace-ID") or request.headers.get("X-Request-ID")
        if not trace_id:
            otel_trace_id = get_trace_id_from_context()
            trace_id = _uuid_format(otel_trace_id) if otel_trace_id else generate_trace_id()

        request_id = generate_request_id()
        user_id = request.headers.get("X-User-ID")
        shop_id = request.headers.get("X-Shop-ID")

        set_trace_id(trace_id)
        set_request_id(request_id)
        bind_caller_context(user_id, shop_id)

        set_span_attribute("http.route", request.url.path)
        if shop_id:
            set_span_attribute("shop.id", shop_id)

        start_time = time.time()
        request.state.start_time = start_time
        logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=500,
                duration_seconds=process_time,
            )
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int(process_time * 1000),
                exc_info=True,
            )
            raise
        else:
            process_time = time.time() - start_time
            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration_seconds=process_time,
            )
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=int(process_time * 1000),
            )
            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()
