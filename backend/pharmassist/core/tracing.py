"""
OpenTelemetry distributed tracing.

One span per capability call and one child span per tier attempt
(``tier.tier1_primary``, ``tier.tier2_tool_llm`` ...), so a trace shows
exactly which fallback stage answered and what the earlier stages failed with.

Configuration:
- OTEL_SERVICE_NAME: Service name (default: pharmassist_ai_core)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP gRPC endpoint; no exporter when unset
- OTEL_TRACES_SAMPLER_ARG: Sampling rate (default: 1.0)

Without ``configure_tracing`` the global no-op tracer is used, which keeps
unit tests free of exporter setup.
"""
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from pharmassist.core.logging import get_logger

logger = get_logger(__name__)

_tracer_provider: Optional[TracerProvider] = None

__all__ = [
    "StatusCode",
    "configure_tracing",
    "get_trace_id_from_context",
    "get_tracer",
    "instrument_fastapi",
    "record_exception",
    "set_span_attribute",
    "set_span_status",
    "shutdown_tracing",
    "traced",
]


def configure_tracing(
    service_name: Optional[str] = None,
    otlp_endpoint: Optional[str] = None,
    sampling_rate: float = 1.0,
) -> None:
    """
    Install an SDK tracer provider, exporting over OTLP when an endpoint is set.
    """
    global _tracer_provider

    service_name = service_name or os.getenv("OTEL_SERVICE_NAME", "pharmassist_ai_core")
    otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    sampling_rate = float(os.getenv("OTEL_TRACES_SAMPLER_ARG", str(sampling_rate)))

    resource = Resource.create({
        "service.name": service_name,
        "service.version": "1.0.0",
    })

    if sampling_rate < 1.0:
        from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
        _tracer_provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sampling_rate))
    else:
        _tracer_provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        try:
            _tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
            logger.info("tracing_otlp_configured", endpoint=otlp_endpoint)
        except Exception as e:
            logger.warning(
                "tracing_otlp_configuration_failed",
                endpoint=otlp_endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )

    trace.set_tracer_provider(_tracer_provider)
    logger.info(
        "tracing_configured",
        service_name=service_name,
        sampling_rate=sampling_rate,
        otlp_enabled=bool(otlp_endpoint),
    )


def get_tracer() -> Tracer:
    return trace.get_tracer("pharmassist")


@contextmanager
def traced(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Open a child span, recording any exception that escapes it.

    Usage::

        with traced("tier.tier1_primary", capability="chat"):
            ...
    """
    with get_tracer().start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


def get_trace_id_from_context() -> Optional[str]:
    """Current OpenTelemetry trace ID as 32 hex chars, or None."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return None


def set_span_attribute(key: str, value: Any) -> None:
    trace.get_current_span().set_attribute(key, value)


def set_span_status(status_code: StatusCode, description: Optional[str] = None) -> None:
    trace.get_current_span().set_status(Status(status_code, description))


def record_exception(exception: Exception) -> None:
    current_span = trace.get_current_span()
    current_span.record_exception(exception)
    current_span.set_status(Status(StatusCode.ERROR, str(exception)))


def instrument_fastapi(app) -> None:
    """Attach automatic HTTP server spans to the FastAPI app."""
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("tracing_fastapi_instrumented")
    except Exception as e:
        logger.warning(
            "tracing_fastapi_instrumentation_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def shutdown_tracing() -> None:
    """Flush and shut down the SDK provider, if one was installed."""
    if _tracer_provider:
        try:
            _tracer_provider.shutdown()
            logger.info("tracing_shutdown")
        except Exception as e:
            logger.warning(
                "tracing_shutdown_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
