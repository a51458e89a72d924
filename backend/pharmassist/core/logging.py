"""
Structured logging configuration for the AI capability layer.

Every log line is a JSON event (or a console line in development) carrying:
- timestamp (ISO 8601)
- level
- service
- trace_id / request_id (correlation across tiers of one capability call)
- user_id / shop_id (caller context, when known)

Log events are named in snake_case (``tier_failed``, ``capability_completed``)
and carry their details as keyword fields rather than formatted strings.
"""
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
shop_id_var: ContextVar[Optional[str]] = ContextVar("shop_id", default=None)

SERVICE_NAME = os.getenv("SERVICE_NAME", "pharmassist_ai_core")

_CONTEXT_FIELDS = (
    ("trace_id", trace_id_var),
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("shop_id", shop_id_var),
)


def add_request_context(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Copy the request-scoped context variables onto the event."""
    for field, var in _CONTEXT_FIELDS:
        value = var.get()
        if value:
            event_dict.setdefault(field, value)

    event_dict["service"] = SERVICE_NAME
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        service_name: Overrides SERVICE_NAME when given
        json_output: JSON lines for containers, console renderer for local dev
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Return a structlog logger, normally ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def set_trace_id(trace_id: Optional[str]) -> None:
    trace_id_var.set(trace_id)


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_user_id(user_id: Optional[str]) -> None:
    user_id_var.set(user_id)


def get_user_id() -> Optional[str]:
    return user_id_var.get()


def set_shop_id(shop_id: Optional[str]) -> None:
    shop_id_var.set(shop_id)


def get_shop_id() -> Optional[str]:
    return shop_id_var.get()


def bind_caller_context(user_id: Optional[str], shop_id: Optional[str]) -> None:
    """
    Bind the caller of a capability to the logging context.

    Called by the request middleware so that every tier log of one
    capability call carries the same user and shop.
    """
    if user_id:
        set_user_id(user_id)
    if shop_id:
        set_shop_id(shop_id)


def clear_request_context() -> None:
    """Reset all request-scoped context variables."""
    for _, var in _CONTEXT_FIELDS:
        var.set(None)


def generate_request_id() -> str:
    """New UUID4 request ID."""
    return str(uuid.uuid4())


def generate_trace_id() -> str:
    """New UUID4 trace ID."""
    return str(uuid.uuid4())
