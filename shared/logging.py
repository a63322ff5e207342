"""
Structured logging for the Age Check Relay.

Every line is one JSON object carrying the logger name, level, ISO timestamp,
owning service, the active trace/span ids and, inside a request, the request
id and caller tag.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog
from opentelemetry import trace

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
called_from_var: ContextVar[Optional[str]] = ContextVar('called_from', default=None)

EventDict = Dict[str, Any]


def build_processors() -> List[Any]:
    """Processor chain shared by every relay logger, ending in the JSON renderer."""
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_service_context,
        add_trace_context,
        add_request_context,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging to stdout at ``log_level``."""
    structlog.configure(
        processors=build_processors(),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    # Logger names are "<service>.<component>".
    service, _, component = event_dict.get("logger", "").partition(".")
    if component:
        event_dict["service"] = service
    return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    span = trace.get_current_span()
    if not span.is_recording():
        return event_dict

    span_context = span.get_span_context()
    if span_context.trace_id:
        event_dict["trace_id"] = f"{span_context.trace_id:032x}"
    if span_context.span_id:
        event_dict["span_id"] = f"{span_context.span_id:016x}"
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key, var in (("request_id", request_id_var), ("called_from", called_from_var)):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def bind_request_context(request_id: Optional[str] = None, called_from: Optional[str] = None) -> str:
    """Bind the request id (generated when absent) and caller tag; returns the request id."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    called_from_var.set(called_from or None)
    return request_id


def clear_request_context() -> None:
    request_id_var.set(None)
    called_from_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger; name it "<service>.<component>"."""
    return structlog.get_logger(name)
