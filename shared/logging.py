"""
Structured logging for the Storefront services.

Events are rendered as one JSON object each. Besides the service and the
request id, events emitted while serving a cache-eligible read carry the
cache key and outcome of that request, so a handler's own log lines can be
joined with the cache decision that led to them.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
cache_key_var: ContextVar[Optional[str]] = ContextVar("cache_key", default=None)
cache_status_var: ContextVar[Optional[str]] = ContextVar("cache_status", default=None)

# Event field -> context variable
_REQUEST_FIELDS = (
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("cache_key", cache_key_var),
    ("cache", cache_status_var),
)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structlog JSON output on top of stdlib logging."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_request_context,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # The request timing middleware already logs one event per request
    logging.getLogger("uvicorn.access").setLevel(max(level, logging.WARNING))


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Split ``storefront.api_cache`` into ``service`` and ``component``."""
    service, _, component = event_dict.get("logger", "").partition(".")
    if component:
        event_dict.setdefault("service", service)
        event_dict.setdefault("component", component)
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Bind per-request context. Fields passed explicitly on the event win."""
    for field, var in _REQUEST_FIELDS:
        value = var.get()
        if value:
            event_dict.setdefault(field, value)
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id, generating one when the caller sent none."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None):
    if user_id:
        user_id_var.set(user_id)


def set_cache_context(key: str, status: str) -> None:
    """Record the cache key and HIT/MISS outcome of the current read."""
    cache_key_var.set(key)
    cache_status_var.set(status)


def clear_context():
    """Clear all context variables."""
    for _, var in _REQUEST_FIELDS:
        var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
