"""
Shared logging configuration for the webhook verification service.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Correlates every log line emitted while handling one webhook delivery
delivery_id_var: ContextVar[Optional[str]] = ContextVar('delivery_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context(service_name),
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_service_context(service_name: str):
    """Build a processor that stamps the service name on log events."""

    def processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add delivery correlation context to log events."""
    delivery_id = delivery_id_var.get()
    if delivery_id:
        event_dict["delivery_id"] = delivery_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add a high-precision epoch timestamp next to the ISO one."""
    event_dict["timestamp_unix"] = time.time()
    return event_dict


def set_delivery_id(delivery_id: Optional[str] = None) -> str:
    """Set webhook delivery ID in context."""
    if delivery_id is None:
        delivery_id = str(uuid.uuid4())
    delivery_id_var.set(delivery_id)
    return delivery_id


def clear_context():
    """Clear all context variables."""
    delivery_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
