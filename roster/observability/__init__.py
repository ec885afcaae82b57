"""
Observability: structured logging with request ids.

Usage:
    from roster.observability import RequestContext, configure_logging

    configure_logging("INFO")
    with RequestContext():
        logger.info("Scan received")
"""

from .context import (
    RequestContext,
    generate_request_id,
    get_account_id,
    get_request_id,
    set_account_id,
    set_request_id,
)
from .logging import CorrelationIdMiddleware, HumanFormatter, JSONFormatter, configure_logging

__all__ = [
    "CorrelationIdMiddleware",
    "HumanFormatter",
    "JSONFormatter",
    "RequestContext",
    "configure_logging",
    "generate_request_id",
    "get_account_id",
    "get_request_id",
    "set_account_id",
    "set_request_id",
]
