"""
Structured logging with request and account propagation.

JSON lines when stderr is not a TTY (server under a supervisor), a short
human format otherwise.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from .context import RequestContext, generate_request_id, get_account_id, get_request_id

# LogRecord attributes that are not user-supplied `extra` fields.
_RESERVED = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    )
)


def _context_fields() -> dict[str, str]:
    """request_id / account_id of the current request, when set."""
    fields = {}
    request_id = get_request_id()
    if request_id:
        fields["request_id"] = request_id
    account_id = get_account_id()
    if account_id:
        fields["account_id"] = account_id
    return fields


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter.

    Output format:
    {
        "timestamp": "2024-05-01T10:30:00.000Z",
        "level": "INFO",
        "logger": "roster.reconcile",
        "message": "Reconciled scan 2024-05-01 ...",
        "request_id": "req-abc123",
        "account_id": "8f0c...",
        ...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_fields(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_obj[key] = value

        return json.dumps(log_obj, default=str, ensure_ascii=False)


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        context = " ".join(_context_fields().values())
        prefix = f"[{context}] " if context else ""
        line = f"{timestamp} [{record.levelname}] {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", json_format: bool | None = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format. If None, JSON unless stderr is a TTY.
    """
    if json_format is None:
        json_format = not sys.stderr.isatty()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    root_logger.addHandler(handler)


class CorrelationIdMiddleware:
    """
    ASGI middleware that scopes every HTTP request to a request id.

    Honours an incoming X-Request-ID header, otherwise generates one, and
    echoes it back on the response.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = None
        for key, value in scope.get("headers", []):
            if key.lower() == b"x-request-id":
                request_id = value.decode("latin-1").strip() or None
                break
        if not request_id:
            request_id = generate_request_id()

        async def send_with_id(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-request-id", request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        with RequestContext(request_id=request_id):
            await self.app(scope, receive, send_with_id)
