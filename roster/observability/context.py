"""
Request-scoped context: request id and the signed-in account.
"""

import contextvars
import uuid
from typing import Optional

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_account_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "account_id", default=None
)


def get_request_id() -> Optional[str]:
    return _request_id_var.get()


def set_request_id(request_id: str) -> contextvars.Token:
    """Set the request ID in context. Returns token for reset."""
    return _request_id_var.set(request_id)


def get_account_id() -> Optional[str]:
    """Id of the account the current request acts for, if authenticated."""
    return _account_id_var.get()


def set_account_id(account_id: str | None) -> contextvars.Token:
    return _account_id_var.set(account_id)


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:16]}"


class RequestContext:
    """
    Context manager for request-scoped operations.

    Usage:
        with RequestContext() as ctx:
            logger.info("Scan received")  # carries ctx.request_id

        with RequestContext(request_id="req-abc123"):
            ...
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token: Optional[contextvars.Token] = None
        self._account_token: Optional[contextvars.Token] = None

    def __enter__(self) -> "RequestContext":
        self._token = set_request_id(self.request_id)
        self._account_token = set_account_id(None)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._account_token is not None:
            _account_id_var.reset(self._account_token)
        if self._token is not None:
            _request_id_var.reset(self._token)
