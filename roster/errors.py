"""
Error taxonomy for Meeting Roster.

Three families matter to callers:
- Input quality (bad rows, unknown fields): skip or reject, never fatal to a batch.
- Storage (transient I/O): the operation was rejected, re-running it is safe.
- Auth (credentials, approval): fatal to the session action, never to stored data.
"""

from typing import Any


class RosterError(Exception):
    """Base class for all roster errors."""

    pass


# =============================================================================
# INPUT QUALITY
# =============================================================================


class InputQualityError(RosterError, ValueError):
    """Raised when incoming data cannot be used as-is."""

    pass


class EmptyNameError(InputQualityError):
    """Raised when a display name is empty after normalization."""

    def __init__(self, raw_name: str | None = None):
        self.raw_name = raw_name
        super().__init__(f"Name is empty after normalization: {raw_name!r}")


class UnknownFieldError(InputQualityError):
    """Raised when an edit targets a field that is not editable."""

    def __init__(self, field: str, allowed: tuple[str, ...] | list[str] = ()):
        self.field = field
        self.allowed = tuple(allowed)
        msg = f"Field {field!r} is not editable"
        if self.allowed:
            msg += f" (allowed: {', '.join(self.allowed)})"
        super().__init__(msg)


# =============================================================================
# LOOKUPS
# =============================================================================


class NotFoundError(RosterError, LookupError):
    """Raised when a member, reference, snapshot entry or account does not exist."""

    def __init__(self, kind: str, key: Any):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


# =============================================================================
# STORAGE
# =============================================================================


class StorageError(RosterError):
    """Transient persistence failure. Safe to retry."""

    pass


class ReconciliationError(StorageError):
    """
    Raised when a batch could not be fully persisted.

    `result` holds everything that was applied before the failure so the
    caller can report which rows were confirmed.
    """

    def __init__(self, message: str, result: Any = None):
        self.result = result
        super().__init__(message)


# =============================================================================
# EXTRACTION
# =============================================================================


class ExtractionError(RosterError):
    """The extraction service failed or returned something unusable."""

    pass


class MissingCredentialsError(ExtractionError):
    """No API key is configured for the extraction service."""

    pass


# =============================================================================
# AUTH
# =============================================================================


class AuthError(RosterError):
    """Base class for account/session failures."""

    pass


class InvalidCredentialsError(AuthError):
    """Unknown e-mail, wrong password, or an invalid/expired session token."""

    pass


class PendingApprovalError(AuthError):
    """The account exists but has not been approved by an administrator."""

    pass


class PermissionDeniedError(AuthError):
    """The account is not allowed to perform the requested action."""

    pass
