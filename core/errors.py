#!/usr/bin/env python3
"""
Domain error taxonomy for the shortlist broker.

Validation, guard and conflict failures are raised before anything is
written and the unit of work rolls back. Provider failures travel as
result values (see core.payments.results and core.shortlist.results) so
the payment record and its audit trail still commit; callers turn them
back into exceptions with ``raise_for_error()`` after the commit.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Typed error category carried by result objects."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    GUARD_VIOLATION = "guard_violation"
    CONFLICT = "conflict"
    PROVIDER_TRANSIENT = "provider_transient"
    PROVIDER_TERMINAL = "provider_terminal"
    PROVIDER_UNKNOWN_OUTCOME = "provider_unknown_outcome"
    EXPIRED_AUTHORIZATION = "expired_authorization"


class ShortlistError(Exception):
    """Base exception for shortlist lifecycle errors."""
    kind = ErrorKind.VALIDATION
    public_message: Optional[str] = None

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or message

    def message_for(self, is_operator: bool) -> str:
        """Operators see full detail; other callers see the public category when one exists."""
        if is_operator:
            return self.detail
        return self.public_message or self.message


class ValidationError(ShortlistError):
    """Malformed input, rejected before any state change."""
    kind = ErrorKind.VALIDATION


class NotFoundError(ShortlistError):
    """Entity missing or not visible to the caller."""
    kind = ErrorKind.NOT_FOUND


class GuardViolationError(ShortlistError):
    """Transition not permitted from the current state."""
    kind = ErrorKind.GUARD_VIOLATION


class PermissionDeniedError(GuardViolationError):
    """Transition not permitted for the calling actor."""
    kind = ErrorKind.PERMISSION_DENIED


class ConflictError(ShortlistError):
    """Lost an optimistic-concurrency race."""
    kind = ErrorKind.CONFLICT


class ProviderError(ShortlistError):
    """Payment adapter call failed."""
    kind = ErrorKind.PROVIDER_TERMINAL
    public_message = "payment provider error"


class ProviderTransientError(ProviderError):
    """Provider failure the caller may retry."""
    kind = ErrorKind.PROVIDER_TRANSIENT


class ProviderTerminalError(ProviderError):
    """Provider failure that needs a fresh authorization."""
    kind = ErrorKind.PROVIDER_TERMINAL


class ProviderUnknownOutcomeError(ProviderError):
    """Money movement may or may not have happened; manual reconciliation needed."""
    kind = ErrorKind.PROVIDER_UNKNOWN_OUTCOME


class ExpiredAuthorizationError(ShortlistError):
    """The payment authorization is no longer usable."""
    kind = ErrorKind.EXPIRED_AUTHORIZATION
    public_message = "authorization expired"


_ERRORS_BY_KIND = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.PERMISSION_DENIED: PermissionDeniedError,
    ErrorKind.GUARD_VIOLATION: GuardViolationError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.PROVIDER_TRANSIENT: ProviderTransientError,
    ErrorKind.PROVIDER_TERMINAL: ProviderTerminalError,
    ErrorKind.PROVIDER_UNKNOWN_OUTCOME: ProviderUnknownOutcomeError,
    ErrorKind.EXPIRED_AUTHORIZATION: ExpiredAuthorizationError,
}


def error_for_kind(kind: ErrorKind, message: str, detail: Optional[str] = None) -> ShortlistError:
    """Build the exception matching an error kind."""
    error_class = _ERRORS_BY_KIND.get(kind, ShortlistError)
    return error_class(message, detail=detail)
