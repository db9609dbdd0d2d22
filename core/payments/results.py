"""
Strict per-operation result types at the adapter boundary.

Every adapter maps its provider payloads into these; nothing
provider-specific travels past the adapter.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.errors import ErrorKind


@dataclass(frozen=True)
class AuthorizationRequest:
    request_id: uuid.UUID
    company_id: uuid.UUID
    amount: Decimal
    currency: str
    description: Optional[str] = None
    customer_email: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Outcome of an authorize call.

    Exactly one of client_secret / approval_url / escrow_address is set on
    success, depending on how the rail collects customer approval.
    """
    success: bool
    reference: Optional[str] = None
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    escrow_address: Optional[str] = None
    requires_confirmation: bool = False
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "AuthorizationResult":
        return cls(success=False, error_kind=kind, error_message=message)


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of confirming a customer-approved authorization."""
    success: bool
    reference: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ConfirmationResult":
        return cls(success=False, error_kind=kind, error_message=message)


@dataclass(frozen=True)
class CaptureResult:
    success: bool
    amount_captured: Decimal = Decimal("0")
    capture_reference: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "CaptureResult":
        return cls(success=False, error_kind=kind, error_message=message)


@dataclass(frozen=True)
class ReleaseResult:
    success: bool
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ReleaseResult":
        return cls(success=False, error_kind=kind, error_message=message)
