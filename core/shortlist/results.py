from dataclasses import dataclass
from typing import Optional

from core.enums import ShortlistStatus
from core.errors import ErrorKind, error_for_kind
from database.models import Payment, ShortlistRequest


@dataclass
class TransitionResult:
    """
    Outcome of a transition that touches money.

    Provider failures come back here instead of being raised so the
    failed payment row and its audit events still commit; callers raise
    afterwards with raise_for_error().
    """
    success: bool
    request: Optional[ShortlistRequest] = None
    status: Optional[ShortlistStatus] = None
    payment: Optional[Payment] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    detail: Optional[str] = None
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    escrow_address: Optional[str] = None

    @classmethod
    def ok(cls, request: ShortlistRequest, payment: Optional[Payment] = None, **extra) -> "TransitionResult":
        return cls(success=True, request=request, status=ShortlistStatus(request.status), payment=payment, **extra)

    @classmethod
    def failed(
        cls,
        request: ShortlistRequest,
        kind: ErrorKind,
        message: str,
        payment: Optional[Payment] = None,
        detail: Optional[str] = None
    ) -> "TransitionResult":
        return cls(
            success=False,
            request=request,
            status=ShortlistStatus(request.status),
            payment=payment,
            error_kind=kind,
            message=message,
            detail=detail,
        )

    def raise_for_error(self) -> "TransitionResult":
        if not self.success:
            raise error_for_kind(self.error_kind, self.message, self.detail)
        return self
