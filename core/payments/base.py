#!/usr/bin/env python3
"""
Payment provider adapter contract.

One adapter per payment rail. Adapters hold no payment state (all of it
lives in the Payment record) and never raise past their boundary:
failures come back as typed results.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
import logging

import requests

from core.errors import ErrorKind
from core.payments.results import (
    AuthorizationRequest,
    AuthorizationResult,
    ConfirmationResult,
    CaptureResult,
    ReleaseResult,
)

logger = logging.getLogger(__name__)


def _is_retryable_error(exc: Exception) -> bool:
    """
    Determine if an exception is retryable (idempotent reads only).

    Only retries on:
    - Timeouts
    - Server errors (5xx) and 429
    - Connection errors without a response

    Does NOT retry on other client errors (4xx).
    """
    if isinstance(exc, requests.Timeout):
        return True

    if isinstance(exc, requests.HTTPError):
        response = getattr(exc, 'response', None)
        if response is not None:
            return response.status_code >= 500 or response.status_code == 429
        return True

    if isinstance(exc, requests.RequestException):
        response = getattr(exc, 'response', None)
        if response is not None and 400 <= response.status_code < 500:
            return False
        return True

    return False


def classify_status_code(status_code: int, moves_money: bool) -> ErrorKind:
    """Map an HTTP status from a provider onto an error kind."""
    if status_code >= 500:
        # The provider may have applied the operation before failing
        return ErrorKind.PROVIDER_UNKNOWN_OUTCOME if moves_money else ErrorKind.PROVIDER_TRANSIENT
    if status_code in (408, 409, 429):
        return ErrorKind.PROVIDER_TRANSIENT
    return ErrorKind.PROVIDER_TERMINAL


def classify_request_error(exc: Exception, moves_money: bool) -> ErrorKind:
    """Map a requests exception onto an error kind."""
    if isinstance(exc, requests.ConnectTimeout):
        # Never reached the provider
        return ErrorKind.PROVIDER_TRANSIENT
    if isinstance(exc, requests.HTTPError) and getattr(exc, 'response', None) is not None:
        return classify_status_code(exc.response.status_code, moves_money)
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return ErrorKind.PROVIDER_UNKNOWN_OUTCOME if moves_money else ErrorKind.PROVIDER_TRANSIENT
    return ErrorKind.PROVIDER_TERMINAL


class PaymentProviderAdapter(ABC):
    """
    Uniform authorize / confirm / capture / release contract.

    All adapters must be interchangeable from the settlement engine's
    point of view; idempotency is enforced there, not here.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (stripe, paypal, usdc)."""
        pass

    @abstractmethod
    def authorize(self, request: AuthorizationRequest, idempotency_key: Optional[str] = None) -> AuthorizationResult:
        """Reserve funds, or hand back what the customer needs to do so."""
        pass

    @abstractmethod
    def confirm(
        self,
        reference: str,
        expected_amount: Decimal,
        provider_reference: Optional[str] = None
    ) -> ConfirmationResult:
        """
        Complete an authorization after customer action outside the system.

        Args:
            reference: Reference returned by authorize
            expected_amount: Amount the authorization must cover
            provider_reference: Extra proof from the customer (e.g. a
                transaction signature), when the rail needs one
        """
        pass

    @abstractmethod
    def capture_full(self, reference: str, amount: Decimal, idempotency_key: Optional[str] = None) -> CaptureResult:
        pass

    @abstractmethod
    def capture_partial(
        self,
        reference: str,
        original_amount: Decimal,
        capture_amount: Decimal,
        idempotency_key: Optional[str] = None
    ) -> CaptureResult:
        pass

    @abstractmethod
    def release(self, reference: str, idempotency_key: Optional[str] = None) -> ReleaseResult:
        pass

    @abstractmethod
    def is_valid(self, reference: str) -> Optional[bool]:
        """
        Whether the authorization can still be captured.

        Returns None when the provider could not be asked; callers must not
        treat that as expiry.
        """
        pass

    def validate_config(self) -> bool:
        return True

    @property
    def authorization_expires(self) -> bool:
        """Whether holds on this rail lapse after the authorization TTL."""
        return True
