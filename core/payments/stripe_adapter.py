#!/usr/bin/env python3
"""
Stripe adapter - card rail with manual-capture PaymentIntents.

Authorization creates a PaymentIntent with capture_method=manual and hands
the client secret to the frontend; funds are held once the customer
confirms client-side (status ``requires_capture``).
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe

from core.config_loader import StripeConfig
from core.errors import ErrorKind
from core.payments.base import PaymentProviderAdapter
from core.payments.results import (
    AuthorizationRequest,
    AuthorizationResult,
    ConfirmationResult,
    CaptureResult,
    ReleaseResult,
)

logger = logging.getLogger(__name__)

CAPTURABLE_STATUS = "requires_capture"


def _to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _from_minor_units(value) -> Decimal:
    return (Decimal(int(value or 0)) / 100).quantize(Decimal("0.01"))


def _classify_stripe_error(exc: Exception, moves_money: bool) -> ErrorKind:
    if isinstance(exc, (stripe.CardError, stripe.InvalidRequestError, stripe.AuthenticationError)):
        return ErrorKind.PROVIDER_TERMINAL
    if isinstance(exc, stripe.RateLimitError):
        return ErrorKind.PROVIDER_TRANSIENT
    if isinstance(exc, (stripe.APIConnectionError, stripe.APIError)):
        return ErrorKind.PROVIDER_UNKNOWN_OUTCOME if moves_money else ErrorKind.PROVIDER_TRANSIENT
    return ErrorKind.PROVIDER_TERMINAL


class StripeAdapter(PaymentProviderAdapter):
    """Card payments through Stripe PaymentIntents (manual capture)."""

    def __init__(self, config: Optional[StripeConfig] = None):
        config = config or StripeConfig()
        # Passed per call; the module-level stripe.api_key is never touched
        self.api_key = config.secret_key

    @property
    def provider_name(self) -> str:
        return 'stripe'

    def validate_config(self) -> bool:
        return bool(self.api_key)

    def authorize(self, request: AuthorizationRequest, idempotency_key: Optional[str] = None) -> AuthorizationResult:
        if not self.validate_config():
            return AuthorizationResult.failure(ErrorKind.PROVIDER_TERMINAL, "Stripe secret key not configured")

        params = {
            'amount': _to_minor_units(request.amount),
            'currency': request.currency.lower(),
            'capture_method': 'manual',
            'description': request.description or f"Shortlist request {request.request_id}",
            'metadata': {
                'company_id': str(request.company_id),
                'shortlist_request_id': str(request.request_id),
            },
        }
        if request.customer_email:
            params['receipt_email'] = request.customer_email

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                **params
            )
        except stripe.StripeError as e:
            kind = _classify_stripe_error(e, moves_money=False)
            logger.error(f"Stripe authorization failed for shortlist {request.request_id}: {e}")
            return AuthorizationResult.failure(kind, f"Stripe error: {e}")

        logger.info(f"Stripe PaymentIntent created: {intent.id} for {request.amount} {request.currency}")
        return AuthorizationResult(
            success=True,
            reference=intent.id,
            client_secret=intent.client_secret,
            # Customer confirms client-side with the secret before anything can be captured
            requires_confirmation=True,
        )

    def confirm(
        self,
        reference: str,
        expected_amount: Decimal,
        provider_reference: Optional[str] = None
    ) -> ConfirmationResult:
        try:
            intent = stripe.PaymentIntent.retrieve(reference, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe lookup failed for {reference}: {e}")
            return ConfirmationResult.failure(_classify_stripe_error(e, moves_money=False), f"Stripe error: {e}")

        if intent.status != CAPTURABLE_STATUS:
            return ConfirmationResult.failure(
                ErrorKind.PROVIDER_TERMINAL,
                f"PaymentIntent {reference} is '{intent.status}', expected '{CAPTURABLE_STATUS}'"
            )
        if _from_minor_units(intent.amount) < Decimal(expected_amount):
            return ConfirmationResult.failure(
                ErrorKind.PROVIDER_TERMINAL,
                f"PaymentIntent {reference} holds {_from_minor_units(intent.amount)}, expected {expected_amount}"
            )
        return ConfirmationResult(success=True, reference=reference)

    def capture_full(self, reference: str, amount: Decimal, idempotency_key: Optional[str] = None) -> CaptureResult:
        try:
            intent = stripe.PaymentIntent.capture(
                reference,
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe capture failed for {reference}: {e}")
            return CaptureResult.failure(_classify_stripe_error(e, moves_money=True), f"Stripe error: {e}")

        captured = _from_minor_units(intent.amount_received)
        logger.info(f"Stripe capture successful: {reference} for {captured}")
        return CaptureResult(success=True, amount_captured=captured, capture_reference=intent.id)

    def capture_partial(
        self,
        reference: str,
        original_amount: Decimal,
        capture_amount: Decimal,
        idempotency_key: Optional[str] = None
    ) -> CaptureResult:
        try:
            intent = stripe.PaymentIntent.capture(
                reference,
                amount_to_capture=_to_minor_units(capture_amount),
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe partial capture failed for {reference}: {e}")
            return CaptureResult.failure(_classify_stripe_error(e, moves_money=True), f"Stripe error: {e}")

        captured = _from_minor_units(intent.amount_received)
        logger.info(f"Stripe partial capture: {reference} captured {captured} of {original_amount}")
        return CaptureResult(success=True, amount_captured=captured, capture_reference=intent.id)

    def release(self, reference: str, idempotency_key: Optional[str] = None) -> ReleaseResult:
        try:
            stripe.PaymentIntent.cancel(reference, api_key=self.api_key, idempotency_key=idempotency_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe cancel failed for {reference}: {e}")
            return ReleaseResult.failure(_classify_stripe_error(e, moves_money=True), f"Stripe error: {e}")

        logger.info(f"Stripe PaymentIntent canceled: {reference}")
        return ReleaseResult(success=True)

    def is_valid(self, reference: str) -> Optional[bool]:
        try:
            intent = stripe.PaymentIntent.retrieve(reference, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Failed to check Stripe authorization validity for {reference}: {e}")
            return None
        return intent.status == CAPTURABLE_STATUS
