#!/usr/bin/env python3
"""
Payment Settlement Engine - owns the Payment record lifecycle.

    none --authorize--> authorized --capture--> captured | partially_captured
      |                     |------release----> released
      '--failure--> failed  '------ttl/provider--> expired

Rules:
- Money never moves without a prior authorization in 'authorized' status.
- Exactly one of capture / partial capture / release per payment; the
  status check before every adapter call is the idempotency guard.
- Authorization failures are final for that payment row (no retry).
- Capture/release outcomes the provider could not confirm flag the payment
  for manual reconciliation instead of retrying; an operator records the
  real outcome with reconcile().
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from core.actors import Actor
from core.config_loader import PaymentsConfig
from core.enums import PaymentStatus
from core.errors import ErrorKind, GuardViolationError, NotFoundError, ValidationError
from core.events import EventRecorder, EventType
from core.payments.registry import AdapterRegistry
from core.payments.results import AuthorizationRequest
from core.utils import as_utc, to_money, utcnow
from database.models import Payment
from database.repositories import PaymentRepository

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    FULFILLED = "fulfilled"
    PARTIAL = "partial"
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class SettlementOutcome:
    """
    How a delivered request settles.

    For PARTIAL, `discount` is the share of the authorized amount given
    back; the captured amount is authorized * (1 - discount).
    """
    kind: OutcomeKind
    discount: Decimal = Decimal("0")

    @classmethod
    def fulfilled(cls) -> "SettlementOutcome":
        return cls(OutcomeKind.FULFILLED)

    @classmethod
    def partial(cls, discount) -> "SettlementOutcome":
        discount = Decimal(str(discount))
        if not Decimal("0") < discount < Decimal("1"):
            raise ValidationError(f"Partial settlement discount must be between 0 and 1, got {discount}")
        return cls(OutcomeKind.PARTIAL, discount)

    @classmethod
    def no_match(cls) -> "SettlementOutcome":
        return cls(OutcomeKind.NO_MATCH)

    def capture_amount(self, authorized) -> Decimal:
        """Amount this outcome captures from an authorization; zero for no_match."""
        authorized = to_money(authorized)
        if self.kind == OutcomeKind.NO_MATCH:
            return Decimal("0.00")
        if self.kind == OutcomeKind.FULFILLED:
            return authorized
        return min(to_money(authorized * (Decimal("1") - self.discount)), authorized)


_TARGET_STATUS = {
    OutcomeKind.FULFILLED: PaymentStatus.CAPTURED,
    OutcomeKind.PARTIAL: PaymentStatus.PARTIALLY_CAPTURED,
    OutcomeKind.NO_MATCH: PaymentStatus.RELEASED,
}

_SUCCESS_EVENT = {
    OutcomeKind.FULFILLED: EventType.PAYMENT_CAPTURED,
    OutcomeKind.PARTIAL: EventType.PAYMENT_PARTIALLY_CAPTURED,
    OutcomeKind.NO_MATCH: EventType.PAYMENT_RELEASED,
}

_FAILURE_EVENT = {
    OutcomeKind.FULFILLED: EventType.PAYMENT_CAPTURE_FAILED,
    OutcomeKind.PARTIAL: EventType.PAYMENT_CAPTURE_FAILED,
    OutcomeKind.NO_MATCH: EventType.PAYMENT_RELEASE_FAILED,
}

# Payments in these statuses hold nothing that could be released
_NOTHING_TO_RELEASE = (PaymentStatus.NONE.value, PaymentStatus.FAILED.value, PaymentStatus.EXPIRED.value)

_RECONCILABLE = (
    PaymentStatus.CAPTURED,
    PaymentStatus.PARTIALLY_CAPTURED,
    PaymentStatus.RELEASED,
    PaymentStatus.AUTHORIZED,
)


@dataclass
class SettlementResult:
    success: bool
    payment: Optional[Payment] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    amount_captured: Decimal = Decimal("0")
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    escrow_address: Optional[str] = None
    already_settled: bool = False

    @classmethod
    def failure(cls, payment: Optional[Payment], kind: ErrorKind, message: str) -> "SettlementResult":
        return cls(success=False, payment=payment, error_kind=kind, message=message)


class SettlementEngine:
    """
    Provider-agnostic authorize / confirm / finalize / validity operations.

    Works inside the caller's unit of work: it flushes and emits events but
    only commits at the checkpoint before an authorization call, so the
    payment row exists durably before the provider sees the request.
    """

    def __init__(
        self,
        payments: PaymentRepository,
        events: EventRecorder,
        adapters: AdapterRegistry,
        config: Optional[PaymentsConfig] = None,
        clock: Callable = utcnow
    ):
        self.payments = payments
        self.events = events
        self.adapters = adapters
        self.config = config or PaymentsConfig()
        self.clock = clock

    def get_payment(self, payment_id: uuid.UUID) -> Payment:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(
        self,
        company_id: uuid.UUID,
        request_id: uuid.UUID,
        amount,
        currency: str,
        provider: str,
        actor: Actor,
        description: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> SettlementResult:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Authorization amount must be positive")
        currency = (currency or self.config.currency).upper()
        if currency != self.config.currency.upper():
            raise ValidationError(f"Unsupported currency {currency}; settlement is in {self.config.currency}")
        adapter = self.adapters.get(provider)

        existing = self.payments.get_active_for_request(request_id)
        if existing is not None:
            raise GuardViolationError(
                f"Request {request_id} already has payment {existing.id} in status '{existing.status}'"
            )

        now = self.clock()
        payment = self.payments.add(Payment(
            company_id=company_id,
            shortlist_request_id=request_id,
            provider=adapter.provider_name,
            amount_authorized=amount,
            amount_captured=Decimal("0"),
            currency=currency,
            status=PaymentStatus.NONE.value,
            created_at=now,
            updated_at=now,
        ))
        self.events.emit(
            request_id, EventType.PAYMENT_AUTHORIZATION_REQUESTED, actor,
            metadata={'payment_id': payment.id, 'provider': adapter.provider_name,
                      'amount': amount, 'currency': currency},
        )
        self.payments.commit()

        result = adapter.authorize(
            AuthorizationRequest(
                request_id=request_id,
                company_id=company_id,
                amount=amount,
                currency=currency,
                description=description,
                customer_email=customer_email,
            ),
            idempotency_key=f"authorize-{payment.id}",
        )

        if not result.success:
            logger.error(
                f"Authorization failed for payment {payment.id} via {adapter.provider_name}: "
                f"[{result.error_kind}] {result.error_message}"
            )
            self.payments.compare_and_set_status(
                payment, PaymentStatus.NONE.value, PaymentStatus.FAILED.value,
                error_message=result.error_message, updated_at=self.clock(),
            )
            self.events.emit(
                request_id, EventType.PAYMENT_AUTHORIZATION_FAILED, actor,
                metadata={'payment_id': payment.id, 'provider': adapter.provider_name,
                          'error_kind': result.error_kind, 'error': result.error_message},
            )
            return SettlementResult.failure(payment, result.error_kind, result.error_message)

        now = self.clock()
        self.payments.compare_and_set_status(
            payment, PaymentStatus.NONE.value, PaymentStatus.AUTHORIZED.value,
            provider_reference=result.reference,
            requires_confirmation=result.requires_confirmation,
            authorized_at=now,
            updated_at=now,
        )
        self.events.emit(
            request_id, EventType.PAYMENT_AUTHORIZED, actor,
            metadata={'payment_id': payment.id, 'provider': adapter.provider_name, 'amount': amount,
                      'reference': result.reference, 'requires_confirmation': result.requires_confirmation},
        )
        logger.info(f"Payment {payment.id} authorized: {amount} {currency} via {adapter.provider_name}")
        return SettlementResult(
            success=True,
            payment=payment,
            client_secret=result.client_secret,
            approval_url=result.approval_url,
            escrow_address=result.escrow_address,
        )

    def confirm_authorization(
        self,
        payment_id: uuid.UUID,
        actor: Actor,
        provider_reference: Optional[str] = None
    ) -> SettlementResult:
        """Complete a redirect or escrow authorization; no-op once confirmed."""
        payment = self.get_payment(payment_id)
        if payment.confirmed_at is not None:
            return SettlementResult(success=True, payment=payment, already_settled=True)
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise GuardViolationError(f"Payment {payment.id} is '{payment.status}'; only authorized payments can be confirmed")

        adapter = self.adapters.get(payment.provider)
        result = adapter.confirm(payment.provider_reference, payment.amount_authorized, provider_reference)

        if not result.success:
            logger.error(f"Confirmation failed for payment {payment.id}: [{result.error_kind}] {result.error_message}")
            self.events.emit(
                payment.shortlist_request_id, EventType.PAYMENT_CONFIRMATION_FAILED, actor,
                metadata={'payment_id': payment.id, 'provider': payment.provider,
                          'error_kind': result.error_kind, 'error': result.error_message,
                          'submitted_reference': provider_reference},
            )
            return SettlementResult.failure(payment, result.error_kind, result.error_message)

        now = self.clock()
        values = {'confirmed_at': now, 'updated_at': now}
        if result.reference and result.reference != payment.provider_reference:
            values['provider_reference'] = result.reference
        self.payments.update_fields(payment, PaymentStatus.AUTHORIZED.value, **values)
        self.events.emit(
            payment.shortlist_request_id, EventType.PAYMENT_CONFIRMED, actor,
            metadata={'payment_id': payment.id, 'provider': payment.provider, 'reference': payment.provider_reference},
        )
        logger.info(f"Payment {payment.id} confirmed")
        return SettlementResult(success=True, payment=payment)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def finalize(self, request_id: uuid.UUID, outcome: SettlementOutcome, actor: Actor) -> SettlementResult:
        payment = self.payments.get_settleable_for_request(request_id)
        if payment is None:
            raise GuardViolationError(f"Request {request_id} has no authorized payment to settle")
        return self._settle(payment, outcome, actor)

    def release(self, request_id: uuid.UUID, actor: Actor, reason: Optional[str] = None) -> SettlementResult:
        """
        Release whatever is held for a request.

        Succeeds without calling a provider when nothing is held.
        """
        payment = self.payments.get_settleable_for_request(request_id)
        if payment is None or payment.status in _NOTHING_TO_RELEASE:
            return SettlementResult(success=True, payment=payment, already_settled=True)
        return self._settle(payment, SettlementOutcome.no_match(), actor, reason=reason)

    def _settle(
        self,
        payment: Payment,
        outcome: SettlementOutcome,
        actor: Actor,
        reason: Optional[str] = None
    ) -> SettlementResult:
        target = _TARGET_STATUS[outcome.kind]
        if payment.status == target.value:
            logger.info(f"Payment {payment.id} already {payment.status}; nothing to do")
            return SettlementResult(
                success=True, payment=payment, already_settled=True,
                amount_captured=Decimal(payment.amount_captured or 0),
            )
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise GuardViolationError(
                f"Payment {payment.id} is '{payment.status}'; only authorized payments can be settled"
            )
        if payment.reconciliation_required:
            raise GuardViolationError(f"Payment {payment.id} is awaiting manual reconciliation")

        adapter = self.adapters.get(payment.provider)
        authorized = Decimal(payment.amount_authorized)
        request_id = payment.shortlist_request_id
        metadata = {'payment_id': payment.id, 'provider': payment.provider, 'outcome': outcome.kind}
        if reason:
            metadata['reason'] = reason

        if outcome.kind == OutcomeKind.NO_MATCH:
            result = adapter.release(payment.provider_reference, idempotency_key=f"release-{payment.id}")
        elif outcome.kind == OutcomeKind.FULFILLED:
            result = adapter.capture_full(
                payment.provider_reference, authorized, idempotency_key=f"capture-{payment.id}"
            )
        else:
            capture_amount = outcome.capture_amount(authorized)
            if capture_amount <= 0:
                raise ValidationError(f"Partial capture of {capture_amount} is not positive")
            metadata['requested_amount'] = capture_amount
            result = adapter.capture_partial(
                payment.provider_reference, authorized, capture_amount, idempotency_key=f"capture-{payment.id}"
            )

        if not result.success:
            return self._settlement_failed(payment, outcome, actor, result.error_kind, result.error_message, metadata)

        now = self.clock()
        if outcome.kind == OutcomeKind.NO_MATCH:
            self.payments.compare_and_set_status(
                payment, PaymentStatus.AUTHORIZED.value, target.value,
                released_at=now, error_message=None, updated_at=now,
            )
            captured = Decimal("0")
        else:
            captured = to_money(result.amount_captured)
            if captured > authorized:
                logger.warning(f"Provider reported {captured} captured on payment {payment.id}; clamping to {authorized}")
                captured = authorized
            self.payments.compare_and_set_status(
                payment, PaymentStatus.AUTHORIZED.value, target.value,
                amount_captured=captured,
                capture_reference=result.capture_reference,
                captured_at=now,
                error_message=None,
                updated_at=now,
            )
            metadata['amount_captured'] = captured
            metadata['capture_reference'] = result.capture_reference

        self.events.emit(request_id, _SUCCESS_EVENT[outcome.kind], actor, metadata=metadata)
        logger.info(f"Payment {payment.id} settled as {target.value} ({captured} of {authorized})")
        return SettlementResult(success=True, payment=payment, amount_captured=captured)

    def _settlement_failed(self, payment, outcome, actor, kind, message, metadata) -> SettlementResult:
        metadata = dict(metadata, error_kind=kind, error=message)
        if kind == ErrorKind.PROVIDER_UNKNOWN_OUTCOME:
            # Funds may or may not have moved; block further settlement until a human checks
            logger.error(f"Settlement outcome unknown for payment {payment.id}; reconciliation required: {message}")
            self.payments.update_fields(
                payment, PaymentStatus.AUTHORIZED.value,
                reconciliation_required=True, error_message=message, updated_at=self.clock(),
            )
            event_type = EventType.PAYMENT_RECONCILIATION_REQUIRED
        else:
            logger.error(f"Settlement failed for payment {payment.id}: [{kind}] {message}")
            self.payments.update_fields(
                payment, PaymentStatus.AUTHORIZED.value, error_message=message, updated_at=self.clock(),
            )
            event_type = _FAILURE_EVENT[outcome.kind]

        self.events.emit(payment.shortlist_request_id, event_type, actor, metadata=metadata)
        return SettlementResult.failure(payment, kind, message)

    def reconcile(
        self,
        payment_id: uuid.UUID,
        actor: Actor,
        resolution,
        amount_captured=None,
        note: Optional[str] = None
    ) -> SettlementResult:
        """
        Record what the provider actually did with a flagged payment.

        Only operators may reconcile, and only payments flagged by an
        unknown settlement outcome. `resolution` is the status the provider
        dashboard shows: captured, partially_captured, released, or
        authorized when nothing moved and settlement may be retried.
        """
        actor.require_operator("reconcile a payment")
        try:
            resolution = PaymentStatus(resolution)
        except ValueError:
            raise ValidationError(f"Unknown reconciliation status '{resolution}'")
        if resolution not in _RECONCILABLE:
            raise ValidationError(f"A payment cannot be reconciled as '{resolution.value}'")

        payment = self.get_payment(payment_id)
        if not payment.reconciliation_required:
            raise GuardViolationError(f"Payment {payment.id} is not awaiting reconciliation")
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise GuardViolationError(f"Payment {payment.id} is '{payment.status}'; expected 'authorized'")

        authorized = to_money(payment.amount_authorized)
        now = self.clock()
        values = {'reconciliation_required': False, 'error_message': None, 'updated_at': now}

        if resolution == PaymentStatus.CAPTURED:
            captured = authorized if amount_captured is None else to_money(amount_captured)
            if captured != authorized:
                raise ValidationError(f"A full capture must equal the authorized {authorized}, got {captured}")
            values.update(amount_captured=captured, captured_at=now)
        elif resolution == PaymentStatus.PARTIALLY_CAPTURED:
            if amount_captured is None:
                raise ValidationError("The captured amount is required for a partial capture")
            captured = to_money(amount_captured)
            if not Decimal("0") < captured < authorized:
                raise ValidationError(f"A partial capture must be between 0 and {authorized}, got {captured}")
            values.update(amount_captured=captured, captured_at=now)
        elif resolution == PaymentStatus.RELEASED:
            captured = Decimal("0")
            values.update(released_at=now)
        else:
            captured = Decimal("0")

        if resolution == PaymentStatus.AUTHORIZED:
            self.payments.update_fields(payment, PaymentStatus.AUTHORIZED.value, **values)
        else:
            self.payments.compare_and_set_status(payment, PaymentStatus.AUTHORIZED.value, resolution.value, **values)

        self.events.emit(
            payment.shortlist_request_id, EventType.PAYMENT_RECONCILED, actor,
            metadata={'payment_id': payment.id, 'provider': payment.provider, 'resolution': resolution,
                      'amount_captured': captured, 'note': note},
        )
        logger.info(f"Payment {payment.id} reconciled as {resolution.value} by {actor.actor_id}")
        return SettlementResult(success=True, payment=payment, amount_captured=captured)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    def is_authorization_valid(self, payment_id: uuid.UUID, actor: Actor) -> bool:
        """
        Check an authorization can still be captured.

        Expired authorizations (TTL passed, or the provider says so) are
        moved to 'expired' with an audit event. A provider that cannot be
        reached is not treated as expiry.
        """
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.AUTHORIZED.value:
            return False

        adapter = self.adapters.get(payment.provider)
        now = self.clock()
        reason = None

        authorized_at = as_utc(payment.authorized_at)
        ttl = timedelta(days=self.config.authorization_ttl_days)
        if adapter.authorization_expires and (authorized_at is None or as_utc(now) - authorized_at >= ttl):
            reason = 'ttl_exceeded'
        else:
            valid = adapter.is_valid(payment.provider_reference)
            if valid is None:
                logger.warning(f"Could not verify authorization {payment.id} with {payment.provider}; assuming valid")
            elif not valid:
                reason = 'provider_reports_invalid'

        if reason is None:
            return True

        self.payments.compare_and_set_status(
            payment, PaymentStatus.AUTHORIZED.value, PaymentStatus.EXPIRED.value,
            error_message=f"Authorization expired ({reason})", updated_at=now,
        )
        self.events.emit(
            payment.shortlist_request_id, EventType.PAYMENT_EXPIRED, actor,
            metadata={'payment_id': payment.id, 'provider': payment.provider, 'reason': reason,
                      'authorized_at': authorized_at},
        )
        logger.info(f"Payment {payment.id} expired: {reason}")
        return False
