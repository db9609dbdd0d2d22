#!/usr/bin/env python3
"""
Shortlist State Machine - owns the ShortlistRequest lifecycle.

    submitted -> processing <-> awaiting_adjustment
    processing -> pricing_pending -> pricing_approved -> authorized
    pricing_pending --decline--> processing
    authorized -> delivered -> completed (only after the capture succeeded)
    authorized --reconcile released--> pricing_approved
    processing | awaiting_adjustment | authorized --no match--> no_match
    any non-terminal except delivered --cancel--> cancelled

Every status write is a compare-and-swap on the status that was read, and
every transition writes exactly one audit event with the status pair.
Provider calls happen before the status write they gate; their outcome is
committed at a checkpoint so a later conflict cannot roll back money that
has already moved.
"""

import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from core.actors import Actor
from core.config_loader import AppConfig
from core.enums import (
    PaymentStatus,
    PricingType,
    SeniorityLevel,
    ShortlistEmailEvent,
    ShortlistOutcome,
    ShortlistStatus,
)
from core.errors import (
    ConflictError,
    ErrorKind,
    GuardViolationError,
    NotFoundError,
    ValidationError,
)
from core.events import EventRecorder, EventType
from core.payments import OutcomeKind, SettlementEngine, SettlementOutcome
from core.scorer import CandidateProfile, FollowUpContext, RoleRequirements, ScoringEngine, exclusion_map
from core.shortlist.follow_up import FollowUpDetector, RequestProfile
from core.shortlist.pricing import PricingCalculator, PricingSuggestion
from core.shortlist.results import TransitionResult
from core.utils import normalize_skills, to_money, utcnow
from database.models import Payment, ShortlistCandidate, ShortlistEvent, ShortlistRequest, ShortlistEmail
from database.repository import BrokerRepository

logger = logging.getLogger(__name__)

S = ShortlistStatus

MATCHING_STATUSES = (S.PROCESSING, S.AWAITING_ADJUSTMENT)
NO_MATCH_FROM = (S.PROCESSING, S.AWAITING_ADJUSTMENT, S.AUTHORIZED)
CAPTURED_STATUSES = (PaymentStatus.CAPTURED.value, PaymentStatus.PARTIALLY_CAPTURED.value)
MAX_SEARCH_EXTENSION_DAYS = 90
DEFAULT_SEARCH_EXTENSION_DAYS = 7


class ShortlistStateMachine:
    """
    Orchestrates scoring, settlement, audit and notifications for one
    unit of work.

    Validation, guard and conflict failures raise before anything is
    written. Provider failures come back as a failed TransitionResult so
    the payment rows and audit events they produced still commit.
    """

    def __init__(
        self,
        repo: BrokerRepository,
        scorer: ScoringEngine,
        settlement: SettlementEngine,
        events: EventRecorder,
        notifier=None,
        follow_up: Optional[FollowUpDetector] = None,
        pricing: Optional[PricingCalculator] = None,
        config: Optional[AppConfig] = None,
        clock: Callable = utcnow
    ):
        self.repo = repo
        self.scorer = scorer
        self.settlement = settlement
        self.events = events
        self.notifier = notifier
        self.config = config or AppConfig()
        self.follow_up = follow_up or FollowUpDetector(self.config.follow_up)
        self.pricing = pricing or PricingCalculator(self.config.pricing)
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_request(self, request_id: uuid.UUID, actor: Actor) -> ShortlistRequest:
        """Load a request the actor may see; other companies get NotFound."""
        request = self.repo.requests.get(request_id)
        if request is None or (not actor.is_operator and not actor.owns(request.company_id)):
            raise NotFoundError(f"Shortlist request {request_id} not found")
        return request

    def list_candidates(self, request_id: uuid.UUID, actor: Actor, approved_only: bool = False) -> List[ShortlistCandidate]:
        self.get_request(request_id, actor)
        return self.repo.candidates.list_for_request(request_id, approved_only=approved_only)

    def get_events(self, request_id: uuid.UUID, actor: Actor) -> List[ShortlistEvent]:
        actor.require_operator("read the audit history")
        self.get_request(request_id, actor)
        return self.events.get_events(request_id)

    def get_payment_status(self, request_id: uuid.UUID, actor: Actor) -> Payment:
        request = self.get_request(request_id, actor)
        if request.payment_id is not None:
            return self.settlement.get_payment(request.payment_id)
        payments = self.repo.payments.list_for_request(request.id)
        if not payments:
            raise NotFoundError(f"No payment for shortlist request {request_id}")
        return payments[0]

    # ------------------------------------------------------------------
    # Creation and matching
    # ------------------------------------------------------------------

    def create_request(
        self,
        actor: Actor,
        role_title: str,
        required_skills: Optional[Iterable[str]] = None,
        seniority=None,
        location_city: Optional[str] = None,
        location_country: Optional[str] = None,
        location_timezone: Optional[str] = None,
        remote_allowed: bool = False,
        notes: Optional[str] = None,
        previous_request_id: Optional[uuid.UUID] = None
    ) -> ShortlistRequest:
        actor.require_company("create a shortlist request")
        if not role_title or not role_title.strip():
            raise ValidationError("role_title is required")
        try:
            level = SeniorityLevel.parse(seniority)
        except (KeyError, ValueError):
            raise ValidationError(f"Unknown seniority '{seniority}'")

        if self.repo.companies.get(actor.company_id) is None:
            raise NotFoundError(f"Company {actor.company_id} not found")

        now = self.clock()
        skills = normalize_skills(required_skills)
        profile = RequestProfile(
            role_title=role_title.strip(),
            seniority=int(level) if level is not None else None,
            remote_allowed=bool(remote_allowed),
            country=location_country,
            skills=tuple(skills),
        )
        decision = self.follow_up.detect(
            self.repo.requests, actor.company_id, profile, now, explicit_previous_id=previous_request_id
        )

        request = self.repo.requests.add(ShortlistRequest(
            company_id=actor.company_id,
            role_title=profile.role_title,
            required_skills=skills,
            seniority=profile.seniority,
            location_city=location_city,
            location_country=location_country,
            location_timezone=location_timezone,
            remote_allowed=bool(remote_allowed),
            notes=notes,
            status=S.SUBMITTED.value,
            previous_request_id=decision.previous_request_id,
            pricing_type=decision.pricing_type.value,
            follow_up_discount=decision.discount_percent,
            outcome=ShortlistOutcome.PENDING.value,
            created_at=now,
            updated_at=now,
        ))
        self.events.emit(
            request.id, EventType.CREATED, actor, None, S.SUBMITTED,
            metadata={
                'role_title': request.role_title,
                'pricing_type': decision.pricing_type,
                'previous_request_id': decision.previous_request_id,
                'follow_up_discount': decision.discount_percent,
                'similarity': decision.similarity,
                'days_since_previous': decision.days_since_previous,
            },
        )
        logger.info(f"Shortlist request {request.id} created for company {actor.company_id} ({decision.pricing_type.value})")
        return request

    def start_processing(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        re_include: Optional[Mapping[uuid.UUID, str]] = None
    ) -> ShortlistRequest:
        """Submitted -> Processing, populating candidates from the Scoring Engine."""
        actor.require_operator("start processing")
        request = self._load(request_id, actor, S.SUBMITTED)

        matches = self._run_matching(request, re_include)
        count = self.repo.candidates.replace_for_request(request.id, [self._candidate_row(m) for m in matches])

        self._transition(
            request, actor, S.SUBMITTED, S.PROCESSING, EventType.PROCESSING_STARTED,
            metadata={'candidates_matched': count, 're_included': len(re_include or {})},
        )
        self._notify(request, ShortlistEmailEvent.PROCESSING_STARTED, actor)
        return request

    def rerun_matching(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        re_include: Optional[Mapping[uuid.UUID, str]] = None
    ) -> List[ShortlistCandidate]:
        """
        Score the pool again, keeping admin-approved candidates at the top
        and replacing the rest.
        """
        actor.require_operator("re-run matching")
        request = self._load(request_id, actor, *MATCHING_STATUSES)

        kept = self.repo.candidates.list_for_request(request.id, approved_only=True)
        kept_ids = {row.candidate_id for row in kept}
        matches = [m for m in self._run_matching(request, re_include) if m.candidate_id not in kept_ids]
        room = max(self.scorer.config.max_results - len(kept), 0)

        rows = [self._copy_row(row) for row in kept] + [self._candidate_row(m) for m in matches[:room]]
        for rank, row in enumerate(rows, start=1):
            row.rank = rank
        self.repo.candidates.replace_for_request(request.id, rows)

        self._touch(request)
        self.events.emit(
            request.id, EventType.MATCHING_COMPLETED, actor,
            metadata={'kept_approved': len(kept), 'new_matches': min(len(matches), room)},
        )
        return self.repo.candidates.list_for_request(request.id)

    def update_rankings(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        rankings: Iterable[Dict[str, Any]]
    ) -> List[ShortlistCandidate]:
        """
        Apply operator curation: [{'candidate_id', 'rank'?, 'admin_approved'?}].

        The resulting ranks must stay dense, 1..n.
        """
        actor.require_operator("update rankings")
        request = self._load(request_id, actor, *MATCHING_STATUSES)

        current = {row.candidate_id: row for row in self.repo.candidates.list_for_request(request.id)}
        changes: Dict[uuid.UUID, Dict[str, Any]] = {}
        for item in rankings:
            candidate_id = _as_uuid(item.get('candidate_id'))
            if candidate_id not in current:
                raise ValidationError(f"Candidate {candidate_id} is not on this shortlist")
            change = {k: item[k] for k in ('rank', 'admin_approved') if item.get(k) is not None}
            if change:
                changes[candidate_id] = change
        if not changes:
            raise ValidationError("No ranking changes supplied")

        final_ranks = sorted(changes.get(cid, {}).get('rank', row.rank) for cid, row in current.items())
        if final_ranks != list(range(1, len(current) + 1)):
            raise ValidationError("Ranks must be unique and consecutive starting at 1")

        self._touch(request)
        updated = self.repo.candidates.apply_rankings(request.id, changes)
        self.events.emit(
            request.id, EventType.RANKINGS_UPDATED, actor,
            metadata={'changes': {str(cid): change for cid, change in changes.items()}},
        )
        return updated

    # ------------------------------------------------------------------
    # Scope negotiation
    # ------------------------------------------------------------------

    def suggest_pricing(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        candidate_count: Optional[int] = None,
        is_rare: bool = False,
        free_regeneration: bool = False
    ) -> PricingSuggestion:
        actor.require_operator("see pricing suggestions")
        request = self.get_request(request_id, actor)
        if candidate_count is None:
            candidate_count = self.repo.candidates.count_approved(request.id) or request.proposed_candidate_count or 0
        pricing_type = PricingType.FREE_REGEN if free_regeneration else PricingType(request.pricing_type)
        return self.pricing.suggest(
            request.seniority, candidate_count, is_rare=is_rare,
            pricing_type=pricing_type, discount_percent=request.follow_up_discount,
        )

    def propose_scope(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        price,
        candidate_count: int,
        notes: Optional[str] = None
    ) -> ShortlistRequest:
        actor.require_operator("propose a scope")
        if price is None or to_money(price) <= 0:
            raise ValidationError("Proposed price must be greater than zero")
        if candidate_count is None or int(candidate_count) <= 0:
            raise ValidationError("Proposed candidate count must be greater than zero")
        if to_money(price) / int(candidate_count) < Decimal("0.01"):
            raise ValidationError(
                f"Proposed price {to_money(price)} is less than 0.01 per candidate for {int(candidate_count)}"
            )
        request = self._load(request_id, actor, *MATCHING_STATUSES)

        price = to_money(price)
        self._transition(
            request, actor, S(request.status), S.PRICING_PENDING, EventType.SCOPE_PROPOSED,
            values={
                'proposed_price': price,
                'proposed_candidate_count': int(candidate_count),
                'scope_notes': notes,
                'scope_proposed_at': self.clock(),
            },
            metadata={'price': price, 'candidate_count': int(candidate_count), 'notes': notes},
        )
        self._notify(request, ShortlistEmailEvent.PRICING_READY, actor)
        return request

    def approve_scope(self, request_id: uuid.UUID, actor: Actor) -> ShortlistRequest:
        self._require_owner(request_id, actor, "approve the scope")
        request = self._load(request_id, actor, S.PRICING_PENDING)

        self._transition(
            request, actor, S.PRICING_PENDING, S.PRICING_APPROVED, EventType.PRICING_APPROVED,
            values={'scope_approved_at': self.clock()},
            metadata={'price': request.proposed_price, 'candidate_count': request.proposed_candidate_count},
        )
        self._notify(request, ShortlistEmailEvent.PRICING_APPROVED, actor)
        self._notify(request, ShortlistEmailEvent.AUTHORIZATION_REQUIRED, actor)
        return request

    def decline_scope(self, request_id: uuid.UUID, actor: Actor, reason: Optional[str] = None) -> ShortlistRequest:
        """PricingPending -> Processing; the declined proposal survives in the event metadata."""
        self._require_owner(request_id, actor, "decline the scope")
        request = self._load(request_id, actor, S.PRICING_PENDING)

        declined = {
            'price': request.proposed_price,
            'candidate_count': request.proposed_candidate_count,
            'scope_notes': request.scope_notes,
            'scope_proposed_at': request.scope_proposed_at,
        }
        self._transition(
            request, actor, S.PRICING_PENDING, S.PROCESSING, EventType.PRICING_DECLINED,
            values={
                'proposed_price': None,
                'proposed_candidate_count': None,
                'scope_notes': None,
                'scope_proposed_at': None,
            },
            metadata={'reason': reason, 'declined_proposal': declined},
        )
        self._notify(request, ShortlistEmailEvent.PRICING_DECLINED, actor, {'decline_reason': reason})
        return request

    def suggest_adjustment(self, request_id: uuid.UUID, actor: Actor, suggestion: str) -> ShortlistRequest:
        actor.require_operator("suggest an adjustment")
        if not suggestion or not suggestion.strip():
            raise ValidationError("An adjustment suggestion is required")
        request = self._load(request_id, actor, S.PROCESSING)

        self._transition(
            request, actor, S.PROCESSING, S.AWAITING_ADJUSTMENT, EventType.ADJUSTMENT_SUGGESTED,
            values={'adjustment_suggestion': suggestion.strip()},
            metadata={'suggestion': suggestion.strip()},
        )
        self._notify(request, ShortlistEmailEvent.ADJUSTMENT_SUGGESTED, actor)
        return request

    def extend_search(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        days: Optional[int] = None,
        notes: Optional[str] = None
    ) -> ShortlistRequest:
        actor.require_operator("extend the search")
        days = DEFAULT_SEARCH_EXTENSION_DAYS if days is None else int(days)
        if not 1 <= days <= MAX_SEARCH_EXTENSION_DAYS:
            raise ValidationError(f"Search extension must be between 1 and {MAX_SEARCH_EXTENSION_DAYS} days")
        request = self._load(request_id, actor, *MATCHING_STATUSES)

        now = self.clock()
        deadline = now + timedelta(days=days)
        self._transition(
            request, actor, S(request.status), S.PROCESSING, EventType.SEARCH_EXTENDED,
            values={'search_extended_at': now, 'search_deadline': deadline, 'extension_notes': notes},
            metadata={'days': days, 'deadline': deadline, 'notes': notes},
        )
        self._notify(request, ShortlistEmailEvent.SEARCH_EXTENDED, actor)
        return request

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def authorize_payment(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        provider: Optional[str] = None
    ) -> TransitionResult:
        """PricingApproved -> Authorized through the Settlement Engine."""
        self._require_owner(request_id, actor, "authorize payment")
        request = self._load(request_id, actor, S.PRICING_APPROVED)
        if request.proposed_price is None:
            raise GuardViolationError(f"Request {request.id} has no approved price")

        company = self.repo.companies.get(request.company_id)
        result = self.settlement.authorize(
            company_id=request.company_id,
            request_id=request.id,
            amount=request.proposed_price,
            currency=self.config.payments.currency,
            provider=provider or self.config.payments.default_provider,
            actor=actor,
            description=f"Candidate shortlist: {request.role_title}",
            customer_email=company.contact_email if company is not None else None,
        )
        if not result.success:
            return TransitionResult.failed(request, result.error_kind, result.message, payment=result.payment)

        payment = result.payment
        try:
            self._transition(
                request, actor, S.PRICING_APPROVED, S.AUTHORIZED, EventType.AUTHORIZED,
                values={'payment_id': payment.id},
                metadata={'payment_id': payment.id, 'provider': payment.provider, 'amount': payment.amount_authorized},
            )
        except ConflictError:
            logger.warning(f"Request {request.id} changed during authorization; releasing payment {payment.id}")
            self.settlement.release(request.id, actor, reason="request changed during authorization")
            self.repo.commit()
            raise

        return TransitionResult.ok(
            request,
            payment=payment,
            client_secret=result.client_secret,
            approval_url=result.approval_url,
            escrow_address=result.escrow_address,
        )

    def confirm_authorization(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        provider_reference: Optional[str] = None
    ) -> TransitionResult:
        """Complete a redirect or on-chain authorization after customer action."""
        request = self.get_request(request_id, actor)
        if not actor.is_operator:
            self._require_owner(request_id, actor, "confirm payment")
        self._guard(request, S.AUTHORIZED)

        result = self.settlement.confirm_authorization(request.payment_id, actor, provider_reference)
        if not result.success:
            return TransitionResult.failed(request, result.error_kind, result.message, payment=result.payment)
        return TransitionResult.ok(request, payment=result.payment)

    # ------------------------------------------------------------------
    # Delivery and terminal transitions
    # ------------------------------------------------------------------

    def deliver(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        candidates_delivered: Optional[int] = None,
        outcome: Optional[str] = None,
        reason: Optional[str] = None
    ) -> TransitionResult:
        """
        Settle the payment, then Authorized -> Delivered -> Completed.

        The request only leaves Authorized once the capture succeeded; a
        failed capture leaves it there for a retry, and an unknown outcome
        leaves it there with the payment flagged for reconcile_payment.
        The outcome defaults to fulfilled when at least the proposed number
        of candidates is delivered and partial otherwise; the partial
        capture gives back the undelivered share. A no_match outcome
        releases the payment and ends in NoMatch.
        """
        actor.require_operator("deliver a shortlist")
        try:
            outcome = ShortlistOutcome(outcome) if outcome else None
        except ValueError:
            raise ValidationError(f"Unknown outcome '{outcome}'")
        if outcome == ShortlistOutcome.NO_MATCH:
            return self.mark_no_match(request_id, actor, reason or "No suitable candidates at delivery")
        if outcome not in (None, ShortlistOutcome.FULFILLED, ShortlistOutcome.PARTIAL):
            raise ValidationError(f"Outcome '{outcome.value}' cannot be delivered")

        request = self._load(request_id, actor, S.AUTHORIZED)
        if candidates_delivered is None:
            candidates_delivered = self.repo.candidates.count_approved(request.id)
        candidates_delivered = int(candidates_delivered)
        payment = self.settlement.get_payment(request.payment_id)
        settlement_outcome = self._settlement_outcome(
            request, candidates_delivered, outcome, payment.amount_authorized
        )

        if payment.reconciliation_required:
            raise GuardViolationError(f"Payment {payment.id} is awaiting manual reconciliation")
        if payment.requires_confirmation and payment.confirmed_at is None:
            raise GuardViolationError(f"Payment {payment.id} has not been confirmed by the customer yet")

        if payment.status not in CAPTURED_STATUSES and not self.settlement.is_authorization_valid(payment.id, actor):
            self._transition(
                request, actor, S.AUTHORIZED, S.PRICING_APPROVED, EventType.AUTHORIZATION_EXPIRED,
                values={'payment_id': None},
                metadata={'payment_id': payment.id},
            )
            return TransitionResult.failed(
                request, ErrorKind.EXPIRED_AUTHORIZATION,
                f"Authorization for payment {payment.id} has expired; authorize again before delivery",
                payment=payment,
            )

        # Settle while still Authorized; a failed or unknown capture leaves the request where it was
        result = self.settlement.finalize(request.id, settlement_outcome, actor)
        self.repo.commit()
        if not result.success:
            return TransitionResult.failed(request, result.error_kind, result.message, payment=result.payment)

        self._complete_delivery(request, actor, candidates_delivered, settlement_outcome.kind, result, reason)
        return TransitionResult.ok(request, payment=result.payment)

    def reconcile_payment(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        resolution: str,
        amount_captured=None,
        candidates_delivered: Optional[int] = None,
        note: Optional[str] = None
    ) -> TransitionResult:
        """
        Resolve a payment whose settlement outcome was unknown.

        captured / partially_captured complete the delivery, released sends
        the request back to PricingApproved for a new authorization, and
        authorized clears the flag so delivery can be retried.
        """
        actor.require_operator("reconcile a payment")
        request = self._load(request_id, actor, S.AUTHORIZED)
        if request.payment_id is None:
            raise GuardViolationError(f"Request {request.id} has no payment to reconcile")

        result = self.settlement.reconcile(request.payment_id, actor, resolution, amount_captured, note)
        payment = result.payment
        self.repo.commit()

        if payment.status == PaymentStatus.RELEASED.value:
            self._transition(
                request, actor, S.AUTHORIZED, S.PRICING_APPROVED, EventType.AUTHORIZATION_EXPIRED,
                values={'payment_id': None},
                metadata={'payment_id': payment.id, 'reconciled': PaymentStatus.RELEASED},
            )
            self._notify(request, ShortlistEmailEvent.AUTHORIZATION_REQUIRED, actor)
        elif payment.status in CAPTURED_STATUSES:
            if candidates_delivered is None:
                candidates_delivered = self.repo.candidates.count_approved(request.id)
            partial = payment.status == PaymentStatus.PARTIALLY_CAPTURED.value
            kind = OutcomeKind.PARTIAL if partial else OutcomeKind.FULFILLED
            self._complete_delivery(request, actor, int(candidates_delivered), kind, result, note)
        else:
            self._touch(request)
        return TransitionResult.ok(request, payment=payment)

    def mark_no_match(self, request_id: uuid.UUID, actor: Actor, reason: str) -> TransitionResult:
        """Irreversible; releases any held payment before the status write."""
        actor.require_operator("mark a request as no match")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to mark a request as no match")
        request = self._load(request_id, actor, *NO_MATCH_FROM)
        previous = S(request.status)

        released = self._release_held_payment(request, actor, reason.strip())
        if released is not None and not released.success:
            return TransitionResult.failed(request, released.error_kind, released.message, payment=released.payment)

        self._transition(
            request, actor, previous, S.NO_MATCH, EventType.NO_MATCH,
            values={
                'outcome': ShortlistOutcome.NO_MATCH.value,
                'outcome_reason': reason.strip(),
                'decided_at': self.clock(),
                'decided_by': actor.actor_id,
            },
            metadata={'reason': reason.strip(), 'payment_released': bool(released and released.payment)},
        )
        self._notify(request, ShortlistEmailEvent.NO_MATCH, actor)
        return TransitionResult.ok(request, payment=released.payment if released else None)

    def cancel(self, request_id: uuid.UUID, actor: Actor, reason: Optional[str] = None) -> TransitionResult:
        request = self.get_request(request_id, actor)
        current = S(request.status)
        if current.is_terminal or current == S.DELIVERED:
            raise GuardViolationError(f"Request {request.id} cannot be cancelled from '{current.value}'")

        released = self._release_held_payment(request, actor, reason or "cancelled")
        if released is not None and not released.success:
            return TransitionResult.failed(request, released.error_kind, released.message, payment=released.payment)

        self._transition(
            request, actor, current, S.CANCELLED, EventType.CANCELLED,
            values={
                'outcome': ShortlistOutcome.CANCELLED.value,
                'outcome_reason': reason,
                'decided_at': self.clock(),
                'decided_by': actor.actor_id,
            },
            metadata={'reason': reason, 'payment_released': bool(released and released.payment)},
        )
        return TransitionResult.ok(request, payment=released.payment if released else None)

    # ------------------------------------------------------------------
    # Email history
    # ------------------------------------------------------------------

    def email_history(self, request_id: uuid.UUID, actor: Actor) -> List[ShortlistEmail]:
        actor.require_operator("read email history")
        request = self.get_request(request_id, actor)
        return self.repo.emails.list_for_request(request.id)

    def resend_last_email(self, request_id: uuid.UUID, actor: Actor) -> ShortlistEmail:
        actor.require_operator("resend emails")
        request = self.get_request(request_id, actor)
        if self.notifier is None:
            raise GuardViolationError("Notifications are not configured")
        return self.notifier.resend_last(request, actor)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: uuid.UUID, actor: Actor, *allowed: ShortlistStatus) -> ShortlistRequest:
        request = self.get_request(request_id, actor)
        self._guard(request, *allowed)
        return request

    @staticmethod
    def _guard(request: ShortlistRequest, *allowed: ShortlistStatus) -> None:
        if S(request.status) not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise GuardViolationError(
                f"Request {request.id} is '{request.status}'; expected one of: {expected}"
            )

    def _require_owner(self, request_id: uuid.UUID, actor: Actor, action: str) -> None:
        actor.require_company(action)
        self.get_request(request_id, actor)

    def _transition(
        self,
        request: ShortlistRequest,
        actor: Actor,
        expected: ShortlistStatus,
        new: ShortlistStatus,
        event_type: EventType,
        values: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        values = dict(values or {})
        values['updated_at'] = self.clock()
        self.repo.requests.compare_and_set_status(request, expected.value, new.value, **values)
        self.events.emit(request.id, event_type, actor, expected, new, metadata=metadata)
        logger.info(f"Request {request.id}: {expected.value} -> {new.value} by {actor.actor_type.value}")

    def _touch(self, request: ShortlistRequest) -> None:
        """Serialize bookkeeping writes against concurrent transitions."""
        self.repo.requests.update_fields(request, request.status, updated_at=self.clock())

    def _notify(self, request, event: ShortlistEmailEvent, actor: Actor, context=None) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(request, event, actor, context)

    def _release_held_payment(self, request: ShortlistRequest, actor: Actor, reason: str):
        """Release a held authorization and checkpoint the outcome; None when nothing was held."""
        payment = self.repo.payments.get_settleable_for_request(request.id)
        if payment is not None and payment.status in CAPTURED_STATUSES:
            raise GuardViolationError(
                f"Payment {payment.id} is already {payment.status}; complete the delivery instead"
            )
        if payment is None or payment.status != PaymentStatus.AUTHORIZED.value:
            return None
        result = self.settlement.release(request.id, actor, reason=reason)
        self.repo.commit()
        return result

    def _settlement_outcome(
        self,
        request: ShortlistRequest,
        delivered: int,
        requested: Optional[ShortlistOutcome],
        authorized
    ) -> SettlementOutcome:
        proposed = request.proposed_candidate_count or 0
        if delivered <= 0:
            raise ValidationError("Nothing to deliver; mark the request as no match instead")
        if requested == ShortlistOutcome.FULFILLED or (requested is None and delivered >= proposed):
            return SettlementOutcome.fulfilled()
        if delivered >= proposed:
            raise ValidationError(
                f"Partial delivery needs fewer than the {proposed} proposed candidates, got {delivered}"
            )
        discount = Decimal("1") - Decimal(delivered) / Decimal(proposed)
        outcome = SettlementOutcome.partial(discount.quantize(Decimal("0.0001")))
        capture = outcome.capture_amount(authorized)
        if capture <= 0:
            raise ValidationError(
                f"Partial capture of {delivered} of {proposed} candidates rounds to {capture}; "
                f"mark the request as no match instead"
            )
        return outcome

    def _complete_delivery(
        self,
        request: ShortlistRequest,
        actor: Actor,
        candidates_delivered: int,
        kind: OutcomeKind,
        result,
        reason: Optional[str]
    ) -> None:
        """Authorized -> Delivered -> Completed once the money has moved."""
        now = self.clock()
        self._transition(
            request, actor, S.AUTHORIZED, S.DELIVERED, EventType.DELIVERED,
            values={'delivered_at': now, 'candidates_delivered': candidates_delivered},
            metadata={'candidates_delivered': candidates_delivered, 'outcome': kind,
                      'payment_id': result.payment.id},
        )
        final_outcome = ShortlistOutcome.PARTIAL if kind == OutcomeKind.PARTIAL else ShortlistOutcome.FULFILLED
        self._transition(
            request, actor, S.DELIVERED, S.COMPLETED, EventType.COMPLETED,
            values={
                'outcome': final_outcome.value,
                'outcome_reason': reason,
                'decided_at': self.clock(),
                'decided_by': actor.actor_id,
            },
            metadata={'outcome': final_outcome, 'amount_captured': result.amount_captured},
        )
        self._notify(request, ShortlistEmailEvent.DELIVERED, actor)
        self._notify(request, ShortlistEmailEvent.COMPLETED, actor)

    def _run_matching(self, request: ShortlistRequest, re_include: Optional[Mapping[uuid.UUID, str]]):
        chain = self.repo.requests.get_chain(request)
        exclusions = exclusion_map(
            {'candidate_id': candidate_id, 'request_id': ancestor.id}
            for ancestor in chain
            for candidate_id in self.repo.candidates.approved_candidate_ids(ancestor.id)
        )
        follow_up = None
        if chain:
            follow_up = FollowUpContext(previous_request_id=chain[0].id, previous_created_at=chain[0].created_at)

        pool = [CandidateProfile.from_record(c) for c in self.repo.directory.list_matchable()]
        re_include = {_as_uuid(k): v for k, v in (re_include or {}).items()}
        return self.scorer.rank_candidates(
            pool,
            RoleRequirements.from_request(request),
            self.clock(),
            exclusions=exclusions,
            re_include=re_include,
            follow_up=follow_up,
        )

    @staticmethod
    def _candidate_row(match) -> ShortlistCandidate:
        return ShortlistCandidate(
            candidate_id=match.candidate_id,
            match_score=Decimal(str(match.score)),
            match_reason=match.reason,
            score_breakdown=match.breakdown.to_dict(),
            rank=match.rank,
            admin_approved=False,
            is_new=match.is_new,
            previously_recommended_in=match.previously_recommended_in,
            re_inclusion_reason=match.re_inclusion_reason,
        )

    @staticmethod
    def _copy_row(row: ShortlistCandidate) -> ShortlistCandidate:
        return ShortlistCandidate(
            candidate_id=row.candidate_id,
            match_score=row.match_score,
            match_reason=row.match_reason,
            score_breakdown=row.score_breakdown,
            rank=row.rank,
            admin_approved=True,
            is_new=row.is_new,
            previously_recommended_in=row.previously_recommended_in,
            re_inclusion_reason=row.re_inclusion_reason,
        )


def _as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid candidate id '{value}'")
