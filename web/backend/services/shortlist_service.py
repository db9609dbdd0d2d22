#!/usr/bin/env python3
"""
Shortlist service - runs each API operation as one unit of work.

Responses are built inside the unit of work; money-touching transitions
commit first and only then turn a failed result into an exception, so a
failed payment and its audit events are never rolled back.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from core.actors import Actor
from core.app_context import AppContext
from core.enums import PaymentStatus, ShortlistStatus
from core.errors import ExpiredAuthorizationError, ProviderError
from core.scorer.models import seniority_label
from core.shortlist import ShortlistStateMachine, TransitionResult
from database.models import Payment, ShortlistCandidate, ShortlistEmail, ShortlistEvent, ShortlistRequest
from database.uow import shortlist_uow
from ..models.responses import (
    CandidatePreview,
    DeliveredCandidate,
    EmailEntry,
    EventEntry,
    OperatorCandidate,
    PaymentSummary,
    ShortlistSummary,
)
from ..utils import iso, money, safe_float, str_or_none

logger = logging.getLogger(__name__)

TOP_SKILLS_IN_PREVIEW = 3


class ShortlistService:
    """Service for shortlist lifecycle operations."""

    def __init__(self, context: AppContext, session_factory=None):
        self.context = context
        self.session_factory = session_factory

    def _run(self, operation: Callable[[ShortlistStateMachine], Any]) -> Any:
        with shortlist_uow(self.session_factory, dispatcher=self.context.notification_service) as repo:
            return operation(self.context.state_machine(repo))

    # ------------------------------------------------------------------
    # Company and shared operations
    # ------------------------------------------------------------------

    def create(self, actor: Actor, **fields) -> Dict[str, Any]:
        def op(machine):
            request = machine.create_request(actor, **fields)
            return self._shortlist_view(machine, request, actor)
        return self._run(op)

    def get(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        def op(machine):
            return self._shortlist_view(machine, machine.get_request(request_id, actor), actor)
        return self._run(op)

    def approve(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        return self._run(lambda m: self._transition_view(m.approve_scope(request_id, actor)))

    def decline(self, request_id: uuid.UUID, actor: Actor, reason: Optional[str]) -> Dict[str, Any]:
        return self._run(lambda m: self._transition_view(m.decline_scope(request_id, actor, reason)))

    def cancel(self, request_id: uuid.UUID, actor: Actor, reason: Optional[str]) -> Dict[str, Any]:
        return self._settle(lambda m: m.cancel(request_id, actor, reason), actor)

    def authorize_payment(self, request_id: uuid.UUID, actor: Actor, provider: Optional[str]) -> Dict[str, Any]:
        def op(machine):
            result = machine.authorize_payment(request_id, actor, provider)
            return result, {
                'success': result.success,
                'status': result.status.value,
                'payment': payment_summary(result.payment, actor.is_operator),
                'client_secret': result.client_secret,
                'approval_url': result.approval_url,
                'escrow_address': result.escrow_address,
            }
        result, response = self._run(op)
        result.raise_for_error()
        return response

    def confirm_payment(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        provider_reference: Optional[str]
    ) -> Dict[str, Any]:
        def op(machine):
            result = machine.confirm_authorization(request_id, actor, provider_reference)
            return result, {
                'success': result.success,
                'status': result.status.value,
                'payment': payment_summary(result.payment, actor.is_operator),
            }
        result, response = self._run(op)
        result.raise_for_error()
        return response

    def payment_status(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        def op(machine):
            request = machine.get_request(request_id, actor)
            payment = machine.get_payment_status(request_id, actor)
            return {'success': True, 'status': request.status, 'payment': payment_summary(payment, actor.is_operator)}
        return self._run(op)

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    def start_processing(self, request_id: uuid.UUID, actor: Actor, re_include: Dict[uuid.UUID, str]) -> Dict[str, Any]:
        return self._run(lambda m: self._transition_view(m.start_processing(request_id, actor, re_include)))

    def rerun_matching(self, request_id: uuid.UUID, actor: Actor, re_include: Dict[uuid.UUID, str]) -> Dict[str, Any]:
        return self._run(lambda m: self._candidates_view(m.rerun_matching(request_id, actor, re_include)))

    def list_candidates(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        return self._run(lambda m: self._candidates_view(m.list_candidates(request_id, actor)))

    def update_rankings(self, request_id: uuid.UUID, actor: Actor, rankings: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._run(lambda m: self._candidates_view(m.update_rankings(request_id, actor, rankings)))

    def pricing_suggestion(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        candidate_count: Optional[int],
        is_rare: bool,
        free_regeneration: bool
    ) -> Dict[str, Any]:
        def op(machine):
            suggestion = machine.suggest_pricing(
                request_id, actor, candidate_count=candidate_count,
                is_rare=is_rare, free_regeneration=free_regeneration,
            )
            data = suggestion.to_dict()
            for key in ('suggested_price', 'list_price', 'base_price', 'size_adjustment', 'rare_premium'):
                data[key] = money(data[key])
            data['discount_percent'] = str(data['discount_percent'])
            return dict(success=True, **data)
        return self._run(op)

    def propose_scope(self, request_id: uuid.UUID, actor: Actor, price, candidate_count: int, notes: Optional[str]):
        return self._run(lambda m: self._transition_view(
            m.propose_scope(request_id, actor, price, candidate_count, notes)
        ))

    def deliver(self, request_id: uuid.UUID, actor: Actor, **fields) -> Dict[str, Any]:
        return self._settle(lambda m: m.deliver(request_id, actor, **fields), actor)

    def mark_no_match(self, request_id: uuid.UUID, actor: Actor, reason: str) -> Dict[str, Any]:
        return self._settle(lambda m: m.mark_no_match(request_id, actor, reason), actor)

    def reconcile_payment(self, request_id: uuid.UUID, actor: Actor, **fields) -> Dict[str, Any]:
        return self._settle(lambda m: m.reconcile_payment(request_id, actor, **fields), actor)

    def suggest_adjustment(self, request_id: uuid.UUID, actor: Actor, suggestion: str) -> Dict[str, Any]:
        return self._run(lambda m: self._transition_view(m.suggest_adjustment(request_id, actor, suggestion)))

    def extend_search(self, request_id: uuid.UUID, actor: Actor, days: int, notes: Optional[str]) -> Dict[str, Any]:
        return self._run(lambda m: self._transition_view(m.extend_search(request_id, actor, days, notes)))

    def events(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        def op(machine):
            events = [event_entry(e) for e in machine.get_events(request_id, actor)]
            return {'success': True, 'count': len(events), 'events': events}
        return self._run(op)

    def emails(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        def op(machine):
            emails = [email_entry(e) for e in machine.email_history(request_id, actor)]
            return {'success': True, 'count': len(emails), 'emails': emails}
        return self._run(op)

    def resend_last_email(self, request_id: uuid.UUID, actor: Actor) -> Dict[str, Any]:
        return self._run(lambda m: {'success': True, 'email': email_entry(m.resend_last_email(request_id, actor))})

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _settle(self, operation: Callable[[ShortlistStateMachine], TransitionResult], actor: Actor) -> Dict[str, Any]:
        def op(machine):
            result = operation(machine)
            return result, self._result_view(result, actor.is_operator)
        result, response = self._run(op)
        result.raise_for_error()
        return response

    @staticmethod
    def _transition_view(request: ShortlistRequest) -> Dict[str, Any]:
        return {'success': True, 'status': request.status, 'shortlist': shortlist_summary(request)}

    @staticmethod
    def _result_view(result: TransitionResult, is_operator: bool) -> Dict[str, Any]:
        return {
            'success': result.success,
            'status': result.status.value,
            'shortlist': shortlist_summary(result.request),
            'payment': payment_summary(result.payment, is_operator),
        }

    @staticmethod
    def _candidates_view(rows: List[ShortlistCandidate]) -> Dict[str, Any]:
        candidates = [operator_candidate(row) for row in rows]
        return {'success': True, 'count': len(candidates), 'candidates': candidates}

    def _shortlist_view(self, machine: ShortlistStateMachine, request: ShortlistRequest, actor: Actor) -> Dict[str, Any]:
        if actor.is_operator:
            candidates = [operator_candidate(row).model_dump() for row in machine.list_candidates(request.id, actor)]
        else:
            rows = machine.list_candidates(request.id, actor, approved_only=True)
            if request.status == ShortlistStatus.COMPLETED.value:
                candidates = [delivered_candidate(row).model_dump() for row in rows]
            else:
                candidates = [candidate_preview(row).model_dump() for row in rows]
        return {'success': True, 'shortlist': shortlist_summary(request), 'candidates': candidates}


def shortlist_summary(request: ShortlistRequest) -> ShortlistSummary:
    return ShortlistSummary(
        id=str(request.id),
        company_id=str(request.company_id),
        role_title=request.role_title,
        required_skills=list(request.required_skills or []),
        seniority=request.seniority,
        location_city=request.location_city,
        location_country=request.location_country,
        location_timezone=request.location_timezone,
        remote_allowed=bool(request.remote_allowed),
        status=request.status,
        pricing_type=request.pricing_type,
        previous_request_id=str_or_none(request.previous_request_id),
        follow_up_discount=str_or_none(request.follow_up_discount),
        proposed_candidate_count=request.proposed_candidate_count,
        proposed_price=money(request.proposed_price),
        scope_notes=request.scope_notes,
        scope_proposed_at=iso(request.scope_proposed_at),
        adjustment_suggestion=request.adjustment_suggestion,
        search_deadline=iso(request.search_deadline),
        candidates_delivered=request.candidates_delivered,
        delivered_at=iso(request.delivered_at),
        outcome=request.outcome,
        outcome_reason=request.outcome_reason,
        payment_id=str_or_none(request.payment_id),
        created_at=iso(request.created_at),
        updated_at=iso(request.updated_at),
    )


def payment_summary(payment: Optional[Payment], is_operator: bool) -> Optional[PaymentSummary]:
    """Companies see generic failure texts; provider detail stays with operators."""
    if payment is None:
        return None
    error_message = payment.error_message
    if not is_operator and error_message:
        if payment.status == PaymentStatus.EXPIRED.value:
            error_message = ExpiredAuthorizationError.public_message
        else:
            error_message = ProviderError.public_message
    return PaymentSummary(
        id=str(payment.id),
        provider=payment.provider,
        status=payment.status,
        amount_authorized=money(payment.amount_authorized),
        amount_captured=money(payment.amount_captured),
        currency=payment.currency,
        requires_confirmation=bool(payment.requires_confirmation),
        confirmed=payment.confirmed_at is not None,
        reconciliation_required=bool(payment.reconciliation_required),
        provider_reference=payment.provider_reference,
        error_message=error_message,
        authorized_at=iso(payment.authorized_at),
        captured_at=iso(payment.captured_at),
        released_at=iso(payment.released_at),
    )


def operator_candidate(row: ShortlistCandidate) -> OperatorCandidate:
    return OperatorCandidate(
        candidate_id=str(row.candidate_id),
        rank=row.rank,
        match_score=safe_float(row.match_score, 0.0),
        match_reason=row.match_reason,
        score_breakdown=row.score_breakdown or {},
        admin_approved=bool(row.admin_approved),
        is_new=bool(row.is_new),
        previously_recommended_in=str_or_none(row.previously_recommended_in),
        re_inclusion_reason=row.re_inclusion_reason,
    )


def _preview_fields(row: ShortlistCandidate) -> Dict[str, Any]:
    candidate = row.candidate
    skills = sorted(candidate.skills or [], key=lambda s: (-(s.confidence or 0), s.skill_name.lower()))
    return {
        'rank': row.rank,
        'role': candidate.desired_role,
        'seniority': seniority_label(candidate.seniority),
        'top_skills': [s.skill_name for s in skills[:TOP_SKILLS_IN_PREVIEW]],
        'region': candidate.country,
        'availability': candidate.availability,
        'match_reason': row.match_reason,
        'is_new': bool(row.is_new),
    }


def candidate_preview(row: ShortlistCandidate) -> CandidatePreview:
    return CandidatePreview(**_preview_fields(row))


def delivered_candidate(row: ShortlistCandidate) -> DeliveredCandidate:
    return DeliveredCandidate(
        candidate_id=str(row.candidate_id),
        full_name=row.candidate.full_name,
        email=row.candidate.email,
        **_preview_fields(row),
    )


def event_entry(event: ShortlistEvent) -> EventEntry:
    return EventEntry(
        id=event.id,
        event_type=event.event_type,
        previous_status=event.previous_status,
        new_status=event.new_status,
        actor_id=event.actor_id,
        actor_type=event.actor_type,
        metadata=event.event_metadata or {},
        created_at=iso(event.created_at),
    )


def email_entry(email: ShortlistEmail) -> EmailEntry:
    return EmailEntry(
        id=str(email.id),
        email_event=email.email_event,
        sent_to=email.sent_to,
        sent_by=email.sent_by,
        is_resend=bool(email.is_resend),
        subject=email.subject,
        delivery_status=email.delivery_status,
        delivery_error=email.delivery_error,
        sent_at=iso(email.sent_at),
        delivered_at=iso(email.delivered_at),
    )
