#!/usr/bin/env python3
"""
Operator endpoints - matching, curation, scope, delivery and audit.

Operator-only checks live in the state machine, so a company calling
these gets a 403 rather than a hidden route.
"""

import logging
from fastapi import APIRouter, Depends, Query

from core.actors import Actor
from ..dependencies import get_actor, get_shortlist_service
from ..services.shortlist_service import ShortlistService
from ..utils import parse_uuid
from ..models.requests import (
    CancelRequest,
    DeliverRequest,
    ExtendSearchRequest,
    NoMatchRequest,
    ProposeScopeRequest,
    ReconcilePaymentRequest,
    StartProcessingRequest,
    SuggestAdjustmentRequest,
    UpdateRankingsRequest,
)
from ..models.responses import (
    CandidatesResponse,
    EmailsResponse,
    EventsResponse,
    PricingSuggestionResponse,
    ResendResponse,
    ShortlistResponse,
    TransitionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/shortlists", tags=["admin"])


@router.get("/{request_id}", response_model=ShortlistResponse)
def get_shortlist(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.get(parse_uuid(request_id, "request_id"), actor)


@router.post("/{request_id}/process", response_model=TransitionResponse)
def start_processing(
    request_id: str,
    body: StartProcessingRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """
    Start processing a submitted request.

    Scores the candidate pool, excluding anyone already recommended in the
    follow-up chain unless listed in re_include.
    """
    return service.start_processing(parse_uuid(request_id, "request_id"), actor, body.re_include)


@router.post("/{request_id}/rematch", response_model=CandidatesResponse)
def rerun_matching(
    request_id: str,
    body: StartProcessingRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Score again, keeping approved candidates at the top."""
    return service.rerun_matching(parse_uuid(request_id, "request_id"), actor, body.re_include)


@router.get("/{request_id}/candidates", response_model=CandidatesResponse)
def list_candidates(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.list_candidates(parse_uuid(request_id, "request_id"), actor)


@router.put("/{request_id}/rankings", response_model=CandidatesResponse)
def update_rankings(
    request_id: str,
    body: UpdateRankingsRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """
    Re-rank and approve candidates.

    The resulting ranks must be unique and consecutive starting at 1.
    """
    rankings = [change.model_dump() for change in body.rankings]
    return service.update_rankings(parse_uuid(request_id, "request_id"), actor, rankings)


@router.get("/{request_id}/pricing-suggestion", response_model=PricingSuggestionResponse)
def pricing_suggestion(
    request_id: str,
    candidate_count: int = Query(default=None, ge=1, description="Defaults to the approved candidates"),
    is_rare: bool = Query(default=False, description="Apply the rare-role premium"),
    free_regeneration: bool = Query(default=False, description="Price a free regeneration at zero"),
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.pricing_suggestion(
        parse_uuid(request_id, "request_id"), actor,
        candidate_count=candidate_count, is_rare=is_rare, free_regeneration=free_regeneration,
    )


@router.post("/{request_id}/propose", response_model=TransitionResponse)
def propose_scope(
    request_id: str,
    body: ProposeScopeRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Offer a price and candidate count to the company."""
    return service.propose_scope(
        parse_uuid(request_id, "request_id"), actor, body.price, body.candidate_count, body.notes
    )


@router.post("/{request_id}/deliver", response_model=TransitionResponse)
def deliver(
    request_id: str,
    body: DeliverRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """
    Deliver the shortlist and settle the payment.

    A partial delivery captures the delivered share; no_match releases
    the hold instead.
    """
    return service.deliver(parse_uuid(request_id, "request_id"), actor, **body.model_dump())


@router.post("/{request_id}/no-match", response_model=TransitionResponse)
def mark_no_match(
    request_id: str,
    body: NoMatchRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.mark_no_match(parse_uuid(request_id, "request_id"), actor, body.reason)


@router.post("/{request_id}/reconcile", response_model=TransitionResponse)
def reconcile_payment(
    request_id: str,
    body: ReconcilePaymentRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Record what the provider actually did after an unknown settlement outcome."""
    return service.reconcile_payment(parse_uuid(request_id, "request_id"), actor, **body.model_dump())


@router.post("/{request_id}/suggest-adjustment", response_model=TransitionResponse)
def suggest_adjustment(
    request_id: str,
    body: SuggestAdjustmentRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.suggest_adjustment(parse_uuid(request_id, "request_id"), actor, body.suggestion)


@router.post("/{request_id}/extend-search", response_model=TransitionResponse)
def extend_search(
    request_id: str,
    body: ExtendSearchRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.extend_search(parse_uuid(request_id, "request_id"), actor, body.days, body.notes)


@router.post("/{request_id}/cancel", response_model=TransitionResponse)
def cancel_shortlist(
    request_id: str,
    body: CancelRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.cancel(parse_uuid(request_id, "request_id"), actor, body.reason)


@router.get("/{request_id}/events", response_model=EventsResponse)
def get_events(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Audit history, oldest first."""
    return service.events(parse_uuid(request_id, "request_id"), actor)


@router.get("/{request_id}/emails", response_model=EmailsResponse)
def get_emails(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.emails(parse_uuid(request_id, "request_id"), actor)


@router.post("/{request_id}/emails/resend-last", response_model=ResendResponse)
def resend_last_email(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.resend_last_email(parse_uuid(request_id, "request_id"), actor)
