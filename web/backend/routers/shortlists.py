#!/usr/bin/env python3
"""
Shortlist endpoints for companies - request, review scope, pay.
"""

import logging
from fastapi import APIRouter, Depends

from core.actors import Actor
from ..dependencies import get_actor, get_shortlist_service
from ..services.shortlist_service import ShortlistService
from ..utils import parse_uuid
from ..models.requests import (
    AuthorizePaymentRequest,
    CancelRequest,
    ConfirmPaymentRequest,
    CreateShortlistRequest,
    DeclineScopeRequest,
)
from ..models.responses import PaymentResponse, ShortlistResponse, TransitionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shortlists", tags=["shortlists"])


@router.post("", response_model=ShortlistResponse, status_code=201)
def create_shortlist(
    body: CreateShortlistRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """
    Submit a new shortlist request.

    Follow-ups of a recently completed request are detected automatically
    and priced with a discount.
    """
    return service.create(actor, **body.model_dump())


@router.get("/{request_id}", response_model=ShortlistResponse)
def get_shortlist(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """
    Get a shortlist request.

    Companies see anonymized previews of approved candidates until the
    shortlist is completed, then full identities.
    """
    return service.get(parse_uuid(request_id, "request_id"), actor)


@router.post("/{request_id}/approve", response_model=TransitionResponse)
def approve_scope(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Accept the proposed price and candidate count."""
    return service.approve(parse_uuid(request_id, "request_id"), actor)


@router.post("/{request_id}/decline", response_model=TransitionResponse)
def decline_scope(
    request_id: str,
    body: DeclineScopeRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Reject the proposed scope; the request goes back to processing."""
    return service.decline(parse_uuid(request_id, "request_id"), actor, body.reason)


@router.post("/{request_id}/payment/authorize", response_model=PaymentResponse)
def authorize_payment(
    request_id: str,
    body: AuthorizePaymentRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """
    Hold funds for the approved price.

    Returns the customer step of the chosen rail where one is needed: a
    Stripe client secret, a PayPal approval URL or a USDC escrow address.
    """
    return service.authorize_payment(parse_uuid(request_id, "request_id"), actor, body.provider)


@router.post("/{request_id}/payment/confirm", response_model=PaymentResponse)
def confirm_payment(
    request_id: str,
    body: ConfirmPaymentRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Confirm a redirect or on-chain authorization after the customer step."""
    return service.confirm_payment(parse_uuid(request_id, "request_id"), actor, body.provider_reference)


@router.get("/{request_id}/payment", response_model=PaymentResponse)
def get_payment(
    request_id: str,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    return service.payment_status(parse_uuid(request_id, "request_id"), actor)


@router.post("/{request_id}/cancel", response_model=TransitionResponse)
def cancel_shortlist(
    request_id: str,
    body: CancelRequest,
    actor: Actor = Depends(get_actor),
    service: ShortlistService = Depends(get_shortlist_service)
):
    """Cancel the request, releasing any held payment first."""
    return service.cancel(parse_uuid(request_id, "request_id"), actor, body.reason)
