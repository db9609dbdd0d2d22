#!/usr/bin/env python3
"""
Request models for API endpoints.
"""

import uuid
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union


class CreateShortlistRequest(BaseModel):
    """Company request for a new shortlist."""
    role_title: str = Field(..., min_length=1, description="Role being hired for")
    required_skills: List[str] = Field(default_factory=list)
    seniority: Optional[Union[int, str]] = Field(
        None, description="junior, mid, senior, lead, principal (or 0-4)"
    )
    location_city: Optional[str] = None
    location_country: Optional[str] = None
    location_timezone: Optional[str] = Field(None, description="IANA timezone, e.g. Europe/Berlin")
    remote_allowed: bool = False
    notes: Optional[str] = None
    previous_request_id: Optional[uuid.UUID] = Field(
        None, description="Completed request this one follows up on"
    )


class DeclineScopeRequest(BaseModel):
    reason: Optional[str] = None


class AuthorizePaymentRequest(BaseModel):
    provider: Optional[str] = Field(None, description="stripe, paypal or usdc (defaults to config)")


class ConfirmPaymentRequest(BaseModel):
    provider_reference: Optional[str] = Field(
        None, description="Provider-side id from the customer step, e.g. a Solana transaction signature"
    )


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class StartProcessingRequest(BaseModel):
    re_include: Dict[uuid.UUID, str] = Field(
        default_factory=dict,
        description="Previously recommended candidates to bring back, with the reason"
    )


class RankingChange(BaseModel):
    candidate_id: uuid.UUID
    rank: Optional[int] = Field(None, ge=1)
    admin_approved: Optional[bool] = None


class UpdateRankingsRequest(BaseModel):
    rankings: List[RankingChange] = Field(..., min_length=1)


class ProposeScopeRequest(BaseModel):
    """Operator's price and candidate-count offer."""
    price: Decimal = Field(..., gt=0, description="Price in the settlement currency")
    candidate_count: int = Field(..., gt=0)
    notes: Optional[str] = None


class DeliverRequest(BaseModel):
    candidates_delivered: Optional[int] = Field(None, ge=0, description="Defaults to the approved candidates")
    outcome: Optional[str] = Field(None, description="fulfilled, partial or no_match (derived when omitted)")
    reason: Optional[str] = None


class NoMatchRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ReconcilePaymentRequest(BaseModel):
    resolution: str = Field(..., description="captured, partially_captured, released or authorized")
    amount_captured: Optional[Decimal] = Field(None, ge=0, description="Required for partially_captured")
    candidates_delivered: Optional[int] = Field(None, ge=1)
    note: Optional[str] = None


class SuggestAdjustmentRequest(BaseModel):
    suggestion: str = Field(..., min_length=1)


class ExtendSearchRequest(BaseModel):
    days: int = Field(default=7, ge=1, le=90)
    notes: Optional[str] = None
