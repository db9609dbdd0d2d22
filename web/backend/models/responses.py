#!/usr/bin/env python3
"""
Response models for API endpoints.

Money is serialized as two-decimal strings.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class CandidatePreview(BaseModel):
    """Anonymized candidate shown to the company before delivery completes."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "rank": 1,
                "role": "Backend Engineer",
                "seniority": "Senior",
                "top_skills": ["Python", "PostgreSQL", "Docker"],
                "region": "Germany",
                "availability": "open",
                "match_reason": "Matches 2/2 required skills: Python, PostgreSQL; Senior level",
                "is_new": True
            }
        }
    )

    rank: int
    role: Optional[str] = None
    seniority: Optional[str] = None
    top_skills: List[str] = Field(default_factory=list)
    region: Optional[str] = None
    availability: Optional[str] = None
    match_reason: Optional[str] = None
    is_new: bool = True


class DeliveredCandidate(CandidatePreview):
    """Full candidate identity, visible once the shortlist is completed."""
    candidate_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None


class OperatorCandidate(BaseModel):
    """Operator view of a ranked candidate including the score breakdown."""
    candidate_id: str
    rank: int
    match_score: float = Field(ge=0, le=100)
    match_reason: Optional[str] = None
    score_breakdown: Dict[str, Any] = Field(default_factory=dict)
    admin_approved: bool
    is_new: bool
    previously_recommended_in: Optional[str] = None
    re_inclusion_reason: Optional[str] = None


class ShortlistSummary(BaseModel):
    id: str
    company_id: str
    role_title: str
    required_skills: List[str]
    seniority: Optional[int] = None
    location_city: Optional[str] = None
    location_country: Optional[str] = None
    location_timezone: Optional[str] = None
    remote_allowed: bool
    status: str
    pricing_type: str
    previous_request_id: Optional[str] = None
    follow_up_discount: Optional[str] = None
    proposed_candidate_count: Optional[int] = None
    proposed_price: Optional[str] = None
    scope_notes: Optional[str] = None
    scope_proposed_at: Optional[str] = None
    adjustment_suggestion: Optional[str] = None
    search_deadline: Optional[str] = None
    candidates_delivered: Optional[int] = None
    delivered_at: Optional[str] = None
    outcome: str
    outcome_reason: Optional[str] = None
    payment_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ShortlistResponse(BaseModel):
    """A request plus the candidate view appropriate for the caller."""
    success: bool
    shortlist: ShortlistSummary
    candidates: List[Any] = Field(default_factory=list)


class PaymentSummary(BaseModel):
    id: str
    provider: str
    status: str
    amount_authorized: str
    amount_captured: str
    currency: str
    requires_confirmation: bool
    confirmed: bool
    reconciliation_required: bool
    provider_reference: Optional[str] = None
    error_message: Optional[str] = None
    authorized_at: Optional[str] = None
    captured_at: Optional[str] = None
    released_at: Optional[str] = None


class PaymentResponse(BaseModel):
    """Payment state plus the customer step of the chosen rail, if any."""
    success: bool
    status: str
    payment: Optional[PaymentSummary] = None
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    escrow_address: Optional[str] = None


class TransitionResponse(BaseModel):
    success: bool
    status: str
    shortlist: ShortlistSummary
    payment: Optional[PaymentSummary] = None


class CandidatesResponse(BaseModel):
    success: bool
    count: int
    candidates: List[OperatorCandidate]


class PricingSuggestionResponse(BaseModel):
    success: bool
    suggested_price: str
    list_price: str
    base_price: str
    size_adjustment: str
    rare_premium: str
    discount_percent: str
    seniority: Optional[str] = None
    candidate_count: int
    is_rare: bool


class EventEntry(BaseModel):
    id: int
    event_type: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    actor_id: Optional[str] = None
    actor_type: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class EventsResponse(BaseModel):
    success: bool
    count: int
    events: List[EventEntry]


class EmailEntry(BaseModel):
    id: str
    email_event: str
    sent_to: str
    sent_by: Optional[str] = None
    is_resend: bool
    subject: Optional[str] = None
    delivery_status: str
    delivery_error: Optional[str] = None
    sent_at: Optional[str] = None
    delivered_at: Optional[str] = None


class EmailsResponse(BaseModel):
    success: bool
    count: int
    emails: List[EmailEntry]


class ResendResponse(BaseModel):
    success: bool
    email: EmailEntry
