import uuid

from sqlalchemy import Column, Text, DateTime, ForeignKey, Boolean, Integer, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from .base import Base, UUIDType, JSONType, utc_now


class ShortlistRequest(Base):
    """
    A company's request for a curated, priced candidate shortlist.

    Lifecycle fields are only ever written through the state machine's
    compare-and-swap update (see ShortlistRequestRepository).
    """
    __tablename__ = 'shortlist_request'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    company_id = Column(UUIDType, ForeignKey('company.id'), nullable=False, index=True)

    # Role requirements
    role_title = Column(Text, nullable=False)
    required_skills = Column(JSONType, nullable=False, default=list)
    seniority = Column(Integer, nullable=True)  # SeniorityLevel value
    location_city = Column(Text, nullable=True)
    location_country = Column(Text, nullable=True)
    location_timezone = Column(Text, nullable=True)
    remote_allowed = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default='submitted')

    # Follow-up chain and pricing classification
    previous_request_id = Column(UUIDType, ForeignKey('shortlist_request.id', ondelete='SET NULL'), nullable=True)
    pricing_type = Column(Text, nullable=False, default='new')  # new, follow_up, free_regen
    follow_up_discount = Column(Numeric(5, 2), nullable=False, default=0)

    # Scope proposal (set only while pricing is pending or later)
    proposed_candidate_count = Column(Integer, nullable=True)
    proposed_price = Column(Numeric(12, 2), nullable=True)
    scope_proposed_at = Column(DateTime(timezone=True), nullable=True)
    scope_notes = Column(Text, nullable=True)
    scope_approved_at = Column(DateTime(timezone=True), nullable=True)

    # Operator feedback loop
    adjustment_suggestion = Column(Text, nullable=True)
    search_extended_at = Column(DateTime(timezone=True), nullable=True)
    search_deadline = Column(DateTime(timezone=True), nullable=True)
    extension_notes = Column(Text, nullable=True)

    # Delivery and outcome
    candidates_delivered = Column(Integer, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    outcome = Column(Text, nullable=False, default='pending')
    outcome_reason = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decided_by = Column(Text, nullable=True)

    # Set iff status >= authorized; the payment table references back
    payment_id = Column(UUIDType, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    candidates = relationship(
        "ShortlistCandidate",
        back_populates="shortlist_request",
        foreign_keys="ShortlistCandidate.shortlist_request_id",
        order_by="ShortlistCandidate.rank",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index('idx_shortlist_request_company_created', 'company_id', 'created_at'),
        Index('idx_shortlist_request_previous', 'previous_request_id'),
        Index('idx_shortlist_request_status', 'status'),
    )


class ShortlistCandidate(Base):
    """A ranked candidate within one shortlist request."""
    __tablename__ = 'shortlist_candidate'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    shortlist_request_id = Column(UUIDType, ForeignKey('shortlist_request.id', ondelete='CASCADE'), nullable=False)
    candidate_id = Column(UUIDType, ForeignKey('candidate.id'), nullable=False)

    match_score = Column(Numeric(5, 2), nullable=False)
    match_reason = Column(Text, nullable=True)
    score_breakdown = Column(JSONType, default=dict)
    rank = Column(Integer, nullable=False)
    admin_approved = Column(Boolean, nullable=False, default=False)

    # Versioning across a follow-up chain
    is_new = Column(Boolean, nullable=False, default=True)
    previously_recommended_in = Column(UUIDType, ForeignKey('shortlist_request.id', ondelete='SET NULL'), nullable=True)
    re_inclusion_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    shortlist_request = relationship(
        "ShortlistRequest",
        back_populates="candidates",
        foreign_keys=[shortlist_request_id],
    )
    candidate = relationship("Candidate")

    __table_args__ = (
        UniqueConstraint('shortlist_request_id', 'candidate_id', name='uq_shortlist_candidate'),
        UniqueConstraint('shortlist_request_id', 'rank', name='uq_shortlist_candidate_rank'),
        Index('idx_shortlist_candidate_is_new', 'shortlist_request_id', 'is_new'),
    )
