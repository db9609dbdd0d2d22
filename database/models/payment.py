import uuid

from sqlalchemy import Column, Text, DateTime, ForeignKey, Boolean, Numeric, Index, CheckConstraint, text

from .base import Base, UUIDType, utc_now


class Payment(Base):
    """
    Financial record for one authorization attempt.

    Written only by the settlement engine and never deleted.
    """
    __tablename__ = 'payment'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    company_id = Column(UUIDType, ForeignKey('company.id'), nullable=False, index=True)
    shortlist_request_id = Column(UUIDType, ForeignKey('shortlist_request.id'), nullable=True)

    provider = Column(Text, nullable=False)  # stripe, paypal, usdc
    provider_reference = Column(Text, nullable=True)  # opaque external id
    capture_reference = Column(Text, nullable=True)

    amount_authorized = Column(Numeric(12, 2), nullable=False, default=0)
    amount_captured = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(Text, nullable=False, default='USD')

    status = Column(Text, nullable=False, default='none')
    requires_confirmation = Column(Boolean, nullable=False, default=False)
    reconciliation_required = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    authorized_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    captured_at = Column(DateTime(timezone=True), nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint('amount_captured >= 0', name='ck_payment_captured_non_negative'),
        CheckConstraint('amount_captured <= amount_authorized', name='ck_payment_captured_le_authorized'),
        Index('idx_payment_request', 'shortlist_request_id', 'created_at'),
        # At most one payment per request may hold or have moved money
        Index(
            'uq_payment_active_request',
            'shortlist_request_id',
            unique=True,
            postgresql_where=text("status IN ('none', 'authorized', 'captured', 'partially_captured')"),
            sqlite_where=text("status IN ('none', 'authorized', 'captured', 'partially_captured')"),
        ),
    )
