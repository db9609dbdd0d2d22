import uuid

from sqlalchemy import Column, Text, DateTime, ForeignKey, Boolean, Index
from sqlalchemy.sql import text as sql_text

from .base import Base, UUIDType, utc_now


class ShortlistEmail(Base):
    """
    Tracks lifecycle emails for deduplication.

    Each email event is recorded once per shortlist request; manual
    resends add rows flagged ``is_resend`` that bypass the unique index.
    """
    __tablename__ = 'shortlist_email'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    shortlist_request_id = Column(UUIDType, ForeignKey('shortlist_request.id', ondelete='CASCADE'), nullable=False)

    email_event = Column(Text, nullable=False)
    sent_to = Column(Text, nullable=False)
    sent_by = Column(Text, nullable=True)  # actor id, or None for system
    is_resend = Column(Boolean, nullable=False, default=False)

    subject = Column(Text, nullable=True)

    # Delivery outcome, written by the notification worker
    delivery_status = Column(Text, nullable=False, default='queued')  # queued, sent, failed, dropped
    delivery_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    sent_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        # One non-resend row per (request, event)
        Index(
            'uq_shortlist_email_event',
            'shortlist_request_id', 'email_event',
            unique=True,
            postgresql_where=sql_text('is_resend = false'),
            sqlite_where=sql_text('is_resend = 0'),
        ),
        Index('idx_shortlist_email_request', 'shortlist_request_id', 'sent_at'),
    )
