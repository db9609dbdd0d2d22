from sqlalchemy import Column, Text, DateTime, ForeignKey, BigInteger, Integer, Index

from .base import Base, UUIDType, JSONType, utc_now


class ShortlistEvent(Base):
    """
    Append-only audit log of lifecycle transitions and payment actions.

    Rows are never updated or deleted; history is read in
    (created_at, id) order.
    """
    __tablename__ = 'shortlist_event'

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    shortlist_request_id = Column(UUIDType, ForeignKey('shortlist_request.id'), nullable=False)

    event_type = Column(Text, nullable=False)
    previous_status = Column(Text, nullable=True)
    new_status = Column(Text, nullable=True)

    actor_id = Column(Text, nullable=True)
    actor_type = Column(Text, nullable=False)  # system, operator, company

    event_metadata = Column('metadata', JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index('idx_shortlist_event_request', 'shortlist_request_id', 'created_at', 'id'),
    )
