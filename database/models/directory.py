import uuid

from sqlalchemy import Column, Text, DateTime, ForeignKey, Boolean, Integer, Float, Index
from sqlalchemy.orm import relationship

from .base import Base, UUIDType, utc_now


class Company(Base):
    """
    Hiring company, read-only from the shortlist core.

    Profile management lives in the company directory service; the core
    only needs the contact address for lifecycle emails.
    """
    __tablename__ = 'company'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    contact_email = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Candidate(Base):
    """
    Candidate profile attributes the Scoring Engine reads.

    Maintained by the candidate directory service.
    """
    __tablename__ = 'candidate'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    full_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)

    desired_role = Column(Text, nullable=True)
    seniority = Column(Integer, nullable=True)  # SeniorityLevel value

    # Location
    city = Column(Text, nullable=True)
    country = Column(Text, nullable=True)
    timezone = Column(Text, nullable=True)  # IANA name, e.g. Europe/Berlin
    remote_preference = Column(Text, nullable=True)  # onsite, hybrid, remote, flexible
    willing_to_relocate = Column(Boolean, nullable=False, default=False)

    availability = Column(Text, nullable=False, default='passive')  # open, passive, not_now
    profile_visible = Column(Boolean, nullable=False, default=True)
    open_to_opportunities = Column(Boolean, nullable=False, default=True)

    recommendation_count = Column(Integer, nullable=False, default=0)
    last_recommended_at = Column(DateTime(timezone=True), nullable=True)

    last_active_at = Column(DateTime(timezone=True), nullable=True)
    profile_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    skills = relationship("CandidateSkill", back_populates="candidate", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_candidate_pool', 'profile_visible', 'open_to_opportunities'),
    )


class CandidateSkill(Base):
    __tablename__ = 'candidate_skill'

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    candidate_id = Column(UUIDType, ForeignKey('candidate.id', ondelete='CASCADE'), nullable=False, index=True)
    skill_name = Column(Text, nullable=False)
    confidence = Column(Float, nullable=False, default=1.0)  # 0-1

    candidate = relationship("Candidate", back_populates="skills")
