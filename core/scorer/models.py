#!/usr/bin/env python3
"""
Scoring Models - Data structures for candidate scoring inputs and results.

The engine never touches the database: callers convert directory rows into
CandidateProfile / RoleRequirements before scoring.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.enums import SeniorityLevel
from core.utils import as_utc, normalize_skills


@dataclass(frozen=True)
class SkillRecord:
    name: str
    confidence: float = 1.0


@dataclass
class CandidateProfile:
    """Scoring view of a candidate."""
    candidate_id: uuid.UUID
    role_title: Optional[str] = None
    seniority: Optional[int] = None
    skills: List[SkillRecord] = field(default_factory=list)
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    remote_preference: Optional[str] = None
    willing_to_relocate: bool = False
    availability: Optional[str] = None
    recommendation_count: int = 0
    last_recommended_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None
    profile_updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    profile_visible: bool = True
    open_to_opportunities: bool = True

    @property
    def is_matchable(self) -> bool:
        return bool(self.profile_visible and self.open_to_opportunities)

    @classmethod
    def from_record(cls, candidate: Any) -> "CandidateProfile":
        """Build from a directory row (any object with the candidate attributes)."""
        return cls(
            candidate_id=candidate.id,
            role_title=candidate.desired_role,
            seniority=candidate.seniority,
            skills=[
                SkillRecord(name=s.skill_name, confidence=float(s.confidence if s.confidence is not None else 1.0))
                for s in (candidate.skills or [])
            ],
            city=candidate.city,
            country=candidate.country,
            timezone=candidate.timezone,
            remote_preference=candidate.remote_preference,
            willing_to_relocate=bool(candidate.willing_to_relocate),
            availability=candidate.availability,
            recommendation_count=candidate.recommendation_count or 0,
            last_recommended_at=as_utc(candidate.last_recommended_at),
            last_active_at=as_utc(candidate.last_active_at),
            profile_updated_at=as_utc(candidate.profile_updated_at),
            created_at=as_utc(candidate.created_at),
            profile_visible=bool(candidate.profile_visible),
            open_to_opportunities=bool(candidate.open_to_opportunities),
        )


@dataclass
class RoleRequirements:
    """What a shortlist request asks for."""
    role_title: Optional[str] = None
    required_skills: List[str] = field(default_factory=list)
    seniority: Optional[int] = None
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    remote_allowed: bool = False

    @classmethod
    def from_request(cls, request: Any) -> "RoleRequirements":
        return cls(
            role_title=request.role_title,
            required_skills=normalize_skills(request.required_skills),
            seniority=request.seniority,
            city=request.location_city,
            country=request.location_country,
            timezone=request.location_timezone,
            remote_allowed=bool(request.remote_allowed),
        )


@dataclass(frozen=True)
class FollowUpContext:
    """Previous request in the chain, for freshness scoring."""
    previous_request_id: uuid.UUID
    previous_created_at: datetime


@dataclass
class ScoreBreakdown:
    skills: float = 0.0
    seniority: float = 0.0
    role: float = 0.0
    recency: float = 0.0
    location: float = 0.0
    availability: float = 0.0
    recommendations: float = 0.0
    freshness_bonus: float = 0.0
    matched_skills: List[str] = field(default_factory=list)

    @property
    def base(self) -> float:
        return (
            self.skills + self.seniority + self.role + self.recency
            + self.location + self.availability + self.recommendations
        )

    @property
    def total(self) -> float:
        """Base plus freshness bonus, clamped to [0, 100] and rounded to cents."""
        return round(max(0.0, min(100.0, self.base + self.freshness_bonus)), 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'skills': round(self.skills, 2),
            'seniority': round(self.seniority, 2),
            'role': round(self.role, 2),
            'recency': round(self.recency, 2),
            'location': round(self.location, 2),
            'availability': round(self.availability, 2),
            'recommendations': round(self.recommendations, 2),
            'freshness_bonus': round(self.freshness_bonus, 2),
            'matched_skills': list(self.matched_skills),
        }


@dataclass
class CandidateMatch:
    """One ranked entry of a scoring run."""
    candidate_id: uuid.UUID
    score: float
    reason: str
    breakdown: ScoreBreakdown
    rank: int = 0
    is_new: bool = True
    previously_recommended_in: Optional[uuid.UUID] = None
    re_inclusion_reason: Optional[str] = None
    last_active_at: Optional[datetime] = None


def seniority_label(level: Optional[int]) -> Optional[str]:
    if level is None:
        return None
    try:
        return SeniorityLevel(int(level)).name.capitalize()
    except ValueError:
        return None
