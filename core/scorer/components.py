#!/usr/bin/env python3
"""
Score components - one pure function per weighted component.

Each function returns points already scaled onto its configured weight.
Missing inputs score half the weight (neutral), so an unspecified
requirement neither helps nor sinks a candidate.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config_loader import ScoringConfig
from core.enums import Availability, RemotePreference
from core.scorer.models import CandidateProfile, RoleRequirements, FollowUpContext, seniority_label
from core.utils import as_utc, days_between, jaccard, role_tokens, skill_matches

logger = logging.getLogger(__name__)


def skill_score(
    candidate: CandidateProfile,
    requirements: RoleRequirements,
    config: ScoringConfig
) -> Tuple[float, List[str]]:
    """
    Skills component.

    Formula: (overlap_ratio * 0.7 + mean_confidence_of_matched * 0.3) * weight

    overlap_ratio counts required skills matched by any candidate skill
    (case-insensitive substring, either direction); the confidence mean is
    taken over the candidate skills that match any required skill.

    Returns: (points, matched required skill names)
    """
    weight = config.weights.skills
    required = requirements.required_skills
    if not required:
        return weight / 2.0, []

    matched = [
        req for req in required
        if any(skill_matches(req, skill.name) for skill in candidate.skills)
    ]
    overlap_ratio = len(matched) / len(required)

    confidences = [
        max(0.0, min(1.0, skill.confidence))
        for skill in candidate.skills
        if any(skill_matches(req, skill.name) for req in required)
    ]
    mean_confidence = sum(confidences) / len(confidences) if confidences else 0.0

    points = (
        overlap_ratio * config.skill_overlap_share
        + mean_confidence * config.skill_confidence_share
    ) * weight
    return points, matched


def seniority_score(candidate: CandidateProfile, requirements: RoleRequirements, config: ScoringConfig) -> float:
    weight = config.weights.seniority
    if requirements.seniority is None or candidate.seniority is None:
        return weight / 2.0
    distance = abs(int(requirements.seniority) - int(candidate.seniority))
    factors = config.seniority_factors
    return factors[min(distance, len(factors) - 1)] * weight


def role_score(candidate: CandidateProfile, requirements: RoleRequirements, config: ScoringConfig) -> float:
    weight = config.weights.role
    if not requirements.role_title or not candidate.role_title:
        return weight / 2.0
    return jaccard(role_tokens(requirements.role_title), role_tokens(candidate.role_title)) * weight


def recency_factor(last_active_at: Optional[datetime], now: datetime, config: ScoringConfig) -> float:
    if last_active_at is None:
        return config.recency_floor
    days = max(0.0, days_between(last_active_at, now))
    for upper_bound, factor in config.recency_steps:
        if days < upper_bound:
            return factor
    return config.recency_floor


def recency_score(candidate: CandidateProfile, now: datetime, config: ScoringConfig) -> float:
    return recency_factor(candidate.last_active_at, now, config) * config.weights.recency


def _same_place(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left and right and left.strip().casefold() == right.strip().casefold())


def _utc_offset_hours(zone_name: Optional[str], at: datetime) -> Optional[float]:
    if not zone_name:
        return None
    try:
        zone = ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug(f"Unknown timezone '{zone_name}'")
        return None
    offset = as_utc(at).astimezone(zone).utcoffset()
    return offset.total_seconds() / 3600.0 if offset is not None else None


def location_raw_points(
    candidate: CandidateProfile,
    requirements: RoleRequirements,
    now: datetime,
    config: ScoringConfig
) -> float:
    """Raw location points before rescaling (max = config.location.maximum)."""
    points = config.location
    raw = 0.0

    if requirements.remote_allowed and candidate.remote_preference in (
        RemotePreference.REMOTE.value, RemotePreference.FLEXIBLE.value
    ):
        raw += points.remote_match

    same_city = _same_place(candidate.city, requirements.city)
    if same_city:
        raw += points.same_city
    if _same_place(candidate.country, requirements.country):
        raw += points.same_country

    candidate_offset = _utc_offset_hours(candidate.timezone, now)
    required_offset = _utc_offset_hours(requirements.timezone, now)
    if candidate_offset is not None and required_offset is not None:
        if abs(candidate_offset - required_offset) <= points.timezone_overlap_hours:
            raw += points.timezone_overlap

    if candidate.willing_to_relocate and not same_city:
        raw += points.relocation

    return min(raw, points.maximum)


def location_score(
    candidate: CandidateProfile,
    requirements: RoleRequirements,
    now: datetime,
    config: ScoringConfig
) -> float:
    maximum = config.location.maximum
    if maximum <= 0:
        return 0.0
    return location_raw_points(candidate, requirements, now, config) / maximum * config.weights.location


def availability_score(candidate: CandidateProfile, config: ScoringConfig) -> float:
    factors = config.availability_factors
    factor = factors.get(candidate.availability or '', factors.get(Availability.PASSIVE.value, 0.5))
    return factor * config.weights.availability


def recommendation_score(candidate: CandidateProfile, config: ScoringConfig) -> float:
    count = candidate.recommendation_count or 0
    for minimum, factor in config.recommendation_steps:
        if count >= minimum:
            return factor * config.weights.recommendations
    return 0.0


def freshness_bonus(
    candidate: CandidateProfile,
    follow_up: Optional[FollowUpContext],
    config: ScoringConfig
) -> float:
    """Extra points for what changed since the previous request in the chain."""
    if follow_up is None:
        return 0.0
    since = as_utc(follow_up.previous_created_at)
    bonus = config.freshness
    total = 0.0
    if candidate.created_at is not None and as_utc(candidate.created_at) > since:
        total += bonus.joined_since
    if candidate.last_active_at is not None and as_utc(candidate.last_active_at) > since:
        total += bonus.active_since
    if candidate.profile_updated_at is not None and as_utc(candidate.profile_updated_at) > since:
        total += bonus.profile_updated_since
    if candidate.last_recommended_at is not None and as_utc(candidate.last_recommended_at) > since:
        total += bonus.recommended_since
    return total


def build_match_reason(
    candidate: CandidateProfile,
    requirements: RoleRequirements,
    matched_skills: List[str]
) -> str:
    """Human-readable one-liner shown in the anonymized preview."""
    reasons = []

    if requirements.required_skills and matched_skills:
        reasons.append(
            f"Matches {len(matched_skills)}/{len(requirements.required_skills)} required skills: "
            f"{', '.join(matched_skills[:3])}"
        )

    label = seniority_label(candidate.seniority)
    if label:
        reasons.append(f"{label} level")

    if candidate.availability == Availability.OPEN.value:
        reasons.append("Actively looking")

    if candidate.recommendation_count:
        reasons.append(f"{candidate.recommendation_count} recommendation(s)")

    if requirements.remote_allowed and candidate.remote_preference == RemotePreference.REMOTE.value:
        reasons.append("Prefers remote")

    if not reasons:
        return ""
    return ". ".join(reasons) + "."
