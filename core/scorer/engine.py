#!/usr/bin/env python3
"""
Scoring Engine - ranks a candidate pool against one shortlist request.

Pure and deterministic: the clock is passed in, nothing is persisted, and
ties are broken by last activity then candidate id, so identical inputs
always yield identical ranked output.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from core.config_loader import ScoringConfig
from core.errors import ValidationError
from core.scorer import components
from core.scorer.models import (
    CandidateProfile,
    RoleRequirements,
    FollowUpContext,
    ScoreBreakdown,
    CandidateMatch,
)

logger = logging.getLogger(__name__)


class ScoringEngine:
    """
    Weighted candidate scoring.

    Components (points out of 100):
    - skills 45, seniority 15, role 10, recency 10,
      location 5, availability 5, recommendations 5
    - plus a follow-up freshness bonus, clamped to 100 overall
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score_candidate(
        self,
        candidate: CandidateProfile,
        requirements: RoleRequirements,
        now: datetime,
        follow_up: Optional[FollowUpContext] = None
    ) -> ScoreBreakdown:
        config = self.config
        skills, matched = components.skill_score(candidate, requirements, config)
        return ScoreBreakdown(
            skills=skills,
            seniority=components.seniority_score(candidate, requirements, config),
            role=components.role_score(candidate, requirements, config),
            recency=components.recency_score(candidate, now, config),
            location=components.location_score(candidate, requirements, now, config),
            availability=components.availability_score(candidate, config),
            recommendations=components.recommendation_score(candidate, config),
            freshness_bonus=components.freshness_bonus(candidate, follow_up, config),
            matched_skills=matched,
        )

    def rank_candidates(
        self,
        pool: Iterable[CandidateProfile],
        requirements: RoleRequirements,
        now: datetime,
        exclusions: Optional[Mapping[uuid.UUID, uuid.UUID]] = None,
        re_include: Optional[Mapping[uuid.UUID, str]] = None,
        follow_up: Optional[FollowUpContext] = None,
        limit: Optional[int] = None
    ) -> List[CandidateMatch]:
        """
        Score, filter and rank a candidate pool.

        Args:
            pool: Candidates to consider; hidden or closed profiles are skipped
            requirements: Role requirements of the request
            now: Reference time for recency and timezone offsets
            exclusions: candidate_id -> request_id where already recommended
            re_include: candidate_id -> reason for excluded candidates the
                operator wants back (reason must be non-empty)
            follow_up: Previous request context for the freshness bonus
            limit: Maximum results (defaults to config.max_results)

        Returns:
            Matches sorted by score desc, last activity desc, candidate id;
            ranks 1..n.
        """
        exclusions = exclusions or {}
        re_include = re_include or {}
        limit = self.config.max_results if limit is None else limit

        for candidate_id, reason in re_include.items():
            if not reason or not str(reason).strip():
                raise ValidationError(f"Re-including candidate {candidate_id} requires a reason")

        matches: List[CandidateMatch] = []
        skipped_excluded = 0
        skipped_low = 0

        for candidate in pool:
            if not candidate.is_matchable:
                continue

            previous_request_id = exclusions.get(candidate.candidate_id)
            reason = re_include.get(candidate.candidate_id)
            if previous_request_id is not None and reason is None:
                skipped_excluded += 1
                continue

            breakdown = self.score_candidate(candidate, requirements, now, follow_up)
            score = breakdown.total
            if score < self.config.min_score:
                skipped_low += 1
                continue

            match = CandidateMatch(
                candidate_id=candidate.candidate_id,
                score=score,
                reason=components.build_match_reason(candidate, requirements, breakdown.matched_skills),
                breakdown=breakdown,
                last_active_at=candidate.last_active_at,
            )
            if previous_request_id is not None:
                match.is_new = False
                match.previously_recommended_in = previous_request_id
                match.re_inclusion_reason = str(reason).strip()
            matches.append(match)

        matches.sort(key=_sort_key)
        ranked = matches[:limit] if limit and limit > 0 else matches
        for rank, match in enumerate(ranked, start=1):
            match.rank = rank

        logger.info(
            f"Scored pool: {len(ranked)} ranked, {skipped_excluded} excluded, "
            f"{skipped_low} below {self.config.min_score}"
        )
        return ranked


def _sort_key(match: CandidateMatch):
    last_active = match.last_active_at.timestamp() if match.last_active_at is not None else float('-inf')
    return (-match.score, -last_active, str(match.candidate_id))


def exclusion_map(chain_candidates: Iterable[Dict]) -> Dict[uuid.UUID, uuid.UUID]:
    """
    Collapse (candidate_id, request_id) pairs from a follow-up chain.

    Input must be ordered nearest request first; the nearest wins.
    """
    result: Dict[uuid.UUID, uuid.UUID] = {}
    for item in chain_candidates:
        result.setdefault(item['candidate_id'], item['request_id'])
    return result
