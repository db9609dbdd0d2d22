#!/usr/bin/env python3
"""
Scoring Module - candidate ranking for shortlist requests.

Public API:
- ScoringEngine: ranks a candidate pool against role requirements
- CandidateProfile / RoleRequirements / FollowUpContext: scoring inputs
- CandidateMatch / ScoreBreakdown: scoring results

Modules:
- models.py: Data structures
- components.py: One pure function per weighted component
- engine.py: Filtering, exclusion handling, ordering and ranking
"""

from core.scorer.models import (
    SkillRecord,
    CandidateProfile,
    RoleRequirements,
    FollowUpContext,
    ScoreBreakdown,
    CandidateMatch,
)
from core.scorer.engine import ScoringEngine, exclusion_map

__all__ = [
    'ScoringEngine',
    'exclusion_map',
    'SkillRecord',
    'CandidateProfile',
    'RoleRequirements',
    'FollowUpContext',
    'ScoreBreakdown',
    'CandidateMatch',
]
