#!/usr/bin/env python3
"""
Tests for the individual score components.

Usage:
    python -m pytest tests/unit/core/scorer/test_scoring_components.py -v
"""

import unittest
import uuid
from datetime import datetime, timedelta, timezone

from core.config_loader import ScoringConfig
from core.scorer import components
from core.scorer.models import CandidateProfile, FollowUpContext, RoleRequirements, SkillRecord

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def make_candidate(**fields) -> CandidateProfile:
    values = dict(candidate_id=uuid.uuid4())
    values.update(fields)
    return CandidateProfile(**values)


class TestSkillScore(unittest.TestCase):
    """Skills: (overlap * 0.7 + mean matched confidence * 0.3) * 45."""

    def setUp(self):
        self.config = ScoringConfig()

    def test_full_overlap_with_high_confidence(self):
        """React and Node.js both matched at 0.9 confidence scores 43.65."""
        candidate = make_candidate(skills=[
            SkillRecord("React", 0.9), SkillRecord("Node.js", 0.9), SkillRecord("Docker", 0.6),
        ])
        requirements = RoleRequirements(required_skills=["React", "Node.js"])

        points, matched = components.skill_score(candidate, requirements, self.config)

        self.assertAlmostEqual(points, (1.0 * 0.7 + 0.9 * 0.3) * 45, places=6)
        self.assertAlmostEqual(points, 43.65, places=6)
        self.assertEqual(matched, ["React", "Node.js"])

    def test_partial_overlap(self):
        """Half the required skills matched halves the overlap share."""
        candidate = make_candidate(skills=[SkillRecord("Python", 1.0)])
        requirements = RoleRequirements(required_skills=["Python", "Go"])

        points, matched = components.skill_score(candidate, requirements, self.config)

        self.assertAlmostEqual(points, (0.5 * 0.7 + 1.0 * 0.3) * 45, places=6)
        self.assertEqual(matched, ["Python"])

    def test_substring_match_either_direction_and_case_insensitive(self):
        """'postgres' matches 'PostgreSQL' and 'React Native' matches 'react'."""
        candidate = make_candidate(skills=[SkillRecord("postgres", 1.0), SkillRecord("React Native", 1.0)])
        requirements = RoleRequirements(required_skills=["PostgreSQL", "react"])

        _, matched = components.skill_score(candidate, requirements, self.config)

        self.assertEqual(matched, ["PostgreSQL", "react"])

    def test_no_required_skills_is_neutral(self):
        """A request without skills gives everyone half the weight."""
        points, matched = components.skill_score(make_candidate(), RoleRequirements(), self.config)
        self.assertEqual(points, 22.5)
        self.assertEqual(matched, [])

    def test_no_matches_scores_zero(self):
        candidate = make_candidate(skills=[SkillRecord("Cobol", 1.0)])
        points, _ = components.skill_score(candidate, RoleRequirements(required_skills=["Rust"]), self.config)
        self.assertEqual(points, 0.0)


class TestSenioritySkillRoleScores(unittest.TestCase):
    def setUp(self):
        self.config = ScoringConfig()

    def test_seniority_distance_factors(self):
        """Distance 0/1/2/3+ maps to 1.0/0.7/0.4/0.2 of 15 points."""
        requirements = RoleRequirements(seniority=2)
        expected = {2: 15.0, 1: 10.5, 0: 6.0, 4: 6.0}
        for level, points in expected.items():
            with self.subTest(level=level):
                score = components.seniority_score(make_candidate(seniority=level), requirements, self.config)
                self.assertAlmostEqual(score, points)
        self.assertAlmostEqual(
            components.seniority_score(make_candidate(seniority=0), RoleRequirements(seniority=4), self.config),
            3.0,
        )

    def test_seniority_unknown_is_neutral(self):
        self.assertEqual(components.seniority_score(make_candidate(), RoleRequirements(seniority=2), self.config), 7.5)

    def test_role_jaccard(self):
        """Token Jaccard: 'Senior Backend Engineer' vs 'Backend Engineer' = 2/3."""
        candidate = make_candidate(role_title="Backend Engineer")
        requirements = RoleRequirements(role_title="Senior Backend-Engineer")
        self.assertAlmostEqual(components.role_score(candidate, requirements, self.config), 10 * 2 / 3)

    def test_role_missing_is_neutral(self):
        self.assertEqual(components.role_score(make_candidate(), RoleRequirements(role_title="Dev"), self.config), 5.0)


class TestRecencyAvailabilityRecommendations(unittest.TestCase):
    def setUp(self):
        self.config = ScoringConfig()

    def test_recency_steps(self):
        """Recency decays in steps and bottoms out at 0.1."""
        cases = [(0.5, 1.0), (3, 0.9), (10, 0.7), (20, 0.5), (45, 0.3), (90, 0.1)]
        for days, factor in cases:
            with self.subTest(days=days):
                last_active = NOW - timedelta(days=days)
                self.assertAlmostEqual(components.recency_factor(last_active, NOW, self.config), factor)

    def test_recency_never_active(self):
        self.assertEqual(components.recency_score(make_candidate(), NOW, self.config), 1.0)

    def test_availability_factors(self):
        self.assertEqual(components.availability_score(make_candidate(availability="open"), self.config), 5.0)
        self.assertEqual(components.availability_score(make_candidate(availability="passive"), self.config), 2.5)
        self.assertEqual(components.availability_score(make_candidate(availability="not_now"), self.config), 1.0)

    def test_recommendation_steps(self):
        cases = [(0, 0.0), (1, 2.5), (3, 4.0), (7, 5.0)]
        for count, points in cases:
            with self.subTest(count=count):
                candidate = make_candidate(recommendation_count=count)
                self.assertAlmostEqual(components.recommendation_score(candidate, self.config), points)


class TestLocationScore(unittest.TestCase):
    def setUp(self):
        self.config = ScoringConfig()

    def test_same_city_country_and_timezone(self):
        """City 25 + country 15 + timezone 10 = 50 of 85 raw points."""
        candidate = make_candidate(city="Berlin", country="Germany", timezone="Europe/Berlin")
        requirements = RoleRequirements(city="berlin", country="GERMANY", timezone="Europe/Paris")

        raw = components.location_raw_points(candidate, requirements, NOW, self.config)
        self.assertEqual(raw, 50.0)
        self.assertAlmostEqual(components.location_score(candidate, requirements, NOW, self.config), 50 / 85 * 5)

    def test_remote_match_and_relocation(self):
        """Remote-friendly candidate willing to relocate to another city."""
        candidate = make_candidate(city="Lisbon", country="Portugal", remote_preference="flexible",
                                   willing_to_relocate=True)
        requirements = RoleRequirements(city="Berlin", country="Germany", remote_allowed=True)

        self.assertEqual(components.location_raw_points(candidate, requirements, NOW, self.config), 35.0)

    def test_distant_timezone_gets_no_overlap_points(self):
        candidate = make_candidate(timezone="Asia/Tokyo")
        requirements = RoleRequirements(timezone="America/New_York")
        self.assertEqual(components.location_raw_points(candidate, requirements, NOW, self.config), 0.0)

    def test_unknown_timezone_is_ignored(self):
        candidate = make_candidate(timezone="Mars/Olympus")
        requirements = RoleRequirements(timezone="Europe/Berlin")
        self.assertEqual(components.location_raw_points(candidate, requirements, NOW, self.config), 0.0)


class TestFreshnessBonus(unittest.TestCase):
    def setUp(self):
        self.config = ScoringConfig()
        self.previous = FollowUpContext(previous_request_id=uuid.uuid4(), previous_created_at=NOW - timedelta(days=10))

    def test_no_follow_up_no_bonus(self):
        self.assertEqual(components.freshness_bonus(make_candidate(created_at=NOW), None, self.config), 0.0)

    def test_all_changes_since_previous_request(self):
        """Joined 10 + active 5 + profile updated 5 + recommended 5."""
        candidate = make_candidate(
            created_at=NOW - timedelta(days=2),
            last_active_at=NOW,
            profile_updated_at=NOW - timedelta(days=1),
            last_recommended_at=NOW - timedelta(days=3),
        )
        self.assertEqual(components.freshness_bonus(candidate, self.previous, self.config), 25.0)

    def test_nothing_changed(self):
        old = NOW - timedelta(days=100)
        candidate = make_candidate(created_at=old, last_active_at=old, profile_updated_at=old)
        self.assertEqual(components.freshness_bonus(candidate, self.previous, self.config), 0.0)


class TestMatchReason(unittest.TestCase):
    def test_reason_lists_skills_level_and_availability(self):
        candidate = make_candidate(seniority=2, availability="open", recommendation_count=2)
        requirements = RoleRequirements(required_skills=["Python", "SQL"])

        reason = components.build_match_reason(candidate, requirements, ["Python"])

        self.assertIn("Matches 1/2 required skills: Python", reason)
        self.assertIn("Senior level", reason)
        self.assertIn("Actively looking", reason)
        self.assertIn("2 recommendation(s)", reason)

    def test_empty_reason(self):
        self.assertEqual(components.build_match_reason(make_candidate(), RoleRequirements(), []), "")


if __name__ == '__main__':
    unittest.main()
