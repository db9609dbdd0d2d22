#!/usr/bin/env python3
"""
Tests for follow-up detection and the time-decayed discount.
"""

import unittest
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

from core.config_loader import FollowUpConfig
from core.enums import PricingType
from core.shortlist.follow_up import FollowUpDetector, RequestProfile

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
COMPANY = uuid.uuid4()


def previous_request(days_ago: int, status: str = 'completed', company_id=COMPANY, **fields):
    values = dict(
        id=uuid.uuid4(),
        company_id=company_id,
        status=status,
        created_at=NOW - timedelta(days=days_ago),
        role_title="Backend Engineer",
        seniority=2,
        remote_allowed=False,
        location_country="Germany",
        required_skills=["Python", "PostgreSQL"],
    )
    values.update(fields)
    return SimpleNamespace(**values)


PROFILE = RequestProfile(
    role_title="Backend Engineer", seniority=2, remote_allowed=False,
    country="Germany", skills=("Python", "PostgreSQL"),
)


class TestDiscountBands(unittest.TestCase):
    def setUp(self):
        self.detector = FollowUpDetector(FollowUpConfig())

    def test_band_edges(self):
        """50% up to 7 days, 40% up to 14, 25% up to 30, nothing after."""
        cases = {0: 50, 5: 50, 7: 50, 8: 40, 14: 40, 15: 25, 30: 25, 31: 0, 40: 0}
        for days, percent in cases.items():
            with self.subTest(days=days):
                self.assertEqual(self.detector.discount_for_days(days), Decimal(percent))

    def test_monotonically_non_increasing(self):
        discounts = [self.detector.discount_for_days(d) for d in range(0, 60)]
        self.assertEqual(discounts, sorted(discounts, reverse=True))

    def test_bands_are_configurable(self):
        detector = FollowUpDetector(FollowUpConfig(discount_bands=[{'max_days': 3, 'percent': 80}]))
        self.assertEqual(detector.discount_for_days(2), Decimal("80"))
        self.assertEqual(detector.discount_for_days(4), Decimal("0"))


class TestSimilarity(unittest.TestCase):
    def setUp(self):
        self.detector = FollowUpDetector()

    def test_identical_requests_score_100(self):
        self.assertEqual(self.detector.similarity(PROFILE, PROFILE), 100)

    def test_partial_role_and_stack(self):
        """Partial role 20 + seniority 20 + remote 10 + country 5 + 1/3 stack."""
        other = RequestProfile(
            role_title="Senior Backend Engineer", seniority=2, remote_allowed=False,
            country="germany", skills=("python", "Go", "Redis"),
        )
        self.assertEqual(self.detector.similarity(PROFILE, other), 20 + 20 + 10 + 5 + int(35 / 4))

    def test_both_unspecified(self):
        """Unspecified seniority and empty stacks on both sides still count."""
        left = RequestProfile(role_title="Designer")
        right = RequestProfile(role_title="designer")
        self.assertEqual(self.detector.similarity(left, right), 30 + 10 + 10 + 15)


class TestDetect(unittest.TestCase):
    def setUp(self):
        self.detector = FollowUpDetector()
        self.repo = Mock()

    def test_explicit_link_five_days_later_gets_fifty_percent(self):
        previous = previous_request(days_ago=5)
        self.repo.get.return_value = previous

        decision = self.detector.detect(self.repo, COMPANY, PROFILE, NOW, explicit_previous_id=previous.id)

        self.assertEqual(decision.pricing_type, PricingType.FOLLOW_UP)
        self.assertEqual(decision.previous_request_id, previous.id)
        self.assertEqual(decision.discount_percent, Decimal("50"))
        self.assertEqual(decision.days_since_previous, 5)
        self.repo.find_completed_for_company.assert_not_called()

    def test_explicit_link_forty_days_later_gets_nothing(self):
        previous = previous_request(days_ago=40)
        self.repo.get.return_value = previous

        decision = self.detector.detect(self.repo, COMPANY, PROFILE, NOW, explicit_previous_id=previous.id)

        self.assertTrue(decision.is_follow_up)
        self.assertEqual(decision.discount_percent, Decimal("0"))

    def test_explicit_link_to_other_company_is_ignored(self):
        previous = previous_request(days_ago=2, company_id=uuid.uuid4())
        self.repo.get.return_value = previous

        decision = self.detector.detect(self.repo, COMPANY, PROFILE, NOW, explicit_previous_id=previous.id)

        self.assertEqual(decision.pricing_type, PricingType.NEW)
        self.assertIsNone(decision.previous_request_id)

    def test_explicit_link_to_unfinished_request_is_ignored(self):
        self.repo.get.return_value = previous_request(days_ago=2, status='processing')

        decision = self.detector.detect(self.repo, COMPANY, PROFILE, NOW, explicit_previous_id=uuid.uuid4())

        self.assertFalse(decision.is_follow_up)

    def test_similar_recent_request_is_detected(self):
        """Most recent completed request above the threshold wins."""
        recent = previous_request(days_ago=10)
        self.repo.find_completed_for_company.return_value = [recent, previous_request(days_ago=20)]

        decision = self.detector.detect(self.repo, COMPANY, PROFILE, NOW)

        self.assertEqual(decision.previous_request_id, recent.id)
        self.assertEqual(decision.discount_percent, Decimal("40"))
        self.assertEqual(decision.similarity, 100)
        since = self.repo.find_completed_for_company.call_args[0][1]
        self.assertEqual(since, NOW - timedelta(days=30))

    def test_dissimilar_request_is_new(self):
        self.repo.find_completed_for_company.return_value = [
            previous_request(days_ago=3, role_title="Data Analyst", seniority=0,
                             required_skills=["Excel"], location_country="France")
        ]

        decision = self.detector.detect(self.repo, COMPANY, PROFILE, NOW)

        self.assertEqual(decision.pricing_type, PricingType.NEW)
        self.assertEqual(decision.discount_percent, Decimal("0"))


if __name__ == '__main__':
    unittest.main()
