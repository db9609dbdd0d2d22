#!/usr/bin/env python3
"""
Tests for operator price suggestions.
"""

import unittest
from decimal import Decimal

from core.config_loader import PricingConfig
from core.enums import PricingType, SeniorityLevel
from core.shortlist.pricing import PricingCalculator


class TestPricingCalculator(unittest.TestCase):
    def setUp(self):
        self.calculator = PricingCalculator(PricingConfig())

    def test_senior_five_candidates(self):
        """Senior base 500, no size adjustment for 5-6 candidates."""
        suggestion = self.calculator.suggest(SeniorityLevel.SENIOR, 5)

        self.assertEqual(suggestion.suggested_price, Decimal("500.00"))
        self.assertEqual(suggestion.seniority, "senior")
        self.assertEqual(suggestion.discount_percent, Decimal("0"))

    def test_size_adjustments(self):
        cases = {3: Decimal("-50.00"), 4: Decimal("-25.00"), 6: Decimal("0.00"),
                 7: Decimal("50.00"), 10: Decimal("100.00")}
        for count, adjustment in cases.items():
            with self.subTest(count=count):
                self.assertEqual(self.calculator.suggest(1, count).size_adjustment, adjustment)

    def test_rare_premium(self):
        suggestion = self.calculator.suggest(SeniorityLevel.LEAD, 5, is_rare=True)
        self.assertEqual(suggestion.list_price, Decimal("750.00"))

    def test_minimum_price_floor(self):
        """Junior 250 with a small shortlist would drop to 200 at most."""
        config = PricingConfig(base_prices={'junior': 150.0})
        suggestion = PricingCalculator(config).suggest(SeniorityLevel.JUNIOR, 3)
        self.assertEqual(suggestion.suggested_price, Decimal("200.00"))

    def test_unknown_seniority_uses_default(self):
        suggestion = self.calculator.suggest(None, 5)
        self.assertEqual(suggestion.base_price, Decimal("400.00"))
        self.assertIsNone(suggestion.seniority)

    def test_follow_up_discount(self):
        suggestion = self.calculator.suggest(
            SeniorityLevel.SENIOR, 5, pricing_type=PricingType.FOLLOW_UP, discount_percent=Decimal("40")
        )
        self.assertEqual(suggestion.list_price, Decimal("500.00"))
        self.assertEqual(suggestion.suggested_price, Decimal("300.00"))

    def test_discount_ignored_for_new_requests(self):
        suggestion = self.calculator.suggest(
            SeniorityLevel.SENIOR, 5, pricing_type=PricingType.NEW, discount_percent=Decimal("40")
        )
        self.assertEqual(suggestion.suggested_price, Decimal("500.00"))

    def test_free_regeneration_is_zero(self):
        suggestion = self.calculator.suggest(SeniorityLevel.MID, 5, pricing_type=PricingType.FREE_REGEN)
        self.assertEqual(suggestion.suggested_price, Decimal("0.00"))
        self.assertEqual(suggestion.discount_percent, Decimal("100"))


if __name__ == '__main__':
    unittest.main()
