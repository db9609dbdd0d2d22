"""Suggested shortlist prices for operators proposing a scope."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.config_loader import PricingConfig
from core.enums import PricingType, SeniorityLevel
from core.utils import to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingSuggestion:
    suggested_price: Decimal
    list_price: Decimal
    base_price: Decimal
    size_adjustment: Decimal
    rare_premium: Decimal
    discount_percent: Decimal
    seniority: Optional[str]
    candidate_count: int
    is_rare: bool

    def to_dict(self):
        return {
            'suggested_price': self.suggested_price,
            'list_price': self.list_price,
            'base_price': self.base_price,
            'size_adjustment': self.size_adjustment,
            'rare_premium': self.rare_premium,
            'discount_percent': self.discount_percent,
            'seniority': self.seniority,
            'candidate_count': self.candidate_count,
            'is_rare': self.is_rare,
        }


class PricingCalculator:
    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config or PricingConfig()

    def size_adjustment(self, candidate_count: int) -> Decimal:
        for step in sorted(self.config.size_adjustments, key=lambda s: s.max_candidates):
            if candidate_count <= step.max_candidates:
                return Decimal(str(step.amount))
        return Decimal(str(self.config.size_adjustment_above))

    def suggest(
        self,
        seniority: Optional[int],
        candidate_count: int,
        is_rare: bool = False,
        pricing_type: PricingType = PricingType.NEW,
        discount_percent=Decimal("0")
    ) -> PricingSuggestion:
        """
        base(seniority) + size adjustment + rare premium, floored at the
        minimum price, then reduced by the follow-up discount. Free
        regenerations are priced at zero.
        """
        config = self.config
        level = SeniorityLevel.parse(seniority) if seniority is not None else None
        label = level.name.lower() if level is not None else None

        base = Decimal(str(config.base_prices.get(label, config.default_price) if label else config.default_price))
        size = self.size_adjustment(candidate_count)
        rare = Decimal(str(config.rare_role_premium)) if is_rare else Decimal("0")
        list_price = max(base + size + rare, Decimal(str(config.minimum_price)))

        if pricing_type == PricingType.FREE_REGEN:
            discount = Decimal("100")
        elif pricing_type == PricingType.FOLLOW_UP:
            discount = Decimal(str(discount_percent or 0))
        else:
            discount = Decimal("0")

        suggested = to_money(list_price * (Decimal("100") - discount) / Decimal("100"))
        return PricingSuggestion(
            suggested_price=suggested,
            list_price=to_money(list_price),
            base_price=to_money(base),
            size_adjustment=to_money(size),
            rare_premium=to_money(rare),
            discount_percent=discount,
            seniority=label,
            candidate_count=candidate_count,
            is_rare=is_rare,
        )
