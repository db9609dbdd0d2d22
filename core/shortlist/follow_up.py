"""
Follow-up detection - links a new request to a recent completed one.

A request is a follow-up when the company names the previous request, or
when a completed request of the same company created within the lookback
window is similar enough. Follow-ups get a discount that decays with the
days elapsed since the previous request.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional

from core.config_loader import FollowUpConfig
from core.enums import PricingType, ShortlistStatus
from core.utils import as_utc, normalize_skills

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestProfile:
    """The fields follow-up similarity looks at."""
    role_title: str
    seniority: Optional[int] = None
    remote_allowed: bool = False
    country: Optional[str] = None
    skills: tuple = ()

    @classmethod
    def from_request(cls, request: Any) -> "RequestProfile":
        return cls(
            role_title=request.role_title or "",
            seniority=request.seniority,
            remote_allowed=bool(request.remote_allowed),
            country=request.location_country,
            skills=tuple(normalize_skills(request.required_skills)),
        )


@dataclass(frozen=True)
class FollowUpDecision:
    pricing_type: PricingType
    previous_request_id: Optional[uuid.UUID] = None
    discount_percent: Decimal = Decimal("0")
    similarity: Optional[int] = None
    days_since_previous: Optional[int] = None

    @property
    def is_follow_up(self) -> bool:
        return self.previous_request_id is not None


class FollowUpDetector:
    def __init__(self, config: Optional[FollowUpConfig] = None):
        self.config = config or FollowUpConfig()

    def similarity(self, current: RequestProfile, previous: RequestProfile) -> int:
        """Similarity score 0-100 (role 30, seniority 20, location 15, tech stack 35)."""
        config = self.config
        score = 0.0

        current_role = current.role_title.strip().lower()
        previous_role = previous.role_title.strip().lower()
        if current_role and current_role == previous_role:
            score += config.role_exact_points
        elif current_role and previous_role and (current_role in previous_role or previous_role in current_role):
            score += config.role_partial_points

        if current.seniority is not None and previous.seniority is not None:
            if int(current.seniority) == int(previous.seniority):
                score += config.seniority_points
        elif current.seniority is None and previous.seniority is None:
            score += config.seniority_unspecified_points

        if current.remote_allowed == previous.remote_allowed:
            score += config.remote_match_points
        if current.country and previous.country and current.country.strip().lower() == previous.country.strip().lower():
            score += config.same_country_points

        current_skills = {s.lower() for s in current.skills}
        previous_skills = {s.lower() for s in previous.skills}
        if current_skills and previous_skills:
            overlap = len(current_skills & previous_skills) / len(current_skills | previous_skills)
            score += int(overlap * config.tech_stack_points)
        elif not current_skills and not previous_skills:
            score += config.tech_stack_both_empty_points

        return int(score)

    def discount_for_days(self, days: int) -> Decimal:
        """Discount percent for a follow-up created `days` after its predecessor."""
        for band in sorted(self.config.discount_bands, key=lambda b: b.max_days):
            if days <= band.max_days:
                return Decimal(str(band.percent))
        return Decimal("0")

    def detect(
        self,
        repo,
        company_id: uuid.UUID,
        current: RequestProfile,
        now: datetime,
        explicit_previous_id: Optional[uuid.UUID] = None
    ) -> FollowUpDecision:
        """
        Classify a new request.

        Args:
            repo: ShortlistRequestRepository
            company_id: Requesting company
            current: Profile of the request being created
            now: Creation time
            explicit_previous_id: Previous request named by the company

        An explicit link that is unknown, belongs to another company or is
        not completed is ignored and the request is priced as new.
        """
        previous = None
        similarity = None

        if explicit_previous_id is not None:
            candidate = repo.get(explicit_previous_id)
            if (
                candidate is not None
                and candidate.company_id == company_id
                and candidate.status == ShortlistStatus.COMPLETED.value
            ):
                previous = candidate
            else:
                logger.warning(
                    f"Ignoring previous request {explicit_previous_id} for company {company_id}: "
                    f"not a completed request of this company"
                )
        else:
            since = as_utc(now) - timedelta(days=self.config.lookback_days)
            previous, similarity = self._most_recent_similar(
                repo.find_completed_for_company(company_id, since), current
            )

        if previous is None:
            return FollowUpDecision(pricing_type=PricingType.NEW)

        days = int((as_utc(now) - as_utc(previous.created_at)).total_seconds() // 86400)
        discount = self.discount_for_days(max(days, 0))
        logger.info(
            f"Request classified as follow-up of {previous.id}: {days} day(s) later, "
            f"discount {discount}%"
        )
        return FollowUpDecision(
            pricing_type=PricingType.FOLLOW_UP,
            previous_request_id=previous.id,
            discount_percent=discount,
            similarity=similarity,
            days_since_previous=days,
        )

    def _most_recent_similar(self, completed: Iterable[Any], current: RequestProfile):
        threshold = round(self.config.similarity_threshold * 100, 6)
        for request in completed:
            score = self.similarity(current, RequestProfile.from_request(request))
            if score >= threshold:
                return request, score
        return None, None
