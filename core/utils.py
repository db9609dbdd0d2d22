import re
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)

_ROLE_TOKEN_SPLIT = re.compile(r"[\s\-_/]+")
_CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> float:
    return (as_utc(later) - as_utc(earlier)).total_seconds() / 86400.0


def to_money(value) -> Decimal:
    """Quantize to cents, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def role_tokens(title: Optional[str]) -> Set[str]:
    """Lower-cased word set of a role title, split on space, '-', '_' and '/'."""
    if not title:
        return set()
    return {token for token in _ROLE_TOKEN_SPLIT.split(title.lower()) if token}


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    left_set, right_set = set(left), set(right)
    if not left_set or not right_set:
        return 0.0
    return len(left_set & right_set) / len(left_set | right_set)


def skill_matches(required: str, candidate_skill: str) -> bool:
    """Case-insensitive substring match in either direction."""
    required_norm = required.strip().lower()
    candidate_norm = candidate_skill.strip().lower()
    if not required_norm or not candidate_norm:
        return False
    return required_norm in candidate_norm or candidate_norm in required_norm


def normalize_skills(skills: Optional[Iterable[str]]) -> list:
    """Strip blanks and drop case-insensitive duplicates, keeping first spelling."""
    seen = set()
    result = []
    for skill in skills or []:
        if not isinstance(skill, str):
            continue
        cleaned = skill.strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            result.append(cleaned)
    return result


def mask_email(email: str) -> str:
    """
    Mask email address for safe logging (PII protection).

    Shows only domain, e.g., "***@example.com"
    """
    if not email or '@' not in email:
        return "***"
    _, domain = email.rsplit('@', 1)
    return f"***@{domain}"
