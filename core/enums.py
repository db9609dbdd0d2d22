"""Enumerations shared by the domain, persistence and web layers."""

from enum import Enum, IntEnum


class ShortlistStatus(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    AWAITING_ADJUSTMENT = "awaiting_adjustment"
    PRICING_PENDING = "pricing_pending"
    PRICING_APPROVED = "pricing_approved"
    AUTHORIZED = "authorized"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    NO_MATCH = "no_match"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ShortlistStatus.COMPLETED,
    ShortlistStatus.NO_MATCH,
    ShortlistStatus.CANCELLED,
})


class PricingType(str, Enum):
    NEW = "new"
    FOLLOW_UP = "follow_up"
    FREE_REGEN = "free_regen"


class ShortlistOutcome(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    PARTIAL = "partial"
    NO_MATCH = "no_match"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    NONE = "none"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    PARTIALLY_CAPTURED = "partially_captured"
    RELEASED = "released"
    FAILED = "failed"
    EXPIRED = "expired"


class PaymentProvider(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    USDC = "usdc"


class ActorType(str, Enum):
    SYSTEM = "system"
    OPERATOR = "operator"
    COMPANY = "company"


class SeniorityLevel(IntEnum):
    JUNIOR = 0
    MID = 1
    SENIOR = 2
    LEAD = 3
    PRINCIPAL = 4

    @classmethod
    def parse(cls, value):
        """Accept an int, a member name or None."""
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls[value.strip().upper()]
        return cls(int(value))


class Availability(str, Enum):
    OPEN = "open"
    PASSIVE = "passive"
    NOT_NOW = "not_now"


class RemotePreference(str, Enum):
    ONSITE = "onsite"
    HYBRID = "hybrid"
    REMOTE = "remote"
    FLEXIBLE = "flexible"


class ShortlistEmailEvent(str, Enum):
    """Lifecycle emails, each sent at most once per request unless resent."""
    PROCESSING_STARTED = "processing_started"
    PRICING_READY = "pricing_ready"
    PRICING_APPROVED = "pricing_approved"
    PRICING_DECLINED = "pricing_declined"
    AUTHORIZATION_REQUIRED = "authorization_required"
    ADJUSTMENT_SUGGESTED = "adjustment_suggested"
    SEARCH_EXTENDED = "search_extended"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    NO_MATCH = "no_match"

    @property
    def is_operator_facing(self) -> bool:
        return self in (ShortlistEmailEvent.PRICING_APPROVED, ShortlistEmailEvent.PRICING_DECLINED)
