"""
Audit event recording.

Every lifecycle transition writes exactly one event carrying the status
pair; payment actions and operator bookkeeping (rematches, ranking edits)
write one event each with no status pair. Events are written in the same
transaction as the change they describe.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from core.actors import Actor
from core.utils import utcnow
from database.models import ShortlistEvent

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CREATED = "created"
    PROCESSING_STARTED = "processing_started"
    MATCHING_COMPLETED = "matching_completed"
    RANKINGS_UPDATED = "rankings_updated"
    SCOPE_PROPOSED = "scope_proposed"
    PRICING_APPROVED = "pricing_approved"
    PRICING_DECLINED = "pricing_declined"
    ADJUSTMENT_SUGGESTED = "adjustment_suggested"
    SEARCH_EXTENDED = "search_extended"
    PAYMENT_AUTHORIZATION_REQUESTED = "payment_authorization_requested"
    PAYMENT_AUTHORIZED = "payment_authorized"
    PAYMENT_AUTHORIZATION_FAILED = "payment_authorization_failed"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_CONFIRMATION_FAILED = "payment_confirmation_failed"
    PAYMENT_CAPTURED = "payment_captured"
    PAYMENT_PARTIALLY_CAPTURED = "payment_partially_captured"
    PAYMENT_CAPTURE_FAILED = "payment_capture_failed"
    PAYMENT_RELEASED = "payment_released"
    PAYMENT_RELEASE_FAILED = "payment_release_failed"
    PAYMENT_EXPIRED = "payment_expired"
    PAYMENT_RECONCILIATION_REQUIRED = "payment_reconciliation_required"
    PAYMENT_RECONCILED = "payment_reconciled"
    AUTHORIZED = "authorized"
    AUTHORIZATION_EXPIRED = "authorization_expired"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    NO_MATCH = "no_match"
    CANCELLED = "cancelled"


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, Enum) else str(status)


def _json_safe(value: Any) -> Any:
    """Coerce UUIDs, Decimals, enums and datetimes so metadata fits a JSON column."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


class EventRecorder:
    """Thin writer over the append-only event repository."""

    def __init__(self, event_repo, clock=utcnow):
        self.repo = event_repo
        self.clock = clock

    def emit(
        self,
        request_id: uuid.UUID,
        event_type: EventType,
        actor: Actor,
        previous_status=None,
        new_status=None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ShortlistEvent:
        event = ShortlistEvent(
            shortlist_request_id=request_id,
            event_type=_status_value(event_type),
            previous_status=_status_value(previous_status),
            new_status=_status_value(new_status),
            actor_id=actor.actor_id,
            actor_type=actor.actor_type.value,
            event_metadata=_json_safe(metadata or {}),
            created_at=self.clock(),
        )
        self.repo.append(event)
        logger.debug(
            f"Event {event.event_type} on {request_id}: "
            f"{event.previous_status or '-'} -> {event.new_status or '-'}"
        )
        return event

    def get_events(self, request_id: uuid.UUID, event_type: Optional[EventType] = None) -> List[ShortlistEvent]:
        return self.repo.list_for_request(request_id, _status_value(event_type))
