from typing import Any, List, Optional

from sqlalchemy import select, func

from database.models import ShortlistEvent
from database.repositories.base import BaseRepository


class EventRepository(BaseRepository):
    """Append-only access to the audit log; no update or delete paths."""

    def append(self, event: ShortlistEvent) -> ShortlistEvent:
        self.db.add(event)
        self.db.flush()
        return event

    def list_for_request(self, request_id: Any, event_type: Optional[str] = None) -> List[ShortlistEvent]:
        stmt = select(ShortlistEvent).where(ShortlistEvent.shortlist_request_id == request_id)
        if event_type is not None:
            stmt = stmt.where(ShortlistEvent.event_type == event_type)
        stmt = stmt.order_by(ShortlistEvent.created_at.asc(), ShortlistEvent.id.asc())
        return list(self.db.execute(stmt).scalars().all())

    def count_for_request(self, request_id: Any, event_type: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(ShortlistEvent).where(
            ShortlistEvent.shortlist_request_id == request_id
        )
        if event_type is not None:
            stmt = stmt.where(ShortlistEvent.event_type == event_type)
        return int(self.db.execute(stmt).scalar_one())
