import logging
from typing import Any, List, Optional

from sqlalchemy import select

from database.models import ShortlistEmail
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ShortlistEmailRepository(BaseRepository):
    def has_sent(self, request_id: Any, email_event: str) -> bool:
        stmt = select(ShortlistEmail.id).where(
            ShortlistEmail.shortlist_request_id == request_id,
            ShortlistEmail.email_event == email_event,
            ShortlistEmail.is_resend.is_(False),
        )
        return self.db.execute(stmt).first() is not None

    def record(self, email: ShortlistEmail) -> ShortlistEmail:
        self.db.add(email)
        self.db.flush()
        return email

    def get(self, email_id: Any) -> Optional[ShortlistEmail]:
        return self.db.get(ShortlistEmail, email_id)

    def latest_for_request(self, request_id: Any) -> Optional[ShortlistEmail]:
        stmt = (
            select(ShortlistEmail)
            .where(ShortlistEmail.shortlist_request_id == request_id)
            .order_by(ShortlistEmail.sent_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def list_for_request(self, request_id: Any) -> List[ShortlistEmail]:
        stmt = (
            select(ShortlistEmail)
            .where(ShortlistEmail.shortlist_request_id == request_id)
            .order_by(ShortlistEmail.sent_at.asc())
        )
        return list(self.db.execute(stmt).scalars().all())
