import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from database.repositories import (
    ShortlistRequestRepository,
    ShortlistCandidateRepository,
    PaymentRepository,
    EventRepository,
    CandidateDirectoryRepository,
    CompanyRepository,
    ShortlistEmailRepository,
)

logger = logging.getLogger(__name__)


class BrokerRepository:
    """
    Session-bound bundle of the repositories one unit of work needs.

    Also carries the outbox of notification jobs staged during the unit of
    work; they are dispatched only after the session commits.
    """

    def __init__(self, db: Session):
        self.db = db
        self.requests = ShortlistRequestRepository(db)
        self.candidates = ShortlistCandidateRepository(db)
        self.payments = PaymentRepository(db)
        self.events = EventRepository(db)
        self.directory = CandidateDirectoryRepository(db)
        self.companies = CompanyRepository(db)
        self.emails = ShortlistEmailRepository(db)
        self.outbox: List[Dict[str, Any]] = []

    def commit(self) -> None:
        """Checkpoint commit inside a unit of work (before slow provider calls)."""
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
