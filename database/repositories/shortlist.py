import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete, func

from core.utils import utcnow
from database.models import ShortlistRequest, ShortlistCandidate
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ShortlistRequestRepository(BaseRepository):
    def add(self, request: ShortlistRequest) -> ShortlistRequest:
        self.db.add(request)
        self.db.flush()  # Generate ID
        return request

    def get(self, request_id: Any) -> Optional[ShortlistRequest]:
        return self.db.get(ShortlistRequest, request_id)

    def compare_and_set_status(
        self,
        request: ShortlistRequest,
        expected_status: str,
        new_status: str,
        **values: Any
    ) -> ShortlistRequest:
        """Guarded status write; losing a race raises ConflictError."""
        values['status'] = new_status
        values.setdefault('updated_at', utcnow())
        self._compare_and_set(ShortlistRequest, request, expected_status, values)
        return request

    def update_fields(self, request: ShortlistRequest, expected_status: str, **values: Any) -> ShortlistRequest:
        """Write non-status fields, still conditioned on the status being unchanged."""
        values.setdefault('updated_at', utcnow())
        self._compare_and_set(ShortlistRequest, request, expected_status, values)
        return request

    def find_completed_for_company(
        self,
        company_id: Any,
        since: datetime,
        exclude_id: Optional[Any] = None
    ) -> List[ShortlistRequest]:
        """Completed requests of a company created at or after `since`, newest first."""
        stmt = select(ShortlistRequest).where(
            ShortlistRequest.company_id == company_id,
            ShortlistRequest.status == 'completed',
            ShortlistRequest.created_at >= since,
        )
        if exclude_id is not None:
            stmt = stmt.where(ShortlistRequest.id != exclude_id)
        stmt = stmt.order_by(ShortlistRequest.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def get_chain(self, request: ShortlistRequest, max_depth: int = 50) -> List[ShortlistRequest]:
        """Walk previous_request_id links, nearest ancestor first."""
        chain = []
        seen = {request.id}
        current = request
        while current.previous_request_id is not None and len(chain) < max_depth:
            previous = self.get(current.previous_request_id)
            if previous is None or previous.id in seen:
                break
            chain.append(previous)
            seen.add(previous.id)
            current = previous
        return chain


class ShortlistCandidateRepository(BaseRepository):
    def list_for_request(self, request_id: Any, approved_only: bool = False) -> List[ShortlistCandidate]:
        stmt = select(ShortlistCandidate).where(ShortlistCandidate.shortlist_request_id == request_id)
        if approved_only:
            stmt = stmt.where(ShortlistCandidate.admin_approved.is_(True))
        stmt = stmt.order_by(ShortlistCandidate.rank)
        return list(self.db.execute(stmt).scalars().all())

    def count_approved(self, request_id: Any) -> int:
        stmt = select(func.count()).select_from(ShortlistCandidate).where(
            ShortlistCandidate.shortlist_request_id == request_id,
            ShortlistCandidate.admin_approved.is_(True),
        )
        return int(self.db.execute(stmt).scalar_one())

    def approved_candidate_ids(self, request_id: Any) -> List[uuid.UUID]:
        stmt = select(ShortlistCandidate.candidate_id).where(
            ShortlistCandidate.shortlist_request_id == request_id,
            ShortlistCandidate.admin_approved.is_(True),
        )
        return list(self.db.execute(stmt).scalars().all())

    def replace_for_request(self, request_id: Any, candidates: Iterable[ShortlistCandidate]) -> int:
        """Drop the current candidate list of a request and insert a new one."""
        self.db.execute(
            delete(ShortlistCandidate)
            .where(ShortlistCandidate.shortlist_request_id == request_id)
            .execution_options(synchronize_session=False)
        )
        count = 0
        for candidate in candidates:
            candidate.shortlist_request_id = request_id
            self.db.add(candidate)
            count += 1
        self.db.flush()
        return count

    def apply_rankings(self, request_id: Any, rankings: Dict[Any, Dict[str, Any]]) -> List[ShortlistCandidate]:
        """
        Apply {candidate_id: {'rank': int, 'admin_approved': bool}} updates.

        Ranks are moved through negative placeholders first so swaps do not
        trip the per-request unique rank constraint mid-flush.
        """
        rows = {row.candidate_id: row for row in self.list_for_request(request_id)}

        for offset, candidate_id in enumerate(rankings, start=1):
            if 'rank' in rankings[candidate_id]:
                rows[candidate_id].rank = -offset
        self.db.flush()

        for candidate_id, changes in rankings.items():
            row = rows[candidate_id]
            if 'rank' in changes:
                row.rank = changes['rank']
            if 'admin_approved' in changes:
                row.admin_approved = bool(changes['admin_approved'])
        self.db.flush()

        return sorted(rows.values(), key=lambda r: r.rank)
