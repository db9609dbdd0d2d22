from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from database.models import Candidate, Company
from database.repositories.base import BaseRepository


class CandidateDirectoryRepository(BaseRepository):
    """Read-only candidate lookups for the Scoring Engine."""

    def list_matchable(self) -> List[Candidate]:
        stmt = (
            select(Candidate)
            .options(selectinload(Candidate.skills))
            .where(
                Candidate.profile_visible.is_(True),
                Candidate.open_to_opportunities.is_(True),
            )
        )
        return list(self.db.execute(stmt).scalars().all())

    def get(self, candidate_id: Any) -> Optional[Candidate]:
        return self.db.get(Candidate, candidate_id)


class CompanyRepository(BaseRepository):
    def get(self, company_id: Any) -> Optional[Company]:
        return self.db.get(Company, company_id)
