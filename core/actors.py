"""Caller identity as resolved by the (external) auth layer."""

import uuid
from dataclasses import dataclass
from typing import Optional

from core.enums import ActorType
from core.errors import PermissionDeniedError


@dataclass(frozen=True)
class Actor:
    actor_type: ActorType
    actor_id: Optional[str] = None
    company_id: Optional[uuid.UUID] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(ActorType.SYSTEM)

    @classmethod
    def operator(cls, actor_id: str) -> "Actor":
        return cls(ActorType.OPERATOR, actor_id=actor_id)

    @classmethod
    def company(cls, actor_id: str, company_id: uuid.UUID) -> "Actor":
        return cls(ActorType.COMPANY, actor_id=actor_id, company_id=company_id)

    @property
    def is_operator(self) -> bool:
        return self.actor_type == ActorType.OPERATOR

    @property
    def is_company(self) -> bool:
        return self.actor_type == ActorType.COMPANY

    def owns(self, company_id: uuid.UUID) -> bool:
        return self.is_company and self.company_id is not None and self.company_id == company_id

    def require_operator(self, action: str) -> None:
        if not self.is_operator:
            raise PermissionDeniedError(f"Only operators may {action}")

    def require_company(self, action: str) -> None:
        if not self.is_company or self.company_id is None:
            raise PermissionDeniedError(f"Only the requesting company may {action}")
