#!/usr/bin/env python3
"""
FastAPI dependencies for dependency injection.
"""

import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from core.actors import Actor
from core.app_context import AppContext
from core.enums import ActorType
from database.database import SessionLocal
from .config import get_config
from .services.shortlist_service import ShortlistService


def get_session_factory():
    """Session factory used for every unit of work (overridden in tests)."""
    return SessionLocal


@lru_cache()
def _build_app_context() -> AppContext:
    return AppContext.build(get_config())


def get_app_context() -> AppContext:
    """
    Get the process-wide AppContext.

    Adapters, the scoring engine and the notification service are built
    once; repositories are bound per request inside the service layer.
    """
    return _build_app_context()


def get_shortlist_service(
    context: AppContext = Depends(get_app_context),
    session_factory=Depends(get_session_factory)
) -> ShortlistService:
    return ShortlistService(context, session_factory)


def get_actor(
    x_actor_type: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None),
    x_company_id: Optional[str] = Header(default=None)
) -> Actor:
    """
    Resolve the caller from headers set by the authenticating gateway.

    The gateway has already validated the identity; this only parses it.
    """
    if not x_actor_type:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Type header")
    try:
        actor_type = ActorType(x_actor_type.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown actor type: {x_actor_type}")

    if actor_type == ActorType.COMPANY:
        if not x_company_id:
            raise HTTPException(status_code=401, detail="Company callers must send X-Company-Id")
        try:
            company_id = uuid.UUID(x_company_id)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid X-Company-Id: {x_company_id}")
        return Actor.company(x_actor_id, company_id)

    if actor_type == ActorType.OPERATOR:
        return Actor.operator(x_actor_id)
    return Actor.system()
