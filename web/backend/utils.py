#!/usr/bin/env python3
"""
Conversion helpers for API responses.
"""

import uuid
from decimal import Decimal
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException


def parse_uuid(value: str, name: str = "id") -> uuid.UUID:
    """Validate a path parameter as a UUID, rejecting it with 400 otherwise."""
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid {name} format: {value}. Must be a valid UUID."
        )


def money(value: Optional[Any]) -> Optional[str]:
    """
    Render a monetary amount as a fixed two-decimal string.

    Strings keep cents exact on the wire where floats would not.
    """
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return f"{value:.2f}"


def safe_float(value: Optional[Any], default: Optional[float] = None) -> Optional[float]:
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def str_or_none(value: Optional[Any]) -> Optional[str]:
    return str(value) if value is not None else None
