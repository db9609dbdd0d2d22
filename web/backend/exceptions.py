#!/usr/bin/env python3
"""
Error handlers for the web application.

Domain errors keep their taxonomy on the wire: the HTTP status follows
the error kind, and company callers only ever see generic provider text.
"""

import logging

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

from core.enums import ActorType
from core.errors import ErrorKind, ShortlistError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.GUARD_VIOLATION: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PROVIDER_TRANSIENT: 402,
    ErrorKind.PROVIDER_TERMINAL: 402,
    ErrorKind.PROVIDER_UNKNOWN_OUTCOME: 402,
    ErrorKind.EXPIRED_AUTHORIZATION: 410,
}


def _is_operator(request: Request) -> bool:
    return (request.headers.get('x-actor-type') or '').lower() == ActorType.OPERATOR.value


async def shortlist_exception_handler(
    request: Request,
    exc: ShortlistError
) -> JSONResponse:
    """
    Handle domain errors raised by the service layer.

    Args:
        request: The FastAPI request.
        exc: The domain error.

    Returns:
        JSONResponse with error details.
    """
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code == 402:
        logger.error(f"Provider error in {request.url.path}: {exc} {exc.detail or ''}")
    else:
        logger.info(f"{exc.__class__.__name__} in {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": exc.message_for(_is_operator(request)),
            "type": exc.kind.value
        }
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "type": "HTTPException"
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error in {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "type": "InternalError"
        }
    )
