#!/usr/bin/env python3
"""
Shortlist Broker - FastAPI Application

Company and operator API for the shortlist lifecycle, with automatic API
documentation.

Usage:
    uvicorn web.backend.app:app

Then open:
    - http://localhost:8080/docs - API Documentation (Swagger UI)
    - http://localhost:8080/redoc - Alternative API Documentation
"""

import logging

from fastapi import FastAPI, HTTPException

from core.errors import ShortlistError
from .config import get_config
from .exceptions import (
    shortlist_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from .routers import shortlists_router, admin_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Shortlist Broker API",
    description="Curated candidate shortlists with scope negotiation and held payments",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Register exception handlers
app.add_exception_handler(ShortlistError, shortlist_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Include routers
app.include_router(shortlists_router)
app.include_router(admin_router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "shortlist-broker"}


def main():
    """Run the web server."""
    import uvicorn

    config = get_config()
    logger.info(f"Starting Shortlist Broker on {config.web.host}:{config.web.port}")
    logger.info(f"API Docs: http://{config.web.host}:{config.web.port}/docs")

    uvicorn.run(
        "web.backend.app:app",
        host=config.web.host,
        port=config.web.port,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
