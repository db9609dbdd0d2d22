"""API route handlers."""

from .shortlists import router as shortlists_router
from .admin import router as admin_router
