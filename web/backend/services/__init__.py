"""Business logic services."""

from .shortlist_service import ShortlistService
