"""Shortlist broker web API."""
