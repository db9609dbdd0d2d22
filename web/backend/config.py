#!/usr/bin/env python3
"""
Configuration access for the web application.

The web layer reads the same config.yaml (with environment overrides) as
the rest of the system; the parsed AppConfig is cached per process.
"""

import os
from pathlib import Path
from functools import lru_cache

from core.config_loader import AppConfig, load_config


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent


@lru_cache()
def get_config() -> AppConfig:
    """
    Get application configuration with caching.

    Honors SHORTLIST_CONFIG for an alternative file; falls back to
    config.yaml at the project root.

    Returns:
        AppConfig: The application configuration.
    """
    config_path = os.environ.get('SHORTLIST_CONFIG', str(get_project_root() / 'config.yaml'))
    return load_config(config_path)
