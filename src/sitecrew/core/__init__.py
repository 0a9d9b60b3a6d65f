"""Core module for SiteCrew."""

from sitecrew.core.config import Settings, get_settings
from sitecrew.core.exceptions import (
    SiteCrewError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    Unauthorized,
    Forbidden,
    StoreUnavailable,
)

__all__ = [
    "Settings",
    "get_settings",
    "SiteCrewError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "Unauthorized",
    "Forbidden",
    "StoreUnavailable",
]
