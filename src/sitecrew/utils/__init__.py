"""Utility modules for SiteCrew."""

from sitecrew.utils.logging import setup_logging, get_logger, audit_logger

__all__ = [
    "setup_logging",
    "get_logger",
    "audit_logger",
]
