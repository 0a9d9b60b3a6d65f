"""REST API for SiteCrew."""

from sitecrew.api.main import build_services, create_app

__all__ = ["build_services", "create_app"]
