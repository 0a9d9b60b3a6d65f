"""API middleware and dependencies."""

from sitecrew.api.middleware.audit import AuditMiddleware
from sitecrew.api.middleware.security import (
    Services,
    get_request_context,
    get_services,
    security_scheme,
)

__all__ = [
    "AuditMiddleware",
    "Services",
    "get_request_context",
    "get_services",
    "security_scheme",
]
