"""
Request dependencies for authentication and service wiring.

Routes receive a ``RequestContext`` built from the bearer credential;
permissions are resolved lazily and only once per request.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sitecrew.auth.gateway import AuthorizationGateway, RequestContext
from sitecrew.auth.invitations import InvitationManager
from sitecrew.auth.tenancy import TenancyManager

# HTTP Bearer token scheme
security_scheme = HTTPBearer(auto_error=False)


@dataclass
class Services:
    """Service objects shared by all requests of one app."""
    gateway: AuthorizationGateway
    invitations: InvitationManager
    tenancy: TenancyManager


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_request_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
    services: Services = Depends(get_services),
) -> RequestContext:
    """
    Authenticate the caller.

    Raises:
        Unauthorized: If no valid bearer credential was sent
    """
    credential = credentials.credentials if credentials else None
    context = services.gateway.context_for(credential)
    request.state.user_id = context.user_id
    return context
