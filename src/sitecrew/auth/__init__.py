"""Authorization and invitation management for SiteCrew."""

from sitecrew.auth.models import (
    CallerIdentity,
    CompanyRole,
    InvitationStatus,
    ProjectRole,
    ResolvedPermissions,
    SystemRole,
)
from sitecrew.auth.tokens import TokenCodec
from sitecrew.auth.resolver import PermissionResolver
from sitecrew.auth.seats import SeatEnforcer
from sitecrew.auth.invitations import InvitationManager
from sitecrew.auth.gateway import Action, AuthorizationGateway, RequestContext
from sitecrew.auth.tenancy import TenancyManager

__all__ = [
    "CallerIdentity",
    "CompanyRole",
    "InvitationStatus",
    "ProjectRole",
    "ResolvedPermissions",
    "SystemRole",
    "TokenCodec",
    "PermissionResolver",
    "SeatEnforcer",
    "InvitationManager",
    "Action",
    "AuthorizationGateway",
    "RequestContext",
    "TenancyManager",
]
