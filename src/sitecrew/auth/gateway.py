"""Authorization gateway used by feature code."""

from __future__ import annotations

from enum import Enum

import structlog

from sitecrew.auth.identity import IdentityProvider
from sitecrew.auth.models import CallerIdentity, ResolvedPermissions
from sitecrew.auth.resolver import PermissionResolver
from sitecrew.core.exceptions import Forbidden, Unauthorized, ValidationError
from sitecrew.utils.logging import audit_logger, set_request_context

logger = structlog.get_logger()


class Action(Enum):
    """Checks exposed through ``RequestContext.is_allowed``."""
    VIEW_COMPANY = "view_company"
    MANAGE_COMPANY = "manage_company"
    VIEW_PROJECT = "view_project"
    INVITE_TO_PROJECT = "invite_to_project"


class RequestContext:
    """
    Per-request authorization view of one caller.

    Permissions are resolved on first use and kept for the life of this
    object only. Nothing is shared across requests.
    """

    def __init__(self, identity: CallerIdentity, resolver: PermissionResolver) -> None:
        self.identity = identity
        self.resolver = resolver
        self._permissions: ResolvedPermissions | None = None

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def permissions(self) -> ResolvedPermissions:
        if self._permissions is None:
            self._permissions = self.resolver.resolve(self.identity.user_id)
        return self._permissions

    def is_allowed(
        self,
        action: Action | str,
        company_id: str | None = None,
        project_id: str | None = None,
    ) -> bool:
        """Pure check against the resolved permissions."""
        action = Action(action)
        permissions = self.permissions
        if action in (Action.VIEW_COMPANY, Action.MANAGE_COMPANY):
            if company_id is None:
                raise ValidationError(f"{action.value} needs a company_id", field="company_id")
            if action == Action.MANAGE_COMPANY:
                return permissions.can_manage_company(company_id)
            return permissions.is_super_admin or permissions.can_view_company(company_id)
        if project_id is None:
            raise ValidationError(f"{action.value} needs a project_id", field="project_id")
        if action == Action.INVITE_TO_PROJECT:
            return permissions.can_invite_to_project(project_id)
        return permissions.is_super_admin or permissions.can_view_project(project_id)

    def _require(
        self,
        action: Action,
        company_id: str | None = None,
        project_id: str | None = None,
    ) -> ResolvedPermissions:
        allowed = self.is_allowed(action, company_id=company_id, project_id=project_id)
        audit_logger.log_access_event(
            action.value,
            user_id=self.user_id,
            company_id=company_id,
            project_id=project_id,
            granted=allowed,
        )
        if not allowed:
            raise Forbidden(permission=action.value)
        return self.permissions

    def require_company_access(self, company_id: str) -> ResolvedPermissions:
        return self._require(Action.VIEW_COMPANY, company_id=company_id)

    def require_company_manager(self, company_id: str) -> ResolvedPermissions:
        return self._require(Action.MANAGE_COMPANY, company_id=company_id)

    def require_project_access(self, project_id: str) -> ResolvedPermissions:
        return self._require(Action.VIEW_PROJECT, project_id=project_id)

    def require_project_inviter(self, project_id: str) -> ResolvedPermissions:
        return self._require(Action.INVITE_TO_PROJECT, project_id=project_id)

    def require_super_admin(self) -> ResolvedPermissions:
        if not self.permissions.is_super_admin:
            audit_logger.log_access_event("super_admin", user_id=self.user_id, granted=False)
            raise Forbidden(permission="super_admin")
        return self.permissions

    def scoped_companies(self) -> list[str]:
        """Company ids the caller may see."""
        return self.permissions.company_ids()

    def scoped_projects(self, company_id: str | None = None) -> list[str]:
        """Project ids the caller may see, optionally limited to one company."""
        permissions = self.permissions
        project_ids = permissions.project_ids(company_id=company_id)
        seen = set(project_ids)
        # Managers also see every project of the companies they manage
        for project_id, owner in permissions.company_projects.items():
            if project_id in seen or (company_id is not None and owner != company_id):
                continue
            if permissions.can_manage_company(owner):
                project_ids.append(project_id)
                seen.add(project_id)
        return project_ids


class AuthorizationGateway:
    """Authenticates callers and hands out request contexts."""

    def __init__(self, identity_provider: IdentityProvider, resolver: PermissionResolver) -> None:
        self.identity_provider = identity_provider
        self.resolver = resolver
        self.logger = logger.bind(component="authorization_gateway")

    def authenticate(self, credential: str | None) -> CallerIdentity:
        """
        Resolve a bearer credential to a caller.

        Raises:
            Unauthorized: If the credential is missing or rejected
        """
        if not credential:
            raise Unauthorized("Authentication required")
        identity = self.identity_provider.authenticate(credential)
        if identity is None:
            self.logger.info("Authentication failed")
            raise Unauthorized("Invalid or expired credentials")
        return identity

    def context_for(self, credential: str | None) -> RequestContext:
        identity = self.authenticate(credential)
        set_request_context(user_id=identity.user_id)
        return RequestContext(identity, self.resolver)
