"""Permission resolution across companies and projects."""

from __future__ import annotations

import structlog

from sitecrew.auth.models import (
    CompanyPermission,
    CompanyRole,
    ProjectPermission,
    ProjectRole,
    ResolvedPermissions,
    SystemRole,
)
from sitecrew.core.retry import retry_with_backoff
from sitecrew.db.store import TenancyStore

logger = structlog.get_logger()


class PermissionResolver:
    """
    Compute what a user may reach.

    Resolution reads the store in one transaction so the membership rows and
    the project-to-company validity check come from the same snapshot. A
    ``StoreUnavailable`` during resolution is retried once.
    """

    def __init__(self, store: TenancyStore | None = None, max_attempts: int = 2) -> None:
        self.store = store or TenancyStore()
        self.max_attempts = max_attempts
        self.logger = logger.bind(component="permission_resolver")

    def resolve(self, user_id: str) -> ResolvedPermissions:
        """
        Resolve permissions for a user.

        Args:
            user_id: Platform user id

        Returns:
            ResolvedPermissions; empty with role ``homeowner`` for unknown or
            deactivated users
        """
        return retry_with_backoff(
            lambda: self._resolve_once(user_id),
            max_attempts=self.max_attempts,
        )

    def _resolve_once(self, user_id: str) -> ResolvedPermissions:
        with self.store.transaction("resolve_permissions") as session:
            user = self.store.get_user(session, user_id)
            if user is None or not user.is_active:
                self.logger.debug("No active user, returning empty permissions", user_id=user_id)
                return ResolvedPermissions.empty(user_id)

            system_role = SystemRole(user.system_role)

            if system_role == SystemRole.SUPER_ADMIN:
                company_ids = self.store.all_company_ids(session)
                projects = self.store.project_company_map(session)
                return ResolvedPermissions(
                    user_id=user_id,
                    system_role=system_role,
                    company_permissions=[
                        CompanyPermission(company_id, CompanyRole.ADMIN) for company_id in company_ids
                    ],
                    project_permissions=[
                        ProjectPermission(project_id, company_id, ProjectRole.PROJECT_MANAGER)
                        for project_id, company_id in projects.items()
                    ],
                    company_projects=projects,
                )

            memberships = self.store.active_company_memberships(session, user_id)
            company_permissions = [
                CompanyPermission(m.company_id, CompanyRole(m.company_role)) for m in memberships
            ]
            active_companies = {p.company_id for p in company_permissions}

            project_permissions = []
            for membership, company_id in self.store.project_memberships_with_company(session, user_id):
                # A project membership only counts while the company membership is active
                if company_id not in active_companies:
                    continue
                project_permissions.append(
                    ProjectPermission(
                        membership.project_id,
                        company_id,
                        ProjectRole(membership.project_role),
                    )
                )

            company_projects = self.store.project_company_map(session, active_companies)

        self.logger.debug(
            "Permissions resolved",
            user_id=user_id,
            companies=len(company_permissions),
            projects=len(project_permissions),
        )
        return ResolvedPermissions(
            user_id=user_id,
            system_role=system_role,
            company_permissions=company_permissions,
            project_permissions=project_permissions,
            company_projects=company_projects,
        )
