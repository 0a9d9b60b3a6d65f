"""Tenancy, role and invitation models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sitecrew.core.utils import ensure_utc, format_iso, utc_now


class SystemRole(Enum):
    """Platform-wide role of a user."""
    SUPER_ADMIN = "super_admin"
    PROJECT_MANAGER = "project_manager"
    CONTRACTOR = "contractor"
    HOMEOWNER = "homeowner"


class CompanyRole(Enum):
    """Role of a user inside a company."""
    ADMIN = "admin"
    PROJECT_MANAGER = "project_manager"
    MEMBER = "member"


class ProjectRole(Enum):
    """Role of a user on a project."""
    PROJECT_MANAGER = "project_manager"
    CONTRACTOR = "contractor"
    HOMEOWNER = "homeowner"


class InvitationStatus(Enum):
    """Invitation lifecycle status."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SubscriptionStatus(Enum):
    """Company subscription status."""
    ACTIVE = "active"
    TRIAL = "trial"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class ProjectStatus(Enum):
    """Project status."""
    PLANNING = "planning"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Company roles allowed to manage a company and invite to any of its projects
MANAGING_COMPANY_ROLES = frozenset({CompanyRole.ADMIN, CompanyRole.PROJECT_MANAGER})

# Subscription states that may take on new seats
SEAT_GRANTING_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})

# Accepted, declined and cancelled never change again
RESOLVED_STATUSES = frozenset({
    InvitationStatus.ACCEPTED,
    InvitationStatus.DECLINED,
    InvitationStatus.CANCELLED,
})


@dataclass
class CallerIdentity:
    """Authenticated caller as reported by the identity provider."""
    user_id: str
    email: str
    full_name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "email": self.email, "full_name": self.full_name}


@dataclass(frozen=True)
class CompanyPermission:
    """A user's role in one company."""
    company_id: str
    company_role: CompanyRole

    def to_dict(self) -> dict[str, Any]:
        return {"company_id": self.company_id, "company_role": self.company_role.value}


@dataclass(frozen=True)
class ProjectPermission:
    """A user's role on one project."""
    project_id: str
    company_id: str
    project_role: ProjectRole

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "company_id": self.company_id,
            "project_role": self.project_role.value,
        }


@dataclass
class ResolvedPermissions:
    """
    Snapshot of everything a user may reach.

    All checks on this object are pure lookups; the store is only read when
    the snapshot is built. ``company_projects`` maps every project of the
    user's active companies to its company, so company-level roles can be
    applied to projects the user holds no membership on.
    """
    user_id: str
    system_role: SystemRole
    company_permissions: list[CompanyPermission] = field(default_factory=list)
    project_permissions: list[ProjectPermission] = field(default_factory=list)
    company_projects: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._companies = {p.company_id: p.company_role for p in self.company_permissions}
        self._projects = {p.project_id: p for p in self.project_permissions}
        for permission in self.project_permissions:
            self.company_projects.setdefault(permission.project_id, permission.company_id)

    @classmethod
    def empty(cls, user_id: str) -> "ResolvedPermissions":
        """Lowest-privilege result for unknown or deactivated users."""
        return cls(user_id=user_id, system_role=SystemRole.HOMEOWNER)

    @property
    def is_super_admin(self) -> bool:
        return self.system_role == SystemRole.SUPER_ADMIN

    def company_role(self, company_id: str) -> CompanyRole | None:
        return self._companies.get(company_id)

    def project_role(self, project_id: str) -> ProjectRole | None:
        permission = self._projects.get(project_id)
        return permission.project_role if permission else None

    def project_company(self, project_id: str) -> str | None:
        return self.company_projects.get(project_id)

    def can_view_company(self, company_id: str) -> bool:
        return company_id in self._companies

    def can_view_project(self, project_id: str) -> bool:
        """Project members, plus managers of the owning company."""
        if project_id in self._projects:
            return True
        company_id = self.company_projects.get(project_id)
        return company_id is not None and self.can_manage_company(company_id)

    def can_manage_company(self, company_id: str) -> bool:
        """True for super admins and company admins or project managers."""
        if self.is_super_admin:
            return True
        return self.company_role(company_id) in MANAGING_COMPANY_ROLES

    def can_invite_to_project(self, project_id: str) -> bool:
        """
        True for super admins, project managers on this specific project, and
        admins or project managers of the company owning the project.
        """
        if self.is_super_admin:
            return True
        if self.project_role(project_id) == ProjectRole.PROJECT_MANAGER:
            return True
        company_id = self.company_projects.get(project_id)
        return company_id is not None and self.can_manage_company(company_id)

    def company_ids(self, roles: set[CompanyRole] | None = None) -> list[str]:
        """Companies the user belongs to, optionally filtered by role."""
        return [
            p.company_id
            for p in self.company_permissions
            if roles is None or p.company_role in roles
        ]

    def project_ids(
        self,
        roles: set[ProjectRole] | None = None,
        company_id: str | None = None,
    ) -> list[str]:
        """Projects the user belongs to, optionally filtered by role or company."""
        return [
            p.project_id
            for p in self.project_permissions
            if (roles is None or p.project_role in roles)
            and (company_id is None or p.company_id == company_id)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "system_role": self.system_role.value,
            "company_permissions": [p.to_dict() for p in self.company_permissions],
            "project_permissions": [p.to_dict() for p in self.project_permissions],
        }


@dataclass
class Invitation:
    """Invitation as seen by callers. Never carries the token."""
    id: str
    email: str
    company_id: str
    company_role: CompanyRole
    status: InvitationStatus
    expires_at: datetime
    project_id: str | None = None
    project_role: ProjectRole | None = None
    invited_by: str | None = None
    custom_message: str | None = None
    accepted_at: datetime | None = None
    created_at: datetime | None = None
    company_name: str | None = None
    project_name: str | None = None
    inviter_name: str | None = None

    @classmethod
    def from_model(cls, row: Any, now: datetime | None = None, **names: Any) -> "Invitation":
        """Build from an ``InvitationModel`` row, reporting lapsed rows as expired."""
        invitation = cls(
            id=row.id,
            email=row.email,
            company_id=row.company_id,
            company_role=CompanyRole(row.company_role),
            status=InvitationStatus(row.status),
            expires_at=ensure_utc(row.expires_at),
            project_id=row.project_id,
            project_role=ProjectRole(row.project_role) if row.project_role else None,
            invited_by=row.invited_by,
            custom_message=row.custom_message,
            accepted_at=ensure_utc(row.accepted_at),
            created_at=ensure_utc(row.created_at),
            **names,
        )
        invitation.status = invitation.effective_status(now)
        return invitation

    def effective_status(self, now: datetime | None = None) -> InvitationStatus:
        if self.status == InvitationStatus.PENDING and (now or utc_now()) > self.expires_at:
            return InvitationStatus.EXPIRED
        return self.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "company_id": self.company_id,
            "company_name": self.company_name,
            "company_role": self.company_role.value,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "project_role": self.project_role.value if self.project_role else None,
            "invited_by": self.invited_by,
            "inviter_name": self.inviter_name,
            "status": self.status.value,
            "custom_message": self.custom_message,
            "expires_at": format_iso(self.expires_at),
            "accepted_at": format_iso(self.accepted_at),
            "created_at": format_iso(self.created_at),
        }


@dataclass
class InvitationResult:
    """Outcome of create/resend. The plaintext token exists only here."""
    invitation: Invitation
    token: str
    accept_url: str
    email_sent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "invitation": self.invitation.to_dict(),
            "accept_url": self.accept_url,
            "email_sent": self.email_sent,
        }


@dataclass
class AcceptResult:
    """Outcome of a successful accept."""
    invitation_id: str
    user_id: str
    company_id: str
    company_role: CompanyRole
    project_id: str | None = None
    project_role: ProjectRole | None = None
    seat_consumed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "invitation_id": self.invitation_id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "company_role": self.company_role.value,
            "project_id": self.project_id,
            "project_role": self.project_role.value if self.project_role else None,
            "seat_consumed": self.seat_consumed,
        }


@dataclass
class SeatCheck:
    """Result of a check-only seat read."""
    company_id: str
    max_seats: int
    used_seats: int
    subscription_status: SubscriptionStatus

    @property
    def available(self) -> int:
        return max(self.max_seats - self.used_seats, 0)

    @property
    def has_capacity(self) -> bool:
        return self.used_seats < self.max_seats

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "max_seats": self.max_seats,
            "used_seats": self.used_seats,
            "available": self.available,
            "subscription_status": self.subscription_status.value,
        }
