"""Direct tenancy administration: companies, members, projects."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError

from sitecrew.auth.models import (
    CompanyRole,
    ProjectStatus,
    ResolvedPermissions,
    SubscriptionStatus,
)
from sitecrew.auth.seats import SeatEnforcer
from sitecrew.core.exceptions import (
    AlreadyMember,
    CapacityExceeded,
    Forbidden,
    NotFoundError,
    ValidationError,
)
from sitecrew.core.utils import format_iso, normalize_email
from sitecrew.db.store import TenancyStore

logger = structlog.get_logger()


def _company_to_dict(company, subscription) -> dict[str, Any]:
    return {
        "id": company.id,
        "name": company.name,
        "industry": company.industry,
        "subscription_status": company.subscription_status,
        "plan_tier": subscription.plan_tier if subscription else None,
        "max_seats": subscription.max_seats if subscription else 0,
        "used_seats": subscription.used_seats if subscription else 0,
        "created_by": company.created_by,
        "created_at": format_iso(company.created_at),
    }


class TenancyManager:
    """
    Administrative operations outside the invitation flow.

    Direct adds take a seat the same way an accepted invitation does;
    deactivating a membership gives it back.
    """

    def __init__(self, store: TenancyStore | None = None, seats: SeatEnforcer | None = None) -> None:
        self.store = store or TenancyStore()
        self.seats = seats or SeatEnforcer(self.store)
        self.logger = logger.bind(component="tenancy_manager")

    def create_company(
        self,
        permissions: ResolvedPermissions | None,
        name: str,
        max_seats: int = 5,
        plan_tier: str = "starter",
        subscription_status: SubscriptionStatus | str = SubscriptionStatus.TRIAL,
        industry: str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Create a company and its subscription in one transaction.

        Args:
            permissions: Caller permissions; must be a super admin. None is
                only used by operator tooling.
            name: Company name
            max_seats: Seat capacity
            plan_tier: Plan label
            subscription_status: Initial subscription status

        Returns:
            Company summary dict
        """
        if permissions is not None and not permissions.is_super_admin:
            raise Forbidden(permission="super_admin")
        if not name or not name.strip():
            raise ValidationError("Company name is required", field="name")
        if max_seats < 0:
            raise ValidationError("max_seats must not be negative", field="max_seats")
        try:
            status = SubscriptionStatus(subscription_status)
        except ValueError:
            raise ValidationError(
                f"Invalid subscription status: {subscription_status}", field="subscription_status"
            ) from None

        with self.store.transaction("create_company") as session:
            company = self.store.add_company(
                session,
                name=name.strip(),
                created_by=permissions.user_id if permissions else None,
                max_seats=max_seats,
                plan_tier=plan_tier,
                subscription_status=status.value,
                industry=industry,
                settings=settings,
            )
            self.store.log_action(
                session,
                "company_created",
                user_id=permissions.user_id if permissions else None,
                company_id=company.id,
                resource_type="company",
                resource_id=company.id,
            )
            result = _company_to_dict(company, company.subscription)

        self.logger.info("Company created", company_id=result["id"], max_seats=max_seats)
        return result

    def add_member(
        self,
        permissions: ResolvedPermissions,
        company_id: str,
        email: str,
        company_role: CompanyRole | str = CompanyRole.MEMBER,
    ) -> dict[str, Any]:
        """Add an existing user to a company, taking a seat."""
        if not permissions.can_manage_company(company_id):
            raise Forbidden(permission="manage_company")
        try:
            role = CompanyRole(company_role)
        except ValueError:
            raise ValidationError(f"Invalid company_role: {company_role}", field="company_role") from None
        if role == CompanyRole.ADMIN and not (
            permissions.is_super_admin or permissions.company_role(company_id) == CompanyRole.ADMIN
        ):
            raise Forbidden("Only company admins can add other admins", permission="invite_admin")
        email = normalize_email(email)

        try:
            with self.store.transaction("add_member") as session:
                user = self.store.get_user_by_email(session, email)
                if user is None or not user.is_active:
                    raise NotFoundError("User not found", resource_type="user", resource_id=email)
                membership = self.store.get_company_membership(session, user.id, company_id)
                if membership is not None and membership.is_active:
                    raise AlreadyMember("User is already a member of this company")

                self.seats.confirm_seat(session, company_id)
                if membership is None:
                    membership = self.store.add_company_membership(
                        session, user.id, company_id, role.value, invited_by=permissions.user_id,
                    )
                else:
                    membership.is_active = True
                    membership.company_role = role.value
                self.store.log_action(
                    session,
                    "member_added",
                    user_id=permissions.user_id,
                    company_id=company_id,
                    resource_type="user",
                    resource_id=user.id,
                    details={"company_role": role.value},
                )
                result = {
                    "user_id": user.id,
                    "company_id": company_id,
                    "company_role": role.value,
                    "is_active": True,
                }
        except IntegrityError as e:
            raise AlreadyMember("User is already a member of this company") from e

        self.logger.info("Member added", company_id=company_id, user_id=result["user_id"])
        return result

    def deactivate_member(
        self,
        permissions: ResolvedPermissions,
        company_id: str,
        user_id: str,
    ) -> bool:
        """
        Soft-delete a company membership and release its seat.

        Project memberships stay in place; they stop granting access because
        the company membership is inactive.
        """
        if not permissions.can_manage_company(company_id):
            raise Forbidden(permission="manage_company")

        with self.store.transaction("deactivate_member") as session:
            membership = self.store.get_company_membership(session, user_id, company_id)
            if membership is None or not membership.is_active:
                raise NotFoundError(
                    "Active membership not found",
                    resource_type="company_membership",
                    resource_id=user_id,
                )
            membership.is_active = False
            self.seats.release_seat(session, company_id)
            self.store.log_action(
                session,
                "member_deactivated",
                user_id=permissions.user_id,
                company_id=company_id,
                resource_type="user",
                resource_id=user_id,
            )

        self.logger.info("Member deactivated", company_id=company_id, user_id=user_id)
        return True

    def create_project(
        self,
        permissions: ResolvedPermissions,
        company_id: str,
        name: str,
        **fields: Any,
    ) -> dict[str, Any]:
        """Create a project. Company admins and project managers only."""
        if not permissions.can_manage_company(company_id):
            raise Forbidden(permission="manage_company")
        if not name or not name.strip():
            raise ValidationError("Project name is required", field="name")
        status = fields.pop("status", ProjectStatus.PLANNING)
        try:
            status = ProjectStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid project status: {status}", field="status") from None

        with self.store.transaction("create_project") as session:
            if self.store.get_company(session, company_id) is None:
                raise NotFoundError("Company not found", resource_type="company", resource_id=company_id)
            project = self.store.add_project(
                session,
                company_id=company_id,
                name=name.strip(),
                status=status.value,
                created_by=permissions.user_id,
                **fields,
            )
            result = {
                "id": project.id,
                "company_id": company_id,
                "name": project.name,
                "status": project.status,
                "address": project.address,
                "budget": project.budget,
            }

        self.logger.info("Project created", company_id=company_id, project_id=result["id"])
        return result

    def update_seats(
        self,
        permissions: ResolvedPermissions | None,
        company_id: str,
        max_seats: int,
    ) -> dict[str, Any]:
        """
        Change a company's seat capacity.

        Super admins only (None is operator tooling). Capacity can never drop
        below the seats currently in use.
        """
        if permissions is not None and not permissions.is_super_admin:
            raise Forbidden(permission="super_admin")
        if max_seats < 0:
            raise ValidationError("max_seats must not be negative", field="max_seats")

        with self.store.transaction("update_seats") as session:
            subscription = self.store.get_subscription(session, company_id)
            if subscription is None:
                raise NotFoundError("Company not found", resource_type="company", resource_id=company_id)
            if not self.store.set_max_seats(session, company_id, max_seats):
                session.refresh(subscription)
                raise CapacityExceeded(
                    "max_seats cannot be lower than seats in use",
                    company_id=company_id,
                    max_seats=max_seats,
                    used_seats=subscription.used_seats,
                )
            session.refresh(subscription)
            self.store.log_action(
                session,
                "seats_updated",
                user_id=permissions.user_id if permissions else None,
                company_id=company_id,
                resource_type="subscription",
                resource_id=subscription.id,
                details={"max_seats": max_seats},
            )
            result = {
                "company_id": company_id,
                "max_seats": subscription.max_seats,
                "used_seats": subscription.used_seats,
            }

        self.logger.info("Seat capacity updated", company_id=company_id, max_seats=max_seats)
        return result
