"""Company administration API endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from sitecrew.api.middleware.security import Services, get_request_context, get_services
from sitecrew.api.models import ok
from sitecrew.auth.gateway import RequestContext
from sitecrew.auth.models import CompanyRole, ProjectStatus, SubscriptionStatus

router = APIRouter()


# Request models

class CompanyCreate(BaseModel):
    """Company creation request (super admin only)."""
    name: str = Field(..., min_length=2, max_length=200)
    industry: str | None = None
    max_seats: int = Field(5, ge=0)
    plan_tier: str = "starter"
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    settings: dict[str, Any] | None = None


class SeatUpdate(BaseModel):
    """Seat capacity change (super admin only)."""
    max_seats: int = Field(..., ge=0)


class MemberAdd(BaseModel):
    """Add member request."""
    email: EmailStr
    company_role: CompanyRole = CompanyRole.MEMBER


class ProjectCreate(BaseModel):
    """Project creation request."""
    name: str = Field(..., min_length=1, max_length=200)
    address: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    homeowner_name: str | None = None
    homeowner_email: EmailStr | None = None
    homeowner_phone: str | None = None
    budget: float | None = Field(None, ge=0)


# Endpoints

@router.post("", status_code=201)
def create_company(
    body: CompanyCreate,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Create a company and its subscription."""
    permissions = context.require_super_admin()
    company = services.tenancy.create_company(
        permissions,
        name=body.name,
        max_seats=body.max_seats,
        plan_tier=body.plan_tier,
        subscription_status=body.subscription_status,
        industry=body.industry,
        settings=body.settings,
    )
    return ok(company)


@router.patch("/{company_id}/seats")
def update_seats(
    company_id: str,
    body: SeatUpdate,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Change seat capacity; never below the seats in use."""
    permissions = context.require_super_admin()
    return ok(services.tenancy.update_seats(permissions, company_id, body.max_seats))


@router.post("/{company_id}/members", status_code=201)
def add_member(
    company_id: str,
    body: MemberAdd,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Add an existing user directly, taking a seat."""
    permissions = context.require_company_manager(company_id)
    member = services.tenancy.add_member(permissions, company_id, body.email, body.company_role)
    return ok(member)


@router.delete("/{company_id}/members/{user_id}")
def remove_member(
    company_id: str,
    user_id: str,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Deactivate a membership and release its seat."""
    permissions = context.require_company_manager(company_id)
    services.tenancy.deactivate_member(permissions, company_id, user_id)
    return ok({"company_id": company_id, "user_id": user_id, "is_active": False})


@router.post("/{company_id}/projects", status_code=201)
def create_project(
    company_id: str,
    body: ProjectCreate,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Create a project in a company."""
    permissions = context.require_company_manager(company_id)
    fields = body.model_dump(exclude={"name"})
    project = services.tenancy.create_project(permissions, company_id, body.name, **fields)
    return ok(project)
