"""Invitation API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from sitecrew.api.middleware.security import Services, get_request_context, get_services
from sitecrew.api.models import ok, paginate
from sitecrew.auth.gateway import RequestContext
from sitecrew.auth.models import CompanyRole, InvitationStatus, ProjectRole

router = APIRouter()


# Request models

class InvitationCreate(BaseModel):
    """Invitation creation request."""
    email: EmailStr
    company_id: str
    company_role: CompanyRole = CompanyRole.MEMBER
    project_id: str | None = None
    project_role: ProjectRole | None = None
    custom_message: str | None = Field(None, max_length=2000)
    expires_in_days: int | None = Field(None, ge=1, le=30)


class InvitationResend(BaseModel):
    """Resend request."""
    expires_in_days: int | None = Field(None, ge=1, le=30)


class TokenRequest(BaseModel):
    """Accept or decline request."""
    token: str = Field(..., min_length=1, max_length=256)


# Endpoints

@router.post("", status_code=201)
def create_invitation(
    body: InvitationCreate,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Create an invitation and send the email."""
    result = services.invitations.create(
        context.permissions,
        email=body.email,
        company_id=body.company_id,
        company_role=body.company_role,
        project_id=body.project_id,
        project_role=body.project_role,
        custom_message=body.custom_message,
        expires_in_days=body.expires_in_days,
    )
    return ok(result.to_dict())


@router.get("")
def list_invitations(
    company_id: str = Query(...),
    status: InvitationStatus | None = Query(None),
    project_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """List a company's invitations."""
    invitations, total = services.invitations.list_for_company(
        context.permissions,
        company_id,
        status=status,
        project_id=project_id,
        page=page,
        limit=limit,
    )
    return ok({
        "invitations": [i.to_dict() for i in invitations],
        "pagination": paginate(page, limit, total),
    })


@router.get("/by-token")
def get_invitation_by_token(
    token: str = Query(..., min_length=1, max_length=256),
    services: Services = Depends(get_services),
):
    """Public invitation preview for the accept page."""
    return ok(services.invitations.get_by_token(token).to_dict())


@router.post("/accept")
def accept_invitation(
    body: TokenRequest,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Accept an invitation as the authenticated caller."""
    result = services.invitations.accept(body.token, context.identity)
    return ok(result.to_dict())


@router.post("/decline")
def decline_invitation(
    body: TokenRequest,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Decline an invitation."""
    invitation = services.invitations.decline(body.token, context.identity)
    return ok(invitation.to_dict())


@router.post("/{invitation_id}/resend")
def resend_invitation(
    invitation_id: str,
    body: InvitationResend | None = None,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Reissue token and expiry, then resend the email."""
    result = services.invitations.resend(
        context.permissions,
        invitation_id,
        expires_in_days=body.expires_in_days if body else None,
    )
    return ok(result.to_dict())


@router.delete("/{invitation_id}")
def cancel_invitation(
    invitation_id: str,
    context: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    """Cancel a pending invitation."""
    invitation = services.invitations.cancel(context.permissions, invitation_id)
    return ok(invitation.to_dict())
