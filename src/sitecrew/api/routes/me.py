"""Caller-scoped permission endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from sitecrew.api.middleware.security import get_request_context
from sitecrew.api.models import ok
from sitecrew.auth.gateway import RequestContext

router = APIRouter()


@router.get("/permissions")
def my_permissions(context: RequestContext = Depends(get_request_context)):
    """Resolved permissions of the caller."""
    return ok(context.permissions.to_dict())


@router.get("/companies")
def my_companies(context: RequestContext = Depends(get_request_context)):
    """Company ids and roles visible to the caller."""
    permissions = context.permissions
    return ok([
        {"company_id": company_id, "company_role": permissions.company_role(company_id).value}
        for company_id in context.scoped_companies()
    ])


@router.get("/projects")
def my_projects(
    company_id: str | None = Query(None),
    context: RequestContext = Depends(get_request_context),
):
    """Project ids visible to the caller, optionally for one company."""
    permissions = context.permissions
    projects = []
    for project_id in context.scoped_projects(company_id):
        role = permissions.project_role(project_id)
        projects.append({
            "project_id": project_id,
            "company_id": permissions.project_company(project_id),
            "project_role": role.value if role else None,
        })
    return ok(projects)
