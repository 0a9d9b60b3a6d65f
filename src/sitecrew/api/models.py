"""Pydantic models for API request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


# ========================
# Base Models
# ========================

class SuccessResponse(BaseModel):
    """Success envelope."""
    success: bool = True
    data: Any = None


class ErrorResponse(BaseModel):
    """Error envelope."""
    success: bool = False
    error: str
    code: str


class Pagination(BaseModel):
    """Pagination block for list responses."""
    page: int
    limit: int
    total: int
    pages: int


def ok(data: Any = None) -> dict[str, Any]:
    """Wrap a payload in the success envelope."""
    return SuccessResponse(data=data).model_dump()


def paginate(page: int, limit: int, total: int) -> dict[str, Any]:
    pages = (total + limit - 1) // limit if limit else 0
    return Pagination(page=page, limit=limit, total=total, pages=pages).model_dump()
