"""SQLAlchemy database models for the tenancy store."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from sitecrew.core.utils import utc_now


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class UserModel(Base):
    """Platform user. Never deleted, only deactivated."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), default="")
    system_role = Column(String(20), nullable=False, default="homeowner")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class CompanyModel(Base):
    """Tenant organisation."""
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    industry = Column(String(100), nullable=True)
    subscription_status = Column(String(20), nullable=False, default="trial")
    settings = Column(JSON, default=dict)
    metadata_ = Column("metadata", JSON, default=dict)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    subscription = relationship(
        "CompanySubscriptionModel",
        back_populates="company",
        uselist=False,
        cascade="all, delete-orphan",
    )


class CompanySubscriptionModel(Base):
    """Seat allowance for a company. Exactly one per company."""
    __tablename__ = "company_subscriptions"
    __table_args__ = (
        CheckConstraint("used_seats >= 0", name="ck_subscription_used_seats_nonnegative"),
        CheckConstraint("used_seats <= max_seats", name="ck_subscription_used_seats_capacity"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(
        String(36), ForeignKey("companies.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    plan_tier = Column(String(50), nullable=False, default="starter")
    max_seats = Column(Integer, nullable=False, default=5)
    used_seats = Column(Integer, nullable=False, default=0)
    billing_cycle = Column(String(20), default="monthly")
    price = Column(Float, default=0.0)
    start_date = Column(DateTime(timezone=True), default=utc_now)
    end_date = Column(DateTime(timezone=True), nullable=True)
    external_invoice_ref = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    company = relationship("CompanyModel", back_populates="subscription")


class CompanyMembershipModel(Base):
    """User membership in a company."""
    __tablename__ = "company_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_company_membership_user_company"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    company_role = Column(String(20), nullable=False, default="member")
    is_active = Column(Boolean, nullable=False, default=True)
    invited_by = Column(String(36), nullable=True)
    joined_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class ProjectModel(Base):
    """A construction project owned by one company."""
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="planning")
    homeowner_name = Column(String(200), nullable=True)
    homeowner_email = Column(String(255), nullable=True)
    homeowner_phone = Column(String(50), nullable=True)
    budget = Column(Float, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class ProjectMembershipModel(Base):
    """User role on a single project."""
    __tablename__ = "project_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="uq_project_membership_user_project"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    project_role = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class InvitationModel(Base):
    """
    Invitation to join a company, optionally scoped to a project.

    Only the SHA-256 digest of the token is stored. ``pending_key`` is set
    while the row is pending and cleared on every other status, so its unique
    index allows at most one pending invitation per (email, company, project).
    """
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    company_role = Column(String(20), nullable=False, default="member")
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=True)
    project_role = Column(String(20), nullable=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    invited_by = Column(String(36), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    pending_key = Column(String(400), unique=True, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    custom_message = Column(Text, nullable=True)
    accepted_by = Column(String(36), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    metadata_ = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    @staticmethod
    def make_pending_key(email: str, company_id: str, project_id: str | None) -> str:
        return f"{email}|{company_id}|{project_id or '-'}"


class AuditLogModel(Base):
    """Audit log model for tracking tenancy changes."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    timestamp = Column(DateTime(timezone=True), default=utc_now, index=True)
    user_id = Column(String(36), nullable=True)
    company_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(36), nullable=True)
    details = Column(JSON, default=dict)
    success = Column(Boolean, default=True)
