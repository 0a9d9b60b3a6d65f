"""Tenancy store: transactional query interface over the SQLAlchemy models."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Iterable, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from sitecrew.core.exceptions import StoreUnavailable
from sitecrew.core.utils import utc_now
from sitecrew.db.engine import get_session_factory
from sitecrew.db.models import (
    AuditLogModel,
    CompanyMembershipModel,
    CompanyModel,
    CompanySubscriptionModel,
    InvitationModel,
    ProjectMembershipModel,
    ProjectModel,
    UserModel,
)

logger = structlog.get_logger()


class TenancyStore:
    """
    Keyed reads and conditional writes against the tenancy tables.

    Every method takes the session of an open ``transaction()`` so callers
    decide the transaction boundary. Conditional updates return whether a
    row matched; callers turn a miss into the right domain error.
    """

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory
        self.logger = logger.bind(component="tenancy_store")

    @property
    def session_factory(self):
        return self._session_factory or get_session_factory()

    @contextmanager
    def transaction(self, operation: str = "transaction") -> Generator[Session, None, None]:
        """
        Open a session that commits on success and rolls back on any error.

        Integrity violations propagate unchanged; connectivity and other
        driver failures become ``StoreUnavailable``.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except (OperationalError, DBAPIError) as e:
            session.rollback()
            self.logger.error("Store operation failed", operation=operation, error=str(e))
            raise StoreUnavailable(operation=operation) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Users
    # ========================================================================

    def get_user(self, session: Session, user_id: str) -> Optional[UserModel]:
        return session.get(UserModel, user_id)

    def get_user_by_email(self, session: Session, email: str) -> Optional[UserModel]:
        return session.query(UserModel).filter(UserModel.email == email).first()

    def add_user(
        self,
        session: Session,
        email: str,
        system_role: str,
        full_name: str = "",
        user_id: str | None = None,
    ) -> UserModel:
        user = UserModel(email=email, system_role=system_role, full_name=full_name)
        if user_id:
            user.id = user_id
        session.add(user)
        session.flush()
        return user

    # ========================================================================
    # Companies and subscriptions
    # ========================================================================

    def get_company(self, session: Session, company_id: str) -> Optional[CompanyModel]:
        return session.get(CompanyModel, company_id)

    def all_company_ids(self, session: Session) -> list[str]:
        rows = session.query(CompanyModel.id).order_by(CompanyModel.created_at).all()
        return [row[0] for row in rows]

    def add_company(
        self,
        session: Session,
        name: str,
        created_by: str | None,
        max_seats: int,
        plan_tier: str = "starter",
        subscription_status: str = "trial",
        industry: str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> CompanyModel:
        """Create a company together with its single subscription row."""
        company = CompanyModel(
            name=name,
            industry=industry,
            subscription_status=subscription_status,
            settings=settings or {},
            created_by=created_by,
        )
        company.subscription = CompanySubscriptionModel(
            plan_tier=plan_tier,
            max_seats=max_seats,
            used_seats=0,
        )
        session.add(company)
        session.flush()
        return company

    def get_subscription(
        self, session: Session, company_id: str
    ) -> Optional[CompanySubscriptionModel]:
        return (
            session.query(CompanySubscriptionModel)
            .filter(CompanySubscriptionModel.company_id == company_id)
            .first()
        )

    def increment_used_seats(self, session: Session, company_id: str) -> bool:
        """Conditionally take one seat. False when the company is full."""
        updated = (
            session.query(CompanySubscriptionModel)
            .filter(
                CompanySubscriptionModel.company_id == company_id,
                CompanySubscriptionModel.used_seats < CompanySubscriptionModel.max_seats,
            )
            .update(
                {
                    CompanySubscriptionModel.used_seats: CompanySubscriptionModel.used_seats + 1,
                    CompanySubscriptionModel.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def decrement_used_seats(self, session: Session, company_id: str) -> bool:
        """Conditionally give back one seat. False when none are in use."""
        updated = (
            session.query(CompanySubscriptionModel)
            .filter(
                CompanySubscriptionModel.company_id == company_id,
                CompanySubscriptionModel.used_seats > 0,
            )
            .update(
                {
                    CompanySubscriptionModel.used_seats: CompanySubscriptionModel.used_seats - 1,
                    CompanySubscriptionModel.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def set_max_seats(self, session: Session, company_id: str, max_seats: int) -> bool:
        """Conditionally change capacity. False when more seats are in use."""
        updated = (
            session.query(CompanySubscriptionModel)
            .filter(
                CompanySubscriptionModel.company_id == company_id,
                CompanySubscriptionModel.used_seats <= max_seats,
            )
            .update(
                {
                    CompanySubscriptionModel.max_seats: max_seats,
                    CompanySubscriptionModel.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    # ========================================================================
    # Memberships
    # ========================================================================

    def get_company_membership(
        self, session: Session, user_id: str, company_id: str
    ) -> Optional[CompanyMembershipModel]:
        return (
            session.query(CompanyMembershipModel)
            .filter(
                CompanyMembershipModel.user_id == user_id,
                CompanyMembershipModel.company_id == company_id,
            )
            .first()
        )

    def active_company_memberships(
        self, session: Session, user_id: str
    ) -> list[CompanyMembershipModel]:
        return (
            session.query(CompanyMembershipModel)
            .filter(
                CompanyMembershipModel.user_id == user_id,
                CompanyMembershipModel.is_active.is_(True),
            )
            .all()
        )

    def project_memberships_with_company(
        self, session: Session, user_id: str
    ) -> list[tuple[ProjectMembershipModel, str]]:
        """Project memberships of a user paired with each project's company id."""
        return (
            session.query(ProjectMembershipModel, ProjectModel.company_id)
            .join(ProjectModel, ProjectModel.id == ProjectMembershipModel.project_id)
            .filter(ProjectMembershipModel.user_id == user_id)
            .all()
        )

    def get_project_membership(
        self, session: Session, user_id: str, project_id: str
    ) -> Optional[ProjectMembershipModel]:
        return (
            session.query(ProjectMembershipModel)
            .filter(
                ProjectMembershipModel.user_id == user_id,
                ProjectMembershipModel.project_id == project_id,
            )
            .first()
        )

    def add_company_membership(
        self,
        session: Session,
        user_id: str,
        company_id: str,
        company_role: str,
        invited_by: str | None = None,
    ) -> CompanyMembershipModel:
        membership = CompanyMembershipModel(
            user_id=user_id,
            company_id=company_id,
            company_role=company_role,
            is_active=True,
            invited_by=invited_by,
        )
        session.add(membership)
        session.flush()
        return membership

    def add_project_membership(
        self, session: Session, user_id: str, project_id: str, project_role: str
    ) -> ProjectMembershipModel:
        membership = ProjectMembershipModel(
            user_id=user_id,
            project_id=project_id,
            project_role=project_role,
        )
        session.add(membership)
        session.flush()
        return membership

    # ========================================================================
    # Projects
    # ========================================================================

    def get_project(self, session: Session, project_id: str) -> Optional[ProjectModel]:
        return session.get(ProjectModel, project_id)

    def project_company_map(
        self, session: Session, company_ids: Iterable[str] | None = None
    ) -> dict[str, str]:
        """Map project id to company id, for all projects or those of the given companies."""
        query = session.query(ProjectModel.id, ProjectModel.company_id)
        if company_ids is not None:
            company_ids = list(company_ids)
            if not company_ids:
                return {}
            query = query.filter(ProjectModel.company_id.in_(company_ids))
        return {project_id: company_id for project_id, company_id in query.all()}

    def add_project(self, session: Session, company_id: str, name: str, **fields: Any) -> ProjectModel:
        project = ProjectModel(company_id=company_id, name=name, **fields)
        session.add(project)
        session.flush()
        return project

    # ========================================================================
    # Invitations
    # ========================================================================

    def get_invitation(self, session: Session, invitation_id: str) -> Optional[InvitationModel]:
        return session.get(InvitationModel, invitation_id)

    def find_invitation_by_token_hash(
        self, session: Session, token_hash: str
    ) -> Optional[InvitationModel]:
        return (
            session.query(InvitationModel)
            .filter(InvitationModel.token_hash == token_hash)
            .first()
        )

    def find_pending_invitation(
        self,
        session: Session,
        email: str,
        company_id: str,
        project_id: str | None,
    ) -> Optional[InvitationModel]:
        """Duplicate detection on (email, company_id, project_id, status)."""
        query = session.query(InvitationModel).filter(
            InvitationModel.email == email,
            InvitationModel.company_id == company_id,
            InvitationModel.status == "pending",
        )
        if project_id is None:
            query = query.filter(InvitationModel.project_id.is_(None))
        else:
            query = query.filter(InvitationModel.project_id == project_id)
        return query.first()

    def count_live_pending(self, session: Session, company_id: str, now: datetime) -> int:
        return (
            session.query(func.count(InvitationModel.id))
            .filter(
                InvitationModel.company_id == company_id,
                InvitationModel.status == "pending",
                InvitationModel.expires_at >= now,
            )
            .scalar()
        ) or 0

    def add_invitation(self, session: Session, **fields: Any) -> InvitationModel:
        invitation = InvitationModel(**fields)
        session.add(invitation)
        session.flush()
        return invitation

    def transition_invitation(
        self,
        session: Session,
        invitation_id: str,
        from_statuses: Iterable[str],
        values: dict[str, Any],
        expected_token_hash: str | None = None,
    ) -> bool:
        """
        Compare-and-set update of an invitation row.

        Only applies ``values`` when the row is still in one of
        ``from_statuses`` (and still carries ``expected_token_hash`` when
        given). Returns False when another writer got there first.
        """
        query = session.query(InvitationModel).filter(
            InvitationModel.id == invitation_id,
            InvitationModel.status.in_(list(from_statuses)),
        )
        if expected_token_hash is not None:
            query = query.filter(InvitationModel.token_hash == expected_token_hash)
        values = dict(values)
        values.setdefault("updated_at", utc_now())
        updated = query.update(values, synchronize_session=False)
        session.flush()
        return updated == 1

    def list_invitations(
        self,
        session: Session,
        company_id: str,
        statuses: list[str] | None = None,
        project_id: str | None = None,
        offset: int = 0,
        limit: int = 20,
        lapsed_before: datetime | None = None,
        include_lapsed: bool = True,
    ) -> tuple[list[InvitationModel], int]:
        """
        Page through a company's invitations, newest first.

        ``lapsed_before`` is the current time: pending rows whose expiry lies
        before it are kept or dropped according to ``include_lapsed``.
        """
        query = session.query(InvitationModel).filter(InvitationModel.company_id == company_id)
        if project_id is not None:
            query = query.filter(InvitationModel.project_id == project_id)
        if statuses is not None:
            query = query.filter(InvitationModel.status.in_(statuses))
        if lapsed_before is not None and not include_lapsed:
            query = query.filter(InvitationModel.expires_at >= lapsed_before)

        total = query.count()
        rows = (
            query.order_by(InvitationModel.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    def list_expired_invitations(
        self,
        session: Session,
        company_id: str,
        now: datetime,
        project_id: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[InvitationModel], int]:
        """Rows that read as expired: stored expired, or pending past expiry."""
        query = session.query(InvitationModel).filter(
            InvitationModel.company_id == company_id,
            (InvitationModel.status == "expired")
            | ((InvitationModel.status == "pending") & (InvitationModel.expires_at < now)),
        )
        if project_id is not None:
            query = query.filter(InvitationModel.project_id == project_id)
        total = query.count()
        rows = (
            query.order_by(InvitationModel.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    def expire_lapsed(self, session: Session, now: datetime) -> int:
        """Mark every pending row past its expiry as expired."""
        updated = (
            session.query(InvitationModel)
            .filter(
                InvitationModel.status == "pending",
                InvitationModel.expires_at < now,
            )
            .update(
                {
                    InvitationModel.status: "expired",
                    InvitationModel.pending_key: None,
                    InvitationModel.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated

    # ========================================================================
    # Audit
    # ========================================================================

    def log_action(
        self,
        session: Session,
        action: str,
        user_id: str | None = None,
        company_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
        success: bool = True,
    ) -> None:
        session.add(AuditLogModel(
            action=action,
            user_id=user_id,
            company_id=company_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            success=success,
        ))
