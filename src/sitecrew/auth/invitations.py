"""Invitation lifecycle: create, resend, cancel, accept, decline, expire."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitecrew.auth.models import (
    AcceptResult,
    CallerIdentity,
    CompanyRole,
    Invitation,
    InvitationResult,
    InvitationStatus,
    ProjectRole,
    RESOLVED_STATUSES,
    ResolvedPermissions,
    SystemRole,
)
from sitecrew.auth.seats import SeatEnforcer
from sitecrew.auth.tokens import TokenCodec
from sitecrew.core.config import Settings, get_settings
from sitecrew.core.exceptions import (
    AlreadyMember,
    BUSINESS_OUTCOMES,
    CapacityExceeded,
    DuplicatePending,
    EmailMismatch,
    Forbidden,
    InvalidState,
    InvitationAlreadyResolved,
    InvitationExpired,
    InvitationLimitExceeded,
    NotFoundError,
    ValidationError,
)
from sitecrew.core.utils import days_from_now, ensure_utc, normalize_email, utc_now
from sitecrew.db.models import InvitationModel
from sitecrew.db.store import TenancyStore
from sitecrew.notifications.notifier import InvitationEmail, InvitationNotifier, dispatch
from sitecrew.utils.logging import audit_logger

logger = structlog.get_logger()

MAX_PAGE_SIZE = 100

_REOPENABLE = ("pending", "expired")


def _coerce_enum(enum_cls, value: Any, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}", field=field) from None


def system_role_for(company_role: CompanyRole, project_role: ProjectRole | None) -> SystemRole:
    """System role given to a user created by accepting an invitation."""
    if company_role in (CompanyRole.ADMIN, CompanyRole.PROJECT_MANAGER):
        return SystemRole.PROJECT_MANAGER
    if project_role == ProjectRole.CONTRACTOR:
        return SystemRole.CONTRACTOR
    return SystemRole.HOMEOWNER


class InvitationManager:
    """
    Orchestrates the invitation state machine.

    Every transition is one store transaction and uses a compare-and-set
    update on the invitation row, so concurrent callers cannot both win.
    Emails go out after commit and never affect the stored outcome.
    """

    def __init__(
        self,
        store: TenancyStore | None = None,
        seats: SeatEnforcer | None = None,
        codec: TokenCodec | None = None,
        notifier: InvitationNotifier | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store or TenancyStore()
        self.seats = seats or SeatEnforcer(self.store)
        self.codec = codec or TokenCodec(self.store)
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.clock = clock
        self.logger = logger.bind(component="invitation_manager")

    # ========================================================================
    # Authorization helpers
    # ========================================================================

    def _authorize(
        self,
        permissions: ResolvedPermissions,
        company_id: str,
        project_id: str | None,
    ) -> None:
        if project_id is not None:
            if not permissions.can_invite_to_project(project_id):
                audit_logger.log_access_event(
                    "invite_to_project", permissions.user_id, company_id, project_id, granted=False
                )
                raise Forbidden(permission="invite_to_project")
        elif not permissions.can_manage_company(company_id):
            audit_logger.log_access_event(
                "manage_company", permissions.user_id, company_id, granted=False
            )
            raise Forbidden(permission="manage_company")

    def _check_role_grant(
        self,
        permissions: ResolvedPermissions,
        company_id: str,
        company_role: CompanyRole,
    ) -> None:
        """Only admins may grant admin; plain members may not grant project_manager."""
        if permissions.is_super_admin:
            return
        inviter_role = permissions.company_role(company_id)
        if company_role == CompanyRole.ADMIN and inviter_role != CompanyRole.ADMIN:
            raise Forbidden(
                "Only company admins can invite other admins",
                permission="invite_admin",
            )
        if company_role == CompanyRole.PROJECT_MANAGER and inviter_role in (None, CompanyRole.MEMBER):
            raise Forbidden(
                "Members cannot invite project managers",
                permission="invite_project_manager",
            )

    # ========================================================================
    # Create / resend / cancel
    # ========================================================================

    def create(
        self,
        permissions: ResolvedPermissions,
        email: str,
        company_id: str,
        company_role: CompanyRole | str = CompanyRole.MEMBER,
        project_id: str | None = None,
        project_role: ProjectRole | str | None = None,
        custom_message: str | None = None,
        expires_in_days: int | None = None,
    ) -> InvitationResult:
        """
        Create a pending invitation and email it.

        Args:
            permissions: Resolved permissions of the inviter
            email: Target address
            company_id: Company to join
            company_role: Role in the company
            project_id: Optional project to join
            project_role: Role on the project, required with project_id
            custom_message: Optional note included in the email
            expires_in_days: Lifetime override, 1 to 30 days

        Returns:
            InvitationResult with the plaintext token and email outcome
        """
        email = normalize_email(email)
        company_role = _coerce_enum(CompanyRole, company_role, "company_role")
        project_role = _coerce_enum(ProjectRole, project_role, "project_role")
        if (project_id is None) != (project_role is None):
            raise ValidationError(
                "project_id and project_role must be given together",
                field="project_role",
            )
        days = expires_in_days or self.settings.invitations.expiry_days
        if not 1 <= days <= 30:
            raise ValidationError("expires_in_days must be between 1 and 30", field="expires_in_days")

        self._authorize(permissions, company_id, project_id)
        self._check_role_grant(permissions, company_id, company_role)

        now = self.clock()
        token = self.codec.generate()

        try:
            with self.store.transaction("create_invitation") as session:
                company = self.store.get_company(session, company_id)
                if company is None:
                    raise NotFoundError("Company not found", resource_type="company", resource_id=company_id)

                project = None
                if project_id is not None:
                    project = self.store.get_project(session, project_id)
                    if project is None or project.company_id != company_id:
                        raise NotFoundError(
                            "Project not found or does not belong to this company",
                            resource_type="project",
                            resource_id=project_id,
                        )

                needs_seat = self._check_not_member(session, email, company_id, project_id)
                self._clear_stale_pending(session, email, company_id, project_id, now)

                pending = self.store.count_live_pending(session, company_id, now)
                if pending >= self.settings.invitations.max_pending_per_company:
                    raise InvitationLimitExceeded(
                        "Too many pending invitations. Please wait for some to be accepted or cancelled.",
                        {"pending": pending},
                    )

                if needs_seat:
                    self._check_capacity(session, company_id)

                row = self.store.add_invitation(
                    session,
                    email=email,
                    company_id=company_id,
                    company_role=company_role.value,
                    project_id=project_id,
                    project_role=project_role.value if project_role else None,
                    token_hash=self.codec.hash_token(token),
                    pending_key=InvitationModel.make_pending_key(email, company_id, project_id),
                    invited_by=permissions.user_id,
                    status=InvitationStatus.PENDING.value,
                    expires_at=days_from_now(days, now),
                    custom_message=custom_message,
                    created_at=now,
                    updated_at=now,
                )
                inviter = self.store.get_user(session, permissions.user_id)
                invitation = Invitation.from_model(
                    row,
                    now,
                    company_name=company.name,
                    project_name=project.name if project else None,
                    inviter_name=(inviter.full_name or inviter.email) if inviter else None,
                )
                self.store.log_action(
                    session,
                    "invitation_created",
                    user_id=permissions.user_id,
                    company_id=company_id,
                    resource_type="invitation",
                    resource_id=row.id,
                    details={"email": email, "company_role": company_role.value, "project_id": project_id},
                )
        except IntegrityError as e:
            raise DuplicatePending() from e

        audit_logger.log_invitation_event(
            "created", invitation.id, actor_id=permissions.user_id, company_id=company_id,
        )
        return self._deliver(invitation, token)

    def _check_not_member(
        self,
        session: Session,
        email: str,
        company_id: str,
        project_id: str | None,
    ) -> bool:
        """Raise AlreadyMember when the invite would change nothing. Returns whether a seat is needed."""
        user = self.store.get_user_by_email(session, email)
        if user is None:
            return True
        membership = self.store.get_company_membership(session, user.id, company_id)
        if membership is None or not membership.is_active:
            return True
        if project_id is None:
            raise AlreadyMember("User is already a member of this company")
        if self.store.get_project_membership(session, user.id, project_id) is not None:
            raise AlreadyMember("User is already a member of this project")
        return False

    def _clear_stale_pending(
        self,
        session: Session,
        email: str,
        company_id: str,
        project_id: str | None,
        now: datetime,
    ) -> None:
        existing = self.store.find_pending_invitation(session, email, company_id, project_id)
        if existing is None:
            return
        if ensure_utc(existing.expires_at) >= now:
            raise DuplicatePending(invitation_id=existing.id)
        # Lapsed: record it as expired so the new row can take the pending slot
        self.store.transition_invitation(
            session,
            existing.id,
            ["pending"],
            {"status": InvitationStatus.EXPIRED.value, "pending_key": None, "updated_at": now},
        )

    def _check_capacity(self, session: Session, company_id: str) -> None:
        try:
            self.seats.try_reserve_seat(session, company_id)
        except CapacityExceeded:
            if self.settings.invitations.enforce_seats_on_create:
                raise
            self.logger.warning(
                "Company at seat capacity, invitation will need a free seat on accept",
                company_id=company_id,
            )

    def resend(
        self,
        permissions: ResolvedPermissions,
        invitation_id: str,
        expires_in_days: int | None = None,
    ) -> InvitationResult:
        """Issue a new token and expiry for a pending or lapsed invitation."""
        now = self.clock()
        token = self.codec.generate()
        days = expires_in_days or self.settings.invitations.expiry_days

        try:
            with self.store.transaction("resend_invitation") as session:
                row = self._get_row(session, invitation_id)
                self._authorize(permissions, row.company_id, row.project_id)
                if row.status not in _REOPENABLE:
                    raise InvalidState(
                        f"Cannot resend an invitation that is {row.status}",
                        status=row.status,
                    )

                updated = self.store.transition_invitation(
                    session,
                    row.id,
                    _REOPENABLE,
                    {
                        "status": InvitationStatus.PENDING.value,
                        "token_hash": self.codec.hash_token(token),
                        "pending_key": InvitationModel.make_pending_key(
                            row.email, row.company_id, row.project_id
                        ),
                        "expires_at": days_from_now(days, now),
                        "resolved_at": None,
                        "updated_at": now,
                    },
                    expected_token_hash=row.token_hash,
                )
                if not updated:
                    raise InvalidState("Invitation changed while resending")
                session.refresh(row)
                invitation = self._with_names(session, row, now)
                self.store.log_action(
                    session,
                    "invitation_resent",
                    user_id=permissions.user_id,
                    company_id=row.company_id,
                    resource_type="invitation",
                    resource_id=row.id,
                )
        except IntegrityError as e:
            # A newer pending invitation already holds this target
            raise DuplicatePending() from e

        audit_logger.log_invitation_event(
            "resent", invitation.id, actor_id=permissions.user_id, company_id=invitation.company_id,
        )
        return self._deliver(invitation, token)

    def cancel(self, permissions: ResolvedPermissions, invitation_id: str) -> Invitation:
        """Cancel a pending or lapsed invitation."""
        now = self.clock()
        with self.store.transaction("cancel_invitation") as session:
            row = self._get_row(session, invitation_id)
            self._authorize(permissions, row.company_id, row.project_id)
            if row.status not in _REOPENABLE:
                raise InvalidState(
                    f"Cannot cancel an invitation that is {row.status}",
                    status=row.status,
                )
            updated = self.store.transition_invitation(
                session,
                row.id,
                _REOPENABLE,
                {
                    "status": InvitationStatus.CANCELLED.value,
                    "pending_key": None,
                    "resolved_at": now,
                    "updated_at": now,
                },
            )
            if not updated:
                raise InvalidState("Invitation changed while cancelling")
            session.refresh(row)
            invitation = Invitation.from_model(row, now)
            self.store.log_action(
                session,
                "invitation_cancelled",
                user_id=permissions.user_id,
                company_id=row.company_id,
                resource_type="invitation",
                resource_id=row.id,
            )

        audit_logger.log_invitation_event(
            "cancelled", invitation.id, actor_id=permissions.user_id, company_id=invitation.company_id,
        )
        return invitation

    # ========================================================================
    # Accept / decline
    # ========================================================================

    def _check_usable(self, row: InvitationModel, now: datetime) -> None:
        status = InvitationStatus(row.status)
        if status in RESOLVED_STATUSES:
            raise InvitationAlreadyResolved(
                f"Invitation has already been {status.value}",
                status=status.value,
            )
        if status == InvitationStatus.EXPIRED or now > ensure_utc(row.expires_at):
            raise InvitationExpired()

    def _check_email(self, row: InvitationModel, caller: CallerIdentity) -> None:
        try:
            caller_email = normalize_email(caller.email)
        except ValidationError:
            raise EmailMismatch() from None
        if caller_email != row.email:
            raise EmailMismatch()

    def accept(self, token: str, caller: CallerIdentity) -> AcceptResult:
        """
        Accept an invitation as the authenticated caller.

        Claims the invitation, creates or reuses the user, activates the
        company membership (taking a seat when a new one is needed) and sets
        the project membership, all in one transaction.

        Raises:
            TokenNotFound, InvitationAlreadyResolved, InvitationExpired,
            EmailMismatch, CapacityExceeded, SubscriptionInactive
        """
        now = self.clock()
        try:
            with self.store.transaction("accept_invitation") as session:
                row = self.codec.lookup(session, token)
                self._check_usable(row, now)
                self._check_email(row, caller)

                claimed = self.store.transition_invitation(
                    session,
                    row.id,
                    ["pending"],
                    {
                        "status": InvitationStatus.ACCEPTED.value,
                        "pending_key": None,
                        "accepted_by": caller.user_id,
                        "accepted_at": now,
                        "resolved_at": now,
                        "updated_at": now,
                    },
                    expected_token_hash=row.token_hash,
                )
                if not claimed:
                    raise InvitationAlreadyResolved()

                result = self._apply_membership(session, row, caller)
                self.store.log_action(
                    session,
                    "invitation_accepted",
                    user_id=result.user_id,
                    company_id=row.company_id,
                    resource_type="invitation",
                    resource_id=row.id,
                    details={"seat_consumed": result.seat_consumed},
                )
        except BUSINESS_OUTCOMES as e:
            self.logger.info("Invitation accept refused", code=e.code, user_id=caller.user_id)
            raise
        except IntegrityError as e:
            raise AlreadyMember("Membership changed while accepting the invitation") from e

        audit_logger.log_invitation_event(
            "accepted", result.invitation_id, actor_id=result.user_id, company_id=result.company_id,
            details={"seat_consumed": result.seat_consumed},
        )
        return result

    def _apply_membership(
        self,
        session: Session,
        row: InvitationModel,
        caller: CallerIdentity,
    ) -> AcceptResult:
        company_role = CompanyRole(row.company_role)
        project_role = ProjectRole(row.project_role) if row.project_role else None

        user = self.store.get_user(session, caller.user_id)
        if user is None:
            user = self.store.get_user_by_email(session, row.email)
        if user is None:
            user = self.store.add_user(
                session,
                email=row.email,
                system_role=system_role_for(company_role, project_role).value,
                full_name=caller.full_name,
                user_id=caller.user_id,
            )
        elif not user.is_active:
            raise Forbidden("Account is deactivated", permission="active_account")

        seat_consumed = False
        membership = self.store.get_company_membership(session, user.id, row.company_id)
        if membership is None:
            self.seats.confirm_seat(session, row.company_id)
            self.store.add_company_membership(
                session, user.id, row.company_id, company_role.value, invited_by=row.invited_by,
            )
            seat_consumed = True
        elif not membership.is_active:
            self.seats.confirm_seat(session, row.company_id)
            membership.is_active = True
            membership.company_role = company_role.value
            membership.invited_by = row.invited_by
            seat_consumed = True

        if row.project_id is not None:
            project_membership = self.store.get_project_membership(session, user.id, row.project_id)
            if project_membership is None:
                self.store.add_project_membership(session, user.id, row.project_id, project_role.value)
            else:
                project_membership.project_role = project_role.value
        session.flush()

        return AcceptResult(
            invitation_id=row.id,
            user_id=user.id,
            company_id=row.company_id,
            company_role=CompanyRole(membership.company_role) if membership else company_role,
            project_id=row.project_id,
            project_role=project_role,
            seat_consumed=seat_consumed,
        )

    def decline(self, token: str, caller: CallerIdentity) -> Invitation:
        """Decline an invitation. No membership or seat changes."""
        now = self.clock()
        try:
            with self.store.transaction("decline_invitation") as session:
                row = self.codec.lookup(session, token)
                self._check_usable(row, now)
                self._check_email(row, caller)
                declined = self.store.transition_invitation(
                    session,
                    row.id,
                    ["pending"],
                    {
                        "status": InvitationStatus.DECLINED.value,
                        "pending_key": None,
                        "resolved_at": now,
                        "updated_at": now,
                    },
                    expected_token_hash=row.token_hash,
                )
                if not declined:
                    raise InvitationAlreadyResolved()
                session.refresh(row)
                invitation = Invitation.from_model(row, now)
                self.store.log_action(
                    session,
                    "invitation_declined",
                    user_id=caller.user_id,
                    company_id=row.company_id,
                    resource_type="invitation",
                    resource_id=row.id,
                )
        except BUSINESS_OUTCOMES as e:
            self.logger.info("Invitation decline refused", code=e.code, user_id=caller.user_id)
            raise

        audit_logger.log_invitation_event(
            "declined", invitation.id, actor_id=caller.user_id, company_id=invitation.company_id,
        )
        return invitation

    # ========================================================================
    # Reads and maintenance
    # ========================================================================

    def get_by_token(self, token: str) -> Invitation:
        """Public preview of an invitation, with company, project and inviter names."""
        now = self.clock()
        with self.store.transaction("get_invitation_by_token") as session:
            row = self.codec.lookup(session, token)
            return self._with_names(session, row, now)

    def list_for_company(
        self,
        permissions: ResolvedPermissions,
        company_id: str,
        status: InvitationStatus | str | None = None,
        project_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Invitation], int]:
        """
        List a company's invitations, newest first.

        Returns:
            Tuple of (invitations on the page, total matching)
        """
        status = _coerce_enum(InvitationStatus, status, "status")
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        if not permissions.can_manage_company(company_id):
            self._authorize(permissions, company_id, project_id)

        now = self.clock()
        offset = (page - 1) * limit
        with self.store.transaction("list_invitations") as session:
            if status == InvitationStatus.EXPIRED:
                rows, total = self.store.list_expired_invitations(
                    session, company_id, now, project_id=project_id, offset=offset, limit=limit,
                )
            elif status == InvitationStatus.PENDING:
                rows, total = self.store.list_invitations(
                    session, company_id, statuses=["pending"], project_id=project_id,
                    offset=offset, limit=limit, lapsed_before=now, include_lapsed=False,
                )
            else:
                rows, total = self.store.list_invitations(
                    session, company_id,
                    statuses=[status.value] if status else None,
                    project_id=project_id, offset=offset, limit=limit,
                )
            return [Invitation.from_model(row, now) for row in rows], total

    def expire_lapsed(self) -> int:
        """Mark lapsed pending invitations as expired. Reporting only."""
        now = self.clock()
        with self.store.transaction("expire_lapsed") as session:
            count = self.store.expire_lapsed(session, now)
        self.logger.info("Lapsed invitations expired", count=count)
        return count

    # ========================================================================
    # Internals
    # ========================================================================

    def _get_row(self, session: Session, invitation_id: str) -> InvitationModel:
        row = self.store.get_invitation(session, invitation_id)
        if row is None:
            raise NotFoundError("Invitation not found", resource_type="invitation", resource_id=invitation_id)
        return row

    def _with_names(self, session: Session, row: InvitationModel, now: datetime) -> Invitation:
        company = self.store.get_company(session, row.company_id)
        project = self.store.get_project(session, row.project_id) if row.project_id else None
        inviter = self.store.get_user(session, row.invited_by) if row.invited_by else None
        return Invitation.from_model(
            row,
            now,
            company_name=company.name if company else None,
            project_name=project.name if project else None,
            inviter_name=(inviter.full_name or inviter.email) if inviter else None,
        )

    def _deliver(self, invitation: Invitation, token: str) -> InvitationResult:
        accept_url = self.settings.accept_url(token)
        message = InvitationEmail(
            email=invitation.email,
            company_name=invitation.company_name or "",
            company_role=invitation.company_role.value,
            accept_url=accept_url,
            expires_at=invitation.expires_at,
            project_name=invitation.project_name,
            project_role=invitation.project_role.value if invitation.project_role else None,
            inviter_name=invitation.inviter_name,
            custom_message=invitation.custom_message,
        )
        email_sent = dispatch(self.notifier, message)
        return InvitationResult(
            invitation=invitation,
            token=token,
            accept_url=accept_url,
            email_sent=email_sent,
        )
