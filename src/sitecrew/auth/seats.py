"""Subscription seat accounting."""

from __future__ import annotations

import structlog
from sqlalchemy.orm import Session

from sitecrew.auth.models import SEAT_GRANTING_STATUSES, SeatCheck, SubscriptionStatus
from sitecrew.core.exceptions import CapacityExceeded, NotFoundError, SubscriptionInactive
from sitecrew.db.store import TenancyStore

logger = structlog.get_logger()


class SeatEnforcer:
    """
    Optimistic seat counting.

    ``used_seats`` only moves when a membership becomes active or inactive.
    Pending invitations hold nothing, so the check at invitation time is a
    read and the conditional increment at accept time is the real guard.
    All methods run inside the caller's transaction.
    """

    def __init__(self, store: TenancyStore | None = None) -> None:
        self.store = store or TenancyStore()
        self.logger = logger.bind(component="seat_enforcer")

    def check(self, session: Session, company_id: str) -> SeatCheck:
        """Read current seat usage for a company."""
        subscription = self.store.get_subscription(session, company_id)
        company = self.store.get_company(session, company_id)
        if subscription is None or company is None:
            raise NotFoundError(
                "Company subscription not found",
                resource_type="company",
                resource_id=company_id,
            )
        return SeatCheck(
            company_id=company_id,
            max_seats=subscription.max_seats,
            used_seats=subscription.used_seats,
            subscription_status=SubscriptionStatus(company.subscription_status),
        )

    def _require_active(self, seats: SeatCheck) -> None:
        if seats.subscription_status not in SEAT_GRANTING_STATUSES:
            raise SubscriptionInactive(
                f"Company subscription is {seats.subscription_status.value}",
                {"company_id": seats.company_id},
            )

    def try_reserve_seat(self, session: Session, company_id: str) -> SeatCheck:
        """
        Check-only capacity test. Holds no reservation.

        Raises:
            SubscriptionInactive: If the subscription cannot take new members
            CapacityExceeded: If every seat is in use
        """
        seats = self.check(session, company_id)
        self._require_active(seats)
        if not seats.has_capacity:
            raise CapacityExceeded(
                "Seat limit reached. Upgrade your plan to add more members.",
                company_id=company_id,
                max_seats=seats.max_seats,
                used_seats=seats.used_seats,
            )
        return seats

    def confirm_seat(self, session: Session, company_id: str) -> None:
        """
        Atomically take one seat.

        Raises:
            SubscriptionInactive: If the subscription cannot take new members
            CapacityExceeded: If no seat was free at update time
        """
        seats = self.check(session, company_id)
        self._require_active(seats)
        if not self.store.increment_used_seats(session, company_id):
            self.logger.info("Seat confirmation refused", company_id=company_id, max_seats=seats.max_seats)
            raise CapacityExceeded(
                "Seat limit reached. Upgrade your plan to add more members.",
                company_id=company_id,
                max_seats=seats.max_seats,
                used_seats=seats.max_seats,
            )
        self.logger.info("Seat confirmed", company_id=company_id)

    def release_seat(self, session: Session, company_id: str) -> bool:
        """Give back one seat after a membership is deactivated."""
        released = self.store.decrement_used_seats(session, company_id)
        if not released:
            self.logger.warning("No seat to release", company_id=company_id)
        return released
