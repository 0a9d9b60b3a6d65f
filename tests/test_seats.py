"""Tests for subscription seat accounting."""

import pytest

from sitecrew.core.exceptions import CapacityExceeded, NotFoundError, SubscriptionInactive


class TestSeatChecks:
    """Check-only capacity reads."""

    def test_try_reserve_holds_nothing(self, store, seats, factory):
        """A successful check does not change used_seats."""
        company_id = factory.company(max_seats=2)
        with store.transaction() as session:
            check = seats.try_reserve_seat(session, company_id)
        assert check.available == 2
        assert factory.seats(company_id) == (0, 2)

    def test_try_reserve_full_company(self, store, seats, factory):
        """A full company fails the check."""
        company_id = factory.company(max_seats=1)
        factory.member(factory.user("a@x.com"), company_id)
        with store.transaction() as session:
            with pytest.raises(CapacityExceeded) as exc_info:
                seats.try_reserve_seat(session, company_id)
        assert exc_info.value.max_seats == 1
        assert exc_info.value.used_seats == 1

    @pytest.mark.parametrize("status", ["past_due", "cancelled"])
    def test_inactive_subscription_rejected(self, store, seats, factory, status):
        """Only active and trial subscriptions take new seats."""
        company_id = factory.company(status=status)
        with store.transaction() as session:
            with pytest.raises(SubscriptionInactive):
                seats.try_reserve_seat(session, company_id)

    def test_unknown_company(self, store, seats):
        """Missing company raises NotFoundError."""
        with store.transaction() as session:
            with pytest.raises(NotFoundError):
                seats.check(session, "missing")


class TestSeatMutations:
    """Atomic confirm and release."""

    def test_confirm_increments(self, store, seats, factory):
        """Confirming takes exactly one seat."""
        company_id = factory.company(max_seats=2)
        with store.transaction() as session:
            seats.confirm_seat(session, company_id)
        assert factory.seats(company_id) == (1, 2)

    def test_confirm_never_exceeds_capacity(self, store, seats, factory):
        """Confirming at capacity fails and leaves the count alone."""
        company_id = factory.company(max_seats=1)
        with store.transaction() as session:
            seats.confirm_seat(session, company_id)
        with pytest.raises(CapacityExceeded):
            with store.transaction() as session:
                seats.confirm_seat(session, company_id)
        assert factory.seats(company_id) == (1, 1)

    def test_trial_subscription_can_confirm(self, store, seats, factory):
        """Trial companies take seats."""
        company_id = factory.company(status="trial", max_seats=1)
        with store.transaction() as session:
            seats.confirm_seat(session, company_id)
        assert factory.seats(company_id) == (1, 1)

    def test_release_decrements_and_floors_at_zero(self, store, seats, factory):
        """Release gives a seat back but never goes negative."""
        company_id = factory.company(max_seats=2)
        with store.transaction() as session:
            seats.confirm_seat(session, company_id)
        with store.transaction() as session:
            assert seats.release_seat(session, company_id) is True
        with store.transaction() as session:
            assert seats.release_seat(session, company_id) is False
        assert factory.seats(company_id) == (0, 2)
