"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from sitecrew.auth.identity import StaticIdentityProvider
from sitecrew.auth.invitations import InvitationManager
from sitecrew.auth.models import CallerIdentity
from sitecrew.auth.resolver import PermissionResolver
from sitecrew.auth.seats import SeatEnforcer
from sitecrew.auth.tenancy import TenancyManager
from sitecrew.core.config import Settings
from sitecrew.db.engine import build_engine, init_db
from sitecrew.db.models import (
    CompanyMembershipModel,
    InvitationModel,
    ProjectMembershipModel,
    UserModel,
)
from sitecrew.db.store import TenancyStore
from sitecrew.notifications.channels import LogNotifier


class FrozenClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class TenancyFactory:
    """Seeds tenancy rows straight through the store."""

    def __init__(self, store: TenancyStore) -> None:
        self.store = store

    def user(
        self,
        email: str,
        system_role: str = "homeowner",
        full_name: str = "",
        is_active: bool = True,
        user_id: str | None = None,
    ) -> str:
        with self.store.transaction() as session:
            user = self.store.add_user(
                session, email=email, system_role=system_role, full_name=full_name, user_id=user_id,
            )
            user.is_active = is_active
            return user.id

    def company(self, name: str = "Acme Builders", max_seats: int = 5, status: str = "active") -> str:
        with self.store.transaction() as session:
            company = self.store.add_company(
                session, name=name, created_by=None, max_seats=max_seats, subscription_status=status,
            )
            return company.id

    def project(self, company_id: str, name: str = "Kitchen Remodel") -> str:
        with self.store.transaction() as session:
            return self.store.add_project(session, company_id=company_id, name=name).id

    def member(
        self,
        user_id: str,
        company_id: str,
        role: str = "member",
        is_active: bool = True,
    ) -> None:
        with self.store.transaction() as session:
            membership = self.store.add_company_membership(session, user_id, company_id, role)
            membership.is_active = is_active
            if is_active:
                assert self.store.increment_used_seats(session, company_id)

    def project_member(self, user_id: str, project_id: str, role: str) -> None:
        with self.store.transaction() as session:
            self.store.add_project_membership(session, user_id, project_id, role)

    def deactivate(self, user_id: str, company_id: str) -> None:
        with self.store.transaction() as session:
            membership = self.store.get_company_membership(session, user_id, company_id)
            membership.is_active = False

    def seats(self, company_id: str) -> tuple[int, int]:
        with self.store.transaction() as session:
            subscription = self.store.get_subscription(session, company_id)
            return subscription.used_seats, subscription.max_seats

    def invitation(self, invitation_id: str) -> InvitationModel:
        with self.store.transaction() as session:
            return self.store.get_invitation(session, invitation_id)

    def pending_count(self, email: str, company_id: str) -> int:
        with self.store.transaction() as session:
            return (
                session.query(InvitationModel)
                .filter(
                    InvitationModel.email == email,
                    InvitationModel.company_id == company_id,
                    InvitationModel.status == "pending",
                )
                .count()
            )

    def company_memberships(self, user_id: str, company_id: str) -> list[CompanyMembershipModel]:
        with self.store.transaction() as session:
            return (
                session.query(CompanyMembershipModel)
                .filter(
                    CompanyMembershipModel.user_id == user_id,
                    CompanyMembershipModel.company_id == company_id,
                )
                .all()
            )

    def project_memberships(self, user_id: str) -> list[ProjectMembershipModel]:
        with self.store.transaction() as session:
            return (
                session.query(ProjectMembershipModel)
                .filter(ProjectMembershipModel.user_id == user_id)
                .all()
            )

    def user_row(self, user_id: str) -> UserModel | None:
        with self.store.transaction() as session:
            return self.store.get_user(session, user_id)


@pytest.fixture
def test_settings() -> Settings:
    """Settings for an in-memory store and logged notifications."""
    return Settings(
        database={"url": "sqlite://"},
        invitations={"base_url": "https://app.example.com/"},
        notifications={"channel": "log"},
        cache={"ttl_seconds": 60},
    )


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> TenancyStore:
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return TenancyStore(factory)


@pytest.fixture
def factory(store) -> TenancyFactory:
    return TenancyFactory(store)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier() -> LogNotifier:
    return LogNotifier()


@pytest.fixture
def resolver(store) -> PermissionResolver:
    return PermissionResolver(store)


@pytest.fixture
def seats(store) -> SeatEnforcer:
    return SeatEnforcer(store)


@pytest.fixture
def invitations(store, seats, notifier, test_settings, clock) -> InvitationManager:
    return InvitationManager(
        store=store,
        seats=seats,
        notifier=notifier,
        settings=test_settings,
        clock=clock,
    )


@pytest.fixture
def tenancy(store, seats) -> TenancyManager:
    return TenancyManager(store=store, seats=seats)


@pytest.fixture
def super_admin(factory) -> CallerIdentity:
    user_id = factory.user("root@sitecrew.app", system_role="super_admin", full_name="Root Admin")
    return CallerIdentity(user_id=user_id, email="root@sitecrew.app", full_name="Root Admin")


@pytest.fixture
def identity_provider() -> StaticIdentityProvider:
    return StaticIdentityProvider()
