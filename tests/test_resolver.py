"""Tests for permission resolution."""

from unittest.mock import patch

import pytest

from sitecrew.auth.models import CompanyRole, ProjectRole, SystemRole
from sitecrew.core.exceptions import StoreUnavailable


class TestResolveBasics:
    """Test resolution for ordinary users."""

    def test_unknown_user_gets_empty_homeowner(self, resolver):
        """Unknown users resolve to nothing with the lowest role."""
        permissions = resolver.resolve("does-not-exist")
        assert permissions.system_role == SystemRole.HOMEOWNER
        assert permissions.company_permissions == []
        assert permissions.project_permissions == []

    def test_deactivated_user_gets_nothing(self, resolver, factory):
        """A deactivated user keeps no access even with memberships."""
        company_id = factory.company()
        user_id = factory.user("gone@x.com", system_role="project_manager", is_active=False)
        factory.member(user_id, company_id, role="admin")

        permissions = resolver.resolve(user_id)
        assert permissions.system_role == SystemRole.HOMEOWNER
        assert permissions.company_ids() == []

    def test_no_memberships_is_not_an_error(self, resolver, factory):
        """Zero memberships yields empty lists."""
        user_id = factory.user("lonely@x.com", system_role="contractor")
        permissions = resolver.resolve(user_id)
        assert permissions.system_role == SystemRole.CONTRACTOR
        assert permissions.company_permissions == []
        assert permissions.project_permissions == []

    def test_active_company_memberships(self, resolver, factory):
        """Each active membership yields one company permission."""
        x = factory.company("X")
        y = factory.company("Y")
        z = factory.company("Z")
        user_id = factory.user("pm@x.com", system_role="project_manager")
        factory.member(user_id, x, role="admin")
        factory.member(user_id, y, role="member")
        factory.member(user_id, z, role="admin", is_active=False)

        permissions = resolver.resolve(user_id)
        assert permissions.company_role(x) == CompanyRole.ADMIN
        assert permissions.company_role(y) == CompanyRole.MEMBER
        assert permissions.company_role(z) is None
        assert permissions.company_ids({CompanyRole.ADMIN}) == [x]


class TestSuperAdmin:
    """Super admins see everything as concrete lists."""

    def test_super_admin_gets_every_company_as_admin(self, resolver, factory, super_admin):
        """Every company is returned with role admin without membership rows."""
        companies = [factory.company(f"Company {i}") for i in range(3)]
        project_id = factory.project(companies[0])

        permissions = resolver.resolve(super_admin.user_id)
        assert permissions.system_role == SystemRole.SUPER_ADMIN
        assert sorted(permissions.company_ids()) == sorted(companies)
        assert all(p.company_role == CompanyRole.ADMIN for p in permissions.company_permissions)
        assert permissions.project_role(project_id) == ProjectRole.PROJECT_MANAGER
        assert permissions.can_manage_company(companies[2])


class TestProjectPermissions:
    """Project permissions and the company-membership validity rule."""

    def test_member_with_project_manager_role_can_invite_to_that_project_only(self, resolver, factory):
        """Project role grants invite rights on that project, not its siblings."""
        x = factory.company("X")
        p = factory.project(x, "P")
        p2 = factory.project(x, "P2")
        user_id = factory.user("member@x.com")
        factory.member(user_id, x, role="member")
        factory.project_member(user_id, p, "project_manager")

        permissions = resolver.resolve(user_id)
        assert permissions.can_invite_to_project(p) is True
        assert permissions.can_invite_to_project(p2) is False
        assert permissions.can_manage_company(x) is False

    def test_company_admin_can_invite_to_any_company_project(self, resolver, factory):
        """Company-level admins may invite to projects they are not on."""
        x = factory.company("X")
        p = factory.project(x)
        user_id = factory.user("admin@x.com")
        factory.member(user_id, x, role="admin")

        permissions = resolver.resolve(user_id)
        assert permissions.can_invite_to_project(p)
        assert permissions.can_view_project(p)
        assert permissions.project_ids() == []

    def test_company_project_manager_can_manage_company(self, resolver, factory):
        """Company role project_manager counts as a company manager."""
        x = factory.company("X")
        user_id = factory.user("pm@x.com")
        factory.member(user_id, x, role="project_manager")
        assert resolver.resolve(user_id).can_manage_company(x)

    def test_deactivation_removes_derived_permissions(self, resolver, factory):
        """Deactivating the company membership drops its project permissions too."""
        x = factory.company("X")
        p = factory.project(x)
        user_id = factory.user("worker@x.com", system_role="contractor")
        factory.member(user_id, x, role="member")
        factory.project_member(user_id, p, "contractor")

        before = resolver.resolve(user_id)
        assert before.project_role(p) == ProjectRole.CONTRACTOR

        factory.deactivate(user_id, x)

        after = resolver.resolve(user_id)
        assert after.company_permissions == []
        assert after.project_permissions == []
        assert not after.can_view_project(p)
        assert len(factory.project_memberships(user_id)) == 1

    def test_dangling_project_membership_grants_nothing(self, resolver, factory):
        """A project membership without any company membership is ignored."""
        x = factory.company("X")
        p = factory.project(x)
        user_id = factory.user("orphan@x.com")
        factory.project_member(user_id, p, "project_manager")

        permissions = resolver.resolve(user_id)
        assert permissions.project_permissions == []
        assert not permissions.can_invite_to_project(p)


class TestStoreFailures:
    """Resolution retries once on store failure."""

    def test_retries_once_then_succeeds(self, resolver, factory):
        """A single StoreUnavailable is absorbed."""
        user_id = factory.user("retry@x.com")
        original = resolver._resolve_once
        calls = []

        def flaky(uid):
            calls.append(uid)
            if len(calls) == 1:
                raise StoreUnavailable(operation="resolve_permissions")
            return original(uid)

        with patch.object(resolver, "_resolve_once", side_effect=flaky), patch("time.sleep"):
            permissions = resolver.resolve(user_id)

        assert permissions.user_id == user_id
        assert len(calls) == 2

    def test_second_failure_propagates(self, resolver):
        """Two failures in a row surface StoreUnavailable."""
        with patch.object(
            resolver, "_resolve_once", side_effect=StoreUnavailable(operation="resolve_permissions")
        ), patch("time.sleep"):
            with pytest.raises(StoreUnavailable):
                resolver.resolve("anyone")
