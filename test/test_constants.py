"""Tests for permission and auth constants"""

from saas.constants import ADMIN_GROUP, ALGORITHM, PROTECTED_GROUPS, SYSTEM_PERMISSIONS
from saas.constants.permissions import is_protected_group, is_system_permission


class TestSystemPermissions:
    def test_twelve_permissions(self):
        assert len(SYSTEM_PERMISSIONS) == 12
        assert len(set(SYSTEM_PERMISSIONS)) == 12

    def test_resource_action_grid(self):
        expected = {
            f"{resource}_{action}"
            for resource in ("user", "group", "permission")
            for action in ("view", "create", "update", "delete")
        }
        assert set(SYSTEM_PERMISSIONS) == expected

    def test_is_system_permission(self):
        assert is_system_permission("group_delete")
        assert not is_system_permission("report_view")
        assert not is_system_permission("GROUP_DELETE")


class TestProtectedGroups:
    def test_admin_is_protected(self):
        assert ADMIN_GROUP == "admin"
        assert ADMIN_GROUP in PROTECTED_GROUPS
        assert is_protected_group("admin")
        assert not is_protected_group("editors")

    def test_custom_protected_set(self):
        assert is_protected_group("owners", frozenset({"owners"}))
        assert not is_protected_group("admin", frozenset({"owners"}))


def test_algorithm_is_hs256():
    assert ALGORITHM == "HS256"
