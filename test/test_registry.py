"""Tests for the schema creator registry and the built-in capabilities"""

import pytest

from saas.exceptions import InvalidArgumentError, ResourceNotFoundError
from saas.tenancy import SchemaCreatorRegistry, build_default_registry
from saas.tenancy.tables import (
    GROUPS_PERMISSIONS_CAPABILITY,
    USERS_CAPABILITY,
    create_groups_permissions_tables,
    create_users_tables,
)


async def _noop(db):
    return None


class TestSchemaCreatorRegistry:
    def test_register_and_get(self):
        registry = SchemaCreatorRegistry()
        registry.register("reports", _noop)
        assert registry.get("reports") is _noop
        assert "reports" in registry
        assert len(registry) == 1

    def test_registration_order_preserved(self):
        registry = SchemaCreatorRegistry()
        for name in ("b", "a", "c"):
            registry.register(name, _noop)
        assert registry.names() == ["b", "a", "c"]
        assert list(registry) == ["b", "a", "c"]

    def test_duplicate_rejected(self):
        registry = SchemaCreatorRegistry()
        registry.register("reports", _noop)
        with pytest.raises(InvalidArgumentError):
            registry.register("reports", _noop)

    def test_empty_name_rejected(self):
        with pytest.raises(InvalidArgumentError):
            SchemaCreatorRegistry().register("", _noop)

    def test_unknown_name(self):
        with pytest.raises(ResourceNotFoundError):
            SchemaCreatorRegistry().get("missing")

    def test_frozen_rejects_registration(self):
        registry = SchemaCreatorRegistry().freeze()
        assert registry.frozen
        with pytest.raises(InvalidArgumentError, match="frozen"):
            registry.register("late", _noop)


class TestDefaultRegistry:
    def test_builtin_capabilities(self):
        registry = build_default_registry()
        assert registry.frozen
        # user_groups references groups, so groups_permissions comes first
        assert registry.names() == [GROUPS_PERMISSIONS_CAPABILITY, USERS_CAPABILITY]
        assert registry.get(GROUPS_PERMISSIONS_CAPABILITY) is create_groups_permissions_tables
        assert registry.get(USERS_CAPABILITY) is create_users_tables

    def test_fresh_instance_each_call(self):
        assert build_default_registry() is not build_default_registry()
