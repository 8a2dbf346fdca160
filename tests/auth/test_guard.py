"""Tests for keel.auth.guard."""

import pytest

from keel.auth import Guard, Role
from keel.core.errors import PermissionDeniedError


class TestGuard:
    def test_register_permissions_is_idempotent(self):
        guard = Guard()
        guard.register_permissions(["data.posts.read", "data.posts.read"])
        assert [p.name for p in guard.permissions] == ["data.posts.read"]
        assert guard.has_permission("data.posts.read")

    def test_granted_by_role(self):
        guard = Guard()
        guard.set_role(Role("editor", {"data.posts.write"}))
        assert guard.granted("data.posts.write", "editor")
        assert not guard.granted("data.posts.read", "editor")
        assert not guard.granted("data.posts.write", "unknown")

    def test_default_role_and_implicit_allow(self):
        guard = Guard()
        guard.set_role(Role("guest", {"data.posts.read"}, is_default=True))
        guard.set_role(Role("admin", implicit_allow=True))
        assert guard.granted("data.posts.read")
        assert guard.granted("anything", "admin")

    def test_require_raises(self):
        guard = Guard()
        guard.set_role(Role("guest"))
        with pytest.raises(PermissionDeniedError) as exc_info:
            guard.require("system.config.write", "guest")
        assert exc_info.value.permission == "system.config.write"
