"""Permission guard.

Modules register the permissions they enforce during ``build()``; the auth
module loads roles from its configuration. A fresh guard is created on every
context rebuild.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from keel.core.errors import PermissionDeniedError


@dataclass(frozen=True)
class Permission:
    name: str
    description: str = ""


@dataclass
class Role:
    name: str
    permissions: set[str] = field(default_factory=set)
    is_default: bool = False
    implicit_allow: bool = False


class Guard:
    """Answers "may role R do P?" for registered permissions."""

    def __init__(self) -> None:
        self._permissions: dict[str, Permission] = {}
        self._roles: dict[str, Role] = {}

    @property
    def permissions(self) -> list[Permission]:
        return list(self._permissions.values())

    @property
    def roles(self) -> list[Role]:
        return list(self._roles.values())

    def register_permission(self, name: str, description: str = "") -> Permission:
        permission = self._permissions.get(name)
        if permission is None:
            permission = self._permissions[name] = Permission(name, description)
        return permission

    def register_permissions(self, names: list[str]) -> None:
        for name in names:
            self.register_permission(name)

    def has_permission(self, name: str) -> bool:
        return name in self._permissions

    def set_role(self, role: Role) -> None:
        self._roles[role.name] = role

    def role(self, name: str | None) -> Role | None:
        if name is None:
            return self.default_role()
        return self._roles.get(name)

    def default_role(self) -> Role | None:
        for role in self._roles.values():
            if role.is_default:
                return role
        return None

    def granted(self, permission: str, role: str | None = None) -> bool:
        resolved = self.role(role)
        if resolved is None:
            return False
        if resolved.implicit_allow:
            return True
        return permission in resolved.permissions

    def require(self, permission: str, role: str | None = None) -> None:
        if not self.granted(permission, role):
            raise PermissionDeniedError(permission, role)
