"""Authentication: permission guard and the ``auth`` module."""

from keel.auth.guard import Guard, Permission, Role

__all__ = ["Guard", "Permission", "Role"]
