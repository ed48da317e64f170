"""Common data models and utilities for the application."""

from .role import (
    KNOWN_USER_PERMISSIONS,
    USER_PERMISSIONS,
    ListPermission,
    ListPermissionType,
    ListRole,
    Role,
    RoleType,
)

__all__ = [
    "KNOWN_USER_PERMISSIONS",
    "USER_PERMISSIONS",
    "ListPermission",
    "ListPermissionType",
    "ListRole",
    "Role",
    "RoleType",
]
