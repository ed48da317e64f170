"""Fundamental role data model for app."""

from dataclasses import dataclass, field
from enum import Enum


class RoleType(str, Enum):
    """Scope of the permissions a role grants."""

    USER = "user"
    LIST = "list"


class ListPermissionType(str, Enum):
    """Permissions a list role can grant over a single list."""

    GET = "list:get"
    MANAGE = "list:manage"


# Global permissions a user role can grant, grouped by feature.
USER_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "lists": ("lists:get_all", "lists:manage_all"),
    "subscribers": (
        "subscribers:get",
        "subscribers:get_all",
        "subscribers:manage",
        "subscribers:import",
        "subscribers:sql_query",
        "tx:send",
    ),
    "campaigns": (
        "campaigns:get",
        "campaigns:get_all",
        "campaigns:get_analytics",
        "campaigns:manage",
        "campaigns:manage_all",
        "campaigns:send",
    ),
    "bounces": ("bounces:get", "bounces:manage", "webhooks:post_bounce"),
    "templates": ("templates:get", "templates:manage"),
    "media": ("media:get", "media:manage"),
    "users": ("users:get", "users:manage", "roles:get", "roles:manage"),
    "settings": ("settings:get", "settings:manage", "settings:maintain"),
}

KNOWN_USER_PERMISSIONS = frozenset(
    perm for group in USER_PERMISSIONS.values() for perm in group
)


@dataclass
class Role:
    """A role as stored in the roles table."""

    id: int
    name: str
    type: RoleType
    permissions: list[str] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ListPermission:
    """Permissions a list role grants over one list.

    :param list_id: ID of the list the permissions apply to
    :param permissions: Subset of ListPermissionType, empty means no access
    :param list_name: Name of the list, only filled in when fetched
    """

    list_id: int
    permissions: list[ListPermissionType] = field(default_factory=list)
    list_name: str = ""


@dataclass
class ListRole(Role):
    """A role of type list together with its per-list permissions."""

    type: RoleType = RoleType.LIST
    lists: list[ListPermission] = field(default_factory=list)
