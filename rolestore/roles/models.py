"""Models for role-related requests and responses."""

from pydantic import BaseModel, Field, field_validator

from rolestore.common import (
    KNOWN_USER_PERMISSIONS,
    ListPermission,
    ListPermissionType,
    ListRole,
    Role,
    RoleType,
)

_NAME_MAX_LENGTH = 200


class _RoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=_NAME_MAX_LENGTH)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class UserRoleRequest(_RoleRequest):
    """Body for creating or updating a user role.

    :param name: Unique role name
    :param permissions: Global permission names, all of them known
    """

    permissions: list[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def known_permissions(cls, value: list[str]) -> list[str]:
        unknown = sorted(set(value) - KNOWN_USER_PERMISSIONS)
        if unknown:
            msg = f"Unknown permissions: {', '.join(unknown)}"
            raise ValueError(msg)
        return value


class ListPermissionRequest(BaseModel):
    """Permissions to grant on a single list."""

    id: int = Field(gt=0)
    permissions: list[ListPermissionType] = Field(default_factory=list)

    def to_list_permission(self) -> ListPermission:
        return ListPermission(list_id=self.id, permissions=list(self.permissions))


class ListRoleRequest(_RoleRequest):
    """Body for creating or updating a list role.

    :param name: Unique role name
    :param lists: Complete desired per-list permissions
    """

    lists: list[ListPermissionRequest] = Field(default_factory=list)

    def to_list_permissions(self) -> list[ListPermission]:
        return [p.to_list_permission() for p in self.lists]


class RoleResponse(BaseModel):
    """A user role."""

    id: int
    name: str
    type: RoleType
    permissions: list[str]
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            type=role.type,
            permissions=role.permissions,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


class ListPermissionResponse(BaseModel):
    """Permissions a list role grants on one list."""

    id: int
    name: str
    permissions: list[ListPermissionType]


class ListRoleResponse(BaseModel):
    """A list role with its per-list permissions."""

    id: int
    name: str
    type: RoleType
    lists: list[ListPermissionResponse]
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_list_role(cls, role: ListRole) -> "ListRoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            type=role.type,
            lists=[
                ListPermissionResponse(
                    id=p.list_id, name=p.list_name, permissions=p.permissions
                )
                for p in role.lists
            ],
            created_at=role.created_at,
            updated_at=role.updated_at,
        )
