"""Role storage, list-permission reconciliation and role routes."""

from .errors import (
    CreateError,
    DeleteError,
    FetchError,
    NotFoundError,
    RoleInUseError,
    RoleStoreError,
    UpdateError,
    UpsertError,
)
from .queries import RoleQueries
from .router import configure_roles_router

__all__ = [
    "CreateError",
    "DeleteError",
    "FetchError",
    "NotFoundError",
    "RoleInUseError",
    "RoleQueries",
    "RoleStoreError",
    "UpdateError",
    "UpsertError",
    "configure_roles_router",
]
