"""Role management routes for the FastAPI application.

Provides endpoints for listing, creating, updating and deleting user roles
and list roles.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, HTTPException, Path, status

from .errors import RoleStoreError
from .models import (
    ListRoleRequest,
    ListRoleResponse,
    RoleResponse,
    UserRoleRequest,
)

if TYPE_CHECKING:
    from .queries import RoleQueries

LOG = logging.getLogger(__name__)
LOG.setLevel(logging.DEBUG)

RoleID = Annotated[int, Path(gt=0)]


@contextmanager
def _http_errors() -> Iterator[None]:
    """Turn role store errors into HTTP errors with the matching status."""
    try:
        yield
    except RoleStoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


def configure_roles_router(
    router: APIRouter,
    role_queries: "RoleQueries",
) -> APIRouter:
    """Configure the roles router.

    :param router: The APIRouter to configure
    :param role_queries: The RoleQueries instance for database operations
    :return: The configured APIRouter
    """

    @router.get("/users", response_model=list[RoleResponse])
    def get_user_roles() -> list[RoleResponse]:
        with _http_errors():
            return [RoleResponse.from_role(r) for r in role_queries.get_user_roles()]

    @router.get("/lists", response_model=list[ListRoleResponse])
    def get_list_roles() -> list[ListRoleResponse]:
        with _http_errors():
            return [
                ListRoleResponse.from_list_role(r)
                for r in role_queries.get_list_roles()
            ]

    @router.post("/users", response_model=RoleResponse)
    def create_user_role(body: UserRoleRequest) -> RoleResponse:
        with _http_errors():
            role = role_queries.create_role(body.name, body.permissions)
        return RoleResponse.from_role(role)

    @router.post("/lists", response_model=ListRoleResponse)
    def create_list_role(body: ListRoleRequest) -> ListRoleResponse:
        with _http_errors():
            role = role_queries.create_list_role(body.name, body.to_list_permissions())
        return ListRoleResponse.from_list_role(role)

    @router.put("/users/{role_id}", response_model=RoleResponse)
    def update_user_role(role_id: RoleID, body: UserRoleRequest) -> RoleResponse:
        with _http_errors():
            role = role_queries.update_role(role_id, body.name, body.permissions)
        return RoleResponse.from_role(role)

    @router.put("/lists/{role_id}", response_model=ListRoleResponse)
    def update_list_role(role_id: RoleID, body: ListRoleRequest) -> ListRoleResponse:
        with _http_errors():
            role = role_queries.update_list_role(
                role_id, body.name, body.to_list_permissions()
            )
        return ListRoleResponse.from_list_role(role)

    @router.delete("/{role_id}", status_code=status.HTTP_200_OK)
    def delete_role(role_id: RoleID) -> bool:
        with _http_errors():
            role_queries.delete_role(role_id)
        return True

    @router.delete("/lists/{role_id}/lists/{list_id}")
    def delete_list_permission(role_id: RoleID, list_id: RoleID) -> bool:
        with _http_errors():
            role_queries.delete_list_permission(role_id, list_id)
        return True

    return router
