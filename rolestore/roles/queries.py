"""All queries related to roles and list permissions.

Using the RoleQueries class as a repository for role-related queries.
"""

import functools
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from typing import ParamSpec, TypeVar

from pydantic import TypeAdapter, ValidationError

from rolestore.common import (
    ListPermission,
    ListPermissionType,
    ListRole,
    Role,
    RoleType,
)
from rolestore.i18n import Translator

from .encoding import canonical_permissions, encode_list_permissions
from .errors import (
    CreateError,
    FetchError,
    NotFoundError,
    RoleStoreError,
    UpdateError,
    UpsertError,
)
from .guard import ROLE_IN_USE_CONSTRAINT, guard_delete

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

_LIST_PERMISSIONS = TypeAdapter(list[ListPermission])
_PERMISSION_NAMES = TypeAdapter(list[ListPermissionType])

_P = ParamSpec("_P")
_R = TypeVar("_R")


def _serialized(method: "Callable[_P, _R]") -> "Callable[_P, _R]":
    """Run a RoleQueries method while holding the connection lock.

    Requests share one connection, so a transaction must not interleave
    with statements issued from another thread.
    """

    @functools.wraps(method)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        with args[0]._lock:
            return method(*args, **kwargs)

    return wrapper


class RoleQueries:
    """Repository for role-related queries."""

    CREATE_ROLES_TABLE = """
        CREATE TABLE IF NOT EXISTS roles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            type TEXT NOT NULL CHECK (type IN ('user', 'list')),
            name TEXT NOT NULL UNIQUE CHECK (length(trim(name)) > 0),
            permissions TEXT NOT NULL DEFAULT '[]', -- JSON array, empty for list roles
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """

    CREATE_LISTS_TABLE = """
        CREATE TABLE IF NOT EXISTS lists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """

    CREATE_USERS_TABLE = """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            user_role_id INTEGER NOT NULL REFERENCES roles (id) ON DELETE RESTRICT,
            list_role_id INTEGER NULL REFERENCES roles (id) ON DELETE RESTRICT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """

    CREATE_LIST_PERMISSIONS_TABLE = """
        CREATE TABLE IF NOT EXISTS list_permissions (
            role_id INTEGER NOT NULL REFERENCES roles (id) ON DELETE CASCADE,
            list_id INTEGER NOT NULL REFERENCES lists (id) ON DELETE CASCADE,
            permissions TEXT NOT NULL DEFAULT '[]',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (role_id, list_id)
        );
        """

    CREATE_ROLES_IN_USE_TRIGGER = f"""
        CREATE TRIGGER IF NOT EXISTS roles_in_use
        BEFORE DELETE ON roles
        WHEN EXISTS (
            SELECT 1 FROM users WHERE user_role_id = OLD.id OR list_role_id = OLD.id
        )
        BEGIN
            SELECT RAISE(ABORT, '{ROLE_IN_USE_CONSTRAINT}');
        END;
        """

    GET_USER_ROLES = """
        SELECT id, name, type, permissions, created_at, updated_at
        FROM roles WHERE type = 'user' ORDER BY id
        """

    GET_LIST_ROLES = """
        SELECT r.id, r.name, r.type, r.created_at, r.updated_at, (
            SELECT json_group_array(json_object(
                'list_id', lp.list_id,
                'list_name', l.name,
                'permissions', json(lp.permissions)
            ))
            FROM list_permissions lp JOIN lists l ON l.id = lp.list_id
            WHERE lp.role_id = r.id
        ) AS lists
        FROM roles r WHERE r.type = 'list' ORDER BY r.id
        """

    GET_LIST_PERMISSIONS = """
        SELECT lp.list_id, l.name, lp.permissions
        FROM list_permissions lp JOIN lists l ON l.id = lp.list_id
        WHERE lp.role_id = ? ORDER BY lp.list_id
        """

    CREATE_ROLE = """
        INSERT INTO roles (name, type, permissions) VALUES (?, ?, ?)
        RETURNING id, name, type, permissions, created_at, updated_at
        """

    UPDATE_ROLE = """
        UPDATE roles SET name = ?, permissions = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ? AND type = ?
        RETURNING id, name, type, permissions, created_at, updated_at
        """

    DELETE_ROLE = """
        DELETE FROM roles WHERE id = ?
        """

    # Lists left out of the desired state lose their permissions.
    DELETE_STALE_LIST_PERMISSIONS = """
        DELETE FROM list_permissions
        WHERE role_id = ? AND list_id NOT IN (SELECT value FROM json_each(?))
        """

    # Unnests the list ID array and the fixed-width permission row array by
    # position and strips the padding before storing.
    UPSERT_LIST_PERMISSIONS = """
        INSERT INTO list_permissions (role_id, list_id, permissions)
            SELECT ?, ids.value, (
                SELECT json_group_array(perm.value) FROM json_each(perm_rows.value) AS perm
                WHERE perm.value != ''
            )
            FROM json_each(?) AS ids
            JOIN json_each(?) AS perm_rows ON perm_rows.key = ids.key
            WHERE true
        ON CONFLICT (role_id, list_id) DO UPDATE SET
            permissions = excluded.permissions,
            updated_at = CURRENT_TIMESTAMP
        """

    DELETE_LIST_PERMISSION = """
        DELETE FROM list_permissions WHERE role_id = ? AND list_id = ?
        """

    def __init__(
        self,
        connection: sqlite3.Connection,
        translator: Translator | None = None,
    ) -> None:
        self.connection = connection
        self.translator = translator or Translator()
        self._lock = threading.RLock()

    @_serialized
    def initialize_tables(self) -> None:
        """Create the role tables and the in-use trigger if they do not exist."""
        with self.connection as db:
            db.execute(RoleQueries.CREATE_ROLES_TABLE)
            db.execute(RoleQueries.CREATE_LISTS_TABLE)
            db.execute(RoleQueries.CREATE_USERS_TABLE)
            db.execute(RoleQueries.CREATE_LIST_PERMISSIONS_TABLE)
            db.execute(RoleQueries.CREATE_ROLES_IN_USE_TRIGGER)

    def _error(
        self,
        error_cls: type[RoleStoreError],
        message_key: str,
        name_key: str,
        err: Exception,
    ) -> RoleStoreError:
        LOGGER.error(f"{error_cls.__name__} on {name_key}: {err}")
        message = self.translator.ts(
            message_key, name=self.translator.t(name_key), error=str(err)
        )
        return error_cls(message, str(err))

    @_serialized
    def get_user_roles(self) -> list[Role]:
        """Return all user roles.

        :return: User roles ordered by ID
        :raises FetchError: On storage failure
        """
        try:
            rows = self.connection.execute(RoleQueries.GET_USER_ROLES).fetchall()
        except sqlite3.Error as e:
            raise self._error(
                FetchError, "globals.messages.errorFetching", "users.role", e
            ) from e

        return [_role_from_row(row) for row in rows]

    @_serialized
    def get_list_roles(self) -> list[ListRole]:
        """Return all list roles with their per-list permissions.

        A role whose nested permissions cannot be decoded is returned with
        no permissions rather than failing the whole batch.

        :return: List roles ordered by ID
        :raises FetchError: On storage failure
        """
        try:
            rows = self.connection.execute(RoleQueries.GET_LIST_ROLES).fetchall()
        except sqlite3.Error as e:
            raise self._error(
                FetchError, "globals.messages.errorFetching", "users.role", e
            ) from e

        out = []
        for role_id, name, role_type, created_at, updated_at, lists_raw in rows:
            role = ListRole(
                id=role_id,
                name=name,
                type=RoleType(role_type),
                created_at=created_at,
                updated_at=updated_at,
            )
            if lists_raw is not None:
                try:
                    role.lists = _LIST_PERMISSIONS.validate_json(lists_raw)
                except ValidationError as e:
                    LOGGER.warning(
                        "error unmarshalling list permissions for role %d: %s",
                        role_id,
                        e,
                    )
                role.lists.sort(key=lambda p: p.list_id)
            out.append(role)

        return out

    @_serialized
    def get_list_permissions(self, role_id: int) -> list[ListPermission]:
        """Return the stored permissions of a list role.

        :param role_id: ID of the list role
        :return: Permissions ordered by list ID
        :raises FetchError: On storage failure or undecodable permissions
        """
        try:
            rows = self.connection.execute(
                RoleQueries.GET_LIST_PERMISSIONS, (role_id,)
            ).fetchall()
            return [
                ListPermission(
                    list_id=list_id,
                    list_name=list_name,
                    permissions=_PERMISSION_NAMES.validate_json(perms),
                )
                for list_id, list_name, perms in rows
            ]
        except (sqlite3.Error, ValidationError) as e:
            raise self._error(
                FetchError, "globals.messages.errorFetching", "users.listRole", e
            ) from e

    @_serialized
    def create_role(self, name: str, permissions: Iterable[str]) -> Role:
        """Create a user role.

        :param name: Unique name of the role
        :param permissions: Global permissions the role grants
        :return: The created role
        :raises CreateError: On a duplicate name or storage failure
        """
        perms = json.dumps(canonical_permissions(permissions))
        try:
            with self.connection as db:
                row = db.execute(
                    RoleQueries.CREATE_ROLE, (name, RoleType.USER.value, perms)
                ).fetchall()[0]
        except sqlite3.Error as e:
            raise self._error(
                CreateError, "globals.messages.errorCreating", "users.role", e
            ) from e

        role = _role_from_row(row)
        LOGGER.info(f"Created user role {role.id} ({role.name})")
        return role

    @_serialized
    def create_list_role(
        self, name: str, lists: Iterable[ListPermission]
    ) -> ListRole:
        """Create a list role and set its per-list permissions.

        The role row is committed before the permissions are written. If the
        permissions cannot be written the role remains, without permissions.

        :param name: Unique name of the role
        :param lists: Desired per-list permissions
        :return: The created role with its stored permissions
        :raises CreateError: If the role or its permissions cannot be created
        """
        try:
            with self.connection as db:
                row = db.execute(
                    RoleQueries.CREATE_ROLE, (name, RoleType.LIST.value, "[]")
                ).fetchall()[0]
        except sqlite3.Error as e:
            raise self._error(
                CreateError, "globals.messages.errorCreating", "users.role", e
            ) from e

        role_id = row[0]
        try:
            self.upsert_list_permissions(role_id, lists)
        except UpsertError as e:
            LOGGER.warning(f"List role {role_id} was created without permissions")
            raise CreateError(e.message, e.detail) from e

        LOGGER.info(f"Created list role {role_id} ({name})")
        try:
            stored = self.get_list_permissions(role_id)
        except FetchError as e:
            raise CreateError(e.message, e.detail) from e
        return _list_role_from_row(row, stored)

    @_serialized
    def update_role(self, role_id: int, name: str, permissions: Iterable[str]) -> Role:
        """Update the name and permissions of a user role.

        :param role_id: ID of the user role
        :param name: New name
        :param permissions: New global permissions, replacing the old ones
        :return: The updated role
        :raises NotFoundError: If there is no user role with this ID
        :raises UpdateError: On storage failure
        """
        perms = canonical_permissions(permissions)
        return _role_from_row(self._update(role_id, name, perms, RoleType.USER))

    @_serialized
    def update_list_role(
        self, role_id: int, name: str, lists: Iterable[ListPermission]
    ) -> ListRole:
        """Update the name of a list role and replace its permissions.

        :param role_id: ID of the list role
        :param name: New name
        :param lists: Complete desired per-list permissions
        :return: The updated role with its stored permissions
        :raises NotFoundError: If there is no list role with this ID
        :raises UpdateError: On storage failure
        """
        row = self._update(role_id, name, [], RoleType.LIST)

        try:
            self.upsert_list_permissions(role_id, lists)
        except UpsertError as e:
            raise UpdateError(e.message, e.detail) from e

        try:
            stored = self.get_list_permissions(role_id)
        except FetchError as e:
            raise UpdateError(e.message, e.detail) from e
        return _list_role_from_row(row, stored)

    def _update(
        self, role_id: int, name: str, permissions: list[str], role_type: RoleType
    ) -> tuple:
        name_key = "users.userRole" if role_type is RoleType.USER else "users.listRole"
        try:
            with self.connection as db:
                rows = db.execute(
                    RoleQueries.UPDATE_ROLE,
                    (name, json.dumps(permissions), role_id, role_type.value),
                ).fetchall()
        except sqlite3.Error as e:
            raise self._error(
                UpdateError, "globals.messages.errorUpdating", name_key, e
            ) from e

        if not rows:
            raise NotFoundError(
                self.translator.ts(
                    "globals.messages.notFound", name=self.translator.t(name_key)
                )
            )

        LOGGER.debug(f"Updated {role_type.value} role {role_id}")
        return rows[0]

    @_serialized
    def upsert_list_permissions(
        self, role_id: int, lists: Iterable[ListPermission]
    ) -> None:
        """Replace the per-list permissions of a list role.

        lists is the complete desired state: lists left out lose their
        permissions and entries with no permissions are dropped. Both
        statements run in one transaction.

        :param role_id: ID of the list role
        :param lists: Desired per-list permissions
        :raises UpsertError: On an unknown permission or storage failure,
            nothing is applied
        """
        try:
            list_ids, permissions = encode_list_permissions(lists).as_params()
        except ValueError as e:
            raise self._error(
                UpsertError, "globals.messages.errorCreating", "users.listPermission", e
            ) from e

        try:
            with self.connection as db:
                db.execute(RoleQueries.DELETE_STALE_LIST_PERMISSIONS, (role_id, list_ids))
                db.execute(
                    RoleQueries.UPSERT_LIST_PERMISSIONS, (role_id, list_ids, permissions)
                )
        except sqlite3.Error as e:
            raise self._error(
                UpsertError, "globals.messages.errorCreating", "users.listPermission", e
            ) from e

        LOGGER.debug(f"Replaced list permissions of role {role_id}: {list_ids}")

    @_serialized
    def delete_list_permission(self, role_id: int, list_id: int) -> None:
        """Remove the permissions a list role grants on one list.

        :param role_id: ID of the list role
        :param list_id: ID of the list
        :raises RoleInUseError: If the delete is refused because the role is in use
        :raises DeleteError: On storage failure
        """
        with guard_delete(self.translator, "users.listPermission"), self.connection as db:
            db.execute(RoleQueries.DELETE_LIST_PERMISSION, (role_id, list_id))

    @_serialized
    def delete_role(self, role_id: int) -> None:
        """Delete a user or list role.

        :param role_id: ID of the role
        :raises RoleInUseError: If users are still assigned the role
        :raises DeleteError: On storage failure
        """
        with guard_delete(self.translator, "users.role"), self.connection as db:
            result = db.execute(RoleQueries.DELETE_ROLE, (role_id,))

        if result.rowcount:
            LOGGER.info(f"Deleted role {role_id}")


def _role_from_row(row: tuple) -> Role:
    role_id, name, role_type, permissions, created_at, updated_at = row
    return Role(
        id=role_id,
        name=name,
        type=RoleType(role_type),
        permissions=json.loads(permissions),
        created_at=created_at,
        updated_at=updated_at,
    )


def _list_role_from_row(row: tuple, lists: list[ListPermission]) -> ListRole:
    role_id, name, _role_type, _permissions, created_at, updated_at = row
    return ListRole(
        id=role_id,
        name=name,
        created_at=created_at,
        updated_at=updated_at,
        lists=lists,
    )
