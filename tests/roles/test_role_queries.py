import json
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

from rolestore.common import ListPermission, ListPermissionType, RoleType
from rolestore.roles import (
    CreateError,
    DeleteError,
    FetchError,
    NotFoundError,
    RoleInUseError,
    RoleQueries,
    UpdateError,
    UpsertError,
)

from tests.test_base import DBTestCase

GET = ListPermissionType.GET
MANAGE = ListPermissionType.MANAGE


def _stored(queries, role_id: int) -> dict[int, list[str]]:
    return {
        p.list_id: [perm.value for perm in p.permissions]
        for p in queries.get_list_permissions(role_id)
    }


class _HookedConnection:
    """Connection wrapper that calls hook once, right after statement runs."""

    def __init__(self, connection, statement: str, hook) -> None:
        self._connection = connection
        self._statement = statement
        self._hook = hook

    def execute(self, sql: str, params=()):
        cur = self._connection.execute(sql, params)
        if sql == self._statement and self._hook is not None:
            hook, self._hook = self._hook, None
            hook()
        return cur

    def __enter__(self):
        self._connection.__enter__()
        return self

    def __exit__(self, *exc_info):
        return self._connection.__exit__(*exc_info)


class TestUserRoles(DBTestCase):
    def test_create_and_list_user_roles(self):
        self.assertEqual(self.queries.get_user_roles(), [])

        role = self.queries.create_role(
            "Admins", ["users:get", "users:manage", "users:get"]
        )
        self.assertGreater(role.id, 0)
        self.assertEqual(role.name, "Admins")
        self.assertEqual(role.type, RoleType.USER)
        self.assertEqual(role.permissions, ["users:get", "users:manage"])
        self.assertIsNotNone(role.created_at)

        roles = self.queries.get_user_roles()
        self.assertEqual([r.id for r in roles], [role.id])
        self.assertEqual(roles[0].permissions, ["users:get", "users:manage"])

    def test_user_roles_exclude_list_roles(self):
        self.queries.create_role("Admins", ["users:get"])
        self.queries.create_list_role("Editors", [])

        self.assertEqual([r.name for r in self.queries.get_user_roles()], ["Admins"])
        self.assertEqual([r.name for r in self.queries.get_list_roles()], ["Editors"])

    def test_duplicate_name_fails_without_new_row(self):
        self.queries.create_role("Editors", [])

        with self.assertRaises(CreateError) as ctx:
            self.queries.create_role("Editors", ["users:get"])

        self.assertIn("UNIQUE constraint failed", ctx.exception.detail)
        self.assertEqual(self.count("roles", "name = ?", ("Editors",)), 1)

    def test_empty_name_fails(self):
        with self.assertRaises(CreateError):
            self.queries.create_role("  ", [])
        self.assertEqual(self.count("roles"), 0)

    def test_update_keeps_type(self):
        role = self.queries.create_role("Viewers", ["subscribers:get"])

        updated = self.queries.update_role(
            role.id, "Readers", ["subscribers:get", "campaigns:get"]
        )
        self.assertEqual(updated.id, role.id)
        self.assertEqual(updated.name, "Readers")
        self.assertEqual(updated.type, RoleType.USER)
        self.assertEqual(updated.permissions, ["subscribers:get", "campaigns:get"])

    def test_update_missing_role_is_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            self.queries.update_role(12345, "Ghost", [])
        self.assertEqual(ctx.exception.message, "user role not found")

    def test_update_cannot_change_list_role(self):
        list_role = self.queries.create_list_role("Editors", [])

        with self.assertRaises(NotFoundError):
            self.queries.update_role(list_role.id, "Editors", ["users:get"])

        stored = self.queries.get_list_roles()[0]
        self.assertEqual(stored.type, RoleType.LIST)

    def test_update_to_duplicate_name_fails(self):
        self.queries.create_role("Admins", [])
        role = self.queries.create_role("Viewers", [])

        with self.assertRaises(UpdateError):
            self.queries.update_role(role.id, "Admins", [])
        self.assertEqual(self.queries.get_user_roles()[1].name, "Viewers")

    def test_fetch_failure(self):
        self.connection.close()
        with self.assertRaises(FetchError):
            self.queries.get_user_roles()
        with self.assertRaises(FetchError):
            self.queries.get_list_roles()


class TestListRoles(DBTestCase):
    def setUp(self) -> None:
        super().setUp()
        for list_id in (3, 7, 9):
            self.add_list(list_id)

    def test_create_prunes_empty_permissions(self):
        role = self.queries.create_list_role(
            "Editors",
            [
                ListPermission(list_id=3, permissions=[GET, MANAGE]),
                ListPermission(list_id=7, permissions=[]),
            ],
        )

        self.assertEqual(role.type, RoleType.LIST)
        self.assertEqual(role.permissions, [])
        self.assertEqual(_stored(self.queries, role.id), {3: ["list:get", "list:manage"]})
        self.assertEqual([p.list_id for p in role.lists], [3])
        self.assertEqual(role.lists[0].list_name, "list-3")

    def test_update_replaces_permissions(self):
        role = self.queries.create_list_role(
            "Editors",
            [
                ListPermission(list_id=3, permissions=[GET, MANAGE]),
                ListPermission(list_id=9, permissions=[GET]),
            ],
        )

        updated = self.queries.update_list_role(
            role.id, "Editors", [ListPermission(list_id=3, permissions=[GET])]
        )

        self.assertEqual(_stored(self.queries, role.id), {3: ["list:get"]})
        self.assertEqual(updated.lists[0].permissions, [GET])
        self.assertEqual(self.count("list_permissions", "role_id = ?", (role.id,)), 1)

    def test_padding_is_not_stored(self):
        role = self.queries.create_list_role(
            "Managers", [ListPermission(list_id=7, permissions=[MANAGE])]
        )

        row = self.connection.execute(
            "SELECT permissions FROM list_permissions WHERE role_id = ?", (role.id,)
        ).fetchone()
        self.assertEqual(json.loads(row[0]), ["list:manage"])

    def test_empty_input_clears_permissions(self):
        role = self.queries.create_list_role(
            "Editors",
            [
                ListPermission(list_id=3, permissions=[GET]),
                ListPermission(list_id=7, permissions=[MANAGE]),
            ],
        )

        self.queries.upsert_list_permissions(role.id, [])

        self.assertEqual(_stored(self.queries, role.id), {})

    def test_upsert_only_touches_its_own_role(self):
        editors = self.queries.create_list_role(
            "Editors", [ListPermission(list_id=3, permissions=[GET])]
        )
        viewers = self.queries.create_list_role(
            "Viewers", [ListPermission(list_id=3, permissions=[GET])]
        )

        self.queries.upsert_list_permissions(editors.id, [])

        self.assertEqual(_stored(self.queries, viewers.id), {3: ["list:get"]})

    def test_failed_upsert_applies_nothing(self):
        role = self.queries.create_list_role(
            "Editors", [ListPermission(list_id=3, permissions=[GET])]
        )

        with self.assertRaises(UpsertError):
            self.queries.upsert_list_permissions(
                role.id,
                [
                    ListPermission(list_id=9, permissions=[MANAGE]),
                    ListPermission(list_id=404, permissions=[GET]),
                ],
            )

        self.assertEqual(_stored(self.queries, role.id), {3: ["list:get"]})

    def test_create_with_unknown_list_keeps_role_without_permissions(self):
        with self.assertRaises(CreateError):
            self.queries.create_list_role(
                "Editors", [ListPermission(list_id=404, permissions=[GET])]
            )

        roles = self.queries.get_list_roles()
        self.assertEqual([r.name for r in roles], ["Editors"])
        self.assertEqual(roles[0].lists, [])

    def test_update_missing_list_role_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.queries.update_list_role(
                999, "Ghost", [ListPermission(list_id=3, permissions=[GET])]
            )
        self.assertEqual(self.count("list_permissions"), 0)

    def test_update_with_unknown_list_fails(self):
        role = self.queries.create_list_role("Editors", [])

        with self.assertRaises(UpdateError):
            self.queries.update_list_role(
                role.id, "Editors", [ListPermission(list_id=404, permissions=[GET])]
            )

    def test_unknown_permission_is_upsert_error(self):
        role = self.queries.create_list_role(
            "Editors", [ListPermission(list_id=3, permissions=[GET])]
        )

        with self.assertRaises(UpsertError) as ctx:
            self.queries.upsert_list_permissions(
                role.id, [ListPermission(list_id=7, permissions=["list:delete"])]
            )

        self.assertIn("list:delete", ctx.exception.detail)
        self.assertEqual(_stored(self.queries, role.id), {3: ["list:get"]})

    def test_create_read_back_failure_is_create_error(self):
        with mock.patch.object(
            self.queries, "get_list_permissions", side_effect=FetchError("boom")
        ):
            with self.assertRaises(CreateError) as ctx:
                self.queries.create_list_role(
                    "Editors", [ListPermission(list_id=3, permissions=[GET])]
                )

        self.assertEqual(ctx.exception.message, "boom")
        self.assertEqual([r.name for r in self.queries.get_list_roles()], ["Editors"])

    def test_update_read_back_failure_is_update_error(self):
        role = self.queries.create_list_role("Editors", [])

        with mock.patch.object(
            self.queries, "get_list_permissions", side_effect=FetchError("boom")
        ):
            with self.assertRaises(UpdateError) as ctx:
                self.queries.update_list_role(
                    role.id, "Writers", [ListPermission(list_id=3, permissions=[GET])]
                )

        self.assertEqual(ctx.exception.message, "boom")
        self.assertEqual(_stored(self.queries, role.id), {3: ["list:get"]})

    def test_get_list_roles(self):
        editors = self.queries.create_list_role(
            "Editors",
            [
                ListPermission(list_id=9, permissions=[GET]),
                ListPermission(list_id=3, permissions=[MANAGE, GET]),
            ],
        )
        empty = self.queries.create_list_role("Nobody", [])

        roles = {r.id: r for r in self.queries.get_list_roles()}

        self.assertEqual(
            [(p.list_id, p.list_name, p.permissions) for p in roles[editors.id].lists],
            [(3, "list-3", [GET, MANAGE]), (9, "list-9", [GET])],
        )
        self.assertEqual(roles[empty.id].lists, [])

    def test_malformed_permissions_do_not_fail_batch(self):
        broken = self.queries.create_list_role(
            "Broken", [ListPermission(list_id=3, permissions=[GET])]
        )
        fine = self.queries.create_list_role(
            "Fine", [ListPermission(list_id=7, permissions=[MANAGE])]
        )
        with self.connection as db:
            db.execute(
                "UPDATE list_permissions SET permissions = ? WHERE role_id = ?",
                ('["list:delete"]', broken.id),
            )

        with self.assertLogs("rolestore.roles.queries", level="WARNING") as logs:
            roles = {r.id: r for r in self.queries.get_list_roles()}

        self.assertEqual(len(roles), 2)
        self.assertEqual(roles[broken.id].lists, [])
        self.assertEqual([p.list_id for p in roles[fine.id].lists], [7])
        self.assertIn(f"role {broken.id}", logs.output[0])


class TestDeleteRoles(DBTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.add_list(3)

    def test_delete_unassigned_role(self):
        role = self.queries.create_role("Admins", [])

        self.queries.delete_role(role.id)

        self.assertEqual(self.queries.get_user_roles(), [])

    def test_delete_missing_role_is_noop(self):
        self.queries.delete_role(4242)

    def test_delete_assigned_user_role_is_refused(self):
        role = self.queries.create_role("Admins", [])
        self.add_user("alice", role.id)

        with self.assertRaises(RoleInUseError):
            self.queries.delete_role(role.id)

        self.assertEqual([r.id for r in self.queries.get_user_roles()], [role.id])

    def test_delete_assigned_list_role_is_refused(self):
        user_role = self.queries.create_role("Admins", [])
        list_role = self.queries.create_list_role(
            "Editors", [ListPermission(list_id=3, permissions=[GET])]
        )
        self.add_user("bob", user_role.id, list_role.id)

        with self.assertRaises(RoleInUseError):
            self.queries.delete_role(list_role.id)

        self.assertEqual(_stored(self.queries, list_role.id), {3: ["list:get"]})

    def test_delete_after_unassigning(self):
        role = self.queries.create_role("Admins", [])
        other = self.queries.create_role("Viewers", [])
        user_id = self.add_user("alice", role.id)

        with self.assertRaises(RoleInUseError):
            self.queries.delete_role(role.id)

        with self.connection as db:
            db.execute("UPDATE users SET user_role_id = ? WHERE id = ?", (other.id, user_id))

        self.queries.delete_role(role.id)
        self.assertEqual([r.id for r in self.queries.get_user_roles()], [other.id])

    def test_delete_list_role_cascades_permissions(self):
        role = self.queries.create_list_role(
            "Editors", [ListPermission(list_id=3, permissions=[GET])]
        )

        self.queries.delete_role(role.id)

        self.assertEqual(self.count("list_permissions"), 0)

    def test_delete_list_permission(self):
        self.add_list(7)
        role = self.queries.create_list_role(
            "Editors",
            [
                ListPermission(list_id=3, permissions=[GET]),
                ListPermission(list_id=7, permissions=[GET, MANAGE]),
            ],
        )

        self.queries.delete_list_permission(role.id, 3)

        self.assertEqual(_stored(self.queries, role.id), {7: ["list:get", "list:manage"]})

    def test_storage_failure_is_delete_error(self):
        role = self.queries.create_role("Admins", [])
        self.connection.close()

        with self.assertRaises(DeleteError):
            self.queries.delete_role(role.id)
        with self.assertRaises(DeleteError):
            self.queries.delete_list_permission(role.id, 3)


class TestConcurrentAccess(DBTestCase):
    """Requests share one connection from a threadpool."""

    def setUp(self) -> None:
        super().setUp()
        for list_id in (3, 7, 9):
            self.add_list(list_id)

    def test_reader_waits_for_replace_to_finish(self):
        role = self.queries.create_list_role(
            "Editors",
            [
                ListPermission(list_id=3, permissions=[GET, MANAGE]),
                ListPermission(list_id=7, permissions=[GET]),
            ],
        )
        seen = {}
        readers = []

        def read():
            seen.update(_stored(queries, role.id))

        def start_reader():
            # runs between the stale delete and the upsert
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(timeout=0.2)
            readers.append(reader)

        hooked = _HookedConnection(
            self.connection, RoleQueries.DELETE_STALE_LIST_PERMISSIONS, start_reader
        )
        queries = RoleQueries(hooked)

        queries.upsert_list_permissions(
            role.id, [ListPermission(list_id=3, permissions=[GET])]
        )
        readers[0].join(timeout=5)

        self.assertFalse(readers[0].is_alive())
        self.assertEqual(seen, {3: ["list:get"]})

    def test_concurrent_replaces_apply_whole_states(self):
        states = (
            [
                ListPermission(list_id=3, permissions=[GET]),
                ListPermission(list_id=7, permissions=[GET, MANAGE]),
            ],
            [ListPermission(list_id=9, permissions=[MANAGE])],
        )
        expected = (
            {3: ["list:get"], 7: ["list:get", "list:manage"]},
            {9: ["list:manage"]},
        )
        role = self.queries.create_list_role("Editors", states[0])

        def write(i: int) -> None:
            self.queries.upsert_list_permissions(role.id, states[i % 2])

        def read(_: int) -> dict[int, list[str]]:
            return _stored(self.queries, role.id)

        with ThreadPoolExecutor(max_workers=8) as pool:
            writes = [pool.submit(write, i) for i in range(40)]
            reads = [pool.submit(read, i) for i in range(40)]
            for future in writes:
                future.result()
            observed = [future.result() for future in reads]

        for state in observed:
            self.assertIn(state, expected)
        self.assertIn(_stored(self.queries, role.id), expected)
