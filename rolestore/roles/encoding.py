"""Canonical storage form of role permissions.

List permissions are written with one bulk statement that unnests two
parallel arrays: the list IDs and, at the same position, the permissions
granted on that list. Positional unnesting only lines up when every
permission row has the same width, so each row is padded to the size of
ListPermissionType with empty placeholders.
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass, field

from rolestore.common import ListPermission, ListPermissionType

PERMISSION_WIDTH = len(ListPermissionType)
PLACEHOLDER = ""


@dataclass
class EncodedListPermissions:
    """Parallel arrays ready to be handed to the bulk upsert."""

    list_ids: list[int] = field(default_factory=list)
    permissions: list[list[str]] = field(default_factory=list)

    def as_params(self) -> tuple[str, str]:
        """Marshal both arrays to JSON text for json_each unnesting."""
        return json.dumps(self.list_ids), json.dumps(self.permissions)


def canonical_permissions(names: Iterable[str]) -> list[str]:
    """Drop duplicate permission names, keeping first-seen order."""
    return list(dict.fromkeys(names))


def encode_permission_row(perms: Iterable[ListPermissionType | str]) -> list[str]:
    """Encode one permission subset as a fixed-width row.

    :param perms: Permissions granted on a list, in any order
    :return: Permission values in ListPermissionType order, padded with
        PLACEHOLDER to PERMISSION_WIDTH
    """
    granted = {ListPermissionType(p) for p in perms}
    row = [p.value for p in ListPermissionType if p in granted]
    return row + [PLACEHOLDER] * (PERMISSION_WIDTH - len(row))


def encode_list_permissions(
    permissions: Iterable[ListPermission],
) -> EncodedListPermissions:
    """Encode the desired permission state of a list role.

    Entries without permissions are pruned. If a list appears more than
    once, the last entry wins.

    :param permissions: Complete desired set of list permissions
    :return: Parallel arrays of list IDs and padded permission rows
    """
    rows: dict[int, list[str]] = {}
    for perm in permissions:
        if not perm.permissions:
            rows.pop(perm.list_id, None)
            continue
        rows[perm.list_id] = encode_permission_row(perm.permissions)

    return EncodedListPermissions(
        list_ids=list(rows), permissions=list(rows.values())
    )
