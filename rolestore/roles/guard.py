"""Translation of delete failures into role store errors."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from rolestore.i18n import Translator

from .errors import DeleteError, RoleInUseError

LOGGER = logging.getLogger(__name__)

# Raised by the roles_in_use trigger while a user still references the role.
ROLE_IN_USE_CONSTRAINT = "users_role_id_fkey"


def constraint_name(err: sqlite3.Error) -> str | None:
    """Return the name of the constraint an integrity error was raised for.

    SQLite does not name violated foreign keys, so named constraints are
    raised from triggers with RAISE(ABORT, <name>) and the name is the whole
    error message.

    :param err: Error raised by the driver
    :return: Constraint name, or None if err is not a named violation
    """
    if not isinstance(err, sqlite3.IntegrityError):
        return None

    message = str(err).strip()
    if not message or " " in message:
        return None
    return message


@contextmanager
def guard_delete(translator: Translator, name_key: str) -> Iterator[None]:
    """Wrap a delete, translating storage errors.

    :param translator: Translator used for the error messages
    :param name_key: Message key naming the entity being deleted
    :raises RoleInUseError: If users still reference the role
    :raises DeleteError: On any other storage failure
    """
    try:
        yield
    except sqlite3.Error as e:
        if constraint_name(e) == ROLE_IN_USE_CONSTRAINT:
            LOGGER.info("Refusing to delete %s still assigned to users", name_key)
            raise RoleInUseError(translator.t("users.cantDeleteRole"), str(e)) from e

        LOGGER.error(f"Error deleting {name_key}: {e}")
        raise DeleteError(
            translator.ts(
                "globals.messages.errorDeleting",
                name=translator.t(name_key),
                error=str(e),
            ),
            str(e),
        ) from e
