import logging
import sqlite3

LOGGER = logging.getLogger(__name__)


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection to the role database.

    Foreign keys are off by default in SQLite and have to be enabled on
    every connection.

    :param db_path: Path to the SQLite database file
    :return: Open connection
    """
    db = sqlite3.connect(db_path, check_same_thread=False)
    db.execute("PRAGMA foreign_keys = ON")
    LOGGER.debug(f"Database connection established to: {db_path}")
    return db
