"""Message catalog used to render user-facing error text."""

import json
import logging
from pathlib import Path

LOGGER = logging.getLogger(__name__)

DEFAULT_MESSAGES: dict[str, str] = {
    "globals.messages.errorFetching": "Error fetching {name}: {error}",
    "globals.messages.errorCreating": "Error creating {name}: {error}",
    "globals.messages.errorUpdating": "Error updating {name}: {error}",
    "globals.messages.errorDeleting": "Error deleting {name}: {error}",
    "globals.messages.notFound": "{name} not found",
    "users.role": "role",
    "users.userRole": "user role",
    "users.listRole": "list role",
    "users.listPermission": "list permission",
    "users.cantDeleteRole": "Cannot delete a role that is assigned to users",
}


class Translator:
    """Looks up and formats messages by key."""

    def __init__(self, messages: dict[str, str] | None = None) -> None:
        self.messages = dict(DEFAULT_MESSAGES)
        if messages:
            self.messages.update(messages)

    @classmethod
    def from_file(cls, path: str | Path) -> "Translator":
        """Load a catalog from a flat JSON object of key to message.

        Keys missing from the file fall back to the built-in English text.

        :param path: Path to the JSON file
        :return: Translator instance
        :raises ValueError: If the file is not a JSON object of strings
        """
        with Path(path).open(encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict) or not all(
            isinstance(v, str) for v in data.values()
        ):
            msg = f"Message catalog {path} must be a JSON object of strings"
            raise ValueError(msg)

        LOGGER.info("Loaded %d messages from %s", len(data), path)
        return cls(data)

    def t(self, key: str) -> str:
        """Return the message for key, or the key itself if unknown."""
        return self.messages.get(key, key)

    def ts(self, key: str, **params: object) -> str:
        """Return the message for key with the given parameters substituted."""
        message = self.t(key)
        try:
            return message.format(**params)
        except (KeyError, IndexError):
            LOGGER.warning("Missing parameters for message %s: %s", key, params)
            return message
