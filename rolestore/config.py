"""Configuration management for the role store application.

This module provides utilities for loading and validating configuration
from environment variables.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from rolestore.i18n import Translator

if TYPE_CHECKING:
    from collections.abc import Callable

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

_DEFAULT_DATABASE_PATH = "./rolestore_sqlite.db"


def configure_logging(app_config: "AppConfig") -> None:
    """Configure logging based on the application configuration.

    :param app_config: The application configuration instance
    """
    if not app_config.logging_level:
        logging.basicConfig(level=logging.INFO)
        return

    numeric_level = getattr(logging, app_config.logging_level.upper(), None)
    if not isinstance(numeric_level, int):
        LOGGER.warning("Invalid log level: %s, using INFO", app_config.logging_level)
        numeric_level = logging.INFO
    logging.basicConfig(level=numeric_level)


@dataclass
class AppConfig:
    """Holds application configuration loaded from environment variables."""

    database_path: str
    logging_level: str | None
    root_path: str
    i18n_file: str | None = None

    def __post_init__(self) -> None:
        """Initialize derived configuration attributes."""
        if self.i18n_file:
            self.translator = Translator.from_file(self.i18n_file)
        else:
            self.translator = Translator()


def get_env_str(
    var_name: str,
    default: str | None,
    value_checker: "Callable[[str], bool] | None" = None,
) -> str:
    """Get an environment variable as a string with optional constraints.

    :param var_name: Name of the environment variable
    :param default: Default value if the variable is not set
    :param value_checker: Optional function to validate the value
    :return: The environment variable value
    :raises ValueError: If the value does not meet the constraints
    """
    value = os.getenv(var_name, default)
    if value is None:
        msg = f"Environment variable {var_name} is required"
        raise ValueError(msg)

    if value_checker and not value_checker(value):
        msg = f"Environment variable {var_name} has invalid value: {value}"
        raise ValueError(msg)

    return value


def get_env_optional_str(
    var_name: str,
    value_checker: "Callable[[str], bool] | None" = None,
) -> str | None:
    """Get an optional environment variable as a string.

    Unset and empty both mean None.

    :param var_name: Name of the environment variable
    :param value_checker: Optional function to validate a set value
    :return: The environment variable value, or None
    :raises ValueError: If a set value does not meet the constraints
    """
    value = os.getenv(var_name)
    if not value:
        return None

    if value_checker and not value_checker(value):
        msg = f"Environment variable {var_name} has invalid value: {value}"
        raise ValueError(msg)

    return value


def load_config_from_env(env_file: "str | Path | None") -> AppConfig:
    """Load application configuration from environment variables.

    :return: An AppConfig instance populated with environment variable values
    """
    if env_file:
        load_dotenv(dotenv_path=env_file)

    return AppConfig(
        database_path=get_env_str("DATABASE_PATH", _DEFAULT_DATABASE_PATH),
        logging_level=get_env_str(
            "LOGGING_LEVEL",
            "INFO",
            None,
        ),
        root_path=get_env_str(
            "ROOT_PATH",
            "",
        ),
        i18n_file=get_env_optional_str(
            "I18N_FILE",
            lambda path: Path(path).is_file(),
        ),
    )
