"""FastAPI application factory for role management."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rolestore.db import connect
from rolestore.roles import RoleQueries, configure_roles_router

from .config import configure_logging, load_config_from_env

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from .config import AppConfig

LOGGER = logging.getLogger(__name__)


def configure_fastapi_app(config: "AppConfig") -> FastAPI:
    """Configure and return the FastAPI application.

    :param config: Application configuration
    :return: Configured FastAPI application
    """
    configure_logging(config)

    if not Path(config.database_path).parent.exists():
        Path(config.database_path).parent.mkdir(parents=True, exist_ok=True)
        LOGGER.info(
            "Created directory for database at %s",
            Path(config.database_path).parent,
        )

    if not Path(config.database_path).exists():
        LOGGER.info("Database file does not exist at %s", config.database_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> "AsyncGenerator[Any, Any]":
        """Application lifespan manager.

        Opens the database, creates the role tables and mounts the routes.
        """
        LOGGER.info("Role Store API is starting")

        db_connection = connect(config.database_path)
        try:
            role_queries = RoleQueries(db_connection, config.translator)
            role_queries.initialize_tables()

            roles_router = configure_roles_router(APIRouter(), role_queries)
            app.include_router(roles_router, prefix="/roles", tags=["roles"])

            yield

            LOGGER.info("Role Store API is shutting down")
        finally:
            db_connection.close()

    app = FastAPI(
        title="Role Store API",
        version="0.0.1",
        lifespan=lifespan,
        root_path=config.root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def read_root() -> str:
        return "Role Store API"

    return app


def create_app(env_file: str | None = os.environ.get("ENV_FILE", ".env")) -> FastAPI:
    """Create and configure the FastAPI application.

    The default here is for uvicorn command line usage, in which case the user
    should set ENV_FILE environment variable if they want a different file.

    :param env_file: Optional path to the environment configuration file
    :return: Configured FastAPI application
    """
    config = load_config_from_env(env_file)
    return configure_fastapi_app(config)
