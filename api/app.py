"""FastAPI application for formlogic."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.deps import set_config, set_db_path
from api.routes import router
from db.migrations import init_db

logger = logging.getLogger(__name__)


def create_app(db_path: str, config: dict[str, Any] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Path to the SQLite database. Tables are created on startup
                 if missing.
        config: Full formlogic config dict. Supplies assembly defaults
                such as ``online`` and ``strict_tree``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        conn = init_db(db_path)
        conn.close()
        logger.info("Serving forms from %s", db_path)
        yield

    set_db_path(db_path)
    set_config(config)

    app = FastAPI(title="formlogic", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app
