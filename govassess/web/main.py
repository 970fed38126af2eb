from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from govassess.infrastructure.config import get_settings
from govassess.infrastructure.db import initialise_database
from govassess.infrastructure.logging import get_logger
from govassess.infrastructure.uow import UnitOfWork
from govassess.utils.seed import seed_default_template
from govassess.web.dependencies import close_store, open_store
from govassess.web.routes import api

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the schema and the default template before serving, dispose the engine after."""
    session_factory = open_store(app)
    initialise_database(app.state.db_engine)
    with UnitOfWork(session_factory).begin() as session:
        created = seed_default_template(session)
    logger.info("Assessment store ready (default template created: %s)", created)
    try:
        yield
    finally:
        close_store(app)


def create_application() -> FastAPI:
    settings = get_settings()
    logger.info("Starting %s", settings.app.title, extra=settings.get_environment_info())

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        debug=settings.app.debug,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )
    app.include_router(api.router)
    return app


app = create_application()
