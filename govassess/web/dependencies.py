from __future__ import annotations

from collections.abc import Generator

from fastapi import FastAPI, Header, Request
from sqlalchemy.orm import Session, sessionmaker

from govassess.application.api import SYSTEM_USER
from govassess.infrastructure.config import DatabaseConfig, get_settings
from govassess.infrastructure.db import create_database_engine, create_session_factory
from govassess.infrastructure.logging import clear_context, set_context


def open_store(app: FastAPI, config: DatabaseConfig | None = None) -> sessionmaker[Session]:
    """Create the engine and session factory for ``app`` unless it already has them."""
    if getattr(app.state, "session_factory", None) is None:
        app.state.db_engine = create_database_engine(config or get_settings().database)
        app.state.session_factory = create_session_factory(app.state.db_engine)
    return app.state.session_factory


def close_store(app: FastAPI) -> None:
    engine = getattr(app.state, "db_engine", None)
    if engine is not None:
        engine.dispose()
    app.state.db_engine = None
    app.state.session_factory = None


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """One session per request; log context set while serving it is dropped afterwards."""
    try:
        with open_store(request.app)() as session:
            yield session
    finally:
        clear_context()


def get_current_user(x_user: str | None = Header(default=None)) -> str:
    """Acting user from the ``X-User`` header, also tagged on log records."""
    user = x_user.strip() if x_user and x_user.strip() else SYSTEM_USER
    set_context(user=user)
    return user
