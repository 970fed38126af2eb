"""
Configuration for the governance self-assessment service.

Each concern reads its own environment prefix through pydantic-settings:
``DB_`` for the assessment store, ``LOG_`` for logging, ``SERVER_`` for the
uvicorn launcher and ``APP_`` for the service itself.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, TypeVar

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.pool import StaticPool

MEMORY_PATH = ":memory:"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

S = TypeVar("S", bound=BaseSettings)


class DatabaseConfig(BaseSettings):
    """
    Where assessments, templates and the changelog are stored.

    A local SQLite file by default; an explicit SQLAlchemy URL wins when set.

    Example:
        >>> DatabaseConfig(sqlite_path="./data/governance").get_connection_url()
        'sqlite:///data/governance.db'
    """

    sqlite_path: str | None = Field("./governance.db", description="SQLite database file path")
    url: str | None = Field(None, description="Explicit SQLAlchemy URL (overrides sqlite_path)")
    pool_pre_ping: bool = Field(True, description="Check connections before use")
    echo: bool = Field(False, description="Echo SQL statements")

    model_config = SettingsConfigDict(env_prefix="DB_", case_sensitive=False)

    @field_validator("sqlite_path")
    def add_db_suffix(cls, v):
        if v and v != MEMORY_PATH and not Path(v).suffix:
            return str(Path(v).with_suffix(".db"))
        return v

    @model_validator(mode="after")
    def require_some_target(self):
        if not (self.url or self.sqlite_path):
            raise ValueError("Either DB_URL or DB_SQLITE_PATH must be set")
        return self

    def get_connection_url(self) -> str:
        return self.url or f"sqlite:///{self.sqlite_path}"

    @property
    def is_sqlite(self) -> bool:
        return self.get_connection_url().startswith("sqlite")

    @property
    def is_memory(self) -> bool:
        return self.get_connection_url() in ("sqlite://", f"sqlite:///{MEMORY_PATH}")

    def get_engine_options(self) -> dict[str, Any]:
        """Keyword arguments for ``create_engine``."""
        options: dict[str, Any] = {"echo": self.echo, "pool_pre_ping": self.pool_pre_ping}
        if self.is_memory:
            # One shared connection, so every session sees the same in-memory database.
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        return options


class LoggingConfig(BaseSettings):
    """
    Example:
        >>> LoggingConfig(level="DEBUG", file_path="./logs/govassess.log").structured
        True
    """

    level: LogLevel = Field("INFO", description="Minimum logging level")
    file_path: str | None = Field("./logs/govassess.log", description="Rotating log file")
    structured: bool = Field(True, description="JSON log lines")
    console_enabled: bool = Field(True, description="Log to stdout")

    model_config = SettingsConfigDict(env_prefix="LOG_", case_sensitive=False)


class ServerConfig(BaseSettings):
    """HTTP server settings used by scripts/run_server.py."""

    host: str = Field("0.0.0.0", description="Bind address")
    port: int = Field(8000, ge=1, le=65535, description="Bind port")
    reload: bool = Field(False, description="Enable auto-reload (development only)")

    model_config = SettingsConfigDict(env_prefix="SERVER_", case_sensitive=False)


class ApplicationConfig(BaseSettings):
    """
    Service-wide settings.

    Example:
        >>> ApplicationConfig(default_period="Q3 2025").default_period
        'Q3 2025'
    """

    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Deployment environment"
    )
    debug: bool = Field(False, description="FastAPI debug mode")
    title: str = Field("Data Governance Self-Assessment", description="API title")
    version: str = Field("0.1.0", description="API version")
    default_period: str = Field(
        "Q1 2024",
        pattern=r"^Q[1-4] \d{4}$",
        description="Period given to an assessment opened without one",
    )
    cors_origins: list[str] = Field(["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="APP_", case_sensitive=False)

    @model_validator(mode="after")
    def no_debug_in_production(self):
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


# Section name in a settings file -> environment prefix of its config class.
SECTION_PREFIXES: dict[str, str] = {
    "app": "APP_",
    "database": "DB_",
    "logging": "LOG_",
    "server": "SERVER_",
}


def _default_log_level(app: ApplicationConfig) -> LogLevel:
    if app.environment == "production":
        return "WARNING"
    return "DEBUG" if app.debug else "INFO"


class Settings:
    """
    Lazily built configuration sections.

    The logging level follows the environment (WARNING in production, DEBUG
    when debugging) unless ``LOG_LEVEL`` is set explicitly.

    Example:
        >>> get_settings().database.get_connection_url()
        'sqlite:///./governance.db'
    """

    def __init__(self):
        self._sections: dict[str, BaseSettings] = {}

    def _section(self, name: str, build: Callable[[], S]) -> S:
        if name not in self._sections:
            self._sections[name] = build()
        return self._sections[name]  # type: ignore[return-value]

    @property
    def app(self) -> ApplicationConfig:
        return self._section("app", ApplicationConfig)

    @property
    def database(self) -> DatabaseConfig:
        return self._section("database", DatabaseConfig)

    @property
    def server(self) -> ServerConfig:
        return self._section("server", ServerConfig)

    @property
    def logging(self) -> LoggingConfig:
        def build() -> LoggingConfig:
            if "LOG_LEVEL" in os.environ:
                return LoggingConfig()
            return LoggingConfig(level=_default_log_level(self.app))

        return self._section("logging", build)

    def is_development(self) -> bool:
        return self.app.environment == "development"

    def is_testing(self) -> bool:
        return self.app.environment == "testing"

    def is_production(self) -> bool:
        return self.app.environment == "production"

    def get_environment_info(self) -> dict[str, Any]:
        """Summary for startup logs and diagnostics."""
        return {
            "environment": self.app.environment,
            "version": self.app.version,
            "debug": self.app.debug,
            "default_period": self.app.default_period,
            "database_url": self.database.get_connection_url().split("@")[-1],
            "logging_level": self.logging.level,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def load_settings_from_file(file_path: str) -> Settings:
    """
    Load settings from a JSON file of ``{"section": {"key": value}}`` pairs.

    Sections are ``app``, ``database``, ``logging`` and ``server``. Each value
    is exported under its section's environment prefix (``database.url``
    becomes ``DB_URL``) and the settings cache is rebuilt.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file isn't JSON or names an unknown section
    """
    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")
    if config_path.suffix.lower() != ".json":
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    config_data = json.loads(config_path.read_text())
    unknown = set(config_data) - set(SECTION_PREFIXES)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    for section, values in config_data.items():
        prefix = SECTION_PREFIXES[section]
        for key, value in values.items():
            os.environ[f"{prefix}{key.upper()}"] = (
                json.dumps(value) if isinstance(value, (list, dict)) else str(value)
            )

    reset_settings()
    return get_settings()


def reset_settings() -> None:
    """Drop cached settings so the next ``get_settings()`` rereads the environment."""
    get_settings.cache_clear()
