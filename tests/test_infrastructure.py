"""
Tests for error handling, logging, configuration and the seeding script.
"""

import json
import logging
import os
import tempfile

import pytest
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.pool import StaticPool

from govassess.infrastructure.config import (
    ApplicationConfig,
    DatabaseConfig,
    get_settings,
    load_settings_from_file,
    reset_settings,
)
from govassess.infrastructure.db import (
    create_database_engine,
    create_session_factory,
    is_database_configured,
)
from govassess.infrastructure.exceptions import (
    AssessmentLockedError,
    DatabaseError,
    IntegrityError,
    ValidationError,
    create_user_friendly_error_message,
    handle_database_error,
    log_error_details,
)
from govassess.infrastructure.logging import (
    LogContext,
    StructuredFormatter,
    auto_configure_logging,
    clear_context,
    context_filter,
    get_logger,
    log_operation,
    set_context,
    setup_logging,
)
from govassess.infrastructure.repositories import AssessmentRepo, TemplateRepo
from scripts import seed_dataset


@pytest.fixture
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


class TestErrorHandling:
    """Test error conversion and user-friendly messages."""

    def test_validation_error_creation(self):
        error = ValidationError("period", "must look like 'Q1 2024'", "spring")

        assert error.field == "period"
        assert "must look like" in str(error)
        assert error.user_message == "Invalid period: must look like 'Q1 2024'"
        assert error.details == {"field": "period", "value": "spring"}

    def test_unique_violation_becomes_integrity_error(self):
        sql_error = SQLIntegrityError("statement", {}, Exception("UNIQUE constraint failed"))
        db_error = handle_database_error(sql_error, "assessment.create")

        assert isinstance(db_error, IntegrityError)
        assert db_error.user_message == "This item already exists."

    def test_department_period_violation_is_recognised(self):
        sql_error = SQLIntegrityError(
            "INSERT INTO assessments ...",
            {},
            Exception("UNIQUE constraint failed: assessments.department_name, assessments.period"),
        )
        db_error = handle_database_error(sql_error, "assessment.create")

        assert db_error.constraint == "uq_department_period"
        assert db_error.user_message == "This department already has an assessment for that period."

    def test_unknown_failure_becomes_database_error(self):
        db_error = handle_database_error(RuntimeError("disk I/O error"), "assessment.save")
        assert type(db_error) is DatabaseError
        assert db_error.details["operation"] == "assessment.save"

    def test_user_friendly_error_messages(self):
        locked = AssessmentLockedError("a-1", "Locked")
        assert "unlock" in create_user_friendly_error_message(locked)

        friendly_msg = create_user_friendly_error_message(ValueError("Some technical error"))
        assert "try again" in friendly_msg.lower()

    def test_log_error_details(self):
        details = log_error_details(AssessmentLockedError("a-1", "Submitted"), {"user": "Ada"})

        assert details["error_type"] == "AssessmentLockedError"
        assert details["context"] == {"user": "Ada"}
        assert details["error_details"]["status"] == "Submitted"


class TestLogging:
    """Test logging helpers."""

    def test_logger_is_namespaced(self):
        assert get_logger("heatmap").name == "govassess.heatmap"
        assert get_logger("govassess.domain.scoring").name == "govassess.domain.scoring"

    def test_logging_configuration_writes_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, "logs", "test.log")
            setup_logging(level="DEBUG", log_file=log_file, structured=True, enable_console=False)
            try:
                get_logger("test").info("Test message")
                assert os.path.exists(log_file)
            finally:
                setup_logging(level="WARNING", enable_console=False)

    def test_structured_formatter_includes_context(self):
        record = logging.LogRecord(
            "govassess.test", logging.INFO, __file__, 10, "Locked %s", ("a-1",), None
        )
        record.department = "Finance"

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Locked a-1"
        assert entry["level"] == "INFO"
        assert entry["department"] == "Finance"

    def test_auto_configure_testing_preset(self):
        assert auto_configure_logging("testing") == "testing"
        assert get_logger("x").getEffectiveLevel() == logging.WARNING

    def test_log_operation_levels(self):
        records: list[logging.LogRecord] = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        op_logger = logging.getLogger("govassess.tests.operations")
        handler = Collect()
        handler.addFilter(context_filter)
        op_logger.handlers = [handler]
        op_logger.setLevel(logging.INFO)
        op_logger.propagate = False

        @log_operation("lock_assessment", logger=op_logger)
        def refuse():
            raise AssessmentLockedError("a-1", "Locked")

        @log_operation("save_responses", logger=op_logger)
        def crash():
            raise RuntimeError("boom")

        with pytest.raises(AssessmentLockedError):
            refuse()
        with pytest.raises(RuntimeError):
            crash()

        failures = [r for r in records if r.levelno >= logging.WARNING]
        assert [(r.levelname, r.exc_info is not None) for r in failures] == [
            ("WARNING", False),
            ("ERROR", True),
        ]
        assert failures[0].operation == "lock_assessment"

    def test_context_helpers(self):
        clear_context()
        set_context(department="Finance")
        try:
            with LogContext(operation="lock_assessment"):
                assert context_filter.context == {
                    "department": "Finance",
                    "operation": "lock_assessment",
                }
            assert context_filter.context == {"department": "Finance"}
        finally:
            clear_context()
        assert context_filter.context == {}


class TestConfiguration:
    """Test configuration management."""

    def test_sqlite_url(self):
        assert DatabaseConfig(sqlite_path="./data/gov").get_connection_url() == (
            "sqlite:///data/gov.db"
        )
        assert DatabaseConfig(sqlite_path=":memory:").get_connection_url() == "sqlite:///:memory:"

    def test_explicit_url_wins(self):
        config = DatabaseConfig(url="postgresql://u:p@db/gov")
        assert config.get_connection_url() == "postgresql://u:p@db/gov"

    def test_needs_a_target(self):
        with pytest.raises(ValueError):
            DatabaseConfig(sqlite_path=None, url=None)

    def test_debug_not_allowed_in_production(self):
        with pytest.raises(ValueError):
            ApplicationConfig(environment="production", debug=True)

    def test_environment_variables(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("APP_DEFAULT_PERIOD", "Q3 2025")
        monkeypatch.setenv("DB_SQLITE_PATH", "./other.db")

        settings = get_settings()
        assert settings.app.default_period == "Q3 2025"
        assert settings.database.get_connection_url() == "sqlite:///./other.db"
        assert is_database_configured()

    def test_environment_info(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("APP_ENVIRONMENT", "development")
        monkeypatch.setenv("APP_DEBUG", "true")
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        settings = get_settings()
        env_info = settings.get_environment_info()

        assert settings.is_development()
        assert env_info["environment"] == "development"
        assert env_info["debug"] is True
        assert env_info["logging_level"] == "DEBUG"
        assert env_info["database_url"].startswith("sqlite:///")

    def test_production_logs_warnings_only(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("APP_ENVIRONMENT", "production")
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        settings = get_settings()
        assert settings.is_production()
        assert settings.logging.level == "WARNING"

    def test_load_settings_from_file(self, monkeypatch, tmp_path, fresh_settings):
        # Register the variables with monkeypatch so they are removed afterwards.
        monkeypatch.setenv("APP_ENVIRONMENT", "development")
        monkeypatch.setenv("SERVER_PORT", "8000")

        config_file = tmp_path / "settings.json"
        config_file.write_text(
            json.dumps({"app": {"environment": "testing"}, "server": {"port": 9001}})
        )

        settings = load_settings_from_file(str(config_file))
        assert settings.is_testing()
        assert settings.server.port == 9001

    def test_explicit_log_level_wins(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("APP_ENVIRONMENT", "production")
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert get_settings().logging.level == "ERROR"

    def test_default_period_must_be_a_quarter(self):
        with pytest.raises(ValueError):
            ApplicationConfig(default_period="Spring 2024")

    def test_in_memory_engine_shares_one_connection(self):
        options = DatabaseConfig(sqlite_path=":memory:").get_engine_options()
        assert options["poolclass"] is StaticPool
        assert options["connect_args"] == {"check_same_thread": False}
        assert "poolclass" not in DatabaseConfig(sqlite_path="./gov.db").get_engine_options()

    def test_load_settings_maps_database_section(self, monkeypatch, tmp_path, fresh_settings):
        monkeypatch.setenv("DB_SQLITE_PATH", "./governance.db")

        config_file = tmp_path / "settings.json"
        config_file.write_text(json.dumps({"database": {"sqlite_path": "./from_file.db"}}))

        settings = load_settings_from_file(str(config_file))
        assert settings.database.get_connection_url() == "sqlite:///./from_file.db"

    def test_load_settings_rejects_unknown_sections(self, tmp_path):
        config_file = tmp_path / "settings.json"
        config_file.write_text(json.dumps({"reporting": {"enabled": True}}))
        with pytest.raises(ValueError):
            load_settings_from_file(str(config_file))

    def test_load_settings_rejects_other_formats(self, tmp_path):
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("app: {}")
        with pytest.raises(ValueError):
            load_settings_from_file(str(config_file))
        with pytest.raises(FileNotFoundError):
            load_settings_from_file(str(tmp_path / "missing.json"))


class TestSeedScript:
    def test_seeds_file_database(self, tmp_path, capsys):
        db_path = tmp_path / "governance.db"

        seed_dataset.main(["--sqlite-path", str(db_path), "--demo"])
        seed_dataset.main(["--sqlite-path", str(db_path)])

        output = [
            line for line in capsys.readouterr().out.splitlines() if line.startswith("Seed")
        ]
        assert output[0] == "Seed completed. Template created: True. Demo assessments: 4."
        assert output[1] == "Seed completed. Template created: False. Demo assessments: 0."

        engine = create_database_engine(DatabaseConfig(sqlite_path=str(db_path)))
        try:
            with create_session_factory(engine)() as session:
                assert len(TemplateRepo(session).list_domain()) == 1
                assert len(AssessmentRepo(session).list_domain()) == 4
        finally:
            engine.dispose()
