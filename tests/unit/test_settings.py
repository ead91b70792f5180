"""
Tests for Settings and Logging
==============================

Version: 0.1.0
"""

import pytest

from shared.config import Environment, LogLevel, PipelineSettings, PostgresSettings, Settings
from shared.logging import get_logger, setup_logging
from shared.logging.logger import _censor_secrets


class TestPostgresSettings:
    """Tests for PostgresSettings."""

    def test_urls(self) -> None:
        config = PostgresSettings(host="db", port=5433, user="u", password="p", db="ecfr")

        assert config.async_url == "postgresql+asyncpg://u:p@db:5433/ecfr"
        assert config.sync_url == "postgresql://u:p@db:5433/ecfr"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POSTGRES_HOST", "pg.internal")

        assert PostgresSettings().host == "pg.internal"


class TestPipelineSettings:
    """Tests for PipelineSettings."""

    def test_defaults(self) -> None:
        config = PipelineSettings()

        assert config.text_depth_limit == 15
        assert config.scope_tags_list == ["DIV3", "DIV5"]
        assert config.content_tags_list == ["P", "HEAD"]
        assert config.scope_attribute == "N"
        assert config.max_concurrent_pairs == 1
        assert config.preview_max_results == 10

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIPELINE_TEXT_DEPTH_LIMIT", "20")
        monkeypatch.setenv("PIPELINE_SCOPE_TAGS", "DIV3,DIV5,DIV6")

        config = PipelineSettings()

        assert config.text_depth_limit == 20
        assert config.scope_tags_list == ["DIV3", "DIV5", "DIV6"]


class TestSettings:
    """Tests for the root Settings."""

    def test_log_level_uppercased(self) -> None:
        assert Settings(log_level="debug").log_level == LogLevel.DEBUG

    def test_testing_environment(self) -> None:
        settings = Settings()

        assert settings.environment == Environment.TESTING
        assert settings.is_testing
        assert not settings.is_production


class TestLogging:
    """Tests for logging setup."""

    def test_censor_secrets(self) -> None:
        event = {"event": "connect", "password": "hunter2", "host": "db"}

        censored = _censor_secrets(None, "info", event)

        assert censored["password"] == "***REDACTED***"
        assert censored["host"] == "db"

    def test_setup_and_log(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(log_level="INFO", json_logs=True, service_name="test")
        logger = get_logger("tests.logging")

        logger.info("pair_processed", organization_id=1)

        out = capsys.readouterr().out
        assert "pair_processed" in out
        assert '"organization_id": 1' in out

    def test_service_name_bound_per_setup(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(log_level="INFO", json_logs=True, service_name="word-count-job")
        get_logger("tests.logging").info("batch_started")
        first = capsys.readouterr().out

        setup_logging(log_level="INFO", json_logs=True, service_name="init-db")
        get_logger("tests.logging").info("batch_started")
        second = capsys.readouterr().out

        assert '"service": "word-count-job"' in first
        assert '"service": "init-db"' in second
