"""Tests for settings validation, logging setup and error tracking."""

import json
import logging

import pytest

from ytassets.core import config
from ytassets.core.logging import JSONFormatter, setup_logging
from ytassets.core.sentry import init_sentry, scrub_event


class TestSettings:
    def test_postgres_url(self):
        s = config.Settings(postgres_user="u", postgres_password="p", postgres_host="db", postgres_db="x")
        assert s.postgres_url == "postgresql+asyncpg://u:p@db:5432/x"

    def test_database_url_override(self):
        s = config.Settings(database_url="sqlite+aiosqlite:///creds.db")
        assert s.postgres_url == "sqlite+aiosqlite:///creds.db"

    def test_banned_terms_list(self):
        s = config.Settings(banned_terms=" gore , ,war ")
        assert s.banned_terms_list == ["gore", "war"]

    def test_validation_passes_for_defaults(self):
        config.validate_settings_for_production()

    def test_validation_rejects_unknown_tool(self, monkeypatch):
        monkeypatch.setattr(config.settings, "tool", "dalle")
        with pytest.raises(SystemExit, match="TOOL must be"):
            config.validate_settings_for_production()

    def test_production_requires_fernet_key(self, monkeypatch):
        monkeypatch.setattr(config.settings, "app_env", "production")
        monkeypatch.setattr(config.settings, "fernet_key", "")
        with pytest.raises(SystemExit, match="FERNET_KEY"):
            config.validate_settings_for_production()


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("ytassets.test", logging.INFO, __file__, 1, "job %s done", ("j1",), None)
        record.job_id = "j1"
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "job j1 done"
        assert data["level"] == "INFO"
        assert data["job_id"] == "j1"

    def test_json_formatter_skips_missing_context(self):
        record = logging.LogRecord("ytassets.test", logging.WARNING, __file__, 1, "plain", (), None)
        data = json.loads(JSONFormatter().format(record))
        assert "job_id" not in data
        assert "provider" not in data

    def test_setup_logging_arguments_override_settings(self, monkeypatch):
        monkeypatch.setattr(config.settings, "log_json", True)
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(level="warning", json_output=False)
            assert root.level == logging.WARNING
            assert not isinstance(root.handlers[-1].formatter, JSONFormatter)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)

    def test_setup_logging_json(self, monkeypatch):
        monkeypatch.setattr(config.settings, "log_json", True)
        monkeypatch.setattr(config.settings, "log_level", "debug")
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging()
            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[-1].formatter, JSONFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)


class TestSentry:
    def test_disabled_without_dsn(self, monkeypatch):
        monkeypatch.setattr(config.settings, "sentry_dsn", "")
        assert init_sentry() is False

    def test_scrub_event_masks_credentials(self):
        event = {
            "request": {"headers": {"Authorization": "ya29.secret", "Accept": "application/json"}},
            "extra": {"credential": {"id": "c1", "secret": "ya29.secret"}},
            "exception": {
                "values": [{"stacktrace": {"frames": [{"vars": {"api_key": "k", "prompt": "a lake"}}]}}]
            },
        }
        scrubbed = scrub_event(event)

        assert scrubbed["request"]["headers"] == {"Authorization": "[Filtered]", "Accept": "application/json"}
        assert scrubbed["extra"]["credential"] == {"id": "c1", "secret": "[Filtered]"}
        frame_vars = scrubbed["exception"]["values"][0]["stacktrace"]["frames"][0]["vars"]
        assert frame_vars == {"api_key": "[Filtered]", "prompt": "a lake"}
