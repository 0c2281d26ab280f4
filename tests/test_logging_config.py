"""
Tests for logging configuration
"""

import json
import sys
import pytest
import logging
from geoip_enricher.logging_config import JsonFormatter, default_config, setup_logging


def _record(msg="GeoIP updated, success.", **extra):
    record = logging.LogRecord("enrich.refresher", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_structured_fields(self):
        line = JsonFormatter().format(_record(component="enrich.refresher", event="updated", interval=86400))
        entry = json.loads(line)

        assert entry["level"] == "INFO"
        assert entry["logger"] == "enrich.refresher"
        assert entry["msg"] == "GeoIP updated, success."
        assert entry["component"] == "enrich.refresher"
        assert entry["event"] == "updated"
        assert entry["interval"] == 86400
        assert entry["timestamp"].endswith("Z")

    def test_default_component(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["component"] == "worker"
        assert "args" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("app", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        level, handlers = root.level, list(root.handlers)
        yield
        root.setLevel(level)
        root.handlers = handlers

    def test_default_config_formats(self):
        config = default_config("DEBUG", "text")
        assert config["handlers"]["console"]["formatter"] == "text"
        assert config["root"]["level"] == "DEBUG"

    def test_env_level(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = setup_logging(str(tmp_path / "missing.yaml"))

        assert config["root"]["level"] == "WARNING"
        assert logging.getLogger().level == logging.WARNING

    def test_yaml_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        path = tmp_path / "LOGGING.yaml"
        path.write_text(
            "version: 1\n"
            "disable_existing_loggers: false\n"
            "handlers:\n"
            "  console:\n"
            "    class: logging.StreamHandler\n"
            "loggers:\n"
            "  yamltest:\n"
            "    level: DEBUG\n"
            "root:\n"
            "  level: INFO\n"
            "  handlers: [console]\n"
        )

        config = setup_logging(str(path))

        assert config["loggers"]["yamltest"]["level"] == "ERROR"
        assert logging.getLogger("yamltest").level == logging.ERROR
