"""
Tests for structured logging setup.
"""

import json
import logging
import sys

import pytest

from hotlist.data.config import LoggingConfig
from hotlist.orchestrator.logging_config import (
    JSONFormatter,
    parse_module_levels,
    setup_from_config,
    setup_logging,
)


class TestJSONFormatter:
    """Tests for the JSON line format."""

    def _record(self, **extra):
        record = logging.LogRecord("hotlist.test", logging.INFO, __file__, 1, "Admitted %s", ("A",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_structured_fields(self):
        entry = json.loads(JSONFormatter().format(self._record(run_id="r1", identity_key="A", attempt=0)))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "hotlist.test"
        assert entry["msg"] == "Admitted A"
        assert entry["run_id"] == "r1"
        assert entry["identity_key"] == "A"
        assert entry["attempt"] == 0
        assert "queue" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = self._record()
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


class TestSetupLogging:
    """Tests for handler configuration."""

    def teardown_method(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            handler.close()
        root.handlers.clear()
        root.setLevel(logging.WARNING)

    def test_json_console(self):
        setup_logging(level="debug", json_output=True)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_rotating_file(self, tmp_path):
        log_file = tmp_path / "logs" / "hotlist.log"

        setup_logging(log_file=str(log_file))

        assert len(logging.getLogger().handlers) == 2
        assert log_file.parent.exists()

    def test_module_levels_from_config(self):
        config = LoggingConfig(level="WARNING", log_file=None, json_logs=False,
                               module_levels="hotlist.queue=DEBUG")

        setup_from_config(config)

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("hotlist.queue").level == logging.DEBUG
        assert logging.getLogger("urllib3").level == logging.WARNING
        logging.getLogger("hotlist.queue").setLevel(logging.NOTSET)

    def test_verbose_forces_debug(self):
        setup_from_config(LoggingConfig(level="ERROR", log_file=None, json_logs=True), verbose=True)

        assert logging.getLogger().level == logging.DEBUG


class TestParseModuleLevels:
    """Tests for LOG_MODULE_LEVELS parsing."""

    def test_parse(self):
        assert parse_module_levels(" hotlist.queue=debug, apscheduler=INFO ,") == {
            "hotlist.queue": "DEBUG",
            "apscheduler": "INFO",
        }

    def test_empty(self):
        assert parse_module_levels("") == {}
        assert parse_module_levels(None) == {}

    @pytest.mark.parametrize("spec", ["hotlist.queue", "=DEBUG", "hotlist=LOUD"])
    def test_invalid(self, spec):
        with pytest.raises(ValueError):
            parse_module_levels(spec)
