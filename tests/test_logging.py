# Gadget Guard
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the logging formatter and setup."""

import logging

from gadgetguard.logging import GuardLogFormatter, configure_logging


def _record(name="gadgetguard.whitelist.matcher", level=logging.WARNING, msg="denied", **extra):
    record = logging.LogRecord(name, level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestGuardLogFormatter:
    def test_layout(self):
        line = GuardLogFormatter().format(_record())
        ts, level, component, message = [part.strip() for part in line.split(" | ")]
        assert ts.endswith("Z")
        assert level == "WARN"
        assert component == "matcher"
        assert message == "denied"

    def test_component_override(self):
        line = GuardLogFormatter().format(_record(component="inbound"))
        assert " | inbound " in line

    def test_structured_fields(self):
        line = GuardLogFormatter().format(
            _record(fields={"host": "evil.net", "port": 8443, "elapsed": 0.5})
        )
        assert line.endswith('| host="evil.net" port=8443 elapsed=0.500')

    def test_critical_abbreviated(self):
        assert " | CRIT  | " in GuardLogFormatter().format(_record(level=logging.CRITICAL))


class TestConfigureLogging:
    def test_replaces_handlers(self):
        configure_logging("DEBUG")
        logger = configure_logging("INFO")
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
        assert logger.propagate is False

    def test_rotating_file(self, tmp_path):
        log_file = tmp_path / "logs" / "guard.log"
        logger = configure_logging("WARNING", log_file=log_file)
        logging.getLogger("gadgetguard.whitelist.guard").warning("blocked %s", "evil.net")
        for handler in logger.handlers:
            handler.flush()
        content = log_file.read_text()
        assert "| WARN  | guard" in content
        assert "blocked evil.net" in content
