# Gadget Guard
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
#
# This file is part of Gadget Guard.
#
# Gadget Guard is dual-licensed:
#
# 1. Open Source: GNU Affero General Public License v3.0 (AGPL-3.0)
#    You may use, modify, and distribute this file under AGPL-3.0.
#    See LICENSE for the full text.
#
# 2. Commercial: Available from Phoenix Link (Pty) Ltd
#    For proprietary use, SaaS deployment, or enterprise licensing.
#    See LICENSE-ENTERPRISE.md or contact info@phoenixlink.co.za
#
# Contributions require a signed CLA. See COPYRIGHT.md and CLA.md.
"""
Gadget Guard -- logging setup.

Every module logs through a named child of the ``gadgetguard`` logger.
``configure_logging`` attaches one formatter to that root:

    TIMESTAMP | LEVEL | COMPONENT | MESSAGE | {structured fields}

Example:
2026-02-09T17:30:45.123Z | WARN  | matcher      | Potential SSRF/DNS-exfiltration attempt. Unauthorized host name evil.net detected in request parameters.
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path

MAX_LOG_FILE_BYTES = 10 * 1024 * 1024  # 10 MB per file
LOG_BACKUP_COUNT = 5
ROOT_LOGGER = "gadgetguard"


class GuardLogFormatter(logging.Formatter):
    """Human-readable format with optional structured ``fields``."""

    LEVEL_WIDTH = 5
    COMPONENT_WIDTH = 12

    _LEVEL_NAMES = {"WARNING": "WARN", "CRITICAL": "CRIT"}

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.fromtimestamp(record.created, timezone.utc)
        ts = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

        level = self._LEVEL_NAMES.get(record.levelname, record.levelname)
        component = getattr(record, "component", record.name.rsplit(".", 1)[-1])
        message = record.getMessage()

        fields = getattr(record, "fields", {})
        field_str = ""
        if fields:
            parts = []
            for k, v in fields.items():
                if isinstance(v, str):
                    parts.append(f'{k}="{v}"')
                elif isinstance(v, float):
                    parts.append(f"{k}={v:.3f}")
                else:
                    parts.append(f"{k}={v}")
            field_str = " | " + " ".join(parts)

        line = (
            f"{ts} | {level:<{self.LEVEL_WIDTH}} | "
            f"{component:<{self.COMPONENT_WIDTH}} | {message}{field_str}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: str | int = "INFO", log_file: str | Path | None = None) -> logging.Logger:
    """Attach stderr (and optionally rotating file) handlers to ``gadgetguard``.

    Safe to call repeatedly: previously installed handlers are replaced.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level if isinstance(level, int) else getattr(logging, str(level).upper()))
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(GuardLogFormatter())
    logger.addHandler(stderr_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(path),
            maxBytes=MAX_LOG_FILE_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(GuardLogFormatter())
        logger.addHandler(file_handler)

    return logger
