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
"""Whitelist security audit log.

Every denial taken by the guards is appended to a host-side audit file as
one JSON object per line, so alerting can tail it without parsing free
text. Entries carry the rejected host name only; query strings and
user-info never reach the log.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TextIO

from .matcher import SSRF_MARKER

logger = logging.getLogger("gadgetguard.whitelist.audit")


@dataclass
class AuditEntry:
    """A single auditable whitelist decision."""

    timestamp: float
    event_type: str  # "blocked", "malformed", "allowed"
    source: str  # "outbound" (request pipeline) or "inbound" (URL filter)
    hostname: str
    method: str = ""
    reason: str = ""
    marker: str = ""
    client_ip: str = ""

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def blocked(
        cls,
        source: str,
        hostname: str,
        reason: str,
        method: str = "",
        client_ip: str = "",
    ) -> AuditEntry:
        """Create an entry for a request blocked by the whitelist."""
        return cls(
            timestamp=time.time(),
            event_type="blocked",
            source=source,
            hostname=hostname,
            method=method,
            reason=reason,
            marker=SSRF_MARKER,
            client_ip=client_ip,
        )

    @classmethod
    def malformed(
        cls,
        source: str,
        reason: str,
        method: str = "",
        client_ip: str = "",
    ) -> AuditEntry:
        """Create an entry for a URL-shaped token that failed to parse."""
        return cls(
            timestamp=time.time(),
            event_type="malformed",
            source=source,
            hostname="",
            method=method,
            reason=reason,
            marker=SSRF_MARKER,
            client_ip=client_ip,
        )

    @classmethod
    def allowed(cls, source: str, hostname: str, rule: str, method: str = "") -> AuditEntry:
        """Create an entry for a permitted request (written when audit_allowed is set)."""
        return cls(
            timestamp=time.time(),
            event_type="allowed",
            source=source,
            hostname=hostname,
            method=method,
            reason=rule,
        )


class AuditLogger:
    """Thread-safe audit logger that appends JSON Lines to a file."""

    def __init__(self, log_path: str | Path | None = None) -> None:
        if log_path is None:
            from .config import GADGETGUARD_HOME

            log_path = GADGETGUARD_HOME / "whitelist_audit.log"

        self._path = Path(log_path).expanduser()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file: TextIO | None = None
        self._entry_count = 0

    def _ensure_open(self) -> TextIO:
        """Lazily open the log file."""
        if self._file is None or self._file.closed:
            self._file = open(self._path, "a", encoding="utf-8")
        return self._file

    def log(self, entry: AuditEntry) -> None:
        """Write an audit entry to the log file (thread-safe)."""
        line = entry.to_json() + "\n"
        with self._lock:
            try:
                f = self._ensure_open()
                f.write(line)
                f.flush()
                self._entry_count += 1
            except OSError as exc:
                logger.error("Failed to write audit entry: %s", exc)

    def close(self) -> None:
        """Close the log file."""
        with self._lock:
            if self._file and not self._file.closed:
                self._file.close()
                self._file = None

    @property
    def entry_count(self) -> int:
        """Number of entries written in this session."""
        return self._entry_count

    @property
    def path(self) -> Path:
        return self._path

    def read_recent(self, n: int = 50) -> list[AuditEntry]:
        """Read the N most recent audit entries."""
        if not self._path.exists():
            return []

        entries: list[AuditEntry] = []
        try:
            lines = self._path.read_text(encoding="utf-8").strip().splitlines()
            for line in lines[-n:]:
                try:
                    entries.append(AuditEntry(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    continue
        except OSError as exc:
            logger.error("Failed to read audit log: %s", exc)

        return entries

    def get_stats(self) -> dict:
        """Summary statistics over the last 1000 entries."""
        entries = self.read_recent(1000)
        blocked = [e for e in entries if e.event_type in ("blocked", "malformed")]
        return {
            "total_events": len(entries),
            "blocked": sum(1 for e in entries if e.event_type == "blocked"),
            "malformed": sum(1 for e in entries if e.event_type == "malformed"),
            "outbound": sum(1 for e in blocked if e.source == "outbound"),
            "inbound": sum(1 for e in blocked if e.source == "inbound"),
            "unique_hosts": len({e.hostname for e in blocked if e.hostname}),
        }

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
