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
"""Exception hierarchy for the whitelist engine.

Configuration problems are fatal at compile / load time. Problems with a
single scanned candidate are recoverable and are normally turned into a
denial by the caller.
"""

from __future__ import annotations


class WhitelistError(Exception):
    """Base class for all whitelist errors."""


class ConfigurationError(WhitelistError):
    """A configured allow-entry (or the config file itself) is unusable."""

    def __init__(self, message: str, entry: str | None = None) -> None:
        self.entry = entry
        if entry is not None:
            message = f"{message}: {entry!r}"
        super().__init__(message)


class MalformedCandidateURL(WhitelistError):
    """A URL-shaped substring of scanned text failed strict parsing."""

    def __init__(self, candidate: str, reason: str = "") -> None:
        self.candidate = candidate
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Malformed URL candidate {candidate!r}{detail}")


class QueryDecodingError(WhitelistError):
    """Invalid percent-encoding or UTF-8 in a query string or form body."""
