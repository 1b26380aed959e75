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
"""Owner of the active whitelist.

Readers take one reference to the current ``WhitelistSet`` per query and
work on that immutable value. Reconfiguration compiles a complete new set
first and then swaps the reference, so a reader never sees a half-built
whitelist and a failed reload leaves the old set in place.
"""

from __future__ import annotations

import logging
import threading

from .audit import AuditEntry, AuditLogger
from .config import WhitelistConfig
from .errors import MalformedCandidateURL
from .matcher import (
    CandidateURL,
    MalformedPolicy,
    WhitelistSet,
    extract_host,
    find_disallowed_url,
    is_allowed,
)

logger = logging.getLogger("gadgetguard.whitelist.guard")


class WhitelistGuard:
    """Answers whitelist queries against the currently active set.

    Usage:
        guard = WhitelistGuard.from_config(load_config())
        guard.is_allowed("https://portal.example.com/app/x")
        guard.contains_disallowed_url(query_string)
        guard.reload(load_config())
    """

    def __init__(
        self,
        whitelist: WhitelistSet,
        audit_logger: AuditLogger | None = None,
        malformed_policy: MalformedPolicy | str = MalformedPolicy.DENY,
        enforce: bool = True,
        audit_allowed: bool = False,
    ) -> None:
        self._whitelist = whitelist
        self._audit = audit_logger
        self._audit_allowed = audit_allowed
        self._malformed_policy = MalformedPolicy(malformed_policy)
        self._enforce = enforce
        self._lock = threading.Lock()
        self._generation = 1

    @classmethod
    def from_config(
        cls,
        config: WhitelistConfig,
        audit_logger: AuditLogger | None = None,
    ) -> WhitelistGuard:
        """Compile ``config`` and build a guard around the result.

        Raises:
            ConfigurationError: if the configuration does not compile.
        """
        guard = cls(
            config.compile(),
            audit_logger=audit_logger,
            malformed_policy=config.malformed_policy,
            enforce=config.enforce,
            audit_allowed=config.audit_allowed,
        )
        logger.info(
            "Whitelist guard ready: %d rules, %d hosts (empty_policy=%s, enforce=%s)",
            len(guard.current),
            len(guard.current.hosts),
            guard.current.empty_policy.value,
            config.enforce,
        )
        return guard

    @property
    def current(self) -> WhitelistSet:
        return self._whitelist

    @property
    def generation(self) -> int:
        """Incremented on every successful swap."""
        return self._generation

    @property
    def enforce(self) -> bool:
        return self._enforce

    @property
    def audit(self) -> AuditLogger | None:
        return self._audit

    def replace(self, whitelist: WhitelistSet) -> None:
        """Atomically publish a new whitelist."""
        with self._lock:
            self._whitelist = whitelist
            self._generation += 1
        logger.info("Whitelist replaced (generation %d, %d rules)", self._generation, len(whitelist))

    def reload(self, config: WhitelistConfig) -> WhitelistSet:
        """Compile ``config`` and swap it in.

        Raises:
            ConfigurationError: the new config does not compile. The
                previously active whitelist stays in place.
        """
        new_set = config.compile()
        with self._lock:
            self._whitelist = new_set
            self._malformed_policy = MalformedPolicy(config.malformed_policy)
            self._enforce = config.enforce
            self._audit_allowed = config.audit_allowed
            self._generation += 1
        logger.info("Whitelist reloaded (generation %d, %d rules)", self._generation, len(new_set))
        return new_set

    # ---------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------

    def is_allowed(self, target: CandidateURL | str, method: str = "") -> bool:
        """Outbound check. Returns True when the request may proceed."""
        whitelist = self._whitelist
        if is_allowed(whitelist, target):
            if self._audit_allowed and self._audit is not None:
                self._audit.log(
                    AuditEntry.allowed(
                        "outbound",
                        _hostname_of(target),
                        _rule_source(whitelist, target),
                        method=method,
                    )
                )
            return True

        hostname = _hostname_of(target)
        if self._audit is not None:
            self._audit.log(
                AuditEntry.blocked("outbound", hostname, "URI not whitelisted", method=method)
            )
        if not self._enforce:
            logger.warning("AUDIT-ONLY: outbound request to %s allowed", hostname)
            return True
        return False

    def find_disallowed_url(self, text: str, method: str = "", client_ip: str = "") -> str | None:
        """Inbound check. Returns the first offending URL, or None."""
        whitelist = self._whitelist
        offending = find_disallowed_url(whitelist, text, on_malformed=self._malformed_policy)
        if offending is None:
            return None

        if self._audit is not None:
            try:
                hostname = extract_host(offending) or ""
                entry = AuditEntry.blocked(
                    "inbound",
                    hostname,
                    "Host name not whitelisted",
                    method=method,
                    client_ip=client_ip,
                )
            except MalformedCandidateURL as exc:
                entry = AuditEntry.malformed("inbound", exc.reason, method=method, client_ip=client_ip)
            self._audit.log(entry)

        if not self._enforce:
            logger.warning("AUDIT-ONLY: disallowed URL in inbound request parameters allowed")
            return None
        return offending

    def contains_disallowed_url(self, text: str, method: str = "", client_ip: str = "") -> bool:
        return self.find_disallowed_url(text, method=method, client_ip=client_ip) is not None

    def get_status(self) -> dict:
        """Guard status for the management API."""
        whitelist = self._whitelist
        status = {
            "generation": self._generation,
            "rule_count": len(whitelist),
            "host_count": len(whitelist.hosts),
            "empty_policy": whitelist.empty_policy.value,
            "allow_all": whitelist.allow_all,
            "malformed_policy": self._malformed_policy.value,
            "enforce": self._enforce,
            "audit_allowed": self._audit_allowed,
        }
        if self._audit is not None:
            status["audit_stats"] = self._audit.get_stats()
        return status


def _hostname_of(target: CandidateURL | str) -> str:
    if isinstance(target, CandidateURL):
        return target.host
    try:
        return CandidateURL.from_url(target).host
    except MalformedCandidateURL:
        return ""


def _rule_source(whitelist: WhitelistSet, target: CandidateURL | str) -> str:
    if whitelist.allow_all:
        return "allow_all"
    if isinstance(target, str):
        target = CandidateURL.from_url(target)
    rule = whitelist.matching_rule(target)
    return rule.source if rule is not None else ""
