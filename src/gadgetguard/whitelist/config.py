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
"""Whitelist configuration schema.

The configuration lives on the host filesystem and is merged from three
sources, in this order:

  1. the platform's own host name (``platform_hostname``)
  2. the values in the config file (the filter / pipeline init parameters)
  3. a process-wide override taken from the environment

Config location: ~/.gadgetguard/whitelist.yaml
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError
from .matcher import EmptyPolicy, MalformedPolicy, WhitelistSet, compile_whitelist, split_entries

logger = logging.getLogger("gadgetguard.whitelist.config")

# ---------------------------------------------------------------------------
# Default paths
# ---------------------------------------------------------------------------
GADGETGUARD_HOME = Path(os.environ.get("GADGETGUARD_HOME", Path.home() / ".gadgetguard"))
DEFAULT_CONFIG_PATH = GADGETGUARD_HOME / "whitelist.yaml"

# ---------------------------------------------------------------------------
# Process-wide overrides
# ---------------------------------------------------------------------------
ENV_PROXY_WHITELIST = "GADGETGUARD_PROXY_WHITELIST"
ENV_ALLOWED_HOST_NAMES = "GADGETGUARD_ALLOWED_HOST_NAMES"
ENV_HOSTNAME = "GADGETGUARD_HOSTNAME"

DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024  # 10 MB


@dataclass
class WhitelistConfig:
    """Full whitelist configuration."""

    # The platform's canonical host name (e.g. "portal.example.com")
    platform_hostname: str = ""

    # URL entries for the outbound request pipeline
    whitelist: list[str] = field(default_factory=list)

    # Bare host names accepted in inbound request parameters
    allowed_host_names: list[str] = field(default_factory=list)

    # Process-wide overrides, appended after the file values
    override_whitelist: list[str] = field(default_factory=list)
    override_host_names: list[str] = field(default_factory=list)

    # What an empty whitelist means
    empty_policy: EmptyPolicy = EmptyPolicy.PLATFORM_DEFAULT

    # Path of the rule synthesized from platform_hostname
    default_path: str = "/portal"

    # How the inbound guard treats URL-shaped tokens that do not parse
    malformed_policy: MalformedPolicy = MalformedPolicy.DENY

    # Largest request body the inbound guard will buffer
    max_body_size: int = DEFAULT_MAX_BODY_SIZE

    audit_log_path: str = str(GADGETGUARD_HOME / "whitelist_audit.log")

    # Also audit permitted outbound requests (noisy, off by default)
    audit_allowed: bool = False

    # Block denied requests (True) or only log them (False, for rollout)
    enforce: bool = True

    def merged_entries(self) -> list[str]:
        """Ordered, de-duplicated URL entries from all sources."""
        return _dedupe(split_entries(self.whitelist) + split_entries(self.override_whitelist))

    def merged_host_names(self) -> list[str]:
        """Ordered, de-duplicated host names from all sources."""
        return _dedupe(
            split_entries(self.platform_hostname)
            + split_entries(self.allowed_host_names)
            + split_entries(self.override_host_names)
        )

    def compile(self) -> WhitelistSet:
        """Compile this configuration into a WhitelistSet.

        Raises:
            ConfigurationError: if any entry is malformed.
        """
        return compile_whitelist(
            self.merged_entries(),
            extra_hosts=self.merged_host_names(),
            empty_policy=self.empty_policy,
            platform_hostname=self.platform_hostname,
            default_path=self.default_path,
        )


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WhitelistConfig:
    """Load whitelist configuration from a YAML file plus the environment.

    A missing file yields the defaults. A file that cannot be parsed is a
    ConfigurationError: a broken whitelist must never degrade silently.
    """
    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    if not config_path.exists():
        logger.info("No whitelist config at %s -- using defaults", config_path)
        config = WhitelistConfig()
    else:
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Failed to load whitelist config {config_path}: {exc}") from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Invalid whitelist config {config_path} (not a mapping)")
        config = _parse_config(raw)

    _apply_environment(config, environ)
    return config


def save_config(config: WhitelistConfig, path: Path | str | None = None) -> None:
    """Save whitelist configuration to a YAML file (overrides are not saved)."""
    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "platform_hostname": config.platform_hostname,
        "whitelist": list(config.whitelist),
        "allowed_host_names": list(config.allowed_host_names),
        "empty_policy": EmptyPolicy(config.empty_policy).value,
        "default_path": config.default_path,
        "malformed_policy": MalformedPolicy(config.malformed_policy).value,
        "max_body_size": config.max_body_size,
        "audit_log_path": config.audit_log_path,
        "audit_allowed": config.audit_allowed,
        "enforce": config.enforce,
    }
    config_path.write_text(
        yaml.dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8"
    )
    logger.info("Saved whitelist config to %s", config_path)


def _parse_config(raw: dict) -> WhitelistConfig:
    """Parse raw YAML dict into WhitelistConfig."""
    try:
        empty_policy = EmptyPolicy(raw.get("empty_policy", EmptyPolicy.PLATFORM_DEFAULT.value))
        malformed_policy = MalformedPolicy(raw.get("malformed_policy", MalformedPolicy.DENY.value))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid whitelist policy: {exc}") from exc

    max_body_size = raw.get("max_body_size", DEFAULT_MAX_BODY_SIZE)
    if not isinstance(max_body_size, int) or max_body_size <= 0:
        raise ConfigurationError(f"Invalid max_body_size: {max_body_size!r}")

    return WhitelistConfig(
        platform_hostname=str(raw.get("platform_hostname") or "").strip(),
        whitelist=split_entries(raw.get("whitelist")),
        allowed_host_names=split_entries(raw.get("allowed_host_names")),
        empty_policy=empty_policy,
        default_path=str(raw.get("default_path", "/portal")),
        malformed_policy=malformed_policy,
        max_body_size=max_body_size,
        audit_log_path=str(raw.get("audit_log_path", GADGETGUARD_HOME / "whitelist_audit.log")),
        audit_allowed=bool(raw.get("audit_allowed", False)),
        enforce=bool(raw.get("enforce", True)),
    )


def _apply_environment(config: WhitelistConfig, environ: Mapping[str, str]) -> None:
    """Append the process-wide overrides to a loaded config."""
    hostname = environ.get(ENV_HOSTNAME, "").strip()
    if hostname:
        config.platform_hostname = hostname
    config.override_whitelist = split_entries(environ.get(ENV_PROXY_WHITELIST))
    config.override_host_names = split_entries(environ.get(ENV_ALLOWED_HOST_NAMES))
    if config.override_whitelist or config.override_host_names:
        logger.info(
            "Whitelist overrides from environment: %d entries, %d host names",
            len(config.override_whitelist),
            len(config.override_host_names),
        )


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
