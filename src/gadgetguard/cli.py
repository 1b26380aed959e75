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
"""Gadget Guard command line.

Usage:
    gadgetguard [--config PATH] check URL [URL ...]
    gadgetguard [--config PATH] scan [FILE]
    gadgetguard [--config PATH] rules

Exit codes: 0 allowed / clean, 1 denied / violation found,
2 configuration error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from . import __version__
from .logging import configure_logging
from .whitelist.config import load_config
from .whitelist.errors import ConfigurationError, MalformedCandidateURL
from .whitelist.guard import WhitelistGuard

logger = logging.getLogger("gadgetguard.cli")

EXIT_OK = 0
EXIT_DENIED = 1
EXIT_CONFIG = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gadgetguard",
        description="Gadget Guard -- SSRF whitelist for gadget proxies",
    )
    parser.add_argument("--version", action="version", version=f"gadget-guard {__version__}")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to whitelist.yaml (default: ~/.gadgetguard/whitelist.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Check outbound URLs against the whitelist")
    check.add_argument("urls", nargs="+", metavar="URL")

    scan = sub.add_parser("scan", help="Scan text for URLs with non-whitelisted hosts")
    scan.add_argument("file", nargs="?", default=None, help="File to scan (default: stdin)")

    sub.add_parser("rules", help="Print the compiled whitelist rules as JSON")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the gadgetguard command."""
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        guard = WhitelistGuard.from_config(load_config(args.config))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command == "check":
        denied = 0
        for url in args.urls:
            allowed = guard.is_allowed(url)
            print(f"{'ALLOWED' if allowed else 'DENIED '}  {url}")
            denied += not allowed
        return EXIT_DENIED if denied else EXIT_OK

    if args.command == "scan":
        if args.file:
            with open(args.file, encoding="utf-8", errors="replace") as f:
                text = f.read()
        else:
            text = sys.stdin.read()
        try:
            offending = guard.find_disallowed_url(text)
        except MalformedCandidateURL as exc:
            print(f"malformed URL: {exc.candidate}")
            return EXIT_DENIED
        if offending is None:
            print("clean")
            return EXIT_OK
        print(f"disallowed URL: {offending}")
        return EXIT_DENIED

    whitelist = guard.current
    print(
        json.dumps(
            {
                "rules": [rule.to_dict() for rule in whitelist],
                "hosts": sorted(whitelist.hosts),
                "allow_all": whitelist.allow_all,
                "empty_policy": whitelist.empty_policy.value,
            },
            indent=2,
        )
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
