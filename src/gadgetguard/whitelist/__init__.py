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
"""Host / URL whitelist engine.

Compiles configured allow-entries into anchored matchers and answers
whether an outbound request target, or a URL smuggled into request
parameters, points at a permitted destination.
"""

from .config import WhitelistConfig, load_config, save_config
from .errors import ConfigurationError, MalformedCandidateURL, QueryDecodingError, WhitelistError
from .guard import WhitelistGuard
from .matcher import (
    AllowRule,
    CandidateURL,
    EmptyPolicy,
    MalformedPolicy,
    WhitelistSet,
    compile_rule,
    compile_whitelist,
    contains_disallowed_url,
    find_disallowed_url,
    is_allowed,
)

__all__ = [
    "AllowRule",
    "CandidateURL",
    "ConfigurationError",
    "EmptyPolicy",
    "MalformedCandidateURL",
    "MalformedPolicy",
    "QueryDecodingError",
    "WhitelistConfig",
    "WhitelistError",
    "WhitelistGuard",
    "WhitelistSet",
    "compile_rule",
    "compile_whitelist",
    "contains_disallowed_url",
    "find_disallowed_url",
    "is_allowed",
    "load_config",
    "save_config",
]
