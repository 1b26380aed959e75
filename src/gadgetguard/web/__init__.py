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
"""HTTP-layer collaborators of the whitelist engine."""

from .body import BodyTooLarge, BufferedBody
from .middleware import BODY_REJECTED, QUERY_REJECTED, URLFilterMiddleware, decode_query_string
from .pipeline import WhitelistingRequestPipeline

__all__ = [
    "BODY_REJECTED",
    "QUERY_REJECTED",
    "BodyTooLarge",
    "BufferedBody",
    "URLFilterMiddleware",
    "WhitelistingRequestPipeline",
    "decode_query_string",
]
