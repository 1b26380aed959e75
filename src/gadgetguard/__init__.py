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
Gadget Guard -- SSRF / DNS-exfiltration whitelist for gadget proxies.

Compiles configured allow-entries into anchored host / URL matchers and
enforces them on outbound proxy requests and inbound request parameters.
"""

__version__ = "1.2.0"
__author__ = "Phoenix Link"
