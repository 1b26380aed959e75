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
"""Outbound request pipeline with whitelist enforcement.

Wraps an ``httpx.Client``. Before a request is dispatched its target is
checked against the active whitelist; a denied request never reaches the
network and is answered with a synthetic ``404 Not Found`` instead.

Redirects are followed by the pipeline, not by the client, so every hop is
checked the same way as the original request.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..whitelist.guard import WhitelistGuard

logger = logging.getLogger("gadgetguard.web.pipeline")

BLOCKED_HEADER = "X-Whitelist-Blocked"


def not_found(request: httpx.Request) -> httpx.Response:
    """The synthetic response substituted for a blocked request."""
    return httpx.Response(
        404,
        request=request,
        headers={BLOCKED_HEADER: "true"},
        text="Not Found",
    )


class WhitelistingRequestPipeline:
    """Request pipeline that only dispatches whitelisted requests.

    A ``guard`` of None disables the check, so a pipeline can be built
    before the whitelist is configured. The client's ``follow_redirects``
    and ``max_redirects`` settings are honoured.
    """

    def __init__(self, client: httpx.Client, guard: WhitelistGuard | None = None) -> None:
        self._client = client
        self._guard = guard

    @property
    def guard(self) -> WhitelistGuard | None:
        return self._guard

    def execute(self, request: httpx.Request) -> httpx.Response:
        """Dispatch ``request`` or substitute a 404 if it is not whitelisted.

        Raises:
            httpx.TooManyRedirects: more than ``client.max_redirects`` hops.
        """
        if not self._permits(request):
            return not_found(request)

        response = self._client.send(request, follow_redirects=False)
        if not self._client.follow_redirects:
            return response

        history: list[httpx.Response] = []
        while response.next_request is not None:
            next_request = response.next_request
            response.close()
            history.append(response)
            if len(history) > self._client.max_redirects:
                raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=next_request)
            if not self._permits(next_request):
                response = not_found(next_request)
                break
            response = self._client.send(next_request, follow_redirects=False)
        response.history = history
        return response

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return self.execute(self._client.build_request(method, url, **kwargs))

    def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def _permits(self, request: httpx.Request) -> bool:
        if self._guard is None or self._guard.is_allowed(str(request.url), method=request.method):
            return True
        logger.info("Outbound %s to %s replaced with 404 Not Found", request.method, request.url.host)
        return False
