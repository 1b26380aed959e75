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
"""Inbound URL filter.

Pure ASGI middleware that rejects requests whose parameters smuggle an
absolute URL pointing at a non-whitelisted host (SSRF / DNS exfiltration
through the gadget proxy):

  - the query string of every request is URL-decoded and scanned
  - the body of POST / PUT / PATCH requests is buffered and scanned
    (form and JSON bodies after decoding), then replayed to the
    application unchanged

Rejections use HTTP 403 with a fixed reason string.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from urllib.parse import unquote_to_bytes

from starlette.requests import ClientDisconnect
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from ..whitelist.config import DEFAULT_MAX_BODY_SIZE
from ..whitelist.errors import MalformedCandidateURL, QueryDecodingError
from ..whitelist.guard import WhitelistGuard
from .body import BodyTooLarge, BufferedBody

logger = logging.getLogger("gadgetguard.web.middleware")

BODY_REJECTED = "Unauthorized body parameter detected!"
QUERY_REJECTED = "Unauthorized query parameter detected!"

_BAD_ESCAPE_RE = re.compile(r"%(?![0-9a-fA-F]{2})")
_FORM_CONTENT_TYPE = b"application/x-www-form-urlencoded"
_JSON_CONTENT_TYPE = b"application/json"


def decode_query_string(text: str) -> str:
    """Strictly URL-decode a query string or form body.

    ``+`` decodes to a space. Unlike ``urllib.parse.unquote`` a stray ``%``
    or invalid UTF-8 is an error rather than being passed through.

    Raises:
        QueryDecodingError: on invalid percent-encoding or UTF-8.
    """
    if _BAD_ESCAPE_RE.search(text):
        raise QueryDecodingError("Invalid percent-encoding")
    try:
        return unquote_to_bytes(text.replace("+", " ")).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise QueryDecodingError("Invalid UTF-8 after percent-decoding") from exc


class URLFilterMiddleware:
    """Rejects requests carrying non-whitelisted URLs in their parameters."""

    BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

    def __init__(
        self,
        app: ASGIApp,
        guard: WhitelistGuard,
        max_body_size: int = DEFAULT_MAX_BODY_SIZE,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        self.app = app
        self.guard = guard
        self.max_body_size = max_body_size
        self.exempt_paths = frozenset(exempt_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET").upper()
        client = scope.get("client")
        client_ip = client[0] if client else ""

        query_string = scope.get("query_string", b"").decode("latin-1")
        if query_string:
            try:
                decoded = decode_query_string(query_string)
            except QueryDecodingError as exc:
                logger.warning("Rejected %s %s from %s: %s in query string", method, scope.get("path"), client_ip, exc)
                await _reject(400, "Malformed query string", scope, receive, send)
                return
            if self._is_violation(decoded, method, client_ip):
                await _reject(403, QUERY_REJECTED, scope, receive, send)
                return

        if method in self.BODY_METHODS:
            try:
                body = await BufferedBody.read(receive, self.max_body_size)
            except BodyTooLarge as exc:
                logger.warning("Rejected %s %s from %s: %s", method, scope.get("path"), client_ip, exc)
                await _reject(413, "Request body too large", scope, receive, send)
                return
            except ClientDisconnect:
                logger.debug("Client %s disconnected while sending the body", client_ip)
                return

            text = body.text()
            content_type = _content_type(scope)
            if content_type == _FORM_CONTENT_TYPE:
                try:
                    text = decode_query_string(text)
                except QueryDecodingError as exc:
                    logger.warning("Rejected %s %s from %s: %s in form body", method, scope.get("path"), client_ip, exc)
                    await _reject(400, "Malformed request body", scope, receive, send)
                    return
            elif not content_type or _is_json(content_type):
                text = _decode_json_text(text)
            if self._is_violation(text, method, client_ip):
                await _reject(403, BODY_REJECTED, scope, receive, send)
                return
            receive = body.replay(receive)

        await self.app(scope, receive, send)

    def _is_violation(self, text: str, method: str, client_ip: str) -> bool:
        try:
            return self.guard.contains_disallowed_url(text, method=method, client_ip=client_ip)
        except MalformedCandidateURL as exc:
            logger.warning("Malformed URL in request parameters from %s: %s", client_ip, exc.reason)
            return True


def _content_type(scope: Scope) -> bytes:
    for key, value in scope.get("headers", []):
        if key.lower() == b"content-type":
            return value.split(b";", 1)[0].strip().lower()
    return b""


def _is_json(content_type: bytes) -> bool:
    return content_type == _JSON_CONTENT_TYPE or content_type.endswith(b"+json")


def _decode_json_text(text: str) -> str:
    """Re-serialise a JSON body with its string escapes resolved.

    A parser hands the application ``\\/`` and ``\\uXXXX`` escapes already
    decoded, so the scan has to see them decoded too. A body that is not
    valid JSON is returned unchanged.
    """
    try:
        return json.dumps(json.loads(text), ensure_ascii=False)
    except (ValueError, RecursionError):
        return text


async def _reject(status_code: int, detail: str, scope: Scope, receive: Receive, send: Send) -> None:
    response = JSONResponse(status_code=status_code, content={"detail": detail})
    await response(scope, receive, send)
