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
"""Whitelist management API routes.

Provides endpoints for:
  - Viewing the compiled rules and guard status
  - Checking a URL or scanning text against the active whitelist
  - Reloading the whitelist from the host-side config file
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel

from .whitelist.audit import AuditLogger
from .whitelist.config import DEFAULT_MAX_BODY_SIZE, load_config
from .whitelist.errors import ConfigurationError, MalformedCandidateURL
from .whitelist.guard import WhitelistGuard
from .whitelist.matcher import extract_host
from .web.middleware import URLFilterMiddleware

logger = logging.getLogger("gadgetguard.api")

router = APIRouter(prefix="/api/whitelist", tags=["whitelist"])

# Endpoints whose payload is the untrusted URL itself
EXEMPT_PATHS = frozenset({"/api/whitelist/check", "/api/whitelist/scan"})

# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class CheckRequest(BaseModel):
    url: str


class CheckResponse(BaseModel):
    url: str
    allowed: bool


class ScanRequest(BaseModel):
    text: str


class ScanResponse(BaseModel):
    disallowed: bool
    offending_host: str = ""


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


def _guard(request: Request) -> WhitelistGuard:
    return request.app.state.guard


@router.get("")
async def get_whitelist(request: Request) -> dict:
    """Get the compiled rules and the hosts accepted in request parameters."""
    whitelist = _guard(request).current
    return {
        "rules": [rule.to_dict() for rule in whitelist],
        "hosts": sorted(whitelist.hosts),
        "allow_all": whitelist.allow_all,
        "empty_policy": whitelist.empty_policy.value,
    }


@router.get("/status")
async def get_status(request: Request) -> dict:
    """Get the current guard status."""
    return _guard(request).get_status()


@router.post("/check", response_model=CheckResponse)
async def check_url(body: CheckRequest, request: Request) -> CheckResponse:
    """Check whether an outbound URL is whitelisted."""
    return CheckResponse(url=body.url, allowed=_guard(request).is_allowed(body.url))


@router.post("/scan", response_model=ScanResponse)
async def scan_text(body: ScanRequest, request: Request) -> ScanResponse:
    """Scan free text for embedded URLs with non-whitelisted hosts."""
    try:
        offending = _guard(request).find_disallowed_url(body.text)
    except MalformedCandidateURL as exc:
        logger.warning("Malformed URL in scanned text: %s", exc.reason)
        return ScanResponse(disallowed=True)
    if offending is None:
        return ScanResponse(disallowed=False)
    try:
        host = extract_host(offending) or ""
    except MalformedCandidateURL:
        host = ""
    return ScanResponse(disallowed=True, offending_host=host)


@router.post("/reload")
async def reload_whitelist(request: Request) -> dict:
    """Reload the whitelist from the config file. The old set stays on failure."""
    guard = _guard(request)
    config_path = getattr(request.app.state, "config_path", None)
    try:
        new_set = guard.reload(load_config(config_path))
    except ConfigurationError as exc:
        logger.error("Whitelist reload failed: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc))
    return {"status": "reloaded", "generation": guard.generation, "rule_count": len(new_set)}


def create_app(
    guard: WhitelistGuard,
    config_path: str | Path | None = None,
    max_body_size: int = DEFAULT_MAX_BODY_SIZE,
) -> FastAPI:
    """Build an app with the management routes behind the URL filter.

    The check and scan endpoints take untrusted URLs as their payload and
    are exempt from the filter.
    """
    app = FastAPI(title="Gadget Guard")
    app.state.guard = guard
    app.state.config_path = config_path
    app.include_router(router)
    app.add_middleware(
        URLFilterMiddleware,
        guard=guard,
        max_body_size=max_body_size,
        exempt_paths=EXEMPT_PATHS,
    )
    return app


def create_app_from_config(config_path: str | Path | None = None) -> FastAPI:
    """Build the app from a whitelist.yaml, with auditing to ``audit_log_path``.

    Usable as an ASGI factory (``uvicorn --factory``).

    Raises:
        ConfigurationError: the configuration cannot be loaded or compiled.
    """
    config = load_config(config_path)
    audit = AuditLogger(config.audit_log_path) if config.audit_log_path else None
    guard = WhitelistGuard.from_config(config, audit_logger=audit)
    return create_app(guard, config_path=config_path, max_body_size=config.max_body_size)
