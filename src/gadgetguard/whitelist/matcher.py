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
"""Whitelist matching engine.

Turns configured allow-entries (``scheme://host[:port][/segment...]``) into
anchored matchers and answers two kinds of query:

  1. ``is_allowed`` -- is a structured outbound request target covered by
     one of the rules?  Matching is done on the full URI string.
  2. ``contains_disallowed_url`` -- does a block of free text (query string,
     POST body) embed an absolute http(s) URL whose host is not whitelisted?
     Matching is done on the host only.

A ``WhitelistSet`` is immutable once compiled and can be shared between
threads without locking. Reconfiguration builds a new set; see
``gadgetguard.whitelist.guard``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

from .errors import ConfigurationError, MalformedCandidateURL

logger = logging.getLogger("gadgetguard.whitelist.matcher")

# Fixed marker on every denial so downstream alerting can key on it.
SSRF_MARKER = "Potential SSRF/DNS-exfiltration attempt"

# An explicit 4-digit port anywhere in the entry turns it into a literal rule.
_EXPLICIT_PORT_RE = re.compile(r":[0-9]{4}")

# Absolute http(s) URL as it appears in request parameters. One character
# class under a single star: matching is linear in the input length.
URL_CANDIDATE_RE = re.compile(r"https?://[-a-zA-Z0-9+&@#%?=~_|!:,.;]*", re.IGNORECASE)

_SCHEME_RE = re.compile(r"[a-z][a-z0-9+.-]*", re.IGNORECASE)
_HOST_RE = re.compile(r"[a-z0-9_-]+(?:\.[a-z0-9_-]+)*\.?")
_AUTHORITY_PORT_RE = re.compile(r"^(?P<host>[^:]+):(?P<port>[0-9]+)$")

# After a path prefix (or a bare host) the URI must end or continue with a
# new path segment, a query or a fragment.
_BOUNDARY = r"(?:[/?#].*)?"


class EmptyPolicy(str, Enum):
    """What an empty configured whitelist means."""

    PLATFORM_DEFAULT = "platform_default"  # fail-closed, one rule for the platform host
    ALLOW_ALL = "allow_all"  # fail-open
    DENY_ALL = "deny_all"  # fail-closed, nothing allowed


class MalformedPolicy(str, Enum):
    """How the text scanner treats a URL-shaped token that does not parse."""

    DENY = "deny"
    RAISE = "raise"


@dataclass(frozen=True)
class AllowRule:
    """One compiled whitelist entry."""

    source: str
    scheme: str
    host: str
    port: int | None = None
    path_prefix: str | None = None
    synthesized: bool = False
    pattern: re.Pattern = field(default=None, repr=False, compare=False)

    def matches(self, uri: str) -> bool:
        """Anchored match of a canonical URI string against this rule."""
        return self.pattern.fullmatch(uri) is not None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "scheme": self.scheme,
            "host": self.host,
            "port": self.port,
            "path_prefix": self.path_prefix,
            "synthesized": self.synthesized,
            "pattern": self.pattern.pattern,
        }


@dataclass(frozen=True)
class CandidateURL:
    """A structured request target, alive only for the duration of a query."""

    scheme: str
    host: str
    port: int | None = None
    path: str = ""
    query: str = ""
    userinfo: str = ""

    @classmethod
    def from_url(cls, url: str) -> CandidateURL:
        """Parse an absolute URL string.

        Raises:
            MalformedCandidateURL: if the port is not a valid number.
        """
        try:
            parts = urlsplit(url.strip())
            port = parts.port
        except ValueError as exc:
            raise MalformedCandidateURL(url, str(exc)) from exc
        userinfo = parts.netloc.rpartition("@")[0] if "@" in parts.netloc else ""
        return cls(
            scheme=parts.scheme,
            host=parts.hostname or "",
            port=port,
            path=parts.path,
            query=parts.query,
            userinfo=userinfo,
        )

    def to_uri(self) -> str:
        """Render the canonical form the rules are matched against.

        Scheme and host are lower-cased. User-info is kept, so a
        ``trusted@evil`` authority can never satisfy a host rule.
        """
        host = self.host.lower()
        if ":" in host:
            host = f"[{host}]"
        netloc = f"{self.userinfo}@{host}" if self.userinfo else host
        if self.port is not None:
            netloc = f"{netloc}:{self.port}"
        uri = f"{self.scheme.lower()}://{netloc}{self.path}"
        if self.query:
            uri = f"{uri}?{self.query}"
        return uri


@dataclass(frozen=True)
class WhitelistSet:
    """Ordered, immutable collection of compiled rules."""

    rules: tuple[AllowRule, ...] = ()
    hosts: frozenset[str] = frozenset()
    allow_all: bool = False
    empty_policy: EmptyPolicy = EmptyPolicy.PLATFORM_DEFAULT

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self) -> Iterator[AllowRule]:
        return iter(self.rules)

    def matching_rule(self, target: CandidateURL) -> AllowRule | None:
        """Return the first rule matching the target, or None."""
        uri = target.to_uri()
        for rule in self.rules:
            if rule.matches(uri):
                return rule
        return None

    def allows_host(self, host: str) -> bool:
        """Host-only membership test used by the text scanner."""
        if self.allow_all:
            return True
        return _normalize_host(host) in self.hosts


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def split_entries(value: str | Iterable[str] | None) -> list[str]:
    """Split a comma-separated string (or list of them) into trimmed entries."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    entries: list[str] = []
    for item in value:
        if item is None:
            continue
        entries.extend(part for part in re.split(r"\s*,\s*", str(item).strip()) if part)
    return entries


def compile_rule(source: str, synthesized: bool = False) -> AllowRule:
    """Compile a single allow-entry into an anchored rule.

    The first path segment is a whole-segment prefix: a rule for
    ``https://a.com/app`` accepts ``/app``, ``/app/x``, ``/app?q`` and
    ``/app#f`` but not ``/apple``. A plain string-prefix match would
    accept ``/apple`` as well.

    Raises:
        ConfigurationError: if the entry cannot be decomposed into
            scheme, host and optional path.
    """
    entry = source.strip()
    scheme, sep, rest = entry.partition("://")
    if not sep or not rest:
        raise ConfigurationError("Whitelist entry is missing 'scheme://host'", source)
    if not _SCHEME_RE.fullmatch(scheme):
        raise ConfigurationError("Whitelist entry has an invalid scheme", source)
    scheme = scheme.lower()

    authority, path = _split_authority(rest)
    host, port = _split_port(authority)
    if not host or not _HOST_RE.fullmatch(host.lower()):
        raise ConfigurationError("Whitelist entry has an invalid host", source)
    host = host.lower()

    if port is not None or _EXPLICIT_PORT_RE.search(entry):
        # Literal host and port, any trailing path.
        literal = f"{scheme}://{authority.lower()}{path}"
        suffix = ".*" if literal.endswith("/") else _BOUNDARY
        pattern = re.compile(re.escape(literal) + suffix, re.DOTALL)
        return AllowRule(
            source=source,
            scheme=scheme,
            host=host,
            port=port,
            path_prefix=path or None,
            synthesized=synthesized,
            pattern=pattern,
        )

    components = entry.split("/")
    if len(components) < 3 or components[1] != "":
        raise ConfigurationError("Whitelist entry has too few path components", source)
    segment = components[3] if len(components) > 3 else ""
    path_prefix = f"/{segment}" if segment else None

    regex = re.escape(f"{scheme}://{host}") + r"(?::[0-9]{0,4})?"
    if path_prefix:
        regex += re.escape(path_prefix)
    pattern = re.compile(regex + _BOUNDARY, re.DOTALL)
    return AllowRule(
        source=source,
        scheme=scheme,
        host=host,
        path_prefix=path_prefix,
        synthesized=synthesized,
        pattern=pattern,
    )


def compile_whitelist(
    entries: str | Iterable[str] | None,
    *,
    extra_hosts: str | Iterable[str] | None = (),
    empty_policy: EmptyPolicy | str = EmptyPolicy.PLATFORM_DEFAULT,
    platform_hostname: str | None = None,
    default_path: str = "/portal",
) -> WhitelistSet:
    """Compile configured allow-entries into an immutable WhitelistSet.

    Args:
        entries: Ordered allow-entries (list or comma-separated string).
        extra_hosts: Bare host names accepted by the text scanner only.
        empty_policy: What an empty ``entries`` means.
        platform_hostname: The platform's own canonical host name. Always
            accepted by the text scanner; used to synthesize the default
            rule under ``EmptyPolicy.PLATFORM_DEFAULT``.
        default_path: Path of the synthesized default rule.

    Raises:
        ConfigurationError: on the first entry that cannot be compiled, or
            when the platform default is required but no hostname is known.
    """
    empty_policy = EmptyPolicy(empty_policy)
    rules: list[AllowRule] = []
    seen: set[str] = set()
    for entry in split_entries(entries):
        if entry in seen:
            continue
        seen.add(entry)
        rules.append(compile_rule(entry))

    allow_all = False
    platform_hostname = (platform_hostname or "").strip()
    if not rules:
        if empty_policy is EmptyPolicy.PLATFORM_DEFAULT:
            if not platform_hostname:
                raise ConfigurationError(
                    "Whitelist is empty and no platform hostname is configured "
                    "to synthesize the default rule"
                )
            default_url = f"https://{platform_hostname}{_normalize_path(default_path)}"
            rules.append(compile_rule(default_url, synthesized=True))
            logger.info("URL %s compiled as the default whitelisted backend URI", default_url)
        elif empty_policy is EmptyPolicy.ALLOW_ALL:
            allow_all = True
            logger.warning("Whitelist is empty and empty_policy=allow_all -- every destination is permitted")
        else:
            logger.info("Whitelist is empty and empty_policy=deny_all -- every destination is blocked")

    hosts = {_normalize_host(rule.host) for rule in rules}
    for value in split_entries(extra_hosts):
        hosts.add(_host_of(value))
    if platform_hostname:
        hosts.add(_host_of(platform_hostname))
    hosts.discard("")

    return WhitelistSet(
        rules=tuple(rules),
        hosts=frozenset(hosts),
        allow_all=allow_all,
        empty_policy=empty_policy,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def is_allowed(whitelist: WhitelistSet, target: CandidateURL | str) -> bool:
    """Check whether an outbound request target is whitelisted.

    A string target is parsed first; a target that does not parse is denied.
    Denials are logged with the rejected host only, never the query.
    """
    if isinstance(target, str):
        try:
            target = CandidateURL.from_url(target)
        except MalformedCandidateURL as exc:
            logger.warning("%s. Malformed outbound URI rejected: %s", SSRF_MARKER, exc.reason)
            return False

    if whitelist.allow_all:
        return True
    if whitelist.matching_rule(target) is not None:
        return True

    logger.warning(
        "%s. Unauthorized host %s blocked for outbound request.",
        SSRF_MARKER,
        target.host or "<none>",
    )
    return False


def extract_host(candidate: str) -> str | None:
    """Strictly extract the lower-cased host of a URL-shaped token.

    Returns None when the token has no authority at all (``https://``).

    Raises:
        MalformedCandidateURL: invalid port, empty host or characters that
            are not legal in a host name.
    """
    try:
        parts = urlsplit(candidate)
        if not parts.netloc:
            return None
        parts.port
    except ValueError as exc:
        raise MalformedCandidateURL(candidate, "invalid port") from exc
    host = parts.hostname
    if not host:
        raise MalformedCandidateURL(candidate, "empty host")
    if not _HOST_RE.fullmatch(host):
        raise MalformedCandidateURL(candidate, "invalid host")
    return host


def find_disallowed_url(
    whitelist: WhitelistSet,
    text: str,
    *,
    on_malformed: MalformedPolicy | str = MalformedPolicy.DENY,
) -> str | None:
    """Return the first embedded URL whose host is not whitelisted, or None."""
    if not text:
        return None
    on_malformed = MalformedPolicy(on_malformed)

    for match in URL_CANDIDATE_RE.finditer(text):
        candidate = match.group()
        try:
            host = extract_host(candidate)
        except MalformedCandidateURL as exc:
            if on_malformed is MalformedPolicy.RAISE:
                raise
            logger.warning("%s. Malformed URL detected in request parameters (%s).", SSRF_MARKER, exc.reason)
            return candidate
        if host is None:
            continue
        if not whitelist.allows_host(host):
            logger.warning(
                "%s. Unauthorized host name %s detected in request parameters.",
                SSRF_MARKER,
                host,
            )
            return candidate
    return None


def contains_disallowed_url(
    whitelist: WhitelistSet,
    text: str,
    *,
    on_malformed: MalformedPolicy | str = MalformedPolicy.DENY,
) -> bool:
    """True if ``text`` embeds at least one URL with a non-whitelisted host."""
    return find_disallowed_url(whitelist, text, on_malformed=on_malformed) is not None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _split_authority(rest: str) -> tuple[str, str]:
    """Split ``host[:port]/path`` into authority and the remainder."""
    for index, char in enumerate(rest):
        if char in "/?#":
            return rest[:index], rest[index:]
    return rest, ""


def _split_port(authority: str) -> tuple[str, int | None]:
    match = _AUTHORITY_PORT_RE.match(authority)
    if match:
        return match.group("host"), int(match.group("port"))
    return authority, None


def _normalize_path(path: str | None) -> str:
    path = (path or "").strip().strip("/")
    return f"/{path}" if path else ""


def _normalize_host(host: str) -> str:
    return host.strip().lower().rstrip(".")


def _host_of(value: str) -> str:
    """Host part of a bare host name, ``host:port`` or a full URL."""
    value = value.strip()
    if "://" in value:
        return _normalize_host(urlsplit(value).hostname or "")
    return _normalize_host(_split_port(value)[0])
