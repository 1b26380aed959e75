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
"""Re-readable ASGI request body.

An ASGI body can only be received once. ``BufferedBody`` reads it into an
owned buffer, after which any number of independent replay ``receive``
callables can hand the same bytes to the inspection code and to the
downstream application.
"""

from __future__ import annotations

from starlette.requests import ClientDisconnect
from starlette.types import Message, Receive


class BodyTooLarge(Exception):
    """The request body exceeded the configured buffer limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Request body of at least {size} bytes exceeds limit of {limit} bytes")


class BufferedBody:
    """A fully received request body."""

    def __init__(self, data: bytes = b"") -> None:
        self._data = data

    @classmethod
    async def read(cls, receive: Receive, max_size: int | None = None) -> BufferedBody:
        """Drain ``receive`` into a buffer.

        Raises:
            BodyTooLarge: more than ``max_size`` bytes were sent.
            ClientDisconnect: the client went away mid-body.
        """
        chunks: list[bytes] = []
        size = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnect()
            if message["type"] != "http.request":
                continue
            chunk = message.get("body", b"")
            size += len(chunk)
            if max_size is not None and size > max_size:
                raise BodyTooLarge(size, max_size)
            chunks.append(chunk)
            if not message.get("more_body", False):
                break
        return cls(b"".join(chunks))

    @property
    def data(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._data)

    def text(self, encoding: str = "utf-8") -> str:
        return self._data.decode(encoding, errors="replace")

    def replay(self, receive: Receive) -> Receive:
        """Return a ``receive`` that yields the buffered body once.

        Later calls fall through to the original ``receive`` so the
        application still observes ``http.disconnect``.
        """
        sent = False

        async def replay_receive() -> Message:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": self._data, "more_body": False}
            return await receive()

        return replay_receive
