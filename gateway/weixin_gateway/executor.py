"""Retrying executor for token-authenticated platform calls.

Every call follows the same policy, for up to ``max_attempts`` rounds:

1. read the access token from the broadcaster; a stale token skips the round
2. issue the request with ``access_token`` appended to the query string
3. decode the ``{errcode, errmsg}`` envelope:
   ``0`` returns the body, ``42001`` (token expired) goes to the next round,
   anything else raises :class:`APIError` at once

Transport failures are raised immediately and are never retried here.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import aiohttp

from .broadcaster import TokenBroadcaster
from .errors import APIError, DecodeError, TooManyAttemptsError, TransportError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
ACCESS_TOKEN_EXPIRED = 42001
ERROR_CONTENT_TYPE = "text/plain"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
DOWNLOAD_CHUNK = 64 * 1024


class Sink(Protocol):
    def write(self, data: bytes, /) -> Any: ...


def marshal(value: Any) -> bytes:
    """Encode *value* as the platform expects JSON request bodies.

    ``<``, ``>`` and ``&`` must reach the platform literally; ``json`` never
    escapes them, and non-ASCII text is sent as UTF-8 rather than ``\\u`` escapes.
    """
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def parse_envelope(body: bytes) -> tuple[int, str, dict[str, Any]]:
    """Decode a JSON reply into ``(errcode, errmsg, payload)``."""
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise DecodeError(f"invalid JSON reply: {body[:200]!r}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"unexpected JSON reply: {body[:200]!r}")
    try:
        code = int(data.get("errcode", 0) or 0)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid errcode: {data.get('errcode')!r}") from exc
    return code, str(data.get("errmsg", "")), data


class RequestExecutor:
    """Issues authenticated requests with the bounded retry policy."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        tokens: TokenBroadcaster,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        invalidate_on_expired: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self._session = session
        self._tokens = tokens
        self._max_attempts = max_attempts
        self._invalidate_on_expired = invalidate_on_expired
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    # ---- public verbs ----

    async def get(self, url: str, params: dict[str, Any] | None = None) -> bytes:
        async def send(query: dict[str, Any]) -> bytes:
            return await self._request("GET", url, query)

        return await self._execute(url, params, send)

    async def post_json(
        self, url: str, payload: Any, params: dict[str, Any] | None = None
    ) -> bytes:
        body = payload if isinstance(payload, bytes) else marshal(payload)

        async def send(query: dict[str, Any]) -> bytes:
            return await self._request(
                "POST", url, query, data=body, headers={"Content-Type": JSON_CONTENT_TYPE}
            )

        return await self._execute(url, params, send)

    async def upload(
        self,
        url: str,
        field: str,
        filename: str,
        content: bytes,
        params: dict[str, Any] | None = None,
    ) -> bytes:
        async def send(query: dict[str, Any]) -> bytes:
            # FormData is single-use, so build it per attempt.
            form = aiohttp.FormData()
            form.add_field(
                field, content, filename=filename, content_type="application/octet-stream"
            )
            return await self._request("POST", url, query, data=form)

        return await self._execute(url, params, send)

    async def download(
        self, url: str, sink: Sink, params: dict[str, Any] | None = None
    ) -> None:
        """Stream a media body into *sink*.

        Only a ``text/plain`` response is an error envelope; any other
        content type is the media itself.
        """

        async def send(query: dict[str, Any]) -> bytes:
            try:
                async with self._session.get(url, params=query, timeout=self._timeout) as resp:
                    if resp.content_type != ERROR_CONTENT_TYPE:
                        async for chunk in resp.content.iter_chunked(DOWNLOAD_CHUNK):
                            sink.write(chunk)
                        return b"{}"
                    return await resp.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransportError(f"GET {url} failed: {exc}") from exc

        await self._execute(url, params, send)

    # ---- core loop ----

    async def _request(
        self, method: str, url: str, query: dict[str, Any], **kwargs: Any
    ) -> bytes:
        try:
            async with self._session.request(
                method, url, params=query, timeout=self._timeout, **kwargs
            ) as resp:
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    async def _execute(
        self,
        url: str,
        params: dict[str, Any] | None,
        send: Callable[[dict[str, Any]], Awaitable[bytes]],
    ) -> bytes:
        for attempt in range(1, self._max_attempts + 1):
            token = await self._tokens.read()
            if not token.is_fresh():
                logger.debug("Attempt %d for %s skipped: access token not fresh", attempt, url)
                continue

            body = await send({**(params or {}), "access_token": token.token})
            code, message, _ = parse_envelope(body)
            if code == 0:
                return body
            if code == ACCESS_TOKEN_EXPIRED:
                logger.info("Access token expired on %s (attempt %d)", url, attempt)
                if self._invalidate_on_expired:
                    await self._tokens.invalidate()
                continue
            raise APIError(code, message, url)

        raise TooManyAttemptsError(url, self._max_attempts)
