"""Shared fixtures for weixin-gateway tests.

Provides a fake platform API (an aiohttp app recording every call), a
valid EncodingAESKey, and helpers for signing webhook callbacks.
"""

from __future__ import annotations

import base64
import json
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# ---------------------------------------------------------------------------
# Import path setup: the package lives under gateway/
# ---------------------------------------------------------------------------

_GATEWAY_DIR = str(Path(__file__).resolve().parent.parent / "gateway")
if _GATEWAY_DIR not in sys.path:
    sys.path.insert(0, _GATEWAY_DIR)

from weixin_gateway.client import Weixin  # noqa: E402
from weixin_gateway.crypto import signature  # noqa: E402

TOKEN = "test-token"
APP_ID = "wx0123456789abcdef"
APP_SECRET = "s3cret"
AES_KEY_RAW = bytes(range(32))
# 43-char EncodingAESKey: base64 without the trailing "="
AES_KEY = base64.b64encode(AES_KEY_RAW).decode("ascii").rstrip("=")


def signed_query(
    token: str = TOKEN, timestamp: str = "1700000000", nonce: str = "nonce1", **extra: str
) -> dict[str, str]:
    """Query parameters for a correctly signed callback."""
    return {
        "timestamp": timestamp,
        "nonce": nonce,
        "signature": signature(token, timestamp, nonce),
        **extra,
    }


# ---------------------------------------------------------------------------
# FakePlatform
# ---------------------------------------------------------------------------


class FakePlatform:
    """Scripted stand-in for the Weixin REST API.

    ``replies[path]`` is a list of responses served in order (the last one
    repeats).  A response is a dict (JSON body) or a zero-argument callable
    returning a fresh ``web.Response``.
    Every request is recorded in ``calls`` as ``(method, path, query, body)``.
    """

    def __init__(self) -> None:
        self.replies: dict[str, list[Any]] = {
            "/cgi-bin/token": [{"access_token": "AT-1", "expires_in": 7200}],
        }
        self.calls: list[tuple[str, str, dict[str, str], bytes]] = []

    def reply(self, path: str, *responses: Any) -> None:
        self.replies[path] = list(responses)

    def calls_to(self, path: str) -> list[tuple[str, str, dict[str, str], bytes]]:
        return [c for c in self.calls if c[1] == path]

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.read()
        self.calls.append((request.method, request.path, dict(request.query), body))
        queue = self.replies.get(request.path)
        if not queue:
            return web.json_response({"errcode": 0, "errmsg": "ok"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            return response()
        return web.Response(
            text=json.dumps(response, ensure_ascii=False), content_type="application/json"
        )

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        return app


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@asynccontextmanager
async def running_client(platform: FakePlatform, **kwargs: Any) -> AsyncIterator[Weixin]:
    """Start a credentialed :class:`Weixin` whose hosts point at *platform*."""
    async with TestServer(platform.make_app()) as server:
        base = f"http://{server.host}:{server.port}"
        kwargs.setdefault("app_id", APP_ID)
        kwargs.setdefault("app_secret", APP_SECRET)
        client = Weixin(
            TOKEN,
            kwargs.pop("app_id"),
            kwargs.pop("app_secret"),
            api_host=base,
            file_host=base,
            mp_host=base,
            open_host=base,
            **kwargs,
        )
        async with client:
            yield client
