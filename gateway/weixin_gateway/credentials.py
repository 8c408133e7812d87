"""Credential sources: app access token and JS-API ticket.

Both are single fetches without retries; the broadcaster decides when to
call them again.
"""

from __future__ import annotations

import asyncio
import json
import logging

import aiohttp

from .errors import CredentialError, WeixinError
from .executor import RequestExecutor, parse_envelope
from .models import AccessToken

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = "https://api.weixin.qq.com"


async def fetch_access_token(
    session: aiohttp.ClientSession,
    app_id: str,
    app_secret: str,
    *,
    api_host: str = DEFAULT_API_HOST,
    timeout: float = 30.0,
) -> AccessToken:
    """Exchange the app id/secret pair for a fresh access token.

    Raises:
        CredentialError: transport failure, timeout, or a malformed reply.
    """
    url = f"{api_host}/cgi-bin/token"
    params = {"grant_type": "client_credential", "appid": app_id, "secret": app_secret}
    try:
        async with session.get(
            url, params=params, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as resp:
            body = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise CredentialError(f"access token request failed: {exc}") from exc

    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise CredentialError("access token reply is not JSON") from exc
    if not isinstance(data, dict):
        raise CredentialError("access token reply is not an object")

    if data.get("errcode"):
        raise CredentialError(
            f"access token rejected [{data.get('errcode')}]: {data.get('errmsg', '')}"
        )
    token = data.get("access_token")
    if not token:
        raise CredentialError("access token missing from reply")
    try:
        expires_in = float(data.get("expires_in", 0))
    except (TypeError, ValueError) as exc:
        raise CredentialError(f"invalid expires_in: {data.get('expires_in')!r}") from exc

    logger.debug("Fetched access token for app %s (expires_in=%s)", app_id, expires_in)
    return AccessToken.from_ttl(token, expires_in)


async def fetch_jsapi_ticket(
    executor: RequestExecutor, *, api_host: str = DEFAULT_API_HOST
) -> AccessToken:
    """Fetch a JS-API ticket; needs a valid access token via *executor*."""
    try:
        body = await executor.get(f"{api_host}/cgi-bin/ticket/getticket", {"type": "jsapi"})
    except WeixinError as exc:
        raise CredentialError(f"jsapi ticket request failed: {exc}") from exc

    _, _, data = parse_envelope(body)
    ticket = data.get("ticket")
    if not ticket:
        raise CredentialError("jsapi ticket missing from reply")
    return AccessToken.from_ttl(ticket, float(data.get("expires_in", 0) or 0))
