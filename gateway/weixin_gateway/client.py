"""Weixin official-account client: webhook handling plus the REST surface."""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from urllib.parse import quote

import aiohttp
from aiohttp import web

from . import reply
from .broadcaster import TokenBroadcaster
from .cachestore import CacheStore
from .credentials import DEFAULT_API_HOST, fetch_access_token, fetch_jsapi_ticket
from .crypto import MessageCrypto, check_signature, decode_aes_key
from .errors import (
    CredentialError,
    DecodeError,
    TooManyAttemptsError,
    TransportError,
    VerificationError,
    WeixinError,
)
from .executor import MAX_ATTEMPTS, RequestExecutor, Sink, parse_envelope
from .message import Request, parse_request
from .models import (
    AccessToken,
    Article,
    Materials,
    Menu,
    Music,
    QRScene,
    TemplateItem,
    TemplateMessage,
    UserAccessToken,
    UserInfo,
)
from .router import Handler, Router
from .writer import ResponseWriter

logger = logging.getLogger(__name__)

DEFAULT_FILE_HOST = "https://file.api.weixin.qq.com"
DEFAULT_MP_HOST = "https://mp.weixin.qq.com"
DEFAULT_OPEN_HOST = "https://open.weixin.qq.com"
USER_AGENT = "weixin-gateway/0.1.0"

# Media types
MEDIA_TYPE_IMAGE = "image"
MEDIA_TYPE_VOICE = "voice"
MEDIA_TYPE_VIDEO = "video"
MEDIA_TYPE_THUMB = "thumb"

# Menu button types
MENU_BUTTON_CLICK = "click"
MENU_BUTTON_VIEW = "view"
MENU_BUTTON_SCANCODE_PUSH = "scancode_push"
MENU_BUTTON_SCANCODE_WAITMSG = "scancode_waitmsg"
MENU_BUTTON_PIC_SYSPHOTO = "pic_sysphoto"
MENU_BUTTON_PIC_PHOTO_OR_ALBUM = "pic_photo_or_album"
MENU_BUTTON_PIC_WEIXIN = "pic_weixin"
MENU_BUTTON_LOCATION_SELECT = "location_select"
MENU_BUTTON_MEDIA_ID = "media_id"
MENU_BUTTON_VIEW_LIMITED = "view_limited"
MENU_BUTTON_MINIPROGRAM = "miniprogram"

# Template send status (TEMPLATESENDJOBFINISH event)
TEMPLATE_SENT_SUCCESS = "success"
TEMPLATE_SENT_USER_BLOCK = "failed:user block"
TEMPLATE_SENT_SYSTEM_FAILED = "failed:system failed"

# OAuth redirect scopes
REDIRECT_SCOPE_BASE = "snsapi_base"
REDIRECT_SCOPE_USERINFO = "snsapi_userinfo"


class Weixin:
    """Shared client for one official account.

    *token* is the webhook shared secret.  Without *app_id* and *app_secret*
    only webhook verification and passive replies work; every authenticated
    REST call raises :class:`WeixinError`.

    A *store* passed in stays open after :meth:`stop` unless *close_store*
    is set.
    """

    def __init__(
        self,
        token: str,
        app_id: str = "",
        app_secret: str = "",
        *,
        user_data: Any = None,
        store: CacheStore | None = None,
        close_store: bool = False,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
        invalidate_on_expired: bool = False,
        api_host: str = DEFAULT_API_HOST,
        file_host: str = DEFAULT_FILE_HOST,
        mp_host: str = DEFAULT_MP_HOST,
        open_host: str = DEFAULT_OPEN_HOST,
    ) -> None:
        self._token = token
        self._app_id = app_id
        self._app_secret = app_secret
        self.user_data = user_data
        self._store = store
        self._close_store = close_store
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._invalidate_on_expired = invalidate_on_expired
        self._api_host = api_host.rstrip("/")
        self._file_host = file_host.rstrip("/")
        self._mp_host = mp_host.rstrip("/")
        self._open_host = open_host.rstrip("/")

        self.router = Router()
        self._crypto: MessageCrypto | None = None
        self._tokens: TokenBroadcaster | None = None
        self._tickets: TokenBroadcaster | None = None
        self._executor: RequestExecutor | None = None

    # ---- configuration ----

    @property
    def app_id(self) -> str:
        return self._app_id

    @property
    def app_secret(self) -> str:
        return self._app_secret

    @property
    def has_credentials(self) -> bool:
        return bool(self._app_id and self._app_secret)

    def set_encoding_aes_key(self, key: str) -> None:
        """Enable encrypted mode with a base64 EncodingAESKey (43 chars)."""
        self._crypto = MessageCrypto(self._token, decode_aes_key(key))

    def handle(self, pattern: str, handler: Handler) -> None:
        """Register *handler* for events whose routing key matches *pattern*."""
        self.router.handle(pattern, handler)

    # ---- lifecycle ----

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
            self._owns_session = True

        if not self.has_credentials:
            logger.info("No app id/secret configured, REST calls disabled")
            return
        if self._tokens is not None:
            return

        session = self._session

        async def refresh_token() -> AccessToken:
            return await fetch_access_token(
                session,
                self._app_id,
                self._app_secret,
                api_host=self._api_host,
                timeout=self._timeout,
            )

        self._tokens = TokenBroadcaster(
            "access_token",
            refresh_token,
            store=self._store,
            store_key=f"weixin:access_token:{self._app_id}",
        )
        self._executor = RequestExecutor(
            session,
            self._tokens,
            invalidate_on_expired=self._invalidate_on_expired,
            timeout=self._timeout,
        )
        executor = self._executor

        async def refresh_ticket() -> AccessToken:
            return await fetch_jsapi_ticket(executor, api_host=self._api_host)

        self._tickets = TokenBroadcaster(
            "jsapi_ticket",
            refresh_ticket,
            store=self._store,
            store_key=f"weixin:jsapi_ticket:{self._app_id}",
        )
        await self._tokens.start()
        await self._tickets.start()
        logger.info("Weixin client started for app %s", self._app_id)

    async def stop(self) -> None:
        if self._tickets is not None:
            await self._tickets.stop()
        if self._tokens is not None:
            await self._tokens.stop()
        self._tickets = None
        self._tokens = None
        self._executor = None
        if self._store is not None and self._close_store:
            await self._store.close()
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
        logger.info("Weixin client stopped")

    async def __aenter__(self) -> Weixin:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def _require_executor(self) -> RequestExecutor:
        if not self.has_credentials:
            raise WeixinError("app id and secret are required for this call")
        if self._executor is None:
            raise WeixinError("client is not started")
        return self._executor

    def _require_broadcaster(self, broadcaster: TokenBroadcaster | None) -> TokenBroadcaster:
        self._require_executor()
        if broadcaster is None:
            raise WeixinError("client is not started")
        return broadcaster

    def _api(self, path: str) -> str:
        return f"{self._api_host}/cgi-bin/{path}"

    # ---- webhook ----

    def add_routes(self, app: web.Application, path: str = "/") -> None:
        """Mount the webhook (GET verification + POST delivery) on *app*."""
        app.router.add_get(path, self.handle_request)
        app.router.add_post(path, self.handle_request)

    async def handle_request(self, request: web.Request) -> web.Response:
        """aiohttp handler for the platform callback URL."""
        query = request.query
        timestamp = query.get("timestamp", "")
        nonce = query.get("nonce", "")
        if not check_signature(self._token, timestamp, nonce, query.get("signature", "")):
            logger.warning("Rejected callback with bad signature from %s", request.remote)
            return web.Response(status=401)

        if request.method == "GET":
            return web.Response(text=query.get("echostr", ""))

        body = await request.read()
        try:
            message = self.decode_message(
                body, timestamp, nonce, query.get("msg_signature", "")
            )
        except (DecodeError, VerificationError) as exc:
            logger.warning("Rejected callback payload: %s", exc)
            return web.Response(status=400)

        return await self.dispatch(message)

    def decode_message(
        self, body: bytes, timestamp: str, nonce: str, msg_signature: str
    ) -> Request:
        """Decode a callback body, verifying and decrypting it when encrypted."""
        message = parse_request(body)
        if self._crypto is None or not message.encrypt:
            return message
        inner = self._crypto.decrypt(message.encrypt, timestamp, nonce, msg_signature)
        return parse_request(inner, base=message)

    async def dispatch(self, message: Request) -> web.Response:
        """Run the first matching handler and turn its reply into a response."""
        handler = self.router.match(message)
        if handler is None:
            logger.debug("No route for '%s'", self.router.route_key(message))
            return web.Response(status=404)

        writer = ResponseWriter(self, message.from_user_name, message.to_user_name)
        try:
            result = handler(writer, message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Handler for '%s' failed", self.router.route_key(message)
            )
            return web.Response(status=500)

        body = writer.body
        content_type = "application/xml" if body.startswith("<") else "text/plain"
        return web.Response(text=body, content_type=content_type)

    # ---- credentials ----

    async def get_access_token(self) -> AccessToken:
        """Return a fresh access token, or an empty one after the retry bound."""
        tokens = self._require_broadcaster(self._tokens)
        for _ in range(MAX_ATTEMPTS):
            token = await tokens.read()
            if token.is_fresh():
                return token
        return AccessToken()

    async def refresh_access_token(self) -> AccessToken:
        """Force a new access token to be fetched."""
        return await self._require_broadcaster(self._tokens).invalidate()

    async def get_jsapi_ticket(self) -> str:
        tickets = self._require_broadcaster(self._tickets)
        for _ in range(MAX_ATTEMPTS):
            ticket = await tickets.read()
            if ticket.is_fresh():
                return ticket.token
        raise TooManyAttemptsError("jsapi_ticket", MAX_ATTEMPTS)

    async def js_signature(self, url: str, timestamp: int, noncestr: str) -> str:
        """Sign a page URL for the JS-SDK ``wx.config`` call."""
        ticket = await self.get_jsapi_ticket()
        plain = f"jsapi_ticket={ticket}&noncestr={noncestr}&timestamp={timestamp}&url={url}"
        return hashlib.sha1(plain.encode("utf-8")).hexdigest()

    # ---- customer-service messages ----

    async def _post_message(self, payload: dict[str, Any]) -> None:
        await self._require_executor().post_json(self._api("message/custom/send"), payload)

    async def post_text(self, to_user: str, text: str) -> None:
        await self._post_message(reply.text_post(to_user, text))

    async def post_image(self, to_user: str, media_id: str) -> None:
        await self._post_message(reply.image_post(to_user, media_id))

    async def post_voice(self, to_user: str, media_id: str) -> None:
        await self._post_message(reply.voice_post(to_user, media_id))

    async def post_video(
        self, to_user: str, media_id: str, title: str, description: str
    ) -> None:
        await self._post_message(reply.video_post(to_user, media_id, title, description))

    async def post_music(self, to_user: str, music: Music) -> None:
        await self._post_message(reply.music_post(to_user, music))

    async def post_news(self, to_user: str, articles: Sequence[Article]) -> None:
        await self._post_message(reply.news_post(to_user, articles))

    # ---- template messages ----

    async def post_template_message(
        self, to_user: str, template_id: str, url: str, data: dict[str, TemplateItem]
    ) -> int:
        msg = TemplateMessage(to_user=to_user, template_id=template_id, url=url, data=data)
        return await self.post_template_message_mini_program(msg)

    async def post_template_message_mini_program(self, msg: TemplateMessage) -> int:
        """Send a template message; returns the platform message id."""
        body = await self._require_executor().post_json(
            self._api("message/template/send"), msg.to_dict()
        )
        _, _, data = parse_envelope(body)
        return int(data.get("msgid", 0) or 0)

    async def set_template_industry(self, industry_id1: str, industry_id2: str) -> None:
        payload = {k: v for k, v in (("industry_id1", industry_id1), ("industry_id2", industry_id2)) if v}
        await self._require_executor().post_json(self._api("template/api_set_industry"), payload)

    async def add_template(self, short_id: str) -> str:
        """Add a template from the library by its short id; returns the template id."""
        body = await self._require_executor().post_json(
            self._api("template/api_add_template"), {"template_id_short": short_id}
        )
        _, _, data = parse_envelope(body)
        return str(data.get("template_id", ""))

    # ---- media ----

    async def upload_media(self, media_type: str, filename: str, content: bytes) -> str:
        """Upload temporary media; returns its ``media_id``."""
        body = await self._require_executor().upload(
            f"{self._file_host}/cgi-bin/media/upload",
            "filename",
            filename,
            content,
            {"type": media_type},
        )
        _, _, data = parse_envelope(body)
        media_id = data.get("media_id")
        if not media_id:
            raise DecodeError("upload reply carries no media_id")
        return str(media_id)

    async def upload_media_from_file(self, media_type: str, path: str | Path) -> str:
        path = Path(path)
        return await self.upload_media(media_type, path.name, path.read_bytes())

    async def download_media(self, media_id: str, sink: Sink) -> None:
        await self._require_executor().download(
            f"{self._file_host}/cgi-bin/media/get", sink, {"media_id": media_id}
        )

    async def download_media_to_file(self, media_id: str, path: str | Path) -> None:
        with open(path, "wb") as f:
            await self.download_media(media_id, f)

    async def batch_get_material(self, material_type: str, offset: int, count: int) -> Materials:
        body = await self._require_executor().post_json(
            self._api("material/batchget_material"),
            {"type": material_type, "offset": offset, "count": count},
        )
        _, _, data = parse_envelope(body)
        return Materials.from_dict(data)

    # ---- misc ----

    async def get_ip_list(self) -> list[str]:
        """Return the platform's callback IP addresses."""
        body = await self._require_executor().get(self._api("getcallbackip"))
        _, _, data = parse_envelope(body)
        return list(data.get("ip_list", []))

    async def short_url(self, long_url: str) -> str:
        body = await self._require_executor().post_json(
            self._api("shorturl"), {"action": "long2short", "long_url": long_url}
        )
        _, _, data = parse_envelope(body)
        return str(data.get("short_url", ""))

    # ---- QR codes ----

    async def _create_qr(self, payload: dict[str, Any]) -> QRScene:
        body = await self._require_executor().post_json(self._api("qrcode/create"), payload)
        _, _, data = parse_envelope(body)
        return QRScene.from_dict(data)

    async def create_qr_scene(self, scene_id: int, expires: int) -> QRScene:
        """Temporary QR code with an integer scene id."""
        return await self._create_qr({
            "expire_seconds": expires,
            "action_name": "QR_SCENE",
            "action_info": {"scene": {"scene_id": scene_id}},
        })

    async def create_qr_scene_by_string(self, scene: str, expires: int) -> QRScene:
        return await self._create_qr({
            "expire_seconds": expires,
            "action_name": "QR_STR_SCENE",
            "action_info": {"scene": {"scene_str": scene}},
        })

    async def create_qr_limit_scene(self, scene_id: int) -> QRScene:
        """Permanent QR code with an integer scene id."""
        return await self._create_qr({
            "action_name": "QR_LIMIT_SCENE",
            "action_info": {"scene": {"scene_id": scene_id}},
        })

    async def create_qr_limit_scene_by_string(self, scene: str) -> QRScene:
        return await self._create_qr({
            "action_name": "QR_LIMIT_STR_SCENE",
            "action_info": {"scene": {"scene_str": scene}},
        })

    def qr_url(self, qr: QRScene) -> str:
        return qr.to_url(f"{self._mp_host}/cgi-bin/showqrcode")

    # ---- menus ----

    async def create_menu(self, menu: Menu) -> None:
        await self._require_executor().post_json(self._api("menu/create"), menu.to_dict())

    async def get_menu(self) -> Menu | None:
        body = await self._require_executor().get(self._api("menu/get"))
        _, _, data = parse_envelope(body)
        menu = data.get("menu")
        return Menu.from_dict(menu) if menu else None

    async def delete_menu(self) -> None:
        await self._require_executor().get(self._api("menu/delete"))

    # ---- users / OAuth ----

    def create_redirect_url(self, url: str, scope: str, state: str) -> str:
        """Build the OAuth authorize URL that sends the user back to *url*."""
        return (
            f"{self._open_host}/connect/oauth2/authorize"
            f"?appid={self._app_id}&redirect_uri={quote(url, safe='')}"
            f"&response_type=code&scope={scope}&state={state}#wechat_redirect"
        )

    async def get_user_access_token(self, code: str) -> UserAccessToken:
        """Exchange an OAuth *code* for a user access token and openid.

        Authenticated with the app id/secret rather than the access token.
        """
        if not self.has_credentials:
            raise WeixinError("app id and secret are required for this call")
        if self._session is None:
            raise WeixinError("client is not started")
        params = {
            "appid": self._app_id,
            "secret": self._app_secret,
            "code": code,
            "grant_type": "authorization_code",
        }
        url = f"{self._api_host}/sns/oauth2/access_token"
        try:
            async with self._session.get(
                url, params=params, timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as resp:
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        code_, message, data = parse_envelope(body)
        if code_:
            raise CredentialError(f"user access token rejected [{code_}]: {message}")
        return UserAccessToken.from_dict(data)

    async def get_user_info(self, openid: str) -> UserInfo:
        body = await self._require_executor().get(
            self._api("user/info"), {"openid": openid, "lang": "zh_CN"}
        )
        _, _, data = parse_envelope(body)
        return UserInfo.from_dict(data)


def create_app(client: Weixin, path: str = "/") -> web.Application:
    """Build an aiohttp application serving *client*'s webhook at *path*."""
    app = web.Application()
    client.add_routes(app, path)

    async def _on_startup(_: web.Application) -> None:
        await client.start()

    async def _on_cleanup(_: web.Application) -> None:
        await client.stop()

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app

