"""Per-request handler context.

A :class:`ResponseWriter` is created for each routed event.  Replies are
buffered as the webhook response body (one reply per request); posts and
media calls forward to the shared :class:`~weixin_gateway.client.Weixin`
client, addressed to the sender of the inbound event.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from . import reply
from .executor import Sink
from .models import Article, Music, TemplateItem

if TYPE_CHECKING:
    from .client import Weixin


class ResponseWriter:
    def __init__(self, client: Weixin, to_user: str, from_user: str) -> None:
        self._client = client
        # Addressing is swapped relative to the inbound event.
        self.to_user = to_user
        self.from_user = from_user
        self._body: str | None = None

    @property
    def weixin(self) -> Weixin:
        return self._client

    @property
    def user_data(self) -> Any:
        return self._client.user_data

    @property
    def body(self) -> str:
        return self._body or ""

    @property
    def replied(self) -> bool:
        return self._body is not None

    # ---- replies ----

    def _reply(self, body: str) -> None:
        if self._body is not None:
            raise RuntimeError("a reply has already been written for this request")
        self._body = body

    def reply_ok(self) -> None:
        self._reply(reply.REPLY_OK)

    def reply_text(self, text: str) -> None:
        self._reply(reply.text_reply(self.to_user, self.from_user, text))

    def reply_image(self, media_id: str) -> None:
        self._reply(reply.image_reply(self.to_user, self.from_user, media_id))

    def reply_voice(self, media_id: str) -> None:
        self._reply(reply.voice_reply(self.to_user, self.from_user, media_id))

    def reply_video(self, media_id: str, title: str, description: str) -> None:
        self._reply(reply.video_reply(self.to_user, self.from_user, media_id, title, description))

    def reply_music(self, music: Music) -> None:
        self._reply(reply.music_reply(self.to_user, self.from_user, music))

    def reply_news(self, articles: Sequence[Article]) -> None:
        self._reply(reply.news_reply(self.to_user, self.from_user, articles))

    def transfer_customer_service(self, service_account: str = "") -> None:
        self._reply(
            reply.transfer_customer_service_reply(self.to_user, self.from_user, service_account)
        )

    # ---- posts ----

    async def post_text(self, text: str) -> None:
        await self._client.post_text(self.to_user, text)

    async def post_image(self, media_id: str) -> None:
        await self._client.post_image(self.to_user, media_id)

    async def post_voice(self, media_id: str) -> None:
        await self._client.post_voice(self.to_user, media_id)

    async def post_video(self, media_id: str, title: str, description: str) -> None:
        await self._client.post_video(self.to_user, media_id, title, description)

    async def post_music(self, music: Music) -> None:
        await self._client.post_music(self.to_user, music)

    async def post_news(self, articles: Sequence[Article]) -> None:
        await self._client.post_news(self.to_user, articles)

    async def post_template_message(
        self, template_id: str, url: str, data: dict[str, TemplateItem]
    ) -> int:
        return await self._client.post_template_message(self.to_user, template_id, url, data)

    # ---- media ----

    async def upload_media(self, media_type: str, filename: str, content: bytes) -> str:
        return await self._client.upload_media(media_type, filename, content)

    async def upload_media_from_file(self, media_type: str, path: str | Path) -> str:
        return await self._client.upload_media_from_file(media_type, path)

    async def download_media(self, media_id: str, sink: Sink) -> None:
        await self._client.download_media(media_id, sink)

    async def download_media_to_file(self, media_id: str, path: str | Path) -> None:
        await self._client.download_media_to_file(media_id, path)
