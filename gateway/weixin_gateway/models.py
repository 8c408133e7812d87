"""Data models shared across the gateway."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

SHOW_QRCODE_URL = "https://mp.weixin.qq.com/cgi-bin/showqrcode"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values, the way the platform expects optional fields."""
    return {k: v for k, v in data.items() if v not in ("", 0, None, [], {})}


# ---- credentials ----


@dataclass(frozen=True)
class AccessToken:
    """A bearer credential (access token or JS-API ticket).

    Instances are immutable; a refresh replaces the whole value.
    ``expires`` is a unix timestamp in seconds.
    """

    token: str = ""
    expires: float = 0.0

    def is_fresh(self, now: float | None = None) -> bool:
        if now is None:
            now = time.time()
        return now < self.expires

    @classmethod
    def expired(cls) -> AccessToken:
        return cls("", time.time())

    @classmethod
    def from_ttl(cls, token: str, ttl: float) -> AccessToken:
        return cls(token, time.time() + ttl)

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "expires": self.expires}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessToken:
        return cls(str(data.get("token", "")), float(data.get("expires", 0.0)))


# ---- reply / post payloads ----


@dataclass
class Music:
    title: str = ""
    description: str = ""
    music_url: str = ""
    hq_music_url: str = ""
    thumb_media_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "musicurl": self.music_url,
            "hqmusicurl": self.hq_music_url,
            "thumb_media_id": self.thumb_media_id,
        }


@dataclass
class Article:
    title: str = ""
    description: str = ""
    pic_url: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "picurl": self.pic_url,
            "url": self.url,
        }


# ---- QR codes ----


@dataclass
class QRScene:
    ticket: str
    expire_seconds: int = 0
    url: str = ""

    def to_url(self, base: str = SHOW_QRCODE_URL) -> str:
        """Return the image URL for this QR code ticket."""
        return f"{base}?ticket={quote(self.ticket, safe='')}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QRScene:
        return cls(
            ticket=data.get("ticket", ""),
            expire_seconds=int(data.get("expire_seconds", 0) or 0),
            url=data.get("url", ""),
        )


# ---- menus ----


@dataclass
class MenuButton:
    name: str
    type: str = ""
    key: str = ""
    url: str = ""
    media_id: str = ""
    app_id: str = ""
    page_path: str = ""
    sub_buttons: list[MenuButton] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = _compact({
            "type": self.type,
            "key": self.key,
            "url": self.url,
            "media_id": self.media_id,
            "appid": self.app_id,
            "pagepath": self.page_path,
        })
        if self.sub_buttons:
            data["sub_button"] = [b.to_dict() for b in self.sub_buttons]
        return {"name": self.name, **data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MenuButton:
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            key=data.get("key", ""),
            url=data.get("url", ""),
            media_id=data.get("media_id", ""),
            app_id=data.get("appid", ""),
            page_path=data.get("pagepath", ""),
            sub_buttons=[cls.from_dict(b) for b in data.get("sub_button", [])],
        )


@dataclass
class Menu:
    buttons: list[MenuButton] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if not self.buttons:
            return {}
        return {"button": [b.to_dict() for b in self.buttons]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Menu:
        return cls(buttons=[MenuButton.from_dict(b) for b in data.get("button", [])])


# ---- users ----


@dataclass
class UserAccessToken:
    """OAuth access token issued for a single user (not the app credential)."""

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    openid: str = ""
    scope: str = ""
    unionid: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserAccessToken:
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expires_in=int(data.get("expires_in", 0) or 0),
            openid=data.get("openid", ""),
            scope=data.get("scope", ""),
            unionid=data.get("unionid", ""),
        )


@dataclass
class UserInfo:
    openid: str = ""
    subscribe: int = 0
    language: str = ""
    unionid: str = ""
    nickname: str = ""
    sex: int = 0
    city: str = ""
    country: str = ""
    province: str = ""
    head_image_url: str = ""
    subscribe_time: int = 0
    remark: str = ""
    group_id: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserInfo:
        return cls(
            openid=data.get("openid", ""),
            subscribe=int(data.get("subscribe", 0) or 0),
            language=data.get("language", ""),
            unionid=data.get("unionid", ""),
            nickname=data.get("nickname", ""),
            sex=int(data.get("sex", 0) or 0),
            city=data.get("city", ""),
            country=data.get("country", ""),
            province=data.get("province", ""),
            head_image_url=data.get("headimgurl", ""),
            subscribe_time=int(data.get("subscribe_time", 0) or 0),
            remark=data.get("remark", ""),
            group_id=int(data.get("groupid", 0) or 0),
        )


# ---- materials ----


@dataclass
class NewsItem:
    title: str = ""
    thumb_media_id: str = ""
    show_cover_pic: int = 0
    author: str = ""
    digest: str = ""
    content: str = ""
    url: str = ""
    content_source_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NewsItem:
        return cls(
            title=data.get("title", ""),
            thumb_media_id=data.get("thumb_media_id", ""),
            show_cover_pic=int(data.get("show_cover_pic", 0) or 0),
            author=data.get("author", ""),
            digest=data.get("digest", ""),
            content=data.get("content", ""),
            url=data.get("url", ""),
            content_source_url=data.get("content_source_url", ""),
        )


@dataclass
class Material:
    media_id: str = ""
    name: str = ""
    update_time: int = 0
    create_time: int = 0
    url: str = ""
    news_items: list[NewsItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Material:
        content = data.get("content") or {}
        return cls(
            media_id=data.get("media_id", ""),
            name=data.get("name", ""),
            update_time=int(data.get("update_time", 0) or 0),
            create_time=int(data.get("create_time", 0) or 0),
            url=data.get("url", ""),
            news_items=[NewsItem.from_dict(n) for n in content.get("news_item", [])],
        )


@dataclass
class Materials:
    total_count: int = 0
    item_count: int = 0
    items: list[Material] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Materials:
        return cls(
            total_count=int(data.get("total_count", 0) or 0),
            item_count=int(data.get("item_count", 0) or 0),
            items=[Material.from_dict(m) for m in data.get("item", [])],
        )


# ---- template messages ----


@dataclass
class TemplateItem:
    value: str = ""
    color: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact({"value": self.value, "color": self.color})


@dataclass
class TemplateMiniProgram:
    app_id: str = ""
    page_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact({"appid": self.app_id, "pagepath": self.page_path})


@dataclass
class TemplateMessage:
    """Template message, optionally jumping into a mini program.

    ``url`` is the fallback link for clients too old to open the mini program.
    """

    to_user: str
    template_id: str
    url: str = ""
    mini_program: TemplateMiniProgram | None = None
    data: dict[str, TemplateItem] = field(default_factory=dict)
    color: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "touser": self.to_user,
            "template_id": self.template_id,
        }
        if self.url:
            payload["url"] = self.url
        if self.mini_program is not None:
            payload["miniprogram"] = self.mini_program.to_dict()
        if self.data:
            payload["data"] = {k: v.to_dict() for k, v in self.data.items()}
        if self.color:
            payload["color"] = self.color
        return payload
