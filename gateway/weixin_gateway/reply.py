"""Passive reply XML and customer-service push payloads."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

from .models import Article, Music

MAX_NEWS_ARTICLES = 10
REPLY_OK = "success"

# The music push is sent with msgtype "music", never "video".
MUSIC_POST_MSGTYPE = "music"


def cdata(value: str) -> str:
    """Wrap *value* in CDATA, splitting any embedded ``]]>``."""
    return "<![CDATA[" + str(value).replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _header(to_user: str, from_user: str, create_time: int | None) -> str:
    if create_time is None:
        create_time = int(time.time())
    return (
        f"<ToUserName>{cdata(to_user)}</ToUserName>"
        f"<FromUserName>{cdata(from_user)}</FromUserName>"
        f"<CreateTime>{create_time}</CreateTime>"
    )


def _reply(to_user: str, from_user: str, msg_type: str, body: str, create_time: int | None) -> str:
    return (
        "<xml>"
        + _header(to_user, from_user, create_time)
        + f"<MsgType>{cdata(msg_type)}</MsgType>"
        + body
        + "</xml>"
    )


# ---- passive replies ----


def text_reply(to_user: str, from_user: str, content: str, create_time: int | None = None) -> str:
    return _reply(to_user, from_user, "text", f"<Content>{cdata(content)}</Content>", create_time)


def image_reply(to_user: str, from_user: str, media_id: str, create_time: int | None = None) -> str:
    body = f"<Image><MediaId>{cdata(media_id)}</MediaId></Image>"
    return _reply(to_user, from_user, "image", body, create_time)


def voice_reply(to_user: str, from_user: str, media_id: str, create_time: int | None = None) -> str:
    body = f"<Voice><MediaId>{cdata(media_id)}</MediaId></Voice>"
    return _reply(to_user, from_user, "voice", body, create_time)


def video_reply(
    to_user: str,
    from_user: str,
    media_id: str,
    title: str,
    description: str,
    create_time: int | None = None,
) -> str:
    body = (
        "<Video>"
        f"<MediaId>{cdata(media_id)}</MediaId>"
        f"<Title>{cdata(title)}</Title>"
        f"<Description>{cdata(description)}</Description>"
        "</Video>"
    )
    return _reply(to_user, from_user, "video", body, create_time)


def music_reply(to_user: str, from_user: str, music: Music, create_time: int | None = None) -> str:
    body = (
        "<Music>"
        f"<Title>{cdata(music.title)}</Title>"
        f"<Description>{cdata(music.description)}</Description>"
        f"<MusicUrl>{cdata(music.music_url)}</MusicUrl>"
        f"<HQMusicUrl>{cdata(music.hq_music_url)}</HQMusicUrl>"
        f"<ThumbMediaId>{cdata(music.thumb_media_id)}</ThumbMediaId>"
        "</Music>"
    )
    return _reply(to_user, from_user, "music", body, create_time)


def news_reply(
    to_user: str,
    from_user: str,
    articles: Sequence[Article],
    create_time: int | None = None,
) -> str:
    if len(articles) > MAX_NEWS_ARTICLES:
        raise ValueError(
            f"news reply accepts at most {MAX_NEWS_ARTICLES} articles, got {len(articles)}"
        )
    items = "".join(
        "<item>"
        f"<Title>{cdata(a.title)}</Title>"
        f"<Description>{cdata(a.description)}</Description>"
        f"<PicUrl>{cdata(a.pic_url)}</PicUrl>"
        f"<Url>{cdata(a.url)}</Url>"
        "</item>"
        for a in articles
    )
    body = f"<ArticleCount>{len(articles)}</ArticleCount><Articles>{items}</Articles>"
    return _reply(to_user, from_user, "news", body, create_time)


def transfer_customer_service_reply(
    to_user: str,
    from_user: str,
    service_account: str = "",
    create_time: int | None = None,
) -> str:
    """Hand the conversation to a human agent (a specific one if given)."""
    body = ""
    if service_account:
        body = f"<TransInfo><KfAccount>{cdata(service_account)}</KfAccount></TransInfo>"
    return _reply(to_user, from_user, "transfer_customer_service", body, create_time)


# ---- customer-service push payloads ----


def text_post(to_user: str, content: str) -> dict[str, Any]:
    return {"touser": to_user, "msgtype": "text", "text": {"content": content}}


def image_post(to_user: str, media_id: str) -> dict[str, Any]:
    return {"touser": to_user, "msgtype": "image", "image": {"media_id": media_id}}


def voice_post(to_user: str, media_id: str) -> dict[str, Any]:
    return {"touser": to_user, "msgtype": "voice", "voice": {"media_id": media_id}}


def video_post(to_user: str, media_id: str, title: str, description: str) -> dict[str, Any]:
    return {
        "touser": to_user,
        "msgtype": "video",
        "video": {"media_id": media_id, "title": title, "description": description},
    }


def music_post(to_user: str, music: Music) -> dict[str, Any]:
    return {"touser": to_user, "msgtype": MUSIC_POST_MSGTYPE, "music": music.to_dict()}


def news_post(to_user: str, articles: Sequence[Article]) -> dict[str, Any]:
    return {
        "touser": to_user,
        "msgtype": "news",
        "news": {"articles": [a.to_dict() for a in articles]},
    }
