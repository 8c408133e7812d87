"""Tests for passive reply XML and push payloads."""

from __future__ import annotations

from xml.etree import ElementTree as ET

import pytest

from weixin_gateway import reply
from weixin_gateway.models import Article, Music


def test_text_reply_exact():
    xml = reply.text_reply("o_user", "gh_account", "hi", create_time=1700000000)
    assert xml == (
        "<xml>"
        "<ToUserName><![CDATA[o_user]]></ToUserName>"
        "<FromUserName><![CDATA[gh_account]]></FromUserName>"
        "<CreateTime>1700000000</CreateTime>"
        "<MsgType><![CDATA[text]]></MsgType>"
        "<Content><![CDATA[hi]]></Content>"
        "</xml>"
    )


def test_cdata_splits_terminator():
    wrapped = reply.cdata("a]]>b")
    assert wrapped == "<![CDATA[a]]]]><![CDATA[>b]]>"
    root = ET.fromstring(f"<x>{wrapped}</x>")
    assert root.text == "a]]>b"


def test_reply_escapes_nothing_inside_cdata():
    xml = reply.text_reply("u", "a", "<b>&amp;</b>", create_time=1)
    assert ET.fromstring(xml).findtext("Content") == "<b>&amp;</b>"


def test_image_and_video_replies():
    image = ET.fromstring(reply.image_reply("u", "a", "MID", create_time=1))
    assert image.findtext("MsgType") == "image"
    assert image.findtext("Image/MediaId") == "MID"

    video = ET.fromstring(reply.video_reply("u", "a", "VID", "T", "D", create_time=1))
    assert video.findtext("Video/MediaId") == "VID"
    assert video.findtext("Video/Title") == "T"
    assert video.findtext("Video/Description") == "D"


def test_music_reply():
    music = Music("song", "desc", "http://m", "http://hq", "THUMB")
    root = ET.fromstring(reply.music_reply("u", "a", music, create_time=1))
    assert root.findtext("Music/MusicUrl") == "http://m"
    assert root.findtext("Music/HQMusicUrl") == "http://hq"
    assert root.findtext("Music/ThumbMediaId") == "THUMB"


def test_news_reply():
    articles = [Article(f"t{i}", "d", "http://pic", "http://url") for i in range(3)]
    root = ET.fromstring(reply.news_reply("u", "a", articles, create_time=1))
    assert root.findtext("ArticleCount") == "3"
    items = root.findall("Articles/item")
    assert [i.findtext("Title") for i in items] == ["t0", "t1", "t2"]
    assert items[0].findtext("PicUrl") == "http://pic"


def test_news_reply_rejects_too_many_articles():
    articles = [Article(str(i)) for i in range(reply.MAX_NEWS_ARTICLES + 1)]
    with pytest.raises(ValueError, match="at most 10"):
        reply.news_reply("u", "a", articles)


def test_transfer_customer_service():
    root = ET.fromstring(reply.transfer_customer_service_reply("u", "a", create_time=1))
    assert root.findtext("MsgType") == "transfer_customer_service"
    assert root.findtext("ToUserName") == "u"
    assert root.find("TransInfo") is None

    root = ET.fromstring(reply.transfer_customer_service_reply("u", "a", "kf001@test"))
    assert root.findtext("TransInfo/KfAccount") == "kf001@test"


def test_create_time_defaults_to_now():
    root = ET.fromstring(reply.text_reply("u", "a", "x"))
    assert int(root.findtext("CreateTime")) > 1_600_000_000


# ---------------------------------------------------------------------------
# Push payloads
# ---------------------------------------------------------------------------


def test_text_post():
    assert reply.text_post("o_user", "hi") == {
        "touser": "o_user",
        "msgtype": "text",
        "text": {"content": "hi"},
    }


def test_music_post_uses_music_msgtype():
    payload = reply.music_post("o_user", Music("s", "d", "m", "hq", "th"))
    assert payload["msgtype"] == "music"
    assert payload["music"] == {
        "title": "s",
        "description": "d",
        "musicurl": "m",
        "hqmusicurl": "hq",
        "thumb_media_id": "th",
    }


def test_news_post():
    payload = reply.news_post("o_user", [Article("t", "d", "p", "u")])
    assert payload["news"]["articles"] == [
        {"title": "t", "description": "d", "picurl": "p", "url": "u"}
    ]
