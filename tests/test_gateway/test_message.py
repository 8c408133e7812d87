"""Tests for inbound XML decoding."""

from __future__ import annotations

import pytest

from weixin_gateway.errors import DecodeError
from weixin_gateway.message import Request, parse_request

TEXT_XML = b"""<xml>
<ToUserName><![CDATA[gh_account]]></ToUserName>
<FromUserName><![CDATA[o_user]]></FromUserName>
<CreateTime>1700000000</CreateTime>
<MsgType><![CDATA[text]]></MsgType>
<Content><![CDATA[  hello  world ]]></Content>
<MsgId>1234567890123456</MsgId>
</xml>"""


def test_parse_text_message():
    req = parse_request(TEXT_XML)
    assert req.to_user_name == "gh_account"
    assert req.from_user_name == "o_user"
    assert req.create_time == 1700000000
    assert req.msg_type == "text"
    assert req.msg_id == 1234567890123456


def test_parse_keeps_content_whitespace():
    assert parse_request(TEXT_XML).content == "  hello  world "


def test_parse_location_message():
    xml = b"""<xml>
<MsgType><![CDATA[location]]></MsgType>
<Location_X>23.134521</Location_X>
<Location_Y>113.358803</Location_Y>
<Scale>20</Scale>
<Label><![CDATA[Somewhere]]></Label>
</xml>"""
    req = parse_request(xml)
    assert req.location_x == pytest.approx(23.134521)
    assert req.location_y == pytest.approx(113.358803)
    assert req.scale == 20.0
    assert req.label == "Somewhere"


def test_parse_event():
    xml = b"""<xml>
<MsgType><![CDATA[event]]></MsgType>
<Event><![CDATA[LOCATION]]></Event>
<Latitude>23.137466</Latitude>
<Longitude>113.352425</Longitude>
<Precision>119.385040</Precision>
</xml>"""
    req = parse_request(xml)
    assert req.event == "LOCATION"
    assert req.latitude == pytest.approx(23.137466)
    assert req.precision == pytest.approx(119.38504)


def test_unknown_elements_ignored():
    req = parse_request(b"<xml><MsgType>text</MsgType><Whatever>1</Whatever></xml>")
    assert req.msg_type == "text"


def test_empty_numeric_element_keeps_default():
    req = parse_request(b"<xml><CreateTime></CreateTime></xml>")
    assert req.create_time == 0


def test_malformed_xml_raises():
    with pytest.raises(DecodeError):
        parse_request(b"<xml><MsgType>text</xml>")


def test_non_numeric_field_raises():
    with pytest.raises(DecodeError, match="CreateTime"):
        parse_request(b"<xml><CreateTime>soon</CreateTime></xml>")


def test_base_values_survive():
    """Fields missing from the inner document keep the envelope's values."""
    envelope = Request(to_user_name="gh_account", encrypt="abc", create_time=5)
    req = parse_request(b"<xml><MsgType>text</MsgType><CreateTime>9</CreateTime></xml>", envelope)
    assert req.to_user_name == "gh_account"
    assert req.encrypt == "abc"
    assert req.create_time == 9
    assert req.msg_type == "text"
    # the base itself is not mutated
    assert envelope.msg_type == ""
