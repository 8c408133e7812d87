"""Tests for pattern routing of inbound events."""

from __future__ import annotations

import re

import pytest

from weixin_gateway.message import Request
from weixin_gateway.router import (
    MSG_TYPE_DEFAULT,
    MSG_TYPE_EVENT,
    MSG_TYPE_EVENT_CLICK,
    MSG_TYPE_EVENT_SUBSCRIBE,
    MSG_TYPE_TEXT,
    Router,
)


def _handler(name: str):
    def handler(w, r):
        return name

    handler.__name__ = name
    return handler


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_route_key_for_message():
    assert Router.route_key(Request(msg_type="text")) == "text"


def test_route_key_for_event():
    assert Router.route_key(Request(msg_type="event", event="subscribe")) == "event.subscribe"


def test_first_match_wins():
    router = Router()
    first, second = _handler("first"), _handler("second")
    router.handle(MSG_TYPE_TEXT, first)
    router.handle(MSG_TYPE_DEFAULT, second)
    assert router.match(Request(msg_type="text")) is first
    assert router.match(Request(msg_type="image")) is second


def test_patterns_must_match_whole_key():
    router = Router()
    router.handle(MSG_TYPE_TEXT, _handler("text"))
    assert router.match(Request(msg_type="textual")) is None
    assert router.match(Request(msg_type="context")) is None


def test_event_patterns():
    router = Router()
    click, sub, any_event = _handler("click"), _handler("sub"), _handler("any")
    router.handle(MSG_TYPE_EVENT_CLICK, click)
    router.handle(MSG_TYPE_EVENT_SUBSCRIBE, sub)
    router.handle(MSG_TYPE_EVENT, any_event)

    assert router.match(Request(msg_type="event", event="CLICK")) is click
    assert router.match(Request(msg_type="event", event="subscribe")) is sub
    assert router.match(Request(msg_type="event", event="VIEW")) is any_event
    # a plain message never matches the event patterns
    assert router.match(Request(msg_type="text")) is None


def test_no_routes_no_match():
    assert Router().match(Request(msg_type="text")) is None


def test_invalid_pattern_raises():
    with pytest.raises(re.error):
        Router().handle("(", _handler("bad"))


def test_routes_snapshot():
    router = Router()
    router.handle(MSG_TYPE_TEXT, _handler("text"))
    routes = router.routes
    routes.clear()
    assert len(router.routes) == 1
    assert router.routes[0].pattern == MSG_TYPE_TEXT
