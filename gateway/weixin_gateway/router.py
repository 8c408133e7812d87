"""Pattern routing of inbound events to application handlers."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Union

from .message import MSG_EVENT, Request

if TYPE_CHECKING:
    from .writer import ResponseWriter

Handler = Callable[["ResponseWriter", Request], Union[Awaitable[Any], Any]]

# Event sub-types
EVENT_SUBSCRIBE = "subscribe"
EVENT_UNSUBSCRIBE = "unsubscribe"
EVENT_SCAN = "SCAN"
EVENT_VIEW = "VIEW"
EVENT_CLICK = "CLICK"
EVENT_LOCATION = "LOCATION"
EVENT_TEMPLATE_SENT = "TEMPLATESENDJOBFINISH"

# Route patterns (regular expressions over the routing key)
MSG_TYPE_DEFAULT = ".*"
MSG_TYPE_TEXT = "text"
MSG_TYPE_IMAGE = "image"
MSG_TYPE_VOICE = "voice"
MSG_TYPE_VIDEO = "video"
MSG_TYPE_SHORT_VIDEO = "shortvideo"
MSG_TYPE_LOCATION = "location"
MSG_TYPE_LINK = "link"
MSG_TYPE_EVENT = MSG_EVENT + r"\..*"
MSG_TYPE_EVENT_SUBSCRIBE = MSG_EVENT + r"\." + EVENT_SUBSCRIBE
MSG_TYPE_EVENT_UNSUBSCRIBE = MSG_EVENT + r"\." + EVENT_UNSUBSCRIBE
MSG_TYPE_EVENT_SCAN = MSG_EVENT + r"\." + EVENT_SCAN
MSG_TYPE_EVENT_VIEW = MSG_EVENT + r"\." + EVENT_VIEW
MSG_TYPE_EVENT_CLICK = MSG_EVENT + r"\." + EVENT_CLICK
MSG_TYPE_EVENT_LOCATION = MSG_EVENT + r"\." + EVENT_LOCATION
MSG_TYPE_EVENT_TEMPLATE_SENT = MSG_EVENT + r"\." + EVENT_TEMPLATE_SENT


class Route:
    def __init__(self, pattern: str, handler: Handler) -> None:
        self.pattern = pattern
        self.regex = re.compile(pattern)
        self.handler = handler

    def matches(self, key: str) -> bool:
        return self.regex.fullmatch(key) is not None


class Router:
    """Ordered pattern -> handler bindings; the first full match wins."""

    def __init__(self) -> None:
        self._routes: list[Route] = []

    def handle(self, pattern: str, handler: Handler) -> None:
        """Register *handler* for *pattern*.  Raises ``re.error`` for bad patterns."""
        self._routes.append(Route(pattern, handler))

    @staticmethod
    def route_key(request: Request) -> str:
        """``msg_type``, or ``event.<Event>`` for the event category."""
        if request.msg_type == MSG_EVENT:
            return f"{request.msg_type}.{request.event}"
        return request.msg_type

    def match(self, request: Request) -> Handler | None:
        key = self.route_key(request)
        for route in self._routes:
            if route.matches(key):
                return route.handler
        return None

    @property
    def routes(self) -> list[Route]:
        return list(self._routes)
