"""Inbound event decoding.

The platform posts every message and event as one flat XML document.  All
type-specific fields live side by side on :class:`Request`; ``msg_type``
(and ``event`` for the ``event`` category) says which of them are meaningful.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any
from xml.etree import ElementTree as ET

from .errors import DecodeError

MSG_EVENT = "event"


@dataclass
class Request:
    # header
    to_user_name: str = ""
    from_user_name: str = ""
    create_time: int = 0
    msg_type: str = ""
    encrypt: str = ""
    # text / media / link
    msg_id: int = 0
    content: str = ""
    pic_url: str = ""
    media_id: str = ""
    format: str = ""
    thumb_media_id: str = ""
    title: str = ""
    description: str = ""
    url: str = ""
    recognition: str = ""
    # location message
    location_x: float = 0.0
    location_y: float = 0.0
    scale: float = 0.0
    label: str = ""
    # events
    event: str = ""
    event_key: str = ""
    ticket: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    precision: float = 0.0
    status: str = ""


# XML element name -> Request attribute
_FIELD_MAP: dict[str, str] = {
    "ToUserName": "to_user_name",
    "FromUserName": "from_user_name",
    "CreateTime": "create_time",
    "MsgType": "msg_type",
    "Encrypt": "encrypt",
    "MsgId": "msg_id",
    "Content": "content",
    "PicUrl": "pic_url",
    "MediaId": "media_id",
    "Format": "format",
    "ThumbMediaId": "thumb_media_id",
    "Title": "title",
    "Description": "description",
    "Url": "url",
    "Recognition": "recognition",
    "Location_X": "location_x",
    "Location_Y": "location_y",
    "Scale": "scale",
    "Label": "label",
    "Event": "event",
    "EventKey": "event_key",
    "Ticket": "ticket",
    "Latitude": "latitude",
    "Longitude": "longitude",
    "Precision": "precision",
    "Status": "status",
}

_FIELD_TYPES: dict[str, Any] = {f.name: f.type for f in fields(Request)}


def _convert(attr: str, text: str) -> Any:
    kind = _FIELD_TYPES[attr]
    if kind in ("int", int):
        return int(text)
    if kind in ("float", float):
        return float(text)
    return text


def parse_request(data: bytes, base: Request | None = None) -> Request:
    """Decode an inbound XML document into a :class:`Request`.

    Elements absent from *data* keep the values of *base* (or the
    defaults), so an encrypted envelope's header survives decoding of the
    inner document.

    Raises:
        DecodeError: the XML is malformed or a numeric field is not a number.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise DecodeError(f"invalid XML: {exc}") from exc

    values: dict[str, Any] = {}
    for child in root:
        attr = _FIELD_MAP.get(child.tag)
        if attr is None:
            continue
        text = child.text or ""
        if _FIELD_TYPES[attr] in ("str", str):
            values[attr] = text
            continue
        text = text.strip()
        if not text:
            continue
        try:
            values[attr] = _convert(attr, text)
        except ValueError as exc:
            raise DecodeError(f"invalid value for {child.tag}: {text!r}") from exc

    return replace(base or Request(), **values)
