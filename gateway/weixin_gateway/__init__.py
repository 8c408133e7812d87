"""Weixin official-account gateway: webhook verification, routing and REST client."""

from __future__ import annotations

from .broadcaster import TokenBroadcaster
from .cachestore import CacheStore, MemoryCacheStore, RedisCacheStore, create_store
from .client import Weixin, create_app
from .errors import (
    APIError,
    CredentialError,
    DecodeError,
    DecryptError,
    SignatureError,
    TooManyAttemptsError,
    TransportError,
    VerificationError,
    WeixinError,
)
from .message import Request, parse_request
from .models import (
    AccessToken,
    Article,
    Menu,
    MenuButton,
    Music,
    QRScene,
    TemplateItem,
    TemplateMessage,
    TemplateMiniProgram,
)
from .router import Router
from .writer import ResponseWriter

__version__ = "0.1.0"

__all__ = [
    "APIError",
    "AccessToken",
    "Article",
    "CacheStore",
    "CredentialError",
    "DecodeError",
    "DecryptError",
    "MemoryCacheStore",
    "Menu",
    "MenuButton",
    "Music",
    "QRScene",
    "RedisCacheStore",
    "Request",
    "ResponseWriter",
    "Router",
    "SignatureError",
    "TemplateItem",
    "TemplateMessage",
    "TemplateMiniProgram",
    "TokenBroadcaster",
    "TooManyAttemptsError",
    "TransportError",
    "VerificationError",
    "Weixin",
    "WeixinError",
    "create_app",
    "create_store",
    "parse_request",
]
