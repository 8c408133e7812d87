"""Gateway configuration loading.

The YAML file has three sections::

    weixin:
      token: <webhook token>
      app_id: <optional>
      app_secret: <optional>
      encoding_aes_key: <optional, 43 chars>
    server:
      host: 127.0.0.1
      port: 8080
      path: /weixin
    cache:
      backend: memory        # or redis
      addrs: ["127.0.0.1:6379"]

``WEIXIN_TOKEN``, ``WEIXIN_APP_ID``, ``WEIXIN_APP_SECRET`` and
``WEIXIN_ENCODING_AES_KEY`` override the ``weixin:`` section.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .cachestore import create_store
from .client import Weixin

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.weixin-gateway/config.yaml"

_ENV_OVERRIDES: dict[str, str] = {
    "WEIXIN_TOKEN": "token",
    "WEIXIN_APP_ID": "app_id",
    "WEIXIN_APP_SECRET": "app_secret",
    "WEIXIN_ENCODING_AES_KEY": "encoding_aes_key",
}


def load_config(
    config_path: str | None = None, environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Load YAML config, falling back to an empty dict if the file is missing."""
    config: dict[str, Any] = {}
    if config_path:
        path = Path(config_path).expanduser()
        if path.exists():
            data = yaml.safe_load(path.read_text())
            if data is not None and not isinstance(data, dict):
                raise ValueError(f"Config file {path} must contain a mapping")
            config = data or {}
        else:
            logger.warning("Config file not found: %s, using defaults", path)

    env = os.environ if environ is None else environ
    weixin = dict(config.get("weixin") or {})
    for var, key in _ENV_OVERRIDES.items():
        if env.get(var):
            weixin[key] = env[var]
    config["weixin"] = weixin
    return config


def build_client(config: dict[str, Any]) -> Weixin:
    """Create a :class:`Weixin` client (and its cache store) from *config*."""
    weixin = config.get("weixin") or {}
    token = weixin.get("token", "")
    if not token:
        raise ValueError("weixin.token is required")

    client = Weixin(
        token,
        weixin.get("app_id", ""),
        weixin.get("app_secret", ""),
        store=create_store(config.get("cache")),
        close_store=True,
        timeout=float(weixin.get("timeout", 30.0)),
        invalidate_on_expired=bool(weixin.get("invalidate_on_expired", False)),
    )
    aes_key = weixin.get("encoding_aes_key")
    if aes_key:
        client.set_encoding_aes_key(aes_key)
    return client
