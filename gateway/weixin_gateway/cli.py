"""CLI entry point for the Weixin gateway."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from aiohttp import web

from .client import Weixin, create_app
from .config import DEFAULT_CONFIG_PATH, build_client, load_config
from .errors import WeixinError
from .message import Request
from .models import Menu
from .router import MSG_TYPE_TEXT
from .writer import ResponseWriter

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        description="Weixin official-account gateway",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Config file path",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )

    sub = parser.add_subparsers(dest="command")

    # serve (default)
    serve_p = sub.add_parser("serve", help="Run the webhook server")
    serve_p.add_argument("--host", help="Bind address (overrides config)")
    serve_p.add_argument("--port", type=int, help="Bind port (overrides config)")

    # token
    sub.add_parser("token", help="Fetch an access token and show its expiry")

    # menu
    menu_p = sub.add_parser("menu", help="Manage the custom menu")
    menu_sub = menu_p.add_subparsers(dest="menu_command")
    menu_sub.add_parser("get", help="Print the current menu as JSON")
    menu_sub.add_parser("delete", help="Delete the current menu")
    create_p = menu_sub.add_parser("create", help="Create the menu from a JSON file")
    create_p.add_argument("--file", required=True, help="Menu JSON file")

    # qrcode
    qr_p = sub.add_parser("qrcode", help="Create a QR code")
    scene = qr_p.add_mutually_exclusive_group(required=True)
    scene.add_argument("--scene", type=int, help="Integer scene id")
    scene.add_argument("--scene-str", help="String scene value")
    qr_p.add_argument("--expires", type=int, default=2592000, help="Lifetime in seconds")
    qr_p.add_argument("--permanent", action="store_true", help="Create a permanent code")

    # shorturl
    short_p = sub.add_parser("shorturl", help="Convert a long URL to a short one")
    short_p.add_argument("url", help="URL to shorten")

    return parser


# ---- subcommand handlers ----


async def _echo_text(w: ResponseWriter, r: Request) -> None:
    w.reply_text(r.content)


def _cmd_serve(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Run the webhook with a text echo handler."""
    client = build_client(config)
    client.handle(MSG_TYPE_TEXT, _echo_text)

    server = config.get("server") or {}
    host = args.host or server.get("host", "127.0.0.1")
    port = args.port or int(server.get("port", 8080))
    path = server.get("path", "/")

    logger.info("Serving Weixin webhook on %s:%s%s", host, port, path)
    web.run_app(create_app(client, path), host=host, port=port, print=None)


def _run_with_client(
    config: dict[str, Any], action: Callable[[Weixin], Awaitable[None]]
) -> None:
    async def _run() -> None:
        async with build_client(config) as client:
            await action(client)

    try:
        asyncio.run(_run())
    except WeixinError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


def _cmd_token(args: argparse.Namespace, config: dict[str, Any]) -> None:
    async def action(client: Weixin) -> None:
        token = await client.get_access_token()
        if not token.is_fresh():
            raise WeixinError("no access token available")
        remaining = int(token.expires - time.time())
        print(f"Access token valid for {remaining}s")

    _run_with_client(config, action)


def _cmd_menu(args: argparse.Namespace, config: dict[str, Any]) -> None:
    async def action(client: Weixin) -> None:
        if args.menu_command == "get":
            menu = await client.get_menu()
            print(json.dumps(menu.to_dict() if menu else {}, ensure_ascii=False, indent=2))
        elif args.menu_command == "delete":
            await client.delete_menu()
            print("Menu deleted.")
        elif args.menu_command == "create":
            data = json.loads(Path(args.file).read_text())
            await client.create_menu(Menu.from_dict(data))
            print("Menu created.")

    if args.menu_command not in ("get", "delete", "create"):
        print("Usage: weixin-gateway menu {get|delete|create}", file=sys.stderr)
        sys.exit(1)
    _run_with_client(config, action)


def _cmd_qrcode(args: argparse.Namespace, config: dict[str, Any]) -> None:
    async def action(client: Weixin) -> None:
        if args.scene is not None:
            if args.permanent:
                qr = await client.create_qr_limit_scene(args.scene)
            else:
                qr = await client.create_qr_scene(args.scene, args.expires)
        elif args.permanent:
            qr = await client.create_qr_limit_scene_by_string(args.scene_str)
        else:
            qr = await client.create_qr_scene_by_string(args.scene_str, args.expires)
        print(client.qr_url(qr))

    _run_with_client(config, action)


def _cmd_shorturl(args: argparse.Namespace, config: dict[str, Any]) -> None:
    async def action(client: Weixin) -> None:
        print(await client.short_url(args.url))

    _run_with_client(config, action)


# ---- main ----

_COMMANDS: dict[str, Callable[[argparse.Namespace, dict[str, Any]], None]] = {
    "serve": _cmd_serve,
    "token": _cmd_token,
    "menu": _cmd_menu,
    "qrcode": _cmd_qrcode,
    "shorturl": _cmd_shorturl,
}


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    command = args.command or "serve"
    if command == "serve" and args.command is None:
        args.host = None
        args.port = None

    try:
        config = load_config(args.config)
        _COMMANDS[command](args, config)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
