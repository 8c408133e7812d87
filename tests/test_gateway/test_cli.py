"""Tests for the weixin-gateway CLI."""

from __future__ import annotations

import json
import time

import pytest

from weixin_gateway import cli
from weixin_gateway.errors import APIError
from weixin_gateway.models import AccessToken, Menu, MenuButton, QRScene


class _FakeClient:
    """Stands in for Weixin inside CLI commands."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def get_access_token(self) -> AccessToken:
        return AccessToken("SECRET-TOKEN", time.time() + 3600)

    async def get_menu(self):
        return Menu([MenuButton("Hi", type="click", key="K")])

    async def delete_menu(self):
        self.calls.append(("delete_menu",))

    async def create_menu(self, menu):
        self.calls.append(("create_menu", menu))

    async def create_qr_scene(self, scene_id, expires):
        self.calls.append(("qr_scene", scene_id, expires))
        return QRScene("T1")

    async def create_qr_limit_scene_by_string(self, scene):
        self.calls.append(("qr_limit_str", scene))
        return QRScene("T2")

    def qr_url(self, qr):
        return f"https://mp.example/showqrcode?ticket={qr.ticket}"

    async def short_url(self, url):
        if self.fail:
            raise APIError(40013, "invalid appid")
        return "http://w.url.cn/s/abc"


@pytest.fixture
def fake(monkeypatch, tmp_path):
    client = _FakeClient()
    monkeypatch.setattr(cli, "build_client", lambda config: client)
    monkeypatch.setattr(cli, "load_config", lambda path: {"weixin": {"token": "t"}})
    return client


def test_parser_defaults():
    args = cli._build_parser().parse_args(["qrcode", "--scene", "7"])
    assert args.command == "qrcode"
    assert args.scene == 7
    assert args.expires == 2592000
    assert not args.permanent


def test_qrcode_requires_a_scene():
    with pytest.raises(SystemExit):
        cli._build_parser().parse_args(["qrcode"])


def test_token_prints_expiry_not_token(fake, capsys):
    cli.main(["token"])
    out = capsys.readouterr().out
    assert "valid for" in out
    assert "SECRET-TOKEN" not in out


def test_menu_get(fake, capsys):
    cli.main(["menu", "get"])
    data = json.loads(capsys.readouterr().out)
    assert data == {"button": [{"name": "Hi", "type": "click", "key": "K"}]}


def test_menu_create_from_file(fake, tmp_path):
    path = tmp_path / "menu.json"
    path.write_text(json.dumps({"button": [{"name": "Go", "type": "view", "url": "http://x"}]}))
    cli.main(["menu", "create", "--file", str(path)])
    (name, menu), = fake.calls
    assert name == "create_menu"
    assert menu.buttons[0].url == "http://x"


def test_menu_without_subcommand_exits(fake):
    with pytest.raises(SystemExit):
        cli.main(["menu"])


def test_qrcode_temporary(fake, capsys):
    cli.main(["qrcode", "--scene", "7", "--expires", "60"])
    assert fake.calls == [("qr_scene", 7, 60)]
    assert capsys.readouterr().out.strip() == "https://mp.example/showqrcode?ticket=T1"


def test_qrcode_permanent_string(fake):
    cli.main(["qrcode", "--scene-str", "promo", "--permanent"])
    assert fake.calls == [("qr_limit_str", "promo")]


def test_shorturl(fake, capsys):
    cli.main(["shorturl", "http://example.com/long"])
    assert capsys.readouterr().out.strip() == "http://w.url.cn/s/abc"


def test_api_error_exits_nonzero(fake, capsys):
    fake.fail = True
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["shorturl", "http://example.com/long"])
    assert exc_info.value.code == 1
    assert "40013" in capsys.readouterr().err
