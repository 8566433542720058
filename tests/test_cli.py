"""
tests/test_cli.py -- Tests for the operator CLI in main.py.

_open_manager is patched to return the per-test SessionManager so the
commands run against the isolated shared-memory database.
"""

from __future__ import annotations

import json

import pytest

import main as cli
from auth.models import Platform

PASSWORD = "pw123456"


@pytest.fixture
def cli_manager(manager, monkeypatch):
    monkeypatch.setattr(cli, "_open_manager", lambda: manager)
    return manager


def test_sessions_unknown_user(cli_manager, capsys):
    assert cli.main(["sessions", "ghost@x.com"]) == 1
    assert "No user" in capsys.readouterr().out


def test_sessions_json(cli_manager, capsys):
    cli_manager.register("a@x.com", PASSWORD)
    cli_manager.login("a@x.com", PASSWORD, Platform.MOBILE, device_label="Pixel")
    assert cli.main(["sessions", "a@x.com", "--json"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert len(rows) == 1
    assert rows[0]["platform"] == "MOBILE"
    assert rows[0]["deviceLabel"] == "Pixel"


def test_sessions_table(cli_manager, capsys):
    cli_manager.register("a@x.com", PASSWORD)
    cli_manager.login("a@x.com", PASSWORD, Platform.WEB)
    assert cli.main(["sessions", "a@x.com"]) == 0
    assert "1 active session(s)" in capsys.readouterr().out


def test_revoke_all(cli_manager, capsys):
    user = cli_manager.register("a@x.com", PASSWORD)
    cli_manager.login("a@x.com", PASSWORD, Platform.WEB)
    assert cli.main(["revoke-all", "a@x.com"]) == 0
    assert "All sessions revoked successfully" in capsys.readouterr().out
    assert cli_manager.users.get_by_id(user.id).token_version == 1
    assert cli_manager.list_active_sessions(user.id) == []


def test_chain_follows_rotations(cli_manager, capsys):
    user = cli_manager.register("a@x.com", PASSWORD)
    login = cli_manager.login("a@x.com", PASSWORD, Platform.WEB)
    root_jti = cli_manager.list_active_sessions(user.id)[0].jti
    pair = cli_manager.refresh(login.refresh_token)
    cli_manager.refresh(pair.refresh_token)

    assert cli.main(["chain", root_jti, "--json"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert len(rows) == 3
    assert rows[0]["jti"] == root_jti
    assert rows[0]["replacedByJti"] == rows[1]["jti"]
    assert rows[1]["replacedByJti"] == rows[2]["jti"]
    assert all(r["revokedAt"] for r in rows[:2])
    assert rows[2]["revokedAt"] is None

    assert cli.main(["chain", rows[1]["jti"]]) == 0
    out = capsys.readouterr().out
    assert "2 step(s)" in out
    assert "live" in out


def test_chain_unknown_jti(cli_manager, capsys):
    assert cli.main(["chain", "no-such-jti"]) == 1
    assert "No session" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()
