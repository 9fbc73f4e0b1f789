"""Tests for the Typer CLI commands that do not need a live bridge."""

import asyncio
import json
import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from wasession import __version__
from wasession.cli.commands import _configure_logs, app
from wasession.protocol.events import CredentialBlob, DisconnectReason
from wasession.session.credentials import CredentialStore

from .conftest import FakeClient

runner = CliRunner()


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("OWNER_NUMBER", raising=False)
    return tmp_path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_onboard_writes_config(home):
    result = runner.invoke(app, ["onboard"])
    assert result.exit_code == 0
    raw = json.loads((home / ".wasession" / "config.json").read_text())
    assert raw["sessions"]["reconnectDelayS"] == 2.0
    assert (home / ".wasession" / "sessions").is_dir()


def test_sessions_list_and_reset(home):
    store = CredentialStore(home / ".wasession" / "sessions")
    store.save("alice", CredentialBlob(creds={"me": {"id": "1"}}))

    listed = runner.invoke(app, ["sessions", "list"])
    assert listed.exit_code == 0
    assert "alice" in listed.stdout

    reset = runner.invoke(app, ["sessions", "reset", "alice", "--yes"])
    assert reset.exit_code == 0
    assert "Reset session alice" in reset.stdout
    assert not store.has_credentials("alice")


def test_status(home):
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Sessions: 0 stored, 0 paired" in result.stdout


def test_reset_blank_session_keeps_other_sessions(home):
    store = CredentialStore(home / ".wasession" / "sessions")
    store.save("alice", CredentialBlob(creds={"who": "alice"}))
    store.save("bob", CredentialBlob(creds={"who": "bob"}))

    result = runner.invoke(app, ["sessions", "reset", "  ", "--yes"])

    assert result.exit_code == 1
    assert "Invalid session id" in result.stdout
    assert store.has_credentials("alice")
    assert store.has_credentials("bob")


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(lambda message: sys.stderr.write(message))
    logger.enable("wasession")


@pytest.mark.parametrize("verbose", [True, False])
def test_verbose_controls_debug_output(capsys, restore_logger, verbose):
    _configure_logs(logs=True, verbose=verbose)
    logger.debug("debug line")
    logger.info("info line")

    err = capsys.readouterr().err
    assert "info line" in err
    assert ("debug line" in err) is verbose


def test_pair_and_run_accept_verbose():
    for command in ("pair", "run"):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0
        assert "--verbose" in result.stdout


class _LogoutAfterCode(FakeClient):
    """Issues a pairing code, then the device link is rejected."""

    async def request_pairing_code(self, phone_number):
        await super().request_pairing_code(phone_number)
        asyncio.get_running_loop().call_later(
            0.05, lambda: asyncio.ensure_future(self.drop(DisconnectReason.LOGGED_OUT))
        )
        return "ABCD-EFGH"


def test_pair_exits_when_session_is_logged_out(home, monkeypatch, restore_logger):
    config_dir = home / ".wasession"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(json.dumps({"sessions": {"protocolVersion": [2, 3000, 1]}}))

    def factory(config):
        def build(session_id, credentials, version):
            return _LogoutAfterCode(session_id, credentials, version, pairing_code="ABCD-EFGH")

        return build

    monkeypatch.setattr("wasession.api.bridge_client_factory", factory)

    result = runner.invoke(app, ["pair", "--session", "alice"])

    assert result.exit_code == 1
    assert "ABCD-EFGH" in result.stdout
    assert "logged out" in result.stdout
