"""
Tests for the HTTP-shaped SessionAPI facade.
"""

import pytest

from wasession.api import SessionAPI, build_api
from wasession.config.schema import Config
from wasession.protocol.events import CredentialsUpdate
from wasession.session.lifecycle import SessionLifecycle
from wasession.session.pairing import PairingCoordinator

from .conftest import FakeFactory, fixed_version


@pytest.fixture
def api(lifecycle, pairing):
    return SessionAPI(lifecycle, pairing)


class TestGenerate:
    @pytest.mark.asyncio
    async def test_already_paired(self, api, store):
        store.apply_update("default", store.load("default"), CredentialsUpdate(creds={"me": {}}))
        assert await api.generate() == (200, {"message": "already_paired"})

    @pytest.mark.asyncio
    async def test_pairing_code(self, registry, store):
        factory = FakeFactory(pairing_code="WXYZ-9876")
        lifecycle = SessionLifecycle(registry, store, factory, fixed_version)
        api = SessionAPI(lifecycle, PairingCoordinator(lifecycle, store, owner_number="1"))
        assert await api.generate("alice") == (200, {"pairing_code": "WXYZ-9876"})

    @pytest.mark.asyncio
    async def test_timeout_is_500_with_detail(self, api, pairing):
        pairing.default_timeout_s = 0.05
        code, body = await api.generate("alice")
        assert code == 500
        assert body["error"] == "Failed to generate pairing code"
        assert "Timed out" in body["detail"]


class TestDeployAndStatus:
    @pytest.mark.asyncio
    async def test_unknown_session_is_stopped(self, api):
        assert await api.status("nobody") == (200, {"success": True, "status": "stopped"})

    @pytest.mark.asyncio
    async def test_deploy_then_status(self, api, factory):
        code, body = await api.deploy("alice")
        assert code == 200
        assert body["success"] is True
        assert (await api.status("alice"))[1]["status"] == "starting"

        await factory.last.open()
        assert (await api.status("alice"))[1]["status"] == "connected"

    @pytest.mark.asyncio
    async def test_deploy_failure(self, api, factory):
        factory.fail_next = 1
        code, body = await api.deploy("alice")
        assert code == 500
        assert body["error"] == "Failed to deploy bot"
        assert "bridge unavailable" in body["detail"]

    @pytest.mark.asyncio
    async def test_default_session_id(self, api, factory):
        await api.deploy()
        assert factory.last.session_id == "default"


class TestBuildApi:
    def test_wires_components_from_config(self, tmp_path):
        config = Config()
        config.sessions.root = str(tmp_path / "sessions")
        config.sessions.default_id = "main"
        config.sessions.reconnect_delay_s = 5.0
        config.sessions.concurrent_pairing = "reject"

        api = build_api(config, client_factory=FakeFactory())

        assert api.default_session_id == "main"
        assert api.lifecycle.reconnect_delay_s == 5.0
        assert api.pairing.concurrency == "reject"
        assert api.pairing.owner_number == config.owner_number
        assert api.pairing.store.root == tmp_path / "sessions"


class TestSessionIdHandling:
    @pytest.mark.asyncio
    async def test_blank_id_uses_default_session(self, api, factory):
        await api.deploy("   ")
        assert factory.last.session_id == "default"
        assert (await api.status(" "))[1]["status"] == "starting"

    @pytest.mark.asyncio
    async def test_similar_ids_pair_independently(self, api, store):
        store.apply_update("a:b", store.load("a:b"), CredentialsUpdate(creds={"who": "a:b"}))

        assert await api.generate("a:b") == (200, {"message": "already_paired"})
        assert not store.has_credentials("a_b")
        assert store.load("a_b").is_empty
