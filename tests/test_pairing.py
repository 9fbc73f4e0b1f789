"""
Unit tests for the pairing coordinator.
"""

import asyncio

import pytest

from wasession.protocol.events import CredentialsUpdate
from wasession.session.errors import (
    ConstructionError,
    InvalidSessionId,
    PairingAlreadyInProgress,
    PairingTimeout,
)
from wasession.session.lifecycle import SessionLifecycle
from wasession.session.pairing import PairingCoordinator

from .conftest import FakeFactory, fixed_version, settle, wait_until


def _coordinator(registry, store, factory, **kwargs):
    lifecycle = SessionLifecycle(registry, store, factory, fixed_version, reconnect_delay_s=0.05)
    return PairingCoordinator(lifecycle, store, owner_number="254112399557", **kwargs)


class TestAlreadyPaired:
    @pytest.mark.asyncio
    async def test_existing_credentials_short_circuit(self, pairing, store, factory):
        store.apply_update("alice", store.load("alice"), CredentialsUpdate(creds={"me": {"id": "1"}}))

        result = await pairing.get_pairing_code("alice")

        assert result.already_paired
        assert result.code is None
        assert factory.count == 0

    @pytest.mark.asyncio
    async def test_repeat_calls_stay_cheap(self, pairing, store, factory):
        store.apply_update("alice", store.load("alice"), CredentialsUpdate(creds={"me": {"id": "1"}}))
        for _ in range(3):
            assert (await pairing.get_pairing_code("alice")).already_paired
        assert factory.count == 0

    @pytest.mark.asyncio
    async def test_paired_state_is_per_exact_id(self, registry, store):
        factory = FakeFactory(pairing_code="WXYZ-0001")
        coordinator = _coordinator(registry, store, factory)
        store.apply_update("a:b", store.load("a:b"), CredentialsUpdate(creds={"who": "a:b"}))

        result = await coordinator.get_pairing_code("a_b")

        assert not result.already_paired
        assert result.code == "WXYZ-0001"
        assert factory.last.credentials.is_empty

    @pytest.mark.asyncio
    async def test_blank_id_is_rejected(self, pairing, factory):
        with pytest.raises(InvalidSessionId):
            await pairing.get_pairing_code("   ")
        assert factory.count == 0


class TestDirectRequest:
    @pytest.mark.asyncio
    async def test_returns_requested_code(self, registry, store):
        factory = FakeFactory(pairing_code="ABCD-1234")
        coordinator = _coordinator(registry, store, factory)

        result = await coordinator.get_pairing_code("alice", phone_number="254700000009")

        assert result.code == "ABCD-1234"
        assert not result.already_paired
        assert factory.last.pairing_requests == ["254700000009"]

    @pytest.mark.asyncio
    async def test_defaults_to_owner_number(self, registry, store):
        factory = FakeFactory(pairing_code="ABCD-1234")
        coordinator = _coordinator(registry, store, factory)
        await coordinator.get_pairing_code("alice")
        assert factory.last.pairing_requests == ["254112399557"]

    @pytest.mark.asyncio
    async def test_request_failure_falls_back_to_qr(self, registry, store):
        factory = FakeFactory(pairing_error=RuntimeError("not supported by server"))
        coordinator = _coordinator(registry, store, factory, default_timeout_s=1.0)

        task = asyncio.create_task(coordinator.get_pairing_code("alice"))
        await wait_until(lambda: factory.count == 1 and factory.last.observer_count == 4)
        await factory.last.qr("2@qr-payload")

        result = await task
        assert result.code == "2@qr-payload"


class TestQrWait:
    @pytest.mark.asyncio
    async def test_resolves_on_first_qr(self, pairing, factory):
        task = asyncio.create_task(pairing.get_pairing_code("alice"))
        await wait_until(lambda: factory.count == 1 and factory.last.observer_count == 4)
        client = factory.last
        await client.open()
        await client.qr("2@first")
        await client.qr("2@second")

        result = await task
        assert result.code == "2@first"
        assert client.observer_count == 3

    @pytest.mark.asyncio
    async def test_timeout_leaves_no_observers(self, pairing, factory, lifecycle):
        client = await lifecycle.ensure_started("alice")
        before = client.observer_count

        with pytest.raises(PairingTimeout, match="Timed out waiting for pairing QR"):
            await pairing.get_pairing_code("alice", timeout=0.05)

        assert client.observer_count == before
        assert not pairing.is_pending("alice")
        assert factory.count == 1

    @pytest.mark.asyncio
    async def test_construction_error_propagates(self, registry, store, factory):
        factory.fail_next = 1
        coordinator = _coordinator(registry, store, factory)
        with pytest.raises(ConstructionError):
            await coordinator.get_pairing_code("alice")
        assert not coordinator.is_pending("alice")


class TestConcurrentRequests:
    @pytest.mark.asyncio
    async def test_join_shares_one_wait(self, registry, store, factory):
        coordinator = _coordinator(registry, store, factory, default_timeout_s=1.0)

        first = asyncio.create_task(coordinator.get_pairing_code("alice"))
        await settle()
        second = asyncio.create_task(coordinator.get_pairing_code("alice"))
        await wait_until(lambda: factory.count == 1 and factory.last.observer_count == 4)
        await settle()

        assert coordinator.is_pending("alice")
        assert factory.count == 1
        assert factory.last.observer_count == 4

        await factory.last.qr("2@shared")
        results = await asyncio.gather(first, second)
        assert [r.code for r in results] == ["2@shared", "2@shared"]
        assert factory.last.observer_count == 3

    @pytest.mark.asyncio
    async def test_join_shares_timeout(self, registry, store, factory):
        coordinator = _coordinator(registry, store, factory, default_timeout_s=0.05)
        results = await asyncio.gather(
            coordinator.get_pairing_code("alice"),
            coordinator.get_pairing_code("alice"),
            return_exceptions=True,
        )
        assert all(isinstance(r, PairingTimeout) for r in results)

    @pytest.mark.asyncio
    async def test_reject_fails_second_caller(self, registry, store, factory):
        coordinator = _coordinator(registry, store, factory, default_timeout_s=1.0, concurrency="reject")

        first = asyncio.create_task(coordinator.get_pairing_code("alice"))
        await wait_until(lambda: factory.count == 1 and factory.last.observer_count == 4)
        with pytest.raises(PairingAlreadyInProgress):
            await coordinator.get_pairing_code("alice")

        await factory.last.qr("2@only")
        assert (await first).code == "2@only"

    @pytest.mark.asyncio
    async def test_new_request_after_completion(self, registry, store, factory):
        coordinator = _coordinator(registry, store, factory, default_timeout_s=0.05, concurrency="reject")
        with pytest.raises(PairingTimeout):
            await coordinator.get_pairing_code("alice")
        with pytest.raises(PairingTimeout):
            await coordinator.get_pairing_code("alice")
