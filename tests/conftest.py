"""Shared pytest fixtures and the fake protocol client used across tests."""

import asyncio

import pytest

from wasession.protocol.base import ProtocolClient
from wasession.protocol.events import (
    ConnectionUpdate,
    CredentialBlob,
    CredentialsUpdate,
    DisconnectReason,
    IncomingMessage,
)
from wasession.session.credentials import CredentialStore
from wasession.session.lifecycle import SessionLifecycle
from wasession.session.pairing import PairingCoordinator
from wasession.session.registry import SessionRegistry

RECONNECT_DELAY = 0.05
VERSION = [2, 3000, 1015901307]


class FakeClient(ProtocolClient):
    """Protocol client test double; events are fired by the test."""

    name = "fake"

    def __init__(self, session_id, credentials, version, pairing_code=None, pairing_error=None):
        super().__init__(session_id, credentials, version)
        self.pairing_code = pairing_code
        self.pairing_error = pairing_error
        self.connected = False
        self.closed = False
        self.sent: list[tuple[str, str]] = []
        self.pairing_requests: list[str] = []

    async def connect(self):
        self.connected = True

    async def close(self):
        self.closed = True

    async def send(self, to, text):
        self.sent.append((to, text))

    @property
    def supports_pairing_code(self):
        return self.pairing_code is not None or self.pairing_error is not None

    async def request_pairing_code(self, phone_number):
        self.pairing_requests.append(phone_number)
        if self.pairing_error is not None:
            raise self.pairing_error
        return self.pairing_code

    async def open(self):
        await self._emit("state", ConnectionUpdate(connection="open"))

    async def drop(self, reason=DisconnectReason.CONNECTION_LOST):
        await self._emit("state", ConnectionUpdate(connection="close", reason=reason))

    async def qr(self, code):
        await self._emit("state", ConnectionUpdate(qr=code))

    async def creds(self, creds=None, keys=None):
        await self._emit("credentials", CredentialsUpdate(creds=creds or {}, keys=keys or {}))

    async def message(self, text, remote_jid="254700000001@s.whatsapp.net", from_me=False):
        await self._emit("message", IncomingMessage(id="m1", remote_jid=remote_jid, text=text, from_me=from_me))


class FakeFactory:
    """Client factory that records every construction."""

    def __init__(self, **client_kwargs):
        self.client_kwargs = client_kwargs
        self.clients: list[FakeClient] = []
        self.fail_next = 0

    def __call__(self, session_id: str, credentials: CredentialBlob, version: list[int]) -> FakeClient:
        if self.fail_next:
            self.fail_next -= 1
            raise RuntimeError("bridge unavailable")
        client = FakeClient(session_id, credentials, version, **self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def count(self) -> int:
        return len(self.clients)

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]


async def fixed_version() -> list[int]:
    await asyncio.sleep(0)
    return list(VERSION)


async def settle(seconds: float = 0.0) -> None:
    """Let scheduled tasks run."""
    await asyncio.sleep(seconds)
    for _ in range(20):
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "sessions")


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def handled():
    """Messages seen by the recording message handler."""
    return []


@pytest.fixture
def lifecycle(registry, store, factory, handled):
    async def handler(client, message):
        handled.append(message.text)

    return SessionLifecycle(
        registry=registry,
        store=store,
        client_factory=factory,
        version_source=fixed_version,
        message_handler=handler,
        reconnect_delay_s=RECONNECT_DELAY,
    )


@pytest.fixture
def pairing(lifecycle, store):
    return PairingCoordinator(lifecycle, store, owner_number="254112399557", default_timeout_s=1.0)
