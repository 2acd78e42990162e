import asyncio

import pytest

from printer.session import JobSession, ManagedConnection, SessionRegistry

from conftest import FakeTransport


def test_job_session_connects_and_always_disconnects():
    registry = SessionRegistry()
    created = []

    def factory():
        transport = FakeTransport()
        created.append(transport)
        return transport

    async def main():
        async with JobSession(factory, ("10.0.0.5", 9100), registry) as transport:
            assert registry.current("fake", ("10.0.0.5", 9100)) is transport
            await transport.print_text("hello\n")
            raise RuntimeError("render failed")

    with pytest.raises(RuntimeError):
        asyncio.run(main())

    names = [call[0] for call in created[0].calls]
    assert names == ["init", "connect", "text", "disconnect"]
    assert registry.current("fake", ("10.0.0.5", 9100)) is None


def test_new_session_closes_stale_one_on_same_address():
    registry = SessionRegistry()
    managed = ManagedConnection(FakeTransport, registry)

    async def main():
        await managed.connect("AA:BB:CC:DD:EE:FF")
        stale = managed.transport
        async with JobSession(FakeTransport, "AA:BB:CC:DD:EE:FF", registry) as transport:
            assert transport is not stale
            assert ("disconnect",) in stale.calls
        return stale

    stale = asyncio.run(main())
    assert not stale.connected


def test_managed_connection_status():
    managed = ManagedConnection(FakeTransport, SessionRegistry())
    assert managed.status() == {"connected": False, "kind": None, "address": None}

    asyncio.run(managed.connect("10.0.0.9:9100"))
    assert managed.status() == {"connected": True, "kind": "fake", "address": "10.0.0.9:9100"}

    asyncio.run(managed.disconnect())
    assert not managed.is_connected
