"""Connection ownership: long-lived managed connections and per-job sessions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from common.events import emit
from printer.driver import PrinterTransport, session_key

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[], PrinterTransport]


class SessionRegistry:
    """Tracks the single open transport per (kind, address)."""

    def __init__(self) -> None:
        self._open: Dict[Tuple[str, str], PrinterTransport] = {}

    def track(self, transport: PrinterTransport) -> None:
        self._open[transport.session_key] = transport

    def forget(self, transport: PrinterTransport) -> None:
        if self._open.get(transport.session_key) is transport:
            del self._open[transport.session_key]

    def current(self, kind: str, address: Any) -> Optional[PrinterTransport]:
        return self._open.get(session_key(kind, address))

    async def release(self, kind: str, address: Any) -> None:
        """Best-effort close of whatever is open on this address."""
        transport = self._open.pop(session_key(kind, address), None)
        if transport is None:
            return
        emit(LOGGER, "session.release", logging.DEBUG, kind=kind, address=str(address))
        try:
            await transport.disconnect()
        except Exception:
            LOGGER.debug("Ignoring error while closing stale %s session", kind, exc_info=True)


REGISTRY = SessionRegistry()


class JobSession:
    """A fresh transport owned by one print job.

    Usage::

        async with JobSession(factory, address) as transport:
            await render_receipt(document, transport)

    The transport is connected on entry and always disconnected on exit.
    """

    def __init__(
        self,
        factory: TransportFactory,
        address: Any,
        registry: SessionRegistry = REGISTRY,
    ) -> None:
        self.factory = factory
        self.address = address
        self.registry = registry
        self.transport: Optional[PrinterTransport] = None

    async def __aenter__(self) -> PrinterTransport:
        transport = self.factory()
        await self.registry.release(transport.kind, self.address)
        await transport.init()
        await transport.connect(self.address)
        self.registry.track(transport)
        self.transport = transport
        return transport

    async def __aexit__(self, exc_type, exc, tb) -> None:
        transport, self.transport = self.transport, None
        if transport is None:
            return
        self.registry.forget(transport)
        try:
            await transport.disconnect()
        except Exception:
            LOGGER.debug("Ignoring error while closing job session", exc_info=True)


class ManagedConnection:
    """User-driven connect/disconnect, separate from per-job sessions."""

    def __init__(self, factory: TransportFactory, registry: SessionRegistry = REGISTRY) -> None:
        self.factory = factory
        self.registry = registry
        self.transport: Optional[PrinterTransport] = None

    @property
    def is_connected(self) -> bool:
        return bool(self.transport and self.transport.connected)

    @property
    def address(self) -> Any:
        return self.transport.address if self.transport else None

    async def connect(self, address: Any) -> None:
        await self.disconnect()
        transport = self.factory()
        await self.registry.release(transport.kind, address)
        await transport.init()
        await transport.connect(address)
        self.registry.track(transport)
        self.transport = transport
        emit(LOGGER, "connection.open", kind=transport.kind, address=str(transport.address))

    async def disconnect(self) -> None:
        transport, self.transport = self.transport, None
        if transport is None:
            return
        self.registry.forget(transport)
        try:
            await transport.disconnect()
        except Exception:
            LOGGER.debug("Ignoring error while closing managed connection", exc_info=True)
        emit(LOGGER, "connection.closed", kind=transport.kind, address=str(transport.address))

    def status(self) -> dict:
        return {
            "connected": self.is_connected,
            "kind": self.transport.kind if self.transport else None,
            "address": session_key(self.transport.kind, self.address)[1] if self.transport else None,
        }
