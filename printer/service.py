"""Job driver for inbound receipt payloads.

The cashier part of an order (everything but kitchen tickets) goes to the
Bluetooth printer when one is configured. Kitchen tickets only ever go to
network printers: through multi-printer routing when it is enabled and
profiles exist, otherwise to the single legacy network printer.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from common.events import emit
from common.interface import DEFAULT_NET_PORT, PrinterProfile, ReceiptDocument
from config import settings
from config.profiles import ProfileStore
from printer import router, template
from printer.driver import BluetoothTransport, NetworkTransport, PrinterTransport
from printer.renderer import render_receipt
from printer.session import REGISTRY, JobSession, SessionRegistry

LOGGER = logging.getLogger(__name__)

NO_ELIGIBLE_PRINTER = "No eligible printer"


@dataclass
class JobReport:
    printed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.printed) and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "printed": list(self.printed), "errors": list(self.errors)}


class PrintService:
    def __init__(
        self,
        store: Optional[ProfileStore] = None,
        network_factory: Optional[Callable[[Optional[PrinterProfile]], PrinterTransport]] = None,
        bluetooth_factory: Optional[Callable[[], PrinterTransport]] = None,
        registry: SessionRegistry = REGISTRY,
    ) -> None:
        self.store = store or ProfileStore()
        self.network_factory = network_factory or _network_transport
        self.bluetooth_factory = bluetooth_factory or BluetoothTransport
        self.registry = registry

    async def print_payload(self, raw: Any) -> JobReport:
        """Decode, validate and print one inbound payload."""
        return await self.print_document(template.load_document(raw))

    async def print_document(self, document: ReceiptDocument) -> JobReport:
        report = JobReport()
        emit(LOGGER, "job.start", blocks=len(document.blocks))

        multi_net = self.store.get_feature_flag()
        profiles = self.store.list() if multi_net else []

        if template.has_cashier_content(document):
            await self._print_cashier(template.cashier_payload(document), profiles, report)

        kitchen_blocks = document.blocks_of("kitchen_print")
        if kitchen_blocks:
            await self._print_kitchen(document, profiles, report)

        if not report.printed and not report.errors:
            report.errors.append(NO_ELIGIBLE_PRINTER)
        emit(
            LOGGER,
            "job.end",
            logging.INFO if report.ok else logging.WARNING,
            printed=len(report.printed),
            errors=len(report.errors),
        )
        return report

    async def _print_cashier(self, document: ReceiptDocument, profiles: List[PrinterProfile], report: JobReport) -> None:
        address = str(settings.BLUETOOTH.get("address") or "").strip()
        if address:
            label = f"cashier -> bluetooth {address}"
            await self._guarded(label, report, lambda: self._render_once(self.bluetooth_factory, address, document))
            return

        if profiles:
            result = await router.route(document, profiles, self.network_factory, self.registry)
            if result.handled:
                report.printed.extend(result.printed)
                report.errors.extend(f"{label} failed" for label in result.failed)
                if not result.matched:
                    report.errors.append("Cashier ip_address matched no saved printer")
                return

        legacy = _legacy_address()
        if legacy is None:
            LOGGER.info("No Bluetooth or network printer configured for the cashier receipt")
            return
        label = f"cashier -> network {legacy[0]}:{legacy[1]}"
        await self._guarded(label, report, lambda: self._render_once(lambda: self.network_factory(None), legacy, document))

    async def _print_kitchen(self, document: ReceiptDocument, profiles: List[PrinterProfile], report: JobReport) -> None:
        kitchen = document.with_blocks(
            [block.raw for block in document.blocks if block.kind in ("setting", "kitchen_print")]
        )
        if profiles:
            # cashier hints were already served by the cashier pass
            kitchen_only = kitchen.with_blocks(
                [_without_setting_hints(block.raw) if block.kind == "setting" else block.raw for block in kitchen.blocks]
            )
            result = await router.route(kitchen_only, profiles, self.network_factory, self.registry)
            if result.handled:
                report.printed.extend(result.printed)
                report.errors.extend(f"{label} failed" for label in result.failed)
                if not result.matched:
                    report.errors.append("Kitchen ip_address matched no saved printer")
                return

        legacy = _legacy_address()
        if legacy is None:
            LOGGER.info("No network printer configured for kitchen tickets")
            return
        label = f"kitchen -> network {legacy[0]}:{legacy[1]}"
        tickets = _kitchen_tickets(kitchen)
        await self._guarded(label, report, lambda: self._legacy_kitchen(tickets, legacy))

    async def _legacy_kitchen(self, tickets: List[ReceiptDocument], address) -> None:
        """Print each pending ticket on its own session, dropping it once printed.

        A cut may close the SDK connection, so tickets never share a session.
        A retry resumes at the ticket that failed.
        """
        ticket_delay = float(settings.NETWORK.get("ticket_delay", 0.12))
        while tickets:
            await self._render_once(lambda: self.network_factory(None), address, tickets[0])
            tickets.pop(0)
            if tickets:
                await asyncio.sleep(ticket_delay)

    async def _render_once(self, factory, address, document: ReceiptDocument) -> None:
        async with JobSession(factory, address, self.registry) as transport:
            await render_receipt(document, transport)
            await asyncio.sleep(float(settings.NETWORK.get("settle_delay", 0.15)))

    async def _guarded(self, label: str, report: JobReport, attempt: Callable[[], Awaitable[None]]) -> None:
        """Run ``attempt`` with one reconnect-and-retry, recording the outcome."""
        try:
            try:
                await attempt()
            except Exception as exc:
                emit(LOGGER, "job.retry", logging.WARNING, target=label, error=str(exc))
                await attempt()
        except Exception as exc:
            LOGGER.error("Print to %s failed after retry: %s", label, exc)
            report.errors.append(f"{label}: {exc}")
            return
        report.printed.append(label)


def _network_transport(profile: Optional[PrinterProfile] = None) -> PrinterTransport:
    if profile is None:
        return NetworkTransport()
    return NetworkTransport(width_dots=profile.width_dots)


def _legacy_address():
    host = str(settings.NETWORK.get("host") or "").strip()
    if not host:
        return None
    port = int(settings.NETWORK.get("port") or DEFAULT_NET_PORT)
    return (host, port if port > 0 else DEFAULT_NET_PORT)


def _without_setting_hints(raw: Dict[str, Any]) -> Dict[str, Any]:
    entry = dict(raw)
    data = dict(entry.get("data") or {})
    data.pop("ip_address", None)
    entry["data"] = data
    return entry


def _kitchen_tickets(document: ReceiptDocument) -> List[ReceiptDocument]:
    tickets: List[ReceiptDocument] = []
    for block in document.blocks_of("kitchen_print"):
        if block.individual:
            tickets.extend(template.single_item_kitchen_payload(document, block, item) for item in block.items)
        else:
            tickets.append(template.kitchen_payload(document, block))
    return tickets


__all__ = ["JobReport", "NO_ELIGIBLE_PRINTER", "PrintService"]
