import asyncio
import json

import pytest

from config import settings
from config.profiles import ProfileStore
from printer import commands
from printer.driver import Capabilities
from printer.service import NO_ELIGIBLE_PRINTER, JobReport, PrintService
from printer.session import SessionRegistry

from conftest import FakeTransport


class ClosingTransport(FakeTransport):
    """Loses its connection after the direct-socket cut, like a real network printer."""

    async def print_text(self, text, options=None):
        if not self.connected:
            raise RuntimeError("Network printer is not connected")
        await super().print_text(text, options)


class Factory:
    def __init__(self, fail_first_connect=False, transport_class=FakeTransport, capabilities=None):
        self.transports = []
        self.fail_first_connect = fail_first_connect
        self.transport_class = transport_class
        self.capabilities = capabilities

    def __call__(self, profile=None):
        fail = {}
        if self.fail_first_connect:
            fail = {"connect": 1}
            self.fail_first_connect = False
        transport = self.transport_class(
            capabilities=self.capabilities,
            width_dots=profile.width_dots if profile else None,
            fail=fail,
        )
        self.transports.append(transport)
        return transport


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path / "profiles.json")


def _service(store, network=None, bluetooth=None):
    return PrintService(
        store=store,
        network_factory=network or Factory(),
        bluetooth_factory=bluetooth or Factory(),
        registry=SessionRegistry(),
    )


def test_cashier_to_bluetooth_and_kitchen_to_legacy_printer(store, monkeypatch, order_document):
    monkeypatch.setitem(settings.BLUETOOTH, "address", "AA:BB:CC:DD:EE:FF")
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.50")
    network, bluetooth = Factory(), Factory()

    report = asyncio.run(_service(store, network, bluetooth).print_payload(order_document))

    assert report.ok, report.errors
    assert report.printed == [
        "cashier -> bluetooth AA:BB:CC:DD:EE:FF",
        "kitchen -> network 192.168.0.50:9100",
    ]
    assert len(bluetooth.transports) == 1
    receipt = bluetooth.transports[0].output
    assert "Coffee" in receipt and "Thank you!" in receipt and "KITCHEN" not in receipt

    assert len(network.transports) == 3
    for kitchen in network.transports:
        assert kitchen.calls[1] == ("connect", ("192.168.0.50", 9100))
        assert kitchen.output.count("KITCHEN") == 1
        assert kitchen.calls[-1] == ("disconnect",)


def test_legacy_kitchen_tickets_survive_direct_socket_cut(store, monkeypatch, order_document):
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.50")
    network = Factory(
        transport_class=ClosingTransport,
        capabilities=Capabilities(raw=True, cut=True, direct_socket=True, confirms_cut=False),
    )
    payload = {"data": [block for block in order_document["data"] if block["type"] in ("setting", "kitchen_print")]}

    report = asyncio.run(_service(store, network).print_payload(payload))

    assert report.ok, report.errors
    assert report.printed == ["kitchen -> network 192.168.0.50:9100"]
    assert [t.output.count("KITCHEN") for t in network.transports] == [1, 1, 1]
    assert all(("direct", commands.DIRECT_FEED + commands.CUT_FULL) in t.calls for t in network.transports)


def test_legacy_kitchen_retry_resumes_at_failed_ticket(store, monkeypatch, order_document):
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.50")
    payload = {"data": [block for block in order_document["data"] if block["type"] in ("setting", "kitchen_print")]}
    transports = []

    def flaky(profile=None):
        # second ticket: first connect is refused
        transport = FakeTransport(fail={"connect": 1} if len(transports) == 1 else {})
        transports.append(transport)
        return transport

    report = asyncio.run(_service(store, flaky).print_payload(payload))

    assert report.ok, report.errors
    printed = [t.output for t in transports if t.output]
    assert len(printed) == 3
    assert "Coffee" in printed[0]
    assert "Bagel" in printed[1] and "Bagel" in printed[2]


def test_nothing_configured_reports_no_eligible_printer(store, order_document):
    report = asyncio.run(_service(store).print_payload(order_document))
    assert not report.ok
    assert report.errors == [NO_ELIGIBLE_PRINTER]
    assert report.to_dict() == {"ok": False, "printed": [], "errors": [NO_ELIGIBLE_PRINTER]}


def test_multi_printer_routing_splits_cashier_and_kitchen(store, order_document):
    store.save([{"host": "192.168.1.10"}, {"host": "192.168.1.20"}, {"host": "192.168.1.30"}])
    store.set_feature_flag(True)
    network = Factory()

    report = asyncio.run(_service(store, network).print_payload(order_document))

    assert report.ok, report.errors
    assert len(report.printed) == 4
    hosts = [t.calls[1][1][0] for t in network.transports]
    assert hosts == ["192.168.1.10", "192.168.1.20", "192.168.1.20", "192.168.1.30"]
    assert "KITCHEN" not in network.transports[0].output


def test_unmatched_kitchen_hints_never_fall_back(store, monkeypatch, order_document):
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.50")
    store.save([{"host": "192.168.1.10"}])
    store.set_feature_flag(True)
    network = Factory()

    report = asyncio.run(_service(store, network).print_payload(order_document))

    assert report.printed == ["cashier/full -> 192.168.1.10:9100"]
    assert report.errors == ["Kitchen ip_address matched no saved printer"]
    assert all(t.calls[1][1][0] != "192.168.0.50" for t in network.transports)


def test_kitchen_without_hints_uses_legacy_printer_when_routing_enabled(store, monkeypatch):
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.50")
    store.save([{"host": "192.168.1.10"}])
    store.set_feature_flag(True)
    network = Factory()
    payload = {"data": [{"type": "kitchen_print", "data": {"itemdata": [{"item_name": "Soup"}]}}]}

    report = asyncio.run(_service(store, network).print_payload(payload))

    assert report.printed == ["kitchen -> network 192.168.0.50:9100"]


def test_single_target_retries_once(store, monkeypatch, cafe_document):
    monkeypatch.setitem(settings.BLUETOOTH, "address", "AA:BB:CC:DD:EE:FF")
    bluetooth = Factory(fail_first_connect=True)

    report = asyncio.run(_service(store, bluetooth=bluetooth).print_payload(json.dumps(json.dumps(cafe_document))))

    assert report.ok
    assert len(bluetooth.transports) == 2
    assert "Coffee" in bluetooth.transports[1].output


def test_double_failure_is_reported(store, monkeypatch, cafe_document):
    monkeypatch.setitem(settings.NETWORK, "host", "192.168.0.50")

    def broken(profile=None):
        return FakeTransport(fail={"connect": 1})

    report = asyncio.run(_service(store, network=broken).print_payload(cafe_document))

    assert not report.ok
    assert report.printed == []
    assert report.errors[0].startswith("cashier -> network 192.168.0.50:9100: ")


def test_job_report_ok_requires_prints_and_no_errors():
    assert not JobReport().ok
    assert JobReport(printed=["a"]).ok
    assert not JobReport(printed=["a"], errors=["b"]).ok


def test_invalid_payload_raises_value_error(store):
    with pytest.raises(ValueError):
        asyncio.run(_service(store).print_payload("not json"))
