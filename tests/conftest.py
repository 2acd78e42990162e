import os
import tempfile

_SETTINGS_DIR = tempfile.mkdtemp(prefix="receipt-router-tests-")
os.environ["RECEIPT_ROUTER_SETTINGS"] = os.path.join(_SETTINGS_DIR, "settings.json")

import pytest  # noqa: E402

from config import settings  # noqa: E402
from printer.driver import Capabilities, PrinterTransport  # noqa: E402
from printer.image import LogoImage  # noqa: E402


class FakeTransport(PrinterTransport):
    """Records every call; failures are injected per operation."""

    kind = "fake"

    def __init__(self, capabilities=None, width_dots=576, log=None, fail=None):
        super().__init__(width_dots)
        self.capabilities = capabilities or Capabilities(raw=True, cut=True, confirms_cut=True)
        self.calls = log if log is not None else []
        self.fail = dict(fail or {})
        self.texts = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        remaining = self.fail.get(name, 0)
        if remaining:
            self.fail[name] = remaining - 1
            raise RuntimeError(f"{name} failed")

    async def init(self):
        self._record("init")

    async def connect(self, address):
        self._record("connect", address)
        self.address = address
        self.connected = True

    async def print_text(self, text, options=None):
        self._record("text", text, options)
        self.texts.append(text)

    async def print_image_base64(self, data, image_width):
        self._record("image", data, image_width)

    async def print_raw(self, data):
        self._record("raw", bytes(data))

    async def cut(self, mode="full"):
        self._record("cut", mode)

    async def send_direct(self, data):
        self._record("direct", bytes(data))

    async def send_rfcomm(self, data, settle=0.2):
        self._record("rfcomm", bytes(data))

    async def disconnect(self):
        self.calls.append(("disconnect",))
        self.connected = False

    @property
    def output(self):
        return "".join(self.texts)

    @property
    def lines(self):
        return self.output.split("\n")


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    settings.save_all(settings.get_defaults())
    # no real sleeps in tests
    monkeypatch.setitem(settings.NETWORK, "settle_delay", 0)
    monkeypatch.setitem(settings.NETWORK, "ticket_delay", 0)
    profiles_file = settings.config_dir() / "printer_profiles.json"
    if profiles_file.exists():
        profiles_file.unlink()
    yield


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def logo_loader():
    calls = []

    async def _load(url, width_dots, scale):
        calls.append((url, width_dots, scale))
        return LogoImage("data:image/jpeg;base64,QUJD", 317)

    _load.calls = calls
    return _load


@pytest.fixture
def cafe_document():
    return {
        "data": [
            {"type": "header", "data": {"top_title": "Cafe"}},
            {"type": "item", "data": {"itemdata": [{"item_name": "Coffee", "quantity": 2, "item_amount": 6.00}]}},
            {"type": "summary", "data": {"summary": [{"key": "Total", "value": "6.00"}]}},
        ]
    }


@pytest.fixture
def order_document():
    return {
        "thankYou": "Thank you!",
        "data": [
            {"type": "setting", "data": {"ip_address": "192.168.1.10", "item_length": 32}},
            {"type": "header", "data": {"top_title": "Cafe", "sub_titles": ["Main St 1"]}},
            {
                "type": "item",
                "data": {
                    "itemdata": [
                        {"item_name": "Coffee", "quantity": 2, "item_amount": 6.0},
                        {"item_name": "Bagel", "quantity": 1, "item_amount": 2.5},
                    ]
                },
            },
            {"type": "summary", "data": {"summary": [{"key": "Total", "value": "8.50"}]}},
            {
                "type": "kitchen_print",
                "individual_print": "1",
                "ip_address": "192.168.1.20",
                "data": {
                    "itemdata": [
                        {"item_name": "Coffee", "quantity": 2, "display_index": 1},
                        {"item_name": "Bagel", "quantity": 1, "display_index": 2, "toppings": ["Cream cheese"]},
                    ]
                },
            },
            {
                "type": "kitchen_print",
                "individual_print": "0",
                "data": {
                    "ip_address": "192.168.1.30:9100",
                    "itemdata": [{"item_name": "Bagel", "quantity": 1, "remarks": "toasted"}],
                },
            },
        ],
    }
