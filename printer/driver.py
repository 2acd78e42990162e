"""Printer transports for ESC/POS thermal printers over TCP and Bluetooth."""
from __future__ import annotations

import asyncio
import base64
import binascii
import importlib
import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from common.interface import DEFAULT_NET_PORT, parse_address
from config import settings

try:
    from PIL import Image
except ImportError:  # pragma: no cover
    Image = None

try:  # pragma: no cover - resolved only when optional dependency installed
    escpos_printer = importlib.import_module("escpos.printer")
except ModuleNotFoundError:  # pragma: no cover - library might not be installed locally
    escpos_printer = None
try:  # pragma: no cover - optional BLE dependency
    bleak = importlib.import_module("bleak")
except ModuleNotFoundError:  # pragma: no cover - warn later during connect
    bleak = None
try:  # pragma: no cover - optional classic Bluetooth dependency (pybluez2)
    bluetooth = importlib.import_module("bluetooth")
except (ModuleNotFoundError, OSError):  # pragma: no cover - warn later during RFCOMM cut
    bluetooth = None

LOGGER = logging.getLogger(__name__)

DIRECT_FLUSH_DELAY = 0.06


@dataclass(frozen=True)
class TextOptions:
    align: str = "left"
    bold: bool = False
    underline: bool = False


@dataclass(frozen=True)
class Capabilities:
    """Optional operations a transport supports, declared up front."""

    raw: bool = False
    cut: bool = False
    direct_socket: bool = False
    rfcomm: bool = False
    rfcomm_feed: bool = True
    confirms_cut: bool = True


class PrinterTransport:
    """Common interface for one physical printer connection."""

    kind = "generic"
    capabilities = Capabilities()

    def __init__(self, width_dots: Optional[int] = None) -> None:
        self.width_dots = int(width_dots or settings.PRINTER.get("width_dots", 576))
        self.address: Any = None
        self.connected = False

    async def init(self) -> None:
        return None

    async def connect(self, address: Any) -> None:
        raise NotImplementedError

    async def print_text(self, text: str, options: Optional[TextOptions] = None) -> None:
        raise NotImplementedError

    async def print_image_base64(self, data: str, image_width: int) -> None:
        raise NotImplementedError

    async def print_raw(self, data: bytes) -> None:
        raise NotImplementedError(f"{self.kind} transport does not accept raw bytes")

    async def cut(self, mode: str = "full") -> None:
        raise NotImplementedError(f"{self.kind} transport has no native cut")

    async def disconnect(self) -> None:
        self.connected = False

    @property
    def session_key(self) -> Tuple[str, str]:
        return session_key(self.kind, self.address)


def session_key(kind: str, address: Any) -> Tuple[str, str]:
    """Registry key for one physical link; ``(host, port)`` reads as ``host:port``."""
    if isinstance(address, (tuple, list)):
        address = f"{address[0]}:{address[1]}"
    return (kind, str(address))


class NetworkTransport(PrinterTransport):
    """Raw ESC/POS over TCP (port 9100) through python-escpos ``Network``."""

    kind = "network"

    def __init__(self, config: Optional[dict] = None, width_dots: Optional[int] = None) -> None:
        super().__init__(width_dots)
        self.config = config or settings.NETWORK
        self.host: Optional[str] = None
        self.port: int = DEFAULT_NET_PORT
        self.device = None
        self.connect_timeout = float(self.config.get("connect_timeout", 5.0))
        self.write_timeout = float(self.config.get("write_timeout", 10.0))
        self.capabilities = Capabilities(
            raw=True,
            cut=True,
            direct_socket=True,
            confirms_cut=bool(self.config.get("trust_sdk_cut", False)),
        )

    async def connect(self, address: Any) -> None:
        if escpos_printer is None:
            raise ConnectionError("python-escpos is not installed; cannot reach network printer")
        if isinstance(address, (tuple, list)):
            host, port = address[0], address[1]
        else:
            host, port = parse_address(str(address))
        self.host = str(host)
        self.port = int(port or DEFAULT_NET_PORT)
        self.address = f"{self.host}:{self.port}"

        LOGGER.debug("Connecting to network printer %s", self.address)
        device = escpos_printer.Network(self.host, port=self.port, timeout=self.connect_timeout)
        try:
            await self._call(device.open, timeout=self.connect_timeout)
        except Exception as exc:
            raise ConnectionError(f"Failed to connect to network printer {self.address}") from exc
        self.device = device
        self.connected = True

    async def print_text(self, text: str, options: Optional[TextOptions] = None) -> None:
        options = options or TextOptions()
        device = self._require_device()

        def _send() -> None:
            device.set(align=options.align, bold=options.bold, underline=1 if options.underline else 0)
            device.text(text)

        try:
            await self._call(_send)
        except Exception as exc:
            LOGGER.debug("Text write to %s failed", self.address, exc_info=True)
            raise RuntimeError(f"Failed to print text on {self.address}") from exc

    async def print_image_base64(self, data: str, image_width: int) -> None:
        device = self._require_device()
        image = decode_image(data, image_width, self.width_dots)
        try:
            await self._call(device.image, image, impl="bitImageColumn")
        except Exception as exc:
            raise RuntimeError(f"Failed to print image on {self.address}") from exc

    async def print_raw(self, data: bytes) -> None:
        device = self._require_device()
        try:
            await self._call(device._raw, bytes(data))
        except Exception as exc:
            raise RuntimeError(f"Failed to send raw bytes to {self.address}") from exc

    async def cut(self, mode: str = "full") -> None:
        device = self._require_device()
        try:
            await self._call(device.cut, mode="PART" if mode == "partial" else "FULL")
        except Exception as exc:
            raise RuntimeError(f"Failed to cut on {self.address}") from exc

    async def disconnect(self) -> None:
        device, self.device = self.device, None
        self.connected = False
        if device is None:
            return
        close_fn = getattr(device, "close", None)
        if callable(close_fn):
            try:
                await self._call(close_fn)
            except Exception:  # pragma: no cover - best-effort cleanup
                LOGGER.debug("Failed to close network printer %s", self.address, exc_info=True)

    async def send_direct(self, data: bytes) -> None:
        """Write bytes on a fresh socket, bypassing the buffered SDK connection."""
        if not self.host:
            raise ConnectionError("No host known for direct socket write")
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port), timeout=self.connect_timeout
        )
        try:
            writer.write(bytes(data))
            await asyncio.wait_for(writer.drain(), timeout=self.write_timeout)
            await asyncio.sleep(DIRECT_FLUSH_DELAY)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                LOGGER.debug("Direct socket to %s closed uncleanly", self.address, exc_info=True)

    def _require_device(self):
        if self.device is None:
            raise RuntimeError("Network printer is not connected")
        return self.device

    async def _call(self, fn, *args, timeout: Optional[float] = None, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs), timeout=timeout or self.write_timeout
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"Printer {self.address} did not respond in time") from exc


class BluetoothTransport(PrinterTransport):
    """BLE GATT writes of ESC/POS bytes built with python-escpos ``Dummy``."""

    kind = "bluetooth"

    def __init__(self, config: Optional[dict] = None, width_dots: Optional[int] = None) -> None:
        super().__init__(width_dots)
        self.config = config or settings.BLUETOOTH
        self.client = None
        self.characteristic = self.config.get("write_characteristic")
        self.chunk_size = max(1, int(self.config.get("chunk_size", 100)))
        self.chunk_delay = float(self.config.get("chunk_delay", 0.02))
        self.connect_timeout = float(self.config.get("connect_timeout", 10.0))
        self.write_timeout = float(self.config.get("write_timeout", 10.0))
        self.capabilities = Capabilities(
            raw=True,
            rfcomm=bool(self.config.get("rfcomm_fallback", True)),
            rfcomm_feed=bool(self.config.get("rfcomm_feed", True)),
            confirms_cut=bool(self.config.get("trust_sdk_cut", False)),
        )

    async def connect(self, address: Any) -> None:
        if bleak is None:
            raise ConnectionError("bleak is not installed; cannot reach Bluetooth printer")
        self.address = str(address)
        LOGGER.debug("Connecting to Bluetooth printer %s", self.address)
        client = bleak.BleakClient(self.address, timeout=self.connect_timeout)
        try:
            await asyncio.wait_for(client.connect(), timeout=self.connect_timeout + 1)
        except Exception as exc:
            raise ConnectionError(f"Failed to connect to Bluetooth printer {self.address}") from exc
        self.client = client
        self.connected = True

    async def print_text(self, text: str, options: Optional[TextOptions] = None) -> None:
        options = options or TextOptions()
        buffer = _dummy()
        buffer.set(align=options.align, bold=options.bold, underline=1 if options.underline else 0)
        buffer.text(text)
        await self._write(buffer.output)

    async def print_image_base64(self, data: str, image_width: int) -> None:
        buffer = _dummy()
        buffer.image(decode_image(data, image_width, self.width_dots), impl="bitImageColumn")
        await self._write(buffer.output)

    async def print_raw(self, data: bytes) -> None:
        await self._write(bytes(data))

    async def disconnect(self) -> None:
        client, self.client = self.client, None
        self.connected = False
        if client is None:
            return
        try:
            await asyncio.wait_for(client.disconnect(), timeout=self.connect_timeout)
        except Exception:  # pragma: no cover - best-effort cleanup
            LOGGER.debug("Failed to disconnect Bluetooth printer %s", self.address, exc_info=True)

    async def send_rfcomm(self, data: bytes, settle: float = 0.2) -> None:
        """Write bytes over a short-lived classic RFCOMM link to the same device."""
        if bluetooth is None:
            raise ConnectionError("pybluez2 is not installed; RFCOMM unavailable")
        if not self.address:
            raise ConnectionError("No Bluetooth address known for RFCOMM write")
        channel = int(self.config.get("rfcomm_channel", 1))
        address = self.address

        def _send() -> None:
            sock = bluetooth.BluetoothSocket(bluetooth.RFCOMM)
            try:
                sock.connect((address, channel))
                sock.send(bytes(data))
                time.sleep(settle)
            finally:
                sock.close()

        try:
            await asyncio.wait_for(asyncio.to_thread(_send), timeout=self.connect_timeout + settle)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"RFCOMM link to {address} timed out") from exc

    async def _write(self, data: bytes) -> None:
        if self.client is None:
            raise RuntimeError("Bluetooth printer is not connected")
        try:
            for start in range(0, len(data), self.chunk_size):
                chunk = data[start:start + self.chunk_size]
                await asyncio.wait_for(
                    self.client.write_gatt_char(self.characteristic, chunk, response=False),
                    timeout=self.write_timeout,
                )
                if self.chunk_delay:
                    await asyncio.sleep(self.chunk_delay)
        except Exception as exc:
            raise RuntimeError(f"Failed to write to Bluetooth printer {self.address}") from exc


def _dummy():
    if escpos_printer is None:
        raise RuntimeError("python-escpos is not installed; cannot encode printer commands")
    return escpos_printer.Dummy()


def decode_image(data: str, image_width: int, canvas_width: int):
    """Decode a base64 image and prepare a 1-bit bitmap centered on the paper."""
    if Image is None:
        raise RuntimeError("Pillow is not installed; cannot decode logo image")
    try:
        raw = base64.b64decode(data, validate=False)
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (binascii.Error, OSError, ValueError) as exc:
        raise RuntimeError("Failed to decode image data") from exc
    return prepare_bitmap(image, image_width, canvas_width)


def prepare_bitmap(image: "Image.Image", image_width: int, canvas_width: int):
    if image.mode != "L":
        image = image.convert("L")

    if image.width == 0 or image.height == 0:
        raise RuntimeError("Image has invalid dimensions")

    target = max(8, min(int(image_width), int(canvas_width)))
    scale_ratio = target / float(image.width)
    if scale_ratio != 1.0:
        new_width = max(1, int(image.width * scale_ratio))
        new_height = max(1, int(image.height * scale_ratio))
        image = image.resize((new_width, new_height), Image.LANCZOS)

    image = image.convert("1")

    if image.width < canvas_width:
        canvas = Image.new("1", (canvas_width, image.height), 1)
        x_offset = max(0, (canvas_width - image.width) // 2)
        canvas.paste(image, (x_offset, 0))
        image = canvas

    return image


__all__ = [
    "BluetoothTransport",
    "Capabilities",
    "NetworkTransport",
    "PrinterTransport",
    "TextOptions",
    "decode_image",
    "prepare_bitmap",
    "session_key",
]
