from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional

DEFAULT_NET_PORT = 9100
DEFAULT_WIDTH_DOTS = 576
SUPPORTED_WIDTH_DOTS = (384, 576)

IP_HINT_KEYS = ("ip_address", "Ip_address", "IP_ADDRESS", "ipAddress", "IpAddress")

_PORT_SUFFIX = re.compile(r":(\d{1,5})$")


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int = 1
    line_total: float = 0.0
    unit_price_hint: Optional[float] = None
    sub_line: str = ""
    toppings: tuple[str, ...] = ()
    remark: str = ""
    display_index: Any = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def unit_price(self) -> float:
        if self.unit_price_hint is not None:
            return self.unit_price_hint
        if self.quantity:
            return self.line_total / self.quantity
        return self.line_total

    @property
    def identity(self) -> str:
        """Stable key built from content; payload copies share it."""
        index = "" if self.display_index is None else self.display_index
        return f"{self.name}#{index}"

    @classmethod
    def from_dict(cls, payload: Any, position: int = 0) -> "LineItem":
        if not isinstance(payload, dict):
            payload = {}
        quantity = _to_int(payload.get("quantity"), 1)
        total = payload.get("item_amount")
        if total is None:
            total = payload.get("price")
        unit_hint = payload.get("unit_price", payload.get("item_price"))
        remark = payload.get("remarks") or payload.get("remark") or payload.get("note") or ""
        display_index = payload.get("display_index")
        if display_index in (None, ""):
            display_index = position
        return cls(
            name=str(payload.get("item_name") or ""),
            quantity=max(0, quantity),
            line_total=_to_float(total, 0.0),
            unit_price_hint=None if unit_hint is None else _to_float(unit_hint, 0.0),
            sub_line=str(payload.get("item_subLine") or ""),
            toppings=_parse_toppings(payload.get("toppings")),
            remark=str(remark).strip(),
            display_index=display_index,
            raw=dict(payload),
        )


@dataclass(frozen=True)
class KeyValueRow:
    label: str
    value: str

    @classmethod
    def from_dict(cls, payload: Any) -> "KeyValueRow":
        if not isinstance(payload, dict):
            return cls("", "")
        label = payload.get("key")
        value = payload.get("value")
        return cls("" if label is None else str(label), "" if value is None else str(value))


BLOCK_KINDS = (
    "logo",
    "header",
    "item",
    "bigsummary",
    "summary",
    "footer",
    "separator",
    "kitchen_print",
    "setting",
)


@dataclass(frozen=True)
class Block:
    kind: str
    index: int
    data: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    # logo
    @property
    def url(self) -> str:
        return str(self.data.get("url") or "")

    # header
    @property
    def title(self) -> str:
        return str(self.data.get("top_title") or "")

    @property
    def subtitles(self) -> list[str]:
        return _as_str_list(self.data.get("sub_titles"))

    # item / kitchen_print
    @property
    def items(self) -> list[LineItem]:
        raw_items = self.data.get("itemdata")
        if not isinstance(raw_items, list):
            return []
        return [LineItem.from_dict(entry, position) for position, entry in enumerate(raw_items)]

    # bigsummary / summary
    @property
    def rows(self) -> list[KeyValueRow]:
        raw_rows = self.data.get(self.kind)
        if not isinstance(raw_rows, list):
            return []
        return [KeyValueRow.from_dict(entry) for entry in raw_rows]

    # footer
    @property
    def lines(self) -> list[str]:
        return _as_str_list(self.data.get("footer_text"), keep_blank=True)

    @property
    def align(self) -> str:
        value = str(self.data.get("align") or self.raw.get("align") or "center").strip().lower()
        return value if value in ("left", "center", "right") else "center"

    # kitchen_print
    @property
    def individual(self) -> bool:
        for source in (self.raw, self.data):
            for key in ("individual_print", "individualPrint"):
                if key in source:
                    return str(source[key]).strip().lower() in ("1", "true", "yes")
        return False

    @property
    def ip_hints(self) -> list[str]:
        """Routing hints for this block, in order, without duplicates."""
        if self.kind == "setting":
            return split_hint_tokens(self.data.get("ip_address"))
        values = [self.raw.get(key) for key in IP_HINT_KEYS]
        values += [self.data.get(key) for key in IP_HINT_KEYS]
        return split_hint_tokens(values)


@dataclass(frozen=True)
class ReceiptDocument:
    blocks: tuple[Block, ...] = ()
    thank_you: str = ""
    chars_per_line: Optional[int] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ReceiptDocument":
        """Build a document from the inbound JSON shape.

        Absent or malformed sections degrade to nothing; only a non-object
        payload is rejected.
        """
        if not isinstance(payload, dict):
            raise ValueError("Payload must be a JSON object")

        raw_blocks = payload.get("data")
        if not isinstance(raw_blocks, list):
            raw_blocks = []

        blocks = tuple(_parse_block(entry, index) for index, entry in enumerate(raw_blocks))
        setting = next((b for b in blocks if b.kind == "setting"), None)
        setting_data = setting.data if setting else {}

        thank_you = payload.get("thankYou") or setting_data.get("thankyou_note") or ""
        width_hint = payload.get("item_length", setting_data.get("item_length"))

        return cls(
            blocks=blocks,
            thank_you=str(thank_you),
            chars_per_line=_to_int(width_hint, None),
            raw=payload,
        )

    def blocks_of(self, kind: str) -> list[Block]:
        return [block for block in self.blocks if block.kind == kind]

    @property
    def setting(self) -> Optional[Block]:
        return next((b for b in self.blocks if b.kind == "setting"), None)

    @property
    def is_kitchen_ticket(self) -> bool:
        content = [b for b in self.blocks if b.kind != "setting"]
        return len(content) == 1 and content[0].kind == "kitchen_print"

    def with_blocks(self, raw_blocks: list[dict[str, Any]]) -> "ReceiptDocument":
        """Copy of this document whose block list is replaced."""
        clone = dict(self.raw)
        clone["data"] = raw_blocks
        return ReceiptDocument.from_dict(clone)


@dataclass(frozen=True)
class PrinterProfile:
    host: str
    port: int = DEFAULT_NET_PORT
    width_dots: int = DEFAULT_WIDTH_DOTS
    copies: int = 1
    enabled: bool = True
    name: str = ""
    is_default: bool = False

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PrinterProfile":
        """Normalize a stored profile, filling every default."""
        host = str(payload.get("host") or "").strip()
        if not host:
            raise ValueError("Printer profile requires 'host'")
        port = _to_int(payload.get("port"), DEFAULT_NET_PORT)
        width = _to_int(payload.get("width_dots", payload.get("widthDots")), DEFAULT_WIDTH_DOTS)
        copies = _to_int(payload.get("copies"), 1)
        enabled = payload.get("enabled")
        return cls(
            host=host,
            port=port if port > 0 else DEFAULT_NET_PORT,
            width_dots=width if width in SUPPORTED_WIDTH_DOTS else DEFAULT_WIDTH_DOTS,
            copies=copies if copies > 0 else 1,
            enabled=enabled if isinstance(enabled, bool) else True,
            name=str(payload.get("name") or host),
            is_default=bool(payload.get("is_default", payload.get("isDefault", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "width_dots": self.width_dots,
            "copies": self.copies,
            "enabled": self.enabled,
            "is_default": self.is_default,
        }


@dataclass(frozen=True)
class RoutingTarget:
    profile: PrinterProfile
    section: str
    payload: ReceiptDocument
    block_index: int = -1
    item: Optional[LineItem] = None

    @property
    def key(self) -> tuple[str, int, str, int, str]:
        item_key = self.item.identity if self.item else ""
        return (self.profile.host, self.profile.port, self.section, self.block_index, item_key)

    @property
    def label(self) -> str:
        if self.section == "cashier":
            return "cashier/full"
        if self.item is not None:
            return f"kitchen#{self.block_index} (per-item {self.item.identity})"
        return f"kitchen#{self.block_index} (group)"


@dataclass
class RouteResult:
    handled: bool
    matched: bool
    printed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def parse_address(token: str) -> tuple[str, Optional[int]]:
    """Split ``host`` or ``host:port``; the port is ``None`` when absent."""
    text = (token or "").strip()
    match = _PORT_SUFFIX.search(text)
    if match:
        host = text[: match.start()].strip()
        if host:
            return host, int(match.group(1))
    return text, None


def split_hint_tokens(value: Any) -> list[str]:
    """Normalize a hint given as a string, comma list, or list of either."""
    values = value if isinstance(value, (list, tuple)) else [value]
    tokens: list[str] = []
    for entry in values:
        if isinstance(entry, (list, tuple)):
            tokens.extend(split_hint_tokens(entry))
            continue
        if not isinstance(entry, str):
            continue
        for part in entry.split(","):
            part = part.strip()
            if part and part not in tokens:
                tokens.append(part)
    return tokens


def _parse_block(entry: Any, index: int) -> Block:
    if not isinstance(entry, dict):
        return Block(kind="unknown", index=index)
    data = entry.get("data")
    if not isinstance(data, dict):
        data = {}
    kind = str(entry.get("type") or "").strip().lower()
    if kind not in BLOCK_KINDS:
        # near-miss spellings of footer still carry footer content
        kind = "footer" if "footer" in kind or "footer_text" in data else "unknown"
    return Block(kind=kind, index=index, data=data, raw=entry)


def _parse_toppings(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    names = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get("name") or entry.get("topping_name")
        if entry is not None and str(entry).strip():
            names.append(str(entry).strip())
    return tuple(names)


def _as_str_list(value: Any, keep_blank: bool = False) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    result = []
    for entry in value:
        if entry is None:
            continue
        text = str(entry)
        if text.strip() or keep_blank:
            result.append(text)
    return result


def _to_int(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return int(number)


def _to_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default
