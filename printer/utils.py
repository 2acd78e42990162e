"""Character-grid layout helpers for fixed-pitch thermal receipts."""
from __future__ import annotations

import math
from typing import Iterable, List, NamedTuple

from common.interface import LineItem

MIN_CHARS = 24
MAX_CHARS = 64
DOTS_PER_CHAR = 12

QTY_WIDTH = 4
PRICE_WIDTH = 7
AMOUNT_WIDTH = 8
COLUMN_GAPS = 3
MIN_ITEM_WIDTH = 8

ITEM_NAME_WRAP = 30
AMOUNT_GAP = 3


class Columns(NamedTuple):
    item: int
    qty: int
    price: int
    amount: int


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def chars_per_line(width_dots: int, hint: int | None = None, dots_per_char: int = DOTS_PER_CHAR) -> int:
    if hint:
        return clamp(int(hint), MIN_CHARS, MAX_CHARS)
    return clamp(int(width_dots) // max(1, dots_per_char), MIN_CHARS, MAX_CHARS)


def wrap_text(text: str, width: int) -> List[str]:
    """Greedy word wrap; words wider than ``width`` are split into chunks."""
    width = max(1, width)
    lines: List[str] = []
    line = ""
    for word in str(text or "").split():
        candidate = f"{line} {word}" if line else word
        if len(candidate) <= width:
            line = candidate
            continue
        if line:
            lines.append(line)
        if len(word) > width:
            lines.extend(word[i:i + width] for i in range(0, len(word), width))
            line = ""
        else:
            line = word
    if line:
        lines.append(line)
    return lines


def _clip(text: str, width: int, ellipsis: bool) -> str:
    if ellipsis and width >= 4:
        return text[: width - 3] + "..."
    return text[:width]


def pad_right(text: str, width: int, ellipsis: bool = False) -> str:
    text = str(text or "")
    if len(text) > width:
        return _clip(text, width, ellipsis)
    return text.ljust(width)


def pad_left(text: str, width: int, ellipsis: bool = False) -> str:
    text = str(text or "")
    if len(text) > width:
        return _clip(text, width, ellipsis)
    return text.rjust(width)


def pad_center(text: str, width: int, ellipsis: bool = False) -> str:
    text = str(text or "")
    if len(text) > width:
        return _clip(text, width, ellipsis)
    left = (width - len(text)) // 2
    return " " * left + text + " " * (width - len(text) - left)


def format_money(value) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0.00"
    if not math.isfinite(number):
        return "0.00"
    return f"{number:.2f}"


def compute_columns(total: int) -> Columns:
    item = max(MIN_ITEM_WIDTH, total - (QTY_WIDTH + PRICE_WIDTH + AMOUNT_WIDTH + COLUMN_GAPS))
    return Columns(item, QTY_WIDTH, PRICE_WIDTH, AMOUNT_WIDTH)


def _row(cols: Columns, item: str = "", qty: str = "", price: str = "", amount: str = "") -> str:
    return " ".join(
        (
            pad_right(item, cols.item),
            pad_left(qty, cols.qty),
            pad_left(price, cols.price),
            pad_left(amount, cols.amount),
        )
    )


def item_header_row(total: int) -> str:
    return _row(compute_columns(total), "Item", "Qty", "Price", "Amount")


def item_rows(item: LineItem, total: int) -> List[str]:
    """Every printed row for one line item, continuation rows blanked."""
    cols = compute_columns(total)
    names = wrap_text(item.name, min(cols.item, ITEM_NAME_WRAP)) or [""]
    rows = [
        _row(
            cols,
            names[0],
            str(item.quantity),
            format_money(item.unit_price),
            format_money(item.line_total),
        )
    ]
    rows.extend(_row(cols, tail) for tail in names[1:])
    if item.sub_line:
        rows.extend(_row(cols, "  " + part) for part in wrap_text(item.sub_line, cols.item - 2))
    for topping in item.toppings:
        rows.extend(_row(cols, "  + " + part) for part in wrap_text(topping, cols.item - 4))
    return rows


def aligned_key_value(label: str, value: str, total: int, gap: int = AMOUNT_GAP) -> str:
    """Label on the left, value right-aligned under the item table's Amount column."""
    amount = compute_columns(total).amount
    label_width = max(1, total - amount - gap)
    value_text = str(value if value is not None else "")
    if len(value_text) > amount:
        value_text = value_text[-amount:]
    line = pad_right(str(label if label is not None else ""), label_width) + " " * gap + pad_left(value_text, amount)
    return line[-total:] if len(line) > total else line


def footer_line(line: str, total: int) -> str:
    """``key: value`` lines align like summary rows; anything else passes through."""
    text = str(line or "")
    if ":" in text:
        key, value = text.split(":", 1)
        if key.strip() and value.strip():
            return aligned_key_value(key.strip() + ":", value.strip(), total)
    return text.strip()


def rule(width: int, char: str = "-") -> str:
    return (char or "-") * clamp(width, 8, MAX_CHARS)


def join_lines(lines: Iterable[str]) -> str:
    return "\n".join(lines) + "\n"
