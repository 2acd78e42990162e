import math

import pytest

from common.interface import LineItem
from printer import utils


def test_chars_per_line_uses_hint_then_dots_and_clamps():
    assert utils.chars_per_line(576) == 48
    assert utils.chars_per_line(384) == 32
    assert utils.chars_per_line(576, hint=40) == 40
    assert utils.chars_per_line(100) == utils.MIN_CHARS
    assert utils.chars_per_line(576, hint=200) == utils.MAX_CHARS


@pytest.mark.parametrize("width", [24, 32, 48, 64])
def test_wrap_text_never_exceeds_width_and_keeps_words(width):
    text = "Extra large caramel macchiato with oat milk " + "x" * 150 + " and a pinch of cinnamon"
    lines = utils.wrap_text(text, width)
    assert all(len(line) <= width for line in lines)
    assert "".join("".join(lines).split()) == "".join(text.split())


def test_wrap_text_splits_long_words_on_their_own_lines():
    assert utils.wrap_text("ab cdefghij kl", 4) == ["ab", "cdef", "ghij", "kl"]
    assert utils.wrap_text("", 10) == []
    assert utils.wrap_text("   ", 10) == []


def test_padding_truncates_before_padding():
    assert utils.pad_right("abc", 5) == "abc  "
    assert utils.pad_left("abc", 5) == "  abc"
    assert utils.pad_center("ab", 6) == "  ab  "
    assert utils.pad_right("abcdefgh", 5) == "abcde"
    assert utils.pad_right("abcdefgh", 5, ellipsis=True) == "ab..."
    assert utils.pad_left("abcdefgh", 3, ellipsis=True) == "abc"


def test_format_money():
    assert utils.format_money(3) == "3.00"
    assert utils.format_money(2.005) in ("2.00", "2.01")
    assert utils.format_money("4.5") == "4.50"
    assert utils.format_money(math.nan) == "0.00"
    assert utils.format_money(math.inf) == "0.00"
    assert utils.format_money("abc") == "0.00"
    assert utils.format_money(None) == "0.00"


def test_compute_columns():
    assert utils.compute_columns(48) == utils.Columns(26, 4, 7, 8)
    assert utils.compute_columns(24).item == utils.MIN_ITEM_WIDTH


def test_unit_price_derivation():
    assert LineItem("Tea", quantity=4, line_total=10.0).unit_price == 2.5
    free = LineItem("Tea", quantity=0, line_total=10.0)
    assert free.unit_price == 10.0
    assert utils.format_money(free.unit_price) == "10.00"


def test_item_rows_wrap_and_indent_details():
    item = LineItem(
        "Very long sandwich name that wraps around",
        quantity=1,
        line_total=12.5,
        sub_line="no salt",
        toppings=("Cheese",),
    )
    rows = utils.item_rows(item, 32)
    assert all(len(row) == 32 for row in rows)
    assert rows[0].startswith("Very long ")
    assert rows[0].endswith("12.50")
    assert any(row.startswith("  no salt") for row in rows)
    assert any(row.startswith("  + Cheese") for row in rows)
    assert rows[1].strip() and rows[1][10:].strip() == ""


@pytest.mark.parametrize(
    "label,value",
    [("Total", "6.00"), ("A very long label that keeps going", "1.00"), ("VAT", "123456789.00"), ("", "")],
)
def test_aligned_key_value_is_exact_width(label, value):
    for width in (24, 32, 48, 64):
        line = utils.aligned_key_value(label, value, width)
        assert len(line) == width
        amount = utils.compute_columns(width).amount
        assert line[-amount:].strip() == value[-amount:]


def test_footer_line_aligns_key_value_pairs():
    line = utils.footer_line("Cash: 10.00", 32)
    assert line.startswith("Cash:")
    assert line.endswith("10.00")
    assert len(line) == 32
    assert utils.footer_line("  Visit again  ", 32) == "Visit again"
    assert utils.footer_line("Note:", 32) == "Note:"


def test_rule_is_clamped():
    assert utils.rule(32) == "-" * 32
    assert utils.rule(2) == "-" * 8
    assert utils.rule(100) == "-" * 64
