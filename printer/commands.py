"""ESC/POS byte sequences used for device priming and paper cutting."""
from escpos.constants import CTL_LF, ESC, GS, HW_INIT, PAPER_FULL_CUT, PAPER_PART_CUT

LINE_FEED = CTL_LF
INIT = HW_INIT                          # ESC @
INVERSE_OFF = ESC + b"{\x00"           # upside-down printing off
STANDARD_MODE = ESC + b"S"
DEFAULT_LINE_SPACING = ESC + b"2"
COLOR_BLACK = ESC + b"r\x00"
CODEPAGE_CP437 = ESC + b"t\x00"

CUT_FULL = PAPER_FULL_CUT               # GS V 0
CUT_PARTIAL = PAPER_PART_CUT            # GS V 1
CUT_FEED_THEN_CUT = GS + b"VB\x03"      # GS V 'B' 3
CUT_ALT_FULL = ESC + b"i"
CUT_ALT_PARTIAL = ESC + b"m"

PRIMING_SEQUENCE = (
    INIT,
    INVERSE_OFF,
    STANDARD_MODE,
    DEFAULT_LINE_SPACING,
    COLOR_BLACK,
    CODEPAGE_CP437,
)

DIRECT_FEED = LINE_FEED * 5


def cut_opcodes(mode: str = "full") -> tuple[bytes, ...]:
    """Raw cut commands to try in order for the requested mode."""
    if mode == "partial":
        return (CUT_PARTIAL, CUT_FEED_THEN_CUT, CUT_ALT_PARTIAL)
    return (CUT_FULL, CUT_FEED_THEN_CUT, CUT_ALT_FULL)


def primary_cut(mode: str = "full") -> bytes:
    return CUT_PARTIAL if mode == "partial" else CUT_FULL
