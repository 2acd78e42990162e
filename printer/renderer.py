from __future__ import annotations

import logging
import re
import time
from typing import Awaitable, Callable, List, Optional

from common.events import emit
from common.interface import Block, ReceiptDocument
from config import settings
from printer import commands, utils
from printer.cutter import CutResult, resolve_cut
from printer.driver import PrinterTransport, TextOptions
from printer.image import LogoImage, fetch_logo_base64

LOGGER = logging.getLogger(__name__)

LogoLoader = Callable[[str, int, float], Awaitable[LogoImage]]

_DATA_URI_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9+.-]+;base64,")

KITCHEN_BANNER = "KITCHEN"
KITCHEN_END = "Ticket End"


class ReceiptRenderer:
    """Emits one receipt document through a connected transport.

    Blocks print in document order. Every tabular block of a job shares one
    alignment so the Amount column lines up from the item table down to the
    totals. Only failures of the transport's required primitives escape;
    logos, device priming and the paper cut are best effort.
    """

    def __init__(
        self,
        transport: PrinterTransport,
        dots_width: Optional[int] = None,
        logo_scale: Optional[float] = None,
        logo_loader: Optional[LogoLoader] = None,
        footer_policy: Optional[str] = None,
        cut_mode: Optional[str] = None,
    ) -> None:
        config = settings.PRINTER
        self.transport = transport
        self.dots_width = int(dots_width or config.get("width_dots", 576))
        self.logo_scale = float(logo_scale if logo_scale is not None else config.get("logo_scale", 0.55))
        self.logo_loader = logo_loader or fetch_logo_base64
        self.footer_policy = footer_policy or config.get("footer_policy", "inline")
        self.cut_mode = cut_mode or config.get("cut_mode", "full")
        self.dots_per_char = int(config.get("dots_per_char", utils.DOTS_PER_CHAR))
        self.width = utils.MIN_CHARS
        self.table_align = "left"

    async def render(self, document: ReceiptDocument) -> CutResult:
        started = time.monotonic()
        self.width = utils.chars_per_line(self.dots_width, document.chars_per_line, self.dots_per_char)
        capacity = self.dots_width // max(1, self.dots_per_char)
        self.table_align = "center" if capacity > self.width else "left"

        emit(
            LOGGER,
            "render.start",
            dots_width=self.dots_width,
            chars=self.width,
            blocks=len(document.blocks),
            kitchen=document.is_kitchen_ticket,
        )

        await self._prime()

        if document.is_kitchen_ticket:
            await self._kitchen(document.blocks_of("kitchen_print")[0])
        else:
            deferred: List[Block] = []
            for block in document.blocks:
                if block.kind == "footer" and self.footer_policy == "deferred":
                    deferred.append(block)
                    continue
                await self._block(block)
            for block in deferred:
                await self._footer(block)
            if document.thank_you:
                await self._text(document.thank_you + "\n", align="center")

        await self._text("\n\n")
        result = await resolve_cut(self.transport, self.cut_mode)
        emit(LOGGER, "render.done", ms=round((time.monotonic() - started) * 1000), cut=result.strategy)
        return result

    async def _block(self, block: Block) -> None:
        handler = {
            "logo": self._logo,
            "header": self._header,
            "item": self._items,
            "bigsummary": self._summary,
            "summary": self._summary,
            "footer": self._footer,
            "separator": self._separator,
        }.get(block.kind)
        if handler is None:
            LOGGER.debug("Skipping %s block #%d", block.kind, block.index)
            return
        await handler(block)

    async def _text(self, text: str, align: str = "left", bold: bool = False) -> None:
        await self.transport.print_text(text, TextOptions(align=align, bold=bold))

    async def _rule(self, align: Optional[str] = None) -> None:
        await self._text(utils.rule(self.width) + "\n", align=align or self.table_align)

    async def _prime(self) -> None:
        if not self.transport.capabilities.raw:
            LOGGER.debug("Transport has no raw channel; skipping ESC/POS init")
            return
        try:
            for sequence in commands.PRIMING_SEQUENCE:
                await self.transport.print_raw(sequence)
        except Exception as exc:
            emit(LOGGER, "render.prime_failed", logging.WARNING, error=str(exc))

    async def _logo(self, block: Block) -> None:
        if not block.url:
            return
        try:
            logo = await self.logo_loader(block.url, self.dots_width, self.logo_scale)
            safe_width = max(8, min(self.dots_width, int(logo.width_dots) & ~7))
            data = _DATA_URI_PREFIX.sub("", logo.base64)
            await self.transport.print_image_base64(data, safe_width)
            await self._text("\n")
        except Exception as exc:
            emit(LOGGER, "render.logo_skipped", logging.WARNING, url=block.url, error=str(exc))

    async def _header(self, block: Block) -> None:
        lines = ([block.title] if block.title else []) + block.subtitles
        if lines:
            await self._text(utils.join_lines(lines), align="center", bold=bool(block.title))
        await self._rule("center")

    async def _items(self, block: Block) -> None:
        rows = [utils.item_header_row(self.width), utils.rule(self.width)]
        for item in block.items:
            rows.extend(utils.item_rows(item, self.width))
        await self._text(utils.join_lines(rows), align=self.table_align, bold=True)
        await self._rule()

    async def _summary(self, block: Block) -> None:
        rows = [utils.aligned_key_value(row.label, row.value, self.width) for row in block.rows]
        if not rows:
            return
        await self._text(utils.join_lines(rows), align=self.table_align)
        await self._rule()

    async def _footer(self, block: Block) -> None:
        lines = [utils.footer_line(line, self.width) for line in block.lines]
        if lines:
            await self._text(utils.join_lines(lines), align=block.align)

    async def _separator(self, block: Block) -> None:
        await self._rule()

    async def _kitchen(self, block: Block) -> None:
        await self._text(KITCHEN_BANNER + "\n", align="center", bold=True)
        await self._rule("center")
        for item in block.items:
            head = utils.wrap_text(f"{item.quantity} x {item.name}", self.width)
            await self._text(utils.join_lines(head), bold=True)
            details = []
            for topping in item.toppings:
                details.extend("   - " + part for part in utils.wrap_text(topping, self.width - 5))
            if item.remark:
                details.extend("   " + part for part in utils.wrap_text(f"Note: {item.remark}", self.width - 3))
            details.append("")
            await self._text(utils.join_lines(details))
        await self._rule("center")
        await self._text(KITCHEN_END + "\n", align="center")


async def render_receipt(
    document: ReceiptDocument,
    transport: PrinterTransport,
    dots_width: Optional[int] = None,
    logo_scale: Optional[float] = None,
    **options,
) -> CutResult:
    renderer = ReceiptRenderer(transport, dots_width=dots_width, logo_scale=logo_scale, **options)
    return await renderer.render(document)
