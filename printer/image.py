"""Logo download and resize for the printer's dot width."""
from __future__ import annotations

import base64
import io
import logging
import time
from dataclasses import dataclass

import httpx
from PIL import Image

from printer.utils import DOTS_PER_CHAR

LOGGER = logging.getLogger(__name__)

FETCH_TIMEOUT = 10.0


@dataclass(frozen=True)
class LogoImage:
    base64: str
    width_dots: int


async def fetch_logo_base64(url: str, printer_width_dots: int, scale: float = 0.55) -> LogoImage:
    """Download ``url`` and return it as a JPEG sized to ``scale`` of the paper."""
    started = time.monotonic()
    async with httpx.AsyncClient(timeout=FETCH_TIMEOUT, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()
    LOGGER.debug(
        "Logo downloaded from %s (%d bytes, %.0f ms)",
        url,
        len(response.content),
        (time.monotonic() - started) * 1000,
    )

    draw_width = max(DOTS_PER_CHAR, int(printer_width_dots * scale))
    with Image.open(io.BytesIO(response.content)) as source:
        image = source.convert("RGB")
    image.thumbnail((draw_width, draw_width), Image.LANCZOS)

    out = io.BytesIO()
    image.save(out, format="JPEG", quality=92)
    return LogoImage(base64.b64encode(out.getvalue()).decode("ascii"), image.width)
