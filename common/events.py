"""Structured event emission over stdlib logging."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional


def emit(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Log ``event`` with key=value fields, also attached as ``record.fields``."""
    if not logger.isEnabledFor(level):
        return
    detail = " ".join(f"{key}={value!r}" for key, value in fields.items())
    logger.log(level, "%s %s", event, detail, extra={"event": event, "fields": fields})


def configure_logging(section: Optional[Dict[str, Any]] = None) -> None:
    """Apply the LOGGING settings section to the root logger."""
    if section is None:
        from config import settings

        section = settings.LOGGING
    level_name = str(section.get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=section.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
        datefmt="%Y-%m-%d %H:%M:%S",
    )
