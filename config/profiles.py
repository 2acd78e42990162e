"""JSON-backed store for network printer profiles and the multi-printer flag."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from common.interface import DEFAULT_NET_PORT, DEFAULT_WIDTH_DOTS, PrinterProfile
from config import settings

LOGGER = logging.getLogger(__name__)

PROFILES_FILENAME = "printer_profiles.json"


def _default_path() -> Path:
    configured = settings.ROUTING.get("profiles_file")
    if configured:
        return Path(configured)
    return settings.config_dir() / PROFILES_FILENAME


class ProfileStore:
    """Persists the printer list and the multi-printer routing flag.

    A missing or unreadable file reads as "no profiles, flag off". When no
    profile has been saved yet but a legacy single network printer is
    configured, reads include a ``Default`` profile for it; that seed is
    never written back on its own.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path else _default_path()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError):
            LOGGER.warning("Printer profile file %s is unreadable; using defaults", self.path, exc_info=True)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)

    def list(self) -> List[PrinterProfile]:
        raw = self._read().get("printers")
        profiles = _normalize(raw if isinstance(raw, list) else [])
        if not profiles:
            seeded = _legacy_profile()
            if seeded is not None:
                profiles.append(seeded)
        return profiles

    def save(self, profiles: Iterable[Union[PrinterProfile, Dict[str, Any]]]) -> List[PrinterProfile]:
        normalized = []
        for entry in profiles:
            if isinstance(entry, PrinterProfile):
                entry = entry.to_dict()
            if not isinstance(entry, dict):
                raise ValueError("Each printer profile must be an object")
            normalized.append(PrinterProfile.from_dict(entry))
        data = self._read()
        data["printers"] = [profile.to_dict() for profile in normalized]
        self._write(data)
        LOGGER.info("Saved %d printer profile(s) to %s", len(normalized), self.path)
        return normalized

    def get_feature_flag(self) -> bool:
        return self._read().get("enable_multi_net") is True

    def set_feature_flag(self, value: bool) -> None:
        data = self._read()
        data["enable_multi_net"] = bool(value)
        self._write(data)
        LOGGER.info("Multi-printer routing %s", "enabled" if value else "disabled")


def _normalize(entries: List[Any]) -> List[PrinterProfile]:
    profiles = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            profiles.append(PrinterProfile.from_dict(entry))
        except ValueError:
            LOGGER.warning("Ignoring stored printer profile without host: %r", entry)
    return profiles


def _legacy_profile() -> Optional[PrinterProfile]:
    host = str(settings.NETWORK.get("host") or "").strip()
    if not host:
        return None
    return PrinterProfile.from_dict(
        {
            "name": "Default",
            "host": host,
            "port": settings.NETWORK.get("port", DEFAULT_NET_PORT),
            "width_dots": DEFAULT_WIDTH_DOTS,
            "copies": 1,
            "enabled": True,
            "is_default": True,
        }
    )


__all__ = ["PROFILES_FILENAME", "ProfileStore"]
