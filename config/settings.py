"""JSON-backed configuration for the thermal receipt router."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

_CONFIG_FILE = Path(
    os.environ.get("RECEIPT_ROUTER_SETTINGS") or Path(__file__).with_name("temp.settings.json")
)

_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "PRINTER": {
        "width_dots": 576,
        "logo_scale": 0.55,
        "dots_per_char": 12,
        "footer_policy": "inline",
        "cut_mode": "full",
    },
    "NETWORK": {
        "host": "",
        "port": 9100,
        "connect_timeout": 5.0,
        "write_timeout": 10.0,
        "settle_delay": 0.15,
        "ticket_delay": 0.12,
        "cut_settle_delay": 0.08,
        "trust_sdk_cut": False,
    },
    "BLUETOOTH": {
        "address": "",
        "name": "",
        "write_characteristic": "00002af1-0000-1000-8000-00805f9b34fb",
        "chunk_size": 100,
        "chunk_delay": 0.02,
        "connect_timeout": 10.0,
        "write_timeout": 10.0,
        "rfcomm_channel": 1,
        "rfcomm_fallback": True,
        "rfcomm_feed": True,
        "trust_sdk_cut": False,
    },
    "ROUTING": {
        "profiles_file": "",
    },
    "LOGGING": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
    "SERVICE": {
        "host": "0.0.0.0",
        "port": 5000,
        "debug": False,
    },
}

_DATA: Dict[str, Dict[str, Any]] = {}


def _ensure_config_file() -> None:
    if not _CONFIG_FILE.exists():
        _CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        _write_config(_DEFAULTS)


def _merge_with_defaults(raw: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    merged: Dict[str, Dict[str, Any]] = {}
    for section, defaults in _DEFAULTS.items():
        section_values: Dict[str, Any] = deepcopy(defaults)
        incoming = raw.get(section)
        if isinstance(incoming, dict):
            section_values.update(incoming)
        merged[section] = section_values
    return merged


def _load_config() -> Dict[str, Dict[str, Any]]:
    _ensure_config_file()
    with _CONFIG_FILE.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)
    return _merge_with_defaults(raw)


def _write_config(data: Dict[str, Dict[str, Any]]) -> None:
    with _CONFIG_FILE.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)


def _refresh_globals(new_data: Dict[str, Dict[str, Any]]) -> None:
    global PRINTER, NETWORK, BLUETOOTH, ROUTING, LOGGING, SERVICE, _DATA
    _DATA = deepcopy(new_data)
    PRINTER = deepcopy(_DATA["PRINTER"])
    NETWORK = deepcopy(_DATA["NETWORK"])
    BLUETOOTH = deepcopy(_DATA["BLUETOOTH"])
    ROUTING = deepcopy(_DATA["ROUTING"])
    LOGGING = deepcopy(_DATA["LOGGING"])
    SERVICE = deepcopy(_DATA["SERVICE"])


def config_dir() -> Path:
    """Directory holding the settings file; sibling data files live here too."""
    return _CONFIG_FILE.parent


def reload() -> None:
    """Reload settings from disk."""
    config = _load_config()
    _refresh_globals(config)


def get_all() -> Dict[str, Dict[str, Any]]:
    """Return a copy of the full configuration tree."""
    return deepcopy(_DATA)


def get_defaults() -> Dict[str, Dict[str, Any]]:
    """Return a copy of the default configuration values."""
    return deepcopy(_DEFAULTS)


def save_all(data: Dict[str, Dict[str, Any]]) -> None:
    """Persist the provided configuration tree and refresh module globals."""
    merged = _merge_with_defaults(data)
    _write_config(merged)
    _refresh_globals(merged)


def update_section(section: str, values: Dict[str, Any]) -> None:
    """Update a specific configuration section and persist it."""
    current = get_all()
    if section not in current:
        raise KeyError(f"Unknown settings section: {section}")
    current[section].update(values)
    save_all(current)


reload()

__all__ = [
    "PRINTER",
    "NETWORK",
    "BLUETOOTH",
    "ROUTING",
    "LOGGING",
    "SERVICE",
    "config_dir",
    "reload",
    "get_all",
    "get_defaults",
    "save_all",
    "update_section",
]
