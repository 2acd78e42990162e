"""Command-line interface for printing and routing receipts."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from common.events import configure_logging
from common.interface import DEFAULT_NET_PORT, parse_address
from config import settings
from config.profiles import ProfileStore
from printer.service import PrintService
from printer.template import load_document
from server.app import create_app


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="printer",
        description="Thermal receipt router CLI"
    )
    parser.add_argument(
        "--payload",
        required=False,
        help="Receipt JSON string or path to a JSON file matching the /print body",
    )
    parser.add_argument(
        "--host",
        help="Override the legacy network printer as HOST[:PORT]",
    )
    parser.add_argument(
        "--bluetooth",
        help="Override the Bluetooth printer address used for the cashier receipt",
    )
    parser.add_argument(
        "--list-printers",
        dest="list_printers",
        action="store_true",
        help="List saved network printer profiles and exit",
    )
    parser.add_argument(
        "--serve",
        nargs="?",
        const="",
        help="Run the Flask API server (optionally specify host:port)",
    )
    return parser.parse_args(argv)


def read_payload(payload_arg: str) -> str:
    path = Path(payload_arg)
    try:
        is_file = path.is_file()
    except (OSError, ValueError):  # inline JSON too long or odd for a path
        is_file = False
    if not is_file:
        return payload_arg
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Failed to read payload file: {exc}") from exc


def apply_overrides(host_override: Optional[str], bluetooth_override: Optional[str]) -> None:
    """Apply printer overrides to the in-memory settings for this run only."""
    if host_override:
        host, port = parse_address(host_override)
        if not host:
            raise ValueError("--host expects HOST[:PORT]")
        settings.NETWORK["host"] = host
        settings.NETWORK["port"] = port or DEFAULT_NET_PORT
    if bluetooth_override is not None:
        settings.BLUETOOTH["address"] = bluetooth_override.strip()


def parse_serve_address(value: Optional[str]) -> tuple[str, int]:
    default_host = settings.SERVICE.get("host", "0.0.0.0")
    default_port = settings.SERVICE.get("port", 5000)

    if value in (None, ""): return default_host, default_port
    if ":" not in value: raise ValueError("--serve expects host:port")

    host, port_str = value.split(":", 1)
    host = host or default_host
    try:
        port = int(port_str)
    except ValueError as exc:
        raise ValueError("Port in --serve must be an integer") from exc
    if port <= 0 or port > 65535:
        raise ValueError("Port in --serve must be between 1 and 65535")
    return host, port


def list_printers(store: ProfileStore) -> int:
    profiles = store.list()
    state = "enabled" if store.get_feature_flag() else "disabled"
    print(f"Multi-printer routing: {state}")
    if not profiles:
        print("No saved printers")
        return 0
    for profile in profiles:
        flags = []
        if not profile.enabled:
            flags.append("disabled")
        if profile.is_default:
            flags.append("default")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{profile.name}: {profile.address} width={profile.width_dots} copies={profile.copies}{suffix}")
    return 0


def main(argv: Optional[list] = None) -> int:
    args = parse_arguments(argv)
    configure_logging()

    try:
        apply_overrides(args.host, args.bluetooth)
    except ValueError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2

    if args.list_printers:
        return list_printers(ProfileStore())

    if args.serve is not None:
        try:
            host, port = parse_serve_address(args.serve)
        except ValueError as exc:
            print(f"[ERROR] {exc}", file=sys.stderr)
            return 2

        app = create_app()
        debug = settings.SERVICE.get("debug", False)
        app.run(host=host, port=port, debug=debug)
        return 0

    if not args.payload:
        print("[ERROR] --payload is required unless --serve or --list-printers is used", file=sys.stderr)
        return 2

    try:
        document = load_document(read_payload(args.payload))
    except ValueError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2

    report = asyncio.run(PrintService().print_document(document))
    for label in report.printed:
        print(f"[OK] {label}")
    for error in report.errors:
        print(f"[ERROR] {error}", file=sys.stderr)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
