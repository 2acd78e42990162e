"""Flask application exposing the receipt router over HTTP."""
from __future__ import annotations

import logging
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from common.interface import DEFAULT_NET_PORT, parse_address
from config import settings
from printer import template
from printer.driver import BluetoothTransport, NetworkTransport, TextOptions
from printer.queue import BackgroundPrintQueue
from printer.service import PrintService
from printer.session import ManagedConnection

LOGGER = logging.getLogger(__name__)

printer_bp = Blueprint("printer", __name__)

JOB_TIMEOUT = 300.0
CONNECT_TIMEOUT = 30.0


def _service() -> PrintService:
    return current_app.extensions["receipt_router"]["service"]


def _queue() -> BackgroundPrintQueue:
    return current_app.extensions["receipt_router"]["queue"]


def _connections() -> dict:
    return current_app.extensions["receipt_router"]["connections"]


@printer_bp.route("/health", methods=["GET"])
def health_check():
    return jsonify({"status": "ok"}), 200


@printer_bp.route("/print", methods=["POST"])
def print_receipt():
    try:
        document = template.load_document(request.get_data(as_text=True))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    service = _service()
    try:
        report = _queue().run(lambda: service.print_document(document), name="http-print", timeout=JOB_TIMEOUT)
    except Exception as exc:
        LOGGER.exception("Print job crashed")
        return jsonify({"error": str(exc)}), 500

    return jsonify(report.to_dict()), 200 if report.ok else 502


@printer_bp.route("/printers", methods=["GET"])
def list_printers():
    profiles = _service().store.list()
    return jsonify({"printers": [profile.to_dict() for profile in profiles]}), 200


@printer_bp.route("/printers", methods=["PUT"])
def save_printers():
    body = request.get_json(silent=True)
    entries = body.get("printers") if isinstance(body, dict) else body
    if not isinstance(entries, list):
        return jsonify({"error": "Body must be a list of printers or {\"printers\": [...]}"}), 400
    try:
        saved = _service().store.save(entries)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"printers": [profile.to_dict() for profile in saved]}), 200


@printer_bp.route("/routing", methods=["GET"])
def get_routing():
    return jsonify({"enabled": _service().store.get_feature_flag()}), 200


@printer_bp.route("/routing", methods=["PUT"])
def set_routing():
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not isinstance(body.get("enabled"), bool):
        return jsonify({"error": "Field 'enabled' must be a boolean"}), 400
    _service().store.set_feature_flag(body["enabled"])
    return jsonify({"enabled": body["enabled"]}), 200


@printer_bp.route("/connect", methods=["POST"])
def connect_printer():
    body = request.get_json(silent=True) or {}
    kind = str(body.get("kind") or "network").lower()
    connection: Optional[ManagedConnection] = _connections().get(kind)
    if connection is None:
        return jsonify({"error": f"Unknown printer kind: {kind}"}), 400

    raw_address = str(body.get("address") or "").strip()
    if kind == "network":
        host, port = parse_address(raw_address or str(settings.NETWORK.get("host") or ""))
        if not host:
            return jsonify({"error": "Network printer address is required"}), 400
        address = (host, port or DEFAULT_NET_PORT)
    else:
        address = raw_address or str(settings.BLUETOOTH.get("address") or "")
        if not address:
            return jsonify({"error": "Bluetooth printer address is required"}), 400

    async def _connect():
        await connection.connect(address)
        if body.get("test"):
            await connection.transport.print_text("NET OK\n" if kind == "network" else "BT OK\n", TextOptions())

    try:
        _queue().run(_connect, name=f"connect-{kind}", timeout=CONNECT_TIMEOUT)
    except (ConnectionError, RuntimeError, TimeoutError) as exc:
        return jsonify({"error": str(exc), **connection.status()}), 502

    if body.get("remember"):
        if kind == "network":
            settings.update_section("NETWORK", {"host": address[0], "port": address[1]})
        else:
            settings.update_section("BLUETOOTH", {"address": address})
    return jsonify(connection.status()), 200


@printer_bp.route("/disconnect", methods=["POST"])
def disconnect_printer():
    body = request.get_json(silent=True) or {}
    kind = body.get("kind")
    connections = _connections()
    if kind and kind not in connections:
        return jsonify({"error": f"Unknown printer kind: {kind}"}), 400
    targets = [connections[kind]] if kind else list(connections.values())

    async def _disconnect():
        for connection in targets:
            await connection.disconnect()

    _queue().call(_disconnect, timeout=CONNECT_TIMEOUT)
    return jsonify({name: conn.status() for name, conn in connections.items()}), 200


@printer_bp.route("/connection", methods=["GET"])
def connection_status():
    return jsonify({name: conn.status() for name, conn in _connections().items()}), 200


def create_app(service: Optional[PrintService] = None, queue: Optional[BackgroundPrintQueue] = None) -> Flask:
    app = Flask(__name__)
    CORS(app)
    app.extensions["receipt_router"] = {
        "service": service or PrintService(),
        "queue": queue or BackgroundPrintQueue(),
        "connections": {
            "network": ManagedConnection(NetworkTransport),
            "bluetooth": ManagedConnection(BluetoothTransport),
        },
    }
    app.register_blueprint(printer_bp)
    return app


__all__ = ["create_app", "printer_bp"]
