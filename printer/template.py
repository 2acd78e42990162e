"""Inbound payload validation and per-section document slices."""
from __future__ import annotations

import json
from copy import deepcopy
from typing import Any, Dict, List, Union

from common.interface import Block, LineItem, ReceiptDocument

MAX_DECODE_DEPTH = 3


def decode_payload(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Turn an inbound message into a dict.

    Bridges sometimes deliver the document JSON-encoded more than once, so
    string results are decoded again a bounded number of times.
    """
    value: Any = raw
    for _ in range(MAX_DECODE_DEPTH):
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        if not isinstance(value, str):
            break
        text = value.strip()
        if not text:
            raise ValueError("Payload is empty")
        try:
            value = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Payload is not valid JSON: {exc.msg}") from exc
    if not isinstance(value, dict):
        raise ValueError("Payload must be a JSON object")
    return value


def validate_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Check the receipt shape and normalize block type strings.

    Only the envelope is enforced here; malformed sections inside blocks
    degrade to nothing at render time.
    """
    if not isinstance(payload, dict):
        raise ValueError("Payload must be a JSON object")

    blocks = payload.get("data")
    if blocks is None:
        raise ValueError("Field 'data' is required and must be a list of blocks")
    if not isinstance(blocks, list):
        raise ValueError("Field 'data' must be a list of blocks")

    sanitized: List[Any] = []
    for block in blocks:
        if isinstance(block, dict):
            block = dict(block)
            block["type"] = str(block.get("type") or "").strip().lower()
        sanitized.append(block)

    data: Dict[str, Any] = dict(payload)
    data["data"] = sanitized

    if data.get("thankYou") is not None:
        data["thankYou"] = str(data["thankYou"])

    return data


def load_document(raw: Union[str, bytes, Dict[str, Any]]) -> ReceiptDocument:
    return ReceiptDocument.from_dict(validate_payload(decode_payload(raw)))


def _raw_blocks(blocks: List[Block]) -> List[Dict[str, Any]]:
    return [deepcopy(block.raw) for block in blocks]


def cashier_payload(document: ReceiptDocument) -> ReceiptDocument:
    """Everything except kitchen tickets."""
    return document.with_blocks(_raw_blocks([b for b in document.blocks if b.kind != "kitchen_print"]))


def kitchen_payload(document: ReceiptDocument, block: Block) -> ReceiptDocument:
    """One kitchen ticket plus the document's setting blocks."""
    settings_blocks = document.blocks_of("setting")
    return document.with_blocks(_raw_blocks(settings_blocks + [block]))


def single_item_kitchen_payload(document: ReceiptDocument, block: Block, item: LineItem) -> ReceiptDocument:
    """A kitchen ticket rebuilt from ``block`` that carries only ``item``."""
    entry = deepcopy(block.raw)
    data = dict(entry.get("data") or {})
    data["itemdata"] = [deepcopy(item.raw)]
    entry["data"] = data
    return document.with_blocks(_raw_blocks(document.blocks_of("setting")) + [entry])


def kitchen_only(document: ReceiptDocument) -> bool:
    """True when the document has kitchen tickets and nothing else to print."""
    content = [b for b in document.blocks if b.kind not in ("setting", "unknown")]
    return bool(content) and all(b.kind == "kitchen_print" for b in content)


def has_cashier_content(document: ReceiptDocument) -> bool:
    return any(b.kind not in ("setting", "unknown", "kitchen_print") for b in document.blocks)


__all__ = [
    "cashier_payload",
    "decode_payload",
    "has_cashier_content",
    "kitchen_only",
    "kitchen_payload",
    "load_document",
    "single_item_kitchen_payload",
    "validate_payload",
]
