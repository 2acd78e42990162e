"""Multi-printer routing of cashier and kitchen sections by IP hint."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, List, Optional, Sequence

from common.events import emit
from common.interface import (
    DEFAULT_NET_PORT,
    PrinterProfile,
    ReceiptDocument,
    RouteResult,
    RoutingTarget,
    parse_address,
)
from config import settings
from printer import template
from printer.driver import NetworkTransport, PrinterTransport
from printer.renderer import render_receipt
from printer.session import REGISTRY, JobSession, SessionRegistry

LOGGER = logging.getLogger(__name__)

NetworkFactory = Callable[[PrinterProfile], PrinterTransport]


def default_transport_factory(profile: PrinterProfile) -> PrinterTransport:
    return NetworkTransport(width_dots=profile.width_dots)


def find_profile_for_token(token: str, profiles: Sequence[PrinterProfile]) -> Optional[PrinterProfile]:
    """Match ``host`` or ``host:port`` against enabled profiles.

    A token without a port matches on host alone; among several such
    profiles the one on the default raw port wins, then profile order.
    """
    host, port = parse_address(token)
    if not host:
        return None
    candidates = [p for p in profiles if p.enabled and p.host == host]
    if port is not None:
        return next((p for p in candidates if p.port == port), None)
    if not candidates:
        return None
    return next((p for p in candidates if p.port == DEFAULT_NET_PORT), candidates[0])


def has_hints(document: ReceiptDocument) -> bool:
    setting = document.setting
    if setting is not None and setting.ip_hints:
        return True
    return any(block.ip_hints for block in document.blocks_of("kitchen_print"))


def resolve_targets(document: ReceiptDocument, profiles: Sequence[PrinterProfile]) -> List[RoutingTarget]:
    """Targets in execution order: cashier hints first, then kitchen blocks in order."""
    targets: List[RoutingTarget] = []

    setting = document.setting
    cashier_hints = setting.ip_hints if setting is not None else []
    if cashier_hints:
        cashier_slice = template.cashier_payload(document)
        for token in cashier_hints:
            profile = find_profile_for_token(token, profiles)
            emit(LOGGER, "route.match", section="cashier", token=token, profile=profile.address if profile else None)
            if profile is not None:
                targets.append(RoutingTarget(profile, "cashier", cashier_slice))

    for ordinal, block in enumerate(document.blocks_of("kitchen_print")):
        for token in block.ip_hints:
            profile = find_profile_for_token(token, profiles)
            emit(
                LOGGER,
                "route.match",
                section="kitchen",
                block=ordinal,
                token=token,
                profile=profile.address if profile else None,
            )
            if profile is None:
                continue
            if block.individual:
                for item in block.items:
                    payload = template.single_item_kitchen_payload(document, block, item)
                    targets.append(RoutingTarget(profile, "kitchen", payload, ordinal, item))
            else:
                payload = template.kitchen_payload(document, block)
                targets.append(RoutingTarget(profile, "kitchen", payload, ordinal))

    return dedupe(targets)


def dedupe(targets: Iterable[RoutingTarget]) -> List[RoutingTarget]:
    seen = set()
    unique = []
    for target in targets:
        if target.key in seen:
            continue
        seen.add(target.key)
        unique.append(target)
    return unique


async def print_to_profile(
    profile: PrinterProfile,
    document: ReceiptDocument,
    transport_factory: NetworkFactory = default_transport_factory,
    registry: SessionRegistry = REGISTRY,
    settle: Optional[float] = None,
) -> None:
    """One connect/render/disconnect cycle with a single reconnect-and-retry."""
    settle = float(settings.NETWORK.get("settle_delay", 0.15) if settle is None else settle)
    address = (profile.host, profile.port)

    async def _attempt() -> None:
        async with JobSession(lambda: transport_factory(profile), address, registry) as transport:
            await render_receipt(document, transport, dots_width=profile.width_dots)
            await asyncio.sleep(settle)

    try:
        await _attempt()
    except Exception as exc:
        emit(LOGGER, "route.retry", logging.WARNING, printer=profile.address, error=str(exc))
        await _attempt()


async def route(
    document: ReceiptDocument,
    profiles: Sequence[PrinterProfile],
    transport_factory: NetworkFactory = default_transport_factory,
    registry: SessionRegistry = REGISTRY,
    settle: Optional[float] = None,
) -> RouteResult:
    if not has_hints(document):
        emit(LOGGER, "route.unhandled", reason="no ip_address hints")
        return RouteResult(handled=False, matched=False)

    targets = resolve_targets(document, profiles)
    if not targets:
        emit(LOGGER, "route.unmatched", logging.WARNING, profiles=len(profiles))
        return RouteResult(handled=True, matched=False)

    emit(LOGGER, "route.targets", count=len(targets))
    result = RouteResult(handled=True, matched=True)
    for target in targets:
        label = f"{target.label} -> {target.profile.address}"
        emit(LOGGER, "route.target", target=target.label, printer=target.profile.address, copies=target.profile.copies)
        try:
            for _ in range(target.profile.copies):
                await print_to_profile(target.profile, target.payload, transport_factory, registry, settle)
        except Exception as exc:
            LOGGER.error("Routing target %s failed after retry: %s", label, exc)
            result.failed.append(label)
            continue
        result.printed.append(label)
    return result


__all__ = [
    "dedupe",
    "default_transport_factory",
    "find_profile_for_token",
    "has_hints",
    "print_to_profile",
    "resolve_targets",
    "route",
]
