"""Best-effort paper cut across heterogeneous printer firmware.

A cut plan is an ordered list of strategies. Each strategy reports an
outcome instead of raising:

* ``DONE``: the command went out on a path that is known to be honored.
* ``UNVERIFIED``: the command went out but the path may be ignored by the
  firmware (buffered SDK writes, BLE writes without response). The rest of
  that strategy's group is skipped so the printer never sees two cuts
  through the same path, and resolution moves on to the next group.
* ``FAILED`` / ``SKIPPED``: nothing usable happened; try the next one.

Resolution stops at the first ``DONE``; exhausting the plan is not an error.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from common.events import emit
from printer import commands
from printer.driver import PrinterTransport

LOGGER = logging.getLogger(__name__)


class CutOutcome(enum.Enum):
    DONE = "done"
    UNVERIFIED = "unverified"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CutStrategy:
    name: str
    group: str
    attempt: Callable[[PrinterTransport], Awaitable[CutOutcome]]


@dataclass
class CutResult:
    strategy: Optional[str]
    outcome: CutOutcome
    attempts: List[str]

    @property
    def cut(self) -> bool:
        return self.outcome in (CutOutcome.DONE, CutOutcome.UNVERIFIED)


def _sdk_outcome(transport: PrinterTransport) -> CutOutcome:
    return CutOutcome.DONE if transport.capabilities.confirms_cut else CutOutcome.UNVERIFIED


def native_cut(mode: str) -> CutStrategy:
    async def attempt(transport: PrinterTransport) -> CutOutcome:
        if not transport.capabilities.cut:
            return CutOutcome.SKIPPED
        await transport.cut(mode)
        return _sdk_outcome(transport)

    return CutStrategy(f"native:{mode}", "sdk", attempt)


def raw_cut(opcode: bytes) -> CutStrategy:
    async def attempt(transport: PrinterTransport) -> CutOutcome:
        if not transport.capabilities.raw:
            return CutOutcome.SKIPPED
        await transport.print_raw(opcode)
        return _sdk_outcome(transport)

    return CutStrategy(f"raw:{opcode.hex(' ')}", "sdk", attempt)


def direct_socket_cut(mode: str, settle: float) -> CutStrategy:
    async def attempt(transport: PrinterTransport) -> CutOutcome:
        if not transport.capabilities.direct_socket:
            return CutOutcome.SKIPPED
        # the printer finalizes the pending raster job once the SDK socket closes
        await transport.disconnect()
        await asyncio.sleep(settle)
        await transport.send_direct(commands.DIRECT_FEED + commands.primary_cut(mode))
        return CutOutcome.DONE

    return CutStrategy("direct-socket", "direct", attempt)


def rfcomm_cut(mode: str) -> CutStrategy:
    async def attempt(transport: PrinterTransport) -> CutOutcome:
        if not transport.capabilities.rfcomm:
            return CutOutcome.SKIPPED
        feed = commands.DIRECT_FEED if transport.capabilities.rfcomm_feed else b""
        await transport.send_rfcomm(feed + commands.primary_cut(mode))
        return CutOutcome.DONE

    return CutStrategy("rfcomm", "rfcomm", attempt)


def build_cut_plan(mode: str = "full", settle: float = 0.08) -> List[CutStrategy]:
    plan = [native_cut(mode)]
    plan.extend(raw_cut(opcode) for opcode in commands.cut_opcodes(mode))
    plan.append(direct_socket_cut(mode, settle))
    plan.append(rfcomm_cut(mode))
    return plan


async def resolve_cut(
    transport: PrinterTransport,
    mode: str = "full",
    plan: Optional[List[CutStrategy]] = None,
) -> CutResult:
    """Run the cut plan against ``transport``; never raises."""
    mode = "partial" if mode == "partial" else "full"
    plan = plan if plan is not None else build_cut_plan(mode)
    attempts: List[str] = []
    settled_groups = set()
    unverified: Optional[str] = None

    for strategy in plan:
        if strategy.group in settled_groups:
            continue
        try:
            outcome = await strategy.attempt(transport)
        except Exception as exc:
            outcome = CutOutcome.FAILED
            emit(LOGGER, "cut.step", logging.INFO, strategy=strategy.name, outcome="failed", error=str(exc))
        else:
            emit(LOGGER, "cut.step", logging.DEBUG, strategy=strategy.name, outcome=outcome.value)
        if outcome is CutOutcome.SKIPPED:
            continue
        attempts.append(strategy.name)
        if outcome is CutOutcome.DONE:
            emit(LOGGER, "cut.done", strategy=strategy.name, attempts=len(attempts))
            return CutResult(strategy.name, outcome, attempts)
        if outcome is CutOutcome.UNVERIFIED:
            settled_groups.add(strategy.group)
            unverified = strategy.name

    if unverified:
        emit(LOGGER, "cut.unverified", strategy=unverified, attempts=len(attempts))
        return CutResult(unverified, CutOutcome.UNVERIFIED, attempts)

    emit(LOGGER, "cut.exhausted", logging.WARNING, attempts=len(attempts))
    return CutResult(None, CutOutcome.FAILED, attempts)
