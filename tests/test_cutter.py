import asyncio
import itertools

import pytest

from printer import commands
from printer.cutter import CutOutcome, CutStrategy, build_cut_plan, resolve_cut
from printer.driver import Capabilities

from conftest import FakeTransport


def _names(transport):
    return [call[0] for call in transport.calls]


def test_native_cut_is_tried_first_and_stops_on_success():
    transport = FakeTransport(capabilities=Capabilities(raw=True, cut=True, confirms_cut=True))
    result = asyncio.run(resolve_cut(transport, "partial"))

    assert transport.calls == [("cut", "partial")]
    assert result.outcome is CutOutcome.DONE
    assert result.attempts == ["native:partial"]


def test_failed_native_cut_falls_back_to_raw_opcodes_in_order():
    transport = FakeTransport(
        capabilities=Capabilities(raw=True, cut=True, confirms_cut=True),
        fail={"cut": 1, "raw": 2},
    )
    result = asyncio.run(resolve_cut(transport))

    raw = [call[1] for call in transport.calls if call[0] == "raw"]
    assert _names(transport) == ["cut", "raw", "raw", "raw"]
    assert raw == [commands.CUT_FULL, commands.CUT_FEED_THEN_CUT, commands.CUT_ALT_FULL]
    assert result.strategy == "raw:1b 69"
    assert result.cut


def test_unverified_sdk_cut_moves_to_direct_socket():
    transport = FakeTransport(capabilities=Capabilities(raw=True, cut=True, direct_socket=True, confirms_cut=False))
    plan = build_cut_plan("full", settle=0)
    result = asyncio.run(resolve_cut(transport, "full", plan))

    assert _names(transport) == ["cut", "disconnect", "direct"]
    assert transport.calls[-1][1] == commands.DIRECT_FEED + commands.CUT_FULL
    assert result.strategy == "direct-socket"
    assert result.outcome is CutOutcome.DONE


def test_unverified_ble_cut_uses_rfcomm_once():
    transport = FakeTransport(capabilities=Capabilities(raw=True, rfcomm=True, confirms_cut=False))
    result = asyncio.run(resolve_cut(transport))

    assert _names(transport) == ["raw", "rfcomm"]
    assert transport.calls[1][1] == commands.DIRECT_FEED + commands.CUT_FULL
    assert result.strategy == "rfcomm"


def test_rfcomm_cut_can_skip_the_feed():
    transport = FakeTransport(capabilities=Capabilities(raw=True, rfcomm=True, rfcomm_feed=False, confirms_cut=False))
    asyncio.run(resolve_cut(transport, "partial"))

    assert transport.calls[-1] == ("rfcomm", commands.CUT_PARTIAL)


def test_unverified_without_fallback_reports_unverified():
    transport = FakeTransport(capabilities=Capabilities(raw=True, confirms_cut=False))
    result = asyncio.run(resolve_cut(transport))

    assert _names(transport) == ["raw"]
    assert result.outcome is CutOutcome.UNVERIFIED
    assert result.cut


@pytest.mark.parametrize("flags", list(itertools.product([False, True], repeat=4)))
def test_resolver_never_raises(flags):
    raw, cut, direct, rfcomm = flags
    transport = FakeTransport(
        capabilities=Capabilities(raw=raw, cut=cut, direct_socket=direct, rfcomm=rfcomm),
        fail={"cut": 5, "raw": 5, "direct": 5, "rfcomm": 5},
    )
    result = asyncio.run(resolve_cut(transport, plan=build_cut_plan(settle=0)))
    assert result.outcome is CutOutcome.FAILED
    assert result.strategy is None


def test_strategy_exceptions_of_any_kind_are_absorbed():
    async def boom(transport):
        raise ValueError("bad firmware")

    async def ok(transport):
        return CutOutcome.DONE

    plan = [CutStrategy("boom", "a", boom), CutStrategy("ok", "b", ok)]
    result = asyncio.run(resolve_cut(FakeTransport(), plan=plan))
    assert result.attempts == ["boom", "ok"]
    assert result.strategy == "ok"
