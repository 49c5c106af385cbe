"""
Tests for SignaturePager: backward paging, cursor handling, malformed items.
"""

from __future__ import annotations

import pytest

from sol_tracker.core.exceptions import RpcError
from sol_tracker.solana_listener.pager import SignaturePager

TRACKED = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"


@pytest.mark.asyncio
async def test_pages_backward_until_empty(history):
    rpc = history(5)
    pager = SignaturePager(rpc, TRACKED)

    first = await pager.next_batch(None, 2)
    assert [s.signature for s in first.signatures] == ["sig000", "sig001"]
    assert first.next_cursor == "sig001"
    assert not first.exhausted

    second = await pager.next_batch(first.next_cursor, 2)
    third = await pager.next_batch(second.next_cursor, 2)
    assert [s.signature for s in third.signatures] == ["sig004"]

    last = await pager.next_batch(third.next_cursor, 2)
    assert last.exhausted
    assert len(last) == 0
    assert last.next_cursor == "sig004"
    assert rpc.page_calls == [(2, None), (2, "sig001"), (2, "sig003"), (2, "sig004")]


@pytest.mark.asyncio
async def test_malformed_entries_dropped(fake_rpc):
    fake_rpc.entries = [
        {"signature": "good", "slot": 3, "err": None, "blockTime": 10},
        {"slot": 2},
        "junk",
        {"signature": "bad-slot", "slot": "x", "err": None},
    ]
    page = await SignaturePager(fake_rpc, TRACKED).next_batch(None, 10)
    assert [s.signature for s in page.signatures] == ["good"]
    assert not page.exhausted


@pytest.mark.asyncio
async def test_failed_entries_flagged(fake_rpc):
    fake_rpc.add("ok", 10, slot=2)
    fake_rpc.add("bad", 10, slot=1, err={"InstructionError": [0, "x"]})
    page = await SignaturePager(fake_rpc, TRACKED).next_batch(None, 10)
    assert [s.failed for s in page.signatures] == [False, True]


@pytest.mark.asyncio
async def test_rpc_errors_propagate(fake_rpc):
    fake_rpc.page_errors[0] = RpcError("down")
    with pytest.raises(RpcError):
        await SignaturePager(fake_rpc, TRACKED).next_batch(None, 10)


def test_empty_address_rejected(fake_rpc):
    with pytest.raises(ValueError):
        SignaturePager(fake_rpc, "")
