#!/usr/bin/env python3
"""
iota2 - Making Imaginations, Real
<i2.iotasquare@gmail.com>

 ██╗ ██████╗ ████████╗ █████╗ ██████╗
 ██║██╔═══██╗╚══██╔══╝██╔══██╗╚════██╗
 ██║██║   ██║   ██║   ███████║ █████╔╝
 ██║██║   ██║   ██║   ██╔══██║██╔═══╝
 ██║╚██████╔╝   ██║   ██║  ██║███████╗
 ╚═╝ ╚═════╝    ╚═╝   ╚═╝  ╚═╝╚══════╝

"""

import random

import pytest

import canqv_defs
from frame_cache import frame_cache


@pytest.fixture
def cache():
    return frame_cache(maxperiod=2.0)


# ----------------- Insertion / lookup -----------------

def test_new_identifier_inserted_with_unknown_period(cache, frame):
    entry = cache.integrate(frame(0x100), 1.0)
    assert len(cache) == 1
    assert entry.period is None
    assert entry.dirty
    assert entry.last_seen == 1.0
    assert entry.data == b"\x01\x02\x03"
    assert entry.dlc == 3

    cache.integrate(frame(0x200), 1.1)
    assert len(cache) == 2
    assert cache.get(0x200).period is None


def test_identifiers_unique_and_sorted(cache, frame):
    ids = [0x7FF, 0x001, 0x100, 0x80000010, 0x100, 0x0FF, 0x7FF, 0x40000100]
    rng = random.Random(4)
    for n in range(200):
        cache.integrate(frame(rng.choice(ids)), n * 0.01)

    snap = cache.snapshot()
    got = [e.identifier for e in snap]
    assert got == sorted(set(ids))
    assert cache.identifiers() == got


def test_extended_sorts_after_standard(cache, frame):
    cache.integrate(frame(canqv_defs.CAN_EFF_FLAG | 0x001), 0.0)
    cache.integrate(frame(0x7FF), 0.0)
    assert [e.identifier for e in cache] == [0x7FF, canqv_defs.CAN_EFF_FLAG | 0x001]


def test_payload_truncated_to_dlc(cache):
    entry = cache.integrate({"can_id": 0x10, "dlc": 2, "raw": b"\xAA\xBB\xCC"}, 0.0)
    assert entry.data == b"\xAA\xBB"
    assert entry.dlc == 2


def test_dlc_clamped_to_short_payload(cache):
    entry = cache.integrate({"can_id": 0x10, "dlc": 8, "raw": b"\xAA\xBB"}, 0.0)
    assert entry.dlc == 2
    assert entry.data == b"\xAA\xBB"


def test_remote_frame_length_change_is_dirty(cache):
    rtr = canqv_defs.CAN_RTR_FLAG | 0x10
    entry = cache.integrate({"can_id": rtr, "dlc": 4, "raw": b""}, 0.0)
    assert entry.dlc == 4
    cache.snapshot()

    cache.integrate({"can_id": rtr, "dlc": 4, "raw": b""}, 0.5)
    assert not entry.dirty
    cache.integrate({"can_id": rtr, "dlc": 8, "raw": b""}, 1.0)
    assert entry.dirty
    assert entry.dlc == 8


def test_contains_and_get(cache, frame):
    cache.integrate(frame(0x123), 0.0)
    assert 0x123 in cache
    assert 0x124 not in cache
    assert cache.get(0x124) is None


# ----------------- Period -----------------

def test_period_within_maxperiod(cache, frame):
    cache.integrate(frame(0x100), 10.0)
    entry = cache.integrate(frame(0x100), 11.5)
    assert entry.period == pytest.approx(1.5)
    assert entry.last_seen == 11.5
    assert entry.count == 2


def test_period_equal_to_maxperiod_is_kept(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    assert cache.integrate(frame(0x100), 2.0).period == pytest.approx(2.0)


def test_period_above_maxperiod_is_unknown(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    cache.integrate(frame(0x100), 1.0)
    entry = cache.integrate(frame(0x100), 3.5)
    assert entry.period is None


# ----------------- Dirty flag -----------------

def test_dirty_cleared_by_snapshot(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    first = cache.snapshot()
    assert first[0].dirty
    assert not cache.get(0x100).dirty


def test_dirty_stays_clear_for_same_payload(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    cache.snapshot()
    cache.integrate(frame(0x100), 0.1)
    cache.integrate(frame(0x100), 0.2)
    assert not cache.snapshot()[0].dirty


def test_dirty_set_on_byte_change(cache, frame):
    cache.integrate(frame(0x100, b"\x01\x02"), 0.0)
    cache.snapshot()
    cache.integrate(frame(0x100, b"\x01\x03"), 0.1)
    snap = cache.snapshot()
    assert snap[0].dirty
    assert snap[0].data == b"\x01\x03"
    assert not cache.snapshot()[0].dirty


def test_dirty_set_on_length_change(cache, frame):
    cache.integrate(frame(0x100, b"\x01\x02"), 0.0)
    cache.snapshot()
    cache.integrate(frame(0x100, b"\x01"), 0.1)
    assert cache.get(0x100).dirty


def test_snapshot_returns_copies(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    snap = cache.snapshot()
    snap[0].period = 42.0
    assert cache.get(0x100).period is None


# ----------------- Sweep -----------------

def test_sweep_removes_dead_entries(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    cache.integrate(frame(0x200), 5.0)
    removed = cache.sweep(10.5, 10.0)
    assert removed == 1
    assert cache.identifiers() == [0x200]


def test_sweep_keeps_entry_at_deadtime(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    assert cache.sweep(10.0, 10.0) == 0
    assert 0x100 in cache


def test_sweep_preserves_order_and_lookup(cache, frame):
    for can_id in [0x1, 0x2, 0x3, 0x4, 0x5]:
        cache.integrate(frame(can_id), 0.0 if can_id % 2 == 0 else 8.0)
    assert cache.sweep(12.0, 10.0) == 2
    assert cache.identifiers() == [0x1, 0x3, 0x5]

    # lookups still hit the surviving entries
    entry = cache.integrate(frame(0x3), 12.5)
    assert entry.count == 2
    assert len(cache) == 3


def test_sweep_resets_stale_period(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    cache.integrate(frame(0x100), 0.5)
    assert cache.sweep(1.5, 10.0) == 0
    assert cache.get(0x100).period == pytest.approx(0.5)

    assert cache.sweep(1.6, 10.0) == 0
    entry = cache.get(0x100)
    assert entry is not None
    assert entry.period is None


def test_sweep_empty_cache(cache):
    assert cache.sweep(100.0, 10.0) == 0
    assert cache.snapshot() == []


def test_scenario_period_then_eviction(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    cache.integrate(frame(0x100), 1.0)
    snap = cache.snapshot()
    assert len(snap) == 1
    assert snap[0].period == pytest.approx(1.0)

    assert cache.sweep(12.0, 10.0) == 1
    assert len(cache) == 0


def test_clear(cache, frame):
    cache.integrate(frame(0x100), 0.0)
    cache.clear()
    assert len(cache) == 0
    assert 0x100 not in cache
