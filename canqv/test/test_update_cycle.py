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

import can
import pytest

import canqv_defs
from event_logger import event_logger
from update_cycle import update_cycle

DIAG_ID = canqv_defs.CAN_EFF_FLAG | 0x000FFFFE


class DummyRenderer:
    def __init__(self):
        self.calls = []

    def render(self, rows, now, status):
        self.calls.append((rows, now, status))


class DummyLogger:
    def __init__(self):
        self.records = []
        self.written = 0
        self.failures = 0
        self.last_error = None

    def append(self, identifier, data):
        self.records.append((identifier, bytes(data)))
        self.written += 1
        return True


class ListTransport:
    """Delivers queued frames, advancing the clock before each one."""

    def __init__(self, clock, timed_frames):
        self.clock = clock
        self.timed_frames = list(timed_frames)

    def receive(self):
        if not self.timed_frames:
            return None
        t, frame = self.timed_frames.pop(0)
        self.clock.t = t
        return frame


class FailingTransport:
    def __init__(self, exc):
        self.exc = exc

    def receive(self):
        raise self.exc


@pytest.fixture
def renderer():
    return DummyRenderer()


@pytest.fixture
def cycle(clock, renderer):
    config = canqv_defs.canqv_config(maxperiod=2.0, deadtime=10.0)
    return update_cycle(config, renderer=renderer, logger=DummyLogger(), clock=clock)


# ----------------- Cadence -----------------

def test_first_frame_renders(cycle, renderer, frame):
    rows = cycle.process(frame(0x100))
    assert rows is not None
    assert [r["identifier"] for r in rows] == [0x100]
    assert len(renderer.calls) == 1
    assert cycle.last_render_time == 0.0


def test_no_render_within_interval(cycle, renderer, clock, frame):
    cycle.process(frame(0x100))
    clock.advance(0.1)
    assert cycle.process(frame(0x200)) is None
    assert len(renderer.calls) == 1
    # frame still integrated
    assert 0x200 in cycle.cache

    clock.advance(0.15)
    rows = cycle.process(frame(0x100))
    assert [r["identifier"] for r in rows] == [0x100, 0x200]
    assert len(renderer.calls) == 2


def test_eviction_only_on_frame_arrival(cycle, renderer, clock, frame):
    cycle.process(frame(0x100))
    clock.advance(30.0)
    # nothing arrives: no sweep, entry still cached
    assert 0x100 in cycle.cache
    assert len(renderer.calls) == 1

    rows = cycle.process(frame(0x200))
    assert [r["identifier"] for r in rows] == [0x200]
    assert 0x100 not in cycle.cache
    assert cycle.removed == 1
    assert renderer.calls[-1][2]["removed"] == 1


def test_period_reported_in_rows(cycle, clock, frame):
    cycle.process(frame(0x100))
    clock.advance(1.0)
    rows = cycle.process(frame(0x100))
    assert rows[0]["period"] == pytest.approx(1.0)
    assert rows[0]["last"] == pytest.approx(0.0)


def test_dirty_reported_once(cycle, clock, frame):
    rows = cycle.process(frame(0x100))
    assert rows[0]["dirty"]
    clock.advance(0.5)
    rows = cycle.process(frame(0x100))
    assert not rows[0]["dirty"]
    clock.advance(0.5)
    rows = cycle.process(frame(0x100, b"\x09"))
    assert rows[0]["dirty"]


# ----------------- Decode / command log -----------------

def test_command_frames_logged_on_render(cycle, clock, frame):
    cycle.process(frame(DIAG_ID, [0xCB, 0x40, 0xB9, 0xF0, 0, 0, 0, 0]))
    clock.advance(0.01)
    cycle.process(frame(0x100, [0x01, 0x40]))
    clock.advance(0.3)
    rows = cycle.process(frame(0x200, [0x02]))

    assert cycle.logger.records == [
        (DIAG_ID, bytes([0xCB, 0x40, 0xB9, 0xF0, 0, 0, 0, 0])),
        (DIAG_ID, bytes([0xCB, 0x40, 0xB9, 0xF0, 0, 0, 0, 0])),
    ]
    by_id = {r["identifier"]: r for r in rows}
    assert by_id[DIAG_ID]["module"] == "CEM"
    assert by_id[DIAG_ID]["command"]
    assert by_id[0x100]["module"] == "CEM"
    assert not by_id[0x100]["command"]


def test_mask_zero_logs_every_entry(clock, frame):
    config = canqv_defs.canqv_config(command_mask=0)
    logger = DummyLogger()
    cycle = update_cycle(config, logger=logger, clock=clock)
    cycle.process(frame(0x100, [0x01]))
    clock.advance(0.01)
    cycle.process(frame(0x200, [0x02]))
    clock.advance(0.3)
    cycle.process(frame(0x300, []))
    # empty payload has no command byte
    assert [r[0] for r in logger.records] == [0x100, 0x100, 0x200]


def test_command_log_failure_does_not_stop_cycle(tmp_path, clock, renderer, frame):
    logger = event_logger(path=str(tmp_path))  # a directory: every write fails
    cycle = update_cycle(canqv_defs.canqv_config(), logger=logger, renderer=renderer, clock=clock)
    rows = cycle.process(frame(DIAG_ID, [0xCB, 0x40]))
    assert rows
    assert renderer.calls[-1][2]["log_failures"] == 1


def test_renderer_error_is_logged(clock, frame):
    class BrokenRenderer:
        def render(self, rows, now, status):
            raise RuntimeError("terminal gone")

    cycle = update_cycle(canqv_defs.canqv_config(), renderer=BrokenRenderer(), clock=clock)
    assert cycle.process(frame(0x100)) is not None


def test_works_without_logger_and_renderer(clock, frame):
    cycle = update_cycle(clock=clock)
    assert cycle.process(frame(DIAG_ID, [0xCB])) is not None
    assert cycle.status()["log_written"] == 0


# ----------------- Run loop -----------------

def test_run_until_end_of_stream(cycle, clock, renderer, frame):
    transport = ListTransport(clock, [
        (0.0, frame(0x100)),
        (1.0, frame(0x100)),
        (1.1, frame(0x200)),
        (12.0, frame(0x300)),
    ])
    assert cycle.run(transport) == 0
    assert cycle.frames == 4
    # renders at 0.0, 1.0 and 12.0
    assert [call[1] for call in renderer.calls] == [0.0, 1.0, 12.0]
    assert cycle.cache.identifiers() == [0x300]


@pytest.mark.parametrize("exc", [can.CanOperationError("recv failed"), OSError("Network is down")])
def test_run_transport_error(cycle, exc):
    assert cycle.run(FailingTransport(exc)) == 1
