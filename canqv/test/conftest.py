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

import pytest


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, t=0.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, dt):
        self.t += dt
        return self.t


def make_frame(can_id, data=b"\x01\x02\x03"):
    data = bytes(data)
    return {"time": 0.0, "can_id": can_id, "dlc": len(data), "raw": data}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def frame():
    return make_frame
