#!/usr/bin/env python3
# ██╗ ██████╗ ████████╗ █████╗ ██████╗
# ██║██╔═══██╗╚══██╔══╝██╔══██╗╚════██╗
# ██║██║   ██║   ██║   ███████║ █████╔╝
# ██║██║   ██║   ██║   ██╔══██║██╔═══╝
# ██║╚██████╔╝   ██║   ██║  ██║███████╗
# ╚═╝ ╚═════╝    ╚═╝   ╚═╝  ╚═╝╚══════╝
# Copyright (c) 2025 iota2 (iota2 Engineering Tools)
# Licensed under the MIT License. See LICENSE file in the project root for details.

"""
canqv frame simulator - Create and send body network traffic
=============================================================

Generates traffic that looks like a low-speed body network with a
diagnostic tester attached, so canqv can be tried without a vehicle.

Features:
 - Periodic standard frames with slowly changing payloads
 - A one-shot identifier that is sent once and then goes silent
 - Diagnostic command frames on 000FFFFE addressed to the known modules
 - Module replies on their extended diagnostic identifiers
 - Optional logging to `frame_simulator.log`

Usage examples:
---------------
# 100 cycles on vcan0
python frame_simulator.py --interface vcan0 --count 100

# Slower cycles with diagnostic traffic every 5th cycle
python frame_simulator.py --interface vcan0 --count 200 --delay 100 --diag-every 5
"""

import time
import argparse
import logging

import can
from tqdm import tqdm

import canqv_defs as canqv_defs

# ---------------- Logging ----------------
log = logging.getLogger("simulator")
log.addHandler(logging.NullHandler())  # disabled by default


def enable_logging():
    """Enable logging to frame_simulator.log"""
    logging.basicConfig(
        filename="frame_simulator.log",
        filemode="w",
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        force=True,
    )
    global log
    log = logging.getLogger("simulator")


## Diagnostic tester identifier (29-bit).
TESTER_ID = 0x000FFFFE

## Periodic body frames: identifier -> send every N cycles.
PERIODIC_FRAMES = {
    0x100: 1,
    0x217: 2,
    0x3A0: 5,
}

## Identifier sent once at start-up only.
ONE_SHOT_ID = 0x7E0


# ---------------- Helpers ----------------
def send_frame(bus, arb_id, data_bytes, extended=False):
    """Send one CAN frame (max 8 bytes)."""
    msg = can.Message(arbitration_id=arb_id,
                      data=bytes(data_bytes[:canqv_defs.MAX_DLC]),
                      is_extended_id=extended)
    bus.send(msg)
    log.info(f"Sent frame ID=0x{arb_id:X}, data={canqv_defs.bytes_to_hex(msg.data)}")


def module_reply_id(address: str) -> int:
    """Extended reply identifier from a diagnostic address like '00 80 00 03'."""
    return int(address.replace(" ", ""), 16)


def diag_request(module_code: int) -> bytes:
    """Read-data-block-by-offset request to a module (command byte 0xCB)."""
    return bytes([0xCB, module_code, 0xB9, 0xF0, 0x00, 0x00, 0x00, 0x00])


def diag_reply(module_code: int, cycle: int) -> bytes:
    """Module answer (byte 0 high nibble 8, never a command), the payload counter makes it change between requests."""
    return bytes([0x8E, module_code, 0xF9, 0xF0, cycle & 0xFF, 0x00, 0x00, 0x00])


def periodic_payload(arb_id: int, cycle: int) -> bytes:
    """Payload of a periodic frame; only the first byte changes, every 4th cycle."""
    return bytes([(cycle // 4) & 0xFF, arb_id & 0xFF, 0x00, 0x00])


# ---------------- Main ----------------
def main(interface="vcan0", bustype="socketcan", count=50, delay: int = 50, diag_every=10, enable_log=False):

    if enable_log:
        enable_logging()

    bus = can.interface.Bus(channel=interface, interface=bustype)
    modules = [(code, info[2]) for code, info in canqv_defs.MODULE_TABLE.items() if info[2]]

    try:
        send_frame(bus, ONE_SHOT_ID, bytes([0x02, 0x10, 0x03]))

        for i in tqdm(range(count), desc="Sending frames"):
            for arb_id, every in PERIODIC_FRAMES.items():
                if i % every == 0:
                    send_frame(bus, arb_id, periodic_payload(arb_id, i))

            if diag_every and i % diag_every == 0:
                code, address = modules[(i // diag_every) % len(modules)]
                send_frame(bus, TESTER_ID, diag_request(code), extended=True)
                send_frame(bus, module_reply_id(address), diag_reply(code, i), extended=True)

            time.sleep(delay / 1000)
    finally:
        bus.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--interface", default="vcan0", help="CAN channel (default: vcan0)")
    parser.add_argument("--bustype", default="socketcan", help="python-can interface (default: socketcan)")
    parser.add_argument("--count", type=int, default=50, help="number of update cycles to send")
    parser.add_argument("--delay", type=int, default=50, help="delay in milli-seconds between cycles (default: 50)")
    parser.add_argument("--diag-every", type=int, default=10, help="send a diagnostic request every N cycles (0 disables)")
    parser.add_argument("--log", action="store_true", help="enable logging to frame_simulator.log")
    args = parser.parse_args()
    main(args.interface, args.bustype, args.count, args.delay, args.diag_every, args.log)
