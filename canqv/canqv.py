#!/usr/bin/env python3
# ██╗ ██████╗ ████████╗ █████╗ ██████╗
# ██║██╔═══██╗╚══██╔══╝██╔══██╗╚════██╗
# ██║██║   ██║   ██║   ███████║ █████╔╝
# ██║██║   ██║   ██║   ██╔══██║██╔═══╝
# ██║╚██████╔╝   ██║   ██║  ██║███████╗
# ╚═╝ ╚═════╝    ╚═╝   ╚═╝  ╚═╝╚══════╝
# Copyright (c) 2025 iota2 (iota2 Engineering Tools)
# Licensed under the MIT License. See LICENSE file in the project root for details.

"""!
@file canqv.py
@brief canqv (CAN quick view) application entry point.
@details
Passive CAN spy: shows the latest frame of every identifier on the bus,
its age and its period, removes identifiers that stop transmitting and
logs diagnostic command frames.

### Responsibilities
- Parse command-line arguments and identifier filters
- Initialize logging and the runtime configuration
- Wire transport, cache, decoder, command log and renderer together
- Handle OS signals and shut down cleanly

### Usage examples
# Watch every frame on can0
canqv can0

# Only the diagnostic identifier 000FFFFE and standard IDs 0x100-0x1FF
canqv can0 000FFFFE 100/700

# Shorter periods and faster removal, with debug logging to canqv.log
canqv -vv -m 0.5 -x 3 vcan0

# Replay a candump log at recorded speed
canqv --replay drive.log --realtime
"""

import re
import sys
import time
import signal
import logging
import argparse

import can

import canqv_defs as canqv_defs
from canqv_sniffer import canqv_sniffer
from frame_decoder import frame_decoder
from event_logger import event_logger
from display_cli import display_cli
from update_cycle import update_cycle

## Filter token: hex ID with optional `/MASK` or `:MASK`.
FILTER_RE = re.compile(r"^([0-9A-Fa-f]+)(?:[/:]([0-9A-Fa-f]+))?$")

def parse_filter(token: str) -> dict:
    """! Parse an `ID[/MASK]` (or `ID:MASK`) filter token.
    @details
    ID and MASK are hexadecimal. More than three ID digits select an
    extended (29-bit) filter. Without a mask the filter matches the exact
    identifier.
    @param token Command line token.
    @return python-can filter dictionary.
    @exception argparse.ArgumentTypeError Malformed token.
    """
    m = FILTER_RE.match(token)
    if not m:
        raise argparse.ArgumentTypeError(f"invalid filter '{token}', expected ID[/MASK]")

    id_s, mask_s = m.groups()
    extended = len(id_s) > 3
    full_mask = canqv_defs.CAN_EFF_MASK if extended else canqv_defs.CAN_SFF_MASK
    can_id = int(id_s, 16) & full_mask
    can_mask = int(mask_s, 16) & full_mask if mask_s else full_mask
    return {"can_id": can_id, "can_mask": can_mask, "extended": extended}


def hex_byte(value: str) -> int:
    """! argparse type for a hexadecimal byte."""
    try:
        b = int(value, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid hex byte '{value}'")
    if not 0 <= b <= 0xFF:
        raise argparse.ArgumentTypeError(f"byte out of range '{value}'")
    return b


def seconds(value: str) -> float:
    """! argparse type for a non-negative duration."""
    try:
        s = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid time '{value}'")
    if s < 0:
        raise argparse.ArgumentTypeError(f"time must not be negative '{value}'")
    return s


def build_parser() -> argparse.ArgumentParser:
    """! Command-line argument parser."""

    p = argparse.ArgumentParser(prog=canqv_defs.APP_NAME, add_help=False,
                                description=f"{canqv_defs.APP_NAME}: CAN spy")
    p.add_argument("-?", "--help", action="help", help="show this help message and exit")
    p.add_argument("-V", "--version", action="version",
                   version=f"{canqv_defs.APP_NAME} {canqv_defs.APP_VERSION}")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help=f"verbose output to {canqv_defs.APP_NAME}.log (-vv for debug)")
    p.add_argument("-m", "--maxperiod", type=seconds, default=canqv_defs.DEFAULT_MAXPERIOD, metavar="TIME",
                   help=f"consider TIME as maximum period (default {canqv_defs.DEFAULT_MAXPERIOD:g}s); "
                        "slower rates are considered multiple one-time IDs")
    p.add_argument("-x", "--remove", type=seconds, default=canqv_defs.DEFAULT_DEADTIME, metavar="TIME",
                   help=f"remove IDs after TIME (default {canqv_defs.DEFAULT_DEADTIME:g}s)")
    p.add_argument("-i", "--interface", default=canqv_defs.DEFAULT_INTERFACE,
                   help=f"python-can interface (default: {canqv_defs.DEFAULT_INTERFACE})")
    p.add_argument("-r", "--replay", metavar="FILE", help="replay a recorded log (.log, .asc, .blf, .csv) instead of a bus")
    p.add_argument("--realtime", action="store_true", help="replay with the recorded timing")
    p.add_argument("-l", "--command-log", default=canqv_defs.DEFAULT_COMMAND_LOG, metavar="PATH",
                   help=f"append command frames to PATH (default: {canqv_defs.DEFAULT_COMMAND_LOG})")
    p.add_argument("--no-command-log", action="store_true", help="do not log command frames")
    p.add_argument("--command-mask", type=hex_byte, default=canqv_defs.DEFAULT_COMMAND_MASK, metavar="HEX",
                   help=f"byte 0 mask for command frames (default: {canqv_defs.DEFAULT_COMMAND_MASK:02X}, 0 logs every frame)")
    p.add_argument("--command-value", type=hex_byte, default=canqv_defs.DEFAULT_COMMAND_VALUE, metavar="HEX",
                   help=f"masked byte 0 value of command frames (default: {canqv_defs.DEFAULT_COMMAND_VALUE:02X})")
    p.add_argument("--no-reference", action="store_true", help="hide the legend and module tables")
    p.add_argument("device", nargs="?", default=canqv_defs.DEFAULT_DEVICE, metavar="DEVICE",
                   help=f"CAN device (default: {canqv_defs.DEFAULT_DEVICE})")
    p.add_argument("filters", nargs="*", type=parse_filter, metavar="ID[/MASK]",
                   help="hex identifier filters; more than 3 digits means extended")
    return p


def build_config(args) -> canqv_defs.canqv_config:
    """! Runtime configuration from parsed arguments."""

    return canqv_defs.canqv_config(
        maxperiod=args.maxperiod,
        deadtime=args.remove,
        command_log=None if args.no_command_log else args.command_log,
        command_mask=args.command_mask,
        command_value=args.command_value,
        verbose=args.verbose,
    )


def main(argv=None) -> int:
    """! Main entry point.
    @param argv Argument list, `sys.argv[1:]` when None.
    @return Process exit status.
    """

    args = build_parser().parse_args(argv)

    if args.verbose:
        canqv_defs.enable_logging(args.verbose)
    log = logging.getLogger(canqv_defs.APP_NAME)

    config = build_config(args)
    log.info(f"Configuration: {config}")

    try:
        sniffer = canqv_sniffer(device=args.device, interface=args.interface,
                                filters=args.filters, replay=args.replay, realtime=args.realtime)
    except (can.CanError, OSError, ValueError, ImportError) as e:
        source = args.replay or args.device
        print(f"{canqv_defs.APP_NAME}: cannot open '{source}': {e}", file=sys.stderr)
        return 1

    decoder = frame_decoder(command_mask=config.command_mask, command_value=config.command_value)
    logger = event_logger(config.command_log, decoder) if config.command_log else None
    display = display_cli(show_reference=not args.no_reference)

    # Recorded timestamps drive the clock when replaying as fast as possible.
    if args.replay and not args.realtime:
        clock = lambda: sniffer.last_timestamp
    else:
        clock = time.time

    cycle = update_cycle(config, decoder=decoder, logger=logger, renderer=display, clock=clock)

    def _stop(signum, frame):
        """! Signal handler requesting the receive loop to end."""
        log.warning("Signal %s received, stopping", signum)
        sniffer.stop()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}

    status = 0
    display.start()
    try:
        status = cycle.run(sniffer)
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received, shutting down")
    finally:
        display.stop()
        sniffer.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        log.info(f"Terminating {canqv_defs.APP_NAME} (status {status}, {cycle.frames} frames)")

    return status


if __name__ == "__main__":
    sys.exit(main())
