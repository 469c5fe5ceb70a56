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
@file canqv_defs.py
@brief Shared constants, configuration record, reference tables and helpers for canqv.
@details
This module centralizes everything the canqv modules share: application
metadata, SocketCAN identifier flag bits, CLI defaults, the module code table
used to annotate diagnostic payloads, the static reference text shown below
the live view, and logging setup.

### Responsibilities
- Define application-wide constants and defaults
- Provide the @ref canqv_config record passed to the cache and update cycle
- Hold the module code table and reference blocks
- Configure and enable logging in a centralized manner

### Design Notes
- Logging is disabled by default and enabled explicitly via `-v`.
- Nothing in here holds mutable runtime state; configuration travels as a
  @ref canqv_config instance.
"""

import logging

from dataclasses import dataclass
from datetime import datetime

# --------------------------------------------------------------------------
# ----- Definitions -----
# --------------------------------------------------------------------------

## Application organization name.
APP_ORG = "iota2"

## Application name.
APP_NAME = "canqv"

## Application version.
APP_VERSION = "1.0.0"

# --------------------------------------------------------------------------
# ----- SocketCAN identifier layout -----
# --------------------------------------------------------------------------

## Extended frame format flag (29-bit identifier).
CAN_EFF_FLAG = 0x80000000

## Remote transmission request flag.
CAN_RTR_FLAG = 0x40000000

## Error frame flag.
CAN_ERR_FLAG = 0x20000000

## Standard frame format mask (11-bit identifier).
CAN_SFF_MASK = 0x000007FF

## Extended frame format mask (29-bit identifier).
CAN_EFF_MASK = 0x1FFFFFFF

## Maximum classic CAN payload length.
MAX_DLC = 8

# --------------------------------------------------------------------------
# ----- Defaults -----
# --------------------------------------------------------------------------

## Default python-can interface backend.
DEFAULT_INTERFACE = "socketcan"

## Default device; "any" binds to every CAN interface.
DEFAULT_DEVICE = "any"

## Default maximum period (seconds). Slower rates are treated as one-time identifiers.
DEFAULT_MAXPERIOD = 2.0

## Default silence (seconds) after which an identifier is removed.
DEFAULT_DEADTIME = 10.0

## Minimum time between two sweeps/renders (seconds).
RENDER_INTERVAL = 0.25

## Default path of the append-only command log.
DEFAULT_COMMAND_LOG = f"{APP_NAME}_commands.log"

## Default command byte mask.
## @details
## Command messages carry 0xC in the high nibble and bit 3 set in byte 0.
DEFAULT_COMMAND_MASK = 0xF8

## Default command byte value, compared under @ref DEFAULT_COMMAND_MASK.
DEFAULT_COMMAND_VALUE = 0xC8

## Default Logging level.
LOG_LEVEL = logging.DEBUG


# --------------------------------------------------------------------------
# ----- Configuration -----
# --------------------------------------------------------------------------
@dataclass
class canqv_config:
    """! Runtime configuration of the cache and update cycle.
    @details
    Built once from the command line and handed to every component that
    needs it, instead of module-level globals.
    """

    ## Maximum accepted inter-arrival gap for a period estimate (seconds).
    maxperiod: float = DEFAULT_MAXPERIOD

    ## Silence after which an entry is evicted (seconds).
    deadtime: float = DEFAULT_DEADTIME

    ## Minimum time between sweeps/renders (seconds).
    render_interval: float = RENDER_INTERVAL

    ## Command log path, or None to disable command logging.
    command_log: str | None = DEFAULT_COMMAND_LOG

    ## Mask applied to byte 0 before comparing with `command_value`.
    command_mask: int = DEFAULT_COMMAND_MASK

    ## Expected value of byte 0 (under `command_mask`) for command frames.
    command_value: int = DEFAULT_COMMAND_VALUE

    ## Verbosity level (number of -v flags).
    verbose: int = 0


# --------------------------------------------------------------------------
# ----- Module table -----
# --------------------------------------------------------------------------

## Low-speed network module codes: code -> (mnemonic, description, diagnostic address).
MODULE_TABLE = {
    0x1B: ("MUM", "MUM", ""),
    0x40: ("CEM", "Central Electronic Module", "00 80 00 03"),
    0x51: ("DIM", "Driver Information Module", "00 80 00 09"),
    0x48: ("SWM", "Steering Wheel Module", "00 80 08 01"),
    0x29: ("CCM", "Climate Control Module", "00 80 10 01"),
    0x43: ("DDM", "Driver Door Module", "00 80 00 11"),
    0x45: ("PDM", "Passenger Door Module", "00 80 00 81"),
    0x2E: ("PSM", "Power Seat Module", "00 80 01 01"),
    0x46: ("REM", "Rear Electronic Module", "00 80 04 01"),
    0x58: ("SRS", "Air bag", "00 80 02 01"),
    0x47: ("UEM", "Upper Electronic Module", "00 80 20 01"),
    0x60: ("AUM", "Audio Module", "00 80 00 05"),
    0x64: ("PHM", "Phone Module", "00 80 00 21"),
}

## Hi-speed network module codes (reference only, not used for annotation).
HISPEED_MODULES = [
    (0x50, "CEM", "Central Electronic Module (Hi-speed interface)"),
    (0x01, "BCM", "Break Control Module (hi-speed network)"),
    (0x52, "AEM", "Accessory Electronic Module"),
    (0x11, "ECM", "Engine Control Module (hi-speed network)"),
    (0x28, "SAS", "Steering Angle Sensor (hi-speed network)"),
    (0x6E, "TCM", "Transmission Control Module (hi-speed network)"),
    (0x62, "RTI", "Road Traffic Information module"),
]

## Frame layout legend shown above the live table.
FRAME_LEGEND = (
    "          .----------------------- Message length\n"
    "          |  .-------------------- Module id (list below)\n"
    "          |  |  .----------------- Read Data Block By Offset\n"
    "          |  |  |  .---- Identify (?)\n"
    "          |  |  |  |\n"
    "000FFFFE CB xx B9 F0 00 00 00 00\n"
    "00 0F FF FE: The identifier VIDA (or any other diagnostic module) uses for messaging.\n"
    "Message length: High nibble seems to be always 'C' in command message. "
    "Low nibble: Bit 3 is always on. Bits 0-2 is the actual message length "
    "(excluding the first byte)."
)

## Extra notes attached to a module in the reference table.
MODULE_NOTES = {
    0x40: "also answers queries related to CPM (heater)",
}


# --------------------------------------------------------------------------
# ----- Logging -----
# --------------------------------------------------------------------------
## @brief Logger instance
## @details
## Default behavior: No console or file logs until explicitly enabled.
root_logger = logging.getLogger()
for h in root_logger.handlers[:]:
    root_logger.removeHandler(h)
root_logger.setLevel(LOG_LEVEL)

## Module-level convenience logger (propagates to the root handler once enabled).
log = logging.getLogger(f"{APP_NAME}")
log.addHandler(logging.NullHandler())

def enable_logging(verbosity: int = 1):
    """! Enable file-only logging, enabled through `-v`.
    @param verbosity Number of `-v` flags: 1 logs INFO, 2 or more logs DEBUG.
    @return Name of the log file.
    """
    filename = f"{APP_NAME}.log"
    level = logging.DEBUG if verbosity >= 2 else logging.INFO

    # File only: the live screen owns the terminal.
    logging.basicConfig(
        filename=filename,
        format="%(asctime)s [%(levelname)-8s] [%(name)-15s] %(message)s",
        filemode="w",
        level=level,
        force=True,
    )

    global log
    log = logging.getLogger(f"{APP_NAME}")
    log.setLevel(level)
    log.info(f"Logging enabled → {filename}")
    return filename


# ----- helpers -----
def now_str() -> str:
    """! Return current time string.
    @return Time string.
    """
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]

def bytes_to_hex(data) -> str:
    """! Convert bytes or bytearray to a space-separated hex string.
    @param data Byte stream.
    @return Converted string.
    """
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return " ".join(f"{b:02X}" for b in data)
