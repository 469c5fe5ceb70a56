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
@file canqv_sniffer.py
@brief CAN frame source for canqv: live python-can bus or recorded log replay.
@details
This module implements the @ref canqv_sniffer transport. It opens a
python-can bus with the identifier filters given on the command line (or
replays a recorded log file), converts every received `can.Message` into a
lightweight frame dictionary and hands it to the update cycle through a
blocking @ref canqv_sniffer.receive call.

### Responsibilities
- Open and manage the CAN bus or log reader
- Apply identifier/mask filters (kernel side for SocketCAN, in software for replay)
- Convert `can.Message` objects to frame dictionaries with SocketCAN flag bits
- Signal end of stream and shut resources down

### Design Notes
- This module performs no caching or decoding.
- The receive loop polls with a short timeout so @ref canqv_sniffer.stop
  can end it from a signal handler.

### Error Handling
Bus open failures propagate to the caller. Receive errors propagate as
`can.CanError`/`OSError` unless a stop was requested, in which case the
stream simply ends.
"""

import threading
import logging

import can
from can import exceptions as can_exceptions

import canqv_defs as canqv_defs

def matches_filters(msg: can.Message, filters: list | None) -> bool:
    """! Check a message against python-can style filters.
    @param msg Message to check.
    @param filters List of `{"can_id", "can_mask", "extended"}` dicts, or None to accept all.
    @return True when no filters are set or at least one matches.
    """
    if not filters:
        return True
    for f in filters:
        if "extended" in f and f["extended"] != msg.is_extended_id:
            continue
        if ((f["can_id"] ^ msg.arbitration_id) & f["can_mask"]) == 0:
            return True
    return False


class canqv_sniffer:
    """! Blocking frame source on top of python-can."""

    def __init__(self, device: str = canqv_defs.DEFAULT_DEVICE,
                 interface: str = canqv_defs.DEFAULT_INTERFACE,
                 filters: list | None = None,
                 replay: str | None = None,
                 realtime: bool = False):
        """! Open the bus or the replay file.
        @param device CAN channel name (e.g. "can0"); "any" listens on all SocketCAN interfaces.
        @param interface python-can interface backend (e.g. "socketcan", "virtual").
        @param filters python-can filter dicts, or None for all frames.
        @param replay Path of a recorded log (candump .log, .asc, .blf, .csv) to replay instead of a bus.
        @param realtime When replaying, reproduce the recorded inter-frame gaps.
        """

        ## CAN channel name.
        self.device = device

        ## python-can interface backend.
        self.interface = interface

        ## Identifier/mask filters.
        self.filters = filters or None

        ## Replay file path, or None for a live bus.
        self.replay = replay

        ## Timestamp of the most recently received frame.
        self.last_timestamp = 0.0

        ## Number of frames delivered.
        self.received = 0

        ## Stop event used to end a blocking receive.
        self._stop_event = threading.Event()

        ## Logger instance for this sniffer.
        self.log = logging.getLogger(f"{canqv_defs.APP_NAME}.{self.__class__.__name__}")

        ## python-can bus, None when replaying.
        self.bus = None

        ## Log reader, None for a live bus.
        self.reader = None

        ## Iterator over replayed messages.
        self._replay_iter = None

        if replay:
            self.reader = can.LogReader(replay)
            source = can.MessageSync(self.reader, timestamps=True) if realtime else self.reader
            self._replay_iter = iter(source)
            self.log.info("Replaying %s (realtime=%s)", replay, realtime)
        else:
            channel = "" if (device == "any" and interface == "socketcan") else device
            try:
                self.bus = can.interface.Bus(channel=channel, interface=interface, can_filters=self.filters)
                self.log.info(f"CAN bus opened on {device} ({interface}), {len(self.filters or [])} filters")
            except Exception as e:
                self.log.exception("Failed to open CAN interface %s: %s", device, e)
                raise

    @staticmethod
    def message_to_frame(msg: can.Message) -> dict:
        """! Convert a `can.Message` to a frame dictionary.
        @details
        The identifier carries the SocketCAN EFF/RTR/ERR flag bits so that
        standard and extended frames with the same number stay distinct and
        sort standard first.
        @param msg Received message.
        @return Frame dictionary with `time`, `can_id`, `dlc` and `raw`.
        """

        if msg.is_extended_id:
            can_id = (msg.arbitration_id & canqv_defs.CAN_EFF_MASK) | canqv_defs.CAN_EFF_FLAG
        else:
            can_id = msg.arbitration_id & canqv_defs.CAN_SFF_MASK
        if msg.is_remote_frame:
            can_id |= canqv_defs.CAN_RTR_FLAG
        if msg.is_error_frame:
            can_id |= canqv_defs.CAN_ERR_FLAG

        # remote frames carry the requested length without payload
        raw = bytes(msg.data)[:canqv_defs.MAX_DLC]
        dlc = min(msg.dlc, canqv_defs.MAX_DLC)
        return {"time": msg.timestamp, "can_id": can_id, "dlc": dlc, "raw": raw}

    def _next_replayed(self):
        """! Next replayed message matching the filters, or None at end of file."""

        for msg in self._replay_iter:
            if self._stop_event.is_set():
                return None
            if matches_filters(msg, self.filters):
                return msg
        return None

    def receive(self, poll_timeout: float = 0.1) -> dict | None:
        """! Block until a frame arrives.
        @param poll_timeout Bus polling period used to check the stop request.
        @return Frame dictionary, or None on end of stream / stop request.
        @exception can.CanError Receive failure on a live bus.
        """

        if self._replay_iter is not None:
            msg = self._next_replayed()
        else:
            msg = None
            while msg is None:
                if self._stop_event.is_set():
                    return None
                try:
                    msg = self.bus.recv(timeout=poll_timeout)
                except (can_exceptions.CanOperationError, OSError) as e:
                    # The socket is closed under us during shutdown.
                    if self._stop_event.is_set():
                        self.log.debug("Receive aborted during shutdown: %s", e)
                        return None
                    raise

        if msg is None:
            return None

        frame = self.message_to_frame(msg)
        self.last_timestamp = frame["time"]
        self.received += 1
        self.log.debug(f"Rx frame: [0x{frame['can_id']:08X}] [{canqv_defs.bytes_to_hex(frame['raw'])}]")
        return frame

    def stop(self):
        """! Request the receive loop to end; the next receive returns None."""

        self._stop_event.set()
        self.log.debug("Stop requested for sniffer")

    def close(self):
        """! Release the bus or the replay file."""

        self._stop_event.set()
        if self.bus is not None:
            try:
                self.bus.shutdown()
                self.log.info("CAN bus shutdown completed")
            except can.CanError as e:
                self.log.warning("bus.shutdown() failed: %s", e)
            self.bus = None
        if self.reader is not None:
            self.reader.stop()
            self.reader = None
