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
@file event_logger.py
@brief Append-only text log of diagnostic command frames.
@details
Every call to @ref event_logger.append opens the log file, writes one
line and closes it again, so the file may be rotated or removed between
writes. Write failures are reported through logging and counted; they
never interrupt monitoring.

Line format: `IDENTIFIER:  B0  MODULE_OR_B1  B2 ... B7`
"""

import logging

import canqv_defs as canqv_defs
from frame_decoder import frame_decoder

class event_logger:
    """! Writes command frames to the command log."""

    def __init__(self, path: str = canqv_defs.DEFAULT_COMMAND_LOG, decoder: frame_decoder | None = None):
        """! Initialize the command logger.
        @param path Path of the append-only log file.
        @param decoder @ref frame_decoder used for identifier and module formatting.
        """

        ## Path of the command log.
        self.path = path

        ## Decoder used to format identifiers and module names.
        self.decoder = decoder or frame_decoder()

        ## Number of records written.
        self.written = 0

        ## Number of failed writes.
        self.failures = 0

        ## Text of the most recent failure, or None.
        self.last_error = None

        ## Logger instance for this command logger.
        self.log = logging.getLogger(f"{canqv_defs.APP_NAME}.{self.__class__.__name__}")

    def format_record(self, identifier: int, data: bytes) -> str:
        """! Format one log line (without newline)."""

        fields = [f"{self.decoder.format_identifier(identifier).strip()}:"]
        for pos, b in enumerate(data):
            name = self.decoder.module_name(b) if pos == 1 else ""
            fields.append(name if name else f"{b:02X}")
        return "  ".join(fields)

    def append(self, identifier: int, data: bytes) -> bool:
        """! Append one command record to the log.
        @param identifier Raw identifier of the frame.
        @param data Payload bytes.
        @return True when the record was written, False on failure.
        """

        line = self.format_record(identifier, data)
        try:
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as e:
            self.failures += 1
            self.last_error = str(e)
            self.log.error("Command log write to %s failed: %s", self.path, e)
            return False

        self.written += 1
        self.log.debug("Command logged: %s", line)
        return True
