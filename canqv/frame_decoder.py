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
@file frame_decoder.py
@brief Identifier classification and diagnostic payload annotation.
@details
This module implements the @ref frame_decoder class, which turns cached
frames into display rows. It classifies identifiers as standard or
extended, resolves the module code carried in byte 1 of diagnostic frames
and decides whether byte 0 marks a command frame that must be logged.

### Design Notes
- All lookups are stateless; an unknown module code yields an empty
  string and is never an error.
- The command rule is a mask/value pair supplied by the caller. A mask of
  zero classifies every frame as a command.
"""

import logging

from enum import Enum

import canqv_defs as canqv_defs

class addressing(Enum):
    """! CAN identifier addressing kinds."""

    ## 11-bit identifier.
    STANDARD = 1

    ## 29-bit identifier.
    EXTENDED = 2


class frame_decoder:
    """! Stateless decoder for identifiers and payload bytes."""

    def __init__(self, command_mask: int = canqv_defs.DEFAULT_COMMAND_MASK,
                 command_value: int = canqv_defs.DEFAULT_COMMAND_VALUE,
                 modules: dict | None = None):
        """! Initialize the decoder.
        @param command_mask Mask applied to byte 0 before comparing with `command_value`.
        @param command_value Expected masked value of byte 0 for command frames.
        @param modules Module code table, defaults to @ref canqv_defs.MODULE_TABLE.
        """

        ## Mask applied to byte 0 for command detection.
        self.command_mask = command_mask & 0xFF

        ## Expected value of the masked byte 0.
        self.command_value = command_value & self.command_mask

        ## code -> mnemonic lookup.
        self.modules = {code: info[0] for code, info in (modules or canqv_defs.MODULE_TABLE).items()}

        ## Logger instance for this decoder.
        self.log = logging.getLogger(f"{canqv_defs.APP_NAME}.{self.__class__.__name__}")

    @staticmethod
    def classify_addressing(identifier: int) -> addressing:
        """! Classify an identifier by its extended-format flag bit."""

        if identifier & canqv_defs.CAN_EFF_FLAG:
            return addressing.EXTENDED
        return addressing.STANDARD

    def module_name(self, code: int) -> str:
        """! Return the module mnemonic for `code`, or an empty string when unknown."""

        return self.modules.get(code, "")

    def is_command_byte(self, code: int) -> bool:
        """! Return True when `code` (byte 0 of a payload) marks a command frame."""

        return (code & self.command_mask) == self.command_value

    def format_identifier(self, identifier: int) -> str:
        """! Format an identifier: 8 digits for extended, right-aligned 3 digits for standard."""

        if self.classify_addressing(identifier) is addressing.EXTENDED:
            return f"{identifier & canqv_defs.CAN_EFF_MASK:08X}"
        return f"{identifier & canqv_defs.CAN_SFF_MASK:03X}".rjust(8)

    def format_cells(self, data: bytes) -> list:
        """! Format payload bytes as 8 display cells.
        @details
        Byte 1 shows its module mnemonic when the code is known. Missing
        bytes are shown as `--`.
        @param data Payload bytes (at most 8 are shown).
        @return List of 8 strings.
        """

        cells = []
        for pos, b in enumerate(data[:canqv_defs.MAX_DLC]):
            name = self.module_name(b) if pos == 1 else ""
            cells.append(name if name else f"{b:02X}")
        while len(cells) < canqv_defs.MAX_DLC:
            cells.append("--")
        return cells

    def annotate(self, entry, now: float) -> dict:
        """! Build a display row for a cache entry.
        @param entry @ref frame_cache.cache_entry to annotate.
        @param now Current time in seconds, used for the age column.
        @return Row dictionary consumed by the renderer.
        """

        data = entry.data
        module = self.module_name(data[1]) if len(data) > 1 else ""
        command = self.is_command_byte(data[0]) if data else False

        return {
            "identifier": entry.identifier,
            "id_text": self.format_identifier(entry.identifier),
            "addressing": self.classify_addressing(entry.identifier),
            "dlc": entry.dlc,
            "data": data,
            "cells": self.format_cells(data),
            "module": module,
            "command": command,
            "last": now - entry.last_seen,
            "period": entry.period,
            "dirty": entry.dirty,
            "count": entry.count,
        }
