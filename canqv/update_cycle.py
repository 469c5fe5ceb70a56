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
@file update_cycle.py
@brief Receive/integrate/render loop of canqv.
@details
This module implements the @ref update_cycle class which drives the whole
monitor. Every received frame is timestamped and integrated into the
@ref frame_cache. At most every `render_interval` seconds the cache is
swept, snapshotted, annotated by the @ref frame_decoder, command frames
are written by the @ref event_logger and the rows are handed to the
renderer.

### Design Notes
- Sweeping and rendering happen only when a frame arrives. During bus
  silence nothing is evicted or redrawn, even when `deadtime` elapsed.
- The clock is an injectable callable returning seconds.

### Threading Model
Single threaded: one blocking receive per iteration, no timers.

### Error Handling
Transport errors end the loop with exit status 1, a clean end of stream
with 0. Command log and renderer failures are logged and do not stop the
loop.
"""

import time
import logging

import can

import canqv_defs as canqv_defs
from frame_cache import frame_cache
from frame_decoder import frame_decoder
from event_logger import event_logger

class update_cycle:
    """! Orchestrates cache integration, periodic sweep and rendering.
    @details
    The cycle has two states: awaiting a frame (blocking receive in
    @ref run) and processing it (@ref process).
    """

    def __init__(self, config: canqv_defs.canqv_config | None = None,
                 cache: frame_cache | None = None,
                 decoder: frame_decoder | None = None,
                 logger: event_logger | None = None,
                 renderer=None,
                 clock=time.time):
        """! Wire the cycle together.
        @param config @ref canqv_defs.canqv_config with periods and policies.
        @param cache @ref frame_cache to drive, created from `config` when None.
        @param decoder @ref frame_decoder, created from `config` when None.
        @param logger @ref event_logger for command frames, or None to disable logging.
        @param renderer Object with a `render(rows, now, status)` method, or None.
        @param clock Callable returning the current time in seconds.
        """

        ## Runtime configuration.
        self.config = config or canqv_defs.canqv_config()

        ## Frame cache.
        self.cache = cache or frame_cache(maxperiod=self.config.maxperiod)

        ## Payload decoder.
        self.decoder = decoder or frame_decoder(command_mask=self.config.command_mask,
                                                command_value=self.config.command_value)

        ## Command logger (optional).
        self.logger = logger

        ## Renderer (optional).
        self.renderer = renderer

        ## Time source.
        self.clock = clock

        ## Time of the last sweep/render, None before the first one.
        self.last_render_time = None

        ## Number of frames processed.
        self.frames = 0

        ## Number of renders performed.
        self.renders = 0

        ## Number of entries evicted so far.
        self.removed = 0

        ## Logger instance for this cycle.
        self.log = logging.getLogger(f"{canqv_defs.APP_NAME}.{self.__class__.__name__}")

    def status(self) -> dict:
        """! Counters shown in the renderer status line."""

        return {
            "entries": len(self.cache),
            "frames": self.frames,
            "removed": self.removed,
            "log_written": self.logger.written if self.logger else 0,
            "log_failures": self.logger.failures if self.logger else 0,
            "log_error": self.logger.last_error if self.logger else None,
        }

    def process(self, frame: dict) -> list | None:
        """! Process one received frame.
        @details
        Integrates the frame and, when `render_interval` has elapsed since
        the last render, sweeps the cache, annotates the snapshot, logs
        command frames and renders.
        @param frame Frame dictionary from the transport.
        @return Annotated rows when a render happened, None otherwise.
        """

        now = self.clock()
        self.frames += 1
        self.cache.integrate(frame, now)

        if self.last_render_time is not None and (now - self.last_render_time) < self.config.render_interval:
            return None

        removed = self.cache.sweep(now, self.config.deadtime)
        self.removed += removed
        if removed:
            self.log.info("Removed %d silent identifiers", removed)
        self.last_render_time = now

        rows = []
        for entry in self.cache.snapshot():
            row = self.decoder.annotate(entry, now)
            if row["command"] and self.logger is not None:
                self.logger.append(entry.identifier, entry.data)
            rows.append(row)

        self.renders += 1
        if self.renderer is not None:
            try:
                self.renderer.render(rows, now, self.status())
            except Exception:
                self.log.exception("Render failed")
        return rows

    def run(self, transport) -> int:
        """! Receive and process frames until the transport ends.
        @param transport Object with a blocking `receive()` returning a frame dict or None.
        @return Exit status: 0 on end of stream, 1 on transport error.
        """

        self.log.info("Update cycle started (maxperiod=%.3fs, deadtime=%.3fs)",
                      self.config.maxperiod, self.config.deadtime)
        while True:
            try:
                frame = transport.receive()
            except (can.CanError, OSError) as e:
                self.log.error("Receive failed after %d frames: %s", self.frames, e)
                return 1

            if frame is None:
                self.log.info("End of stream after %d frames", self.frames)
                return 0

            self.process(frame)
