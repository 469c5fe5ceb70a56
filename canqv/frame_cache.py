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
@file frame_cache.py
@brief Per-identifier frame cache with period estimation and time based eviction.
@details
This module implements the @ref frame_cache class, the central state of
canqv. It keeps exactly one @ref cache_entry per CAN identifier that is
still transmitting, ordered by identifier, together with the most recent
payload, the time it was last seen and an estimate of its period.

### Responsibilities
- Look up or insert an entry for every received frame
- Estimate the transmission period of each identifier
- Track whether the payload changed since the last render
- Evict identifiers that stopped transmitting
- Provide ordered snapshots for rendering

### Design Notes
- Entries are kept in a list sorted by identifier with a parallel key list,
  so lookup is a bisect and render order needs no extra sort.
- Insertion is the rare path (one per new identifier); lookup is the hot
  path (one per received frame).
- The cache never reads the clock; callers pass `now`.

### Threading Model
Not thread-safe. Owned and driven by a single @ref update_cycle.
"""

import copy
import bisect
import logging

from dataclasses import dataclass

import canqv_defs as canqv_defs

@dataclass
class cache_entry:
    """! Most recent observation of one CAN identifier."""

    ## Raw identifier, including EFF/RTR flag bits as received.
    identifier: int

    ## Data length of the most recent payload.
    dlc: int = 0

    ## Most recent payload bytes.
    data: bytes = b""

    ## Timestamp of the most recent observation (seconds).
    last_seen: float = 0.0

    ## Estimated period in seconds, None while unknown.
    period: float | None = None

    ## Payload changed since the last render.
    dirty: bool = True

    ## Number of observations since the entry was created.
    count: int = 1


class frame_cache:
    """! Ordered collection of @ref cache_entry objects keyed by identifier.
    @details
    Entries are unique by identifier and always sorted ascending. The
    cache only grows through @ref integrate and only shrinks through
    @ref sweep or @ref clear.
    """

    def __init__(self, maxperiod: float = canqv_defs.DEFAULT_MAXPERIOD):
        """! Create an empty cache.
        @param maxperiod Largest inter-arrival gap (seconds) accepted as a period.
        """

        ## Largest gap accepted as a period estimate.
        self.maxperiod = maxperiod

        ## Sorted identifiers, parallel to `_entries`.
        self._ids = []

        ## Entries sorted by identifier.
        self._entries = []

        ## Logger instance for this cache.
        self.log = logging.getLogger(f"{canqv_defs.APP_NAME}.{self.__class__.__name__}")

    def _index(self, identifier: int) -> int:
        """! Return the position of `identifier`, or -1 when absent."""

        pos = bisect.bisect_left(self._ids, identifier)
        if pos < len(self._ids) and self._ids[pos] == identifier:
            return pos
        return -1

    def integrate(self, frame: dict, now: float) -> cache_entry:
        """! Integrate one received frame into the cache.
        @details
        A new identifier is inserted at its sorted position with an unknown
        period and the dirty flag set. A known identifier gets its period
        updated from the gap since it was last seen (unknown when the gap
        exceeds `maxperiod`), is marked dirty when the payload changed, and
        takes over the new payload and timestamp.
        @param frame Frame dictionary with `can_id`, `dlc` and `raw` keys.
        @param now Observation time in seconds.
        @return The entry that now holds the frame.
        """

        identifier = frame["can_id"]
        dlc = min(frame.get("dlc", len(frame.get("raw", b""))), canqv_defs.MAX_DLC)
        data = bytes(frame.get("raw", b""))[:dlc]
        # remote frames keep the requested length, data frames the payload length
        if not identifier & canqv_defs.CAN_RTR_FLAG:
            dlc = len(data)

        pos = bisect.bisect_left(self._ids, identifier)
        if pos == len(self._ids) or self._ids[pos] != identifier:
            entry = cache_entry(identifier=identifier, dlc=dlc, data=data, last_seen=now)
            self._ids.insert(pos, identifier)
            self._entries.insert(pos, entry)
            self.log.debug("New identifier 0x%X (%d cached)", identifier, len(self._ids))
            return entry

        entry = self._entries[pos]
        gap = now - entry.last_seen
        entry.period = gap if gap <= self.maxperiod else None

        if entry.dlc != dlc or entry.data != data:
            entry.dirty = True

        entry.dlc = dlc
        entry.data = data
        entry.last_seen = now
        entry.count += 1
        return entry

    def sweep(self, now: float, deadtime: float) -> int:
        """! Remove dead entries and reset stale periods in one ordered pass.
        @details
        Entries silent for more than `deadtime` are dropped. Survivors with a
        known period that have been silent for more than twice that period
        get their period reset, since the periodic assumption no longer holds.
        @param now Current time in seconds.
        @param deadtime Silence (seconds) after which an entry is removed.
        @return Number of removed entries.
        """

        kept = []
        for entry in self._entries:
            lastseen = now - entry.last_seen
            if lastseen > deadtime:
                self.log.debug("Removing identifier 0x%X (silent %.3fs)", entry.identifier, lastseen)
                continue
            if entry.period is not None and lastseen > 2 * entry.period:
                entry.period = None
            kept.append(entry)

        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = kept
            self._ids = [e.identifier for e in kept]
        return removed

    def snapshot(self) -> list:
        """! Ordered copies of all entries; clears every dirty flag afterwards."""

        view = [copy.copy(e) for e in self._entries]
        for entry in self._entries:
            entry.dirty = False
        return view

    def get(self, identifier: int) -> cache_entry | None:
        pos = self._index(identifier)
        return self._entries[pos] if pos >= 0 else None

    def identifiers(self) -> list:
        return list(self._ids)

    def clear(self):
        self._ids = []
        self._entries = []

    def __len__(self):
        return len(self._entries)

    def __contains__(self, identifier):
        return self._index(identifier) >= 0

    def __iter__(self):
        return iter(list(self._entries))
