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
@file display_cli.py
@brief Rich-based live view of the canqv frame cache.
@details
This module provides the terminal renderer. It draws the annotated cache
snapshot as a table (one row per identifier, eight payload cells, age and
period), followed by the frame layout legend, the module code reference
tables and a status line.

### Design Notes
- Rendering is driven by the update cycle; this class has no loop or
  thread of its own.
- No decoding happens here, rows arrive fully annotated.
"""

import logging

from rich.console import Console, Group
from rich.table import Table
from rich.live import Live
from rich.text import Text
from rich import box

import canqv_defs as canqv_defs

class display_cli:
    """! Rich renderer for annotated cache snapshots."""

    def __init__(self, console: Console | None = None, show_reference: bool = True, screen: bool = True):
        """! Initialize the renderer.
        @param console Rich console to draw on, a new one when None.
        @param show_reference Draw the legend and module tables below the live table.
        @param screen Use the alternate screen while live.
        """

        ## Rich console instance for display.
        self.console = console or Console()

        ## Whether the reference blocks are drawn.
        self.show_reference = show_reference

        ## Alternate screen flag for the live display.
        self.screen = screen

        ## Rich Live instance while started.
        self.live = None

        ## Logger instance for the display.
        self.log = logging.getLogger(f"{canqv_defs.APP_NAME}.{self.__class__.__name__}")

        # static, built once
        self._reference = self.build_reference() if show_reference else None

    def start(self):
        """! Enter the live screen."""

        self.live = Live(console=self.console, screen=self.screen, auto_refresh=False)
        self.live.start()
        self.log.info("display_cli started")

    def stop(self):
        """! Leave the live screen."""

        if self.live is not None:
            self.live.stop()
            self.live = None
        self.log.info("display_cli exiting")

    def build_table(self, rows: list) -> Table:
        """! Build the live table from annotated rows."""

        t = Table(title=f"{canqv_defs.APP_NAME} - CAN quick view", expand=False, box=box.SIMPLE, style="cyan")
        t.add_column("ID", justify="right", no_wrap=True)
        for n in range(canqv_defs.MAX_DLC):
            t.add_column(f"B{n}", justify="center", width=3, no_wrap=True)
        t.add_column("Last", justify="right", no_wrap=True)
        t.add_column("Period", justify="right", no_wrap=True)
        t.add_column("Cmd", justify="center", width=3)

        for row in rows:
            period = row.get("period")
            style = "bold" if row.get("dirty") else ""
            if row.get("command"):
                style = f"{style} yellow".strip()
            t.add_row(
                row["id_text"],
                *row["cells"],
                f"last=-{row['last']:.3f}s",
                f"period={period:.3f}s" if period is not None else "",
                "*" if row.get("command") else "",
                style=style or None,
            )
        return t

    def build_reference(self):
        """! Build the static legend and module reference tables."""

        legend = Text(canqv_defs.FRAME_LEGEND, style="dim")

        modules = Table(title="Low-speed modules", box=box.SIMPLE, style="green")
        modules.add_column("Address", no_wrap=True)
        modules.add_column("Code", justify="right")
        modules.add_column("Module")
        for code, (name, desc, address) in canqv_defs.MODULE_TABLE.items():
            note = canqv_defs.MODULE_NOTES.get(code)
            label = f"{name}, {desc}" + (f" ({note})" if note else "")
            modules.add_row(address, f"{code:02X}", label)

        hispeed = Table(title="Hi-speed modules", box=box.SIMPLE, style="magenta")
        hispeed.add_column("Code", justify="right")
        hispeed.add_column("Module")
        for code, name, desc in canqv_defs.HISPEED_MODULES:
            hispeed.add_row(f"{code:02X}", f"{name}, {desc}")

        grid = Table.grid(padding=(0, 2))
        grid.add_row(modules, hispeed)
        return Group(legend, grid)

    def build_status(self, now: float, status: dict) -> Text:
        """! One-line status summary."""

        text = Text(
            f"[{canqv_defs.now_str()}] t={now:.3f} entries={status.get('entries', 0)} "
            f"frames={status.get('frames', 0)} removed={status.get('removed', 0)} "
            f"logged={status.get('log_written', 0)}",
            style="yellow",
        )
        if status.get("log_failures"):
            text.append(f"  command log failures={status['log_failures']}: {status.get('log_error')}", style="bold red")
        return text

    def render(self, rows: list, now: float, status: dict | None = None):
        """! Draw one annotated snapshot.
        @param rows Rows produced by @ref frame_decoder.annotate.
        @param now Render time in seconds.
        @param status Counters from @ref update_cycle.status.
        """

        parts = [self.build_table(rows)]
        if self._reference is not None:
            parts.append(self._reference)
        parts.append(self.build_status(now, status or {}))
        view = Group(*parts)

        if self.live is not None:
            self.live.update(view, refresh=True)
        else:
            self.console.print(view)
