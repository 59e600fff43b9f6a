# curses_view.py
"""
Curses‑based view that displays the latest telemetry of every headset in a
tabular grid.  The view owns the curses window and redraws the table when
the controller reports a changed row; it runs in its own thread so the
asyncio loop driving the watcher never blocks on the terminal.
"""

import curses
import threading
from typing import Dict, Any
from app_logger import log_buffer   # shared in‑memory log deque


class CursesView:
    """
    Minimal curses UI.  The controller calls ``update_row`` with a dict
    built by ``controller.build_view_row``.
    """

    HEADER = ["device", "model", "left", "right", "case",
              "lid", "in_ear", "rssi", "last_seen"]
    KEYS = ["mac", "model", "left", "right", "case",
            "lid", "in_ear", "rssi", "last_seen"]

    def __init__(self, stdscr: "curses.window") -> None:
        """
        ``stdscr`` is the window object supplied by ``curses.wrapper``.
        All drawing happens inside this window.
        """
        self.stdscr = stdscr
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._rows_lock = threading.Lock()
        self._stop = threading.Event()
        self.mode: str = "table"          # start in telemetry table view
        self.log_scroll: int = 0          # index of the first visible log line
        self._needs_redraw = True         # force first draw
        self._init_curses()

    # ------------------------------------------------------------------
    # Curses initialisation (colors, etc.)
    # ------------------------------------------------------------------
    def _init_curses(self) -> None:
        curses.curs_set(0)                     # hide cursor
        self.stdscr.nodelay(True)             # non‑blocking getch()
        curses.start_color()
        curses.use_default_colors()
        # header: white on blue
        curses.init_pair(1, curses.COLOR_WHITE, curses.COLOR_BLUE)
        self.header_attr = curses.color_pair(1) | curses.A_BOLD

    # ------------------------------------------------------------------
    # Public API – called by the controller and the entry point
    # ------------------------------------------------------------------
    def update_row(self, device_id: str, data: Dict[str, Any]) -> None:
        """Store (or replace) the row for *device_id* and schedule a repaint."""
        with self._rows_lock:
            self._rows[device_id] = data
        self._needs_redraw = True

    def run(self) -> None:
        """Poll keys and redraw only when needed, until ``close`` is called."""
        while not self._stop.is_set():
            self._handle_key()
            if self._needs_redraw:
                self._needs_redraw = False
                self._render()
            curses.napms(10)               # ~100 fps max, low CPU

    def close(self) -> None:
        self._stop.set()

    # ------------------------------------------------------------------
    # Key handling – called each loop iteration
    # ------------------------------------------------------------------
    def _handle_key(self) -> None:
        """
        Non‑blocking poll for a key press.
        * `l` → switch to log view
        * `t` → switch back to table view
        * Arrow keys/PageUp/PageDown → scroll log view
        """
        try:
            ch = self.stdscr.getch()
        except curses.error:
            ch = -1

        if ch == -1:
            return  # no key pressed

        if ch in (ord('l'), ord('L')):
            self.mode = "log"
            self.log_scroll = 0
        elif ch in (ord('t'), ord('T')):
            self.mode = "table"
        elif self.mode == "log":
            max_y, _ = self.stdscr.getmaxyx()
            visible_lines = max_y - 2      # leave room for footer
            if ch in (curses.KEY_DOWN, ord('j')):
                if self.log_scroll < max(0, len(log_buffer) - visible_lines):
                    self.log_scroll += 1
            elif ch in (curses.KEY_UP, ord('k')):
                if self.log_scroll > 0:
                    self.log_scroll -= 1
            elif ch == curses.KEY_NPAGE:
                self.log_scroll = min(
                    self.log_scroll + visible_lines,
                    max(0, len(log_buffer) - visible_lines),
                )
            elif ch == curses.KEY_PPAGE:
                self.log_scroll = max(self.log_scroll - visible_lines, 0)

        self._needs_redraw = True

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _render(self) -> None:
        self.stdscr.erase()
        if self.mode == "table":
            self._draw_table()
        else:
            self._draw_log()
        self._draw_footer()
        self.stdscr.refresh()

    def _draw_table(self) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        col_widths = [17, 22, 6, 6, 6, 7, 7, 5, 9]

        x = 0
        for title, w in zip(self.HEADER, col_widths):
            if x + w >= max_x:
                break
            self.stdscr.addstr(0, x, title.ljust(w), self.header_attr)
            x += w + 1

        self.stdscr.hline(1, 0, curses.ACS_HLINE, max_x)

        with self._rows_lock:
            rows = sorted(self._rows.items())

        # one line per headset, sorted by device id for a stable order
        for row_idx, (_, row) in enumerate(rows, start=2):
            if row_idx >= max_y - 1:           # small terminals
                break
            x = 0
            for key, w in zip(self.KEYS, col_widths):
                if x + w >= max_x:
                    break
                self.stdscr.addstr(row_idx, x, str(row.get(key, ""))[:w].ljust(w))
                x += w + 1

    # ------------------------------------------------------------------
    # Log view – scrollable list of the most recent log lines
    # ------------------------------------------------------------------
    def _draw_log(self) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        visible_lines = max_y - 2

        logs = list(log_buffer)
        start = self.log_scroll
        end = start + visible_lines
        for idx, line in enumerate(logs[start:end]):
            self.stdscr.addstr(idx, 0, line[: max_x - 1])

    def _draw_footer(self) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        mode_msg = f"[{'TABLE' if self.mode == 'table' else 'LOG'} MODE] "
        hint = "Press 'l' for logs, 't' for table, Ctrl‑C to quit"
        footer = (mode_msg + hint)[: max_x - 1]
        self.stdscr.addstr(max_y - 1, 0, footer, curses.A_REVERSE)
