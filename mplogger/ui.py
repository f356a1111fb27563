"""
Curses terminal viewer for the aggregation store.

The viewer has two halves:
    - LogView: pulls a consistent frame out of the store on every tick and
      applies key actions to the ViewerState. It never touches curses, so
      it can be driven from tests.
    - run_viewer: the single-threaded curses loop that polls for input,
      refreshes the LogView and draws it.

Layout (like the process/thread/log panes of a three-column list view):

    mplogger /tmp/mp-logger-socket  clients 3     records 1200  offset 0/1180
    Process    | Thread       | Time             Level Target   Message
    4242       | 4243         | 12:00:01.000012  INFO  worker   started
    ...
    q quit  w/s process  e/d thread  r/f scroll  1/2/4/j speed  l/L level
"""

import curses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from .models import LogLevel, LogRecord
from .state import Action, ScrollSpeed, ViewerState, action_for_key
from .store import AggregationStore

logger = logging.getLogger(__name__)

PROCESS_WIDTH = 10
THREAD_WIDTH = 12
HEADER_ROWS = 2
FOOTER_ROWS = 1

FOOTER_HELP = "q quit  w/s process  e/d thread  r/f scroll  1/2/4/j speed  l/L level"

# Arrow and paging keys mirror the single-character commands
SPECIAL_KEYS = {
    curses.KEY_LEFT: Action.PROCESS_UP,
    curses.KEY_RIGHT: Action.PROCESS_DOWN,
    curses.KEY_UP: Action.SCROLL_UP,
    curses.KEY_DOWN: Action.SCROLL_DOWN,
    curses.KEY_PPAGE: Action.THREAD_UP,
    curses.KEY_NPAGE: Action.THREAD_DOWN,
}

LEVEL_COLORS = {
    LogLevel.TRACE: curses.COLOR_BLUE,
    LogLevel.DEBUG: curses.COLOR_CYAN,
    LogLevel.INFO: curses.COLOR_GREEN,
    LogLevel.WARN: curses.COLOR_YELLOW,
    LogLevel.ERROR: curses.COLOR_RED,
}


@dataclass
class ViewFrame:
    """Everything one redraw needs, copied out of the store."""

    processes: List[int] = field(default_factory=list)
    threads: List[int] = field(default_factory=list)
    process_id: Optional[int] = None
    thread_id: Optional[int] = None
    records: List[LogRecord] = field(default_factory=list)
    matching: int = 0
    available_history: int = 0


class LogView:
    """
    Pull frames from the store and route key actions to the ViewerState.

    Attributes:
        store: The store to read from (read-only).
        state: The navigation cursor.
        visible_rows: Log rows that fit on screen; sets the window size.
        frame: The frame produced by the last refresh.
    """

    def __init__(self, store: AggregationStore, state: Optional[ViewerState] = None, visible_rows: int = 20):
        self.store = store
        self.state = state or ViewerState()
        self.visible_rows = max(1, visible_rows)
        self.frame = ViewFrame()
        self._anchor_key = None
        self._process_id = None

    def refresh(self) -> ViewFrame:
        """
        Re-read the store and produce the frame for the current state.

        Clamps the selection against the current process and thread lists,
        keeps a scrolled-back window on the same records while new ones
        arrive, then reads the visible window.

        Returns:
            ViewFrame: The frame to draw
        """
        state = self.state
        processes = self.store.snapshot_processes()
        state.clamp_process(len(processes))
        process_id = processes[state.selected_process_index] if processes else None
        if self._process_id is not None and process_id != self._process_id:
            # Collected process; the same index now names another one
            state.reset_thread()
            self._anchor_key = None
        self._process_id = process_id

        threads = self.store.snapshot_threads(process_id) if process_id is not None else []
        state.clamp_thread(len(threads))
        thread_id = threads[state.selected_thread_index] if threads else None

        if thread_id is None:
            state.scroll_offset = 0
            state.anchor_arrival = 0
            self._anchor_key = None
            self.frame = ViewFrame(processes=processes, threads=threads, process_id=process_id)
            return self.frame

        level = state.min_level_filter
        key = (process_id, thread_id, level)
        if key == self._anchor_key and state.scroll_offset > 0 and state.anchor_arrival:
            state.scroll_offset += self.store.count_matching(
                process_id, thread_id, level, newer_than=state.anchor_arrival
            )
        self._anchor_key = key
        state.anchor_arrival = self.store.latest_arrival(process_id, thread_id, level)

        matching = self.store.count_matching(process_id, thread_id, level)
        available_history = max(0, matching - self.visible_rows)
        state.clamp_scroll(available_history)

        records = self.store.read_window(
            process_id, thread_id, level, state.scroll_offset, self.visible_rows
        )
        self.frame = ViewFrame(
            processes=processes,
            threads=threads,
            process_id=process_id,
            thread_id=thread_id,
            records=records,
            matching=matching,
            available_history=available_history,
        )
        return self.frame

    def apply(self, action: Optional[Action]) -> bool:
        """
        Apply an action against the last frame's counts.

        Returns:
            bool: False once the viewer should exit
        """
        if action is not None:
            selected = self.state.selected_process_index
            self.state.apply(
                action,
                process_count=len(self.frame.processes),
                thread_count=len(self.frame.threads),
                available_history=self.frame.available_history,
            )
            if self.state.selected_process_index != selected:
                # Moved by key; the state already reset its thread
                self._process_id = None
        return self.state.running

    def handle_key(self, key: str) -> bool:
        """Apply a single-character command. Unbound keys are ignored."""
        return self.apply(action_for_key(key))


def format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S.%f")


_ESCAPES = {"\r": "\\r", "\n": "\\n", "\t": " "}


def printable(text: str) -> str:
    """Escape characters curses cannot draw, NUL included."""
    if text.isprintable():
        return text
    out = []
    for c in text:
        if c.isprintable():
            out.append(c)
        elif c in _ESCAPES:
            out.append(_ESCAPES[c])
        elif ord(c) <= 0xFF:
            out.append(f"\\x{ord(c):02x}")
        elif ord(c) <= 0xFFFF:
            out.append(f"\\u{ord(c):04x}")
        else:
            out.append(f"\\U{ord(c):08x}")
    return "".join(out)


def format_record(record: LogRecord) -> str:
    """One display line for a record; control characters are escaped."""
    message = printable(record.message)
    target = printable(record.target) or "-"
    return f"{format_time(record.received_at)}  {record.level.name:<5} {target:<16.16} {message}"


def _speed_label(speed: ScrollSpeed) -> str:
    return "jump" if speed is ScrollSpeed.JUMP else f"x{speed.value}"


def _init_colors() -> bool:
    try:
        curses.start_color()
        curses.use_default_colors()
        for level, color in LEVEL_COLORS.items():
            curses.init_pair(int(level) + 1, color, -1)
        return True
    except curses.error:
        return False


def _level_attr(level: LogLevel, colors: bool) -> int:
    attr = curses.color_pair(int(level) + 1) if colors else 0
    if level >= LogLevel.ERROR:
        attr |= curses.A_BOLD
    return attr


def _put(stdscr, y: int, x: int, text: str, width: int, attr: int = 0) -> None:
    if width <= 0:
        return
    stdscr.addnstr(y, x, text, width, attr)


def draw(stdscr, frame: ViewFrame, state: ViewerState, title: str = "", colors: bool = False) -> None:
    """
    Draw one frame.

    Raises:
        curses.error: If the terminal is too small or resized mid-draw
    """
    stdscr.erase()
    h, w = stdscr.getmaxyx()
    log_x = PROCESS_WIDTH + THREAD_WIDTH + 6
    body_rows = max(0, h - HEADER_ROWS - FOOTER_ROWS)

    status = f"records {frame.matching}  offset {state.scroll_offset}/{frame.available_history}"
    header = f" mplogger {title}".ljust(max(0, w - len(status) - 2)) + status
    _put(stdscr, 0, 0, header.ljust(w), w - 1, curses.A_REVERSE)

    columns = f"{'Process':<{PROCESS_WIDTH}} | {'Thread':<{THREAD_WIDTH}} | "
    columns += f"{'Time':<15}  {'Level':<5} {'Target':<16} Message"
    _put(stdscr, 1, 0, columns, w - 1, curses.A_BOLD)

    for row, pid in enumerate(frame.processes[:body_rows]):
        attr = curses.A_REVERSE if pid == frame.process_id else 0
        _put(stdscr, HEADER_ROWS + row, 0, f"{pid:<{PROCESS_WIDTH}}", min(PROCESS_WIDTH, w - 1), attr)

    for row, tid in enumerate(frame.threads[:body_rows]):
        attr = curses.A_REVERSE if tid == frame.thread_id else 0
        _put(stdscr, HEADER_ROWS + row, PROCESS_WIDTH + 3, f"{tid:<{THREAD_WIDTH}}",
             min(THREAD_WIDTH, w - PROCESS_WIDTH - 4), attr)

    for row in range(body_rows):
        y = HEADER_ROWS + row
        _put(stdscr, y, PROCESS_WIDTH + 1, "|", w - PROCESS_WIDTH - 2)
        _put(stdscr, y, PROCESS_WIDTH + THREAD_WIDTH + 4, "|", w - PROCESS_WIDTH - THREAD_WIDTH - 5)

    # Newest record sits on the bottom row
    records = frame.records[-body_rows:] if body_rows else []
    start_row = HEADER_ROWS + body_rows - len(records)
    for row, record in enumerate(records):
        _put(stdscr, start_row + row, log_x, format_record(record), w - log_x - 1,
             _level_attr(record.level, colors))

    footer = f"{FOOTER_HELP}  [speed {_speed_label(state.scroll_speed)}] [level {state.min_level_filter.name}]"
    _put(stdscr, h - 1, 0, footer.ljust(w), w - 1, curses.A_REVERSE)

    stdscr.refresh()


def _translate(ch: int) -> Optional[Action]:
    if ch in SPECIAL_KEYS:
        return SPECIAL_KEYS[ch]
    if 0 <= ch < 256:
        return action_for_key(chr(ch))
    return None


def run_viewer(
    stdscr,
    store: AggregationStore,
    state: Optional[ViewerState] = None,
    tick_interval: float = 0.1,
    title_provider: Optional[Callable[[], str]] = None,
) -> ViewerState:
    """
    Run the interactive viewer until the exit key is pressed.

    Should be called via curses.wrapper() so the terminal is restored on
    exit. Input is polled with a timeout of one tick, so the screen keeps
    refreshing while no keys are pressed.

    Args:
        stdscr: The curses standard screen (provided by curses.wrapper)
        store: The store to browse
        state: Initial cursor, defaults to ViewerState()
        tick_interval: Seconds between redraws when idle
        title_provider: Returns extra text for the title bar

    Returns:
        ViewerState: The final cursor
    """
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    stdscr.keypad(True)
    stdscr.timeout(max(1, int(tick_interval * 1000)))
    colors = _init_colors()

    view = LogView(store, state)
    while view.state.running:
        h, _w = stdscr.getmaxyx()
        view.visible_rows = max(1, h - HEADER_ROWS - FOOTER_ROWS)
        frame = view.refresh()

        try:
            title = title_provider() if title_provider else ""
            draw(stdscr, frame, view.state, title, colors)
        except (curses.error, ValueError):
            # Resized or too small; the next tick redraws
            pass

        ch = stdscr.getch()
        if ch == -1 or ch == curses.KEY_RESIZE:
            continue
        view.apply(_translate(ch))

    logger.debug("Viewer loop exited")
    return view.state

