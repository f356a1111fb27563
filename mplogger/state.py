"""
Navigation state machine of the terminal viewer.

ViewerState is the viewer's cursor: which process and thread are selected,
how far the log window is scrolled back, how fast scroll keys move, and
the minimum level shown. Key actions change only this state; they never
touch the store. Every index is clamped against the counts of the current
view, so a shrinking process list can never leave it dangling.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Optional

from .models import LogLevel


class ScrollSpeed(Enum):
    """Records moved per scroll key. JUMP goes straight to the oldest or newest."""

    ONE = 1
    TWO = 2
    FOUR = 4
    JUMP = 0


class Action(Enum):
    """Key-driven transitions of the viewer."""

    EXIT = auto()
    PROCESS_UP = auto()
    PROCESS_DOWN = auto()
    THREAD_UP = auto()
    THREAD_DOWN = auto()
    SCROLL_UP = auto()
    SCROLL_DOWN = auto()
    SPEED_1 = auto()
    SPEED_2 = auto()
    SPEED_4 = auto()
    SPEED_JUMP = auto()
    LEVEL_UP = auto()
    LEVEL_DOWN = auto()


KEYMAP: Dict[str, Action] = {
    "q": Action.EXIT,
    "Q": Action.EXIT,
    "w": Action.PROCESS_UP,
    "s": Action.PROCESS_DOWN,
    "e": Action.THREAD_UP,
    "d": Action.THREAD_DOWN,
    "r": Action.SCROLL_UP,
    "f": Action.SCROLL_DOWN,
    "1": Action.SPEED_1,
    "2": Action.SPEED_2,
    "4": Action.SPEED_4,
    "j": Action.SPEED_JUMP,
    "l": Action.LEVEL_UP,
    "L": Action.LEVEL_DOWN,
}

_SPEEDS = {
    Action.SPEED_1: ScrollSpeed.ONE,
    Action.SPEED_2: ScrollSpeed.TWO,
    Action.SPEED_4: ScrollSpeed.FOUR,
    Action.SPEED_JUMP: ScrollSpeed.JUMP,
}


def action_for_key(key: str) -> Optional[Action]:
    """Map a single-character key to its action, or None if unbound."""
    return KEYMAP.get(key)


def clamp_index(index: int, count: int) -> int:
    """Clamp an index into [0, count-1]; 0 when the view is empty."""
    if count <= 0:
        return 0
    return max(0, min(index, count - 1))


@dataclass
class ViewerState:
    """
    Cursor of the terminal viewer.

    Attributes:
        selected_process_index: Index into the visible process list.
        selected_thread_index: Index into the selected process's threads.
        scroll_offset: Matching records between the newest one and the
                       bottom of the window; 0 follows the live tail.
        scroll_speed: How far scroll keys move.
        min_level_filter: Records below this level are hidden.
        anchor_arrival: Arrival number of the newest matching record at
                        the last refresh, used to hold a scrolled window
                        in place while new records arrive.
        running: False once the exit key has been pressed.
    """

    selected_process_index: int = 0
    selected_thread_index: int = 0
    scroll_offset: int = 0
    scroll_speed: ScrollSpeed = ScrollSpeed.ONE
    min_level_filter: LogLevel = LogLevel.TRACE
    anchor_arrival: int = 0
    running: bool = True

    def clamp_process(self, process_count: int) -> None:
        self.selected_process_index = clamp_index(self.selected_process_index, process_count)

    def clamp_thread(self, thread_count: int) -> None:
        self.selected_thread_index = clamp_index(self.selected_thread_index, thread_count)

    def clamp_scroll(self, available_history: int) -> None:
        self.scroll_offset = max(0, min(self.scroll_offset, max(0, available_history)))

    def _reset_window(self) -> None:
        self.scroll_offset = 0
        self.anchor_arrival = 0

    def reset_thread(self) -> None:
        """Back to the first thread of a newly selected process, unscrolled."""
        self.selected_thread_index = 0
        self._reset_window()

    def _move_process(self, delta: int, process_count: int) -> None:
        new_index = clamp_index(self.selected_process_index + delta, process_count)
        if new_index != self.selected_process_index:
            self.selected_process_index = new_index
            self.reset_thread()

    def _move_thread(self, delta: int, thread_count: int) -> None:
        new_index = clamp_index(self.selected_thread_index + delta, thread_count)
        if new_index != self.selected_thread_index:
            self.selected_thread_index = new_index
            self._reset_window()

    def _scroll(self, direction: int, available_history: int) -> None:
        history = max(0, available_history)
        if self.scroll_speed is ScrollSpeed.JUMP:
            self.scroll_offset = history if direction > 0 else 0
        else:
            self.scroll_offset += direction * self.scroll_speed.value
        self.clamp_scroll(history)

    def _shift_level(self, delta: int) -> None:
        level = LogLevel(max(LogLevel.TRACE, min(LogLevel.ERROR, self.min_level_filter + delta)))
        if level != self.min_level_filter:
            self.min_level_filter = level
            self._reset_window()

    def apply(
        self,
        action: Action,
        process_count: int,
        thread_count: int,
        available_history: int,
    ) -> None:
        """
        Apply one key action against the counts of the current view.

        Args:
            action: The action to apply
            process_count: Number of processes currently listed
            thread_count: Number of threads of the selected process
            available_history: Largest allowed scroll offset
        """
        if action is Action.EXIT:
            self.running = False
        elif action is Action.PROCESS_UP:
            self._move_process(-1, process_count)
        elif action is Action.PROCESS_DOWN:
            self._move_process(1, process_count)
        elif action is Action.THREAD_UP:
            self._move_thread(-1, thread_count)
        elif action is Action.THREAD_DOWN:
            self._move_thread(1, thread_count)
        elif action is Action.SCROLL_UP:
            self._scroll(1, available_history)
        elif action is Action.SCROLL_DOWN:
            self._scroll(-1, available_history)
        elif action in _SPEEDS:
            self.scroll_speed = _SPEEDS[action]
        elif action is Action.LEVEL_UP:
            self._shift_level(1)
        elif action is Action.LEVEL_DOWN:
            self._shift_level(-1)

        self.clamp_process(process_count)
        self.clamp_thread(thread_count)
        self.clamp_scroll(available_history)
