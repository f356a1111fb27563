"""Tests for the viewer navigation state machine."""

import random

import pytest

from mplogger.models import LogLevel
from mplogger.state import KEYMAP, Action, ScrollSpeed, ViewerState, action_for_key, clamp_index


def apply(state, action, processes=3, threads=3, history=100):
    state.apply(action, process_count=processes, thread_count=threads, available_history=history)
    return state


class TestKeymap:
    """Key bindings"""

    @pytest.mark.parametrize("key,action", [
        ("q", Action.EXIT),
        ("Q", Action.EXIT),
        ("w", Action.PROCESS_UP),
        ("s", Action.PROCESS_DOWN),
        ("e", Action.THREAD_UP),
        ("d", Action.THREAD_DOWN),
        ("r", Action.SCROLL_UP),
        ("f", Action.SCROLL_DOWN),
        ("1", Action.SPEED_1),
        ("2", Action.SPEED_2),
        ("4", Action.SPEED_4),
        ("j", Action.SPEED_JUMP),
    ])
    def test_bound_keys(self, key, action):
        assert action_for_key(key) is action

    def test_unbound_key(self):
        assert action_for_key("x") is None
        assert "x" not in KEYMAP


class TestClampIndex:
    """clamp_index"""

    def test_empty_view_clamps_to_zero(self):
        assert clamp_index(5, 0) == 0
        assert clamp_index(-1, 0) == 0

    def test_bounds(self):
        assert clamp_index(-3, 4) == 0
        assert clamp_index(7, 4) == 3
        assert clamp_index(2, 4) == 2


class TestSelection:
    """Process and thread selection"""

    def test_process_move_resets_thread_and_scroll(self):
        state = ViewerState(selected_thread_index=2, scroll_offset=10, anchor_arrival=42)
        apply(state, Action.PROCESS_DOWN)
        assert state.selected_process_index == 1
        assert state.selected_thread_index == 0
        assert state.scroll_offset == 0
        assert state.anchor_arrival == 0

    def test_process_move_at_edge_keeps_state(self):
        state = ViewerState(selected_thread_index=2, scroll_offset=10)
        apply(state, Action.PROCESS_UP)
        assert state.selected_process_index == 0
        assert state.selected_thread_index == 2
        assert state.scroll_offset == 10

    def test_process_move_clamps_at_last(self):
        state = ViewerState(selected_process_index=2)
        apply(state, Action.PROCESS_DOWN)
        assert state.selected_process_index == 2

    def test_thread_move_resets_scroll(self):
        state = ViewerState(scroll_offset=5)
        apply(state, Action.THREAD_DOWN)
        assert state.selected_thread_index == 1
        assert state.scroll_offset == 0
        apply(state, Action.THREAD_UP)
        assert state.selected_thread_index == 0

    def test_shrinking_process_list_reclamps(self):
        state = ViewerState(selected_process_index=2, selected_thread_index=2)
        apply(state, Action.SPEED_2, processes=1, threads=1)
        assert state.selected_process_index == 0
        assert state.selected_thread_index == 0

    def test_empty_view(self):
        state = ViewerState()
        for action in Action:
            if action is not Action.EXIT:
                apply(state, action, processes=0, threads=0, history=0)
        assert state.selected_process_index == 0
        assert state.selected_thread_index == 0
        assert state.scroll_offset == 0


class TestScrolling:
    """Scroll offset and speed"""

    @pytest.mark.parametrize("speed_action,step", [
        (Action.SPEED_1, 1),
        (Action.SPEED_2, 2),
        (Action.SPEED_4, 4),
    ])
    def test_speed_sets_step(self, speed_action, step):
        state = apply(ViewerState(), speed_action)
        assert state.scroll_offset == 0
        apply(state, Action.SCROLL_UP)
        assert state.scroll_offset == step
        apply(state, Action.SCROLL_UP)
        apply(state, Action.SCROLL_DOWN)
        assert state.scroll_offset == step

    def test_scroll_up_clamps_to_history(self):
        state = ViewerState(scroll_speed=ScrollSpeed.FOUR)
        for _ in range(5):
            apply(state, Action.SCROLL_UP, history=6)
        assert state.scroll_offset == 6

    def test_scroll_down_stops_at_tail(self):
        state = ViewerState(scroll_offset=3, scroll_speed=ScrollSpeed.FOUR)
        apply(state, Action.SCROLL_DOWN)
        assert state.scroll_offset == 0

    def test_jump(self):
        state = apply(ViewerState(), Action.SPEED_JUMP)
        assert state.scroll_speed is ScrollSpeed.JUMP
        apply(state, Action.SCROLL_UP, history=37)
        assert state.scroll_offset == 37
        apply(state, Action.SCROLL_DOWN, history=37)
        assert state.scroll_offset == 0

    def test_no_history_no_scroll(self):
        state = ViewerState()
        apply(state, Action.SCROLL_UP, history=0)
        assert state.scroll_offset == 0

    def test_shrinking_history_reclamps_on_any_action(self):
        state = ViewerState(scroll_offset=30)
        apply(state, Action.SPEED_4, history=12)
        assert state.scroll_offset == 12

    def test_reset_thread(self):
        state = ViewerState(selected_process_index=1, selected_thread_index=2, scroll_offset=4, anchor_arrival=9)
        state.reset_thread()
        assert state.selected_process_index == 1
        assert (state.selected_thread_index, state.scroll_offset, state.anchor_arrival) == (0, 0, 0)


class TestLevelFilter:
    """Minimum level shown"""

    def test_level_up_and_down_clamp(self):
        state = ViewerState()
        for _ in range(10):
            apply(state, Action.LEVEL_UP)
        assert state.min_level_filter is LogLevel.ERROR
        for _ in range(10):
            apply(state, Action.LEVEL_DOWN)
        assert state.min_level_filter is LogLevel.TRACE

    def test_level_change_resets_scroll(self):
        state = ViewerState(scroll_offset=8)
        apply(state, Action.LEVEL_UP)
        assert state.min_level_filter is LogLevel.DEBUG
        assert state.scroll_offset == 0


class TestExit:
    """Exit key"""

    def test_exit_stops_running(self):
        state = apply(ViewerState(), Action.EXIT)
        assert state.running is False


class TestRandomWalk:
    """Indices stay in range under arbitrary key sequences"""

    @pytest.mark.parametrize("seed", [1, 7, 42, 1234])
    def test_indices_always_in_range(self, seed):
        rng = random.Random(seed)
        actions = [a for a in Action if a is not Action.EXIT]
        state = ViewerState()

        for _ in range(2000):
            processes = rng.randint(0, 6)
            threads = rng.randint(0, 6)
            history = rng.randint(0, 50)
            apply(state, rng.choice(actions), processes, threads, history)

            assert 0 <= state.selected_process_index <= max(0, processes - 1)
            assert 0 <= state.selected_thread_index <= max(0, threads - 1)
            assert 0 <= state.scroll_offset <= history
            assert LogLevel.TRACE <= state.min_level_filter <= LogLevel.ERROR
