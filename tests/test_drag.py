"""
Tests for the drag-reorder engine, collision ranking and sensors.
"""
import threading

import pytest

from mintabi.board import BoardState
from mintabi.drag import (
    DragReorderEngine, DragPhase, DropOutcome, KeyboardNavigator,
    PointerActivation, Rect, closest_corners, corner_distance,
)
from mintabi.schema import STOCK_ID, TRASH_ID


def ids(cards):
    return [c.id for c in cards]


@pytest.fixture
def engine(board):
    return DragReorderEngine(board)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Gesture state machine
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_start_records_active_without_mutation(engine, board, sink):
    before = board.state
    assert engine.start("c1")
    assert engine.phase == DragPhase.DRAGGING
    assert engine.active_id == "c1"
    assert board.state is before
    assert sink.calls == []


def test_start_rejected_while_dragging(engine):
    assert engine.start("c1")
    assert not engine.start("c2")
    assert engine.active_id == "c1"


def test_start_unknown_card(engine):
    assert not engine.start("nope")
    assert engine.phase == DragPhase.IDLE


def test_over_column_reassigns_immediately(engine, board, sink):
    engine.start("c1")
    engine.over("day-1")
    assert ids(board.cards_in("day-1")) == ["c1"]
    # Flat position untouched, nothing pushed yet
    assert ids(board.list_cards()) == ["c1", "c2", "c3", "c4"]
    assert sink.calls == []


def test_over_card_uses_its_column(engine, board):
    engine.start("c1")
    engine.over("c3")
    assert board.state.find_card("c1").column_id == "day-0"


def test_over_same_column_is_noop(engine, board):
    before = board.state
    engine.start("c1")
    engine.over("c2")
    engine.over(STOCK_ID)
    assert board.state is before


def test_over_trash_does_not_reassign(engine, board):
    before = board.state
    engine.start("c1")
    engine.over(TRASH_ID)
    assert board.state is before


def test_over_ignored_when_idle(engine, board):
    before = board.state
    engine.over("day-1")
    assert board.state is before


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Drops
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_drop_on_trash_removes_and_pushes_once(engine, board, sink):
    engine.start("c2")
    engine.over(TRASH_ID)
    assert engine.end(TRASH_ID) == DropOutcome.REMOVED
    assert "c2" not in ids(board.list_cards())
    assert len(sink.calls) == 1
    assert [c["id"] for c in sink.last["cards"]] == ["c1", "c3", "c4"]
    assert engine.phase == DragPhase.IDLE
    assert engine.active_id is None


def test_drop_on_self_pushes_mid_gesture_move(engine, board, sink):
    engine.start("c1")
    engine.over("day-1")
    engine.over("c1")
    assert engine.end("c1") == DropOutcome.PLACED
    assert ids(board.cards_in("day-1")) == ["c1"]
    assert len(sink.calls) == 1
    assert sink.last["cards"][0]["columnId"] == "day-1"


def test_drop_on_card_reorders_flat_list(engine, board, sink):
    engine.start("c4")
    engine.over("c1")
    assert engine.end("c1") == DropOutcome.REORDERED
    assert ids(board.list_cards()) == ["c4", "c1", "c2", "c3"]
    assert ids(board.cards_in(STOCK_ID)) == ["c4", "c1", "c2"]
    assert len(sink.calls) == 1


def test_same_column_drop_keeps_membership(engine, board):
    before = set(ids(board.cards_in(STOCK_ID)))
    engine.start("c1")
    engine.end("c4")
    assert ids(board.cards_in(STOCK_ID)) == ["c2", "c4", "c1"]
    assert set(ids(board.cards_in(STOCK_ID))) == before


def test_drop_on_card_in_other_column_moves_there(engine, board, sink):
    engine.start("c1")
    # No hover event reached the engine; the drop alone carries the move
    assert engine.end("c3") == DropOutcome.REORDERED
    assert ids(board.cards_in("day-0")) == ["c3", "c1"]
    assert "c1" not in ids(board.cards_in(STOCK_ID))
    assert len(sink.calls) == 1


def test_drop_on_empty_column_is_persisted(engine, board, sink):
    engine.start("c2")
    engine.over("day-1")
    assert engine.end("day-1") == DropOutcome.PLACED
    assert ids(board.cards_in("day-1")) == ["c2"]
    assert len(sink.calls) == 1


def test_drop_without_target_keeps_hover_move(engine, board, sink):
    engine.start("c1")
    engine.over("day-1")
    count = len(board.list_cards())
    assert engine.end(None) == DropOutcome.CANCELLED
    assert len(board.list_cards()) == count
    # Hover reassignment is not rolled back, and nothing is pushed
    assert ids(board.cards_in("day-1")) == ["c1"]
    assert sink.calls == []
    assert engine.phase == DragPhase.IDLE


def test_drop_on_unknown_target_is_cancelled(engine, board, sink):
    engine.start("c1")
    assert engine.end("somewhere") == DropOutcome.CANCELLED
    assert len(board.list_cards()) == 4
    assert sink.calls == []


def test_cancel(engine, board):
    engine.start("c1")
    assert engine.cancel() == DropOutcome.CANCELLED
    assert len(board.list_cards()) == 4


def test_end_without_gesture_ignored(engine, sink):
    assert engine.end("c1") == DropOutcome.IGNORED
    assert sink.calls == []


def test_snapshot_mid_drag_keeps_active(engine, board, kyoto_state):
    engine.start("c1")
    engine.over("day-1")
    # Remote snapshot replaces the board wholesale
    board.replace(kyoto_state)
    assert engine.active_id == "c1"
    assert engine.phase == DragPhase.DRAGGING
    engine.over("day-0")
    assert board.state.find_card("c1").column_id == "day-0"


def test_active_card_removed_remotely_mid_drag(engine, board, sink):
    engine.start("c1")
    board.replace(board.state.remove_card("c1"))
    engine.over("day-1")
    assert engine.end("c2") == DropOutcome.CANCELLED
    assert sink.calls == []


def test_snapshot_from_other_thread_waits_for_drop(engine, board, sink, kyoto_state):
    shrunk = BoardState(cards=kyoto_state.cards[:3], days=kyoto_state.days)
    applied = threading.Event()

    def remote_snapshot():
        board.replace(shrunk)
        applied.set()

    reassign = board.reassign

    def reassign_then_snapshot(card_id, column_id):
        # A poller delivers a snapshot between the reassign and the reorder
        result = reassign(card_id, column_id)
        poller = threading.Thread(target=remote_snapshot, daemon=True)
        poller.start()
        poller.join(0.1)
        return result

    board.reassign = reassign_then_snapshot
    engine.start("c4")

    assert engine.end("c1") == DropOutcome.REORDERED
    assert [c["id"] for c in sink.last["cards"]] == ["c4", "c1", "c2", "c3"]
    assert applied.wait(2)
    assert board.list_cards() == shrunk.cards


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Collision detection
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_corner_distance_zero_for_same_rect():
    r = Rect(10, 10, 100, 50)
    assert corner_distance(r, r) == 0


def test_closest_corners_ranks_nearest_first():
    active = Rect(0, 0, 100, 40)
    ranked = closest_corners(active, [
        ("far", Rect(500, 500, 100, 40)),
        ("near", Rect(5, 10, 100, 40)),
        ("mid", Rect(100, 100, 100, 40)),
    ])
    assert ranked == ["near", "mid", "far"]


def test_closest_corners_tie_keeps_list_order():
    active = Rect(0, 0, 10, 10)
    ranked = closest_corners(active, [
        ("first", Rect(20, 0, 10, 10)),
        ("second", Rect(-20, 0, 10, 10)),
    ])
    assert ranked == ["first", "second"]


def test_over_rect_picks_closest_and_skips_self(engine, board):
    engine.start("c1")
    hovered = engine.over_rect(Rect(0, 0, 100, 40), [
        ("c1", Rect(0, 0, 100, 40)),
        ("day-1", Rect(10, 5, 100, 40)),
        (STOCK_ID, Rect(400, 0, 100, 40)),
    ])
    assert hovered == "day-1"
    assert board.state.find_card("c1").column_id == "day-1"


def test_over_rect_no_candidates(engine, board):
    engine.start("c1")
    assert engine.over_rect(Rect(0, 0, 10, 10), []) is None
    assert engine.over_id is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Sensors
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestPointerActivation:

    def setup_method(self):
        self.pointer = PointerActivation(distance=5)

    def test_small_move_is_a_click(self):
        self.pointer.press(0, 0)
        assert not self.pointer.move(3, 0)
        assert not self.pointer.release()

    def test_activates_once_past_distance(self):
        self.pointer.press(0, 0)
        assert self.pointer.move(3, 4)
        assert not self.pointer.move(10, 10)
        assert self.pointer.release()

    def test_move_without_press(self):
        assert not self.pointer.move(50, 50)


class TestKeyboardNavigator:

    def test_up_down_within_column(self, kyoto_state):
        nav = KeyboardNavigator(kyoto_state, active_id="c4")
        assert nav.step(STOCK_ID, "down") == "c1"
        assert nav.step("c1", "down") == "c2"
        assert nav.step("c2", "down") == "c2"
        assert nav.step("c2", "up") == "c1"
        assert nav.step("c1", "up") == STOCK_ID

    def test_left_right_between_columns(self, kyoto_state):
        nav = KeyboardNavigator(kyoto_state, active_id="c4")
        assert nav.step("c1", "right") == "c3"
        assert nav.step("c3", "right") == "day-1"
        assert nav.step("day-1", "right") == "day-1"
        assert nav.step("c3", "left") == "c1"
        assert nav.step(STOCK_ID, "left") == STOCK_ID

    def test_unknown_direction(self, kyoto_state):
        nav = KeyboardNavigator(kyoto_state, active_id="c4")
        with pytest.raises(ValueError):
            nav.step("c1", "diagonal")


def test_keyboard_gesture_moves_card(engine, board, sink):
    engine.start("c1")
    assert engine.over_key("right") == "c3"
    assert board.state.find_card("c1").column_id == "day-0"
    assert engine.end(engine.over_id) == DropOutcome.REORDERED
    assert ids(board.cards_in("day-0")) == ["c3", "c1"]
    assert len(sink.calls) == 1
