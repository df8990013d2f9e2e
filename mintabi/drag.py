"""
Drag-reorder engine.

One gesture at a time:

  Idle → Dragging → Committing → Idle
          (over)*     (end)

Hovering a different bucket reassigns the dragged card's column right away
so the move is visible mid-drag. Reordering happens once, at the drop, as a
single list move on the flat card order. Only the drop pushes to the remote
document; hover changes are local.

A drop with no target keeps whatever column change the hover already made.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Sequence, Tuple

from .board import BoardStore, BoardState
from .schema import TRASH_ID

logger = logging.getLogger(__name__)


class DragPhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"


class DropOutcome(Enum):
    """What a finished gesture did to the board."""
    REMOVED = "removed"        # Dropped on the trash
    REORDERED = "reordered"    # Moved next to another card
    PLACED = "placed"          # Dropped on a column or on itself
    CANCELLED = "cancelled"    # No valid drop target
    IGNORED = "ignored"        # end() without a gesture in progress


# ── Geometry ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in screen coordinates."""
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def corners(self) -> List[Tuple[float, float]]:
        return [
            (self.left, self.top),
            (self.right, self.top),
            (self.left, self.bottom),
            (self.right, self.bottom),
        ]

    def translated(self, dx: float, dy: float) -> "Rect":
        return Rect(self.left + dx, self.top + dy, self.width, self.height)


def corner_distance(a: Rect, b: Rect) -> float:
    """Mean distance between matching corners of two rectangles."""
    total = sum(
        math.hypot(ax - bx, ay - by)
        for (ax, ay), (bx, by) in zip(a.corners(), b.corners())
    )
    return total / 4


def closest_corners(active: Rect, droppables: Sequence[Tuple[str, Rect]]) -> List[str]:
    """
    Rank drop target ids by corner distance to the dragged rectangle.

    The sort is stable, so on a tie the target listed first wins.
    """
    ranked = sorted(droppables, key=lambda item: corner_distance(active, item[1]))
    return [target_id for target_id, _ in ranked]


# ── Sensors ──────────────────────────────────────────────────────────────────


class PointerActivation:
    """
    A press only becomes a drag once the pointer has travelled ``distance``
    pixels, so plain clicks still open the card editor.
    """

    def __init__(self, distance: float = 5):
        self.distance = distance
        self._origin: Optional[Tuple[float, float]] = None
        self.active = False

    def press(self, x: float, y: float) -> None:
        self._origin = (x, y)
        self.active = False

    def move(self, x: float, y: float) -> bool:
        """Return True on the move that activates the drag."""
        if self._origin is None or self.active:
            return False
        ox, oy = self._origin
        if math.hypot(x - ox, y - oy) >= self.distance:
            self.active = True
            return True
        return False

    def release(self) -> bool:
        """Return True if the press had turned into a drag."""
        was_active = self.active
        self._origin = None
        self.active = False
        return was_active


class KeyboardNavigator:
    """
    Arrow-key movement between drop targets.

    Up/down step through the hovered column's cards; left/right jump to the
    neighbouring column, landing on the card at the same height (or the
    column itself when it is empty).
    """

    def __init__(self, state: BoardState, active_id: str):
        self.state = state
        self.active_id = active_id

    def _column_cards(self, column_id: str) -> List[str]:
        return [c.id for c in self.state.cards_in(column_id) if c.id != self.active_id]

    def _locate(self, over_id: str) -> Tuple[Optional[str], int]:
        if self.state.has_column(over_id):
            return over_id, -1
        card = self.state.find_card(over_id)
        if card is None:
            return None, -1
        ids = self._column_cards(card.column_id)
        return card.column_id, ids.index(over_id) if over_id in ids else -1

    def step(self, over_id: str, direction: str) -> str:
        """Return the target reached by pressing ``direction`` from ``over_id``."""
        column_id, index = self._locate(over_id)
        if column_id is None:
            return over_id
        ids = self._column_cards(column_id)

        if direction == "up":
            if index > 0:
                return ids[index - 1]
            return column_id
        if direction == "down":
            if index + 1 < len(ids):
                return ids[index + 1]
            return over_id
        if direction in ("left", "right"):
            columns = self.state.column_ids()
            pos = columns.index(column_id) + (1 if direction == "right" else -1)
            if pos < 0 or pos >= len(columns):
                return over_id
            neighbour = columns[pos]
            neighbour_ids = self._column_cards(neighbour)
            if not neighbour_ids:
                return neighbour
            return neighbour_ids[min(max(index, 0), len(neighbour_ids) - 1)]
        raise ValueError(f"Unknown direction: {direction}")


# ── Engine ───────────────────────────────────────────────────────────────────


class DragReorderEngine:
    """Applies drag gestures to a BoardStore."""

    def __init__(self, store: BoardStore):
        self.store = store
        self.phase = DragPhase.IDLE
        self.active_id: Optional[str] = None
        self.over_id: Optional[str] = None

    def start(self, card_id: str) -> bool:
        """Begin dragging a card. Returns False if a gesture is already running."""
        if self.phase != DragPhase.IDLE:
            return False
        if self.store.state.find_card(card_id) is None:
            logger.warning(f"Drag start on unknown card {card_id}")
            return False
        self.phase = DragPhase.DRAGGING
        self.active_id = card_id
        self.over_id = None
        return True

    def resolve_column(self, over_id: Optional[str]) -> Optional[str]:
        """Bucket a hovered element belongs to; None for the trash or nothing."""
        if not over_id or over_id == TRASH_ID:
            return None
        state = self.store.state
        if state.has_column(over_id):
            return over_id
        card = state.find_card(over_id)
        if card is not None:
            return card.column_id
        return None

    def over(self, over_id: Optional[str]) -> None:
        """Hover update: move the card into the hovered bucket immediately."""
        if self.phase != DragPhase.DRAGGING:
            return
        self.over_id = over_id
        with self.store.lock:
            active = self.store.state.find_card(self.active_id)
            if active is None:
                return
            target = self.resolve_column(over_id)
            if target is None or target == active.column_id:
                return
            self.store.reassign(active.id, target)

    def over_rect(self, active_rect: Rect, droppables: Sequence[Tuple[str, Rect]]) -> Optional[str]:
        """Hover update from geometry; returns the chosen target id."""
        candidates = [(tid, rect) for tid, rect in droppables if tid != self.active_id]
        ranked = closest_corners(active_rect, candidates)
        over_id = ranked[0] if ranked else None
        self.over(over_id)
        return over_id

    def over_key(self, direction: str) -> Optional[str]:
        """Hover update from an arrow key press."""
        if self.phase != DragPhase.DRAGGING:
            return None
        state = self.store.state
        current = self.over_id
        if current is None:
            card = state.find_card(self.active_id)
            if card is None:
                return None
            current = card.column_id
        over_id = KeyboardNavigator(state, self.active_id).step(current, direction)
        self.over(over_id)
        return over_id

    def _is_valid_target(self, over_id: Optional[str]) -> bool:
        if not over_id:
            return False
        if over_id == TRASH_ID:
            return True
        state = self.store.state
        return state.has_column(over_id) or state.find_card(over_id) is not None

    def end(self, over_id: Optional[str]) -> DropOutcome:
        """Drop. Pushes the board unless the drop had no valid target."""
        if self.phase != DragPhase.DRAGGING:
            return DropOutcome.IGNORED
        active_id = self.active_id
        self.phase = DragPhase.COMMITTING
        try:
            # Snapshots from other threads wait until the drop is applied
            with self.store.lock:
                if not self._is_valid_target(over_id):
                    logger.debug(f"Drag of {active_id} ended without a target")
                    return DropOutcome.CANCELLED

                if over_id == TRASH_ID:
                    self.store.remove_card(active_id)
                    logger.info(f"Card {active_id} dropped in trash")
                    return DropOutcome.REMOVED

                state = self.store.state
                if state.find_card(active_id) is None:
                    logger.warning(f"Dragged card {active_id} vanished before drop")
                    return DropOutcome.CANCELLED

                outcome = DropOutcome.PLACED
                if over_id != active_id:
                    target = self.resolve_column(over_id)
                    if target is not None:
                        self.store.reassign(active_id, target)
                    old_index = self.store.state.index_of(active_id)
                    new_index = self.store.state.index_of(over_id)
                    if new_index != -1:
                        self.store.array_move(old_index, new_index)
                        outcome = DropOutcome.REORDERED
                self.store.push()
                return outcome
        finally:
            self.phase = DragPhase.IDLE
            self.active_id = None
            self.over_id = None

    def cancel(self) -> DropOutcome:
        """Abort the gesture (e.g. Escape); hover changes are kept."""
        return self.end(None)
