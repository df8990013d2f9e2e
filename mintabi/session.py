"""
PlanSession: everything one open board view needs, for as long as it is open.

    session = PlanSession(store, plan_id, ledger).open()
    ...
    session.close()

Remote snapshots replace the board (and the title, unless it is being
edited) and refresh the history ledger. Structural edits and drops are
pushed as they happen; day-column field edits and the title are pushed on
commit (blur).
"""
import logging
from typing import Optional, List, Sequence, Tuple

from .board import BoardStore, BoardState
from .docstore import DocumentStore
from .drag import DragReorderEngine, DragPhase, DropOutcome, PointerActivation, Rect
from .history import HistoryLedger
from .schema import Card, DayColumn, Category, Plan
from .sync import RemoteSyncChannel

logger = logging.getLogger(__name__)


class PlanSession:
    """One board view bound to one plan document."""

    def __init__(
        self,
        docstore: DocumentStore,
        plan_id: str,
        ledger: Optional[HistoryLedger] = None,
        background_writes: bool = False,
        pointer_distance: float = 5,
    ):
        self.plan_id = plan_id
        self.ledger = ledger
        self.channel = RemoteSyncChannel(docstore, plan_id, background=background_writes)
        self.board = BoardStore(sink=self.channel.persist)
        self.drag = DragReorderEngine(self.board)
        self.pointer = PointerActivation(pointer_distance)

        self.title = ""
        self.title_focused = False
        self.loading = True
        self.not_found = False
        self.last_error: Optional[Exception] = None
        self._pressed_id: Optional[str] = None

    # ── Lifetime ─────────────────────────────────────────────────────────

    def open(self) -> "PlanSession":
        self.channel.subscribe(self._on_snapshot, self._on_not_found, self._on_error)
        return self

    def close(self) -> None:
        self.channel.close()

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()
        return False

    @property
    def is_saving(self) -> bool:
        return self.channel.is_saving

    def _on_snapshot(self, plan: Plan) -> None:
        if not self.title_focused:
            self.title = plan.title
        self.board.replace(BoardState(cards=plan.cards, days=plan.days))
        self.loading = False
        if self.ledger is not None:
            try:
                self.ledger.record(self.plan_id, plan.title)
            except OSError as e:
                logger.warning(f"Could not update history: {e}")

    def _on_not_found(self, plan_id: str) -> None:
        self.not_found = True
        self.loading = False

    def _on_error(self, error: Exception) -> None:
        self.last_error = error
        self.loading = False

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def days(self) -> Tuple[DayColumn, ...]:
        return self.board.state.days

    def list_cards(self) -> Tuple[Card, ...]:
        return self.board.list_cards()

    def cards_in(self, column_id: str) -> List[Card]:
        return self.board.cards_in(column_id)

    def stock_cards(self, category: Optional[Category] = None) -> List[Card]:
        return self.board.stock_cards(category)

    def active_card(self) -> Optional[Card]:
        """The card under the pointer while dragging (for the drag overlay)."""
        if self.drag.active_id is None:
            return None
        return self.board.state.find_card(self.drag.active_id)

    # ── Title ────────────────────────────────────────────────────────────

    def focus_title(self) -> None:
        self.title_focused = True

    def edit_title(self, text: str) -> None:
        self.title_focused = True
        self.title = text

    def commit_title(self) -> None:
        """Title field lost focus: write the title alone."""
        self.title_focused = False
        self.channel.persist({"title": self.title})

    # ── Cards ────────────────────────────────────────────────────────────

    def add_card(self) -> Card:
        return self.board.add_card()

    def save_card(self, card: Card) -> None:
        self.board.upsert_card(card)

    def delete_card(self, card_id: str) -> None:
        self.board.remove_card(card_id)

    def move_card(self, card_id: str, target_column_id: str,
                  target_index: Optional[int] = None) -> None:
        self.board.move_card(card_id, target_column_id, target_index)

    # ── Day columns ──────────────────────────────────────────────────────

    def add_day(self) -> DayColumn:
        return self.board.add_day()

    def set_day_title(self, day_id: str, title: str) -> None:
        self.board.set_day_title(day_id, title)

    def set_day_memo(self, day_id: str, memo: str) -> None:
        self.board.set_day_memo(day_id, memo)

    def set_day_date(self, day_id: str, date_value: str) -> None:
        self.board.set_day_date(day_id, date_value)

    def commit_edits(self) -> None:
        """A day column lost focus: write cards and days."""
        self.board.push()

    # ── Pointer drag ─────────────────────────────────────────────────────

    def pointer_down(self, card_id: str, x: float, y: float) -> None:
        self._pressed_id = card_id
        self.pointer.press(x, y)

    def pointer_move(self, x: float, y: float, active_rect: Optional[Rect] = None,
                     droppables: Sequence[Tuple[str, Rect]] = ()) -> Optional[str]:
        """Returns the hovered target id once the drag is active."""
        if self.pointer.move(x, y) and self._pressed_id is not None:
            self.drag.start(self._pressed_id)
        if self.drag.phase != DragPhase.DRAGGING or active_rect is None:
            return None
        return self.drag.over_rect(active_rect, droppables)

    def pointer_up(self, active_rect: Optional[Rect] = None,
                   droppables: Sequence[Tuple[str, Rect]] = ()) -> Optional[DropOutcome]:
        """Release. Returns None when the press never became a drag (a click)."""
        self._pressed_id = None
        if not self.pointer.release():
            return None
        if active_rect is not None:
            self.drag.over_rect(active_rect, droppables)
        return self.drag.end(self.drag.over_id)

    # ── Keyboard drag ────────────────────────────────────────────────────

    def key_pick_up(self, card_id: str) -> bool:
        return self.drag.start(card_id)

    def key_move(self, direction: str) -> Optional[str]:
        return self.drag.over_key(direction)

    def key_drop(self) -> DropOutcome:
        return self.drag.end(self.drag.over_id)

    def key_cancel(self) -> DropOutcome:
        return self.drag.cancel()
