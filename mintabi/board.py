"""
Board state store.

BoardState is an immutable snapshot of one plan's cards and day columns.
Every mutation returns a new snapshot, so ``old is new`` tells whether an
operation changed anything.

BoardStore holds the current snapshot for one board view and pushes
``{cards, days}`` to its sink after structural mutations. Day-column field
edits (title, memo, date) stay local until ``push()`` is called on blur.
"""
import logging
import threading
import time
from dataclasses import dataclass, replace
from functools import wraps
from typing import Optional, List, Dict, Any, Tuple, Callable

from .errors import CardNotFound, ColumnNotFound, InvalidEntity
from .schema import (
    Card, DayColumn, Category, STOCK_ID, NEW_CARD_TITLE, UNSET_DATE_LABEL,
)

logger = logging.getLogger(__name__)

PushSink = Callable[[Dict[str, Any]], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _locked(method):
    """Run a BoardStore method while holding its lock."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)
    return wrapper


@dataclass(frozen=True)
class BoardState:
    """Cards in flat order plus the day columns, in display order."""

    cards: Tuple[Card, ...] = ()
    days: Tuple[DayColumn, ...] = ()

    # ── Queries ──────────────────────────────────────────────────────────

    def list_cards(self) -> Tuple[Card, ...]:
        return self.cards

    def cards_in(self, column_id: str) -> List[Card]:
        """Visible order of one bucket: the flat list filtered by column."""
        return [c for c in self.cards if c.column_id == column_id]

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def index_of(self, card_id: str) -> int:
        """Position of a card in the flat order, -1 if absent."""
        for i, card in enumerate(self.cards):
            if card.id == card_id:
                return i
        return -1

    def find_day(self, day_id: str) -> Optional[DayColumn]:
        for day in self.days:
            if day.id == day_id:
                return day
        return None

    def column_ids(self) -> List[str]:
        """Stock first, then days left to right."""
        return [STOCK_ID] + [d.id for d in self.days]

    def has_column(self, column_id: str) -> bool:
        return column_id == STOCK_ID or self.find_day(column_id) is not None

    def to_partial(self) -> Dict[str, Any]:
        """The ``{cards, days}`` pair written back to the plan document."""
        return {
            "cards": [c.to_dict() for c in self.cards],
            "days": [d.to_dict() for d in self.days],
        }

    # ── Card mutations ───────────────────────────────────────────────────

    def upsert_card(self, card: Card) -> "BoardState":
        """Replace the card with the same id in place, or append it."""
        idx = self.index_of(card.id)
        if idx == -1:
            return replace(self, cards=self.cards + (card,))
        if self.cards[idx] == card:
            return self
        cards = list(self.cards)
        cards[idx] = card
        return replace(self, cards=tuple(cards))

    def remove_card(self, card_id: str) -> "BoardState":
        if self.index_of(card_id) == -1:
            return self
        return replace(self, cards=tuple(c for c in self.cards if c.id != card_id))

    def reassign(self, card_id: str, column_id: str) -> "BoardState":
        """Change a card's bucket without touching its flat position."""
        card = self.find_card(card_id)
        if card is None:
            raise CardNotFound(card_id)
        if not self.has_column(column_id):
            raise ColumnNotFound(column_id)
        if card.column_id == column_id:
            return self
        return self.upsert_card(card.moved_to(column_id))

    def array_move(self, old_index: int, new_index: int) -> "BoardState":
        """Remove the card at old_index and reinsert it at new_index."""
        if old_index == new_index:
            return self
        cards = list(self.cards)
        cards.insert(new_index, cards.pop(old_index))
        return replace(self, cards=tuple(cards))

    def move_card(
        self,
        card_id: str,
        target_column_id: str,
        target_index: Optional[int] = None,
    ) -> "BoardState":
        """
        Put a card into ``target_column_id``.

        Without ``target_index`` the card keeps its flat position. With it,
        the card is placed so it becomes entry ``target_index`` of the
        target column's visible order (clamped to the end of the column).
        """
        card = self.find_card(card_id)
        if card is None:
            raise CardNotFound(card_id)
        if not self.has_column(target_column_id):
            raise ColumnNotFound(target_column_id)
        if target_index is None:
            return self.reassign(card_id, target_column_id)

        moved = card.moved_to(target_column_id)
        rest = [c for c in self.cards if c.id != card_id]
        siblings = [i for i, c in enumerate(rest) if c.column_id == target_column_id]
        target_index = max(0, target_index)
        if target_index < len(siblings):
            insert_at = siblings[target_index]
        elif siblings:
            insert_at = siblings[-1] + 1
        else:
            insert_at = len(rest)
        rest.insert(insert_at, moved)
        new_cards = tuple(rest)
        if new_cards == self.cards:
            return self
        return replace(self, cards=new_cards)

    # ── Column mutations ─────────────────────────────────────────────────

    def upsert_column(self, column: DayColumn) -> "BoardState":
        """Replace the day with the same id in place, or append it."""
        for i, day in enumerate(self.days):
            if day.id == column.id:
                if day == column:
                    return self
                days = list(self.days)
                days[i] = column
                return replace(self, days=tuple(days))
        return replace(self, days=self.days + (column,))

    def append_column(self, column: DayColumn) -> "BoardState":
        if column.id == STOCK_ID or self.find_day(column.id) is not None:
            raise InvalidEntity(f"Column {column.id} already exists")
        return replace(self, days=self.days + (column,))


class BoardStore:
    """
    Authoritative in-process board for one plan view.

    ``sink`` receives ``{cards, days}`` after every structural mutation;
    the session wires it to the remote sync channel.
    """

    def __init__(self, state: Optional[BoardState] = None, sink: Optional[PushSink] = None):
        self.state = state or BoardState()
        self.sink = sink
        # Remote snapshots may arrive on a poller or writer thread
        self.lock = threading.RLock()

    @_locked
    def _commit(self, new_state: BoardState, push: bool = True) -> BoardState:
        self.state = new_state
        if push:
            self.push()
        return new_state

    @_locked
    def push(self) -> None:
        """Send the current ``{cards, days}`` to the sink."""
        if self.sink is not None:
            self.sink(self.state.to_partial())

    @_locked
    def replace(self, state: BoardState) -> BoardState:
        """Adopt a snapshot that came from the remote document. Never pushes."""
        self.state = state
        return state

    # ── Queries ──────────────────────────────────────────────────────────

    def list_cards(self) -> Tuple[Card, ...]:
        return self.state.list_cards()

    def cards_in(self, column_id: str) -> List[Card]:
        return self.state.cards_in(column_id)

    def stock_cards(self, category: Optional[Category] = None) -> List[Card]:
        """Unscheduled cards, optionally only one category."""
        cards = self.state.cards_in(STOCK_ID)
        if category is not None:
            cards = [c for c in cards if c.category == category]
        return cards

    # ── Pushed mutations ─────────────────────────────────────────────────

    @_locked
    def upsert_card(self, card: Card) -> BoardState:
        return self._commit(self.state.upsert_card(card))

    @_locked
    def remove_card(self, card_id: str) -> BoardState:
        return self._commit(self.state.remove_card(card_id))

    @_locked
    def append_column(self, column: DayColumn) -> BoardState:
        return self._commit(self.state.append_column(column))

    @_locked
    def move_card(self, card_id: str, target_column_id: str,
                  target_index: Optional[int] = None) -> BoardState:
        new_state = self.state.move_card(card_id, target_column_id, target_index)
        logger.debug(f"Moved {card_id} to {target_column_id} (index={target_index})")
        return self._commit(new_state)

    @_locked
    def upsert_column(self, column: DayColumn) -> BoardState:
        """
        Add a new day (pushed) or replace an existing day's fields.

        Replacing an existing day is a field edit and stays local until
        the next ``push()``.
        """
        is_new = self.state.find_day(column.id) is None
        return self._commit(self.state.upsert_column(column), push=is_new)

    @_locked
    def add_card(self) -> Card:
        """Append a blank spot to the stock and return it for editing."""
        card = Card(
            id=f"new-{_now_ms()}",
            title=NEW_CARD_TITLE,
            category=Category.SPOT,
            column_id=STOCK_ID,
        )
        self.upsert_card(card)
        return card

    @_locked
    def add_day(self) -> DayColumn:
        """Append the next numbered day column and return it."""
        n = len(self.state.days)
        day = DayColumn(
            id=f"day-{n}-{_now_ms()}",
            title=f"{n + 1}日目",
            date_label=UNSET_DATE_LABEL,
        )
        self.append_column(day)
        return day

    # ── Local-only mutations (drag hover, column fields) ─────────────────

    @_locked
    def reassign(self, card_id: str, column_id: str) -> BoardState:
        return self._commit(self.state.reassign(card_id, column_id), push=False)

    @_locked
    def array_move(self, old_index: int, new_index: int) -> BoardState:
        return self._commit(self.state.array_move(old_index, new_index), push=False)

    @_locked
    def _edit_day(self, day_id: str, **changes) -> BoardState:
        day = self.state.find_day(day_id)
        if day is None:
            raise ColumnNotFound(day_id)
        return self._commit(self.state.upsert_column(replace(day, **changes)), push=False)

    def set_day_title(self, day_id: str, title: str) -> BoardState:
        return self._edit_day(day_id, title=title)

    def set_day_memo(self, day_id: str, memo: str) -> BoardState:
        return self._edit_day(day_id, memo=memo)

    @_locked
    def set_day_date(self, day_id: str, date_value: str) -> BoardState:
        """Date the column; unparsable input leaves the column unchanged."""
        day = self.state.find_day(day_id)
        if day is None:
            raise ColumnNotFound(day_id)
        dated = day.with_date(date_value)
        if dated is day:
            logger.info(f"Ignoring unparsable date {date_value!r} for {day_id}")
            return self.state
        return self._commit(self.state.upsert_column(dated), push=False)
