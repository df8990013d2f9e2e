"""
Plan board schema.

A plan is one shared document: a title, a flat ordered list of cards and a
list of day columns. Each card names its bucket through ``column_id``; the
order of a bucket is the subsequence of the flat list with that id.

  stock  →  day-0  →  day-1  → ...

The stock bucket has no DayColumn record of its own.
"""
import re
from enum import Enum
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Tuple

from .errors import InvalidEntity

# Well-known drop target ids
STOCK_ID = "stock"
TRASH_ID = "trash"

WEEKDAY_LABELS = "日月火水木金土"  # Sunday first

NEW_CARD_TITLE = "新しいスポット"
UNSET_DATE_LABEL = "日付設定"
UNDECIDED_DATE_LABEL = "日付未定"

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Category(Enum):
    """Kind of itinerary item."""
    SPOT = "spot"    # Sightseeing
    FOOD = "food"    # Restaurants, cafes

    @classmethod
    def from_str(cls, value: str) -> "Category":
        try:
            return cls(value)
        except ValueError:
            raise InvalidEntity(f"Unknown category: {value!r}") from None


def derive_date_label(date_value: str) -> Optional[str]:
    """
    Turn an ISO date into the column header label, e.g. 2024-10-02 → 10/2(水).

    Returns None when the value is not a YYYY-MM-DD calendar date.
    """
    if not isinstance(date_value, str) or not ISO_DATE.match(date_value):
        return None
    try:
        day = date.fromisoformat(date_value)
    except (TypeError, ValueError):
        return None
    weekday = WEEKDAY_LABELS[(day.weekday() + 1) % 7]
    return f"{day.month}/{day.day}({weekday})"


@dataclass(frozen=True)
class Card:
    """One itinerary item on the board."""

    id: str
    title: str
    category: Category = Category.SPOT
    column_id: str = STOCK_ID

    # Optional details, empty when unset
    image_url: str = ""
    url: str = ""
    memo: str = ""

    def __post_init__(self):
        if not self.id:
            raise InvalidEntity("Card id must not be empty")
        if not self.title:
            raise InvalidEntity(f"Card {self.id} has an empty title")
        if not isinstance(self.category, Category):
            raise InvalidEntity(f"Card {self.id} has invalid category {self.category!r}")

    def moved_to(self, column_id: str) -> "Card":
        return replace(self, column_id=column_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category.value,
            "columnId": self.column_id,
            "imageUrl": self.image_url,
            "url": self.url,
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            category=Category.from_str(data.get("category", "spot")),
            column_id=data.get("columnId") or STOCK_ID,
            image_url=data.get("imageUrl") or "",
            url=data.get("url") or "",
            memo=data.get("memo") or "",
        )


@dataclass(frozen=True)
class DayColumn:
    """A per-day bucket with its own date and memo."""

    id: str
    title: str
    date_label: str = UNSET_DATE_LABEL
    date_value: str = ""   # ISO date the label was derived from
    memo: str = ""

    def __post_init__(self):
        if not self.id:
            raise InvalidEntity("Column id must not be empty")
        if not self.title:
            raise InvalidEntity(f"Column {self.id} has an empty title")

    def with_date(self, date_value: str) -> "DayColumn":
        """Return a copy dated ``date_value``, or self if it does not parse."""
        label = derive_date_label(date_value)
        if label is None:
            return self
        return replace(self, date_label=label, date_value=date_value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "dateLabel": self.date_label,
            "dateValue": self.date_value,
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DayColumn":
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            date_label=data.get("dateLabel") or "",
            date_value=data.get("dateValue") or "",
            memo=data.get("memo") or "",
        )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if value:
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError):
            return None
    return None


@dataclass(frozen=True)
class Plan:
    """The shared plan document, as stored under plans/{planId}."""

    title: str
    cards: Tuple[Card, ...] = ()
    days: Tuple[DayColumn, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "cards": [c.to_dict() for c in self.cards],
            "days": [d.to_dict() for d in self.days],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        """Raises InvalidEntity for any document that is not a well-formed plan."""
        if not isinstance(data, dict):
            raise InvalidEntity(f"Plan document must be an object, got {type(data).__name__}")
        cards = data.get("cards") or []
        days = data.get("days") or []
        for key, items in (("cards", cards), ("days", days)):
            if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
                raise InvalidEntity(f"Plan {key} must be a list of objects")
        return cls(
            title=data.get("title") or "",
            cards=tuple(Card.from_dict(c) for c in cards),
            days=tuple(DayColumn.from_dict(d) for d in days),
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """A recently visited plan, kept on this machine only."""
    id: str
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(id=str(data.get("id", "")), title=str(data.get("title", "")))


# ── Seed data for new plans ──────────────────────────────────────────────────

DEFAULT_CARDS: Tuple[Card, ...] = (
    Card(id="c1", title="清水寺", category=Category.SPOT,
         image_url="https://images.unsplash.com/photo-1595792876675-7746a3507e3b?auto=format&fit=crop&w=300&q=80",
         memo="朝一で行くのがおすすめ"),
    Card(id="c2", title="抹茶カフェ", category=Category.FOOD,
         image_url="https://images.unsplash.com/photo-1563483784216-8c80717519a7?auto=format&fit=crop&w=300&q=80"),
    Card(id="c3", title="伏見稲荷", category=Category.SPOT, column_id="day-0",
         image_url="https://images.unsplash.com/photo-1478436127897-769e1b3f0f36?auto=format&fit=crop&w=300&q=80"),
    Card(id="c4", title="ラーメン横丁", category=Category.FOOD),
    Card(id="c5", title="金閣寺", category=Category.SPOT,
         image_url="https://images.unsplash.com/photo-1605218457332-60374f6f5249?auto=format&fit=crop&w=300&q=80"),
)


def default_days() -> List[DayColumn]:
    """The two undated day columns every new plan starts with."""
    return [
        DayColumn(id="day-0", title="1日目", date_label=UNDECIDED_DATE_LABEL),
        DayColumn(id="day-1", title="2日目", date_label=UNDECIDED_DATE_LABEL),
    ]
