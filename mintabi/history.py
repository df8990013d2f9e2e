"""
Recently visited plans, kept on this machine only.

Stored as one JSON array of {id, title}, most recent first, one entry per
plan id. The ledger itself is uncapped; callers that show a short list pass
a display limit to list_recent().
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from .schema import HistoryEntry

logger = logging.getLogger(__name__)

HISTORY_KEY = "mintabi_history"


class HistoryLedger:
    """JSON-file backed list of (plan id, title)."""

    def __init__(self, path: str = None):
        if path is None:
            path = str(Path.home() / ".local" / "share" / "mintabi" / f"{HISTORY_KEY}.json")
        self.path = Path(path)

    def _load(self) -> List[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable history {self.path}: {e}")
            return []
        if not isinstance(data, list):
            return []
        return [HistoryEntry.from_dict(item) for item in data if isinstance(item, dict)]

    def _save(self, entries: List[HistoryEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps([e.to_dict() for e in entries], ensure_ascii=False),
            encoding="utf-8",
        )

    def list_recent(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Most recent first."""
        entries = self._load()
        return entries[:limit] if limit is not None else entries

    def record(self, plan_id: str, title: str) -> List[HistoryEntry]:
        """Move (or add) a plan to the front with its latest title."""
        entries = [e for e in self._load() if e.id != plan_id]
        entries.insert(0, HistoryEntry(id=plan_id, title=title))
        self._save(entries)
        return entries

    def remove(self, plan_id: str) -> List[HistoryEntry]:
        entries = [e for e in self._load() if e.id != plan_id]
        self._save(entries)
        return entries
