"""
Plan lifecycle outside a board view: create, destroy, list visited plans.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from .docstore import DocumentStore, server_timestamp
from .errors import MintabiError
from .history import HistoryLedger
from .schema import DEFAULT_CARDS, HistoryEntry, default_days

logger = logging.getLogger(__name__)

MISSING_SUFFIX = " (存在しません)"


@dataclass
class DeleteOutcome:
    """Result of destroy_plan; the local ledger is pruned either way."""
    plan_id: str
    remote_deleted: bool
    message: str


def seed_document(title: str) -> dict:
    """A new plan document with the sample cards and two undated days."""
    now = server_timestamp()
    return {
        "title": title,
        "cards": [c.to_dict() for c in DEFAULT_CARDS],
        "days": [d.to_dict() for d in default_days()],
        "createdAt": now,
        "updatedAt": now,
    }


def create_plan(docstore: DocumentStore, title: str,
                ledger: Optional[HistoryLedger] = None) -> str:
    """Create a seeded plan and return its id. Raises ValueError on a blank title."""
    title = (title or "").strip()
    if not title:
        raise ValueError("Plan title is required")
    plan_id = docstore.create(seed_document(title))
    if ledger is not None:
        ledger.record(plan_id, title)
    return plan_id


def destroy_plan(docstore: DocumentStore, plan_id: str,
                 ledger: Optional[HistoryLedger] = None) -> DeleteOutcome:
    """
    Delete a plan for everyone.

    The ledger entry is removed even when the remote delete fails, since
    the usual cause is that the plan is already gone.
    """
    try:
        docstore.delete(plan_id)
        outcome = DeleteOutcome(plan_id, True, "削除しました")
    except (MintabiError, OSError) as e:
        logger.warning(f"Delete of plan {plan_id} failed: {e}")
        outcome = DeleteOutcome(
            plan_id, False, "削除に失敗しました。すでに削除されている可能性があります。"
        )
    if ledger is not None:
        ledger.remove(plan_id)
    return outcome


def refresh_history(docstore: DocumentStore, ledger: HistoryLedger) -> List[HistoryEntry]:
    """
    Visited plans with their current remote titles.

    Plans that no longer exist stay listed (so they can be removed by hand)
    with a marker suffix; plans that cannot be read keep their stored title.
    """
    refreshed = []
    for entry in ledger.list_recent():
        try:
            doc = docstore.get(entry.id)
        except (MintabiError, OSError) as e:
            logger.warning(f"Could not refresh plan {entry.id}: {e}")
            refreshed.append(entry)
            continue
        if doc is None:
            refreshed.append(HistoryEntry(id=entry.id, title=f"{entry.title}{MISSING_SUFFIX}"))
        else:
            refreshed.append(HistoryEntry(id=entry.id, title=doc.get("title") or entry.title))
    return refreshed
