"""Shared test fixtures for the plan board tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root (mintabi/, plan_server.py) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from mintabi.board import BoardState, BoardStore
from mintabi.docstore import SqliteDocumentStore
from mintabi.history import HistoryLedger
from mintabi.schema import Card, DayColumn, Category


class RecordingSink:
    """Collects every {cards, days} push from a BoardStore."""

    def __init__(self):
        self.calls = []

    def __call__(self, partial):
        self.calls.append(partial)

    @property
    def last(self):
        return self.calls[-1]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def kyoto_state():
    """Three stock cards, one day-0 card, two day columns."""
    return BoardState(
        cards=(
            Card(id="c1", title="清水寺", category=Category.SPOT),
            Card(id="c2", title="抹茶カフェ", category=Category.FOOD),
            Card(id="c3", title="伏見稲荷", category=Category.SPOT, column_id="day-0"),
            Card(id="c4", title="ラーメン横丁", category=Category.FOOD),
        ),
        days=(
            DayColumn(id="day-0", title="1日目"),
            DayColumn(id="day-1", title="2日目"),
        ),
    )


@pytest.fixture
def board(kyoto_state, sink):
    return BoardStore(kyoto_state, sink=sink)


@pytest.fixture
def docstore(tmp_path):
    return SqliteDocumentStore(str(tmp_path / "plans.db"))


@pytest.fixture
def ledger(tmp_path):
    return HistoryLedger(str(tmp_path / "history.json"))
