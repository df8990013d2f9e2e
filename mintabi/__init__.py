# Travel-plan board: shared drag-and-drop itinerary with live sync
#
# Components:
#   schema.py     - Data model (Card, DayColumn, Plan, HistoryEntry, Category)
#   errors.py     - Exception taxonomy (not found, write/delete failures)
#   board.py      - Board state store (immutable snapshots, mutations, push)
#   drag.py       - Drag-reorder engine (gesture state machine, collisions)
#   docstore.py   - Document store interface + SQLite backend
#   http_store.py - Document store client for plan_server.py
#   sync.py       - Remote sync channel (subscribe / persist)
#   history.py    - Recently visited plans ledger
#   plans.py      - Plan create / destroy / history refresh
#   session.py    - One board view: wires the above together
#   config.py     - YAML configuration
