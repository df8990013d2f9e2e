#!/usr/bin/env python3
"""
Mintabi Plan Server
-------------------
Serves plan documents over a small JSON API backed by SQLite, so several
board clients (mintabi.http_store.HttpDocumentStore) can share a plan.

Usage:
    python plan_server.py --port 3000 --db /var/lib/mintabi/plans.db

API:
    GET    /health               → { status, db }
    POST   /api/plans            → body { title, cards?, days? }
                                   201 { id, plan }
    GET    /api/plans/<id>       → { id, plan }            404 if missing
    PATCH  /api/plans/<id>       → body ⊆ { title, cards, days }
                                   { id, plan }            404 if missing
    DELETE /api/plans/<id>       → { id, deleted }         404 if missing

Write routes require the X-API-Key header to match MINTABI_API_SECRET.
"""

import hmac
import logging
import os
import sys
from functools import wraps
from pathlib import Path

from flask import Flask, jsonify, request

from mintabi.docstore import SqliteDocumentStore
from mintabi.errors import InvalidEntity, PlanNotFound, WriteFailure, DeleteFailure
from mintabi.plans import seed_document
from mintabi.schema import Card, DayColumn

DEFAULT_DB = Path.home() / ".local" / "share" / "mintabi" / "plans.db"

app = Flask(__name__)
logger = logging.getLogger("plan_server")

# ── Auth ─────────────────────────────────────────────────────────────────────

API_SECRET = os.environ.get("MINTABI_API_SECRET", "")


def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not API_SECRET:
            return jsonify({"error": "API_SECRET not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, API_SECRET):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Storage ──────────────────────────────────────────────────────────────────

_stores = {}


def get_db_path() -> Path:
    env = os.environ.get("MINTABI_DB")
    if env:
        return Path(env)
    return DEFAULT_DB


def get_store() -> SqliteDocumentStore:
    """One store per database path, created on first use."""
    db_path = str(get_db_path())
    if db_path not in _stores:
        _stores[db_path] = SqliteDocumentStore(db_path)
    return _stores[db_path]


def validate_fields(data: dict) -> dict:
    """
    Check a create/patch body and return the writable subset.

    Raises InvalidEntity for malformed cards or days, ValueError for
    anything else wrong with the body.
    """
    unknown = set(data) - {"title", "cards", "days"}
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)}")
    fields = {}
    if "title" in data:
        title = data["title"]
        if not isinstance(title, str) or not title.strip():
            raise ValueError("title must be a non-empty string")
        fields["title"] = title
    for key, model in (("cards", Card), ("days", DayColumn)):
        if key not in data:
            continue
        items = data[key]
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise ValueError(f"{key} must be a list of objects")
        fields[key] = [model.from_dict(i).to_dict() for i in items]
    return fields


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": str(get_db_path())})


@app.route("/api/plans", methods=["POST"])
@require_api_key
def api_create_plan():
    data = request.get_json(force=True, silent=True) or {}
    title = str(data.get("title", "")).strip()
    if not title:
        return jsonify({"error": "title is required"}), 400
    try:
        fields = validate_fields({k: v for k, v in data.items() if k != "title"})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    doc = seed_document(title)
    doc.update(fields)
    try:
        store = get_store()
        plan_id = store.create(doc)
        return jsonify({"id": plan_id, "plan": store.get(plan_id)}), 201
    except WriteFailure as e:
        return jsonify({"error": str(e)}), 500


@app.route("/api/plans/<plan_id>", methods=["GET"])
def api_get_plan(plan_id):
    doc = get_store().get(plan_id)
    if doc is None:
        return jsonify({"error": "Plan not found"}), 404
    return jsonify({"id": plan_id, "plan": doc})


@app.route("/api/plans/<plan_id>", methods=["PATCH"])
@require_api_key
def api_update_plan(plan_id):
    data = request.get_json(force=True, silent=True) or {}
    try:
        fields = validate_fields(data)
        if not fields:
            return jsonify({"error": "nothing to update"}), 400
    except ValueError as e:
        # InvalidEntity is a ValueError too
        return jsonify({"error": str(e)}), 400

    try:
        doc = get_store().update(plan_id, fields)
        return jsonify({"id": plan_id, "plan": doc})
    except PlanNotFound:
        return jsonify({"error": "Plan not found"}), 404
    except WriteFailure as e:
        logger.error(f"Write to {plan_id} failed: {e}")
        return jsonify({"error": str(e)}), 500


@app.route("/api/plans/<plan_id>", methods=["DELETE"])
@require_api_key
def api_delete_plan(plan_id):
    try:
        get_store().delete(plan_id)
        return jsonify({"id": plan_id, "deleted": True})
    except PlanNotFound:
        return jsonify({"error": "Plan not found"}), 404
    except DeleteFailure as e:
        logger.error(f"Delete of {plan_id} failed: {e}")
        return jsonify({"error": str(e)}), 500


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Mintabi Plan Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--db", help="Path to plans.db (overrides MINTABI_DB env var)")
    args = parser.parse_args()

    if args.db:
        os.environ["MINTABI_DB"] = args.db

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [mintabi] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logger.info(f"Serving plans from {get_db_path()} on http://{args.host}:{args.port}")
    if not API_SECRET:
        logger.warning("MINTABI_API_SECRET is not set; write routes will return 503")

    app.run(host=args.host, port=args.port, debug=False, threaded=True)
