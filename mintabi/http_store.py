"""
HTTP client for plan_server.py.

Speaks the same DocumentStore interface as the SQLite backend so a board
can run against a shared server. Live updates are delivered by polling the
plan document on a daemon thread and comparing ``updatedAt``; this client's
own writes are echoed to its watchers as soon as the server acknowledges
them.
"""
import logging
import threading
from typing import Optional, Dict, Any

import requests

from .docstore import (
    DocumentStore, Watch, WatchRegistry, SnapshotCallback, ErrorCallback, check_partial,
)
from .errors import PlanNotFound, WriteFailure, DeleteFailure

logger = logging.getLogger(__name__)

_MISSING = object()


class PollingWatch(Watch):
    """Watch whose delivery is driven by a background poller."""

    def __init__(self, registry, plan_id, on_snapshot, on_error=None):
        super().__init__(registry, plan_id, on_snapshot, on_error)
        self.last_seen: Any = _MISSING
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def close(self) -> None:
        self.stop_event.set()
        super().close()


class HttpDocumentStore(DocumentStore):
    """Plan documents behind the plan server's JSON API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5,
        poll_interval: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.session = session or requests.Session()
        self.watches = WatchRegistry()

    def _url(self, plan_id: str = "") -> str:
        url = f"{self.base_url}/api/plans"
        return f"{url}/{plan_id}" if plan_id else url

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    # ── CRUD ─────────────────────────────────────────────────────────────

    def create(self, data: Dict[str, Any]) -> str:
        try:
            r = self.session.post(self._url(), json=data, headers=self._headers(),
                                  timeout=self.timeout)
            r.raise_for_status()
            return r.json()["id"]
        except requests.RequestException as e:
            raise WriteFailure(f"Could not create plan: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise WriteFailure(f"Unexpected response creating plan: {e!r}") from e

    def get(self, plan_id: str) -> Optional[Dict[str, Any]]:
        r = self.session.get(self._url(plan_id), headers=self._headers(), timeout=self.timeout)
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return r.json()["plan"]

    def update(self, plan_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        check_partial(partial)
        try:
            r = self.session.patch(self._url(plan_id), json=partial, headers=self._headers(),
                                   timeout=self.timeout)
        except requests.RequestException as e:
            raise WriteFailure(f"Could not write plan {plan_id}: {e}") from e
        if r.status_code == 404:
            raise PlanNotFound(plan_id)
        if not r.ok:
            raise WriteFailure(f"Could not write plan {plan_id}: HTTP {r.status_code}")
        doc = r.json()["plan"]
        self._echo(plan_id, doc)
        return doc

    def delete(self, plan_id: str) -> None:
        try:
            r = self.session.delete(self._url(plan_id), headers=self._headers(),
                                    timeout=self.timeout)
        except requests.RequestException as e:
            raise DeleteFailure(f"Could not delete plan {plan_id}: {e}") from e
        if r.status_code == 404:
            raise PlanNotFound(plan_id)
        if not r.ok:
            raise DeleteFailure(f"Could not delete plan {plan_id}: HTTP {r.status_code}")
        self._echo(plan_id, None)

    # ── Live updates ─────────────────────────────────────────────────────

    def _echo(self, plan_id: str, doc: Optional[Dict[str, Any]]) -> None:
        seen = doc.get("updatedAt") if doc else None
        for watch in self.watches.watching(plan_id):
            watch.last_seen = seen
            self.watches.deliver(watch, doc)

    def poll(self, watch: PollingWatch) -> bool:
        """Fetch the document once; deliver it if it changed. Returns True on delivery."""
        try:
            doc = self.get(watch.plan_id)
        except requests.RequestException as e:
            self.watches.fail(watch, e)
            return False
        seen = doc.get("updatedAt") if doc else None
        if seen == watch.last_seen:
            return False
        watch.last_seen = seen
        self.watches.deliver(watch, doc)
        return True

    def _poll_loop(self, watch: PollingWatch) -> None:
        while not watch.stop_event.wait(self.poll_interval):
            self.poll(watch)
        logger.debug(f"Stopped polling {watch.plan_id}")

    def watch(self, plan_id: str, on_snapshot: SnapshotCallback,
              on_error: Optional[ErrorCallback] = None) -> PollingWatch:
        watch = PollingWatch(self.watches, plan_id, on_snapshot, on_error)
        self.watches.add(watch)
        self.poll(watch)
        if self.poll_interval > 0 and not watch.closed:
            watch.thread = threading.Thread(target=self._poll_loop, args=(watch,), daemon=True)
            watch.thread.start()
        return watch

    def close(self) -> None:
        self.session.close()
