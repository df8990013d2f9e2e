"""
Remote sync channel: one board view's link to its plan document.

- subscribe() delivers every remote snapshot (including echoes of this
  client's own writes) as a Plan, or reports that the plan is gone.
- persist() writes a partial {cards, days, title} update. Failures are
  logged and counted, never raised, and local state is not rolled back.

There is no merge and no write sequencing: whichever write the store
completes last defines the document.
"""
import logging
import threading
from typing import Optional, Dict, Any, Callable, List

from .docstore import DocumentStore, Watch
from .errors import MintabiError, InvalidEntity, PlanNotFound
from .schema import Plan

logger = logging.getLogger(__name__)


class RemoteSyncChannel:
    """Subscribe to and write back one plan document."""

    def __init__(self, docstore: DocumentStore, plan_id: str, background: bool = False):
        self.docstore = docstore
        self.plan_id = plan_id
        self.background = background
        self.not_found = False
        self.write_failures = 0
        self.on_saving: Optional[Callable[[bool], None]] = None

        self._on_snapshot: Optional[Callable[[Plan], None]] = None
        self._on_not_found: Optional[Callable[[str], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._watch: Optional[Watch] = None
        self._lock = threading.Lock()
        self._in_flight = 0
        self._writers: List[threading.Thread] = []
        self._delivering = False
        self._pending: Optional[Dict[str, Any]] = None
        self._has_pending = False

    # ── Subscription ─────────────────────────────────────────────────────

    def subscribe(
        self,
        on_snapshot: Callable[[Plan], None],
        on_not_found: Callable[[str], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """
        Start (or restart) live delivery for this plan.

        Calling again replaces the previous subscription, so there is never
        more than one live watch per channel.
        """
        self.unsubscribe()
        self._on_snapshot = on_snapshot
        self._on_not_found = on_not_found
        self._on_error = on_error
        self.not_found = False
        watch = self.docstore.watch(self.plan_id, self._receive, self._fail)
        # The first snapshot may already have reported the plan missing
        if self.not_found:
            watch.close()
        else:
            self._watch = watch

    def unsubscribe(self) -> None:
        if self._watch is not None:
            self._watch.close()
            self._watch = None

    @property
    def subscribed(self) -> bool:
        return self._watch is not None and not self._watch.closed

    def _fail(self, error: Exception) -> None:
        logger.error(f"Subscription to plan {self.plan_id} failed: {error}")
        if self._on_error is not None:
            self._on_error(error)

    def _receive(self, doc: Optional[Dict[str, Any]]) -> None:
        # A snapshot produced while another is being handled (e.g. the echo
        # of a write made from inside a callback) is handled right after it.
        with self._lock:
            if self._delivering:
                self._pending = doc
                self._has_pending = True
                return
            self._delivering = True
        # A held snapshot is still handled when a callback fails; the first
        # error is raised afterwards.
        first_error: Optional[Exception] = None
        try:
            while True:
                try:
                    self._dispatch(doc)
                except Exception as e:
                    if first_error is None:
                        first_error = e
                with self._lock:
                    if not self._has_pending:
                        self._delivering = False
                        break
                    doc = self._pending
                    self._pending = None
                    self._has_pending = False
        except BaseException:
            with self._lock:
                self._delivering = False
                self._pending = None
                self._has_pending = False
            raise
        if first_error is not None:
            raise first_error

    def _dispatch(self, doc: Optional[Dict[str, Any]]) -> None:
        if doc is None:
            if self.not_found:
                return
            self.not_found = True
            logger.warning(f"Plan {self.plan_id} not found")
            self.unsubscribe()
            if self._on_not_found is not None:
                self._on_not_found(self.plan_id)
            return
        try:
            plan = Plan.from_dict(doc)
        except (InvalidEntity, TypeError, AttributeError) as e:
            self._fail(e)
            return
        if self._on_snapshot is not None:
            self._on_snapshot(plan)

    # ── Writes ───────────────────────────────────────────────────────────

    @property
    def is_saving(self) -> bool:
        with self._lock:
            return self._in_flight > 0

    def _set_in_flight(self, delta: int) -> None:
        with self._lock:
            self._in_flight += delta
            saving = self._in_flight > 0
        if self.on_saving is not None:
            self.on_saving(saving)

    def persist(self, partial: Dict[str, Any]) -> None:
        """Write a partial update; returns immediately in background mode."""
        if self.not_found:
            logger.debug(f"Skipping write to missing plan {self.plan_id}")
            return
        if not self.background:
            self._write(partial)
            return
        writer = threading.Thread(target=self._write, args=(partial,), daemon=True)
        with self._lock:
            self._writers = [w for w in self._writers if w.is_alive()]
            self._writers.append(writer)
        writer.start()

    def _write(self, partial: Dict[str, Any]) -> bool:
        self._set_in_flight(1)
        try:
            self.docstore.update(self.plan_id, partial)
            return True
        except PlanNotFound:
            self.write_failures += 1
            logger.error(f"Save failed: plan {self.plan_id} no longer exists")
            return False
        except (MintabiError, ValueError) as e:
            self.write_failures += 1
            logger.error(f"Save failed for plan {self.plan_id}: {e}")
            return False
        finally:
            self._set_in_flight(-1)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until background writes started so far have finished."""
        with self._lock:
            writers = list(self._writers)
        for writer in writers:
            writer.join(timeout)

    def close(self) -> None:
        self.unsubscribe()
