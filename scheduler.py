"""Auto-submit for attempts whose time budget ran out.

A background thread sweeps IN_PROGRESS attempts every interval and finalizes
the expired ones through the same conditional transition the submit endpoint
uses, so a sweep racing a user submit finalizes the attempt once.

The thread only runs while attempts are active: starting an attempt activates
it, finalizing one deactivates it, and each sweep replaces the in-memory count
with a live count from the store (also done once at boot).
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import sessionmaker

import store
from attempts import attempt_snapshot, finalize_attempt
from db import SessionLocal, as_utc, utcnow
from scoring import remaining_seconds

logger = logging.getLogger(__name__)

AUTO_SUBMIT_ENABLED = os.getenv("AUTO_SUBMIT_ENABLED", "1").lower() not in ("0", "false", "no")
AUTO_SUBMIT_INTERVAL_SECONDS = float(os.getenv("AUTO_SUBMIT_INTERVAL_SECONDS", "30"))


class AutoSubmitScheduler:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        interval_seconds: float = AUTO_SUBMIT_INTERVAL_SECONDS,
        enabled: bool = AUTO_SUBMIT_ENABLED,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._active_count = 0
        # bumped on every activate() so a recount can tell what it missed
        self._activations = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    # ---------- Reference counting ----------

    def activate(self) -> None:
        with self._lock:
            self._active_count += 1
            self._activations += 1
            self._start_locked()
            logger.debug("auto-submit active count: %d", self._active_count)

    def deactivate(self) -> None:
        with self._lock:
            if self._active_count > 0:
                self._active_count -= 1
            if self._active_count == 0:
                self._stop_locked()
            logger.debug("auto-submit active count: %d", self._active_count)

    def reconcile_from_store(self) -> int:
        """Trust the store, not the counter (process restarts lose the counter)."""
        since = self._activation_mark()
        with self._session_factory() as db:
            count = store.count_in_progress(db)
        self._set_count(count, since)
        logger.info("found %d in-progress attempts", count)
        return count

    def _activation_mark(self) -> int:
        with self._lock:
            return self._activations

    def _set_count(self, count: int, since: Optional[int] = None) -> None:
        """Replace the counter with a store recount.

        Starts that activated after ``since`` was taken may not be in
        ``count``, so they are added back; an overcount only lasts until
        the next sweep recounts.
        """
        with self._lock:
            if since is not None:
                count += self._activations - since
            self._active_count = count
            if count > 0:
                self._start_locked()
            else:
                self._stop_locked()

    # ---------- Thread ----------

    def _start_locked(self) -> None:
        if not self.enabled or self._thread is not None:
            return
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run, args=(stop_event,), name="auto-submit", daemon=True
        )
        self._stop_event, self._thread = stop_event, thread
        thread.start()
        logger.info("auto-submit job started (every %ss)", self.interval_seconds)

    def _stop_locked(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread = None
        self._stop_event = None
        logger.info("auto-submit job stopped")

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            self._stop_locked()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval_seconds)

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(timeout=self.interval_seconds):
            self.run_cycle()

    def run_cycle(self) -> int:
        # one bad cycle must not kill the thread
        try:
            return self.sweep()
        except Exception:
            logger.exception("auto-submit cycle failed")
            return 0

    # ---------- Sweep ----------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Finalize every expired attempt; returns how many this sweep finalized."""
        now = now or self._clock()
        processed = 0
        since = self._activation_mark()

        with self._session_factory() as db:
            for attempt in store.list_in_progress(db):
                attempt_id = attempt.id
                try:
                    snapshot = attempt_snapshot(attempt)
                    if remaining_seconds(snapshot, as_utc(attempt.started_at), now) > 0:
                        continue
                    if finalize_attempt(db, attempt_id, now=now).performed:
                        processed += 1
                        logger.info("auto-submitted attempt %s due to time expiry", attempt_id)
                except Exception:
                    db.rollback()
                    logger.exception("auto-submit failed for attempt %s", attempt_id)

            remaining = store.count_in_progress(db)

        if processed:
            logger.info("auto-submitted %d expired attempts", processed)
        self._set_count(remaining, since)
        return processed

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "is_active": self._thread is not None,
                "active_count": self._active_count,
                "interval_seconds": self.interval_seconds,
                "enabled": self.enabled,
            }


auto_submit = AutoSubmitScheduler()
