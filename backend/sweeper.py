"""Background redelivery of queued event creations.

One tick walks the pending queue front to back:

- entries already at the attempt ceiling are abandoned (removed)
- otherwise ``attempts`` is incremented first, then
  - an unparsable or inverted time range removes the entry for good
  - the event is created upstream without attendees; success removes it
  - failure keeps it for the next tick, unless that was the last allowed
    attempt, in which case it is abandoned with an error log line

Ticks run on a fixed interval with no backoff. Only one tick runs at a time;
a slow tick delays the next one instead of overlapping it.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from backend.models import is_valid_range
from backend.pending_queue import PendingEvent, PendingEventQueue
from connectors.calendar_client import make_event_object
from connectors.errors import CalendarError, QueueExhausted, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_ATTEMPTS = 5


class RetrySweeper:
    def __init__(
        self,
        queue: PendingEventQueue,
        gateway: Any,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.queue = queue
        self.gateway = gateway
        self.interval = interval
        self.max_attempts = max_attempts
        self._sweep_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # --- single tick ----------------------------------------------------------
    def sweep_once(self) -> Optional[Dict[str, int]]:
        """Run one pass over the queue.

        Returns counts of what happened to each entry, or None when another
        pass was still running.
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Previous sweep still running, skipping this tick")
            return None
        try:
            report = {"delivered": 0, "retrying": 0, "invalid": 0, "abandoned": 0}
            entries = self.queue.snapshot()
            if not entries:
                return report
            logger.info("Retry sweep: processing %s pending event(s)", len(entries))
            for entry in entries:
                outcome = self._process(entry)
                report[outcome] += 1
            return report
        finally:
            self._sweep_lock.release()

    def _process(self, entry: PendingEvent) -> str:
        if entry.attempts >= self.max_attempts:
            self._abandon(entry)
            return "abandoned"

        attempts = self.queue.begin_attempt(entry.id)

        if not is_valid_range(entry.start_date_time, entry.end_date_time):
            logger.error("Invalid time range for event %s, removing from queue", entry.id)
            self.queue.remove(entry.id)
            return "invalid"

        try:
            self._deliver(entry, attempts)
        except QueueExhausted:
            self._abandon(entry)
            return "abandoned"
        except CalendarError:
            return "retrying"

        self.queue.remove(entry.id)
        return "delivered"

    def _deliver(self, entry: PendingEvent, attempts: int) -> None:
        body = make_event_object(
            summary=entry.summary,
            start=entry.start_date_time,
            end=entry.end_date_time,
            time_zone=entry.time_zone,
            description=entry.description,
            location=entry.location,
            reminders=entry.reminders,
        )
        try:
            created = self.gateway.create_event(entry.calendar_id, body)
        except Exception as e:
            reason = getattr(e, "message", None) or str(e)
            logger.warning(
                "Failed to create event %s on attempt %s: %s", entry.id, attempts, reason
            )
            if attempts >= self.max_attempts:
                raise QueueExhausted(
                    f"Event {entry.id} failed {attempts} delivery attempts", details=reason
                ) from e
            if isinstance(e, CalendarError):
                raise
            raise UpstreamError(f"Unexpected failure creating event {entry.id}", details=reason) from e
        logger.info(
            "Created queued event %s as %s on attempt %s",
            entry.id,
            (created or {}).get("id"),
            attempts,
        )

    def _abandon(self, entry: PendingEvent) -> None:
        if self.queue.remove(entry.id):
            logger.error(
                "Giving up on event %s (%r) after %s attempts",
                entry.id,
                entry.summary,
                entry.attempts,
            )

    # --- lifecycle ------------------------------------------------------------
    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Error in retry sweeper")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="retry-sweeper", daemon=True)
        self._thread.start()
        logger.info("Retry sweeper started (every %ss, max %s attempts)", self.interval, self.max_attempts)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Retry sweeper stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
