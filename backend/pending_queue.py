"""In-memory queue of event creations that could not be committed upstream.

The queue lives for the lifetime of the process only. Request handlers append
to it, the retry sweeper is the only consumer. All mutations hold one lock, so
handlers served on Flask's worker threads can enqueue while a sweep runs.
"""

from __future__ import annotations

import logging
import secrets
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from backend.models import CreateEventRequest

logger = logging.getLogger(__name__)


class PendingEvent(BaseModel):
    id: str
    calendar_id: str
    summary: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_date_time: str
    end_date_time: str
    time_zone: str
    reminders: Dict[str, Any] = Field(default_factory=lambda: {"useDefault": True})
    # Always empty: the service account cannot notify attendees without
    # Domain-Wide Delegation, so queued events are created without them.
    attendees: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = Field(0, ge=0)


class PendingEventQueue:
    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[PendingEvent] = []

    def enqueue(self, request: CreateEventRequest) -> Tuple[str, int]:
        """Queue a create request; returns (event_id, queue length after append).

        ``request.calendar_id`` and ``request.time_zone`` must already carry
        their defaults.
        """
        event = PendingEvent(
            id=secrets.token_hex(16),
            calendar_id=request.calendar_id,
            summary=request.summary,
            description=request.description,
            location=request.location,
            start_date_time=request.start_date_time,
            end_date_time=request.end_date_time,
            time_zone=request.time_zone,
            reminders=request.reminders,
        )
        if request.attendees:
            logger.info(
                "Dropping %s attendee(s) from queued event %s", len(request.attendees), event.id
            )
        with self._lock:
            self._entries.append(event)
            length = len(self._entries)
        logger.info("Queued event %s for calendar %s (queue length %s)", event.id, event.calendar_id, length)
        return event.id, length

    def snapshot(self) -> List[PendingEvent]:
        with self._lock:
            return list(self._entries)

    def get(self, event_id: str) -> Optional[PendingEvent]:
        with self._lock:
            for entry in self._entries:
                if entry.id == event_id:
                    return entry
        return None

    def begin_attempt(self, event_id: str) -> int:
        """Increment and return the attempt counter of a queued event."""
        with self._lock:
            for entry in self._entries:
                if entry.id == event_id:
                    entry.attempts += 1
                    return entry.attempts
        raise KeyError(event_id)

    def remove(self, event_id: str) -> bool:
        with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.id == event_id:
                    del self._entries[i]
                    return True
        return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[PendingEvent]:
        return iter(self.snapshot())
