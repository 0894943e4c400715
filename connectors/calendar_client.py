"""Google Calendar gateway used by the API handlers and the retry sweeper.

Provides:
- make_event_object(...) -> event resource dict
- CalendarGateway(credentials, timeout) with one method per upstream capability:
  create_event, list_events, get_event, delete_event, move_event,
  list_calendar_list, get_calendar

Every call acquires the shared service credential, builds a ``calendar v3``
discovery client and translates ``HttpError`` into the typed errors of
``connectors.errors`` by HTTP status and structured error reason:

- 404 -> NotFound
- 403 -> PermissionDenied
- 410 or reason "deleted" -> AlreadyDeleted
- anything else -> UpstreamError (401 also drops the cached credential)

No retries happen here. Failed creates are retried by ``backend.sweeper``.

Notes on Google Cloud Console config:
- Enable the Google Calendar API for the project owning the service account.
- Share each target calendar with the service account's client_email
  ("Make changes to events"). The account cannot reach anyone's "primary"
  calendar, and cannot invite attendees without Domain-Wide Delegation.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Set

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from connectors.errors import (
    AlreadyDeleted,
    CalendarError,
    CredentialError,
    InvalidDestination,
    NotFound,
    PermissionDenied,
    UpstreamError,
)

logger = logging.getLogger(__name__)

PRIMARY_CALENDAR_ID = "primary"
SEND_UPDATES_CHOICES = ("all", "externalOnly", "none")

DELETED = "deleted"
ALREADY_DELETED = "already_deleted"


class DeleteResult(NamedTuple):
    status: str  # DELETED or ALREADY_DELETED
    calendar_id: str


def make_event_object(
    summary: str,
    start: str,
    end: str,
    time_zone: str,
    description: Optional[str] = None,
    location: Optional[str] = None,
    reminders: Optional[Dict[str, Any]] = None,
    attendees: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Build a Google Calendar event resource.

    Timestamps are passed through untouched. Attendees are only included when
    the list is non-empty, since the service account cannot notify them
    without Domain-Wide Delegation.
    """
    event: Dict[str, Any] = {
        "summary": summary,
        "start": {"dateTime": start, "timeZone": time_zone},
        "end": {"dateTime": end, "timeZone": time_zone},
        "reminders": reminders if reminders is not None else {"useDefault": True},
    }
    if description is not None:
        event["description"] = description
    if location is not None:
        event["location"] = location
    emails = list(attendees or [])
    if emails:
        event["attendees"] = [{"email": email} for email in emails]
    return event


def _error_reasons(error: HttpError) -> Set[str]:
    details = getattr(error, "error_details", None)
    if not isinstance(details, list):
        return set()
    return {d["reason"] for d in details if isinstance(d, dict) and d.get("reason")}


def translate_http_error(error: HttpError, action: str) -> CalendarError:
    status = getattr(error, "status_code", None) or error.resp.status
    upstream = getattr(error, "reason", None) or str(error)
    if status == 410 or "deleted" in _error_reasons(error):
        return AlreadyDeleted("Resource has been deleted", details=upstream)
    if status == 404:
        return NotFound(f"Resource not found while trying to {action}", details=upstream)
    if status == 403:
        return PermissionDenied(
            f"Service account is not allowed to {action}", details=upstream
        )
    return UpstreamError(
        f"Calendar API error while trying to {action}: {upstream}",
        details=f"HTTP {status}",
    )


class CalendarGateway:
    """Uniform call contract over the Calendar v3 API for a single service account."""

    def __init__(self, credentials: Any, timeout: float = 30.0):
        self.credentials = credentials
        self.timeout = timeout

    def _service(self, creds: Any):
        http = AuthorizedHttp(creds, http=httplib2.Http(timeout=self.timeout))
        return build("calendar", "v3", http=http, cache_discovery=False)

    def _call(self, action: str, op: Callable[[Any], Any]) -> Any:
        try:
            with self.credentials.scoped() as creds:
                return op(self._service(creds)).execute()
        except HttpError as e:
            translated = translate_http_error(e, action)
            if e.resp.status == 401:
                self.credentials.invalidate()
            logger.debug("Calendar API %s failed: %s", action, translated.message)
            raise translated from e
        except RefreshError as e:
            raise CredentialError(
                "Service account token could not be obtained", details=str(e)
            ) from e
        except (TransportError, httplib2.HttpLib2Error, OSError) as e:
            # TransportError covers an unreachable token endpoint during refresh
            raise UpstreamError(
                f"Calendar API unreachable while trying to {action}", details=str(e)
            ) from e

    # --- Events ---------------------------------------------------------------
    def create_event(self, calendar_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Creating event in calendar %s", calendar_id)
        return self._call(
            "create event",
            lambda s: s.events().insert(calendarId=calendar_id, body=event),
        )

    def list_events(
        self,
        calendar_id: str,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        max_results: int = 10,
    ) -> List[Dict[str, Any]]:
        logger.info("Listing events from calendar %s", calendar_id)
        resp = self._call(
            "list events",
            lambda s: s.events().list(
                calendarId=calendar_id,
                timeMin=time_min,
                timeMax=time_max,
                maxResults=max_results,
                singleEvents=True,
                orderBy="startTime",
            ),
        )
        return resp.get("items", [])

    def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        return self._call(
            "get event",
            lambda s: s.events().get(calendarId=calendar_id, eventId=event_id),
        )

    def delete_event(self, calendar_id: str, event_id: str) -> DeleteResult:
        """Delete an event, resolving which calendar actually holds it.

        1. The source calendar must be reachable (NotFound / PermissionDenied
           propagate).
        2. Look the event up in the source calendar.
        3. If it is missing there, search every calendar in the account's
           calendar list; no match means it is already gone.
        4. Delete with updates sent to all participants.

        Deleting a missing or already-deleted event is a success and returns
        status ALREADY_DELETED.
        """
        try:
            self.get_calendar(calendar_id)
        except NotFound as e:
            raise NotFound(
                "The specified calendar does not exist or is not accessible.",
                details=e.details,
                error="Calendar not found",
            ) from e
        except PermissionDenied as e:
            raise PermissionDenied(
                "Service account does not have permission to access this calendar.",
                details=e.details,
            ) from e

        target = calendar_id
        try:
            self.get_event(calendar_id, event_id)
        except (NotFound, AlreadyDeleted):
            logger.info(
                "Event %s not found in calendar %s, searching other calendars",
                event_id,
                calendar_id,
            )
            found = self._find_event_calendar(event_id)
            if found is None:
                logger.info("Event %s not found anywhere, treating as deleted", event_id)
                return DeleteResult(ALREADY_DELETED, calendar_id)
            target = found

        try:
            self._call(
                "delete event",
                lambda s: s.events().delete(
                    calendarId=target, eventId=event_id, sendUpdates="all"
                ),
            )
        except AlreadyDeleted:
            logger.info("Event %s was already deleted", event_id)
            return DeleteResult(ALREADY_DELETED, target)
        logger.info("Deleted event %s from calendar %s", event_id, target)
        return DeleteResult(DELETED, target)

    def _find_event_calendar(self, event_id: str) -> Optional[str]:
        try:
            for cal in self.list_calendar_list():
                try:
                    self.get_event(cal["id"], event_id)
                except (NotFound, AlreadyDeleted):
                    continue
                logger.info("Found event %s in calendar %s", event_id, cal["id"])
                return cal["id"]
        except (NotFound, PermissionDenied, UpstreamError) as e:
            raise NotFound(
                "The specified event does not exist in any accessible calendar.",
                details=e.details or e.message,
                error="Event not found",
            ) from e
        return None

    def move_event(
        self,
        calendar_id: str,
        event_id: str,
        destination: str,
        send_updates: str = "all",
    ) -> Dict[str, Any]:
        if destination == PRIMARY_CALENDAR_ID:
            raise InvalidDestination(
                "Service account cannot access primary calendar. "
                "Please provide a specific calendar ID."
            )

        try:
            self.get_calendar(calendar_id)
            self.get_calendar(destination)
            self.get_event(calendar_id, event_id)
        except (NotFound, AlreadyDeleted) as e:
            raise NotFound(
                "One or more resources (calendar or event) were not found. "
                "Please verify the IDs.",
                details=e.details,
            ) from e
        except PermissionDenied as e:
            raise PermissionDenied(
                "Service account does not have access to one or more resources. "
                "Please ensure the service account has the necessary permissions.",
                details=e.details,
            ) from e

        logger.info("Moving event %s from %s to %s", event_id, calendar_id, destination)
        try:
            return self._call(
                "move event",
                lambda s: s.events().move(
                    calendarId=calendar_id,
                    eventId=event_id,
                    destination=destination,
                    sendUpdates=send_updates,
                ),
            )
        except AlreadyDeleted as e:
            raise NotFound(
                "The event was not found. Please verify the event ID.", details=e.details
            ) from e

    # --- Calendars ------------------------------------------------------------
    def list_calendar_list(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            resp = self._call(
                "list calendars",
                lambda s: s.calendarList().list(pageToken=page_token),
            )
            items.extend(resp.get("items", []))
            page_token = resp.get("nextPageToken")
            if not page_token:
                return items

    def get_calendar(self, calendar_id: str) -> Dict[str, Any]:
        return self._call(
            "access calendar",
            lambda s: s.calendars().get(calendarId=calendar_id),
        )
