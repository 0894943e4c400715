"""Error taxonomy shared by the calendar connector, the credential helper and the API.

Each error carries the HTTP status the API surfaces it with, plus the short
``error`` label and human ``message`` rendered in the JSON body.
"""

from __future__ import annotations

from typing import Optional


class CalendarError(Exception):
    status_code = 500
    error = "calendar_error"

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        error: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if error:
            self.error = error

    def to_dict(self) -> dict:
        body = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CalendarError):
    status_code = 400
    error = "validation_error"


class InvalidDestination(CalendarError):
    status_code = 400
    error = "Invalid destination calendar"


class NotFound(CalendarError):
    status_code = 404
    error = "Resource not found"


class PermissionDenied(CalendarError):
    status_code = 403
    error = "Permission denied"


class AlreadyDeleted(CalendarError):
    """Upstream reports the resource as removed; callers treat this as success."""

    status_code = 410
    error = "already_deleted"


class CredentialError(CalendarError):
    status_code = 500
    error = "credential_error"


class UpstreamError(CalendarError):
    status_code = 500
    error = "upstream_error"


class QueueExhausted(CalendarError):
    """A queued event ran out of delivery attempts. Never leaves the process."""

    error = "queue_exhausted"
