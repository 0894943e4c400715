from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC.

    Raises ValueError for anything unparsable.
    """
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_valid_range(start: Optional[str], end: Optional[str]) -> bool:
    """True when both timestamps parse and start is strictly before end."""
    if not start or not end:
        return False
    try:
        return parse_timestamp(start) < parse_timestamp(end)
    except ValueError:
        return False


class ApiModel(BaseModel):
    # JSON bodies use camelCase, Python code uses the snake_case names
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CreateEventRequest(ApiModel):
    calendar_id: Optional[str] = Field(None, alias="calendarId")
    summary: str = Field(..., min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    start_date_time: str = Field(..., alias="startDateTime", min_length=1)
    end_date_time: str = Field(..., alias="endDateTime", min_length=1)
    attendees: List[str] = Field(default_factory=list)
    reminders: Dict[str, Any] = Field(default_factory=lambda: {"useDefault": True})
    time_zone: Optional[str] = Field(None, alias="timeZone")

    @field_validator("reminders", mode="before")
    @classmethod
    def default_reminders(cls, v: Any) -> Any:
        return {"useDefault": True} if v is None else v

    @field_validator("start_date_time", "end_date_time")
    @classmethod
    def must_be_iso_timestamp(cls, v: str) -> str:
        try:
            parse_timestamp(v)
        except ValueError:
            raise ValueError("must be a valid ISO-8601 date-time string") from None
        return v

    @model_validator(mode="after")
    def end_after_start(self) -> "CreateEventRequest":
        if not is_valid_range(self.start_date_time, self.end_date_time):
            raise ValueError("endDateTime must be after startDateTime")
        return self


class CreateEventResponse(ApiModel):
    success: bool = True
    message: str
    event_id: Optional[str] = Field(None, alias="eventId")
    html_link: Optional[str] = Field(None, alias="htmlLink")
    queue_position: Optional[int] = Field(None, alias="queuePosition")


class ListEventsQuery(ApiModel):
    calendar_id: Optional[str] = Field(None, alias="calendarId")
    time_min: Optional[str] = Field(None, alias="timeMin")
    time_max: Optional[str] = Field(None, alias="timeMax")
    max_results: int = Field(10, alias="maxResults", ge=1, le=2500)


class ListEventsResponse(ApiModel):
    success: bool = True
    events: List[Dict[str, Any]]


class DeleteEventRequest(ApiModel):
    calendar_id: Optional[str] = Field(None, alias="calendarId")
    event_id: str = Field(..., alias="eventId", min_length=1)


class DeleteEventResponse(ApiModel):
    success: bool = True
    message: str


class MoveEventRequest(ApiModel):
    calendar_id: Optional[str] = Field(None, alias="calendarId")
    event_id: str = Field(..., alias="eventId", min_length=1)
    destination_calendar_id: str = Field(..., alias="destinationCalendarId", min_length=1)
    send_updates: Literal["all", "externalOnly", "none"] = Field("all", alias="sendUpdates")


class MoveEventResponse(ApiModel):
    success: bool = True
    message: str
    event: Dict[str, Any]


class CalendarSummary(ApiModel):
    id: str
    summary: Optional[str] = None
    description: str = ""
    location: str = ""
    time_zone: Optional[str] = Field(None, alias="timeZone")
    access_role: Optional[str] = Field(None, alias="accessRole")
    background_color: Optional[str] = Field(None, alias="backgroundColor")
    foreground_color: Optional[str] = Field(None, alias="foregroundColor")
    selected: Optional[bool] = None
    primary: bool = False

    @classmethod
    def from_entry(cls, entry: Dict[str, Any]) -> "CalendarSummary":
        return cls(
            id=entry["id"],
            summary=entry.get("summary"),
            description=entry.get("description") or "",
            location=entry.get("location") or "",
            time_zone=entry.get("timeZone"),
            access_role=entry.get("accessRole"),
            background_color=entry.get("backgroundColor"),
            foreground_color=entry.get("foregroundColor"),
            selected=entry.get("selected"),
            primary=bool(entry.get("primary", False)),
        )


class ListCalendarsResponse(ApiModel):
    success: bool = True
    calendars: List[CalendarSummary]


class StatusResponse(ApiModel):
    status: str = "operational"
    pending_events: int = Field(..., alias="pendingEvents")
    has_service_account: bool = Field(..., alias="hasServiceAccount")
    default_calendar_id: str = Field(..., alias="defaultCalendarId")
    timestamp: str
    environment: str


class ErrorResponse(ApiModel):
    error: str
    message: Optional[str] = None
    details: Optional[str] = None
