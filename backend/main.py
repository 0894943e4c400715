from __future__ import annotations

import atexit
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Type, TypeVar

import pydantic
from flask import Flask, Response, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from backend.config import Settings
from backend.models import (
    ApiModel,
    CalendarSummary,
    CreateEventRequest,
    CreateEventResponse,
    DeleteEventRequest,
    DeleteEventResponse,
    ErrorResponse,
    ListCalendarsResponse,
    ListEventsQuery,
    ListEventsResponse,
    MoveEventRequest,
    MoveEventResponse,
    StatusResponse,
)
from backend.pending_queue import PendingEventQueue
from backend.sweeper import RetrySweeper
from connectors.calendar_client import ALREADY_DELETED, CalendarGateway, make_event_object
from connectors.errors import CalendarError, ValidationError
from helpers.credentials import ServiceAccountCredentialProvider

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger("backend")

M = TypeVar("M", bound=ApiModel)


@dataclass
class FacadeContext:
    settings: Settings
    credentials: Any
    gateway: Any
    queue: PendingEventQueue
    sweeper: RetrySweeper


def _ctx() -> FacadeContext:
    return current_app.extensions["calendar_facade"]


def _parse(model: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
                for err in e.errors()
            ),
            error="Invalid request",
        ) from e


def _json_body() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def create_event():
    ctx = _ctx()
    payload = _parse(CreateEventRequest, _json_body())
    payload = payload.model_copy(
        update={
            "calendar_id": payload.calendar_id or ctx.settings.default_calendar_id,
            "time_zone": payload.time_zone or ctx.settings.default_time_zone,
        }
    )
    if payload.attendees:
        logger.warning("Adding attendees with a service account may require Domain-Wide Delegation")
    body = make_event_object(
        summary=payload.summary,
        start=payload.start_date_time,
        end=payload.end_date_time,
        time_zone=payload.time_zone,
        description=payload.description,
        location=payload.location,
        reminders=payload.reminders,
        attendees=payload.attendees,
    )

    try:
        created = ctx.gateway.create_event(payload.calendar_id, body)
    except Exception as e:
        # The write path never surfaces upstream failures; the sweeper retries
        logger.warning(
            "Direct calendar access failed, queueing event: %s", getattr(e, "message", e)
        )
        event_id, position = ctx.queue.enqueue(payload)
        resp = CreateEventResponse(
            message="Event queued for creation", event_id=event_id, queue_position=position
        )
        return jsonify(resp.to_json())

    logger.info("Event created successfully: %s", created.get("id"))
    resp = CreateEventResponse(
        message="Event created successfully",
        event_id=created.get("id"),
        html_link=created.get("htmlLink"),
    )
    return jsonify(resp.to_json())


def list_events():
    ctx = _ctx()
    query = _parse(ListEventsQuery, request.args.to_dict())
    now = datetime.now(timezone.utc)
    events = ctx.gateway.list_events(
        query.calendar_id or ctx.settings.default_calendar_id,
        time_min=query.time_min or now.isoformat(),
        time_max=query.time_max
        or (now + timedelta(days=ctx.settings.list_window_days)).isoformat(),
        max_results=query.max_results,
    )
    return jsonify(ListEventsResponse(events=events).to_json())


def delete_event():
    ctx = _ctx()
    data = _json_body()
    if not data:
        # DELETE clients sometimes send the ids as query parameters
        data = request.args.to_dict()
    payload = _parse(DeleteEventRequest, data)
    result = ctx.gateway.delete_event(
        payload.calendar_id or ctx.settings.default_calendar_id, payload.event_id
    )
    message = (
        "Event was already deleted"
        if result.status == ALREADY_DELETED
        else "Event deleted successfully"
    )
    return jsonify(DeleteEventResponse(message=message).to_json())


def move_event():
    ctx = _ctx()
    payload = _parse(MoveEventRequest, _json_body())
    moved = ctx.gateway.move_event(
        payload.calendar_id or ctx.settings.default_calendar_id,
        payload.event_id,
        payload.destination_calendar_id,
        send_updates=payload.send_updates,
    )
    return jsonify(MoveEventResponse(message="Event moved successfully", event=moved).to_json())


def list_calendars():
    ctx = _ctx()
    entries = ctx.gateway.list_calendar_list()
    calendars = [CalendarSummary.from_entry(e) for e in entries]
    logger.info("Found %s calendars", len(calendars))
    return jsonify(ListCalendarsResponse(calendars=calendars).to_json())


def status():
    ctx = _ctx()
    resp = StatusResponse(
        pending_events=len(ctx.queue),
        has_service_account=ctx.credentials.has_service_account(),
        default_calendar_id=ctx.settings.default_calendar_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=ctx.settings.environment,
    )
    return jsonify(resp.to_json())


def health():
    return Response("OK", status=200, mimetype="text/plain")


def handle_calendar_error(e: CalendarError):
    if e.status_code >= 500:
        logger.error("%s: %s", e.error, e.message)
    else:
        logger.info("%s: %s", e.error, e.message)
    body = ErrorResponse(error=e.error, message=e.message, details=e.details)
    return jsonify(body.to_json()), e.status_code


def handle_exception(e):  # type: ignore[override]
    if isinstance(e, HTTPException):
        return jsonify(ErrorResponse(error=str(e), details=e.description).to_json()), e.code
    logger.exception("Unhandled error")
    return jsonify(ErrorResponse(error="internal_error", message=str(e)).to_json()), 500


def create_app(
    settings: Optional[Settings] = None,
    gateway: Any = None,
    queue: Optional[PendingEventQueue] = None,
    credentials: Any = None,
) -> Flask:
    """Build the Flask app. Collaborators default to the real ones from settings.

    The retry sweeper is created but not started; ``run()`` starts it.
    """
    settings = settings or Settings.from_env()
    credentials = credentials or ServiceAccountCredentialProvider(settings)
    gateway = gateway or CalendarGateway(credentials, timeout=settings.upstream_timeout_seconds)
    queue = queue if queue is not None else PendingEventQueue()
    sweeper = RetrySweeper(
        queue,
        gateway,
        interval=settings.retry_interval_seconds,
        max_attempts=settings.retry_max_attempts,
    )

    app = Flask(__name__)
    app.extensions["calendar_facade"] = FacadeContext(
        settings=settings,
        credentials=credentials,
        gateway=gateway,
        queue=queue,
        sweeper=sweeper,
    )
    CORS(
        app,
        origins=settings.cors_origins,
        supports_credentials=True,
        methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_url_rule("/api/create-event", view_func=create_event, methods=["POST"])
    app.add_url_rule("/api/list-events", view_func=list_events, methods=["GET"])
    app.add_url_rule("/api/delete-event", view_func=delete_event, methods=["DELETE", "POST"])
    app.add_url_rule("/api/move-event", view_func=move_event, methods=["POST"])
    app.add_url_rule("/api/list-calendars", view_func=list_calendars, methods=["GET"])
    app.add_url_rule("/api/status", view_func=status, methods=["GET"])
    app.add_url_rule("/health", view_func=health, methods=["GET"])

    app.register_error_handler(CalendarError, handle_calendar_error)
    app.register_error_handler(Exception, handle_exception)
    return app


def run():
    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)
    app = create_app(settings)
    ctx: FacadeContext = app.extensions["calendar_facade"]
    if not ctx.credentials.has_service_account():
        logger.warning("No service account key file found and no base64 environment variable set")
    ctx.sweeper.start()
    atexit.register(ctx.sweeper.stop, 5.0)
    logger.info("Starting Flask app on %s:%s (environment: %s)", settings.host, settings.port, settings.environment)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    run()
