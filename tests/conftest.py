import json
from contextlib import contextmanager

import httplib2
import pytest
from googleapiclient.errors import HttpError

import connectors.calendar_client as cc
from backend.config import Settings
from connectors.errors import UpstreamError


def make_http_error(status, message="error", reason=None):
    body = {"error": {"code": status, "message": message}}
    if reason:
        body["error"]["errors"] = [{"domain": "global", "reason": reason, "message": message}]
    resp = httplib2.Response({"status": str(status), "reason": message})
    return HttpError(resp, json.dumps(body).encode("utf-8"), uri="https://www.googleapis.com/calendar/v3")


@pytest.fixture
def http_error():
    return make_http_error


class FakeCredentials:
    def __init__(self, present=True):
        self.present = present
        self.invalidated = 0

    @contextmanager
    def scoped(self):
        yield object()

    def invalidate(self):
        self.invalidated += 1

    def has_service_account(self):
        return self.present


class _Request:
    def __init__(self, thunk):
        self._thunk = thunk

    def execute(inner):
        return inner._thunk()


class _Resource:
    def __init__(self, service, name):
        self._service = service
        self._name = name

    def __getattr__(self, method):
        key = f"{self._name}.{method}"

        def call(**kwargs):
            self._service.calls.append((key, kwargs))
            handler = self._service.handlers.get(key)
            if handler is None:
                raise AssertionError(f"unexpected upstream call {key}")
            return _Request(lambda: handler(**kwargs))

        return call


class FakeCalendarService:
    """Stands in for the discovery client; handlers are keyed "resource.method"."""

    def __init__(self, handlers):
        self.handlers = handlers
        self.calls = []

    def events(self):
        return _Resource(self, "events")

    def calendars(self):
        return _Resource(self, "calendars")

    def calendarList(self):
        return _Resource(self, "calendarList")

    def called(self, key):
        return [kwargs for k, kwargs in self.calls if k == key]


@pytest.fixture
def fake_credentials():
    return FakeCredentials()


@pytest.fixture
def install_service(monkeypatch):
    def install(handlers):
        service = FakeCalendarService(handlers)

        def fake_build(name, ver, **kwargs):
            assert (name, ver) == ("calendar", "v3")
            return service

        monkeypatch.setattr(cc, "build", fake_build)
        return service

    return install


@pytest.fixture
def gateway(fake_credentials):
    return cc.CalendarGateway(fake_credentials, timeout=5)


class FakeGateway:
    """Records calls; set ``fail_create`` / ``errors[name]`` to make calls raise."""

    def __init__(self):
        self.calls = []
        self.fail_create = False
        self.errors = {}
        self.created = {"id": "evt123", "htmlLink": "https://calendar.google.com/event?eid=evt123"}
        self.events = [{"id": "e1", "summary": "Standup"}]
        self.calendars = [
            {
                "id": "team@group.calendar.google.com",
                "summary": "Team",
                "timeZone": "UTC",
                "accessRole": "writer",
                "backgroundColor": "#9fe1e7",
                "foregroundColor": "#000000",
                "selected": True,
            }
        ]
        self.delete_status = cc.DELETED

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if name in self.errors:
            raise self.errors[name]

    def create_event(self, calendar_id, event):
        self._record("create_event", calendar_id, event)
        if self.fail_create:
            raise UpstreamError("Calendar API error while trying to create event: boom")
        return self.created

    def list_events(self, calendar_id, time_min=None, time_max=None, max_results=10):
        self._record("list_events", calendar_id, time_min=time_min, time_max=time_max, max_results=max_results)
        return self.events

    def delete_event(self, calendar_id, event_id):
        self._record("delete_event", calendar_id, event_id)
        return cc.DeleteResult(self.delete_status, calendar_id)

    def move_event(self, calendar_id, event_id, destination, send_updates="all"):
        self._record("move_event", calendar_id, event_id, destination, send_updates=send_updates)
        return {"id": event_id, "organizer": {"email": destination}}

    def list_calendar_list(self):
        self._record("list_calendar_list")
        return self.calendars


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        service_account_key_path=str(tmp_path / "missing-key.json"),
        default_calendar_id="default@group.calendar.google.com",
        default_time_zone="America/Los_Angeles",
        environment="test",
    )
