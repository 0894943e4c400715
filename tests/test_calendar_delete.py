import pytest

import connectors.calendar_client as cc
from connectors.errors import NotFound, PermissionDenied, UpstreamError


def _raising(exc):
    def handler(**kwargs):
        raise exc

    return handler


def _calendars(*ids):
    return lambda **kw: {"items": [{"id": i} for i in ids]}


def test_delete_existing_event(gateway, install_service):
    service = install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": lambda calendarId, eventId: {"id": eventId},
            "events.delete": lambda **kw: "",
        }
    )
    result = gateway.delete_event("cal-a", "evt1")
    assert result == cc.DeleteResult(cc.DELETED, "cal-a")
    assert service.called("events.delete") == [
        {"calendarId": "cal-a", "eventId": "evt1", "sendUpdates": "all"}
    ]


def test_delete_missing_everywhere_is_already_deleted(gateway, install_service, http_error):
    service = install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": _raising(http_error(404, "Not Found")),
            "calendarList.list": _calendars("cal-a", "cal-b"),
        }
    )
    for _ in range(2):
        result = gateway.delete_event("cal-a", "ghost")
        assert result.status == cc.ALREADY_DELETED
    assert service.called("events.delete") == []


def test_delete_redirects_to_calendar_holding_the_event(gateway, install_service, http_error):
    def get_event(calendarId, eventId):
        if calendarId == "cal-b":
            return {"id": eventId}
        raise http_error(404, "Not Found")

    service = install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": get_event,
            "calendarList.list": _calendars("cal-a", "cal-b", "cal-c"),
            "events.delete": lambda **kw: "",
        }
    )
    result = gateway.delete_event("cal-a", "evt1")
    assert result == cc.DeleteResult(cc.DELETED, "cal-b")
    assert service.called("events.delete")[0]["calendarId"] == "cal-b"
    # cal-c never searched once the event was found
    assert [k["calendarId"] for k in service.called("events.get")] == ["cal-a", "cal-a", "cal-b"]


def test_source_reports_deleted_then_search_finds_nothing(gateway, install_service, http_error):
    install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": _raising(http_error(410, "Resource has been deleted", "deleted")),
            "calendarList.list": _calendars("cal-a"),
        }
    )
    assert gateway.delete_event("cal-a", "evt1").status == cc.ALREADY_DELETED


def test_delete_call_reporting_deleted_is_success(gateway, install_service, http_error):
    install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": lambda calendarId, eventId: {"id": eventId, "status": "cancelled"},
            "events.delete": _raising(http_error(410, "Resource has been deleted", "deleted")),
        }
    )
    assert gateway.delete_event("cal-a", "evt1").status == cc.ALREADY_DELETED


@pytest.mark.parametrize("status,expected", [(404, NotFound), (403, PermissionDenied)])
def test_inaccessible_source_calendar_stops_immediately(
    gateway, install_service, http_error, status, expected
):
    service = install_service({"calendars.get": _raising(http_error(status, "nope"))})
    with pytest.raises(expected):
        gateway.delete_event("cal-x", "evt1")
    assert service.called("events.get") == []


def test_search_failure_surfaces_as_not_found(gateway, install_service, http_error):
    install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": _raising(http_error(404, "Not Found")),
            "calendarList.list": _raising(http_error(500, "Backend Error")),
        }
    )
    with pytest.raises(NotFound) as info:
        gateway.delete_event("cal-a", "evt1")
    assert info.value.error == "Event not found"


def test_other_delete_failures_propagate(gateway, install_service, http_error):
    install_service(
        {
            "calendars.get": lambda calendarId: {"id": calendarId},
            "events.get": lambda calendarId, eventId: {"id": eventId},
            "events.delete": _raising(http_error(500, "Backend Error")),
        }
    )
    with pytest.raises(UpstreamError):
        gateway.delete_event("cal-a", "evt1")
