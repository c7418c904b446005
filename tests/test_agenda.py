from datetime import date, datetime, timezone

from daily_agenda.services.agenda import ALL_DAY, NO_EVENTS, NO_TITLE, render
from daily_agenda.services.gcal import CalendarEvent


DENVER = "America/Denver"


def test_empty_agenda_states_no_events():
    doc = render([], date(2024, 3, 4), DENVER)
    assert doc.lines == []
    assert doc.body() == [NO_EVENTS]
    assert NO_EVENTS in doc.to_text()


def test_utc_event_is_localized_to_target_timezone():
    event = CalendarEvent.from_api({"start": {"dateTime": "2024-03-04T09:00:00Z"}, "summary": "Standup"})
    doc = render([event], date(2024, 3, 4), DENVER)
    assert doc.body() == ["02:00 - Standup"]


def test_daylight_saving_offset_applies():
    event = CalendarEvent(start=datetime(2024, 7, 1, 15, 30, tzinfo=timezone.utc), summary="Lunch")
    doc = render([event], date(2024, 7, 1), DENVER)
    assert doc.body() == ["09:30 - Lunch"]


def test_all_day_event_keeps_its_date():
    event = CalendarEvent.from_api({"start": {"date": "2024-03-04"}, "summary": "Offsite"})
    assert event.all_day
    doc = render([event], date(2024, 3, 4), DENVER)
    assert doc.body() == [f"{ALL_DAY} - Offsite"]


def test_missing_or_blank_summary_gets_placeholder():
    events = [
        CalendarEvent.from_api({"start": {"dateTime": "2024-03-04T16:00:00Z"}}),
        CalendarEvent.from_api({"start": {"dateTime": "2024-03-04T17:00:00Z"}, "summary": "   "}),
    ]
    doc = render(events, date(2024, 3, 4), DENVER)
    assert [line.title for line in doc.lines] == [NO_TITLE, NO_TITLE]


def test_header_uses_reference_date_and_preserves_order():
    events = [
        CalendarEvent.from_api({"start": {"date": "2024-03-04"}, "summary": "Holiday"}),
        CalendarEvent.from_api({"start": {"dateTime": "2024-03-04T08:15:00-07:00"}, "summary": "Gym"}),
    ]
    doc = render(events, datetime(2024, 3, 4, 0, 0), DENVER)
    assert doc.header == "Today's agenda (3/4/2024):"
    assert doc.to_text().splitlines() == [
        "Today's agenda (3/4/2024):",
        "All day - Holiday",
        "08:15 - Gym",
    ]
