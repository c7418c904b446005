from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List

import pytz

from daily_agenda.services.gcal import CalendarEvent

NO_TITLE = "(No title)"
NO_EVENTS = "No events found for today."
ALL_DAY = "All day"

@dataclass(frozen=True)
class AgendaLine:
    time_label: str
    title: str

    def __str__(self) -> str:
        return f"{self.time_label} - {self.title}"

@dataclass
class AgendaDocument:
    date_label: str
    lines: List[AgendaLine] = field(default_factory=list)

    @property
    def header(self) -> str:
        return f"Today's agenda ({self.date_label}):"

    def body(self) -> List[str]:
        if not self.lines:
            return [NO_EVENTS]
        return [str(line) for line in self.lines]

    def to_text(self) -> str:
        return "\n".join([self.header, *self.body()])


def date_label(day: date) -> str:
    return f"{day.month}/{day.day}/{day.year}"

def time_label(event: CalendarEvent, tz) -> str:
    if event.all_day:
        return ALL_DAY
    start = event.start
    if start.tzinfo is None:
        start = tz.localize(start)
    return start.astimezone(tz).strftime("%H:%M")

def render(events: Iterable[CalendarEvent], reference_date: date, tz: str) -> AgendaDocument:
    zone = pytz.timezone(tz)
    if isinstance(reference_date, datetime):
        reference_date = reference_date.date()
    lines = [
        AgendaLine(time_label(ev, zone), (ev.summary or "").strip() or NO_TITLE)
        for ev in events
    ]
    return AgendaDocument(date_label=date_label(reference_date), lines=lines)
