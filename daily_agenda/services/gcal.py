from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple, Union

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from dateutil import parser as dtparser


@dataclass(frozen=True)
class CalendarEvent:
    start: Union[datetime, date]
    summary: Optional[str] = None

    @property
    def all_day(self) -> bool:
        return not isinstance(self.start, datetime)

    @classmethod
    def from_api(cls, item: dict) -> "CalendarEvent":
        start = item.get("start", {})
        if start.get("dateTime"):
            when = dtparser.isoparse(start["dateTime"])
        else:
            when = date.fromisoformat(start["date"])
        return cls(start=when, summary=item.get("summary"))


def build_service(creds: Credentials):
    return build("calendar", "v3", credentials=creds, cache_discovery=False)

def day_window(reference: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Half-open [start, start + 24h) window of the local day containing `reference`.

    Midnight is re-localized from the calendar date so it carries its own UTC
    offset, which differs from the reference's on DST-change days.
    """
    if reference is None:
        reference = datetime.now()
    tz = reference.tzinfo
    if tz is None or isinstance(tz, timezone):
        # Naive or fixed-offset: the process's local zone decides midnight.
        day = (reference.astimezone() if tz is not None else reference).date()
        start = datetime.combine(day, time()).astimezone()
    elif hasattr(tz, "localize"):
        start = tz.localize(datetime.combine(reference.date(), time()))
    else:
        start = datetime.combine(reference.date(), time(), tzinfo=tz)
    return start, start + timedelta(hours=24)

def list_events(service, calendar_id: str, start: datetime, end: datetime) -> List[CalendarEvent]:
    if start.tzinfo is None or end.tzinfo is None:
        raise ValueError("list_events requires tz-aware datetimes")
    resp = service.events().list(
        calendarId=calendar_id,
        timeMin=start.isoformat(),
        timeMax=end.isoformat(),
        singleEvents=True,
        orderBy="startTime",
    ).execute()
    return [CalendarEvent.from_api(item) for item in resp.get("items") or []]

def fetch_today(creds: Credentials, calendar_id: str = "primary",
                reference: Optional[datetime] = None, service=None) -> List[CalendarEvent]:
    start, end = day_window(reference)
    service = service or build_service(creds)
    return list_events(service, calendar_id, start, end)
