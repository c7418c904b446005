from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence
import asyncio, logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import pytz

from daily_agenda.config import Config, load_config
from daily_agenda.services.agenda import render
from daily_agenda.services.credentials import CredentialStore
from daily_agenda.services.gcal import day_window, fetch_today
from daily_agenda.services.oauth import AuthorizationFlow, AuthorizationSession
from daily_agenda.services.sinks import OutputSink, build_sinks

log = logging.getLogger("agenda.scheduler")

JOB_ID = "daily-agenda"

async def run_once(cfg: Optional[Config] = None,
                   session: Optional[AuthorizationSession] = None,
                   sinks: Optional[Sequence[OutputSink]] = None,
                   reference: Optional[datetime] = None,
                   service=None) -> dict:
    cfg = cfg or load_config()
    session = session or AuthorizationSession()
    sinks = build_sinks(cfg) if sinks is None else sinks

    # Token file is read fresh on every run.
    store = CredentialStore(cfg.token_file, cfg.oauth_client_file, cfg.oauth_client_json)
    creds = await AuthorizationFlow(cfg, store, session).authorize()

    start, _ = day_window(reference)
    events = await asyncio.to_thread(fetch_today, creds, cfg.gcal_id, start, service)
    doc = render(events, start.date(), cfg.tz)

    delivered = {}
    for sink in sinks:
        delivered[sink.name] = await sink.deliver(doc)
    log.info("Agenda for %s: %d event(s), delivered=%s", doc.date_label, len(events), delivered)
    return {"date": doc.date_label, "events": len(events), "delivered": delivered}

async def scheduled_run(cfg: Config, session: AuthorizationSession) -> None:
    try:
        await run_once(cfg, session)
    except Exception:
        log.exception("Scheduled agenda run failed; will retry at next firing")

def build_trigger(cfg: Config) -> CronTrigger:
    return CronTrigger(
        minute=cfg.schedule_minute,
        hour=cfg.schedule_hour,
        day_of_week=cfg.schedule_day_of_week,
        timezone=pytz.timezone(cfg.tz),
    )

def start_scheduler(cfg: Optional[Config] = None,
                    session: Optional[AuthorizationSession] = None) -> AsyncIOScheduler:
    cfg = cfg or load_config()
    session = session or AuthorizationSession()
    scheduler = AsyncIOScheduler(timezone=pytz.timezone(cfg.tz))
    scheduler.add_job(scheduled_run, build_trigger(cfg), args=(cfg, session),
                      id=JOB_ID, max_instances=1, coalesce=True)
    scheduler.start()
    job = scheduler.get_job(JOB_ID)
    log.info("Agenda scheduled (%s); next run at %s", job.trigger, job.next_run_time)
    return scheduler
