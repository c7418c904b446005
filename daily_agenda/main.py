from __future__ import annotations
from typing import Optional, Sequence
import argparse, asyncio, logging, signal

from dotenv import load_dotenv

from daily_agenda.config import Config, load_config
from daily_agenda.scheduler import run_once, start_scheduler
from daily_agenda.services.oauth import AuthorizationSession

log = logging.getLogger("agenda")

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="daily-agenda",
        description="Print today's Google Calendar agenda on a schedule.",
    )
    parser.add_argument("-n", "--now", action="store_true",
                        help="fetch and print the agenda once, then exit")
    return parser.parse_args(argv)

async def serve(cfg: Config, stop: Optional[asyncio.Event] = None) -> None:
    """Run the recurring job until SIGINT/SIGTERM (or `stop` is set)."""
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler = start_scheduler(cfg, AuthorizationSession())
    try:
        await stop.wait()
    finally:
        log.info("Shutting down scheduler")
        scheduler.shutdown(wait=False)
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    cfg = load_config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.now:
        try:
            asyncio.run(run_once(cfg))
        except Exception:
            log.exception("Agenda run failed")
            return 1
        return 0
    asyncio.run(serve(cfg))
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
