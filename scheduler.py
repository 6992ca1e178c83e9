"""
runs the batch walk on an APScheduler interval (dev-friendly "runs forever" loop).
each tick first checks the market session: pre-market, regular and after-hours always update;
a closed market only updates in the 30 minutes before the next open.
"""
import time
from datetime import datetime, timedelta
from typing import Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler

from batch_ingest import build_ingestor, run_all_batches
from config import load_settings
from logger import get_logger, log_error, log_event
from market_calendar import market_now, market_session, next_market_open

log = get_logger("scheduler")

PRE_OPEN_WINDOW = timedelta(minutes=30)


def should_update_now(
    force: bool = False,
    now: Optional[datetime] = None,
    pre_open_window: timedelta = PRE_OPEN_WINDOW,
) -> Tuple[bool, str]:
    if force:
        return True, "Force update requested"

    session = market_session(now)
    if session == "regular":
        return True, "Regular market hours"
    if session == "pre-market":
        return True, "Pre-market hours"
    if session == "after-hours":
        return True, "After-hours trading"

    until_open = next_market_open(now) - market_now(now)
    if until_open <= pre_open_window:
        return True, "Market opening soon"
    return False, "Market closed"


def ingest_job(ingestor, total_batches: int, force: bool = False):
    """
    what runs on each tick. wraps the batch walk so it can log start/end and never kill the scheduler.
    """
    ok, reason = should_update_now(force)
    if not ok:
        log_event(log, "ingest_tick_skipped", run_id=ingestor.run_id, reason=reason)
        return None

    start = time.monotonic()
    log_event(log, "ingest_tick_start", run_id=ingestor.run_id, reason=reason, total_batches=total_batches)
    try:
        results = run_all_batches(ingestor, total_batches, force)
    except Exception as e:
        log_error(log, "ingest_tick_failed", e, run_id=ingestor.run_id)
        return None

    log_event(
        log,
        "ingest_tick_done",
        run_id=ingestor.run_id,
        batches=len(results),
        processed=sum(r.processed for r in results),
        failed_batches=sum(1 for r in results if not r.success),
        elapsed_s=round(time.monotonic() - start, 1),
    )
    return results


def main():
    settings = load_settings()
    ingestor = build_ingestor(settings)

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        ingest_job,
        "interval",
        minutes=settings.every_minutes,
        args=[ingestor, settings.ingest.total_batches],
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(),
    )
    scheduler.start()
    log_event(log, "scheduler_started", every_minutes=settings.every_minutes)

    # keep the process alive
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        log_event(log, "scheduler_stopping")
        scheduler.shutdown()


if __name__ == "__main__":
    main()
