"""
append-only `update_history` log of which trading dates the last successful run used,
plus the policy that picks the next run's dates from the newest row.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol, runtime_checkable

import psycopg2

from logger import get_logger, log_error, log_event
from market_calendar import market_today, n_days_ago_skipping_weekends, next_weekday_after

log = get_logger("checkpoint")

MONTHLY_WINDOW_DAYS = 30


@dataclass(frozen=True)
class Checkpoint:
    last_update_date: date
    last_monthly_date: date
    last_update_time: datetime
    total_updates: int = 1


@dataclass(frozen=True)
class DateWindow:
    current_date: date
    monthly_date: date
    source: str = "default"


def next_trading_dates_for(
    checkpoint: Optional[Checkpoint],
    now: Optional[datetime] = None,
    current_lag_days: int = 1,
    monthly_lag_days: int = 29,
) -> DateWindow:
    """
    pick (current, monthly) dates for the next run.
    a checkpoint from today/yesterday pushes `current` to the next weekday after it, and a monthly date
    inside the last 30 days pushes `monthly` forward the same way, so back-to-back runs move on
    instead of re-pulling the same day.
    """
    current = n_days_ago_skipping_weekends(current_lag_days, now)
    monthly = n_days_ago_skipping_weekends(monthly_lag_days, now)
    if checkpoint is None:
        return DateWindow(current, monthly, "default")

    today = market_today(now)
    shifted = False

    last = checkpoint.last_update_date
    if today - timedelta(days=1) <= last <= today:
        current = next_weekday_after(last)
        shifted = True

    last_monthly = checkpoint.last_monthly_date
    if last_monthly >= today - timedelta(days=MONTHLY_WINDOW_DAYS):
        monthly = next_weekday_after(last_monthly)
        shifted = True

    return DateWindow(current, monthly, "checkpoint" if shifted else "default")


@runtime_checkable
class CheckpointRepository(Protocol):
    def get_latest(self) -> Optional[Checkpoint]:
        ...

    def save(self, current_date: date, monthly_date: date) -> None:
        ...


class CheckpointStore:
    def __init__(self, database_url: Optional[str]):
        self.database_url = database_url

    def get_conn(self):
        if not self.database_url:
            raise ValueError("DATABASE_URL is missing. Add it to .env file.")
        return psycopg2.connect(self.database_url)

    def get_latest(self) -> Optional[Checkpoint]:
        conn = self.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT last_update_date, last_monthly_date, last_update_time, total_updates
                    FROM update_history
                    ORDER BY last_update_time DESC
                    LIMIT 1;
                    """
                )
                row = cur.fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return Checkpoint(
            last_update_date=row[0],
            last_monthly_date=row[1],
            last_update_time=row[2],
            total_updates=row[3],
        )

    def save(self, current_date: date, monthly_date: date) -> None:
        """never raises: the stock rows are already written by the time this runs."""
        try:
            conn = self.get_conn()
            try:
                with conn:
                    with conn.cursor() as cur:
                        cur.execute(
                            """
                            INSERT INTO update_history
                                (last_update_date, last_monthly_date, last_update_time, total_updates)
                            VALUES (%s, %s, %s, %s);
                            """,
                            (current_date, monthly_date, datetime.now(timezone.utc), 1),
                        )
            finally:
                conn.close()
        except Exception as e:
            log_error(
                log,
                "checkpoint_save_failed",
                e,
                current_date=current_date,
                monthly_date=monthly_date,
            )
            return

        log_event(log, "checkpoint_saved", current_date=current_date, monthly_date=monthly_date)
