"""
trading-day arithmetic anchored to US/Eastern.
a "trading day" is just a weekday here (no holiday calendar); the provider returns 404 on holidays
and the ingest loop already treats that as a skip.
every function takes an optional `now` so tests can pin the clock.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

UTC = pytz.UTC
EASTERN = pytz.timezone("US/Eastern")

PRE_MARKET_START = time(4, 0)
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)
AFTER_HOURS_END = time(20, 0)


def market_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(EASTERN)
    if now.tzinfo is None:
        # naive datetimes are treated as UTC
        now = UTC.localize(now)
    return now.astimezone(EASTERN)


def market_today(now: Optional[datetime] = None) -> date:
    return market_now(now).date()


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5  # 5=Sat, 6=Sun


def is_trading_day(d: date) -> bool:
    return not is_weekend(d)


def previous_weekday(d: date) -> date:
    """d itself if it is a weekday, otherwise the Friday before it."""
    while is_weekend(d):
        d -= timedelta(days=1)
    return d


def next_weekday_after(d: date) -> date:
    d += timedelta(days=1)
    while is_weekend(d):
        d += timedelta(days=1)
    return d


def current_trading_day(now: Optional[datetime] = None) -> date:
    return previous_weekday(market_today(now))


def n_days_ago_skipping_weekends(n: int, now: Optional[datetime] = None) -> date:
    return previous_weekday(market_today(now) - timedelta(days=n))


def market_session(now: Optional[datetime] = None) -> str:
    et = market_now(now)
    if is_weekend(et.date()):
        return "closed"

    t = et.time()
    if PRE_MARKET_START <= t < MARKET_OPEN:
        return "pre-market"
    if MARKET_OPEN <= t < MARKET_CLOSE:
        return "regular"
    if MARKET_CLOSE <= t < AFTER_HOURS_END:
        return "after-hours"
    return "closed"


def next_market_open(now: Optional[datetime] = None) -> datetime:
    et = market_now(now)
    d = et.date()
    if not (is_trading_day(d) and et.time() < MARKET_OPEN):
        d = next_weekday_after(d)
    return EASTERN.localize(datetime.combine(d, MARKET_OPEN))
