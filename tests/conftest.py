import os
import random
from datetime import date, datetime, timezone

import pytest

from config import IngestConfig
from providers import DailyBar, SymbolNotFound, TickerMetadata


# Wed 2025-01-15 15:00 UTC = 10:00 ET
FIXED_NOW = datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc)


class FakeProvider:
    """scripted MarketDataProvider: per-symbol metadata/bars, or an exception to raise."""

    def __init__(self, metadata=None, bars=None, errors=None):
        self.metadata = metadata or {}
        self.bars = bars or {}
        self.errors = errors or {}
        self.calls = []

    def get_ticker_metadata(self, symbol):
        self.calls.append(("meta", symbol))
        err = self.errors.get((symbol, "meta"))
        if err is not None:
            raise err
        if symbol not in self.metadata:
            raise SymbolNotFound(f"no ticker {symbol}", status=404)
        return self.metadata[symbol]

    def get_daily_bar(self, symbol, day):
        self.calls.append(("bar", symbol, day))
        err = self.errors.get((symbol, "bar"))
        if err is not None:
            raise err
        bar = self.bars.get((symbol, day))
        if bar is None:
            raise SymbolNotFound(f"no bar {symbol} {day}", status=404)
        return bar


class MemoryStockStore:
    def __init__(self):
        self.rows = {}

    def upsert_stock(self, record):
        if record.price is None or record.price <= 0:
            return False
        self.rows[record.symbol.upper()] = record
        return True

    def get_stock(self, symbol):
        return self.rows.get(symbol.upper())


class MemoryCheckpointStore:
    def __init__(self, latest=None, fail_on_save=False):
        self.latest = latest
        self.saved = []
        self.fail_on_save = fail_on_save

    def get_latest(self):
        return self.latest

    def save(self, current_date, monthly_date):
        if self.fail_on_save:
            raise RuntimeError("update_history unavailable")
        self.saved.append((current_date, monthly_date))


def make_provider(symbols, current_day, monthly_day, close=150.0, open_=148.0, monthly_close=140.0):
    meta = {s: TickerMetadata(symbol=s, name=f"{s} Inc", locale="us", market_cap=3e12) for s in symbols}
    bars = {}
    for s in symbols:
        bars[(s, current_day)] = DailyBar(symbol=s, day=current_day, open=open_, close=close)
        bars[(s, monthly_day)] = DailyBar(symbol=s, day=monthly_day, open=monthly_close, close=monthly_close)
    return FakeProvider(metadata=meta, bars=bars)


@pytest.fixture()
def fixed_now():
    return FIXED_NOW


@pytest.fixture()
def window_days():
    # with FIXED_NOW and no checkpoint: current = Tue 2025-01-14, monthly = 29 days back = Tue 2024-12-17
    return date(2025, 1, 14), date(2024, 12, 17)


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def ingest_config():
    return IngestConfig(batch_size=2, base_delay_s=18.0, rate_limit_cooldown_s=30.0)


@pytest.fixture()
def make_ingestor(sleeps, fixed_now, ingest_config):
    from batch_ingest import StockIngestor

    def _make(provider, universe, stock_store=None, checkpoint_store=None, config=None, in_flight=None):
        return StockIngestor(
            provider=provider,
            stock_store=stock_store if stock_store is not None else MemoryStockStore(),
            checkpoint_store=checkpoint_store if checkpoint_store is not None else MemoryCheckpointStore(),
            config=config or ingest_config,
            in_flight=in_flight,
            sleep=sleeps.append,
            rng=random.Random(7),
            now=lambda: fixed_now,
            universe=universe,
            run_id="test_run",
        )

    return _make


@pytest.fixture(scope="session")
def integration_db_url():
    url = os.getenv("INTEGRATION_DB_URL")
    if not url:
        pytest.skip("INTEGRATION_DB_URL not set")
    return url
