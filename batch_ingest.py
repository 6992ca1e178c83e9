"""
ingests one batch of the symbol universe: for each symbol fetch ticker metadata plus the current and
month-ago daily bars, derive change metrics, upsert into `stocks`, then sleep an adaptive delay so we
stay under the provider's rate limit.

one symbol failing never stops the others. 404/403/bad price are skips, 429 cools down and is recorded,
anything else is recorded as a hard error. only failures outside the per-symbol loop propagate.
"""
import argparse
import random
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Set

from checkpoint_store import CheckpointRepository, CheckpointStore, DateWindow, next_trading_dates_for
from config import IngestConfig, Settings, load_settings
from db_store import PostgresStockStore, StockStore
from logger import get_logger, log_error, log_event, log_warning, new_run_id
from polygon_client import PolygonProvider
from providers import AccessDenied, MarketDataProvider, RateLimited, SymbolNotFound
from stock_metrics import build_stock_record, is_valid_bar
from universe import plan_batch, target_universe

log = get_logger("ingest")


@dataclass
class UpdateResult:
    success: bool
    message: str
    processed: int
    total_batches: int
    errors: List[str] = field(default_factory=list)
    next_batch: Optional[int] = None

    def to_dict(self) -> dict:
        out = {
            "success": self.success,
            "message": self.message,
            "processed": self.processed,
            "totalBatches": self.total_batches,
            "errors": list(self.errors),
        }
        if self.next_batch is not None:
            out["nextBatch"] = self.next_batch
        return out


class StockIngestor:
    def __init__(
        self,
        provider: MarketDataProvider,
        stock_store: StockStore,
        checkpoint_store: CheckpointRepository,
        config: Optional[IngestConfig] = None,
        *,
        in_flight: Optional[Set[int]] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        now: Optional[Callable[[], datetime]] = None,
        universe: Optional[Sequence[str]] = None,
        run_id: Optional[str] = None,
    ):
        self.provider = provider
        self.stocks = stock_store
        self.checkpoints = checkpoint_store
        self.config = config or IngestConfig()
        self.in_flight = in_flight if in_flight is not None else set()
        self._lock = threading.Lock()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.universe = list(universe) if universe is not None else target_universe(self.config.universe_cap)
        self.run_id = run_id or new_run_id()

    @contextmanager
    def _claim_batch(self, batch_number: int):
        with self._lock:
            claimed = batch_number not in self.in_flight
            if claimed:
                self.in_flight.add(batch_number)

        if not claimed:
            yield False
            return

        try:
            yield True
        finally:
            with self._lock:
                self.in_flight.discard(batch_number)

    def adaptive_delay(self, batch_number: int, index: int, total_in_batch: int) -> float:
        """later batches and the tail of a batch wait longer; jitter spreads out concurrent runners."""
        cfg = self.config
        delay = cfg.base_delay_s
        if batch_number > 20:
            delay += 5.0
        elif batch_number > 10:
            delay += 2.0

        if total_in_batch and index / total_in_batch > 0.7:
            delay += 2.0

        return delay + self._rng.uniform(cfg.jitter_min_s, cfg.jitter_max_s)

    def resolve_window(self, force_update: bool = False) -> DateWindow:
        cfg = self.config
        now = self._now()
        if force_update:
            window = next_trading_dates_for(None, now, cfg.current_lag_days, cfg.monthly_lag_days)
            return DateWindow(window.current_date, window.monthly_date, "forced")

        latest = self.checkpoints.get_latest()
        return next_trading_dates_for(latest, now, cfg.current_lag_days, cfg.monthly_lag_days)

    def update_stocks(self, batch_number: int, total_batches: int, force_update: bool = False) -> UpdateResult:
        with self._claim_batch(batch_number) as claimed:
            if not claimed:
                log_event(log, "ingest_batch_already_running", run_id=self.run_id, batch=batch_number)
                return UpdateResult(
                    success=True,
                    message=f"Batch {batch_number} is already processing",
                    processed=0,
                    total_batches=total_batches,
                )
            return self._run_batch(batch_number, total_batches, force_update)

    def _run_batch(self, batch_number: int, total_batches: int, force_update: bool) -> UpdateResult:
        started = time.monotonic()
        plan = plan_batch(batch_number, total_batches, self.config.batch_size, self.universe)

        if not plan.symbols:
            log_event(log, "ingest_batch_empty", run_id=self.run_id, batch=batch_number, start=plan.start_index)
            return UpdateResult(
                success=True,
                message="No symbols to process in this batch",
                processed=0,
                total_batches=total_batches,
            )

        window = self.resolve_window(force_update)
        log_event(
            log,
            "ingest_batch_start",
            run_id=self.run_id,
            batch=batch_number,
            total_batches=total_batches,
            symbols=plan.symbols,
            current_date=window.current_date,
            monthly_date=window.monthly_date,
            window_source=window.source,
        )

        errors: List[str] = []
        processed = 0
        skipped = 0
        rate_limit_hits = 0
        n = len(plan.symbols)

        for i, symbol in enumerate(plan.symbols):
            outcome = self._ingest_symbol(symbol, window, batch_number, errors)
            if outcome == "processed":
                processed += 1
            elif outcome == "skipped":
                skipped += 1
            elif outcome == "rate_limited":
                rate_limit_hits += 1

            if i < n - 1 and outcome != "rate_limited":
                self._sleep(self.adaptive_delay(batch_number, i, n))

        if processed > 0:
            self._save_checkpoint(window)

        log_event(
            log,
            "ingest_batch_done",
            run_id=self.run_id,
            batch=batch_number,
            total=n,
            processed=processed,
            skipped=skipped,
            errors=len(errors),
            rate_limit_hits=rate_limit_hits,
            elapsed_s=round(time.monotonic() - started, 1),
        )

        return UpdateResult(
            success=True,
            message=f"Processed batch {batch_number} of {total_batches}",
            processed=processed,
            total_batches=total_batches,
            errors=errors,
            next_batch=batch_number + 1 if batch_number < total_batches else None,
        )

    def _ingest_symbol(self, symbol: str, window: DateWindow, batch_number: int, errors: List[str]) -> str:
        ctx = {"run_id": self.run_id, "batch": batch_number, "symbol": symbol}
        try:
            meta = self.provider.get_ticker_metadata(symbol)
            current = self.provider.get_daily_bar(symbol, window.current_date)
            if not is_valid_bar(current):
                log_warning(log, "ingest_symbol_skipped", reason="invalid_current_price", **ctx)
                return "skipped"

            monthly = self.provider.get_daily_bar(symbol, window.monthly_date)
            if not is_valid_bar(monthly):
                log_warning(log, "ingest_symbol_skipped", reason="invalid_monthly_price", **ctx)
                return "skipped"

            record = build_stock_record(meta, current, monthly, now=self._now())
            if not self.stocks.upsert_stock(record):
                log_warning(log, "ingest_symbol_skipped", reason="upsert_rejected", **ctx)
                return "skipped"

            log_event(log, "ingest_symbol_done", price=record.price, changes=record.changes, **ctx)
            return "processed"

        except SymbolNotFound as e:
            log_event(log, "ingest_symbol_skipped", reason="not_found", detail=str(e), **ctx)
            return "skipped"

        except AccessDenied as e:
            # plan-tier limitation, expected on the free plan
            log_event(log, "ingest_symbol_skipped", reason="access_denied", detail=str(e), **ctx)
            return "skipped"

        except RateLimited as e:
            cooldown = self.config.rate_limit_cooldown_s
            log_warning(log, "ingest_rate_limited", cooldown_s=cooldown, detail=str(e), **ctx)
            self._sleep(cooldown)
            errors.append(f"{symbol}: Rate limit exceeded")
            return "rate_limited"

        except Exception as e:
            log_error(log, "ingest_symbol_failed", e, **ctx)
            errors.append(f"{symbol}: {e}")
            return "failed"

    def _save_checkpoint(self, window: DateWindow):
        try:
            self.checkpoints.save(window.current_date, window.monthly_date)
        except Exception as e:
            log_error(log, "checkpoint_save_failed", e, run_id=self.run_id)


def run_all_batches(ingestor: StockIngestor, total_batches: int, force_update: bool = False) -> List[UpdateResult]:
    """walk batches 1..total_batches in order; a batch that blows up is recorded and the walk goes on."""
    results = []
    batch = 1
    while batch is not None and batch <= total_batches:
        try:
            result = ingestor.update_stocks(batch, total_batches, force_update)
        except Exception as e:
            log_error(log, "ingest_batch_failed", e, run_id=ingestor.run_id, batch=batch)
            result = UpdateResult(
                success=False,
                message=str(e),
                processed=0,
                total_batches=total_batches,
                errors=[str(e)],
                next_batch=batch + 1 if batch < total_batches else None,
            )
        results.append(result)
        batch = result.next_batch
    return results


def build_ingestor(settings: Settings) -> StockIngestor:
    return StockIngestor(
        provider=PolygonProvider(settings.polygon),
        stock_store=PostgresStockStore(settings.database_url),
        checkpoint_store=CheckpointStore(settings.database_url),
        config=settings.ingest,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Ingest one batch (or all batches) of the stock universe")
    parser.add_argument("--batch", type=int, default=1, help="1-based batch number")
    parser.add_argument("--total-batches", type=int, default=None, help="total number of batches")
    parser.add_argument("--force", action="store_true", help="ignore the checkpoint and use the default dates")
    parser.add_argument("--all", action="store_true", help="run every batch sequentially")
    args = parser.parse_args(argv)

    settings = load_settings()
    total = args.total_batches or settings.ingest.total_batches
    if args.batch < 1 or total < 1:
        parser.error("--batch and --total-batches must be >= 1")

    ingestor = build_ingestor(settings)

    if args.all:
        results = run_all_batches(ingestor, total, args.force)
        return 0 if all(r.success for r in results) else 1

    try:
        result = ingestor.update_stocks(args.batch, total, args.force)
    except Exception as e:
        log_error(log, "ingest_batch_failed", e, run_id=ingestor.run_id, batch=args.batch)
        return 1

    log_event(log, "ingest_result", run_id=ingestor.run_id, **result.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
