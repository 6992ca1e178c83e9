from datetime import datetime, timedelta, timezone

from batch_ingest import UpdateResult
from scheduler import ingest_job, should_update_now


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_force_always_updates():
    ok, reason = should_update_now(True, utc(2025, 1, 18, 15, 0))
    assert ok is True
    assert reason == "Force update requested"


def test_sessions_that_update():
    assert should_update_now(False, utc(2025, 1, 15, 15, 0)) == (True, "Regular market hours")
    assert should_update_now(False, utc(2025, 1, 15, 13, 0)) == (True, "Pre-market hours")  # 08:00 ET
    assert should_update_now(False, utc(2025, 1, 15, 22, 0)) == (True, "After-hours trading")  # 17:00 ET


def test_closed_market_skips():
    assert should_update_now(False, utc(2025, 1, 18, 15, 0)) == (False, "Market closed")  # Saturday
    assert should_update_now(False, utc(2025, 1, 16, 3, 0)) == (False, "Market closed")  # 22:00 ET


class RecordingIngestor:
    run_id = "test_run"

    def __init__(self):
        self.calls = []

    def update_stocks(self, batch, total, force=False):
        self.calls.append((batch, total, force))
        return UpdateResult(
            success=True,
            message=f"Processed batch {batch} of {total}",
            processed=1,
            total_batches=total,
            next_batch=batch + 1 if batch < total else None,
        )


def test_ingest_job_walks_every_batch_when_forced():
    ingestor = RecordingIngestor()
    results = ingest_job(ingestor, 3, force=True)

    assert [c[0] for c in ingestor.calls] == [1, 2, 3]
    assert all(c[2] is True for c in ingestor.calls)
    assert len(results) == 3


def test_closed_market_updates_inside_pre_open_window():
    # 03:30 ET Wednesday, six hours before the open
    early = utc(2025, 1, 15, 8, 30)
    assert should_update_now(False, early) == (False, "Market closed")
    assert should_update_now(False, early, pre_open_window=timedelta(hours=6)) == (True, "Market opening soon")
    assert should_update_now(False, early, pre_open_window=timedelta(hours=5)) == (False, "Market closed")
