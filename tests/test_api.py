from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from api import create_app
from batch_ingest import UpdateResult
from conftest import MemoryStockStore
from stock_metrics import StockRecord


class ApiStockStore(MemoryStockStore):
    def __init__(self, records):
        super().__init__()
        for r in records:
            self.rows[r.symbol] = r
        self.last_filters = None

    def get_stocks(self, filters):
        self.last_filters = filters
        rows = sorted(self.rows.values(), key=lambda r: r.symbol)
        return rows, len(rows)

    def get_countries(self):
        return sorted({r.country for r in self.rows.values()})

    def get_indexes(self):
        return sorted({i for r in self.rows.values() for i in r.indexes})

    def get_health(self):
        return {"status": "healthy", "database": "connected", "totalStocks": len(self.rows)}


class ScriptedIngestor:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def update_stocks(self, batch, total, force=False):
        self.calls.append((batch, total, force))
        if self.error is not None:
            raise self.error
        return self.result


def stock(symbol, price=100.0):
    return StockRecord(
        symbol=symbol,
        name=f"{symbol} Inc",
        country="United States",
        market_cap=3e12,
        price=price,
        changes=1.0,
        changes_percentage=1.0,
        monthly_changes=5.0,
        monthly_changes_percentage=5.0,
        indexes=["Large Cap"],
        last_updated=datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def store():
    return ApiStockStore([stock("AAPL"), stock("MSFT", 400.0)])


def client_for(store, ingestor=None):
    return TestClient(create_app(store, ingestor or ScriptedIngestor()))


def test_update_runs_one_batch(store):
    ingestor = ScriptedIngestor(
        UpdateResult(success=True, message="Processed batch 1 of 42", processed=8, total_batches=42, next_batch=2)
    )
    resp = client_for(store, ingestor).post(
        "/api/stocks/update", json={"batchNumber": 1, "totalBatches": 42, "forceUpdate": True}
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["processed"] == 8
    assert body["nextBatch"] == 2
    assert ingestor.calls == [(1, 42, True)]


def test_update_rejects_zero_batch(store):
    ingestor = ScriptedIngestor()
    resp = client_for(store, ingestor).post("/api/stocks/update", json={"batchNumber": 0, "totalBatches": 42})
    assert resp.status_code == 422
    assert ingestor.calls == []


def test_update_fatal_error_is_500(store):
    ingestor = ScriptedIngestor(error=RuntimeError("database unreachable"))
    resp = client_for(store, ingestor).post("/api/stocks/update", json={"batchNumber": 3, "totalBatches": 42})

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["errors"] == ["database unreachable"]


def test_get_by_symbol(store):
    client = client_for(store)

    resp = client.get("/api/stocks/aapl")
    assert resp.status_code == 200
    assert resp.json()["data"]["symbol"] == "AAPL"

    assert client.get("/api/stocks/NOPE").status_code == 404


def test_list_passes_filters(store):
    resp = client_for(store).get("/api/stocks", params={"sortBy": "price", "sortOrder": "desc", "limit": 10})

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert [d["symbol"] for d in body["data"]] == ["AAPL", "MSFT"]
    assert store.last_filters.sort_by == "price"
    assert store.last_filters.limit == 10


def test_list_rejects_bad_sort(store):
    assert client_for(store).get("/api/stocks", params={"sortBy": "password"}).status_code == 422


def test_metadata_and_health_routes(store):
    client = client_for(store)
    assert client.get("/api/stocks/countries").json()["data"] == ["United States"]
    assert client.get("/api/stocks/indexes").json()["data"] == ["Large Cap"]
    assert client.get("/api/stocks/health").json()["totalStocks"] == 2
    check = client.get("/api/stocks/schedule/check", params={"forceUpdate": "true"}).json()
    assert check["data"]["shouldUpdate"] is True
