from datetime import datetime, timezone

import pytest

import db_store
from db_store import PostgresStockStore, StockFilters, build_where
from stock_metrics import StockRecord


def record(symbol="AAPL", price=150.0, **kw):
    fields = dict(
        symbol=symbol,
        name=f"{symbol} Inc",
        country="United States",
        market_cap=3e12,
        price=price,
        changes=1.0,
        changes_percentage=0.5,
        monthly_changes=10.0,
        monthly_changes_percentage=7.0,
        indexes=["Large Cap"],
        last_updated=datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc),
    )
    fields.update(kw)
    return StockRecord(**fields)


def test_non_positive_price_dropped_before_touching_db(monkeypatch):
    store = PostgresStockStore("postgresql://unused/db")

    def no_db():
        raise AssertionError("should not connect")

    monkeypatch.setattr(store, "get_conn", no_db)
    assert store.upsert_stock(record(price=0.0)) is False
    assert store.upsert_stock(record(price=-3.0)) is False


def test_filters_validate_input():
    with pytest.raises(ValueError):
        StockFilters(sort_by="drop table")
    with pytest.raises(ValueError):
        StockFilters(limit=101)
    with pytest.raises(ValueError):
        StockFilters(page=0)


def test_build_where_params():
    where, params = build_where(StockFilters(country="Canada", indexes=["Large Cap"], search="app"))
    assert where.startswith("WHERE ")
    assert "country = %s" in where
    assert params == ["Canada", ["Large Cap"], "%app%", "%app%"]
    assert build_where(StockFilters()) == ("", [])


def test_health_reports_disconnected(monkeypatch):
    def boom(*a, **kw):
        raise db_store.psycopg2.OperationalError("connection refused")

    monkeypatch.setattr(db_store.psycopg2, "connect", boom)
    health = PostgresStockStore("postgresql://nowhere/db").get_health()
    assert health["status"] == "unhealthy"
    assert health["database"] == "disconnected"
    assert health["totalStocks"] == 0


def test_postgres_upsert_roundtrip(integration_db_url):
    import psycopg2
    from migrate import apply_schema

    conn = psycopg2.connect(integration_db_url)
    try:
        apply_schema(conn)
    finally:
        conn.close()

    symbol = "ZZTEST"
    store = PostgresStockStore(integration_db_url)
    try:
        assert store.upsert_stock(record(symbol, price=150.0)) is True
        assert store.upsert_stock(record(symbol, price=0.0)) is False
        assert store.get_stock(symbol).price == 150.0

        assert store.upsert_stock(record(symbol, price=151.5)) is True
        assert store.get_stock(symbol.lower()).price == 151.5
        assert [r.symbol for r in store.get_stocks_by_symbols([symbol.lower()])] == [symbol]

        rows, total = store.get_stocks(StockFilters(search="zztest"))
        assert total == 1
        assert rows[0].symbol == symbol
        assert "United States" in store.get_countries()
        assert "Large Cap" in store.get_indexes()
    finally:
        conn = psycopg2.connect(integration_db_url)
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM stocks WHERE symbol=%s", (symbol,))
        finally:
            conn.close()
