"""
stores StockRecords into Postgres `stocks` (one row per symbol) and serves the read side
(filter/sort/paginate, distinct countries/indexes, health).

the write path never lets a zero/negative price replace a stored one: such records are dropped
before the query, and the ON CONFLICT update is guarded by WHERE EXCLUDED.price > 0 as well.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import psycopg2

from logger import get_logger, log_error, log_warning
from stock_metrics import StockRecord

log = get_logger("db")

SORT_COLUMNS = {
    "symbol": "symbol",
    "name": "name",
    "marketCap": "market_cap",
    "price": "price",
    "changes": "changes",
    "lastUpdated": "last_updated",
}

STOCK_COLUMNS = """
    symbol, name, country, market_cap, price, changes, changes_percentage,
    monthly_changes, monthly_changes_percentage, indexes, last_updated
"""


@dataclass
class StockFilters:
    country: Optional[str] = None
    indexes: List[str] = field(default_factory=list)
    search: Optional[str] = None
    sort_by: str = "symbol"
    sort_order: str = "asc"
    page: int = 1
    limit: int = 50

    def __post_init__(self):
        if self.sort_by not in SORT_COLUMNS:
            raise ValueError(f"unsupported sort_by: {self.sort_by}")
        if self.sort_order not in ("asc", "desc"):
            raise ValueError(f"unsupported sort_order: {self.sort_order}")
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= self.limit <= 100:
            raise ValueError("limit must be between 1 and 100")


@runtime_checkable
class StockStore(Protocol):
    def upsert_stock(self, record: StockRecord) -> bool:
        ...

    def get_stock(self, symbol: str) -> Optional[StockRecord]:
        ...


def accepts_price(record: StockRecord) -> bool:
    return record.price is not None and record.price > 0


def _row_to_record(row) -> StockRecord:
    return StockRecord(
        symbol=row[0],
        name=row[1],
        country=row[2],
        market_cap=float(row[3] or 0),
        price=float(row[4] or 0),
        changes=float(row[5] or 0),
        changes_percentage=float(row[6] or 0),
        monthly_changes=float(row[7] or 0),
        monthly_changes_percentage=float(row[8] or 0),
        indexes=list(row[9] or []),
        last_updated=row[10],
    )


def build_where(filters: StockFilters) -> Tuple[str, list]:
    clauses = []
    params = []
    if filters.country:
        clauses.append("country = %s")
        params.append(filters.country)
    if filters.indexes:
        clauses.append("indexes && %s::text[]")
        params.append(list(filters.indexes))
    if filters.search:
        clauses.append("(symbol ILIKE %s OR name ILIKE %s)")
        like = f"%{filters.search}%"
        params.extend([like, like])

    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


class PostgresStockStore:
    def __init__(self, database_url: Optional[str]):
        self.database_url = database_url

    def get_conn(self):
        """
        Opens a connection to Postgres database.
        """
        if not self.database_url:
            raise ValueError("DATABASE_URL is missing. Add it to .env file.")
        return psycopg2.connect(self.database_url)

    def upsert_stock(self, record: StockRecord) -> bool:
        """
        insert-or-update one symbol. created_at is only set on insert.
        returns False when the record was dropped for a non-positive price.
        """
        if not accepts_price(record):
            log_warning(log, "stock_upsert_rejected", symbol=record.symbol, price=record.price)
            return False

        upsert_sql = """
        INSERT INTO stocks (
            symbol, name, country, market_cap, price, changes, changes_percentage,
            monthly_changes, monthly_changes_percentage, indexes, last_updated,
            created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (symbol) DO UPDATE
        SET name = EXCLUDED.name,
            country = EXCLUDED.country,
            market_cap = EXCLUDED.market_cap,
            price = EXCLUDED.price,
            changes = EXCLUDED.changes,
            changes_percentage = EXCLUDED.changes_percentage,
            monthly_changes = EXCLUDED.monthly_changes,
            monthly_changes_percentage = EXCLUDED.monthly_changes_percentage,
            indexes = EXCLUDED.indexes,
            last_updated = EXCLUDED.last_updated,
            updated_at = EXCLUDED.updated_at
        WHERE EXCLUDED.price > 0;
        """
        now = datetime.now(timezone.utc)

        conn = self.get_conn()
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute(
                        upsert_sql,
                        (
                            record.symbol.upper(),
                            record.name,
                            record.country,
                            record.market_cap,
                            record.price,
                            record.changes,
                            record.changes_percentage,
                            record.monthly_changes,
                            record.monthly_changes_percentage,
                            list(record.indexes),
                            record.last_updated or now,
                            now,
                            now,
                        ),
                    )
        finally:
            conn.close()
        return True

    def get_stock(self, symbol: str) -> Optional[StockRecord]:
        conn = self.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {STOCK_COLUMNS} FROM stocks WHERE symbol = %s;",
                    (symbol.upper(),),
                )
                row = cur.fetchone()
        finally:
            conn.close()
        return _row_to_record(row) if row else None

    def get_stocks_by_symbols(self, symbols: Sequence[str]) -> List[StockRecord]:
        conn = self.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {STOCK_COLUMNS} FROM stocks WHERE symbol = ANY(%s) ORDER BY symbol;",
                    ([s.upper() for s in symbols],),
                )
                rows = cur.fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def get_stocks(self, filters: StockFilters) -> Tuple[List[StockRecord], int]:
        where, params = build_where(filters)
        # sort column comes from the SORT_COLUMNS whitelist, never from user text
        order = f"ORDER BY {SORT_COLUMNS[filters.sort_by]} {filters.sort_order.upper()}, symbol ASC"
        offset = (filters.page - 1) * filters.limit

        conn = self.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {STOCK_COLUMNS} FROM stocks {where} {order} LIMIT %s OFFSET %s;",
                    (*params, filters.limit, offset),
                )
                rows = cur.fetchall()
                cur.execute(f"SELECT COUNT(*) FROM stocks {where};", tuple(params))
                total = cur.fetchone()[0]
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows], total

    def get_countries(self) -> List[str]:
        conn = self.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT DISTINCT country FROM stocks WHERE country IS NOT NULL ORDER BY country;")
                return [r[0] for r in cur.fetchall()]
        finally:
            conn.close()

    def get_indexes(self) -> List[str]:
        conn = self.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT DISTINCT unnest(indexes) AS idx FROM stocks ORDER BY idx;")
                return [r[0] for r in cur.fetchall()]
        finally:
            conn.close()

    def get_health(self) -> dict:
        now = datetime.now(timezone.utc)
        try:
            conn = self.get_conn()
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT COUNT(*), MAX(last_updated) FROM stocks;")
                    total, last_update = cur.fetchone()
            finally:
                conn.close()
        except Exception as e:
            log_error(log, "health_db_unreachable", e)
            return {
                "status": "unhealthy",
                "timestamp": now,
                "database": "disconnected",
                "totalStocks": 0,
            }

        return {
            "status": "healthy",
            "timestamp": now,
            "database": "connected",
            "lastUpdate": last_update,
            "totalStocks": int(total or 0),
        }
