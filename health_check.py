"""
ops diagnostics only

Validates the ingestion end-to-end: schema exists, stocks are ingested and fresh, no stored price is <= 0,
and a checkpoint row exists.
>>> import subprocess, sys
>>> out = subprocess.check_output([sys.executable, "health_check.py"]).decode()
>>> "INGEST HEALTH" in out
True
"""

import os, sys
import psycopg2
from datetime import datetime, timezone, timedelta
from dotenv import load_dotenv

STALE_AFTER = timedelta(days=3)


def ok(msg): print(f"[OK] {msg}")
def fail(msg):
    print(f"[FAIL] {msg}")
    sys.exit(1)


def main():
    load_dotenv(dotenv_path=".env")
    db = os.getenv("DATABASE_URL")
    if not db:
        fail("DATABASE_URL missing")

    conn = psycopg2.connect(db)
    try:
        cur = conn.cursor()

        tables = ["stocks", "update_history"]
        cur.execute("SELECT tablename FROM pg_tables WHERE schemaname='public'")
        existing = {r[0] for r in cur.fetchall()}
        missing = [t for t in tables if t not in existing]
        if missing:
            fail(f"Missing tables: {missing}")
        ok("DB schema present")

        cur.execute("SELECT COUNT(*), MAX(last_updated) FROM stocks")
        stock_rows, latest = cur.fetchone()
        if stock_rows == 0:
            fail("No stocks ingested")
        ok(f"Stocks ingested ({stock_rows} rows)")
        if latest < datetime.now(timezone.utc) - STALE_AFTER:
            fail("Stock data is stale")
        ok("Stock data is fresh")

        cur.execute("SELECT COUNT(*) FROM stocks WHERE price <= 0")
        if cur.fetchone()[0]:
            fail("Stocks with non-positive price stored")
        ok("All stored prices positive")

        cur.execute("SELECT last_update_date, last_monthly_date FROM update_history ORDER BY last_update_time DESC LIMIT 1")
        row = cur.fetchone()
        if row is None:
            fail("No update checkpoint written")
        ok(f"Latest checkpoint current={row[0]} monthly={row[1]}")
    finally:
        conn.close()

    print("\n==============================")
    print("INGEST HEALTH: ALL CHECKS PASSED")
    print("==============================")


if __name__ == "__main__":
    main()
